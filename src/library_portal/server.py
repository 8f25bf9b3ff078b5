"""Library Portal Server - FastMCP Implementation

Serves the library portal to MCP clients over stdio.

Features exposed:
- Resources: the catalogue, a member's loans and donations, admin queues
  and the transaction log
- Tools: issue/renewal/return requests, donations, admin approvals and
  catalogue maintenance
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from library_portal.config import get_config
from library_portal.database import get_db_manager
from library_portal.observability import initialize_observability
from library_portal.resources import all_resources
from library_portal.tools import all_tools

# Initialize logging - stderr for logs, stdout for MCP protocol
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

config = get_config()

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Library Portal - members browse the catalogue, request to borrow, renew and "
        "return books, and donate books; admins approve or reject requests, issue books "
        "directly and maintain the catalogue. Every tool takes the acting user's id as "
        "actor_id. Use resources to read the catalogue, loans, queues and the "
        "transaction log."
    ),
)

for resource in all_resources:
    uri = resource.get("uri_template", resource.get("uri"))
    if not uri:
        logger.error("Resource missing URI: %s", resource)
        continue

    logger.debug("Registering resource: %s with URI: %s", resource["name"], uri)
    try:
        mcp.resource(
            uri=uri,
            name=resource["name"],
            description=resource["description"],
            mime_type=resource["mime_type"],
        )(resource["handler"])
    except Exception:
        logger.exception("Failed to register resource %s", resource["name"])
        raise

logger.info("Registered %d resources", len(all_resources))

for tool in all_tools:
    logger.debug("Registering tool: %s", tool["name"])
    try:
        mcp.tool(
            name=tool["name"],
            description=tool["description"],
        )(tool["handler"])
    except Exception:
        logger.exception("Failed to register tool %s", tool["name"])
        raise

logger.info("Registered %d tools", len(all_tools))


def prepare_store() -> None:
    """Create the schema if needed and check the store answers."""
    manager = get_db_manager()
    manager.init_database()
    if not manager.verify_connection():
        raise RuntimeError(f"Library store is not reachable: {config.database_path}")
    logger.info("Library store ready at %s", config.database_path)


def run_stdio_server() -> None:
    """Run the MCP server using stdio transport.

    Stdin receives JSON-RPC requests, stdout sends responses.
    """
    logger.info("Starting %s v%s on stdio transport", config.server_name, config.server_version)

    if config.is_development:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled - verbose protocol logging active")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        get_db_manager().close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("MCP Server ready and waiting for connections...")
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        get_db_manager().close()


def main() -> None:
    """Entry point for the ``library-portal`` command."""
    try:
        logger.info("=" * 60)
        for key, value in config.server_info.items():
            logger.info("%s: %s", key.title(), value)
        logger.info("Debug Mode: %s", config.debug)
        logger.info("=" * 60)

        initialize_observability()
        prepare_store()

        if config.transport == "stdio":
            run_stdio_server()
        else:
            logger.error("Unsupported transport: %s", config.transport)
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
