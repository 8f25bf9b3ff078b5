"""Logfire observability for the Library Portal."""

import logging

import logfire

from .config import ObservabilityConfig
from .decorators import trace_resource, trace_tool

logger = logging.getLogger(__name__)

_config: ObservabilityConfig | None = None


def initialize_observability(config: ObservabilityConfig | None = None) -> None:
    """Configure Logfire once at server start."""
    global _config  # noqa: PLW0603
    _config = config or ObservabilityConfig()

    if not _config.enabled:
        logger.debug("Observability disabled via configuration")
        return

    logfire.configure(
        token=_config.token or None,
        service_name=_config.project_name,
        environment=_config.environment,
        send_to_logfire=_config.send_to_logfire,
        console=False if not _config.console_output else None,
    )
    logger.info(
        "Observability initialized (environment=%s, send=%s)",
        _config.environment,
        _config.send_to_logfire,
    )


__all__ = [
    "ObservabilityConfig",
    "initialize_observability",
    "trace_resource",
    "trace_tool",
]
