"""Error mapping shared by the portal resources."""

import logging

from fastmcp.exceptions import ResourceError

from ..database.repository import IndexMissingError, StoreUnavailableError

logger = logging.getLogger(__name__)


def resource_failure(resource: str, error: Exception) -> ResourceError:
    """Turn a failure while reading ``resource`` into a ResourceError."""
    if isinstance(error, IndexMissingError):
        logger.error("Resource %s needs an index the store does not have: %s", resource, error)
        return ResourceError(
            f"Failed to read {resource}: the library store is not fully provisioned"
        )
    if isinstance(error, StoreUnavailableError):
        logger.warning("Resource %s failed - store unavailable: %s", resource, error)
        return ResourceError(
            f"Failed to read {resource}: the library store is unavailable, please try again"
        )
    logger.exception("Error in %s resource", resource)
    return ResourceError(f"Failed to read {resource}: {error!s}")
