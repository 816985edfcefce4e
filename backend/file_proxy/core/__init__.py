"""Logging, credentials, identity and downstream service clients."""

from file_proxy.core.logging import configure_logging, get_logger, truncate_id

__all__ = ["configure_logging", "get_logger", "truncate_id"]
