"""Core application utilities and configuration."""

from lms_o365.core.logging import (
    configure_logging,
    generate_request_id,
    get_logger,
    o365_debug,
)

__all__ = ["configure_logging", "generate_request_id", "get_logger", "o365_debug"]
