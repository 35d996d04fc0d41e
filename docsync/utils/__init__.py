"""Shared utilities for configuration, logging, and retries"""

from docsync.utils.logging_config import configure_logging, configure_logging_from_config
from docsync.utils.retry import exponential_backoff_retry

__all__ = ["configure_logging", "configure_logging_from_config", "exponential_backoff_retry"]
