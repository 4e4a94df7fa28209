from .config import FlashSettings
from .logging import get_logger, scoped_correlation_id, setup_logging

__all__ = ["FlashSettings", "get_logger", "scoped_correlation_id", "setup_logging"]
