from .setup import CorrelationIdFilter, configure_logging, get_logger

__all__ = ["CorrelationIdFilter", "configure_logging", "get_logger"]
