from .keys import ProcessedMessageCache, build_correlation_key

__all__ = ["build_correlation_key", "ProcessedMessageCache"]
