from __future__ import annotations


class AggregatorError(RuntimeError):
    """
    Base class for failures raised by the aggregation engine.
    """


class ConfigurationError(AggregatorError):
    """
    Raised when the caller-supplied date range (or config) is invalid.
    """


class NavigationError(AggregatorError):
    """
    Raised when the Gmail mailbox URL could not be determined or the search could not be issued.
    Fatal: aborts the whole aggregation.
    """


class SearchTimeout(AggregatorError):
    """
    Raised when the search result list never rendered (neither rows nor the empty-result notice).
    """

    def __init__(self, message: str, *, condition: str = "") -> None:
        super().__init__(message)
        self.condition = condition


class ItemProcessingError(AggregatorError):
    """
    Raised for a single result item (open/expand/extract/return). The orchestrator logs it and moves on.
    """

    def __init__(self, message: str, *, index: int = -1) -> None:
        super().__init__(message)
        self.index = index
