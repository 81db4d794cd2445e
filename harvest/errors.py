"""Error taxonomy for harvest runs."""


class HarvestError(RuntimeError):
    """Base class for harvest failures."""


class ConfigError(HarvestError, ValueError):
    """Raised when required configuration is missing or invalid."""


class UpstreamError(HarvestError):
    """Raised when signature listing fails; aborts the run."""


class FetchError(HarvestError):
    """Raised when one transaction cannot be retrieved."""


class ExecutionFailure(HarvestError):
    """Raised when a transaction failed on chain."""


class ClassificationSkip(HarvestError):
    """Raised when a transaction carries no classifiable swap."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason


class PersistenceError(HarvestError):
    """Raised when the ledger sink cannot be read or written."""


class Cancelled(HarvestError):
    """Raised when a wait is interrupted by a cancellation signal."""
