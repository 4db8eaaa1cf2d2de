"""Error taxonomy shared by the sync engine, the stores and the read API.

Every failure inside a reconciliation cycle is caught where it happens and
turned into "try again next cycle"; these types tell the call site which
failure it is looking at.
"""


class MirrorError(Exception):
    """Base exception for all mirror errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize mirror exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientSourceError(MirrorError):
    """The upstream collection could not be read (network, rate limit, HTTP failure).

    Always retried on the next scheduled cycle, never fatal.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class StoreError(MirrorError):
    """A document-store operation failed."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        *,
        operation: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation


class ConfigError(MirrorError):
    """Configuration is malformed or unreadable; fatal at startup."""

    pass
