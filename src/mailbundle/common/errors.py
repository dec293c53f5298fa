"""Base error definitions for mailbundle packages."""

from typing import Any, Dict


class MailBundleError(Exception):
    """Base exception for all mailbundle errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class ConfigurationError(MailBundleError):
    """Configuration is invalid or missing."""
    pass


class SourceNotFoundError(MailBundleError):
    """Message file or archive does not exist."""
    pass


class OperationCancelledError(MailBundleError):
    """Cooperative cancellation was requested and honored."""
    pass


class PipelineError(MailBundleError):
    """Pipeline execution failed."""
    pass
