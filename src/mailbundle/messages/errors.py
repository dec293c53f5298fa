"""Per-message errors."""

from mailbundle.common import MailBundleError


class MessageError(MailBundleError):
    """Base error for a single message."""
    pass


class ExtractionFailedError(MessageError):
    """Message file could not be read or parsed."""
    pass


class PersistFailedError(MessageError):
    """Message content could not be written to disk."""
    pass
