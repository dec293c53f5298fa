"""Archive-specific errors."""

from mailbundle.common import MailBundleError


class ArchiveError(MailBundleError):
    """Archive pack/unpack failed."""
    pass


class CorruptedArchiveError(ArchiveError):
    """Archive is corrupted."""
    pass


class UnsupportedArchiveError(ArchiveError):
    """Archive format is not supported."""
    pass
