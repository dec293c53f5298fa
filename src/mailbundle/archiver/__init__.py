"""Archive codec: ZIP packing, ZIP/TAR unpacking."""

from .archiver import Archiver, ArchiveFormat, ProgressCallback, detect_format
from .errors import ArchiveError, CorruptedArchiveError, UnsupportedArchiveError

__all__ = [
    'Archiver',
    'ArchiveFormat',
    'ProgressCallback',
    'detect_format',
    'ArchiveError',
    'CorruptedArchiveError',
    'UnsupportedArchiveError',
]
