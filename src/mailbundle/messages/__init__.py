"""Message discovery, extraction and persistence."""

from .errors import MessageError, ExtractionFailedError, PersistFailedError
from .extractor import MessageExtractor
from .models import Attachment, MessageContent
from .saver import MessageSaver
from .scanner import MessageScanner

__all__ = [
    'MessageError',
    'ExtractionFailedError',
    'PersistFailedError',
    'MessageExtractor',
    'Attachment',
    'MessageContent',
    'MessageSaver',
    'MessageScanner',
]
