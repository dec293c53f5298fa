"""Filesystem helpers: name sanitization, unique directories, idempotent deletes."""

import logging
import os
import re
import shutil
import unicodedata
import uuid
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

# Most filesystems cap a single name at 255 bytes; leave room for the
# "_<uuid4>" collision suffix and a file extension.
MAX_NAME_BYTES = 200

# ASCII names hit the character cap and the byte cap at the same point
MAX_NAME_LENGTH = MAX_NAME_BYTES

PLACEHOLDER = '_'

# Characters invalid in Windows file names, path separators, and ASCII control chars
INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
TRAILING_JUNK = re.compile(r'[\s.]+$')

LONG_PATH_PREFIX = '\\\\?\\'


def normalize_path(path: Path | str) -> str:
    """
    Normalize a path for consistent storage and comparison.

    Applies Unicode NFC normalization and converts backslashes to forward slashes.

    Args:
        path: Path object or string to normalize

    Returns:
        Normalized path string

    Examples:
        >>> normalize_path(r"C:\\Users\\test\\mail")
        'C:/Users/test/mail'
    """
    normalized = unicodedata.normalize('NFC', str(path))
    return normalized.replace('\\', '/')


def _truncate_bytes(text: str, max_bytes: int) -> str:
    encoded = text.encode('utf-8')
    if len(encoded) <= max_bytes:
        return text
    # Drop a multi-byte character cut in half
    return encoded[:max_bytes].decode('utf-8', errors='ignore')


def sanitize_string(text: str | None, max_length: int = MAX_NAME_LENGTH) -> str:
    """Make a string safe to use as a single file or directory name.

    Trims surrounding whitespace, truncates to ``max_length`` characters (and
    ``MAX_NAME_BYTES`` UTF-8 bytes), replaces invalid characters with ``_``
    and strips trailing dots and whitespace. Sanitizing an already sanitized
    string returns it unchanged.

    Args:
        text: Raw text (subject line, attachment name)
        max_length: Maximum length in characters

    Returns:
        Sanitized string, possibly empty
    """
    if not text:
        return ''

    text = text.strip()
    text = text[:max_length]
    text = _truncate_bytes(text, MAX_NAME_BYTES)
    text = INVALID_NAME_CHARS.sub(PLACEHOLDER, text)
    text = TRAILING_JUNK.sub('', text)

    return text


def subject_or_default(subject: str | None, label: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Return the sanitized subject, or ``"<label> <uuid4>"`` when it is blank.

    Args:
        subject: Subject line (raw or already sanitized)
        label: Label used for messages without a subject
        max_length: Maximum length in characters

    Returns:
        Non-empty name usable as a directory name
    """
    sanitized = sanitize_string(subject, max_length)
    if sanitized:
        return sanitized
    return sanitize_string(f"{label} {uuid.uuid4()}", max_length)


def to_long_path(path: Path | str) -> str:
    """Convert a path to the Windows extended-length form (``\\\\?\\`` prefix).

    Already prefixed paths are returned unchanged; relative paths are made
    absolute first.
    """
    path = str(path)
    if path.startswith(LONG_PATH_PREFIX):
        return path

    if not os.path.isabs(path):
        path = os.path.abspath(path)

    return LONG_PATH_PREFIX + path


def normalize_long_path(path: Path | str) -> Path:
    """Apply :func:`to_long_path` where the platform needs it (Windows only)."""
    if os.name == 'nt':
        return Path(to_long_path(path))
    return Path(path)


def create_unique_directory(path: Path | str) -> Path:
    """Create a directory, appending ``_<uuid4>`` if the name is taken.

    Existing content at ``path`` is never touched.

    Args:
        path: Requested directory path

    Returns:
        Path of the directory actually created
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=False)
        return path
    except FileExistsError:
        unique = path.with_name(f"{path.name}_{uuid.uuid4()}")
        logger.debug(f"Directory exists, using unique name: '{path}' -> '{unique}'")
        unique.mkdir(parents=True, exist_ok=False)
        return unique


def unique_file_path(path: Path | str) -> Path:
    """Return ``path`` or the first free ``"stem (n).ext"`` variant of it."""
    path = Path(path)
    if not path.exists():
        return path

    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem} ({counter}){path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


def delete_directory(path: Path | str | None) -> None:
    """Recursively delete a directory. Missing directories are ignored."""
    if path is None:
        return

    path = Path(path)
    if path.is_dir():
        shutil.rmtree(path)
        logger.debug(f"Deleted directory: {path}")
    elif path.exists():
        path.unlink()


def delete_files(files: Iterable[Path | str]) -> None:
    """Delete files. Missing files are ignored."""
    for file_path in files:
        file_path = Path(file_path)
        if file_path.is_file():
            file_path.unlink()
            logger.debug(f"Deleted file: {file_path}")
