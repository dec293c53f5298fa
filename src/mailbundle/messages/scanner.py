"""Discovery of message files and their metadata sidecars."""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_EXTENSIONS = ('.eml',)
DEFAULT_META_SUFFIX = '.eml.meta'


class MessageScanner:
    """Finds message files below a directory.

    Order is stable: the files of a directory (sorted by name) come first,
    followed by each subdirectory (sorted by name), depth first. Symlinked
    directories are not followed.
    """

    def __init__(
        self,
        message_extensions: Iterable[str] = DEFAULT_MESSAGE_EXTENSIONS,
        meta_suffix: str = DEFAULT_META_SUFFIX,
    ):
        self.message_extensions: Tuple[str, ...] = tuple(ext.lower() for ext in message_extensions)
        self.meta_suffix = meta_suffix.lower()

    def is_message_file(self, path: Path) -> bool:
        return Path(path).name.lower().endswith(self.message_extensions)

    def scan(self, root_dir: Path) -> List[Path]:
        """Return all message files below ``root_dir``.

        A missing or empty directory yields an empty list.
        """
        files = self._walk(root_dir, self.message_extensions)
        logger.info(f"Discovered {len(files)} message file(s) in {root_dir}")
        return files

    def scan_meta(self, root_dir: Path) -> List[Path]:
        """Return all metadata sidecar files below ``root_dir``."""
        files = self._walk(root_dir, (self.meta_suffix,))
        logger.debug(f"Discovered {len(files)} metadata file(s) in {root_dir}")
        return files

    def _walk(self, root_dir: Path, suffixes: Tuple[str, ...]) -> List[Path]:
        root_dir = Path(root_dir)
        if not root_dir.is_dir():
            logger.debug(f"Scan root does not exist: {root_dir}")
            return []

        found = []
        # Explicit stack: nesting depth of unpacked archives is unbounded
        stack = [root_dir]

        while stack:
            directory = stack.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda entry: entry.name)
            except OSError as e:
                if directory == root_dir:
                    raise
                logger.warning(f"Cannot read directory {directory}: {e}")
                continue

            subdirs = []
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(Path(entry.path))
                elif entry.is_file() and entry.name.lower().endswith(suffixes):
                    found.append(Path(entry.path))

            # Reversed so the first subdirectory is popped first
            stack.extend(reversed(subdirs))

        return found
