"""Archive packing and unpacking with byte-level progress reporting."""

import logging
import lzma
import os
import shutil
import tarfile
import zipfile
import zlib
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from mailbundle.common import (
    CancellationToken,
    OperationCancelledError,
    SourceNotFoundError,
    normalize_long_path,
    normalize_path,
    sanitize_string,
    unique_file_path,
)
from .errors import ArchiveError, CorruptedArchiveError, UnsupportedArchiveError

logger = logging.getLogger(__name__)

# progress_callback(processed_bytes, total_bytes)
ProgressCallback = Callable[[int, int], None]

COPY_CHUNK_SIZE = 65536


class ArchiveFormat(Enum):
    """Supported archive formats."""
    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_BZ2 = "tar.bz2"
    TAR_XZ = "tar.xz"
    TGZ = "tgz"
    TBZ2 = "tbz2"


# Compound extensions must be checked before their suffixes
EXTENSION_MAP = {
    '.tar.gz': ArchiveFormat.TAR_GZ,
    '.tar.bz2': ArchiveFormat.TAR_BZ2,
    '.tar.xz': ArchiveFormat.TAR_XZ,
    '.tgz': ArchiveFormat.TGZ,
    '.tbz2': ArchiveFormat.TBZ2,
    '.tar': ArchiveFormat.TAR,
    '.zip': ArchiveFormat.ZIP,
}


def detect_format(archive_path: Path) -> ArchiveFormat:
    """Detect archive format from the file extension, then from its content.

    Args:
        archive_path: Path to archive

    Returns:
        Detected archive format

    Raises:
        UnsupportedArchiveError: If the format is not recognized
    """
    archive_path = Path(archive_path)
    name = archive_path.name.lower()

    for ext, fmt in EXTENSION_MAP.items():
        if name.endswith(ext):
            return fmt

    if zipfile.is_zipfile(archive_path):
        return ArchiveFormat.ZIP
    if tarfile.is_tarfile(archive_path):
        return ArchiveFormat.TAR

    raise UnsupportedArchiveError(
        f"Unsupported archive format: {archive_path.name}",
        path=str(archive_path),
    )


def _member_target(dest_dir: Path, member_name: str) -> Optional[Path]:
    """Map an archive entry name to a safe path below ``dest_dir``.

    Every path component is sanitized; ``..`` and empty components collapse
    away. Returns None when nothing usable is left or the result would
    escape ``dest_dir``.
    """
    parts = [sanitize_string(part) for part in member_name.replace('\\', '/').split('/')]
    parts = [part for part in parts if part]
    if not parts:
        return None

    target = dest_dir.joinpath(*parts)
    if not target.resolve().is_relative_to(dest_dir.resolve()):
        return None
    return target


def _list_files(source_dir: Path) -> List[Tuple[Path, int]]:
    """List files below ``source_dir`` in a stable order with their sizes."""
    files = []
    for root, dirnames, filenames in os.walk(source_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            file_path = Path(root) / filename
            files.append((file_path, file_path.stat().st_size))
    return files


class Archiver:
    """Packs directories into ZIP archives and unpacks ZIP/TAR archives.

    Both operations are blocking, check the cancellation token before every
    entry, and report ``(processed_bytes, total_bytes)`` after every entry
    has been fully written.
    """

    def __init__(
        self,
        compression: int = zipfile.ZIP_DEFLATED,
        zip_name_encoding: Optional[str] = None,
    ):
        """Initialize archiver.

        Args:
            compression: zipfile compression method used by pack()
            zip_name_encoding: Encoding for ZIP entry names that lack the UTF-8
                flag (e.g. "cp866" for archives made by legacy Windows tools).
                None uses the ZIP default (cp437).
        """
        self.compression = compression
        self.zip_name_encoding = zip_name_encoding

    def pack(
        self,
        source_dir: Path,
        archive_path: Path,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Path:
        """Compress a directory tree into a new ZIP archive.

        Entry names are NFC-normalized POSIX paths relative to ``source_dir``. A partially
        written archive is removed on failure or cancellation.

        Args:
            source_dir: Directory to compress
            archive_path: Archive to create (must not exist)
            progress_callback: Optional callback(processed_bytes, total_bytes)
            cancel_token: Optional cancellation token

        Returns:
            Path to the created archive

        Raises:
            ArchiveError: If the archive exists or cannot be written
            OperationCancelledError: If cancellation was requested
        """
        source_dir = Path(source_dir)
        archive_path = Path(archive_path)

        if not source_dir.is_dir():
            raise ArchiveError(f"Source directory not found: {source_dir}", path=str(source_dir))
        if archive_path.exists():
            raise ArchiveError(f"Output archive already exists: {archive_path}", path=str(archive_path))

        files = _list_files(source_dir)
        total = sum(size for _, size in files)
        processed = 0

        logger.info(f"Packing {len(files)} files ({total} bytes) into {archive_path}")
        archive_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with zipfile.ZipFile(archive_path, 'x', compression=self.compression) as zip_ref:
                for file_path, size in files:
                    if cancel_token:
                        cancel_token.raise_if_cancelled()

                    arcname = normalize_path(file_path.relative_to(source_dir))
                    zip_ref.write(file_path, arcname)

                    processed += size
                    if progress_callback:
                        progress_callback(processed, total)
        except FileExistsError as e:
            raise ArchiveError(f"Output archive already exists: {archive_path}", path=str(archive_path)) from e
        except OperationCancelledError:
            logger.info(f"Packing cancelled, removing partial archive {archive_path}")
            self._remove_partial(archive_path)
            raise
        except (OSError, zipfile.LargeZipFile) as e:
            logger.error(f"Failed to pack {source_dir}: {e}")
            self._remove_partial(archive_path)
            raise ArchiveError(f"Packing failed: {e}", path=str(archive_path)) from e
        except BaseException:
            self._remove_partial(archive_path)
            raise

        logger.info(f"Successfully packed {len(files)} files into {archive_path}")
        return archive_path

    def unpack(
        self,
        archive_path: Path,
        dest_dir: Path,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Path]:
        """Extract every file entry of an archive into ``dest_dir``.

        Directory entries (and, for TAR, links and devices) are skipped, as are
        entries whose names would escape ``dest_dir``.

        Args:
            archive_path: Archive to extract
            dest_dir: Target directory (created if missing)
            progress_callback: Optional callback(processed_bytes, total_bytes)
            cancel_token: Optional cancellation token

        Returns:
            Paths of the extracted files, in archive order

        Raises:
            SourceNotFoundError: If the archive does not exist
            UnsupportedArchiveError: If the format is not recognized
            CorruptedArchiveError: If the archive cannot be decoded
            ArchiveError: On other I/O failures
            OperationCancelledError: If cancellation was requested
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)

        if not archive_path.is_file():
            raise SourceNotFoundError(f"Archive not found: {archive_path}", path=str(archive_path))

        archive_format = detect_format(archive_path)
        dest_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Unpacking {archive_path.name} ({archive_format.value}) to {dest_dir}")

        try:
            if archive_format == ArchiveFormat.ZIP:
                extracted = self._unpack_zip(archive_path, dest_dir, progress_callback, cancel_token)
            else:
                extracted = self._unpack_tar(archive_path, dest_dir, progress_callback, cancel_token)
        except OperationCancelledError:
            logger.info(f"Unpacking of {archive_path.name} cancelled")
            raise
        except (zipfile.BadZipFile, tarfile.TarError, EOFError, zlib.error, lzma.LZMAError) as e:
            logger.error(f"Corrupted archive {archive_path}: {e}")
            raise CorruptedArchiveError(f"Corrupted archive: {e}", path=str(archive_path)) from e
        except OSError as e:
            logger.error(f"Failed to unpack {archive_path}: {e}")
            raise ArchiveError(f"Unpacking failed: {e}", path=str(archive_path)) from e

        logger.info(f"Successfully unpacked {len(extracted)} files from {archive_path.name}")
        return extracted

    def _unpack_zip(
        self,
        archive_path: Path,
        dest_dir: Path,
        progress_callback: Optional[ProgressCallback],
        cancel_token: Optional[CancellationToken],
    ) -> List[Path]:
        with zipfile.ZipFile(archive_path, 'r', metadata_encoding=self.zip_name_encoding) as zip_ref:
            members = [info for info in zip_ref.infolist() if not info.is_dir()]
            total = sum(info.file_size for info in members)
            processed = 0
            extracted = []

            logger.debug(f"Extracting {len(members)} files from ZIP archive")

            for info in members:
                if cancel_token:
                    cancel_token.raise_if_cancelled()

                target = _member_target(dest_dir, info.filename)
                if target is None:
                    logger.warning(f"Skipping unsafe path: {info.filename}")
                else:
                    target = self._prepare_target(target)
                    with zip_ref.open(info) as source, open(target, 'wb') as out:
                        shutil.copyfileobj(source, out, COPY_CHUNK_SIZE)
                    extracted.append(target)

                processed += info.file_size
                if progress_callback:
                    progress_callback(processed, total)

            return extracted

    def _unpack_tar(
        self,
        archive_path: Path,
        dest_dir: Path,
        progress_callback: Optional[ProgressCallback],
        cancel_token: Optional[CancellationToken],
    ) -> List[Path]:
        # r:* detects gzip/bz2/xz compression transparently
        with tarfile.open(archive_path, 'r:*') as tar_ref:
            all_members = tar_ref.getmembers()
            members = [member for member in all_members if member.isfile()]
            total = sum(member.size for member in members)
            processed = 0
            extracted = []

            skipped = len(all_members) - len(members)
            if skipped:
                logger.debug(f"Skipping {skipped} non-file TAR entries")

            for member in members:
                if cancel_token:
                    cancel_token.raise_if_cancelled()

                target = _member_target(dest_dir, member.name)
                source = tar_ref.extractfile(member) if target is not None else None
                if source is None:
                    logger.warning(f"Skipping unsafe path: {member.name}")
                else:
                    target = self._prepare_target(target)
                    with source, open(target, 'wb') as out:
                        shutil.copyfileobj(source, out, COPY_CHUNK_SIZE)
                    extracted.append(target)

                processed += member.size
                if progress_callback:
                    progress_callback(processed, total)

            return extracted

    def _prepare_target(self, target: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        # Duplicate or sanitized-to-equal names must not overwrite each other
        return normalize_long_path(unique_file_path(target))

    def _remove_partial(self, archive_path: Path) -> None:
        try:
            archive_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove partial archive {archive_path}: {e}")
