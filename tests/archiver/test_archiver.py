"""Tests for archive packing and unpacking."""

import io
import tarfile
import zipfile

import pytest
from pathlib import Path
from mailbundle.archiver import (
    Archiver,
    ArchiveError,
    ArchiveFormat,
    CorruptedArchiveError,
    UnsupportedArchiveError,
    detect_format,
)
from mailbundle.common import CancellationToken, OperationCancelledError, SourceNotFoundError


def make_tree(root: Path, files: dict) -> Path:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


def make_tar(path: Path, files: dict, mode: str = "w:gz") -> Path:
    with tarfile.open(path, mode) as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return path


class TestDetectFormat:
    """Tests for detect_format."""

    @pytest.mark.parametrize("name, expected", [
        ("mail.zip", ArchiveFormat.ZIP),
        ("mail.ZIP", ArchiveFormat.ZIP),
        ("mail.tar", ArchiveFormat.TAR),
        ("mail.tar.gz", ArchiveFormat.TAR_GZ),
        ("mail.tgz", ArchiveFormat.TGZ),
        ("mail.tar.bz2", ArchiveFormat.TAR_BZ2),
        ("mail.tar.xz", ArchiveFormat.TAR_XZ),
    ])
    def test_by_extension(self, tmp_path, name, expected):
        """Test detection by file extension."""
        assert detect_format(tmp_path / name) == expected

    def test_by_content(self, make_zip):
        """Test that a ZIP without extension is detected from its content."""
        archive = make_zip({"a.eml": b"x"})
        renamed = archive.rename(archive.with_suffix(".bin"))
        assert detect_format(renamed) == ArchiveFormat.ZIP

    def test_unsupported(self, tmp_path):
        """Test that unknown formats raise UnsupportedArchiveError."""
        path = tmp_path / "notes.txt"
        path.write_text("not an archive")
        with pytest.raises(UnsupportedArchiveError):
            detect_format(path)


class TestPack:
    """Tests for Archiver.pack."""

    def test_pack_preserves_relative_paths(self, tmp_path):
        """Test that entry names are POSIX paths relative to the source."""
        source = make_tree(tmp_path / "src", {
            "Hello/Hello.txt": b"body",
            "Hello/report.pdf": b"%PDF",
            "Other/Other.html": b"<p>hi</p>",
        })
        archive = tmp_path / "out" / "result.zip"

        result = Archiver().pack(source, archive)

        assert result == archive
        with zipfile.ZipFile(archive) as zf:
            assert sorted(zf.namelist()) == ["Hello/Hello.txt", "Hello/report.pdf", "Other/Other.html"]
            assert zf.read("Hello/report.pdf") == b"%PDF"

    def test_pack_progress_ends_at_total(self, tmp_path):
        """Test that progress is reported per entry and ends at (total, total)."""
        source = make_tree(tmp_path / "src", {"a.txt": b"12345", "b.txt": b"123"})
        calls = []

        Archiver().pack(source, tmp_path / "out.zip", progress_callback=lambda p, t: calls.append((p, t)))

        assert calls == [(5, 8), (8, 8)]

    def test_pack_empty_directory(self, tmp_path):
        """Test that an empty directory produces an empty archive."""
        source = tmp_path / "empty"
        source.mkdir()

        Archiver().pack(source, tmp_path / "out.zip")

        with zipfile.ZipFile(tmp_path / "out.zip") as zf:
            assert zf.namelist() == []

    def test_pack_refuses_existing_archive(self, tmp_path):
        """Test that an existing archive is never overwritten."""
        source = make_tree(tmp_path / "src", {"a.txt": b"x"})
        archive = tmp_path / "out.zip"
        archive.write_bytes(b"keep")

        with pytest.raises(ArchiveError):
            Archiver().pack(source, archive)

        assert archive.read_bytes() == b"keep"

    def test_pack_missing_source(self, tmp_path):
        """Test that a missing source directory raises ArchiveError."""
        with pytest.raises(ArchiveError):
            Archiver().pack(tmp_path / "missing", tmp_path / "out.zip")

    def test_pack_cancel_removes_partial_archive(self, tmp_path):
        """Test that cancelling mid-pack removes the partial archive."""
        source = make_tree(tmp_path / "src", {f"f{i}.txt": b"x" * 10 for i in range(5)})
        archive = tmp_path / "out.zip"
        token = CancellationToken()

        def on_progress(processed, total):
            if processed >= 20:
                token.cancel()

        with pytest.raises(OperationCancelledError):
            Archiver().pack(source, archive, progress_callback=on_progress, cancel_token=token)

        assert not archive.exists()


class TestUnpack:
    """Tests for Archiver.unpack."""

    def test_unpack_zip(self, tmp_path, make_zip):
        """Test that file entries are extracted and directory entries skipped."""
        archive = make_zip({"inbox/": b"", "inbox/a.eml": b"A", "b.eml": b"BB"})
        dest = tmp_path / "dest"

        extracted = Archiver().unpack(archive, dest)

        assert sorted(p.relative_to(dest).as_posix() for p in extracted) == ["b.eml", "inbox/a.eml"]
        assert (dest / "inbox" / "a.eml").read_bytes() == b"A"

    def test_unpack_creates_destination(self, tmp_path, make_zip):
        """Test that a missing destination directory is created."""
        dest = tmp_path / "a" / "b"
        Archiver().unpack(make_zip({"x.eml": b"x"}), dest)
        assert (dest / "x.eml").exists()

    def test_unpack_progress_ends_at_total(self, tmp_path, make_zip):
        """Test byte progress reported after each entry."""
        archive = make_zip({"a.eml": b"1234", "b.eml": b"123456"})
        calls = []

        Archiver().unpack(archive, tmp_path / "dest", progress_callback=lambda p, t: calls.append((p, t)))

        assert calls == [(4, 10), (10, 10)]

    def test_unpack_tar_gz(self, tmp_path):
        """Test unpacking a gzip-compressed TAR archive."""
        archive = make_tar(tmp_path / "mail.tar.gz", {"dir/a.eml": b"A", "b.eml": b"B"})
        dest = tmp_path / "dest"

        extracted = Archiver().unpack(archive, dest)

        assert len(extracted) == 2
        assert (dest / "dir" / "a.eml").read_bytes() == b"A"

    def test_unpack_traversal_entries_stay_inside(self, tmp_path, make_zip):
        """Test that ../ and absolute entry names cannot escape the destination."""
        archive = make_zip({"../escape.eml": b"x", "/abs/root.eml": b"y"})
        dest = tmp_path / "dest"

        extracted = Archiver().unpack(archive, dest)

        assert not (tmp_path / "escape.eml").exists()
        for path in extracted:
            assert path.resolve().is_relative_to(dest.resolve())

    def test_unpack_duplicate_names_not_overwritten(self, tmp_path, make_zip):
        """Test that names equal after sanitization get unique file names."""
        archive = make_zip({"a?.eml": b"1", "a*.eml": b"2"})
        dest = tmp_path / "dest"

        extracted = Archiver().unpack(archive, dest)

        assert sorted(p.name for p in extracted) == ["a_ (1).eml", "a_.eml"]

    def test_unpack_missing_archive(self, tmp_path):
        """Test that a missing archive raises SourceNotFoundError."""
        with pytest.raises(SourceNotFoundError):
            Archiver().unpack(tmp_path / "missing.zip", tmp_path / "dest")

    def test_unpack_corrupted_zip(self, tmp_path):
        """Test that a damaged ZIP raises CorruptedArchiveError."""
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"PK\x03\x04 definitely not a zip")

        with pytest.raises(CorruptedArchiveError):
            Archiver().unpack(archive, tmp_path / "dest")

    def test_unpack_cancelled(self, tmp_path, make_zip):
        """Test that a cancelled token stops unpacking before the next entry."""
        archive = make_zip({"a.eml": b"1", "b.eml": b"2"})
        token = CancellationToken()

        def on_progress(processed, total):
            token.cancel()

        with pytest.raises(OperationCancelledError):
            Archiver().unpack(archive, tmp_path / "dest", progress_callback=on_progress, cancel_token=token)

        assert not (tmp_path / "dest" / "b.eml").exists()

