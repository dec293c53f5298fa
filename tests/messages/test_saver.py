"""Tests for message persistence."""

import re

import pytest
from mailbundle.common import CancellationToken, OperationCancelledError
from mailbundle.messages import Attachment, MessageContent, MessageSaver, PersistFailedError


def content(subject="Hello", text="plain", html="<p>html</p>", attachments=None):
    return MessageContent(
        subject=subject,
        plain_text_body=text,
        html_body=html,
        attachments=attachments or [],
    )


class TestMessageSaver:
    """Tests for MessageSaver.persist."""

    @pytest.mark.asyncio
    async def test_writes_bodies_and_attachments(self, tmp_path):
        """Test the folder layout of a saved message."""
        message = content(attachments=[Attachment("report.pdf", "application/pdf", b"%PDF")])

        folder = await MessageSaver().persist(message, tmp_path)

        assert folder == tmp_path / "Hello"
        assert (folder / "Hello.txt").read_text(encoding="utf-8") == "plain"
        assert (folder / "Hello.html").read_text(encoding="utf-8") == "<p>html</p>"
        assert (folder / "report.pdf").read_bytes() == b"%PDF"

    @pytest.mark.asyncio
    async def test_empty_bodies_not_written(self, tmp_path):
        """Test that empty bodies produce no files."""
        folder = await MessageSaver().persist(content(text="", html=""), tmp_path)

        assert list(folder.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unicode_content(self, tmp_path):
        """Test that bodies are written as UTF-8."""
        folder = await MessageSaver().persist(content(subject="Отчёт", text="Привет"), tmp_path)

        assert (folder / "Отчёт.txt").read_text(encoding="utf-8") == "Привет"

    @pytest.mark.asyncio
    async def test_subject_collision_gets_unique_folder(self, tmp_path):
        """Test that a second message with the same subject does not overwrite the first."""
        saver = MessageSaver()

        first = await saver.persist(content(text="first"), tmp_path)
        second = await saver.persist(content(text="second"), tmp_path)

        assert first != second
        assert re.fullmatch(r"Hello_[0-9a-f-]{36}", second.name)
        assert (first / "Hello.txt").read_text(encoding="utf-8") == "first"
        assert (second / "Hello.txt").read_text(encoding="utf-8") == "second"

    @pytest.mark.asyncio
    async def test_duplicate_attachment_names(self, tmp_path):
        """Test that equal attachment names get numbered suffixes."""
        message = content(attachments=[
            Attachment("scan.png", "image/png", b"1"),
            Attachment("scan.png", "image/png", b"2"),
        ])

        folder = await MessageSaver().persist(message, tmp_path)

        assert (folder / "scan.png").read_bytes() == b"1"
        assert (folder / "scan (1).png").read_bytes() == b"2"

    @pytest.mark.asyncio
    async def test_skips_attachment_without_name(self, tmp_path):
        """Test that nameless attachments are skipped silently."""
        message = content(text="", html="", attachments=[Attachment("", "application/octet-stream", b"x")])

        folder = await MessageSaver().persist(message, tmp_path)

        assert list(folder.iterdir()) == []

    @pytest.mark.asyncio
    async def test_empty_subject_returns_none(self, tmp_path):
        """Test that a message without subject is not written."""
        assert await MessageSaver().persist(content(subject=""), tmp_path) is None
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cancelled_before_attachments(self, tmp_path):
        """Test that a cancelled token stops before writing attachments."""
        token = CancellationToken()
        token.cancel()
        message = content(attachments=[Attachment("a.bin", "application/octet-stream", b"x")])

        with pytest.raises(OperationCancelledError):
            await MessageSaver().persist(message, tmp_path, cancel_token=token)

        assert not (tmp_path / "Hello" / "a.bin").exists()

    @pytest.mark.asyncio
    async def test_write_failure(self, tmp_path):
        """Test that filesystem errors surface as PersistFailedError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")

        with pytest.raises(PersistFailedError) as exc_info:
            await MessageSaver().persist(content(), blocker)

        assert exc_info.value.context["subject"] == "Hello"
