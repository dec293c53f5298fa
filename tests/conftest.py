"""Shared fixtures: message and archive builders."""

import zipfile
from email.message import EmailMessage
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest


def build_message(
    subject: Optional[str] = "Test message",
    text: Optional[str] = "Hello",
    html: Optional[str] = None,
    attachments: Optional[List[Tuple[str, bytes]]] = None,
) -> bytes:
    """Build an RFC 822 message and return its bytes."""
    msg = EmailMessage()
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    if subject is not None:
        msg["Subject"] = subject

    if text is not None:
        msg.set_content(text)
    if html is not None:
        if text is not None:
            msg.add_alternative(html, subtype="html")
        else:
            msg.set_content(html, subtype="html")

    for file_name, content in attachments or []:
        msg.add_attachment(
            content,
            maintype="application",
            subtype="octet-stream",
            filename=file_name,
        )

    return msg.as_bytes()


@pytest.fixture
def make_eml(tmp_path):
    """Factory writing a message file under tmp_path."""

    def _make(name: str = "message.eml", directory: Optional[Path] = None, **kwargs) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_bytes(build_message(**kwargs))
        return path

    return _make


@pytest.fixture
def make_zip(tmp_path):
    """Factory writing a ZIP archive from ``{entry_name: bytes}``."""

    def _make(entries: Dict[str, bytes], name: str = "input.zip") -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for entry_name, content in entries.items():
                zf.writestr(entry_name, content)
        return path

    return _make


@pytest.fixture
def message_bytes():
    """The message builder, for tests that assemble archives in memory."""
    return build_message
