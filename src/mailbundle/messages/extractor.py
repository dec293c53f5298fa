"""Message file parsing into normalized content records."""

import logging
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from pathlib import Path
from typing import List, Optional

from mailbundle.common import (
    SourceNotFoundError,
    sanitize_string,
    subject_or_default,
)
from mailbundle.common.path_utils import MAX_NAME_LENGTH
from .errors import ExtractionFailedError
from .models import Attachment, MessageContent

logger = logging.getLogger(__name__)

DEFAULT_UNTITLED_LABEL = "No Subject"


def _part_text(part: Optional[EmailMessage]) -> str:
    """Decode a text part, falling back to lossy UTF-8 for unknown charsets."""
    if part is None:
        return ""

    try:
        content = part.get_content()
    except (LookupError, UnicodeError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")

    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return content


class MessageExtractor:
    """Loads one RFC 822 message file and returns its :class:`MessageContent`."""

    def __init__(
        self,
        untitled_label: str = DEFAULT_UNTITLED_LABEL,
        max_name_length: int = MAX_NAME_LENGTH,
    ):
        """Initialize extractor.

        Args:
            untitled_label: Subject used (with a unique suffix) for messages without one
            max_name_length: Maximum length of subjects and attachment names
        """
        self.untitled_label = untitled_label
        self.max_name_length = max_name_length
        self._parser = BytesParser(policy=policy.default)

    def extract(self, message_path: Path) -> MessageContent:
        """Extract subject, bodies and attachments from a message file.

        Args:
            message_path: Path to the message file

        Returns:
            Normalized message content

        Raises:
            SourceNotFoundError: If the path is empty or the file does not exist
            ExtractionFailedError: If the file cannot be read or parsed
        """
        if not message_path or not Path(message_path).is_file():
            raise SourceNotFoundError(f"Message file not found: {message_path}", path=str(message_path))

        message_path = Path(message_path)

        try:
            with open(message_path, 'rb') as f:
                message = self._parser.parse(f)

            subject = subject_or_default(
                str(message.get("Subject", "") or ""),
                self.untitled_label,
                self.max_name_length,
            )

            plain_part = message.get_body(preferencelist=("plain",))
            html_part = message.get_body(preferencelist=("html",))

            content = MessageContent(
                subject=subject,
                plain_text_body=_part_text(plain_part),
                html_body=_part_text(html_part),
                attachments=self._extract_attachments(message, skip=(plain_part, html_part)),
            )
        except OSError as e:
            raise ExtractionFailedError(f"Cannot read {message_path.name}: {e}", path=str(message_path)) from e
        except Exception as e:
            # email parsing surfaces malformed input as assorted built-in errors
            raise ExtractionFailedError(f"Cannot parse {message_path.name}: {e}", path=str(message_path)) from e

        logger.debug(
            f"Extracted '{content.subject}' from {message_path.name} "
            f"({len(content.attachments)} attachment(s))"
        )
        return content

    def _extract_attachments(self, message: EmailMessage, skip: tuple) -> List[Attachment]:
        attachments = []

        for part in message.walk():
            if part.is_multipart() or any(part is body for body in skip):
                continue
            if not part.is_attachment() and part.get_filename() is None:
                continue

            file_name = sanitize_string(part.get_filename(), self.max_name_length)
            payload = part.get_payload(decode=True)

            if not file_name or payload is None:
                logger.debug(f"Skipping attachment without name or content ({part.get_content_type()})")
                continue

            attachments.append(Attachment(
                file_name=file_name,
                content_type=part.get_content_type(),
                content=payload,
            ))

        return attachments
