"""Records passed from the extractor to the saver."""

from dataclasses import dataclass, field
from typing import List


@dataclass
class Attachment:
    """One attachment part of a message."""
    file_name: str  # Sanitized, safe as a file name
    content_type: str
    content: bytes


@dataclass
class MessageContent:
    """Normalized content of a single message.

    Bodies are always strings; a missing part is an empty string.
    """
    subject: str
    plain_text_body: str = ""
    html_body: str = ""
    attachments: List[Attachment] = field(default_factory=list)
