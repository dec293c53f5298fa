"""Writes message content to a per-message folder."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles

from mailbundle.common import (
    CancellationToken,
    create_unique_directory,
    normalize_long_path,
    unique_file_path,
)
from .errors import PersistFailedError
from .models import MessageContent

logger = logging.getLogger(__name__)


class MessageSaver:
    """Persists a :class:`MessageContent` as ``<output_root>/<subject>/``.

    The folder holds ``<subject>.txt``, ``<subject>.html`` and one file per
    attachment. Empty parts are not written.
    """

    async def persist(
        self,
        content: MessageContent,
        output_root: Path,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[Path]:
        """Write one message to disk.

        Args:
            content: Message content to write
            output_root: Directory receiving the message folder
            cancel_token: Optional cancellation token, checked before each attachment

        Returns:
            The message folder, or None if the message has no subject

        Raises:
            PersistFailedError: If a file or folder cannot be written
            OperationCancelledError: If cancellation was requested
        """
        if not content.subject:
            logger.debug("Skipping message without subject")
            return None

        try:
            message_dir = await asyncio.to_thread(
                create_unique_directory, normalize_long_path(Path(output_root) / content.subject)
            )

            await asyncio.gather(
                self._save_text(message_dir / f"{content.subject}.txt", content.plain_text_body),
                self._save_text(message_dir / f"{content.subject}.html", content.html_body),
            )
            await self._save_attachments(content, message_dir, cancel_token)
        except OSError as e:
            raise PersistFailedError(
                f"Failed to save message '{content.subject}': {e}",
                subject=content.subject,
            ) from e

        logger.debug(f"Saved message to {message_dir}")
        return message_dir

    async def _save_text(self, file_path: Path, text: str) -> None:
        if not text:
            return
        async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
            await f.write(text)

    async def _save_attachments(
        self,
        content: MessageContent,
        message_dir: Path,
        cancel_token: Optional[CancellationToken],
    ) -> None:
        for attachment in content.attachments:
            if cancel_token:
                cancel_token.raise_if_cancelled()

            if not attachment.file_name or attachment.content is None:
                continue

            file_path = unique_file_path(message_dir / attachment.file_name)
            async with aiofiles.open(file_path, 'wb') as f:
                await f.write(attachment.content)
