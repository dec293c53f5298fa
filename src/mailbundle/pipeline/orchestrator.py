"""Pipeline orchestrator: unpack, discover, extract, persist, repack, clean up."""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

from mailbundle.archiver import Archiver, ArchiveError
from mailbundle.common import (
    CancellationToken,
    MailBundleError,
    OperationCancelledError,
    PipelineError,
    SourceNotFoundError,
    create_unique_directory,
    delete_directory,
    delete_files,
)
from mailbundle.config import MailBundleConfig
from mailbundle.messages import MessageExtractor, MessageSaver, MessageScanner
from .base import (
    JobResult,
    MessageFailure,
    Outcome,
    PipelineStage,
    ProcessingJob,
    ProgressEvent,
)
from .progress import ProgressTracker, percent_of

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]

# Stages that restart their percent at 0 when entered
_STAGES_WITH_OWN_PROGRESS = (
    PipelineStage.UNPACKING,
    PipelineStage.EXTRACTION,
    PipelineStage.PACKING,
)


class PipelineOrchestrator:
    """Drives a :class:`ProcessingJob` through its stages.

    Blocking collaborators run in worker threads; the orchestrator itself stays
    on the event loop, so progress events are always delivered from the loop
    thread and in order. Cleanup runs on every exit path.
    """

    def __init__(
        self,
        temp_root: Path,
        output_directory: Path,
        scanner: Optional[MessageScanner] = None,
        extractor: Optional[MessageExtractor] = None,
        saver: Optional[MessageSaver] = None,
        archiver: Optional[Archiver] = None,
        delete_source: bool = False,
        fail_fast: bool = False,
        progress_callback: Optional[ProgressSink] = None,
    ):
        """Initialize orchestrator.

        Args:
            temp_root: Directory under which per-job scratch directories are created
            output_directory: Default location of output archives
            scanner: Message file discovery
            extractor: Message parsing
            saver: Message persistence
            archiver: Archive codec
            delete_source: Default for ``delete_source_on_completion`` of new jobs
            fail_fast: Abort a job on the first message failure
            progress_callback: Receives every :class:`ProgressEvent`
        """
        self.temp_root = Path(temp_root)
        self.output_directory = Path(output_directory)
        self.scanner = scanner or MessageScanner()
        self.extractor = extractor or MessageExtractor()
        self.saver = saver or MessageSaver()
        self.archiver = archiver or Archiver()
        self.delete_source = delete_source
        self.fail_fast = fail_fast
        self.progress_callback = progress_callback

    @classmethod
    def from_config(
        cls,
        config: MailBundleConfig,
        progress_callback: Optional[ProgressSink] = None,
    ) -> "PipelineOrchestrator":
        """Build an orchestrator with default collaborators configured from ``config``."""
        processing = config.processing
        return cls(
            temp_root=Path(processing.temp_root),
            output_directory=Path(processing.output_directory),
            scanner=MessageScanner(
                message_extensions=processing.message_extensions,
                meta_suffix=processing.meta_suffix,
            ),
            extractor=MessageExtractor(
                untitled_label=processing.untitled_label,
                max_name_length=processing.max_name_length,
            ),
            saver=MessageSaver(),
            archiver=Archiver(zip_name_encoding=processing.zip_name_encoding),
            delete_source=processing.delete_source,
            fail_fast=processing.fail_fast,
            progress_callback=progress_callback,
        )

    def create_job(
        self,
        source_path: Path,
        output_archive_path: Optional[Path] = None,
        delete_source: Optional[bool] = None,
    ) -> ProcessingJob:
        """Create a new job.

        Args:
            source_path: Message file or archive to process
            output_archive_path: Archive to produce; defaults to
                ``<output_directory>/<uuid4>.zip``
            delete_source: Delete the source after success; defaults to the
                orchestrator setting

        Returns:
            A job in stage ``NONE``
        """
        if output_archive_path is None:
            output_archive_path = self.output_directory / f"{uuid.uuid4()}.zip"

        return ProcessingJob(
            source_path=Path(source_path),
            output_archive_path=Path(output_archive_path),
            delete_source_on_completion=self.delete_source if delete_source is None else delete_source,
        )

    def is_message_file(self, path: Path) -> bool:
        """Whether ``path`` is processed with :meth:`process_single_message` rather than as an archive."""
        return self.scanner.is_message_file(path)

    def cancel(self, job: ProcessingJob) -> None:
        """Request cooperative cancellation of ``job``.

        Safe to call from any thread and more than once.
        """
        logger.info(
            "Cancellation requested",
            extra={"extra_fields": {"job_id": job.job_id, "stage": job.stage.value}},
        )
        job.cancellation.cancel()

    async def process_archive(
        self,
        job: ProcessingJob,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobResult:
        """Process an archive of message files.

        Args:
            job: A new job whose source is an archive
            cancel_token: Optional external token; cancelling it cancels the job

        Returns:
            Job result (``CANCELLED`` if the job was cancelled)

        Raises:
            SourceNotFoundError: If the source archive does not exist
            ArchiveError: If the output archive exists or the codec fails
            MailBundleError: Any other domain failure, re-raised after cleanup
            PipelineError: Unexpected failures, wrapping the original error
        """
        return await self._run(job, cancel_token, self._archive_stages)

    async def process_single_message(
        self,
        job: ProcessingJob,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobResult:
        """Process one message file.

        Args:
            job: A new job whose source is a message file
            cancel_token: Optional external token; cancelling it cancels the job

        Returns:
            Job result (``CANCELLED`` if the job was cancelled)

        Raises:
            SourceNotFoundError: If the message file does not exist
            ArchiveError: If the output archive exists or packing fails
            MessageError: If the message cannot be extracted or saved
            PipelineError: Unexpected failures, wrapping the original error
        """
        return await self._run(job, cancel_token, self._single_message_stages)

    async def _run(
        self,
        job: ProcessingJob,
        cancel_token: Optional[CancellationToken],
        stages: Callable[[ProcessingJob, CancellationToken, JobResult], Awaitable[None]],
    ) -> JobResult:
        if job.stage != PipelineStage.NONE:
            raise PipelineError(
                f"Job {job.job_id} was already processed (stage: {job.stage.value})",
                job_id=job.job_id,
            )
        if not Path(job.source_path).is_file():
            raise SourceNotFoundError(f"Source not found: {job.source_path}", path=str(job.source_path))
        if Path(job.output_archive_path).exists():
            raise ArchiveError(
                f"Output archive already exists: {job.output_archive_path}",
                path=str(job.output_archive_path),
            )

        token = CancellationToken.linked(job.cancellation, cancel_token)
        result = JobResult(job_id=job.job_id, outcome=Outcome.FAILED)
        finished = False
        cancelled = False

        logger.info(
            f"Starting job for {job.source_path}",
            extra={"extra_fields": {"job_id": job.job_id, "output": str(job.output_archive_path)}},
        )

        try:
            await stages(job, token, result)
            finished = True
        except OperationCancelledError:
            cancelled = True
            result.output_archive = None
            logger.warning("Job cancelled", extra={"extra_fields": {"job_id": job.job_id, "stage": job.stage.value}})
        except asyncio.CancelledError:
            token.cancel()
            logger.warning(
                "Job task cancelled",
                extra={"extra_fields": {"job_id": job.job_id, "stage": job.stage.value}},
            )
            raise
        except MailBundleError as e:
            logger.error(
                f"Job failed: {e.message}",
                extra={"extra_fields": {"job_id": job.job_id, "stage": job.stage.value, "error_type": type(e).__name__}},
            )
            raise
        except Exception as e:
            logger.error(
                f"Job failed unexpectedly: {e}",
                exc_info=True,
                extra={"extra_fields": {"job_id": job.job_id, "stage": job.stage.value, "error_type": type(e).__name__}},
            )
            raise PipelineError(
                f"Processing of {job.source_path} failed: {e}",
                job_id=job.job_id,
                stage=job.stage.value,
            ) from e
        finally:
            token.detach()
            await self._cleanup(job, delete_source=finished and not result.failures)
            self._advance(job, PipelineStage.COMPLETE)

        if cancelled:
            result.outcome = Outcome.CANCELLED
        elif result.failures:
            result.outcome = Outcome.PARTIAL_SUCCESS
        else:
            result.outcome = Outcome.SUCCESS
        logger.info(
            f"Job finished: {result.outcome.value}",
            extra={
                "extra_fields": {
                    "job_id": job.job_id,
                    "messages_total": result.messages_total,
                    "messages_failed": len(result.failures),
                    "output": str(result.output_archive) if result.output_archive else None,
                }
            },
        )
        return result

    async def _archive_stages(self, job: ProcessingJob, token: CancellationToken, result: JobResult) -> None:
        self._advance(job, PipelineStage.UNPACKING)
        unpack_dir = await self._scratch_dir(job, token, "unpack_dir")
        await self._run_codec(job, token, self.archiver.unpack, job.source_path, unpack_dir)

        token.raise_if_cancelled()
        message_files = await self._in_thread(token, self.scanner.scan, unpack_dir)
        sidecars = await self._in_thread(token, self.scanner.scan_meta, unpack_dir)
        if sidecars:
            logger.debug(
                f"Ignoring {len(sidecars)} metadata sidecar file(s)",
                extra={"extra_fields": {"job_id": job.job_id}},
            )

        if not message_files:
            logger.info("No message files found", extra={"extra_fields": {"job_id": job.job_id}})
            return

        self._advance(job, PipelineStage.EXTRACTION)
        await self._extract_all(job, token, message_files, result)

        self._advance(job, PipelineStage.PACKING)
        await self._pack(job, token, result)

    async def _single_message_stages(self, job: ProcessingJob, token: CancellationToken, result: JobResult) -> None:
        self._advance(job, PipelineStage.EXTRACTION)
        extracted_dir = await self._scratch_dir(job, token, "extracted_dir")

        token.raise_if_cancelled()
        content = await self._in_thread(token, self.extractor.extract, job.source_path)
        await self.saver.persist(content, extracted_dir, token)
        result.messages_total = 1
        self._report(job, 100)

        self._advance(job, PipelineStage.PACKING)
        await self._pack(job, token, result)

    async def _extract_all(
        self,
        job: ProcessingJob,
        token: CancellationToken,
        message_files: List[Path],
        result: JobResult,
    ) -> None:
        extracted_dir = await self._scratch_dir(job, token, "extracted_dir")
        tracker = ProgressTracker(total_items=len(message_files), label="messages")
        result.messages_total = len(message_files)

        for message_file in message_files:
            token.raise_if_cancelled()

            try:
                content = await self._in_thread(token, self.extractor.extract, message_file)
                await self.saver.persist(content, extracted_dir, token)
            except OperationCancelledError:
                raise
            except MailBundleError as e:
                if self.fail_fast:
                    raise
                logger.warning(
                    f"Skipping {message_file.name}: {e.message}",
                    extra={"extra_fields": {"job_id": job.job_id, "error_type": type(e).__name__}},
                )
                result.failures.append(MessageFailure(
                    path=message_file,
                    reason=e.message,
                    error_type=type(e).__name__,
                ))

            self._report(job, tracker.increment())

        tracker.log_final_summary()

    async def _pack(self, job: ProcessingJob, token: CancellationToken, result: JobResult) -> None:
        extracted_dir = await self._scratch_dir(job, token, "extracted_dir")
        await self._run_codec(job, token, self.archiver.pack, extracted_dir, job.output_archive_path)
        result.output_archive = Path(job.output_archive_path)

    async def _cleanup(self, job: ProcessingJob, delete_source: bool) -> None:
        self._advance(job, PipelineStage.CLEANUP)

        if delete_source and job.delete_source_on_completion:
            await self._delete_quietly(job, delete_files, [job.source_path])

        for attr in ("unpack_dir", "extracted_dir"):
            await self._delete_quietly(job, delete_directory, getattr(job, attr))

    async def _delete_quietly(self, job: ProcessingJob, func: Callable[[Any], None], target: Any) -> None:
        if target is None:
            return
        try:
            await asyncio.to_thread(func, target)
        except OSError as e:
            logger.warning(
                f"Cleanup could not delete {target}: {e}",
                extra={"extra_fields": {"job_id": job.job_id}},
            )

    async def _scratch_dir(self, job: ProcessingJob, token: CancellationToken, attr: str) -> Path:
        """Return the job's scratch directory ``attr``, creating it on first use.

        The worker records the path on the job as soon as the directory exists.
        ``_in_thread`` waits for the worker even when the task is cancelled, so
        cleanup always sees every directory that was created.
        """
        existing = getattr(job, attr)
        if existing is not None:
            return existing

        name = f"{job.job_id}_{attr.removesuffix('_dir')}"

        def create() -> Path:
            created = create_unique_directory(self.temp_root / name)
            setattr(job, attr, created)
            return created

        created = await self._in_thread(token, create)
        logger.debug(f"Created scratch directory {created}", extra={"extra_fields": {"job_id": job.job_id}})
        return created

    async def _run_codec(self, job: ProcessingJob, token: CancellationToken, operation, *args) -> Any:
        """Run an archiver operation in a worker thread, forwarding its byte progress."""
        loop = asyncio.get_running_loop()
        stage = job.stage

        def on_progress(processed: int, total: int) -> None:
            loop.call_soon_threadsafe(self._report_bytes, job, stage, processed, total)

        outcome = await self._in_thread(token, operation, *args, on_progress, token)
        if job.progress_percent < 100:
            self._report(job, 100)
        return outcome

    async def _in_thread(self, token: CancellationToken, func: Callable[..., Any], *args: Any) -> Any:
        """Run ``func`` in a worker thread.

        If the awaiting task is cancelled, the token is cancelled and the worker
        is allowed to reach its next checkpoint before the cancellation propagates.
        """
        future = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            token.cancel()
            await asyncio.wait([future])
            if not future.cancelled() and future.exception() is not None:
                logger.debug(f"Worker stopped after task cancellation: {future.exception()!r}")
            raise

    def _advance(self, job: ProcessingJob, stage: PipelineStage) -> None:
        if stage.order < job.stage.order:
            raise PipelineError(
                f"Invalid stage transition: {job.stage.value} -> {stage.value}",
                job_id=job.job_id,
            )
        if stage == job.stage:
            return

        logger.info(
            f"Stage: {stage.value}",
            extra={"extra_fields": {"job_id": job.job_id, "stage": stage.value}},
        )
        job.stage = stage
        if stage in _STAGES_WITH_OWN_PROGRESS:
            job.progress_percent = 0
        self._emit(job)

    def _report_bytes(self, job: ProcessingJob, stage: PipelineStage, processed: int, total: int) -> None:
        # Late callbacks from a worker that outlived its stage are dropped
        if job.stage != stage:
            return
        percent = percent_of(processed, total)
        if percent != job.progress_percent:
            self._report(job, percent)

    def _report(self, job: ProcessingJob, percent: int) -> None:
        job.progress_percent = max(0, min(100, percent))
        self._emit(job)

    def _emit(self, job: ProcessingJob) -> None:
        if self.progress_callback is None:
            return
        self.progress_callback(ProgressEvent(job_id=job.job_id, stage=job.stage, percent=job.progress_percent))
