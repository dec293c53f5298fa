"""Command line interface for mailbundle."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, List, Optional

from mailbundle import __version__
from mailbundle.common import (
    ConfigLoader,
    ConfigurationError,
    LogContext,
    MailBundleError,
    setup_logging,
)
from mailbundle.config import MailBundleConfig
from mailbundle.pipeline import (
    JobResult,
    Outcome,
    PipelineOrchestrator,
    PipelineStage,
    ProcessingJob,
    ProgressEvent,
)

APP_NAME = "mailbundle"

EXIT_CODES = {
    Outcome.SUCCESS: 0,
    Outcome.FAILED: 1,
    Outcome.PARTIAL_SUCCESS: 2,
    Outcome.CANCELLED: 130,
}

# Byte and message progress is logged in steps of this many percent
PROGRESS_LOG_STEP = 10


def make_progress_logger(logger: logging.Logger) -> Callable[[ProgressEvent], None]:
    """Return a progress sink that logs stage changes and every PROGRESS_LOG_STEP percent."""
    last = {"stage": None, "percent": -1}

    def log_progress(event: ProgressEvent) -> None:
        if event.stage != last["stage"]:
            last["stage"] = event.stage
            last["percent"] = event.percent
            if event.stage != PipelineStage.COMPLETE:
                logger.info(f"{event.stage.value.capitalize()}...")
            return

        if event.percent // PROGRESS_LOG_STEP > last["percent"] // PROGRESS_LOG_STEP:
            last["percent"] = event.percent
            logger.info(f"{event.stage.value.capitalize()}: {event.percent}%")

    return log_progress


def install_signal_handlers(orchestrator: PipelineOrchestrator, job: ProcessingJob) -> List[signal.Signals]:
    """Cancel ``job`` on SIGINT / SIGTERM.

    Call from the running event loop. Returns the signals that were installed;
    loops without signal support (e.g. on Windows) install none.
    """
    loop = asyncio.get_running_loop()
    installed = []

    def _handle(sig: signal.Signals) -> None:
        logging.getLogger(__name__).info(f"Received {sig.name}, cancelling")
        orchestrator.cancel(job)

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle, sig)
        except NotImplementedError:
            continue
        installed.append(sig)

    return installed


def remove_signal_handlers(signals: List[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.remove_signal_handler(sig)


async def process_command(
    config: MailBundleConfig,
    source: Path,
    output: Optional[Path] = None,
    delete_source: Optional[bool] = None,
) -> JobResult:
    """Process one message file or archive.

    Args:
        config: Configuration object
        source: Message file or archive
        output: Output archive path (overrides the configured output directory)
        delete_source: Optional override for deleting the source on success

    Returns:
        Job result; failures are reported as an ``Outcome.FAILED`` result
    """
    logger = logging.getLogger(__package__ or __name__)

    orchestrator = PipelineOrchestrator.from_config(config, progress_callback=make_progress_logger(logger))
    job = orchestrator.create_job(source, output_archive_path=output, delete_source=delete_source)

    single_message = orchestrator.is_message_file(source)
    logger.info(f"Source: {source} ({'message file' if single_message else 'archive'})")
    logger.info(f"Output archive: {job.output_archive_path}")

    signals = install_signal_handlers(orchestrator, job)
    try:
        with LogContext(logger, job_id=job.job_id):
            if single_message:
                return await orchestrator.process_single_message(job)
            return await orchestrator.process_archive(job)
    except MailBundleError as e:
        logger.error(f"Processing failed: {e.message}")
        return JobResult(job_id=job.job_id, outcome=Outcome.FAILED, error=e.message)
    finally:
        remove_signal_handlers(signals)


def report_result(logger: logging.Logger, result: JobResult) -> None:
    if result.outcome == Outcome.FAILED:
        logger.error(f"Failed: {result.error}")
        return
    if result.outcome == Outcome.CANCELLED:
        logger.warning("Cancelled")
        return

    if result.output_archive is None:
        logger.warning("No message files found, no archive was created")
    else:
        logger.info(
            f"Processed {result.messages_succeeded}/{result.messages_total} message(s) "
            f"into {result.output_archive}"
        )

    for failure in result.failures:
        logger.warning(f"Failed message {failure.path.name}: {failure.reason} ({failure.error_type})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Convert an email archive or message file into per-message folders packed in a ZIP archive",
    )
    parser.add_argument(
        "source",
        type=Path,
        help="Message file (.eml) or archive (.zip, .tar, .tar.gz, ...) to process"
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Output archive path (default: <output_directory>/<uuid>.zip)"
    )
    parser.add_argument(
        "--delete-source",
        action="store_true",
        help="Delete the source file after successful processing"
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Abort on the first message that cannot be processed"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (defaults.toml)"
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides config)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    loader = ConfigLoader(app_name=APP_NAME, config_class=MailBundleConfig)
    try:
        config = loader.load(defaults_path=args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_CODES[Outcome.FAILED]

    if args.fail_fast:
        config = config.model_copy(
            update={"processing": config.processing.model_copy(update={"fail_fast": True})}
        )

    setup_logging(
        level=args.log_level or config.logging.level,
        format=config.logging.format,
        log_file=Path(config.logging.file) if config.logging.file else None,
    )
    logger = logging.getLogger(__package__ or __name__)

    result = asyncio.run(process_command(
        config=config,
        source=args.source,
        output=args.output,
        delete_source=True if args.delete_source else None,
    ))

    report_result(logger, result)
    return EXIT_CODES[result.outcome]


if __name__ == "__main__":
    sys.exit(main())
