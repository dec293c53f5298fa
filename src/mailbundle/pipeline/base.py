"""Job state, stages and results of the processing pipeline."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from mailbundle.common import CancellationToken


class PipelineStage(str, Enum):
    """Pipeline stage identifiers, in execution order."""

    NONE = "none"
    UNPACKING = "unpacking"
    EXTRACTION = "extraction"
    PACKING = "packing"
    CLEANUP = "cleanup"
    COMPLETE = "complete"

    @property
    def order(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = list(PipelineStage)


class Outcome(str, Enum):
    """Final outcome of a job."""

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ProcessingJob:
    """A single unit of work, owned by the orchestrator while it runs.

    Scratch directories stay None until the stage that needs them creates
    them; they are removed when the job ends.
    """

    source_path: Path
    output_archive_path: Path
    delete_source_on_completion: bool = False
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    unpack_dir: Optional[Path] = None
    extracted_dir: Optional[Path] = None
    stage: PipelineStage = PipelineStage.NONE
    progress_percent: int = 0
    cancellation: CancellationToken = field(default_factory=CancellationToken, repr=False)


@dataclass(frozen=True)
class ProgressEvent:
    """One progress notification: the job's stage and percent within it."""

    job_id: str
    stage: PipelineStage
    percent: int


@dataclass
class MessageFailure:
    """A message that could not be extracted or saved."""

    path: Path
    reason: str
    error_type: str


@dataclass
class JobResult:
    """Result of processing a job."""

    job_id: str
    outcome: Outcome
    output_archive: Optional[Path] = None
    messages_total: int = 0
    failures: List[MessageFailure] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def messages_succeeded(self) -> int:
        return self.messages_total - len(self.failures)
