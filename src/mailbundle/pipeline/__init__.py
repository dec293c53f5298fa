"""Processing pipeline: jobs, stages, progress and the orchestrator."""

from .base import (
    JobResult,
    MessageFailure,
    Outcome,
    PipelineStage,
    ProcessingJob,
    ProgressEvent,
)
from .orchestrator import PipelineOrchestrator, ProgressSink
from .progress import ProgressTracker, format_duration, percent_of

__all__ = [
    'JobResult',
    'MessageFailure',
    'Outcome',
    'PipelineStage',
    'ProcessingJob',
    'ProgressEvent',
    'PipelineOrchestrator',
    'ProgressSink',
    'ProgressTracker',
    'format_duration',
    'percent_of',
]
