"""Common utilities for mailbundle packages."""

from .cancellation import CancellationToken
from .config import ConfigLoader
from .config_utils import expand_path_variables
from .logging import setup_logging, LogContext
from .logging_config import LoggingConfig
from .errors import (
    MailBundleError, ConfigurationError, SourceNotFoundError,
    OperationCancelledError, PipelineError
)
from .path_utils import (
    normalize_path, sanitize_string, subject_or_default, to_long_path,
    normalize_long_path, create_unique_directory, unique_file_path,
    delete_directory, delete_files
)

__all__ = [
    'CancellationToken',
    'ConfigLoader',
    'expand_path_variables',
    'LoggingConfig',
    'setup_logging',
    'LogContext',
    'MailBundleError',
    'ConfigurationError',
    'SourceNotFoundError',
    'OperationCancelledError',
    'PipelineError',
    'normalize_path',
    'sanitize_string',
    'subject_or_default',
    'to_long_path',
    'normalize_long_path',
    'create_unique_directory',
    'unique_file_path',
    'delete_directory',
    'delete_files',
]
