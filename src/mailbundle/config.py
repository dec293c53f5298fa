"""Configuration schema for mailbundle."""

import codecs
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mailbundle.common import LoggingConfig, expand_path_variables
from mailbundle.common.path_utils import MAX_NAME_LENGTH


class ProcessingConfig(BaseModel):
    """Configuration for message processing jobs."""

    model_config = ConfigDict(extra='forbid')

    temp_root: str = Field(
        default="${TEMP}/mailbundle",
        validate_default=True,
        description="Directory holding per-job scratch directories"
    )
    output_directory: str = Field(
        default="${USER_DESKTOP}",
        validate_default=True,
        description="Directory receiving output archives when no explicit path is given"
    )
    delete_source: bool = Field(
        default=False,
        description="Delete the source file after a successful job"
    )
    fail_fast: bool = Field(
        default=False,
        description="Abort the job on the first message that fails"
    )
    message_extensions: List[str] = Field(
        default_factory=lambda: [".eml"],
        min_length=1,
        description="File extensions treated as message files"
    )
    meta_suffix: str = Field(
        default=".eml.meta",
        description="Suffix of message metadata sidecar files"
    )
    untitled_label: str = Field(
        default="No Subject",
        min_length=1,
        description="Subject prefix for messages without a subject"
    )
    max_name_length: int = Field(
        default=MAX_NAME_LENGTH,
        ge=16,
        le=MAX_NAME_LENGTH,
        description="Maximum length of generated file and folder names"
    )
    zip_name_encoding: Optional[str] = Field(
        default=None,
        description="Encoding of ZIP entry names without the UTF-8 flag (e.g. cp866)"
    )

    @field_validator('temp_root', 'output_directory', mode='before')
    @classmethod
    def expand_paths(cls, v: str) -> str:
        """Expand ${VAR} in paths."""
        return expand_path_variables(v)

    @field_validator('message_extensions', mode='before')
    @classmethod
    def normalize_extensions(cls, v):
        """Accept "eml" or ".EML" and store ".eml"."""
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list):
            return [
                ext.lower() if ext.startswith('.') else f".{ext.lower()}"
                for ext in (str(e).strip() for e in v)
                if ext
            ]
        return v

    @field_validator('zip_name_encoding')
    @classmethod
    def validate_encoding(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {v}") from e
        return v


class MailBundleConfig(BaseModel):
    """Root configuration for mailbundle."""

    model_config = ConfigDict(extra='forbid')

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
