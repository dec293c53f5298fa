"""Tests for the configuration schema."""

import pytest
from pydantic import ValidationError
from mailbundle.config import MailBundleConfig, ProcessingConfig


class TestProcessingConfig:
    """Tests for ProcessingConfig validation."""

    def test_defaults(self):
        """Test default values."""
        config = ProcessingConfig()

        assert config.delete_source is False
        assert config.fail_fast is False
        assert config.message_extensions == [".eml"]
        assert config.meta_suffix == ".eml.meta"
        assert config.untitled_label == "No Subject"
        assert config.max_name_length == 200
        assert config.zip_name_encoding is None

    def test_path_variables_expanded(self, tmp_path, monkeypatch):
        """Test that ${TEMP} and ${USER_HOME} are expanded."""
        monkeypatch.setattr("tempfile.gettempdir", lambda: str(tmp_path))

        config = ProcessingConfig(temp_root="${TEMP}/scratch", output_directory="${USER_HOME}/out")

        assert config.temp_root == f"{tmp_path}/scratch"
        assert "${" not in config.output_directory

    def test_default_paths_expanded(self, tmp_path, monkeypatch):
        """Test that the built-in path defaults are expanded, not kept literally."""
        monkeypatch.setattr("tempfile.gettempdir", lambda: str(tmp_path))
        monkeypatch.setattr(
            "mailbundle.common.config_utils.platformdirs.user_desktop_dir",
            lambda: str(tmp_path / "Desktop"),
        )

        config = ProcessingConfig()

        assert config.temp_root == f"{tmp_path}/mailbundle"
        assert config.output_directory == str(tmp_path / "Desktop")

    def test_extensions_normalized(self):
        """Test that extensions are lowercased and dotted."""
        config = ProcessingConfig(message_extensions=["EML", ".Msg"])
        assert config.message_extensions == [".eml", ".msg"]

    def test_single_extension_string(self):
        """Test that a single string becomes a one-element list."""
        assert ProcessingConfig(message_extensions="eml").message_extensions == [".eml"]

    def test_rejects_empty_extensions(self):
        """Test that at least one extension is required."""
        with pytest.raises(ValidationError):
            ProcessingConfig(message_extensions=[])

    @pytest.mark.parametrize("length", [0, 15, 201])
    def test_rejects_bad_name_length(self, length):
        """Test max_name_length bounds."""
        with pytest.raises(ValidationError):
            ProcessingConfig(max_name_length=length)

    def test_zip_name_encoding(self):
        """Test that known encodings are accepted and unknown ones rejected."""
        assert ProcessingConfig(zip_name_encoding="cp866").zip_name_encoding == "cp866"
        assert ProcessingConfig(zip_name_encoding="").zip_name_encoding is None

        with pytest.raises(ValidationError):
            ProcessingConfig(zip_name_encoding="no-such-codec")

    def test_rejects_unknown_field(self):
        """Test that unknown keys are rejected."""
        with pytest.raises(ValidationError):
            ProcessingConfig(workers=4)


class TestMailBundleConfig:
    """Tests for the root model."""

    def test_sections_default(self):
        """Test that both sections are populated by default."""
        config = MailBundleConfig()
        assert config.logging.level == "INFO"
        assert config.processing.fail_fast is False
        assert "${" not in config.processing.temp_root
        assert "${" not in config.processing.output_directory

    def test_from_nested_dict(self):
        """Test construction from a merged TOML dict."""
        config = MailBundleConfig(**{
            "logging": {"level": "warning"},
            "processing": {"fail_fast": True},
        })
        assert config.logging.level == "WARNING"
        assert config.processing.fail_fast is True
