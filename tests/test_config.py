"""Tests for settings validation and logging setup."""

import json
import logging
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from docpress.config import Settings
from docpress.exceptions import ConfigurationError, PresetNotFoundError
from docpress.logging_config import _JsonFormatter, setup_logging, tool_name_var


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("DOCPRESS_PANDOC_BIN", "/opt/pandoc")
        monkeypatch.setenv("DOCPRESS_CONVERSION_TIMEOUT", "120")

        settings = Settings()

        assert settings.pandoc_bin == "/opt/pandoc"
        assert settings.conversion_timeout == 120.0

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_log_format_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_format="xml")

    def test_project_root(self, tmp_path):
        assert Settings(project_root=tmp_path).get_project_root() == tmp_path.resolve()

    def test_filesystem_root_is_not_a_project(self):
        with pytest.raises(ConfigurationError):
            Settings(project_root=Path("/")).get_project_root()


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestLogging:
    def test_json_payload_includes_tool_and_extras(self):
        record = logging.LogRecord("docpress.presets", logging.INFO, __file__, 1, "loaded %s", ("lncs",), None)
        record.preset = "lncs"

        token = tool_name_var.set("docs_create")
        try:
            payload = json.loads(_JsonFormatter().format(record))
        finally:
            tool_name_var.reset(token)

        assert payload["message"] == "loaded lncs"
        assert payload["level"] == "INFO"
        assert payload["tool"] == "docs_create"
        assert payload["preset"] == "lncs"

    def test_setup_logging_writes_to_stderr(self, restore_root_logger):
        setup_logging("warning", "json")

        assert restore_root_logger.level == logging.WARNING
        (handler,) = restore_root_logger.handlers
        assert handler.stream is sys.stderr
        assert isinstance(handler.formatter, _JsonFormatter)

    def test_error_to_dict(self):
        error = PresetNotFoundError("ghost", ["lncs"])

        assert error.to_dict() == {
            "error": "PRESET_NOT_FOUND",
            "message": "Preset 'ghost' not found. Available presets: lncs",
            "details": {"preset": "ghost", "available": ["lncs"]},
        }
