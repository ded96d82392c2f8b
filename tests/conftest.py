"""Shared fixtures for the docpress test suite.

Every test gets its own project / user / built-in scope directories under
``tmp_path`` so nothing touches the real ``~/.config/docpress`` or the
presets shipped with the package.
"""

import subprocess
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import yaml

from docpress.config import Settings
from docpress.presets import PresetManager
from docpress.templates import TemplateResolver

SCOPE_SUBDIRS = ("presets", "templates", "csl", "assets")


@pytest.fixture()
def scopes(tmp_path):
    """Empty scope skeletons: project/.docpress, user and builtin."""
    project = tmp_path / "project"
    user = tmp_path / "user"
    builtin = tmp_path / "builtin"
    for base in (project / ".docpress", user, builtin):
        for sub in SCOPE_SUBDIRS:
            (base / sub).mkdir(parents=True)
    return SimpleNamespace(
        project=project,
        project_dir=project / ".docpress",
        user=user,
        builtin=builtin,
    )


@pytest.fixture()
def settings(scopes):
    return Settings(
        project_root=scopes.project,
        user_config_dir=scopes.user,
        builtin_dir=scopes.builtin,
        pandoc_bin="pandoc",
        latex_bin="pdflatex",
        conversion_timeout=None,
        stdout_tail_lines=30,
    )


@pytest.fixture()
def resolver(settings):
    return TemplateResolver(settings=settings)


@pytest.fixture()
def manager(resolver):
    return PresetManager(resolver)


@pytest.fixture()
def write_preset():
    """Write ``<scope>/presets/<name>.yaml`` and return its path."""

    def _write(scope_dir: Path, name: str, data: dict, suffix: str = ".yaml") -> Path:
        path = scope_dir / "presets" / f"{name}{suffix}"
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path

    return _write


@pytest.fixture()
def write_file():
    """Create a file (and parents) with the given text."""

    def _write(path: Path, text: str = "") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    return _write


@pytest.fixture()
def mock_run():
    """Patch subprocess.run inside the builder; succeeds with empty output by default."""
    with patch("docpress.builder.subprocess.run") as run:
        run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
        yield run
