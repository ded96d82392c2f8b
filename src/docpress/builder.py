"""Fluent builder for pandoc commands, plus the process runner behind it.

The builder only accumulates arguments; nothing touches the filesystem until
``execute()`` spawns the process. ``apply_preset`` always emits its calls in
the same order (input format, template + resource path, PDF engine, CSL,
style variables, preset variables, extra args, logo) so identical presets
always produce identical command lines.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from .config import Settings, settings as default_settings
from .exceptions import InvalidInputError
from .presets import PdfEngine, ResolvedPreset, VariableValue

logger = logging.getLogger(__name__)

# Logo width (px) passed alongside a preset logo.
LOGO_WIDTH = "150"


@dataclass
class ConversionResult:
    """Outcome of one external process run."""

    success: bool
    command: list[str] = field(default_factory=list)
    output: str = ""                # captured stdout on success
    error: Optional[str] = None     # failure reason on failure


def _format_value(value: VariableValue) -> str:
    # Booleans are read by pandoc templates as YAML-ish literals.
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def run_process(
    cmd: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
    settings: Optional[Settings] = None,
) -> ConversionResult:
    """Run one external process to completion and capture its output.

    On a non-zero exit the failure reason is stderr, or the last
    ``settings.stdout_tail_lines`` lines of stdout when stderr is empty
    (LaTeX engines report errors on stdout).
    """
    cfg = settings or default_settings
    command = list(cmd)
    logger.debug("Running: %s", shlex.join(command), extra={"cwd": str(cwd) if cwd else None})

    try:
        result = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=cfg.conversion_timeout,
        )
    except FileNotFoundError:
        return ConversionResult(
            success=False,
            command=command,
            error=f"Executable not found: {command[0]}",
        )
    except subprocess.TimeoutExpired:
        return ConversionResult(
            success=False,
            command=command,
            error=f"{command[0]} timed out after {cfg.conversion_timeout:g}s",
        )

    if result.returncode != 0:
        # Whitespace-only stderr counts as empty so the stdout tail is reported.
        stderr = (result.stderr or "").strip()
        if stderr:
            reason = result.stderr
        else:
            reason = "\n".join((result.stdout or "").split("\n")[-cfg.stdout_tail_lines:])
        logger.warning("%s exited with %d", command[0], result.returncode)
        return ConversionResult(success=False, command=command, error=reason)

    return ConversionResult(success=True, command=command, output=result.stdout or "")


class PandocBuilder:
    """Fluent builder for pandoc commands."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or default_settings
        self._args: list[str] = []
        self._input_file: str = ""
        self._output_file: str = ""

    # -- paths and formats ---------------------------------------------

    def input(self, path: Union[str, Path]) -> PandocBuilder:
        self._input_file = str(path)
        return self

    def output(self, path: Union[str, Path]) -> PandocBuilder:
        self._output_file = str(path)
        return self

    def from_format(self, fmt: str) -> PandocBuilder:
        self._args += ["-f", fmt]
        return self

    def to_format(self, fmt: str) -> PandocBuilder:
        self._args += ["-t", fmt]
        return self

    # -- rendering options ---------------------------------------------

    def template(self, path: Union[str, Path]) -> PandocBuilder:
        self._args.append(f"--template={path}")
        return self

    def pdf_engine(self, engine: PdfEngine) -> PandocBuilder:
        self._args.append(f"--pdf-engine={engine}")
        return self

    def variable(self, name: str, value: VariableValue) -> PandocBuilder:
        self._args += ["-V", f"{name}={_format_value(value)}"]
        return self

    def variables(self, values: Mapping[str, VariableValue]) -> PandocBuilder:
        for name, value in values.items():
            self.variable(name, value)
        return self

    def bibliography(self, path: Union[str, Path]) -> PandocBuilder:
        """Add a bibliography file and turn on citation processing."""
        self._args += [f"--bibliography={path}", "--citeproc"]
        return self

    def csl(self, path: Union[str, Path]) -> PandocBuilder:
        self._args.append(f"--csl={path}")
        return self

    def toc(self) -> PandocBuilder:
        self._args.append("--toc")
        return self

    def number_sections(self) -> PandocBuilder:
        self._args.append("--number-sections")
        return self

    def listings(self) -> PandocBuilder:
        self._args.append("--listings")
        return self

    def standalone(self) -> PandocBuilder:
        self._args.append("-s")
        return self

    def metadata(self, key: str, value: str) -> PandocBuilder:
        self._args += ["-M", f"{key}={value}"]
        return self

    def metadata_file(self, path: Union[str, Path]) -> PandocBuilder:
        self._args.append(f"--metadata-file={path}")
        return self

    def resource_path(self, path: Union[str, Path]) -> PandocBuilder:
        """Where pandoc/LaTeX look for auxiliary files such as .cls files."""
        self._args.append(f"--resource-path={path}")
        return self

    def arg(self, value: str) -> PandocBuilder:
        self._args.append(value)
        return self

    def raw_args(self, values: Iterable[str]) -> PandocBuilder:
        self._args.extend(values)
        return self

    # -- composite -----------------------------------------------------

    def apply_preset(self, preset: ResolvedPreset) -> PandocBuilder:
        """Translate a resolved preset into builder calls, in a fixed order."""
        if preset.pandoc and preset.pandoc.from_format:
            self.from_format(preset.pandoc.from_format)

        if preset.resolved_template_path:
            self.template(preset.resolved_template_path)
            template_dir = Path(preset.resolved_template_path).parent
            if str(template_dir) not in ("", "."):
                self.resource_path(template_dir)

        if preset.pdf_engine:
            self.pdf_engine(preset.pdf_engine)

        if preset.resolved_csl_path:
            self.csl(preset.resolved_csl_path)

        style = preset.style
        if style:
            if style.titlepage is not None:
                self.variable("titlepage", style.titlepage)
            if style.titlepage_color:
                self.variable("titlepage-color", style.titlepage_color)
            if style.text_color:
                self.variable("titlepage-text-color", style.text_color)
                self.variable("titlepage-rule-color", style.text_color)
            if style.toc:
                self.toc()
            if style.toc_own_page:
                self.variable("toc-own-page", True)
            if style.number_sections:
                self.number_sections()
            if style.colorlinks is not None:
                self.variable("colorlinks", style.colorlinks)
            if style.linkcolor:
                self.variable("linkcolor", style.linkcolor)

        if preset.pandoc and preset.pandoc.variables:
            self.variables(preset.pandoc.variables)

        if preset.pandoc and preset.pandoc.extra_args:
            self.raw_args(preset.pandoc.extra_args)

        if preset.resolved_logo_path:
            self.variable("logo", preset.resolved_logo_path)
            self.variable("logo-width", LOGO_WIDTH)

        return self

    def apply_metadata(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        date: Optional[str] = None,
        subtitle: Optional[str] = None,
        abstract: Optional[str] = None,
        keywords: Optional[Union[str, Sequence[str]]] = None,
        subject: Optional[str] = None,
        course_code: Optional[str] = None,
    ) -> PandocBuilder:
        """Per-call document metadata, passed as template variables. Empty values are skipped."""
        for name, value in (
            ("title", title),
            ("author", author),
            ("date", date),
            ("subtitle", subtitle),
            ("abstract", abstract),
            ("subject", subject),
            ("course_code", course_code),
        ):
            if value:
                self.variable(name, value)

        if keywords:
            if not isinstance(keywords, str):
                keywords = ", ".join(keywords)
            self.variable("keywords", keywords)

        return self

    # -- output --------------------------------------------------------

    def build(self) -> list[str]:
        """Build the command array."""
        cmd = [self._settings.pandoc_bin, *self._args]
        if self._input_file:
            cmd.append(self._input_file)
        if self._output_file:
            cmd += ["-o", self._output_file]
        return cmd

    def execute(self, cwd: Optional[Union[str, Path]] = None) -> ConversionResult:
        """Run pandoc. ``cwd`` lets LaTeX find class files next to a template."""
        return run_process(self.build(), cwd=cwd, settings=self._settings)

    def __str__(self) -> str:
        return shlex.join(self.build())


def pandoc(settings: Optional[Settings] = None) -> PandocBuilder:
    """Create a new pandoc builder."""
    return PandocBuilder(settings)


def compile_latex(
    file_path: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    settings: Optional[Settings] = None,
) -> ConversionResult:
    """Compile a .tex file with the configured LaTeX compiler."""
    cfg = settings or default_settings
    tex = Path(file_path)
    if tex.suffix != ".tex":
        raise InvalidInputError("Input file must be a .tex file", field="file_path")
    target_dir = Path(output_dir) if output_dir else tex.parent
    cmd = [
        cfg.latex_bin,
        "-output-directory", str(target_dir),
        "-interaction=nonstopmode",
        str(tex),
    ]
    return run_process(cmd, settings=cfg)


def compute_output_path(
    input_path: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    output_format: str = "pdf",
) -> Path:
    """Same stem as the input, in ``output_dir`` or next to the input."""
    source = Path(input_path)
    stem = source.stem or "output"
    target_dir = Path(output_dir) if output_dir else source.parent
    return target_dir / f"{stem}.{output_format}"


def validate_required_fields(
    metadata: Mapping[str, Any],
    required_fields: Iterable[str],
) -> tuple[bool, list[str]]:
    """Check that every required field has a truthy value.

    Returns:
        (valid, missing field names)
    """
    missing = [name for name in required_fields if not metadata.get(name)]
    return not missing, missing
