"""
Document workflows behind the ``docs_*`` tools.

``DocumentService`` owns one resolver, one preset manager (and its cache),
one installer and the project's draft registry. Every method either returns
a result object for ``formatters`` to render or raises a ``DocPressError``.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml

from .builder import (
    ConversionResult,
    PandocBuilder,
    compile_latex,
    compute_output_path,
    pandoc,
    validate_required_fields,
)
from .config import Settings, settings as default_settings
from .drafts import DraftInfo, DraftRegistry, validate_doc_id, write_authors_metadata
from .exceptions import (
    ConversionError,
    DraftNotFoundError,
    InvalidInputError,
    TemplateNotFoundError,
)
from .installer import InstallResult, TemplateInstaller
from .presets import PresetInfo, PresetManager, PresetSummary, ResolvedPreset
from .templates import ResolvedAsset, TemplateResolver

logger = logging.getLogger(__name__)

SCHOOL_REPORT_PRESET = "school-report"
LOGO_MODES = ("sit", "uofg", "both")
DEFAULT_TITLE_COLOR = "06386e"


@dataclass
class DocumentResult:
    """A file produced by one workflow."""

    output_path: Path
    preset: Optional[str] = None
    command: List[str] = field(default_factory=list)
    missing_fields: List[str] = field(default_factory=list)
    details: Dict[str, str] = field(default_factory=dict)


@dataclass
class DraftCreated:
    doc_id: str
    title: str
    preset: str
    path: Path


def read_front_matter(path: Path) -> Dict[str, Any]:
    """Parse the leading YAML block of a markdown file. Empty when absent or malformed."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return {}
    if not text.startswith("---"):
        return {}
    lines = text.splitlines()
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() in ("---", "..."):
            try:
                data = yaml.safe_load("\n".join(lines[1:i]))
            except yaml.YAMLError:
                return {}
            return data if isinstance(data, dict) else {}
    return {}


def _is_ieee(preset: ResolvedPreset, requested: str) -> bool:
    return "ieee" in preset.name or "ieee" in requested


class DocumentService:
    """Runs conversions and manages presets, templates and drafts for one project."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resolver: Optional[TemplateResolver] = None,
        presets: Optional[PresetManager] = None,
        installer: Optional[TemplateInstaller] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.resolver = resolver or TemplateResolver(settings=self.settings)
        self.presets = presets or PresetManager(self.resolver)
        self.installer = installer or TemplateInstaller(
            self.resolver, self.presets, settings=self.settings,
        )
        self._registry: Optional[DraftRegistry] = None

    @property
    def registry(self) -> DraftRegistry:
        # Built lazily so tools that never touch drafts work outside a project.
        if self._registry is None:
            self._registry = DraftRegistry(self.resolver.project_root)
        return self._registry

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _builder(self) -> PandocBuilder:
        return pandoc(self.settings)

    @staticmethod
    def _require_input(input_path: str) -> Path:
        path = Path(input_path).expanduser()
        if not path.is_file():
            raise InvalidInputError(f"Input file not found: {input_path}", field="input_path")
        return path

    @staticmethod
    def _require_template(preset: ResolvedPreset) -> None:
        if preset.template and preset.template.path and not preset.resolved_template_path:
            raise TemplateNotFoundError(preset.template.path)

    @staticmethod
    def _check_result(result: ConversionResult, label: str = "Conversion") -> ConversionResult:
        if not result.success:
            raise ConversionError(f"{label} failed:\n{result.error}", command=result.command)
        return result

    def _run(self, builder: PandocBuilder, cwd: Optional[Path] = None) -> ConversionResult:
        logger.info("Running pandoc", extra={"command": str(builder)})
        return self._check_result(builder.execute(cwd=cwd))

    def _logo_path(self, filename: str) -> str:
        asset = self.resolver.resolve_asset(filename)
        if asset:
            return str(asset.path)
        return str(self.resolver.get_user_config_dir() / "assets" / filename)

    def _apply_logo_mode(
        self, builder: PandocBuilder, logo: Optional[str], strict: bool = True,
    ) -> None:
        """Add the school-report logo variables for sit, uofg or both.

        With ``strict=False`` other keys are left to the preset's own ``logos`` map.
        """
        if not logo:
            return
        if logo not in LOGO_MODES:
            if not strict:
                return
            raise InvalidInputError(
                f"Unknown logo option '{logo}'. Options: {', '.join(LOGO_MODES)}", field="logo",
            )
        builder.variable("logo-mode", "both" if logo == "both" else "single")
        if logo in ("sit", "both"):
            builder.variable("sit-logo", self._logo_path("sit-logo.png"))
        if logo in ("uofg", "both"):
            builder.variable("uofg-logo", self._logo_path("uofg-logo.png"))

    @staticmethod
    def _apply_title_page(
        builder: PandocBuilder,
        course: Optional[str] = None,
        project_title: Optional[str] = None,
        group: Optional[str] = None,
        version: Optional[str] = None,
        project_topic_id: Optional[str] = None,
    ) -> None:
        for name, value in (
            ("course", course),
            ("project-title", project_title),
            ("group", group),
            ("version", version),
            ("project-topic-id", project_topic_id),
        ):
            if value:
                builder.variable(name, value)

    def _missing_fields(
        self, preset: ResolvedPreset, input_path: Path, metadata: Dict[str, Any],
    ) -> List[str]:
        if not preset.required_fields:
            return []
        combined = {**read_front_matter(input_path), **{k: v for k, v in metadata.items() if v}}
        _, missing = validate_required_fields(combined, preset.required_fields)
        if missing:
            logger.warning(
                "Preset '%s' expects fields that are not set: %s", preset.name, ", ".join(missing),
            )
        return missing

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def convert(
        self,
        input_path: str,
        output_format: str,
        from_format: Optional[str] = None,
        output_dir: Optional[str] = None,
    ) -> DocumentResult:
        source = self._require_input(input_path)
        output_path = compute_output_path(source, output_dir, output_format)
        builder = self._builder().input(source).output(output_path)
        if from_format:
            builder.from_format(from_format)
        result = self._check_result(builder.execute(), "Pandoc")
        return DocumentResult(output_path=output_path, command=result.command)

    def compile_latex(self, file_path: str, output_dir: Optional[str] = None) -> DocumentResult:
        tex = Path(file_path)
        result = self._check_result(
            compile_latex(tex, output_dir, settings=self.settings), "Compilation",
        )
        target_dir = Path(output_dir) if output_dir else tex.parent
        return DocumentResult(output_path=target_dir / f"{tex.stem}.pdf", command=result.command)

    def create_document(
        self,
        input_path: str,
        preset: str,
        output_dir: Optional[str] = None,
        logo: Optional[str] = None,
        title: Optional[str] = None,
        author: Optional[str] = None,
        date: Optional[str] = None,
        subtitle: Optional[str] = None,
        abstract: Optional[str] = None,
        keywords: Optional[str] = None,
        bibliography: Optional[str] = None,
    ) -> DocumentResult:
        """Render a markdown file to PDF with a preset."""
        source = self._require_input(input_path)
        resolved = self.presets.load_preset(preset, logo)
        self._require_template(resolved)

        metadata = {
            "title": title, "author": author, "date": date,
            "subtitle": subtitle, "abstract": abstract, "keywords": keywords,
        }
        missing = self._missing_fields(resolved, source, metadata)

        output_path = compute_output_path(source, output_dir, "pdf")
        builder = (
            self._builder()
            .input(source.resolve())
            .output(output_path.resolve())
            .apply_preset(resolved)
            .listings()
            .apply_metadata(**metadata)
        )
        if bibliography:
            builder.bibliography(Path(bibliography).resolve())

        # LaTeX looks for IEEEtran.cls in the working directory.
        cwd = None
        if _is_ieee(resolved, preset) and resolved.resolved_template_path:
            cwd = Path(resolved.resolved_template_path).parent

        result = self._run(builder, cwd=cwd)
        return DocumentResult(
            output_path=output_path,
            preset=resolved.name,
            command=result.command,
            missing_fields=missing,
        )

    def create_ieee_paper(
        self,
        input_path: str,
        title: str,
        author: str,
        abstract: str,
        format: Literal["conference", "journal"] = "conference",
        keywords: Optional[str] = None,
        bibliography: Optional[str] = None,
        output_dir: Optional[str] = None,
    ) -> DocumentResult:
        source = self._require_input(input_path)
        preset_name = "ieee-journal" if format == "journal" else "ieee-conference"
        resolved = self.presets.load_preset(preset_name)
        if not resolved.resolved_template_path:
            raise TemplateNotFoundError(
                resolved.template.path if resolved.template else "ieee",
                hint="Run: docs_templates_install ieee",
            )

        output_path = compute_output_path(source, output_dir, "pdf")
        builder = (
            self._builder()
            .input(source.resolve())
            .output(output_path.resolve())
            .apply_preset(resolved)
            .apply_metadata(title=title, author=author, abstract=abstract, keywords=keywords)
        )
        if bibliography:
            builder.bibliography(Path(bibliography).resolve())

        result = self._run(builder, cwd=Path(resolved.resolved_template_path).parent)
        return DocumentResult(
            output_path=output_path,
            preset=resolved.name,
            command=result.command,
            details={"format": format},
        )

    def generate_latex(
        self,
        input_path: str,
        preset: str,
        output_path: Optional[str] = None,
        logo: Optional[str] = None,
        title: Optional[str] = None,
        author: Optional[str] = None,
        date: Optional[str] = None,
        subtitle: Optional[str] = None,
        abstract: Optional[str] = None,
        keywords: Optional[str] = None,
        bibliography: Optional[str] = None,
    ) -> DocumentResult:
        """Like ``create_document`` but writes LaTeX source instead of a PDF."""
        source = self._require_input(input_path)
        resolved = self.presets.load_preset(preset, logo)
        self._require_template(resolved)

        target = Path(output_path) if output_path else compute_output_path(source, None, "tex")
        if target.suffix != ".tex":
            raise InvalidInputError("Output path must end in .tex", field="output_path")

        builder = (
            self._builder()
            .input(source)
            .output(target)
            .apply_preset(resolved)
            .apply_metadata(
                title=title, author=author, date=date,
                subtitle=subtitle, abstract=abstract, keywords=keywords,
            )
        )
        if bibliography:
            builder.bibliography(bibliography)

        result = self._run(builder)
        return DocumentResult(output_path=target, preset=resolved.name, command=result.command)

    def create_school_report(
        self,
        input_path: str,
        output_dir: Optional[str] = None,
        logo: Optional[str] = None,
        margin: Optional[str] = None,
        top_margin: Optional[str] = None,
        bottom_margin: Optional[str] = None,
        left_margin: Optional[str] = None,
        right_margin: Optional[str] = None,
        title: Optional[str] = None,
        course: Optional[str] = None,
        project_title: Optional[str] = None,
        group: Optional[str] = None,
        author: Optional[str] = None,
        authors: Optional[str] = None,
        date: Optional[str] = None,
        version: Optional[str] = None,
        project_topic_id: Optional[str] = None,
        include_toc: bool = True,
    ) -> DocumentResult:
        """
        Render a SIT/UofG school report.

        Uses the school-report template and engine directly rather than the
        whole preset, so per-call margins and logo choices are the only ones
        applied.
        """
        source = self._require_input(input_path)
        resolved = self.presets.load_preset(SCHOOL_REPORT_PRESET)
        if not resolved.resolved_template_path:
            raise TemplateNotFoundError(
                resolved.template.path if resolved.template else SCHOOL_REPORT_PRESET,
            )

        output_path = compute_output_path(source, output_dir, "pdf")
        builder = (
            self._builder()
            .input(source)
            .output(output_path)
            .template(resolved.resolved_template_path)
            .pdf_engine(resolved.pdf_engine or "xelatex")
            .listings()
        )
        if resolved.pandoc and resolved.pandoc.from_format:
            builder.from_format(resolved.pandoc.from_format)

        if margin:
            builder.variable("margin", margin)
        else:
            for name, value in (
                ("top-margin", top_margin),
                ("bottom-margin", bottom_margin),
                ("left-margin", left_margin),
                ("right-margin", right_margin),
            ):
                if value:
                    builder.variable(name, value)

        self._apply_logo_mode(builder, logo)

        builder.variable("titlepage", True)
        if title:
            builder.variable("title", title)
        if date:
            builder.variable("date", date)
        self._apply_title_page(builder, course, project_title, group, version, project_topic_id)

        authors_file: Optional[Path] = None
        if authors:
            authors_file = write_authors_metadata(authors, output_path.parent)
            builder.metadata_file(authors_file)
        elif author:
            builder.variable("author", author)

        if include_toc:
            builder.toc().variable("toc-own-page", True)

        builder.variable("colorlinks", True)
        builder.variable("linkcolor", "blue")
        builder.variable("numbersections", True)

        try:
            result = self._run(builder)
        finally:
            if authors_file is not None:
                authors_file.unlink(missing_ok=True)

        return DocumentResult(
            output_path=output_path,
            preset=SCHOOL_REPORT_PRESET,
            command=result.command,
            details={"logo": logo or "none", "margins": margin or "custom/default"},
        )

    def create_styled_pdf(
        self,
        input_path: str,
        template: str = "eisvogel",
        title: Optional[str] = None,
        author: Optional[str] = None,
        date: Optional[str] = None,
        title_color: Optional[str] = None,
        include_toc: bool = True,
        output_dir: Optional[str] = None,
    ) -> DocumentResult:
        source = self._require_input(input_path)
        tpl = self.resolver.resolve_template(template)
        if tpl is None:
            raise TemplateNotFoundError(template, hint=f"Run: docs_templates_install {template}")

        output_path = compute_output_path(source, output_dir, "pdf")
        builder = (
            self._builder()
            .input(source)
            .output(output_path)
            .from_format("markdown-smart")
            .template(tpl.path)
            .pdf_engine("xelatex")
            .listings()
            .variable("titlepage", True)
            .variable("titlepage-color", title_color or DEFAULT_TITLE_COLOR)
            .variable("titlepage-text-color", "FFFFFF")
            .variable("colorlinks", True)
        )
        if include_toc:
            builder.toc().variable("toc-own-page", True)
        builder.apply_metadata(title=title, author=author, date=date)

        result = self._run(builder)
        return DocumentResult(output_path=output_path, preset=template, command=result.command)

    # ------------------------------------------------------------------
    # Presets and templates
    # ------------------------------------------------------------------

    def list_presets(self) -> List[PresetSummary]:
        return self.presets.list_presets()

    def show_preset(self, preset_name: str) -> PresetInfo:
        return self.presets.get_preset_info(preset_name)

    def create_preset(
        self,
        name: str,
        config: Dict[str, Any],
        location: Literal["project", "user"] = "user",
    ) -> Path:
        return self.presets.create_preset(name, config, location)

    def list_templates(self) -> tuple[List[ResolvedAsset], List[ResolvedAsset]]:
        """Installed templates and CSL styles."""
        return self.resolver.list_templates(), self.resolver.list_csl_styles()

    def install_template(self, source: str) -> InstallResult:
        return self.installer.install(source)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def draft(
        self,
        title: str,
        preset: str,
        initial_content: Optional[str] = None,
        source_markdown: Optional[str] = None,
    ) -> DraftCreated:
        doc_id, path = self.registry.create_draft(title, preset, initial_content, source_markdown)
        return DraftCreated(doc_id=doc_id, title=title, preset=preset, path=path)

    def list_drafts(self) -> List[Dict[str, Any]]:
        return self.registry.list_drafts()

    def compile_draft(
        self,
        doc_id: str,
        output_path: Optional[str] = None,
        author: Optional[str] = None,
        date: Optional[str] = None,
        subtitle: Optional[str] = None,
        abstract: Optional[str] = None,
        keywords: Optional[str] = None,
        bibliography: Optional[str] = None,
        logo: Optional[str] = None,
        course: Optional[str] = None,
        project_title: Optional[str] = None,
        group: Optional[str] = None,
        authors: Optional[str] = None,
        version: Optional[str] = None,
        project_topic_id: Optional[str] = None,
    ) -> DocumentResult:
        """
        Compile a draft to PDF with the preset it was created with.

        The draft is marked ``compiled`` only after pandoc succeeds.
        """
        validate_doc_id(doc_id)
        info: DraftInfo = self.registry.get_draft(doc_id)
        draft_dir = self.registry.draft_dir(doc_id)
        draft_path = self.registry.draft_path(doc_id)
        if not draft_path.exists():
            raise DraftNotFoundError(doc_id, f"Draft file missing: {draft_path}")

        target = Path(output_path) if output_path else draft_dir / f"{doc_id}.pdf"

        resolved = self.presets.load_preset(info.preset, logo)
        self._require_template(resolved)

        builder = (
            self._builder()
            .input(draft_path)
            .output(target)
            .apply_preset(resolved)
            .listings()
            .apply_metadata(
                author=author, date=date, subtitle=subtitle,
                abstract=abstract, keywords=keywords,
            )
        )
        if bibliography:
            builder.bibliography(bibliography)

        self._apply_logo_mode(builder, logo, strict=False)
        self._apply_title_page(builder, course, project_title, group, version, project_topic_id)

        authors_file: Optional[Path] = None
        if authors:
            authors_file = write_authors_metadata(authors, draft_dir)
            builder.metadata_file(authors_file)

        try:
            result = self._run(builder)
        finally:
            if authors_file is not None:
                authors_file.unlink(missing_ok=True)

        self.registry.mark_compiled(doc_id)
        return DocumentResult(
            output_path=target,
            preset=info.preset,
            command=result.command,
            details={"title": info.title},
        )

    def delete_draft(self, doc_id: str) -> None:
        self.registry.delete_draft(doc_id)
