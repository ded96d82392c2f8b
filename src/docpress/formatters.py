"""Format service results as markdown for LLM consumption."""

from typing import Any, Dict, List

from .documents import DocumentResult, DraftCreated
from .installer import InstallResult
from .presets import PresetInfo, PresetSummary
from .templates import ResolvedAsset, Scope

_SCOPE_HEADINGS = (
    (Scope.BUILTIN, "Built-in"),
    (Scope.USER, "User"),
    (Scope.PROJECT, "Project"),
)


def format_preset_list(presets: List[PresetSummary]) -> str:
    """Group presets by the scope that defines them."""
    if not presets:
        return "No presets available."

    lines = ["Available presets:\n"]
    for scope, heading in _SCOPE_HEADINGS:
        group = [p for p in presets if p.source == scope]
        if not group:
            continue
        lines.append(f"{heading}:")
        for p in group:
            lines.append(f"  - {p.name}: {p.description}" if p.description else f"  - {p.name}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_preset_info(info: PresetInfo) -> str:
    config = info.config
    lines = [f"# Preset: {config.name}\n"]
    if config.description:
        lines.append(f"**Description:** {config.description}  ")
    lines.append(f"**Source:** {info.source.value} (`{info.path}`)  ")
    if config.extends:
        lines.append(f"**Extends:** {config.extends}  ")
    if config.template:
        status = "installed" if info.template_available else "not installed"
        lines.append(f"**Template:** {config.template.path} ({status})  ")
    if config.pdf_engine:
        lines.append(f"**PDF engine:** {config.pdf_engine}  ")
    if config.citation and config.citation.csl_file:
        status = "installed" if info.csl_available else "not installed"
        lines.append(f"**CSL:** {config.citation.csl_file} ({status})  ")
    if info.available_logos:
        lines.append(f"**Logos:** {', '.join(info.available_logos)}  ")
    if config.required_fields:
        lines.append(f"**Required:** {', '.join(config.required_fields)}  ")
    if config.optional_fields:
        lines.append(f"**Optional:** {', '.join(config.optional_fields)}  ")
    if config.pandoc and config.pandoc.variables:
        lines.append("\n**Variables:**")
        for name, value in config.pandoc.variables.items():
            lines.append(f"- `{name}` = {value}")
    return "\n".join(lines)


def format_templates(templates: List[ResolvedAsset], csl_styles: List[ResolvedAsset]) -> str:
    lines = ["Templates:"]
    if not templates:
        lines.append("  (none - use docs_templates_install)")
    for t in templates:
        lines.append(f"  - {t.name} ({t.source.value})")

    lines.append("\nCSL Styles:")
    if not csl_styles:
        lines.append("  (none)")
    for s in csl_styles:
        lines.append(f"  - {s.name} ({s.source.value})")
    return "\n".join(lines)


def format_install_result(result: InstallResult) -> str:
    return result.message


def format_document_result(result: DocumentResult, verb: str = "Created") -> str:
    """One-line summary of a produced file, plus anything worth flagging."""
    lines = [f"{verb}: {result.output_path}"]
    if result.preset:
        lines.append(f"Preset: {result.preset}")
    for key, value in result.details.items():
        lines.append(f"{key.replace('_', ' ').capitalize()}: {value}")
    if result.missing_fields:
        lines.append(
            f"\nWarning: preset expects fields that were not provided: {', '.join(result.missing_fields)}"
        )
    return "\n".join(lines)


def format_latex_result(result: DocumentResult, latex_bin: str = "pdflatex") -> str:
    lines = [f"Generated LaTeX: {result.output_path}"]
    if result.preset:
        lines.append(f"Preset: {result.preset}")
    lines.append(f"\nTo compile manually:\n{latex_bin} {result.output_path.name}")
    return "\n".join(lines)


def format_draft_created(draft: DraftCreated) -> str:
    return "\n".join([
        f"Draft created: {draft.title}",
        "",
        f"Document ID: {draft.doc_id}",
        f"Draft path: {draft.path}",
        f"Preset: {draft.preset}",
        "",
        "Next steps:",
        f"1. Edit the draft: {draft.path}",
        f'2. Compile when ready: docs_compile doc_id="{draft.doc_id}"',
    ])


def format_draft_list(drafts: List[Dict[str, Any]]) -> str:
    if not drafts:
        return "No active drafts. Create one with docs_draft."

    lines = ["Active document drafts:", ""]
    for d in drafts:
        lines.append(d["doc_id"])
        lines.append(f"  Title: {d.get('title', '')}")
        lines.append(f"  Preset: {d.get('preset', '')}")
        lines.append(f"  Status: {d.get('status', '')}")
        lines.append(f"  Modified: {(d.get('last_modified') or '')[:10]}")
        lines.append(f"  Path: {d.get('path', '')}")
        lines.append("")
    return "\n".join(lines).rstrip()
