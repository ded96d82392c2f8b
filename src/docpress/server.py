"""docpress MCP Server - build styled documents with pandoc from AI editors.

Exposes preset, template, conversion and draft tools over stdio transport
for use with Claude Code, Cursor, Codex, or any MCP-compatible client.
Logs go to stderr; stdout belongs to the transport.
"""

import functools
import logging
from typing import Any, Callable, Literal, Optional

from mcp.server.fastmcp import FastMCP

from .config import settings
from .documents import DocumentService
from .exceptions import DocPressError
from .formatters import (
    format_document_result,
    format_draft_created,
    format_draft_list,
    format_install_result,
    format_latex_result,
    format_preset_info,
    format_preset_list,
    format_templates,
)
from .logging_config import setup_logging, tool_name_var

logger = logging.getLogger(__name__)

mcp = FastMCP("docpress")
service = DocumentService()


def _tool_errors(action: str) -> Callable:
    """Run a tool with its name in the log context; report DocPressError as text."""

    def decorator(fn: Callable[..., str]) -> Callable[..., str]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> str:
            token = tool_name_var.set(fn.__name__)
            try:
                return fn(*args, **kwargs)
            except DocPressError as e:
                logger.warning(
                    "Tool failed: %s", e.message,
                    extra={"error_code": e.error_code.value, "details": e.details},
                )
                return f"Error {action}: {e}"
            finally:
                tool_name_var.reset(token)

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


@mcp.tool()
@_tool_errors("converting document")
def docs_convert(
    input_path: str,
    output_format: Literal["pdf", "docx", "odt", "markdown", "html", "latex"],
    from_format: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> str:
    """Convert documents between formats using pandoc.

    Args:
        input_path: Absolute path to the input file
        output_format: Target format
        from_format: Source format (auto-detected if omitted)
        output_dir: Directory to save output
    """
    result = service.convert(input_path, output_format, from_format, output_dir)
    return f"Converted {input_path} to {result.output_path}"


@mcp.tool()
@_tool_errors("compiling LaTeX")
def docs_compile_latex(file_path: str, output_dir: Optional[str] = None) -> str:
    """Compile LaTeX files to PDF.

    Args:
        file_path: Absolute path to the .tex file
        output_dir: Directory to save the output PDF
    """
    service.compile_latex(file_path, output_dir)
    return f"Compiled {file_path} to PDF."


@mcp.tool()
@_tool_errors("creating document")
def docs_create(
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
) -> str:
    """Create a PDF from markdown using a preset. Use docs_presets_list to see options.

    Args:
        input_path: Path to Markdown file
        preset: Preset name
        output_dir: Output directory (defaults to the input's directory)
        logo: Logo option declared by the preset (e.g. sit, uofg, both)
        bibliography: Path to .bib file
    """
    result = service.create_document(
        input_path, preset, output_dir, logo,
        title=title, author=author, date=date, subtitle=subtitle,
        abstract=abstract, keywords=keywords, bibliography=bibliography,
    )
    return format_document_result(result)


@mcp.tool()
@_tool_errors("creating IEEE paper")
def docs_create_ieee_paper(
    input_path: str,
    title: str,
    author: str,
    abstract: str,
    format: Literal["conference", "journal"] = "conference",
    keywords: Optional[str] = None,
    bibliography: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> str:
    """Create an IEEE paper (two-column).

    Requires the IEEE template: run docs_templates_install with source "ieee" first.
    """
    result = service.create_ieee_paper(
        input_path, title, author, abstract,
        format=format, keywords=keywords, bibliography=bibliography, output_dir=output_dir,
    )
    return format_document_result(result, verb=f"Created IEEE {format} paper")


@mcp.tool()
@_tool_errors("generating LaTeX")
def docs_generate_latex(
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
) -> str:
    """Generate LaTeX source from markdown using a preset.

    Outputs a .tex file instead of a PDF, for manual editing or custom compilation.

    Args:
        input_path: Path to Markdown file
        preset: Preset name (use docs_presets_list to see options)
        output_path: Output path for the .tex file (defaults to same name as input)
    """
    result = service.generate_latex(
        input_path, preset, output_path, logo,
        title=title, author=author, date=date, subtitle=subtitle,
        abstract=abstract, keywords=keywords, bibliography=bibliography,
    )
    return format_latex_result(result, settings.latex_bin)


@mcp.tool()
@_tool_errors("creating school report")
def docs_create_school_report(
    input_path: str,
    output_dir: Optional[str] = None,
    logo: Optional[Literal["sit", "uofg", "both"]] = None,
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
) -> str:
    """Create a SIT/UofG school report with logo options and adjustable margins.

    Args:
        input_path: Path to Markdown file
        logo: sit (top-left), uofg (top-left), both (left+right)
        margin: Uniform margin (e.g. '2.5cm'); overrides the per-side margins
        course: Course/module title
        group: Group name/number
        author: Single author name, used when authors is not given
        authors: JSON array of student objects: [{name, sit_id, glasgow_id}, ...]
        version: Document version (e.g. '1.1')
        project_topic_id: Project topic ID (e.g. 'N')
        include_toc: Include table of contents (default: true)
    """
    result = service.create_school_report(
        input_path,
        output_dir=output_dir,
        logo=logo,
        margin=margin,
        top_margin=top_margin,
        bottom_margin=bottom_margin,
        left_margin=left_margin,
        right_margin=right_margin,
        title=title,
        course=course,
        project_title=project_title,
        group=group,
        author=author,
        authors=authors,
        date=date,
        version=version,
        project_topic_id=project_topic_id,
        include_toc=include_toc,
    )
    return format_document_result(result, verb="Created school report")


@mcp.tool()
@_tool_errors("creating styled PDF")
def docs_create_styled_pdf(
    input_path: str,
    template: str = "eisvogel",
    title: Optional[str] = None,
    author: Optional[str] = None,
    date: Optional[str] = None,
    title_color: Optional[str] = None,
    include_toc: bool = True,
    output_dir: Optional[str] = None,
) -> str:
    """Create a styled PDF with a coloured title page and TOC.

    Args:
        template: Template name (default: eisvogel)
        title_color: Hex color without '#' (default: 06386e)
    """
    result = service.create_styled_pdf(
        input_path, template, title, author, date, title_color, include_toc, output_dir,
    )
    return format_document_result(result)


# ---------------------------------------------------------------------------
# Presets and templates
# ---------------------------------------------------------------------------


@mcp.tool()
@_tool_errors("listing presets")
def docs_presets_list() -> str:
    """List all available document presets, grouped by where they are defined."""
    return format_preset_list(service.list_presets())


@mcp.tool()
@_tool_errors("showing preset")
def docs_presets_show(preset_name: str) -> str:
    """Show the configuration of a preset with inheritance applied.

    Args:
        preset_name: Preset name
    """
    return format_preset_info(service.show_preset(preset_name))


@mcp.tool()
@_tool_errors("creating preset")
def docs_presets_create(
    name: str,
    description: Optional[str] = None,
    extends: Optional[str] = None,
    template: Optional[str] = None,
    pdf_engine: Optional[Literal["xelatex", "pdflatex", "lualatex"]] = None,
    csl_file: Optional[str] = None,
    from_format: Optional[str] = None,
    variables: Optional[dict[str, Any]] = None,
    extra_args: Optional[list[str]] = None,
    location: Literal["project", "user"] = "user",
) -> str:
    """Create a preset in the project or user scope.

    Args:
        name: Preset name; saved as <name>.yaml
        extends: Parent preset to inherit from
        template: Template path relative to a templates/ directory
        csl_file: CSL style file name
        from_format: Pandoc input format (e.g. markdown+smart)
        variables: Pandoc template variables
        extra_args: Extra raw pandoc arguments
        location: "project" (.docpress/presets) or "user" (~/.config/docpress/presets)
    """
    config: dict[str, Any] = {}
    if description:
        config["description"] = description
    if extends:
        config["extends"] = extends
    if template:
        config["template"] = {"path": template}
    if pdf_engine:
        config["pdf_engine"] = pdf_engine
    if csl_file:
        config["citation"] = {"csl_file": csl_file}
    pandoc_section: dict[str, Any] = {}
    if from_format:
        pandoc_section["from"] = from_format
    if variables:
        pandoc_section["variables"] = variables
    if extra_args:
        pandoc_section["extra_args"] = extra_args
    if pandoc_section:
        config["pandoc"] = pandoc_section

    path = service.create_preset(name, config, location)
    return f"Created preset '{name}' at {path}"


@mcp.tool()
@_tool_errors("listing templates")
def docs_templates_list() -> str:
    """List installed LaTeX templates and CSL styles."""
    templates, csl_styles = service.list_templates()
    return format_templates(templates, csl_styles)


@mcp.tool()
@_tool_errors("installing template")
def docs_templates_install(
    source: Literal["eisvogel", "ieee", "csl-ieee", "csl-apa", "csl-acm"],
) -> str:
    """Install a template or CSL style into the user config directory.

    Args:
        source: eisvogel, ieee, csl-ieee, csl-apa or csl-acm
    """
    return format_install_result(service.install_template(source))


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


@mcp.tool()
@_tool_errors("creating draft")
def docs_draft(
    title: str,
    preset: str,
    initial_content: Optional[str] = None,
    source_markdown: Optional[str] = None,
) -> str:
    """Create a document draft with a unique ID for iterative editing.

    Generates a project-local markdown file that can be edited and compiled
    multiple times.

    Args:
        title: Document title
        preset: Preset name (use docs_presets_list to see options)
        initial_content: Initial markdown content. If not provided, creates an empty draft.
        source_markdown: Path to existing markdown file to use as initial content
    """
    return format_draft_created(service.draft(title, preset, initial_content, source_markdown))


@mcp.tool()
@_tool_errors("listing drafts")
def docs_list_drafts() -> str:
    """List all active document drafts in the current project."""
    return format_draft_list(service.list_drafts())


@mcp.tool()
@_tool_errors("compiling draft")
def docs_compile(
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
) -> str:
    """Compile a drafted document to PDF using the preset it was created with.

    Args:
        doc_id: Document ID (e.g. 'purple-squirrel-482')
        output_path: Custom output path for the PDF. If omitted, saves next to the draft.
        bibliography: Path to .bib file
        logo: Logo option (sit, uofg, both) for the school-report preset
        authors: JSON array for the authors table: [{name, sit_id, glasgow_id}, ...]
    """
    result = service.compile_draft(
        doc_id,
        output_path=output_path,
        author=author,
        date=date,
        subtitle=subtitle,
        abstract=abstract,
        keywords=keywords,
        bibliography=bibliography,
        logo=logo,
        course=course,
        project_title=project_title,
        group=group,
        authors=authors,
        version=version,
        project_topic_id=project_topic_id,
    )
    return format_document_result(result, verb="Compiled")


@mcp.tool()
@_tool_errors("deleting draft")
def docs_delete_draft(doc_id: str) -> str:
    """Delete a draft and its associated files.

    Args:
        doc_id: Document ID to delete
    """
    service.delete_draft(doc_id)
    return f"Deleted draft: {doc_id}"


def main():
    """Entry point for the MCP server."""
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Starting docpress MCP server")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
