"""Tests for DocumentService workflows.

pandoc and the LaTeX compiler are never run: ``mock_run`` patches
``subprocess.run`` in the builder and the tests inspect the command line.
"""

import json
import subprocess

import pytest

from docpress.documents import DocumentService, read_front_matter
from docpress.exceptions import (
    ConversionError,
    DraftNotFoundError,
    InvalidDocIdError,
    InvalidInputError,
    TemplateNotFoundError,
)


@pytest.fixture()
def service(settings, resolver, manager):
    return DocumentService(settings=settings, resolver=resolver, presets=manager)


@pytest.fixture()
def markdown(tmp_path):
    path = tmp_path / "doc.md"
    path.write_text("---\ntitle: From Front Matter\n---\n\n# Body\n")
    return path


def _command(mock_run) -> list:
    return mock_run.call_args.args[0]


def _variables(cmd: list) -> dict:
    return dict(cmd[i + 1].split("=", 1) for i, arg in enumerate(cmd) if arg == "-V")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestReadFrontMatter:
    def test_parses_leading_block(self, markdown):
        assert read_front_matter(markdown) == {"title": "From Front Matter"}

    def test_no_block(self, tmp_path):
        path = tmp_path / "plain.md"
        path.write_text("# Just a heading\n")
        assert read_front_matter(path) == {}

    def test_unterminated_or_invalid(self, tmp_path):
        path = tmp_path / "bad.md"
        path.write_text("---\ntitle: [oops\n---\n")
        assert read_front_matter(path) == {}


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


class TestConvert:
    def test_plain_conversion(self, service, mock_run, markdown, tmp_path):
        result = service.convert(str(markdown), "docx", from_format="gfm", output_dir=str(tmp_path / "out"))

        assert result.output_path == tmp_path / "out" / "doc.docx"
        assert _command(mock_run) == [
            "pandoc", "-f", "gfm", str(markdown), "-o", str(tmp_path / "out" / "doc.docx"),
        ]

    def test_missing_input(self, service, mock_run, tmp_path):
        with pytest.raises(InvalidInputError):
            service.convert(str(tmp_path / "absent.md"), "pdf")
        mock_run.assert_not_called()

    def test_failure_raises_with_reason(self, service, mock_run, markdown):
        mock_run.return_value = subprocess.CompletedProcess([], 1, stdout="", stderr="Unknown reader: foo")

        with pytest.raises(ConversionError, match="Unknown reader: foo"):
            service.convert(str(markdown), "pdf", from_format="foo")


class TestCreateDocument:
    def test_missing_template_raises(self, service, scopes, write_preset, markdown, mock_run):
        write_preset(scopes.builtin, "styled", {"template": {"path": "eisvogel.latex"}})

        with pytest.raises(TemplateNotFoundError, match="docs_templates_install"):
            service.create_document(str(markdown), "styled")
        mock_run.assert_not_called()

    def test_preset_applied_then_listings_then_metadata(
        self, service, scopes, write_preset, write_file, markdown, mock_run,
    ):
        write_file(scopes.user / "templates" / "eisvogel.latex")
        write_preset(scopes.builtin, "styled", {
            "template": {"path": "eisvogel.latex"},
            "pdf_engine": "xelatex",
        })

        result = service.create_document(str(markdown), "styled", author="Ada", bibliography="refs.bib")

        cmd = _command(mock_run)
        assert cmd.index("--pdf-engine=xelatex") < cmd.index("--listings") < cmd.index("author=Ada")
        assert "--citeproc" in cmd
        assert result.output_path == markdown.with_suffix(".pdf")
        assert mock_run.call_args.kwargs["cwd"] is None

    def test_reports_missing_required_fields(self, service, scopes, write_preset, markdown, mock_run):
        write_preset(scopes.builtin, "paper", {"required_fields": ["title", "abstract", "keywords"]})

        result = service.create_document(str(markdown), "paper", keywords="latex")

        assert result.missing_fields == ["abstract"]

    def test_ieee_runs_from_template_directory(self, service, scopes, write_preset, write_file, markdown, mock_run):
        tpl = write_file(scopes.user / "templates" / "ieee" / "template.latex")
        write_preset(scopes.builtin, "ieee-conference", {"template": {"path": "ieee/template.latex"}})

        service.create_document(str(markdown), "ieee-conference")

        assert mock_run.call_args.kwargs["cwd"] == str(tpl.parent.resolve())
        # Paths must survive the change of working directory.
        assert str(markdown.resolve()) in _command(mock_run)

    def test_conversion_failure(self, service, scopes, write_preset, markdown, mock_run):
        write_preset(scopes.builtin, "memo", {})
        mock_run.return_value = subprocess.CompletedProcess([], 43, stdout="! LaTeX Error", stderr="")

        with pytest.raises(ConversionError, match="LaTeX Error"):
            service.create_document(str(markdown), "memo")


class TestIeeePaper:
    def test_journal_uses_journal_preset(self, service, scopes, write_preset, write_file, markdown, mock_run):
        write_file(scopes.user / "templates" / "ieee" / "template.latex")
        write_preset(scopes.builtin, "ieee-conference", {"template": {"path": "ieee/template.latex"}})
        write_preset(scopes.builtin, "ieee-journal", {"extends": "ieee-conference"})

        result = service.create_ieee_paper(str(markdown), "T", "A", "Abstract", format="journal")

        assert result.preset == "ieee-journal"
        assert _variables(_command(mock_run))["abstract"] == "Abstract"

    def test_requires_template(self, service, scopes, write_preset, markdown):
        write_preset(scopes.builtin, "ieee-conference", {"template": {"path": "ieee/template.latex"}})

        with pytest.raises(TemplateNotFoundError, match="docs_templates_install ieee"):
            service.create_ieee_paper(str(markdown), "T", "A", "Abstract")


class TestGenerateLatex:
    def test_tex_output_next_to_input(self, service, scopes, write_preset, markdown, mock_run):
        write_preset(scopes.builtin, "memo", {})

        result = service.generate_latex(str(markdown), "memo")

        assert result.output_path == markdown.with_suffix(".tex")
        assert _command(mock_run)[-2:] == ["-o", str(markdown.with_suffix(".tex"))]

    def test_rejects_non_tex_output(self, service, scopes, write_preset, markdown, mock_run):
        write_preset(scopes.builtin, "memo", {})

        with pytest.raises(InvalidInputError):
            service.generate_latex(str(markdown), "memo", output_path="out.pdf")


class TestSchoolReport:
    @pytest.fixture(autouse=True)
    def _school_preset(self, scopes, write_preset, write_file):
        write_file(scopes.user / "templates" / "sit-uofg" / "template.latex")
        write_file(scopes.user / "assets" / "sit-logo.png")
        write_preset(scopes.builtin, "school-report", {
            "template": {"path": "sit-uofg/template.latex"},
            "pdf_engine": "xelatex",
            "pandoc": {"from": "markdown+smart+pipe_tables"},
        })

    def test_uniform_margin_wins(self, service, markdown, mock_run):
        service.create_school_report(str(markdown), margin="2cm", top_margin="3cm")

        variables = _variables(_command(mock_run))
        assert variables["margin"] == "2cm"
        assert "top-margin" not in variables

    def test_per_side_margins(self, service, markdown, mock_run):
        service.create_school_report(str(markdown), top_margin="3cm", left_margin="1cm")

        variables = _variables(_command(mock_run))
        assert (variables["top-margin"], variables["left-margin"]) == ("3cm", "1cm")

    def test_logo_modes(self, service, scopes, markdown, mock_run):
        service.create_school_report(str(markdown), logo="both")

        variables = _variables(_command(mock_run))
        assert variables["logo-mode"] == "both"
        assert variables["sit-logo"] == str((scopes.user / "assets" / "sit-logo.png").resolve())
        assert variables["uofg-logo"] == str(scopes.user / "assets" / "uofg-logo.png")

    def test_unknown_logo(self, service, markdown, mock_run):
        with pytest.raises(InvalidInputError):
            service.create_school_report(str(markdown), logo="mit")

    def test_fixed_style_and_toc(self, service, markdown, mock_run):
        service.create_school_report(str(markdown), title="Lab 1", course="Physics")

        cmd = _command(mock_run)
        variables = _variables(cmd)
        assert variables["titlepage"] == "true"
        assert variables["linkcolor"] == "blue"
        assert variables["numbersections"] == "true"
        assert variables["course"] == "Physics"
        assert "--toc" in cmd
        assert "-f" in cmd

    def test_without_toc(self, service, markdown, mock_run):
        service.create_school_report(str(markdown), include_toc=False)

        assert "--toc" not in _command(mock_run)

    def test_authors_file_passed_and_removed(self, service, markdown, mock_run):
        authors = json.dumps([{"name": "Ada", "sit_id": "1"}])

        service.create_school_report(str(markdown), authors=authors, author="ignored")

        cmd = _command(mock_run)
        meta_args = [a for a in cmd if a.startswith("--metadata-file=")]
        assert len(meta_args) == 1
        assert "author" not in _variables(cmd)
        assert not list(markdown.parent.glob("authors-*.yaml"))

    def test_authors_file_removed_on_failure(self, service, markdown, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 1, stdout="", stderr="boom")

        with pytest.raises(ConversionError):
            service.create_school_report(str(markdown), authors='[{"name": "Ada"}]')

        assert not list(markdown.parent.glob("authors-*.yaml"))

    def test_single_author(self, service, markdown, mock_run):
        service.create_school_report(str(markdown), author="Ada")

        assert _variables(_command(mock_run))["author"] == "Ada"


class TestStyledPdf:
    def test_defaults(self, service, scopes, write_file, markdown, mock_run):
        write_file(scopes.user / "templates" / "eisvogel.latex")

        service.create_styled_pdf(str(markdown), title="Guide")

        cmd = _command(mock_run)
        variables = _variables(cmd)
        assert cmd[1:3] == ["-f", "markdown-smart"]
        assert variables["titlepage-color"] == "06386e"
        assert variables["titlepage-text-color"] == "FFFFFF"
        assert variables["title"] == "Guide"
        assert "--toc" in cmd

    def test_missing_template(self, service, markdown):
        with pytest.raises(TemplateNotFoundError):
            service.create_styled_pdf(str(markdown))


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


class TestDraftWorkflow:
    @pytest.fixture()
    def draft(self, service, scopes, write_preset):
        write_preset(scopes.builtin, "memo", {"pdf_engine": "xelatex"})
        return service.draft("Weekly Memo", "memo", initial_content="Hello\n")

    def test_compile_marks_compiled(self, service, draft, mock_run):
        result = service.compile_draft(draft.doc_id, author="Ada", course="Physics")

        cmd = _command(mock_run)
        assert cmd[-3:] == [str(draft.path), "-o", str(draft.path.parent / f"{draft.doc_id}.pdf")]
        assert "--listings" in cmd
        assert _variables(cmd)["course"] == "Physics"
        assert result.details["title"] == "Weekly Memo"
        assert service.registry.get_draft(draft.doc_id).status == "compiled"

    def test_failed_compile_leaves_status(self, service, draft, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 1, stdout="", stderr="boom")

        with pytest.raises(ConversionError):
            service.compile_draft(draft.doc_id)

        assert service.registry.get_draft(draft.doc_id).status == "draft"

    def test_compile_with_authors_table(self, service, draft, mock_run):
        service.compile_draft(draft.doc_id, authors='[{"name": "Ada", "glasgow_id": "9L"}]')

        assert any(a.startswith("--metadata-file=") for a in _command(mock_run))
        assert not list(draft.path.parent.glob("authors-*.yaml"))

    def test_compile_with_preset_declared_logo(self, service, scopes, write_preset, write_file, mock_run):
        logo = write_file(scopes.user / "assets" / "company.png")
        write_preset(scopes.user, "brand", {"logos": {"company": "assets/company.png"}})
        created = service.draft("Brand Memo", "brand")

        service.compile_draft(created.doc_id, logo="company")

        variables = _variables(_command(mock_run))
        assert variables["logo"] == str(logo.resolve())
        assert variables["logo-width"] == "150"
        assert "logo-mode" not in variables
        assert "sit-logo" not in variables

    def test_compile_with_school_logo_mode(self, service, draft, mock_run):
        service.compile_draft(draft.doc_id, logo="uofg")

        variables = _variables(_command(mock_run))
        assert variables["logo-mode"] == "single"
        assert "uofg-logo" in variables

    def test_compile_invalid_id(self, service):
        with pytest.raises(InvalidDocIdError):
            service.compile_draft("../../etc/passwd")

    def test_compile_missing_file(self, service, draft, mock_run):
        draft.path.unlink()

        with pytest.raises(DraftNotFoundError, match="Draft file missing"):
            service.compile_draft(draft.doc_id)
        mock_run.assert_not_called()

    def test_compile_requires_template(self, service, scopes, write_preset, draft, mock_run):
        write_preset(scopes.user, "memo", {"template": {"path": "memo.latex"}})
        service.presets.clear_cache()

        with pytest.raises(TemplateNotFoundError):
            service.compile_draft(draft.doc_id)

    def test_list_and_delete(self, service, draft):
        assert [d["doc_id"] for d in service.list_drafts()] == [draft.doc_id]

        service.delete_draft(draft.doc_id)

        assert service.list_drafts() == []
