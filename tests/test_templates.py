"""Tests for scope resolution in TemplateResolver.

Lookups walk project -> user -> built-in; the first scope holding a file
wins. Listings report each name once, from its highest-precedence scope.
"""

from pathlib import Path

from docpress.config import Settings
from docpress.templates import Scope, TemplateResolver


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


class TestScopePrecedence:
    def test_project_shadows_user_and_builtin(self, resolver, scopes, write_file):
        for base in (scopes.project_dir, scopes.user, scopes.builtin):
            write_file(base / "templates" / "report.latex", str(base))

        found = resolver.resolve_template("report")

        assert found.source == Scope.PROJECT
        assert found.path == (scopes.project_dir / "templates" / "report.latex").resolve()

    def test_user_shadows_builtin(self, resolver, scopes, write_file):
        write_file(scopes.user / "csl" / "ieee.csl")
        write_file(scopes.builtin / "csl" / "ieee.csl")

        assert resolver.resolve_csl("ieee.csl").source == Scope.USER

    def test_falls_back_to_builtin(self, resolver, scopes, write_file):
        write_file(scopes.builtin / "assets" / "logo.png")

        assert resolver.resolve_asset("logo.png").source == Scope.BUILTIN

    def test_missing_returns_none(self, resolver):
        assert resolver.resolve_template("nothing-here") is None
        assert resolver.resolve_csl("nothing") is None

    def test_no_project_root_skips_project_scope(self, scopes):
        settings = Settings(project_root=Path("/"), user_config_dir=scopes.user, builtin_dir=scopes.builtin)
        resolver = TemplateResolver(settings=settings)

        assert resolver.project_root is None
        assert [scope for scope, _ in resolver.scopes()] == [Scope.USER, Scope.BUILTIN]


# ---------------------------------------------------------------------------
# Name forms
# ---------------------------------------------------------------------------


class TestTemplateNames:
    def test_latex_suffix_is_optional(self, resolver, scopes, write_file):
        write_file(scopes.user / "templates" / "eisvogel.latex")

        assert resolver.resolve_template("eisvogel") is not None
        assert resolver.resolve_template("eisvogel.latex") is not None

    def test_directory_with_template_latex(self, resolver, scopes, write_file):
        write_file(scopes.user / "templates" / "ieee" / "template.latex")

        found = resolver.resolve_template("ieee")

        assert found.path.name == "template.latex"
        assert found.path.parent.name == "ieee"

    def test_nested_reference(self, resolver, scopes, write_file):
        write_file(scopes.builtin / "templates" / "sit-uofg" / "template.latex")

        assert resolver.resolve_template("sit-uofg/template.latex").source == Scope.BUILTIN

    def test_absolute_path_bypasses_scopes(self, resolver, tmp_path, write_file):
        tpl = write_file(tmp_path / "elsewhere" / "custom.latex")

        found = resolver.resolve_template(str(tpl))

        assert found.path == tpl
        assert found.source == Scope.PROJECT

    def test_asset_prefix_is_stripped(self, resolver, scopes, write_file):
        write_file(scopes.user / "assets" / "sit-logo.png")

        found = resolver.resolve_asset("assets/sit-logo.png")

        assert found.path.name == "sit-logo.png"
        assert found.name == "assets/sit-logo.png"


class TestPresetLookup:
    def test_yml_suffix(self, resolver, scopes, write_file):
        write_file(scopes.user / "presets" / "memo.yml", "name: memo\n")

        assert resolver.resolve_preset("memo").source == Scope.USER

    def test_below_skips_higher_scopes(self, resolver, scopes, write_file):
        write_file(scopes.project_dir / "presets" / "memo.yaml", "name: memo\n")
        write_file(scopes.builtin / "presets" / "memo.yaml", "name: memo\n")

        assert resolver.resolve_preset("memo").source == Scope.PROJECT
        assert resolver.resolve_preset("memo", below=Scope.PROJECT).source == Scope.BUILTIN
        assert resolver.resolve_preset("memo", below=Scope.BUILTIN) is None


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class TestListings:
    def test_list_templates_recursive_and_deduplicated(self, resolver, scopes, write_file):
        write_file(scopes.project_dir / "templates" / "eisvogel.latex")
        write_file(scopes.builtin / "templates" / "eisvogel.latex")
        write_file(scopes.user / "templates" / "ieee" / "template.latex")

        listed = {t.name: t.source for t in resolver.list_templates()}

        assert listed == {"eisvogel.latex": Scope.PROJECT, "ieee/template.latex": Scope.USER}

    def test_list_csl_styles_uses_stems(self, resolver, scopes, write_file):
        write_file(scopes.user / "csl" / "apa.csl")

        assert [s.name for s in resolver.list_csl_styles()] == ["apa"]

    def test_ensure_user_config_dirs(self, tmp_path, scopes):
        user_dir = tmp_path / "fresh-user"
        resolver = TemplateResolver(project_root=scopes.project, user_config_dir=user_dir, builtin_dir=scopes.builtin)

        resolver.ensure_user_config_dirs()

        for sub in ("presets", "templates", "csl", "assets"):
            assert (user_dir / sub).is_dir()
