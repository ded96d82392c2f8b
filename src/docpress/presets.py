"""
Preset loading, inheritance and resolution.

A preset is a YAML file describing how a document should look: which
template and PDF engine to use, citation style, pandoc variables, logos and
style switches. Presets are looked up project -> user -> built-in (see
``templates.TemplateResolver``) and may inherit from one parent via
``extends``.

Merge rules when a child extends a parent:
  - scalar fields: child wins when it sets them
  - ``template``, ``citation``, ``logos``, ``style``: merged key by key
  - ``pandoc``: merged key by key, ``variables`` merged key by key,
    ``extra_args`` concatenated parent-then-child
  - ``required_fields`` / ``optional_fields``: child list if non-empty,
    otherwise the parent's
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import (
    ConfigurationError,
    InvalidInputError,
    InvalidPresetError,
    LogoNotFoundError,
    PresetCycleError,
    PresetNotFoundError,
)
from .templates import ResolvedAsset, Scope, TemplateResolver

logger = logging.getLogger(__name__)

PdfEngine = Literal["xelatex", "pdflatex", "lualatex"]
VariableValue = Union[bool, int, float, str]

# Fields whose values are maps merged key by key during inheritance.
NESTED_MAP_FIELDS = ("template", "citation", "logos", "style")

_PRESET_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TemplateSpec(BaseModel):
    """Template reference, relative to a scope's templates/ directory."""
    path: str
    document_class: Optional[str] = None
    class_options: Optional[List[str]] = None


class CitationSpec(BaseModel):
    style: Optional[str] = None
    csl_file: Optional[str] = None


class PandocSpec(BaseModel):
    """Pandoc-level settings. ``from`` is the reader format."""
    model_config = ConfigDict(populate_by_name=True)

    from_format: Optional[str] = Field(default=None, alias="from")
    variables: Dict[str, VariableValue] = {}
    extra_args: List[str] = []


class StyleSpec(BaseModel):
    titlepage: Optional[bool] = None
    titlepage_color: Optional[str] = None
    text_color: Optional[str] = None
    toc: Optional[bool] = None
    toc_own_page: Optional[bool] = None
    number_sections: Optional[bool] = None
    colorlinks: Optional[bool] = None
    linkcolor: Optional[str] = None


class PresetConfig(BaseModel):
    """Preset definition as written in YAML (after inheritance is applied)."""
    name: str
    description: Optional[str] = None
    extends: Optional[str] = None
    template: Optional[TemplateSpec] = None
    pdf_engine: Optional[PdfEngine] = None
    citation: Optional[CitationSpec] = None
    pandoc: Optional[PandocSpec] = None
    logos: Optional[Dict[str, str]] = None
    style: Optional[StyleSpec] = None
    # Per-call metadata the preset expects; informational.
    required_fields: Optional[List[str]] = None
    optional_fields: Optional[List[str]] = None

    def to_yaml_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ResolvedPreset(PresetConfig):
    """Preset with inheritance merged and referenced files located."""
    source_path: str
    source_type: Scope
    resolved_template_path: Optional[str] = None
    resolved_csl_path: Optional[str] = None
    resolved_logo_path: Optional[str] = None


class PresetSummary(BaseModel):
    name: str
    description: Optional[str] = None
    source: Scope
    path: str


class PresetInfo(BaseModel):
    config: PresetConfig
    source: Scope
    path: str
    available_logos: Optional[List[str]] = None
    template_available: bool = False
    csl_available: bool = False


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def merge_preset_data(parent: Dict[str, Any], child: Dict[str, Any]) -> Dict[str, Any]:
    """Merge a parent preset mapping into a child mapping (child wins).

    Works on the raw YAML mappings so that "field not set" and "field set to
    its default" stay distinguishable.
    """
    merged: Dict[str, Any] = {**parent, **child}

    for key in NESTED_MAP_FIELDS:
        if child.get(key):
            merged[key] = {**(parent.get(key) or {}), **child[key]}
        elif key in parent:
            merged[key] = parent[key]

    parent_pandoc = parent.get("pandoc") or {}
    child_pandoc = child.get("pandoc")
    if child_pandoc:
        merged["pandoc"] = {
            **parent_pandoc,
            **child_pandoc,
            "variables": {
                **(parent_pandoc.get("variables") or {}),
                **(child_pandoc.get("variables") or {}),
            },
            "extra_args": [
                *(parent_pandoc.get("extra_args") or []),
                *(child_pandoc.get("extra_args") or []),
            ],
        }
    elif "pandoc" in parent:
        merged["pandoc"] = parent["pandoc"]

    for key in ("required_fields", "optional_fields"):
        # An explicit empty list in the child clears the inherited one.
        value = child[key] if child.get(key) is not None else parent.get(key)
        if value is not None:
            merged[key] = value
        else:
            merged.pop(key, None)

    return merged


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class PresetManager:
    """Loads presets, applies inheritance and caches resolved results.

    The cache is keyed by ``(preset name, logo option)``. Anything that adds
    files to a scope (template installs, preset creation) must call
    ``clear_cache()`` so templates installed after a failed lookup are seen.
    """

    def __init__(self, resolver: Optional[TemplateResolver] = None) -> None:
        self.resolver = resolver or TemplateResolver()
        self._cache: Dict[Tuple[str, str], ResolvedPreset] = {}

    def clear_cache(self) -> None:
        """Clear the preset cache (call after installing templates)."""
        if self._cache:
            logger.info("Preset cache cleared", extra={"entries": len(self._cache)})
        self._cache.clear()

    # -- raw loading ---------------------------------------------------

    def _read_definition(self, name: str, location: ResolvedAsset) -> Dict[str, Any]:
        try:
            data = yaml.safe_load(location.path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise InvalidPresetError(name, f"YAML parse error in {location.path}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidPresetError(name, f"{location.path} must contain a mapping")
        data.setdefault("name", name)
        return data

    def _locate(self, name: str, below: Optional[Scope] = None) -> ResolvedAsset:
        location = self.resolver.resolve_preset(name, below=below)
        if location is None:
            raise PresetNotFoundError(name, self.list_preset_names())
        return location

    def _load_merged(
        self,
        name: str,
        below: Optional[Scope] = None,
        chain: Optional[List[str]] = None,
    ) -> Tuple[Dict[str, Any], ResolvedAsset]:
        """Load a definition and fold its ancestors into it."""
        location = self._locate(name, below)
        chain = [*(chain or []), f"{name}@{location.source.value}"]
        data = self._read_definition(name, location)
        self._check_sections(name, data)

        parent_name = data.get("extends")
        if parent_name:
            # A preset extending its own name inherits the one it shadows.
            parent_below = location.source if parent_name == name else None
            parent_location = self._locate(parent_name, parent_below)
            key = f"{parent_name}@{parent_location.source.value}"
            if key in chain:
                raise PresetCycleError([*chain, key])
            parent_data, _ = self._load_merged(parent_name, parent_below, chain)
            data = merge_preset_data(parent_data, data)

        return data, location

    @staticmethod
    def _check_sections(name: str, data: Dict[str, Any]) -> None:
        """Reject section shapes the merge cannot combine."""
        for key in (*NESTED_MAP_FIELDS, "pandoc"):
            if data.get(key) is not None and not isinstance(data[key], dict):
                raise InvalidPresetError(name, f"'{key}' must be a mapping")
        pandoc_section = data.get("pandoc") or {}
        if pandoc_section.get("variables") is not None and not isinstance(pandoc_section["variables"], dict):
            raise InvalidPresetError(name, "'pandoc.variables' must be a mapping")
        if pandoc_section.get("extra_args") is not None and not isinstance(pandoc_section["extra_args"], list):
            raise InvalidPresetError(name, "'pandoc.extra_args' must be a list")

    def _validate(self, name: str, data: Dict[str, Any]) -> PresetConfig:
        try:
            return PresetConfig.model_validate(data)
        except ValidationError as e:
            raise InvalidPresetError(name, str(e)) from e

    # -- public API ----------------------------------------------------

    def load_preset(self, preset_name: str, logo_option: Optional[str] = None) -> ResolvedPreset:
        """
        Load and resolve a preset by name.

        Args:
            preset_name: Preset to load.
            logo_option: Key into the preset's ``logos`` map.

        Returns:
            ResolvedPreset with inheritance applied and file paths resolved.
            Missing template/CSL files leave the resolved path unset.

        Raises:
            PresetNotFoundError: Preset (or an ancestor) is not defined anywhere.
            PresetCycleError: The ``extends`` chain loops.
            InvalidPresetError: A definition fails to parse or validate.
            LogoNotFoundError: ``logo_option`` is not one of the preset's logos.
        """
        cache_key = (preset_name, logo_option or "")
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        data, location = self._load_merged(preset_name)
        config = self._validate(preset_name, data)

        resolved = ResolvedPreset(
            **config.model_dump(),
            source_path=str(location.path),
            source_type=location.source,
        )

        if config.template and config.template.path:
            template = self.resolver.resolve_template(config.template.path)
            if template:
                resolved.resolved_template_path = str(template.path)
            else:
                logger.debug("Template '%s' for preset '%s' is not installed",
                             config.template.path, preset_name)

        if config.citation and config.citation.csl_file:
            csl = self.resolver.resolve_csl(config.citation.csl_file)
            if csl:
                resolved.resolved_csl_path = str(csl.path)

        if logo_option and config.logos:
            logo_ref = config.logos.get(logo_option)
            if not logo_ref:
                raise LogoNotFoundError(logo_option, list(config.logos.keys()))
            asset = self.resolver.resolve_asset(logo_ref)
            if asset:
                resolved.resolved_logo_path = str(asset.path)
        elif logo_option:
            logger.debug("Preset '%s' declares no logos; ignoring logo '%s'", preset_name, logo_option)

        self._cache[cache_key] = resolved
        return resolved

    def list_preset_names(self) -> List[str]:
        """List all available preset names."""
        return sorted({p.name for p in self.resolver.list_presets()})

    def list_presets(self) -> List[PresetSummary]:
        """List all available presets; the highest-precedence scope wins per name."""
        presets: List[PresetSummary] = []
        for location in self.resolver.list_presets():
            description = None
            try:
                data = yaml.safe_load(location.path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    description = data.get("description")
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Cannot read preset %s: %s", location.path, e)
            presets.append(PresetSummary(
                name=location.name,
                description=description,
                source=location.source,
                path=str(location.path),
            ))
        return sorted(presets, key=lambda p: p.name)

    def get_preset_info(self, preset_name: str) -> PresetInfo:
        """Get detailed info about a preset, with inheritance applied."""
        data, location = self._load_merged(preset_name)
        config = self._validate(preset_name, data)

        template_available = bool(
            config.template and config.template.path
            and self.resolver.resolve_template(config.template.path)
        )
        csl_available = bool(
            config.citation and config.citation.csl_file
            and self.resolver.resolve_csl(config.citation.csl_file)
        )

        return PresetInfo(
            config=config,
            source=location.source,
            path=str(location.path),
            available_logos=list(config.logos.keys()) if config.logos else None,
            template_available=template_available,
            csl_available=csl_available,
        )

    def create_preset(
        self,
        name: str,
        config: Dict[str, Any],
        location: Literal["project", "user"] = "user",
    ) -> Path:
        """
        Create a new preset file.

        Args:
            name: Preset name; becomes ``<name>.yaml``.
            config: Preset fields (everything except ``name``).
            location: ``"project"`` or ``"user"`` scope.

        Returns:
            Path of the written file.
        """
        if not _PRESET_NAME_RE.match(name):
            raise InvalidInputError(f"Invalid preset name: {name!r}", field="name")

        preset = self._validate(name, {**config, "name": name})

        if location == "project":
            project_dir = self.resolver.get_project_config_dir()
            if project_dir is None:
                raise ConfigurationError("No project directory available")
            target_dir = project_dir / "presets"
        else:
            target_dir = self.resolver.get_user_config_dir() / "presets"

        target_dir.mkdir(parents=True, exist_ok=True)
        target_path = target_dir / f"{name}.yaml"
        target_path.write_text(
            yaml.safe_dump(preset.to_yaml_dict(), sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        logger.info("Preset written", extra={"preset": name, "path": str(target_path)})

        self.clear_cache()
        return target_path
