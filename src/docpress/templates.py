"""
Template and asset resolution across project, user and built-in scopes.

Every scope is a directory with the same layout::

    <scope>/
        presets/    <name>.yaml preset definitions
        templates/  pandoc LaTeX templates (plus .cls files they need)
        csl/        citation style files
        assets/     logos and other images

The project scope is ``<project>/.docpress``, the user scope is the configured
user config directory and the built-in scope ships inside the package.
Lookups always walk the scopes in that order, so a project file shadows a
user file of the same name, which shadows a built-in one.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .config import Settings, settings as default_settings
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_DIR_NAME = ".docpress"

PRESET_SUFFIXES = (".yaml", ".yml")
TEMPLATE_SUFFIXES = (".latex", ".tex")


class Scope(str, Enum):
    """Where a resolved file was found, in precedence order."""
    PROJECT = "project"
    USER = "user"
    BUILTIN = "builtin"


@dataclass(frozen=True)
class ResolvedAsset:
    """A file located in one of the scopes."""

    name: str      # reference as written by the caller (e.g. "ieee/template.latex")
    path: Path     # absolute path on disk
    source: Scope


class TemplateResolver:
    """Locates presets, templates, CSL styles and assets by scope precedence.

    Args:
        project_root: Project directory. Defaults to ``settings.get_project_root()``
            when available; without a project the project scope is skipped.
        user_config_dir: User scope directory.
        builtin_dir: Built-in scope directory.
    """

    def __init__(
        self,
        project_root: Optional[Path] = None,
        user_config_dir: Optional[Path] = None,
        builtin_dir: Optional[Path] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        cfg = settings or default_settings
        if project_root is None:
            try:
                project_root = cfg.get_project_root()
            except ConfigurationError as e:
                logger.warning("Project scope disabled: %s", e)
        self.project_root = Path(project_root).resolve() if project_root else None
        self.user_config_dir = Path(user_config_dir or cfg.user_config_dir).expanduser()
        self.builtin_dir = Path(builtin_dir or cfg.builtin_dir)

    # ------------------------------------------------------------------
    # Scope directories
    # ------------------------------------------------------------------

    def get_project_config_dir(self) -> Optional[Path]:
        if self.project_root is None:
            return None
        return self.project_root / PROJECT_DIR_NAME

    def get_user_config_dir(self) -> Path:
        return self.user_config_dir

    def scopes(self) -> List[Tuple[Scope, Path]]:
        """Scope directories in lookup order."""
        result: List[Tuple[Scope, Path]] = []
        project_dir = self.get_project_config_dir()
        if project_dir is not None:
            result.append((Scope.PROJECT, project_dir))
        result.append((Scope.USER, self.user_config_dir))
        result.append((Scope.BUILTIN, self.builtin_dir))
        return result

    def ensure_user_config_dirs(self) -> Path:
        """Create the user scope skeleton. Returns the user config dir."""
        for sub in ("presets", "templates", "csl", "assets"):
            (self.user_config_dir / sub).mkdir(parents=True, exist_ok=True)
        return self.user_config_dir

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _resolve(
        self,
        kind: str,
        candidates: List[str],
        name: str,
        below: Optional[Scope] = None,
    ) -> Optional[ResolvedAsset]:
        # Absolute references bypass the scope search; they count as project files.
        if Path(name).is_absolute():
            path = Path(name)
            if path.is_file():
                return ResolvedAsset(name=name, path=path, source=Scope.PROJECT)
            return None

        scopes = self.scopes()
        if below is not None:
            order = list(Scope)
            scopes = [(s, b) for s, b in scopes if order.index(s) > order.index(below)]

        for scope, base in scopes:
            for candidate in candidates:
                path = base / kind / candidate
                if path.is_file():
                    logger.debug("Resolved %s '%s' in %s scope: %s", kind, name, scope.value, path)
                    return ResolvedAsset(name=name, path=path.resolve(), source=scope)
        return None

    def resolve_template(self, name: str) -> Optional[ResolvedAsset]:
        """Find a template by reference.

        Tries the reference as given, then with a ``.latex`` suffix, then as
        a directory holding ``template.latex``, so ``eisvogel``,
        ``eisvogel.latex`` and ``ieee`` all resolve.
        """
        candidates = [name]
        if not name.endswith(TEMPLATE_SUFFIXES):
            candidates += [f"{name}.latex", f"{name}/template.latex"]
        return self._resolve("templates", candidates, name)

    def resolve_csl(self, name: str) -> Optional[ResolvedAsset]:
        candidates = [name] if name.endswith(".csl") else [name, f"{name}.csl"]
        return self._resolve("csl", candidates, name)

    def resolve_asset(self, name: str) -> Optional[ResolvedAsset]:
        # Presets reference assets as "assets/<file>" or just "<file>".
        stripped = name[len("assets/"):] if name.startswith("assets/") else name
        return self._resolve("assets", [stripped], name)

    def resolve_preset(self, name: str, below: Optional[Scope] = None) -> Optional[ResolvedAsset]:
        """Find a preset definition file.

        ``below`` restricts the search to scopes of lower precedence, which
        lets a project preset extend the user or built-in preset it shadows.
        """
        return self._resolve(
            "presets", [f"{name}{suffix}" for suffix in PRESET_SUFFIXES], name, below=below,
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def _walk(self, kind: str, patterns: Tuple[str, ...], recursive: bool) -> Iterator[ResolvedAsset]:
        """Yield every file of a kind, first scope wins per name."""
        seen: set[str] = set()
        for scope, base in self.scopes():
            root = base / kind
            if not root.is_dir():
                continue
            files: List[Path] = []
            for pattern in patterns:
                files.extend(root.rglob(pattern) if recursive else root.glob(pattern))
            for path in sorted(files):
                rel = path.relative_to(root)
                name = rel.as_posix() if recursive else path.stem
                if name in seen:
                    continue
                seen.add(name)
                yield ResolvedAsset(name=name, path=path.resolve(), source=scope)

    def list_presets(self) -> List[ResolvedAsset]:
        return list(self._walk("presets", tuple(f"*{s}" for s in PRESET_SUFFIXES), recursive=False))

    def list_templates(self) -> List[ResolvedAsset]:
        return list(self._walk("templates", tuple(f"*{s}" for s in TEMPLATE_SUFFIXES), recursive=True))

    def list_csl_styles(self) -> List[ResolvedAsset]:
        return list(self._walk("csl", ("*.csl",), recursive=False))
