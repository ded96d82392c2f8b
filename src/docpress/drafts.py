"""
Draft Registry - ID-based tracking of project-local document drafts

A draft is a markdown file under ``<project>/.docpress/docs/<doc_id>/`` that
can be edited and compiled any number of times. The registry file
``<project>/.docpress/docs-registry.json`` indexes drafts by id so tools can
find them without scanning the tree.
"""

import json
import logging
import random
import re
import shutil
import time
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError

from .exceptions import (
    ConfigurationError,
    DraftNotFoundError,
    InvalidDocIdError,
    InvalidInputError,
)
from .templates import PROJECT_DIR_NAME

logger = logging.getLogger(__name__)

REGISTRY_FILE_NAME = "docs-registry.json"
DRAFTS_DIR_NAME = "docs"
DRAFT_FILE_NAME = "draft.md"
META_FILE_NAME = "meta.json"

MAX_ID_ATTEMPTS = 100

ADJECTIVES = [
    "amber", "ancient", "autumn", "bold", "brave", "bright", "calm", "clever", "cool", "crimson",
    "curious", "daring", "deep", "eager", "elegant", "fierce", "gentle", "golden", "graceful", "happy",
    "hidden", "jade", "joyful", "kind", "lively", "lucky", "mighty", "misty", "modern", "mystic",
    "noble", "peaceful", "purple", "quiet", "rapid", "royal", "rustic", "serene", "silent", "silver",
    "smooth", "solid", "spring", "steady", "summer", "swift", "tender", "vivid", "warm", "wild",
    "wise", "young", "zealous", "azure", "blazing", "breezy", "cosmic", "crystal", "dawn", "dusk",
]

NOUNS = [
    "apple", "arrow", "autumn", "beach", "bird", "bloom", "breeze", "brook", "canyon", "cloud",
    "coral", "crane", "crystal", "dolphin", "dream", "eagle", "field", "flame", "flower", "forest",
    "fountain", "garden", "gate", "glade", "grove", "harbor", "haven", "hill", "horizon", "island",
    "journey", "lake", "leaf", "meadow", "mirror", "mist", "moon", "mountain", "night", "ocean",
    "orchard", "peak", "pine", "pond", "rain", "ravine", "river", "road", "rock", "rose",
    "sands", "sea", "shade", "sky", "spring", "star", "stone", "stream", "sun", "sunset",
    "surf", "swan", "tide", "tower", "tree", "valley", "wave", "willow", "wind", "wood",
]

# Also guards against path traversal: ids become directory names.
_DOC_ID_RE = re.compile(r"^[a-z]+-[a-z]+-\d+(-\d+)?$")

DraftStatus = Literal["draft", "compiled"]


class DraftInfo(BaseModel):
    title: str
    preset: str
    created_at: str
    last_modified: str
    source_markdown: Optional[str] = None
    status: DraftStatus = "draft"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_doc_id(rng: Optional[random.Random] = None) -> str:
    """Human-readable id such as ``purple-river-482``."""
    rng = rng or random
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}-{rng.randint(100, 999)}"


def is_valid_doc_id(doc_id: str) -> bool:
    return bool(_DOC_ID_RE.match(doc_id))


def validate_doc_id(doc_id: str) -> str:
    if not is_valid_doc_id(doc_id):
        raise InvalidDocIdError(doc_id)
    return doc_id


def build_front_matter(title: str, today: Optional[date] = None) -> str:
    """YAML front-matter block with the title and a date."""
    today = today or date.today()
    body = yaml.safe_dump(
        {"title": title, "date": today.isoformat()},
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"---\n{body}---\n\n"


def write_authors_metadata(authors_json: str, target_dir: Path) -> Path:
    """
    Write an authors table as a pandoc metadata file.

    Args:
        authors_json: JSON array of ``{name, sit_id, glasgow_id}`` objects
        target_dir: Directory for the temporary YAML file

    Returns:
        Path of the written file; the caller removes it after the run.
    """
    try:
        authors = json.loads(authors_json)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Invalid authors JSON: {e}", field="authors") from e
    if not isinstance(authors, list) or not all(isinstance(a, dict) for a in authors):
        raise InvalidInputError("Invalid authors JSON: expected an array of objects", field="authors")

    entries: List[Dict[str, str]] = []
    for author in authors:
        entry = {"name": str(author.get("name", ""))}
        if author.get("sit_id"):
            entry["sit-id"] = str(author["sit_id"])
        if author.get("glasgow_id"):
            entry["glasgow-id"] = str(author["glasgow_id"])
        entries.append(entry)

    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / f"authors-{int(time.time() * 1000)}.yaml"
    path.write_text(
        yaml.safe_dump({"authors": entries}, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    return path


class DraftRegistry:
    """
    Registry for tracking document drafts in one project.

    Concurrent writers can lose updates; the file is rewritten whole on
    every change.
    """

    def __init__(self, project_root: Optional[Path]):
        if project_root is None or Path(project_root).resolve() == Path("/"):
            raise ConfigurationError(
                "Cannot determine project directory. Please run from a project directory."
            )
        self.project_root = Path(project_root)
        self.base_dir = self.project_root / PROJECT_DIR_NAME
        self.registry_path = self.base_dir / REGISTRY_FILE_NAME
        self.drafts_dir = self.base_dir / DRAFTS_DIR_NAME

    def _load(self) -> Dict[str, DraftInfo]:
        """Load registry from disk.

        A file that is not a JSON object of drafts counts as empty. Individual
        entries that fail validation are skipped and the rest are kept.
        """
        if not self.registry_path.exists():
            return {}
        try:
            raw = json.loads(self.registry_path.read_text(encoding="utf-8"))
            entries = raw.get("drafts") or {}
            if not isinstance(entries, dict):
                raise ValueError("'drafts' is not an object")
        except (OSError, ValueError, AttributeError) as e:
            logger.warning("Registry %s is unreadable, starting empty: %s", self.registry_path, e)
            return {}

        drafts: Dict[str, DraftInfo] = {}
        for doc_id, info in entries.items():
            try:
                drafts[doc_id] = DraftInfo.model_validate(info)
            except ValidationError as e:
                logger.warning("Skipping invalid registry entry '%s': %s", doc_id, e)
        return drafts

    def _save(self, drafts: Dict[str, DraftInfo]) -> None:
        """Save registry to disk."""
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"drafts": {doc_id: info.model_dump() for doc_id, info in drafts.items()}}
        self.registry_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def draft_dir(self, doc_id: str) -> Path:
        return self.drafts_dir / validate_doc_id(doc_id)

    def draft_path(self, doc_id: str) -> Path:
        return self.draft_dir(doc_id) / DRAFT_FILE_NAME

    def _unique_id(self, existing: Dict[str, DraftInfo]) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            doc_id = generate_doc_id()
            if doc_id not in existing:
                return doc_id
        return f"{generate_doc_id()}-{int(time.time() * 1000)}"

    def create_draft(
        self,
        title: str,
        preset: str,
        initial_content: Optional[str] = None,
        source_markdown: Optional[str] = None,
    ) -> tuple[str, Path]:
        """
        Create a draft directory, its markdown file and metadata.

        Returns:
            (doc_id, path to draft.md)
        """
        drafts = self._load()
        doc_id = self._unique_id(drafts)
        draft_dir = self.draft_dir(doc_id)
        draft_dir.mkdir(parents=True, exist_ok=True)

        content = ""
        if initial_content:
            content = initial_content
        elif source_markdown and Path(source_markdown).is_file():
            content = Path(source_markdown).read_text(encoding="utf-8")

        if not content.startswith("---"):
            content = build_front_matter(title) + content

        draft_path = draft_dir / DRAFT_FILE_NAME
        draft_path.write_text(content, encoding="utf-8")

        now = _now_iso()
        info = DraftInfo(
            title=title,
            preset=preset,
            created_at=now,
            last_modified=now,
            source_markdown=source_markdown,
        )
        (draft_dir / META_FILE_NAME).write_text(
            json.dumps(info.model_dump(), indent=2), encoding="utf-8",
        )

        drafts[doc_id] = info
        self._save(drafts)
        logger.info("Draft created", extra={"doc_id": doc_id, "preset": preset})
        return doc_id, draft_path

    def get_draft(self, doc_id: str) -> DraftInfo:
        validate_doc_id(doc_id)
        info = self._load().get(doc_id)
        if info is None:
            raise DraftNotFoundError(doc_id)
        return info

    def list_drafts(self) -> List[Dict[str, Any]]:
        """All drafts with their paths. Status is ``missing`` when draft.md is gone."""
        result = []
        for doc_id, info in self._load().items():
            path = self.drafts_dir / doc_id / DRAFT_FILE_NAME
            entry = info.model_dump()
            entry["doc_id"] = doc_id
            entry["path"] = str(path)
            if not path.exists():
                entry["status"] = "missing"
            result.append(entry)
        return result

    def mark_compiled(self, doc_id: str) -> DraftInfo:
        drafts = self._load()
        info = drafts.get(doc_id)
        if info is None:
            raise DraftNotFoundError(doc_id)
        info.status = "compiled"
        info.last_modified = _now_iso()
        self._save(drafts)
        return info

    def delete_draft(self, doc_id: str) -> None:
        validate_doc_id(doc_id)
        drafts = self._load()
        if doc_id not in drafts:
            raise DraftNotFoundError(doc_id, f"Draft not found: {doc_id}")

        draft_dir = self.drafts_dir / doc_id
        if draft_dir.exists():
            shutil.rmtree(draft_dir)

        del drafts[doc_id]
        self._save(drafts)
        logger.info("Draft deleted", extra={"doc_id": doc_id})
