"""Template and citation-style installation into the user scope."""

import io
import logging
import tarfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx

from .config import Settings, settings as default_settings
from .exceptions import DownloadError, InvalidInputError
from .presets import PresetManager
from .templates import TemplateResolver

logger = logging.getLogger(__name__)

# Retry configuration for transient failures (connection errors, 5xx).
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds; exponential: 1s, 2s, 4s

EISVOGEL_TARBALL_URL = (
    "https://github.com/Wandmalfarbe/pandoc-latex-template/releases/download/v3.3.0/Eisvogel.tar.gz"
)
IEEE_TEMPLATE_URL = "https://raw.githubusercontent.com/stsewd/ieee-pandoc-template/master/template.latex"
IEEE_CLASS_URL = "http://mirrors.ctan.org/macros/latex/contrib/IEEEtran/IEEEtran.cls"
CSL_STYLES_BASE_URL = "https://raw.githubusercontent.com/citation-style-language/styles/master"

# source -> CSL file name in the styles repository
CSL_SOURCES: Dict[str, str] = {
    "csl-ieee": "ieee.csl",
    "csl-apa": "apa.csl",
    "csl-acm": "acm-sig-proceedings.csl",
}

INSTALL_SOURCES = ("eisvogel", "ieee", *CSL_SOURCES)


@dataclass
class InstallResult:
    source: str
    files: List[Path]
    message: str


class TemplateInstaller:
    """Downloads templates and CSL styles into the user config directory.

    Every successful install clears the preset cache so presets that
    previously resolved without a template pick it up.

    Args:
        resolver: Resolver whose user scope receives the files.
        presets: Manager whose cache is invalidated after installs.
        client: Optional pre-built ``httpx.Client`` (tests inject a mock transport).
    """

    def __init__(
        self,
        resolver: TemplateResolver,
        presets: PresetManager,
        client: Optional[httpx.Client] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resolver = resolver
        self.presets = presets
        self._settings = settings or default_settings
        self._client = client
        self._sleep = sleep

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=self._settings.download_timeout,
                follow_redirects=True,
                headers={"User-Agent": "docpress"},
            )
        return self._client

    def _download(self, url: str) -> bytes:
        """GET a URL with retry on transient failures.

        Retries on connection errors, timeouts and 5xx responses with
        exponential backoff. Client errors (4xx) are not retried.
        """
        client = self._get_client()
        last_exc: Optional[Exception] = None

        for attempt in range(MAX_RETRIES):
            try:
                resp = client.get(url)
                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp.content
                last_exc = httpx.HTTPStatusError(
                    f"Server error {resp.status_code}",
                    request=resp.request,
                    response=resp,
                )
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    raise DownloadError(url, f"HTTP {exc.response.status_code}") from exc
                last_exc = exc
            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                last_exc = exc

            if attempt < MAX_RETRIES - 1:
                delay = RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Download %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    url, attempt + 1, MAX_RETRIES, delay, last_exc,
                )
                self._sleep(delay)

        raise DownloadError(url, str(last_exc))

    def install(self, source: str) -> InstallResult:
        """Install one of ``INSTALL_SOURCES``."""
        if source not in INSTALL_SOURCES:
            raise InvalidInputError(
                f"Unknown template source '{source}'. Sources: {', '.join(INSTALL_SOURCES)}",
                field="source",
            )

        user_dir = self.resolver.ensure_user_config_dirs()

        if source == "eisvogel":
            result = self._install_eisvogel(user_dir)
        elif source == "ieee":
            result = self._install_ieee(user_dir)
        else:
            dest = user_dir / "csl" / CSL_SOURCES[source]
            dest.write_bytes(self._download(f"{CSL_STYLES_BASE_URL}/{CSL_SOURCES[source]}"))
            result = InstallResult(source, [dest], f"Installed {source} to {dest}")

        logger.info("Installed %s", source, extra={"files": [str(f) for f in result.files]})
        self.presets.clear_cache()
        return result

    def _install_eisvogel(self, user_dir: Path) -> InstallResult:
        dest = user_dir / "templates" / "eisvogel.latex"
        payload = self._download(EISVOGEL_TARBALL_URL)
        try:
            with tarfile.open(fileobj=io.BytesIO(payload), mode="r:gz") as archive:
                member = _find_member(archive, "eisvogel.latex")
                if member is None:
                    raise DownloadError(EISVOGEL_TARBALL_URL, "eisvogel.latex not found in archive")
                extracted = archive.extractfile(member)
                if extracted is None:
                    raise DownloadError(EISVOGEL_TARBALL_URL, "eisvogel.latex is not a regular file")
                dest.write_bytes(extracted.read())
        except tarfile.TarError as e:
            raise DownloadError(EISVOGEL_TARBALL_URL, f"Extraction failed: {e}") from e
        return InstallResult("eisvogel", [dest], f"Installed eisvogel to {dest}")

    def _install_ieee(self, user_dir: Path) -> InstallResult:
        ieee_dir = user_dir / "templates" / "ieee"
        ieee_dir.mkdir(parents=True, exist_ok=True)
        template = ieee_dir / "template.latex"
        cls_file = ieee_dir / "IEEEtran.cls"
        # The class file sits beside the template; pandoc runs from this directory.
        template.write_bytes(self._download(IEEE_TEMPLATE_URL))
        cls_file.write_bytes(self._download(IEEE_CLASS_URL))
        return InstallResult(
            "ieee", [template, cls_file], f"Installed IEEE template + IEEEtran.cls to {ieee_dir}",
        )

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()


def _find_member(archive: tarfile.TarFile, filename: str) -> Optional[tarfile.TarInfo]:
    """Locate a file by basename anywhere in the archive."""
    for member in archive.getmembers():
        if member.isfile() and Path(member.name).name == filename:
            return member
    return None
