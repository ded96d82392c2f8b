"""Application configuration with validation."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError

BUILTIN_RESOURCES_DIR = Path(__file__).resolve().parent / "resources"


class Settings(BaseSettings):
    """
    docpress settings.

    Every field can be set through a ``DOCPRESS_``-prefixed environment
    variable (e.g. ``DOCPRESS_PANDOC_BIN=/opt/pandoc/bin/pandoc``) or a
    ``.env`` file in the working directory.
    """

    # Scopes
    project_root: Optional[Path] = Field(
        default=None,
        description="Project directory for project-scope presets and drafts (default: cwd)"
    )
    user_config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "docpress",
        description="User scope directory; templates are installed here"
    )
    builtin_dir: Path = Field(
        default=BUILTIN_RESOURCES_DIR,
        description="Built-in scope directory shipped with the package"
    )

    # External programs
    pandoc_bin: str = Field(default="pandoc", description="Pandoc executable")
    latex_bin: str = Field(default="pdflatex", description="LaTeX compiler executable")
    # None = wait forever, matching a plain pandoc invocation.
    conversion_timeout: Optional[float] = Field(
        default=None,
        description="Seconds before a conversion is abandoned (unset = no timeout)"
    )
    stdout_tail_lines: int = Field(
        default=30,
        description="Lines of stdout reported when a failing process wrote nothing to stderr"
    )

    # Template installation
    download_timeout: float = Field(
        default=60.0,
        description="HTTP timeout in seconds for template downloads"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="text",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ('json', 'text'):
            raise ValueError("Invalid log format. Must be 'json' or 'text'")
        return v_lower

    def get_project_root(self) -> Path:
        """
        Project directory used for project-scope lookups and drafts.

        Raises:
            ConfigurationError: If the directory resolves to the filesystem root,
                which happens when the server is launched outside any project.
        """
        root = (self.project_root or Path.cwd()).expanduser().resolve()
        if root == Path(root.anchor):
            raise ConfigurationError(
                "Cannot determine project directory. Please run from a project directory."
            )
        return root

    class Config:
        """Pydantic configuration."""
        env_prefix = "DOCPRESS_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
