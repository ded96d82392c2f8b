"""Custom exception hierarchy for docpress."""

from enum import Enum
from typing import Optional, Dict, Any, List


class ErrorCode(str, Enum):
    """Standardized error codes for tool responses and logs."""

    # Preset errors
    PRESET_NOT_FOUND = "PRESET_NOT_FOUND"
    PRESET_CYCLE = "PRESET_CYCLE"
    INVALID_PRESET = "INVALID_PRESET"
    LOGO_NOT_FOUND = "LOGO_NOT_FOUND"

    # Template errors
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"

    # Draft errors
    INVALID_DOC_ID = "INVALID_DOC_ID"
    DRAFT_NOT_FOUND = "DRAFT_NOT_FOUND"

    # Input errors
    INVALID_INPUT = "INVALID_INPUT"

    # External process errors
    CONVERSION_FAILED = "CONVERSION_FAILED"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"

    # Environment errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class DocPressError(Exception):
    """
    Base exception for all docpress errors.

    Carries:
    - Human-readable message
    - Machine-readable error code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to a dictionary.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class PresetNotFoundError(DocPressError):
    """Preset not defined in any scope."""

    def __init__(self, preset_name: str, available: Optional[List[str]] = None):
        message = f"Preset '{preset_name}' not found"
        if available is not None:
            message += f". Available presets: {', '.join(available)}"
        super().__init__(
            message,
            ErrorCode.PRESET_NOT_FOUND,
            details={"preset": preset_name, "available": available or []}
        )


class PresetCycleError(DocPressError):
    """Preset inheritance chain loops back on itself."""

    def __init__(self, chain: List[str]):
        super().__init__(
            f"Preset inheritance cycle: {' -> '.join(chain)}",
            ErrorCode.PRESET_CYCLE,
            details={"chain": chain}
        )


class InvalidPresetError(DocPressError):
    """Preset file cannot be parsed or does not match the preset schema."""

    def __init__(self, preset_name: str, reason: str):
        super().__init__(
            f"Invalid preset '{preset_name}': {reason}",
            ErrorCode.INVALID_PRESET,
            details={"preset": preset_name}
        )


class LogoNotFoundError(DocPressError):
    """Requested logo option is not declared by the preset."""

    def __init__(self, logo_option: str, available: List[str]):
        super().__init__(
            f"Logo option '{logo_option}' not found. Available options: {', '.join(available)}",
            ErrorCode.LOGO_NOT_FOUND,
            details={"logo": logo_option, "available": available}
        )


class TemplateNotFoundError(DocPressError):
    """Template file referenced by a preset is not installed."""

    def __init__(self, template: str, hint: str = "Use docs_templates_install."):
        super().__init__(
            f"Template '{template}' not found. {hint}".strip(),
            ErrorCode.TEMPLATE_NOT_FOUND,
            details={"template": template}
        )


class InvalidDocIdError(DocPressError):
    """Draft identifier does not match the generated id format."""

    def __init__(self, doc_id: str):
        super().__init__(
            f"Invalid document ID format: {doc_id}",
            ErrorCode.INVALID_DOC_ID,
            details={"doc_id": doc_id}
        )


class DraftNotFoundError(DocPressError):
    """Draft is not in the registry, or its file is gone."""

    def __init__(self, doc_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Draft not found: {doc_id}. Use docs_list_drafts to see available drafts.",
            ErrorCode.DRAFT_NOT_FOUND,
            details={"doc_id": doc_id}
        )


class InvalidInputError(DocPressError):
    """Tool argument failed validation."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.INVALID_INPUT,
            details=details
        )


class ConversionError(DocPressError):
    """External conversion or compilation process exited non-zero."""

    def __init__(self, message: str, command: Optional[List[str]] = None):
        details = {"command": command} if command else {}
        super().__init__(
            message,
            ErrorCode.CONVERSION_FAILED,
            details=details
        )


class DownloadError(DocPressError):
    """Template or style download failed."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Download failed for {url}: {reason}",
            ErrorCode.DOWNLOAD_FAILED,
            details={"url": url}
        )


class ConfigurationError(DocPressError):
    """Runtime environment cannot support the requested operation."""

    def __init__(self, message: str):
        super().__init__(
            message,
            ErrorCode.CONFIGURATION_ERROR,
        )
