"""docpress: preset-driven pandoc documents over MCP."""

from .builder import ConversionResult, PandocBuilder, pandoc
from .presets import PresetManager, ResolvedPreset
from .templates import TemplateResolver

__version__ = "0.1.0"

__all__ = [
    "ConversionResult",
    "PandocBuilder",
    "PresetManager",
    "ResolvedPreset",
    "TemplateResolver",
    "pandoc",
]
