"""Guarded application of agent-generated test patches."""

from .config import ConfigError, Settings, load_settings
from .tools.patch import ApplyOutcome, ApplyReason, PatchApplyPipeline

__version__ = "0.1.0"

__all__ = [
    "ApplyOutcome",
    "ApplyReason",
    "ConfigError",
    "PatchApplyPipeline",
    "Settings",
    "__version__",
    "load_settings",
]
