"""Hardware facts, classification and build resolution."""

from .collector import HardwareCollector
from .config import SetupConfig
from .facts import Accelerator, AmdVariant, HardwareFacts, Platform
from .resolver import BuildOption, BuildPlan, Diagnostic, resolve

__all__ = [
    "HardwareCollector",
    "SetupConfig",
    "Accelerator",
    "AmdVariant",
    "HardwareFacts",
    "Platform",
    "BuildOption",
    "BuildPlan",
    "Diagnostic",
    "resolve",
]
