"""mlenv - Universal ML Environment Setup.

Detects the GPU (NVIDIA, AMD or none), resolves the matching PyTorch build,
installs it into a uv virtual environment, and validates the result.

Example:
    >>> from mlenv import HardwareCollector, resolve
    >>>
    >>> facts = HardwareCollector().collect()
    >>> plan = resolve(facts)
    >>> if plan.requires_user_choice:
    ...     plan = resolve(facts, user_choice=1)
    >>> print(plan.selected_option.source_index)

The package follows a layered architecture:
- Facts layer: collector probes vendor tools, classifier types their output
- Resolution layer: pure decision table from facts to a BuildPlan
- Installation layer: uv environment, plan installer, backend verifier
- CLI layer: caller-side prompting and reporting
"""

__version__ = "1.0.0"

from .core.collector import HardwareCollector
from .core.config import SetupConfig
from .core.facts import (
    Accelerator,
    AmdInfo,
    AmdVariant,
    ComputeCapability,
    GroupMembership,
    HardwareFacts,
    NvidiaInfo,
    Platform,
)
from .core.resolver import (
    Backend,
    BuildOption,
    BuildPlan,
    Diagnostic,
    PackageSpec,
    Severity,
    StabilityTier,
    resolve,
)
from .exceptions import (
    BackendValidationError,
    ConfigError,
    InstallError,
    InvalidChoiceError,
    ProbeUnavailableError,
    SetupError,
)

__all__ = [
    # Facts
    "HardwareCollector",
    "HardwareFacts",
    "Accelerator",
    "AmdInfo",
    "AmdVariant",
    "ComputeCapability",
    "GroupMembership",
    "NvidiaInfo",
    "Platform",
    # Resolution
    "resolve",
    "Backend",
    "BuildOption",
    "BuildPlan",
    "Diagnostic",
    "PackageSpec",
    "Severity",
    "StabilityTier",
    # Configuration
    "SetupConfig",
    # Exceptions
    "SetupError",
    "ConfigError",
    "ProbeUnavailableError",
    "InvalidChoiceError",
    "InstallError",
    "BackendValidationError",
]
