"""
Build resolver: maps hardware facts to a PyTorch build plan.

The resolver is a pure function of (facts, user_choice, settings). It never
prompts; when several builds are viable it returns the candidates and leaves
the choice to the caller, who re-invokes it with a 1-based index.

@requires: HardwareFacts from the collector
@returns: BuildPlan handed to the plan consumer
@errors: InvalidChoiceError (out-of-range user_choice only)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from mlenv.core.classifier import nvidia_architecture_name
from mlenv.core.config import ResolverSettings
from mlenv.core.facts import Accelerator, AmdVariant, HardwareFacts, Platform
from mlenv.exceptions import InvalidChoiceError
from mlenv.utils.logger import get_logger

logger = get_logger("mlenv.resolver")

PYTORCH_INDEX = "https://download.pytorch.org/whl"
CUDA_130_INDEX = f"{PYTORCH_INDEX}/cu130"
CUDA_128_INDEX = f"{PYTORCH_INDEX}/cu128"
CUDA_NIGHTLY_INDEX = f"{PYTORCH_INDEX}/nightly/cu128"
ROCM_STABLE_INDEX = f"{PYTORCH_INDEX}/rocm6.2"
CPU_INDEX = f"{PYTORCH_INDEX}/cpu"
GFX1151_NIGHTLY_INDEX = "https://rocm.nightlies.amd.com/v2/gfx1151/"
GFX1151_STABLE_INDEX = "https://repo.amd.com/rocm/whl/gfx1151/"

STANDARD_BUILD_INCOMPATIBLE = (
    "Strix Halo (gfx1151) detected: standard builds are incompatible with this "
    "architecture; use an AMD community or gfx1151-specific build"
)
CAPABILITY_UNRECOGNIZED = "capability unrecognized, defaulting to conservative build"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"


class StabilityTier(str, Enum):
    STABLE = "stable"
    EXPERIMENTAL = "experimental"
    COMMUNITY_SUPPORTED = "community_supported"


class Backend(str, Enum):
    """Compute backend a build targets; also what the validator re-derives."""

    CUDA = "cuda"
    ROCM = "rocm"
    CPU = "cpu"


@dataclass(frozen=True)
class PackageSpec:
    """A single requirement, e.g. torch~=2.9."""

    name: str
    version_constraint: str = ""

    @property
    def requirement(self) -> str:
        return f"{self.name}{self.version_constraint}"


@dataclass(frozen=True)
class BuildOption:
    """One candidate PyTorch build."""

    label: str
    packages: tuple[PackageSpec, ...]
    source_index: str | None
    prerelease: bool
    stability_tier: StabilityTier
    backend: Backend
    description: str = ""

    @property
    def requirements(self) -> list[str]:
        return [p.requirement for p in self.packages]


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    message: str


@dataclass(frozen=True)
class BuildPlan:
    """Resolver output.

    selected_option is None exactly when requires_user_choice is True; the
    caller then picks from candidates and resolves again.
    """

    selected_option: BuildOption | None
    candidates: tuple[BuildOption, ...]
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)
    requires_user_choice: bool = False

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]


def _torch_packages(constraint: str = "") -> tuple[PackageSpec, ...]:
    return (
        PackageSpec("torch", constraint),
        PackageSpec("torchvision"),
        PackageSpec("torchaudio"),
    )


def _stable_constraint(settings: ResolverSettings) -> str:
    return f"~={settings.torch_version}"


def _cpu_option(settings: ResolverSettings, description: str) -> BuildOption:
    return BuildOption(
        label="cpu",
        packages=_torch_packages(_stable_constraint(settings)),
        source_index=CPU_INDEX,
        prerelease=False,
        stability_tier=StabilityTier.STABLE,
        backend=Backend.CPU,
        description=description,
    )


def _cuda_128_option(
    settings: ResolverSettings, tier: StabilityTier, description: str
) -> BuildOption:
    return BuildOption(
        label="cuda-12.8",
        packages=_torch_packages(_stable_constraint(settings)),
        source_index=CUDA_128_INDEX,
        prerelease=False,
        stability_tier=tier,
        backend=Backend.CUDA,
        description=description,
    )


def _nvidia_candidates(
    facts: HardwareFacts, settings: ResolverSettings, diagnostics: list[Diagnostic]
) -> list[BuildOption]:
    info = facts.nvidia_info
    capability = info.compute_capability

    if capability is None:
        diagnostics.append(
            Diagnostic(
                Severity.INFO,
                f"{info.name}: compute {CAPABILITY_UNRECOGNIZED} "
                f"(reported {info.raw_capability!r})",
            )
        )
        return [
            _cuda_128_option(
                settings, StabilityTier.STABLE, "PyTorch stable with CUDA 12.8"
            )
        ]

    if capability.is_zero:
        # 0.0 is the placeholder reported without a usable GPU, not an old GPU
        diagnostics.append(
            Diagnostic(
                Severity.INFO,
                "NVIDIA tooling reported compute capability 0.0; no usable GPU, "
                "using CPU-only build",
            )
        )
        return [_cpu_option(settings, "CPU-only PyTorch")]

    arch = nvidia_architecture_name(capability)

    if capability.major >= 12:
        diagnostics.append(
            Diagnostic(
                Severity.WARNING,
                f"{arch} architecture detected ({capability.sm_version}): "
                f"PyTorch {settings.torch_version} support is experimental",
            )
        )
        return [
            BuildOption(
                label="cuda-13.0",
                packages=_torch_packages(_stable_constraint(settings)),
                source_index=CUDA_130_INDEX,
                prerelease=False,
                stability_tier=StabilityTier.EXPERIMENTAL,
                backend=Backend.CUDA,
                description="PyTorch stable with CUDA 13.0 (may have issues)",
            ),
            BuildOption(
                label="nightly-cu128",
                packages=_torch_packages(),
                source_index=CUDA_NIGHTLY_INDEX,
                prerelease=True,
                stability_tier=StabilityTier.EXPERIMENTAL,
                backend=Backend.CUDA,
                description="PyTorch nightly (recommended for cutting-edge GPUs)",
            ),
            _cuda_128_option(
                settings,
                StabilityTier.EXPERIMENTAL,
                "PyTorch stable with CUDA 12.8 (may fall back to PTX)",
            ),
        ]

    if capability.major >= 8:
        diagnostics.append(
            Diagnostic(
                Severity.INFO,
                f"{arch} architecture detected ({capability.sm_version}), using CUDA 12.8",
            )
        )
    else:
        diagnostics.append(
            Diagnostic(
                Severity.INFO,
                f"Older GPU architecture ({capability.sm_version}): using CUDA 12.8 "
                "with reduced optimization",
            )
        )
    return [
        _cuda_128_option(settings, StabilityTier.STABLE, "PyTorch stable with CUDA 12.8")
    ]


def _amd_candidates(
    facts: HardwareFacts, settings: ResolverSettings, diagnostics: list[Diagnostic]
) -> list[BuildOption]:
    info = facts.amd_info

    if info.variant == AmdVariant.STRIX_HALO:
        diagnostics.append(Diagnostic(Severity.WARNING, STANDARD_BUILD_INCOMPATIBLE))
        return [
            BuildOption(
                label="rocm-nightly",
                packages=_torch_packages(),
                source_index=GFX1151_NIGHTLY_INDEX,
                prerelease=True,
                stability_tier=StabilityTier.COMMUNITY_SUPPORTED,
                backend=Backend.ROCM,
                description="ROCm 6.4.4+ nightlies (recommended, community tested)",
            ),
            BuildOption(
                label="rocm-gfx1151-stable",
                packages=_torch_packages(),
                source_index=GFX1151_STABLE_INDEX,
                prerelease=False,
                stability_tier=StabilityTier.COMMUNITY_SUPPORTED,
                backend=Backend.ROCM,
                description="ROCm 7.9 stable gfx1151 build from AMD",
            ),
            BuildOption(
                label="rocm-nightly-experimental",
                packages=_torch_packages(),
                source_index=GFX1151_NIGHTLY_INDEX,
                prerelease=True,
                stability_tier=StabilityTier.COMMUNITY_SUPPORTED,
                backend=Backend.ROCM,
                description="ROCm 7.0.2+ nightlies (latest features, may be unstable)",
            ),
            _cpu_option(settings, "CPU-only PyTorch (safe fallback)"),
        ]

    return [
        BuildOption(
            label="rocm-6.2",
            # Fixed ROCm 6.2 index; it does not carry the current torch series
            packages=_torch_packages(),
            source_index=ROCM_STABLE_INDEX,
            prerelease=False,
            stability_tier=StabilityTier.STABLE,
            backend=Backend.ROCM,
            description="PyTorch with ROCm 6.2",
        ),
        _cpu_option(settings, "CPU-only PyTorch"),
    ]


def candidate_options(
    facts: HardwareFacts, settings: ResolverSettings | None = None
) -> tuple[list[BuildOption], list[Diagnostic]]:
    """Return the viable build options and hardware diagnostics for facts."""
    settings = settings or ResolverSettings()
    diagnostics: list[Diagnostic] = []

    if facts.accelerator == Accelerator.NVIDIA:
        candidates = _nvidia_candidates(facts, settings, diagnostics)
    elif facts.accelerator == Accelerator.AMD:
        candidates = _amd_candidates(facts, settings, diagnostics)
    else:
        candidates = [_cpu_option(settings, "CPU-only PyTorch")]

    return candidates, diagnostics


def _selection_diagnostics(
    facts: HardwareFacts, option: BuildOption
) -> list[Diagnostic]:
    notes = []
    if facts.platform == Platform.HOSTED_VM and option.backend == Backend.CUDA:
        notes.append(
            Diagnostic(
                Severity.INFO,
                "WSL2 detected: using the host's NVIDIA driver; do not install "
                "Linux NVIDIA drivers inside WSL2",
            )
        )
    if (
        facts.amd_info is not None
        and facts.amd_info.variant == AmdVariant.STRIX_HALO
        and option.backend == Backend.ROCM
    ):
        notes.append(
            Diagnostic(
                Severity.INFO,
                "For large models (30B+), configure GTT memory to extend GPU-visible RAM",
            )
        )
    return notes


def resolve(
    facts: HardwareFacts,
    user_choice: int | None = None,
    settings: ResolverSettings | None = None,
) -> BuildPlan:
    """Resolve a build plan for the given hardware facts.

    Args:
        facts: Collected hardware facts
        user_choice: 1-based index into the candidate list, if the caller chose
        settings: Resolver settings; non_interactive selects the first candidate

    Returns:
        BuildPlan; requires_user_choice is set when the caller must pick an
        option (or confirm missing AMD group membership) and resolve again

    Raises:
        InvalidChoiceError: If user_choice is outside 1..len(candidates)
    """
    settings = settings or ResolverSettings()
    candidates, diagnostics = candidate_options(facts, settings)

    needs_confirmation = False
    membership = facts.group_membership
    if membership is not None and not membership.complete:
        missing = ", ".join(membership.missing_groups)
        diagnostics.insert(
            0,
            Diagnostic(
                Severity.WARNING,
                f"User not in required groups: {missing}; add with "
                "'sudo usermod -aG render,video $USER' and log in again",
            ),
        )
        needs_confirmation = user_choice is None and not settings.accept_missing_groups

    if user_choice is not None:
        if not 1 <= user_choice <= len(candidates):
            raise InvalidChoiceError(user_choice, len(candidates))
        selected = candidates[user_choice - 1]
    elif needs_confirmation:
        selected = None
    elif len(candidates) == 1 or settings.non_interactive:
        selected = candidates[0]
    else:
        selected = None

    if selected is not None:
        diagnostics.extend(_selection_diagnostics(facts, selected))

    plan = BuildPlan(
        selected_option=selected,
        candidates=tuple(candidates),
        diagnostics=tuple(diagnostics),
        requires_user_choice=selected is None,
    )
    logger.debug(
        f"[BuildResolver] accelerator={facts.accelerator.value}, "
        f"candidates={[c.label for c in candidates]}, "
        f"selected={selected.label if selected else None}"
    )
    return plan
