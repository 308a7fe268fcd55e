"""
Hardware facts produced by the collector and consumed by the resolver.

All records are immutable: they are collected once per run and passed by value.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Platform(str, Enum):
    """Where the kernel is running."""

    NATIVE = "native"
    HOSTED_VM = "hosted_vm"  # e.g. WSL2 on a Windows host


class Accelerator(str, Enum):
    """Accelerator bucket; a machine falls into exactly one."""

    NVIDIA = "nvidia"
    AMD = "amd"
    NONE = "none"


class AmdVariant(str, Enum):
    """Known AMD GPU families that need distinct builds."""

    STRIX_HALO = "strix_halo"
    OTHER_AMD = "other_amd"


@dataclass(frozen=True, order=True)
class ComputeCapability:
    """NVIDIA compute capability, compared as integers."""

    major: int
    minor: int

    def __post_init__(self):
        if self.major < 0 or self.minor < 0:
            raise ValueError(
                f"Compute capability must be non-negative, got {self.major}.{self.minor}"
            )

    @property
    def is_zero(self) -> bool:
        """True for the 0.0 placeholder some tools report without a real GPU."""
        return self.major == 0 and self.minor == 0

    @property
    def sm_version(self) -> str:
        return f"sm_{self.major}{self.minor}"

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class NvidiaInfo:
    """Identity of the first NVIDIA GPU.

    Attributes:
        name: Device name reported by nvidia-smi
        compute_capability: Parsed capability, or None if the raw string was
            not recognized
        raw_capability: Capability string exactly as reported
    """

    name: str
    compute_capability: ComputeCapability | None
    raw_capability: str = ""


@dataclass(frozen=True)
class AmdInfo:
    """Identity of the first AMD GPU."""

    variant: AmdVariant
    gfx_arch: str | None
    name: str


@dataclass(frozen=True)
class GroupMembership:
    """Whether the current user can reach the AMD device nodes."""

    has_render_group: bool
    has_video_group: bool

    @property
    def missing_groups(self) -> list[str]:
        missing = []
        if not self.has_render_group:
            missing.append("render")
        if not self.has_video_group:
            missing.append("video")
        return missing

    @property
    def complete(self) -> bool:
        return self.has_render_group and self.has_video_group


@dataclass(frozen=True)
class HardwareFacts:
    """Normalized hardware facts for one run.

    Invariants:
        - nvidia_info is set iff accelerator is NVIDIA
        - amd_info and group_membership are set iff accelerator is AMD
    """

    platform: Platform
    accelerator: Accelerator
    nvidia_info: NvidiaInfo | None = None
    amd_info: AmdInfo | None = None
    group_membership: GroupMembership | None = None

    def __post_init__(self):
        if (self.accelerator == Accelerator.NVIDIA) != (self.nvidia_info is not None):
            raise ValueError("nvidia_info must be present iff accelerator is NVIDIA")
        if (self.accelerator == Accelerator.AMD) != (self.amd_info is not None):
            raise ValueError("amd_info must be present iff accelerator is AMD")
        if (self.accelerator == Accelerator.AMD) != (
            self.group_membership is not None
        ):
            raise ValueError("group_membership must be present iff accelerator is AMD")

    @classmethod
    def cpu_only(cls, platform: Platform = Platform.NATIVE) -> HardwareFacts:
        return cls(platform=platform, accelerator=Accelerator.NONE)

    @classmethod
    def nvidia(
        cls,
        name: str,
        compute_capability: ComputeCapability | None,
        raw_capability: str = "",
        platform: Platform = Platform.NATIVE,
    ) -> HardwareFacts:
        return cls(
            platform=platform,
            accelerator=Accelerator.NVIDIA,
            nvidia_info=NvidiaInfo(
                name=name,
                compute_capability=compute_capability,
                raw_capability=raw_capability or str(compute_capability or ""),
            ),
        )

    @classmethod
    def amd(
        cls,
        amd_info: AmdInfo,
        group_membership: GroupMembership,
        platform: Platform = Platform.NATIVE,
    ) -> HardwareFacts:
        return cls(
            platform=platform,
            accelerator=Accelerator.AMD,
            amd_info=amd_info,
            group_membership=group_membership,
        )
