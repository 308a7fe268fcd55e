"""Hardware facts response models for JSON output."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from mlenv.core.facts import HardwareFacts


class NvidiaInfoResponse(BaseModel):
    name: str
    compute_capability: str | None = None
    raw_capability: str = ""


class AmdInfoResponse(BaseModel):
    name: str
    variant: Literal["strix_halo", "other_amd"]
    gfx_arch: str | None = None
    has_render_group: bool = False
    has_video_group: bool = False


class FactsResponse(BaseModel):
    """Collected hardware facts."""

    platform: Literal["native", "hosted_vm"]
    accelerator: Literal["nvidia", "amd", "none"]
    nvidia: NvidiaInfoResponse | None = None
    amd: AmdInfoResponse | None = None

    @classmethod
    def from_facts(cls, facts: HardwareFacts) -> FactsResponse:
        nvidia = None
        if facts.nvidia_info is not None:
            capability = facts.nvidia_info.compute_capability
            nvidia = NvidiaInfoResponse(
                name=facts.nvidia_info.name,
                compute_capability=str(capability) if capability else None,
                raw_capability=facts.nvidia_info.raw_capability,
            )

        amd = None
        if facts.amd_info is not None:
            membership = facts.group_membership
            amd = AmdInfoResponse(
                name=facts.amd_info.name,
                variant=facts.amd_info.variant.value,
                gfx_arch=facts.amd_info.gfx_arch,
                has_render_group=membership.has_render_group,
                has_video_group=membership.has_video_group,
            )

        return cls(
            platform=facts.platform.value,
            accelerator=facts.accelerator.value,
            nvidia=nvidia,
            amd=amd,
        )
