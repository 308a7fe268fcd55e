"""Build plan and validation response models for JSON output."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from mlenv.core.resolver import BuildOption, BuildPlan
from mlenv.utils.installation.verifier import ValidationResult


class BuildOptionResponse(BaseModel):
    """One candidate build."""

    index: int = Field(ge=1)
    label: str
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    source_index: str | None = None
    prerelease: bool = False
    stability_tier: Literal["stable", "experimental", "community_supported"]
    backend: Literal["cuda", "rocm", "cpu"]

    @classmethod
    def from_option(cls, index: int, option: BuildOption) -> BuildOptionResponse:
        return cls(
            index=index,
            label=option.label,
            description=option.description,
            requirements=option.requirements,
            source_index=option.source_index,
            prerelease=option.prerelease,
            stability_tier=option.stability_tier.value,
            backend=option.backend.value,
        )


class DiagnosticResponse(BaseModel):
    severity: Literal["info", "warning"]
    message: str


class PlanResponse(BaseModel):
    """Resolved build plan."""

    requires_user_choice: bool
    selected: BuildOptionResponse | None = None
    candidates: list[BuildOptionResponse] = Field(default_factory=list)
    diagnostics: list[DiagnosticResponse] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "requires_user_choice": False,
                "selected": {
                    "index": 1,
                    "label": "cuda-12.8",
                    "requirements": ["torch~=2.9", "torchvision", "torchaudio"],
                    "source_index": "https://download.pytorch.org/whl/cu128",
                    "prerelease": False,
                    "stability_tier": "stable",
                    "backend": "cuda",
                },
                "candidates": [],
                "diagnostics": [],
            }
        }
    )

    @classmethod
    def from_plan(cls, plan: BuildPlan) -> PlanResponse:
        candidates = [
            BuildOptionResponse.from_option(i, option)
            for i, option in enumerate(plan.candidates, start=1)
        ]
        selected = None
        if plan.selected_option is not None:
            selected = next(
                c for c, o in zip(candidates, plan.candidates) if o == plan.selected_option
            )
        return cls(
            requires_user_choice=plan.requires_user_choice,
            selected=selected,
            candidates=candidates,
            diagnostics=[
                DiagnosticResponse(severity=d.severity.value, message=d.message)
                for d in plan.diagnostics
            ],
        )


class ValidationResponse(BaseModel):
    """Installed backend compared against the selected option."""

    consistent: bool
    expected_backend: Literal["cuda", "rocm", "cpu"]
    installed_backend: Literal["cuda", "rocm", "cpu"]
    torch_version: str
    gpu_available: bool = False
    device_names: list[str] = Field(default_factory=list)
    device_count: int = Field(default=0, ge=0)
    gpu_matmul_ok: bool | None = None
    messages: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ValidationResult) -> ValidationResponse:
        return cls(
            consistent=result.consistent,
            expected_backend=result.expected.value,
            installed_backend=result.installed.value,
            torch_version=result.report.torch_version,
            gpu_available=result.report.gpu_available,
            device_names=result.report.device_names,
            device_count=result.report.device_count,
            gpu_matmul_ok=result.report.gpu_matmul_ok,
            messages=result.messages,
        )
