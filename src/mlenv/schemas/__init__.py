"""Pydantic response models for machine-readable CLI output."""

from .hardware import AmdInfoResponse, FactsResponse, NvidiaInfoResponse
from .plan import (
    BuildOptionResponse,
    DiagnosticResponse,
    PlanResponse,
    ValidationResponse,
)

__all__ = [
    "AmdInfoResponse",
    "FactsResponse",
    "NvidiaInfoResponse",
    "BuildOptionResponse",
    "DiagnosticResponse",
    "PlanResponse",
    "ValidationResponse",
]
