"""
JSON response model and packaging metadata tests.
"""

import warnings
from pathlib import Path

import pytest

from mlenv.core.resolver import resolve
from mlenv.schemas import PlanResponse, ValidationResponse
from mlenv.utils.installation import BackendReport, check_consistency

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def test_plan_schema_example_uses_model_config():
    assert "example" in PlanResponse.model_config["json_schema_extra"]

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        schema = PlanResponse.model_json_schema()

    assert schema["example"]["selected"]["label"] == "cuda-12.8"


def test_plan_response_marks_selected_candidate(strix_halo_facts):
    response = PlanResponse.from_plan(resolve(strix_halo_facts, 3))

    assert response.selected.index == 3
    assert response.selected.label == "rocm-nightly-experimental"
    assert len(response.candidates) == 4


def test_validation_response_carries_gpu_check(blackwell_facts):
    option = resolve(blackwell_facts, 1).selected_option
    report = BackendReport(
        "2.9.0+cu130",
        cuda_version="13.0",
        gpu_available=True,
        device_count=2,
        gpu_matmul_ok=True,
    )

    response = ValidationResponse.from_result(check_consistency(option, report))

    assert response.device_count == 2
    assert response.gpu_matmul_ok is True
    assert response.consistent is True


def test_package_metadata_has_no_readme_artifact():
    tomllib = pytest.importorskip("tomllib")
    with open(PROJECT_ROOT / "pyproject.toml", "rb") as f:
        project = tomllib.load(f)["project"]

    assert "readme" not in project
    assert project["scripts"]["mlenv"] == "mlenv.cli:main"
