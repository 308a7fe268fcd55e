"""
Plan consumer and backend verifier tests.
"""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from conftest import amd_facts, nvidia_facts
from mlenv.core.facts import HardwareFacts
from mlenv.core.resolver import (
    CUDA_128_INDEX,
    CUDA_NIGHTLY_INDEX,
    Backend,
    resolve,
)
from mlenv.exceptions import BackendValidationError, InstallError
from mlenv.utils.installation import (
    BackendReport,
    BackendVerifier,
    PlanInstaller,
    PythonEnvManager,
    build_install_args,
    check_consistency,
    classify_backend,
)
from mlenv.utils.installation.verifier import PROBE_SCRIPT


def completed(returncode=0, stdout="", stderr=""):
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


def make_env(tmp_path, exists=True):
    env_path = tmp_path / "ml-env"
    if exists:
        (env_path / "bin").mkdir(parents=True)
        (env_path / "bin" / "python").write_text("")
    return PythonEnvManager(env_path)


# =============================================================================
# Install arguments
# =============================================================================


def test_install_args_stable_cuda(ampere_facts):
    option = resolve(ampere_facts).selected_option

    assert build_install_args(option) == [
        "install",
        "torch~=2.9",
        "torchvision",
        "torchaudio",
        "--index-url",
        CUDA_128_INDEX,
    ]


def test_install_args_nightly_allows_prerelease(blackwell_facts):
    option = resolve(blackwell_facts, 2).selected_option
    args = build_install_args(option)

    assert args[1:4] == ["torch", "torchvision", "torchaudio"]
    assert args[args.index("--index-url") + 1] == CUDA_NIGHTLY_INDEX
    assert "--prerelease=allow" in args


# =============================================================================
# PlanInstaller
# =============================================================================


def test_installer_rejects_unresolved_plan(tmp_path, blackwell_facts):
    installer = PlanInstaller(make_env(tmp_path))

    with pytest.raises(InstallError, match="choice is required"):
        installer.install(resolve(blackwell_facts))


def test_installer_dry_run(tmp_path, ampere_facts):
    messages = []
    env_manager = MagicMock(spec=PythonEnvManager)
    installer = PlanInstaller(env_manager, log_callback=messages.append)

    commands = installer.install(resolve(ampere_facts), ["numpy"], dry_run=True)

    assert commands[1] == ["install", "numpy"]
    assert messages[0].startswith("Would run: uv pip install torch~=2.9")
    env_manager.run_pip.assert_not_called()


def test_installer_runs_plan_then_extras(ampere_facts):
    env_manager = MagicMock(spec=PythonEnvManager)
    installer = PlanInstaller(env_manager)

    installer.install(resolve(ampere_facts), ["numpy", "pandas"])

    calls = env_manager.run_pip.call_args_list
    assert calls[0].args[:2] == ("install", "torch~=2.9")
    assert calls[1].args == ("install", "numpy", "pandas")
    env_manager.freeze.assert_called_once()


# =============================================================================
# PythonEnvManager
# =============================================================================


def test_run_pip_targets_env_python(tmp_path):
    env_manager = make_env(tmp_path)

    with patch("subprocess.run") as mock_run:
        mock_run.return_value = completed(stdout="ok")
        env_manager.run_pip("install", "torch")

        cmd = mock_run.call_args.args[0]
        assert cmd[:4] == ["uv", "pip", "install", "torch"]
        assert cmd[-2:] == ["--python", str(env_manager.python_exe)]


def test_run_pip_failure(tmp_path):
    env_manager = make_env(tmp_path)

    with patch("subprocess.run") as mock_run:
        mock_run.return_value = completed(returncode=1, stderr="No matching distribution")

        with pytest.raises(InstallError, match="No matching distribution"):
            env_manager.run_pip("install", "torch")


def test_run_pip_timeout(tmp_path):
    env_manager = make_env(tmp_path)

    with patch("subprocess.run") as mock_run:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="uv", timeout=1)

        with pytest.raises(InstallError, match="timed out"):
            env_manager.run_pip("install", "torch")


def test_create_env_skips_existing(tmp_path):
    env_manager = make_env(tmp_path)

    with patch("subprocess.run") as mock_run:
        assert env_manager.create_env("3.12") == env_manager.env_path
        mock_run.assert_not_called()


def test_create_env_runs_uv_venv(tmp_path):
    env_manager = make_env(tmp_path, exists=False)

    def fake_venv(cmd, **kwargs):
        (env_manager.env_path / "bin").mkdir(parents=True)
        env_manager.python_exe.write_text("")
        return completed()

    with patch("subprocess.run", side_effect=fake_venv) as mock_run:
        env_manager.create_env("3.12")

        assert mock_run.call_args.args[0] == [
            "uv",
            "venv",
            str(env_manager.env_path),
            "--python",
            "3.12",
        ]


def test_check_uv_missing(tmp_path):
    env_manager = make_env(tmp_path)

    with patch("shutil.which", return_value=None):
        with pytest.raises(InstallError, match="uv is not installed"):
            env_manager.check_uv()


def test_freeze_writes_requirements(tmp_path):
    env_manager = make_env(tmp_path)

    with patch("subprocess.run") as mock_run:
        mock_run.return_value = completed(stdout="torch==2.9.0\n")
        output = env_manager.freeze()

    assert output.read_text() == "torch==2.9.0\n"


# =============================================================================
# Backend classification
# =============================================================================


def test_rocm_checked_before_cuda():
    report = BackendReport(
        torch_version="2.9.0+rocm6.4", hip_version="6.4.4", gpu_available=True
    )

    assert classify_backend(report) == Backend.ROCM


def test_cuda_and_cpu_classification():
    assert classify_backend(BackendReport("2.9.0+cu128", cuda_version="12.8")) == Backend.CUDA
    assert classify_backend(BackendReport("2.9.0+cpu")) == Backend.CPU


def test_mismatch_is_inconsistent(ampere_facts):
    option = resolve(ampere_facts).selected_option

    result = check_consistency(option, BackendReport("2.9.0+cpu"))

    assert result.consistent is False
    assert result.installed == Backend.CPU
    assert "cuda-12.8" in result.messages[0]


def test_gpu_build_without_device_warns(ampere_facts):
    option = resolve(ampere_facts).selected_option
    report = BackendReport("2.9.0+cu128", cuda_version="12.8", gpu_available=False)

    result = check_consistency(option, report)

    assert result.consistent is True
    assert "no GPU is visible" in result.messages[0]


# =============================================================================
# Round trip: resolve -> stub install -> re-derive backend
# =============================================================================


def stub_install(option) -> BackendReport:
    """Pretend to install from the option's index and report what torch says."""
    index = option.source_index or ""
    if "rocm" in index:
        return BackendReport(
            "2.9.0+rocm", hip_version="6.4.4", gpu_available=True, gpu_matmul_ok=True
        )
    if "/cu" in index:
        return BackendReport(
            "2.9.0+cu128", cuda_version="12.8", gpu_available=True, gpu_matmul_ok=True
        )
    return BackendReport("2.9.0+cpu")


@pytest.mark.parametrize(
    "facts,choice",
    [
        (nvidia_facts(8, 6), None),
        (nvidia_facts(7, 0), None),
        (nvidia_facts(0, 0), None),
        (nvidia_facts(12, 0), 1),
        (nvidia_facts(12, 0), 2),
        (nvidia_facts(12, 0), 3),
        (amd_facts("AMD Radeon 8060S", "gfx1151"), 1),
        (amd_facts("AMD Radeon 8060S", "gfx1151"), 2),
        (amd_facts("AMD Radeon 8060S", "gfx1151"), 3),
        (amd_facts("AMD Radeon 8060S", "gfx1151"), 4),
        (amd_facts("AMD Radeon RX 7900 XTX", "gfx1100"), 1),
        (amd_facts("AMD Radeon RX 7900 XTX", "gfx1100"), 2),
        (HardwareFacts.cpu_only(), None),
    ],
)
def test_installed_backend_matches_selection(facts, choice):
    option = resolve(facts, choice).selected_option

    result = check_consistency(option, stub_install(option))

    assert result.consistent, result.messages


def test_strix_halo_community_build_not_classified_as_cuda(strix_halo_facts):
    option = resolve(strix_halo_facts, 1).selected_option

    result = check_consistency(option, stub_install(option))

    assert result.installed == Backend.ROCM
    assert result.installed != Backend.CUDA


# =============================================================================
# BackendVerifier
# =============================================================================


def test_probe_missing_env(tmp_path):
    verifier = BackendVerifier(make_env(tmp_path, exists=False))

    with pytest.raises(BackendValidationError, match="not found"):
        verifier.probe()


def test_probe_parses_last_json_line(tmp_path):
    payload = {
        "torch_version": "2.9.0+cu128",
        "cuda_version": "12.8",
        "hip_version": None,
        "gpu_available": True,
        "device_names": ["NVIDIA GeForce RTX 3090"],
        "cpu_matmul_ok": True,
    }
    verifier = BackendVerifier(make_env(tmp_path))

    with patch("subprocess.run") as mock_run:
        mock_run.return_value = completed(stdout="warning noise\n" + json.dumps(payload))
        report = verifier.probe()

    assert report.device_names == ["NVIDIA GeForce RTX 3090"]
    assert classify_backend(report) == Backend.CUDA


def test_probe_torch_import_failure(tmp_path):
    verifier = BackendVerifier(make_env(tmp_path))

    with patch("subprocess.run") as mock_run:
        mock_run.return_value = completed(
            returncode=1, stderr="ModuleNotFoundError: No module named 'torch'"
        )

        with pytest.raises(BackendValidationError, match="not installed correctly"):
            verifier.probe()


def test_verify_compares_with_option(tmp_path, rdna3_facts):
    verifier = BackendVerifier(make_env(tmp_path))
    option = resolve(rdna3_facts, 1).selected_option

    with patch.object(verifier, "probe", return_value=BackendReport("2.9.0+cu128", cuda_version="12.8")):
        result = verifier.verify(option)

    assert result.expected == Backend.ROCM
    assert result.installed == Backend.CUDA
    assert result.consistent is False


# =============================================================================
# GPU computation check
# =============================================================================


def test_validation_script_exercises_gpu():
    assert 'device="cuda:0"' in PROBE_SCRIPT
    assert "torch.cuda.synchronize()" in PROBE_SCRIPT
    assert "get_device_properties" in PROBE_SCRIPT


def test_failed_gpu_matmul_fails_validation(strix_halo_facts):
    option = resolve(strix_halo_facts, 2).selected_option
    report = BackendReport(
        "2.9.0+rocm7.9",
        hip_version="7.9.0",
        gpu_available=True,
        device_names=["AMD Radeon 8060S"],
        device_count=1,
        gpu_matmul_ok=False,
        gpu_error="RuntimeError: HIP error: invalid device function",
    )

    result = check_consistency(option, report)

    assert result.installed == Backend.ROCM
    assert result.consistent is False
    assert "invalid device function" in result.messages[0]
    assert "rocm-gfx1151-stable" in result.messages[0]


def test_successful_gpu_matmul_passes(blackwell_facts):
    option = resolve(blackwell_facts, 2).selected_option
    report = BackendReport(
        "2.10.0.dev+cu128", cuda_version="12.8", gpu_available=True, gpu_matmul_ok=True
    )

    result = check_consistency(option, report)

    assert result.consistent is True
    assert result.messages == []


def test_cpu_build_skips_gpu_check(cpu_facts):
    option = resolve(cpu_facts).selected_option

    result = check_consistency(option, BackendReport("2.9.0+cpu"))

    assert result.report.gpu_matmul_ok is None
    assert result.consistent is True


def test_verify_reports_device_details(tmp_path):
    payload = {
        "torch_version": "2.9.0+cu130",
        "cuda_version": "13.0",
        "hip_version": None,
        "gpu_available": True,
        "device_count": 1,
        "device_names": ["NVIDIA GeForce RTX 5090"],
        "devices": [
            {
                "name": "NVIDIA GeForce RTX 5090",
                "compute_capability": "12.0",
                "total_memory_gb": 31.4,
            }
        ],
        "gpu_matmul_ok": False,
        "gpu_error": "RuntimeError: CUDA error: no kernel image is available",
        "cpu_matmul_ok": True,
    }
    verifier = BackendVerifier(make_env(tmp_path))

    with patch("subprocess.run") as mock_run:
        mock_run.return_value = completed(stdout=json.dumps(payload))
        result = verifier.verify(resolve(nvidia_facts(12, 0), 1).selected_option)

    assert result.report.device_count == 1
    assert result.report.devices[0]["compute_capability"] == "12.0"
    assert result.consistent is False
    assert "no kernel image" in result.messages[0]
