"""Backend verifier for validating an installed PyTorch environment.

Re-derives the backend from the environment's own interpreter instead of
trusting the plan, then checks that both agree.
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field

from mlenv.core.resolver import Backend, BuildOption
from mlenv.exceptions import BackendValidationError

from .env_manager import PythonEnvManager

logger = logging.getLogger(__name__)

# Runs inside the target environment; prints one JSON object
PROBE_SCRIPT = """
import json
import torch

info = {
    "torch_version": torch.__version__,
    "cuda_version": getattr(torch.version, "cuda", None),
    "hip_version": getattr(torch.version, "hip", None),
    "gpu_available": bool(torch.cuda.is_available()),
    "device_count": 0,
    "device_names": [],
    "devices": [],
    "gpu_matmul_ok": None,
    "gpu_error": None,
}
x = torch.randn(256, 256)
info["cpu_matmul_ok"] = tuple((x @ x).shape) == (256, 256)

if info["gpu_available"]:
    info["device_count"] = torch.cuda.device_count()
    for i in range(info["device_count"]):
        props = torch.cuda.get_device_properties(i)
        info["device_names"].append(props.name)
        info["devices"].append({
            "name": props.name,
            "compute_capability": f"{props.major}.{props.minor}",
            "total_memory_gb": round(props.total_memory / 1024 ** 3, 1),
        })
    try:
        y = torch.randn(1000, 1000, device="cuda:0")
        z = y @ y
        torch.cuda.synchronize()
        info["gpu_matmul_ok"] = tuple(z.shape) == (1000, 1000)
    except Exception as e:
        info["gpu_matmul_ok"] = False
        info["gpu_error"] = f"{type(e).__name__}: {e}"

print(json.dumps(info))
"""


@dataclass
class BackendReport:
    """Facts reported by torch inside the environment."""

    torch_version: str
    cuda_version: str | None = None
    hip_version: str | None = None
    gpu_available: bool = False
    device_names: list[str] = field(default_factory=list)
    cpu_matmul_ok: bool = True
    device_count: int = 0
    devices: list[dict] = field(default_factory=list)
    # None when no GPU was visible and the GPU matmul was not attempted
    gpu_matmul_ok: bool | None = None
    gpu_error: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "BackendReport":
        if "torch_version" not in data:
            raise BackendValidationError("Probe output is missing torch_version")
        return cls(
            torch_version=str(data["torch_version"]),
            cuda_version=data.get("cuda_version"),
            hip_version=data.get("hip_version"),
            gpu_available=bool(data.get("gpu_available", False)),
            device_names=list(data.get("device_names") or []),
            cpu_matmul_ok=bool(data.get("cpu_matmul_ok", True)),
            device_count=int(data.get("device_count") or 0),
            devices=list(data.get("devices") or []),
            gpu_matmul_ok=data.get("gpu_matmul_ok"),
            gpu_error=data.get("gpu_error"),
        )


@dataclass
class ValidationResult:
    """Outcome of comparing an installed backend with the selected option."""

    expected: Backend
    installed: Backend
    report: BackendReport
    consistent: bool
    messages: list[str] = field(default_factory=list)


def classify_backend(report: BackendReport) -> Backend:
    """Classify the installed build.

    ROCm builds also answer torch.cuda.is_available(), so HIP is checked first.
    """
    if report.hip_version:
        return Backend.ROCM
    if report.cuda_version:
        return Backend.CUDA
    return Backend.CPU


def check_consistency(option: BuildOption, report: BackendReport) -> ValidationResult:
    """Compare the backend the option targets with what was installed."""
    installed = classify_backend(report)
    messages = []
    consistent = installed == option.backend

    if not consistent:
        messages.append(
            f"Selected option '{option.label}' targets {option.backend.value}, "
            f"but the environment has a {installed.value} build of torch "
            f"{report.torch_version}"
        )
    elif installed != Backend.CPU and not report.gpu_available:
        messages.append(
            f"{installed.value.upper()} build installed but no GPU is visible to torch"
        )
    elif installed != Backend.CPU and report.gpu_matmul_ok is False:
        # Kernels missing for this architecture surface here, not in is_available()
        consistent = False
        messages.append(
            f"GPU computation on cuda:0 failed with the '{option.label}' build: "
            f"{report.gpu_error or 'unexpected result'}"
        )

    if not report.cpu_matmul_ok:
        messages.append("CPU computation check failed")

    return ValidationResult(
        expected=option.backend,
        installed=installed,
        report=report,
        consistent=consistent,
        messages=messages,
    )


class BackendVerifier:
    """Probes the environment interpreter for its torch backend."""

    def __init__(self, env_manager: PythonEnvManager, timeout: int = 120):
        """Initialize verifier.

        Args:
            env_manager: Environment to probe
            timeout: Seconds allowed for importing torch and running the probe
        """
        self.env_manager = env_manager
        self.timeout = timeout
        logger.debug("[BackendVerifier] Initialized")

    def probe(self) -> BackendReport:
        """Run the probe script inside the environment.

        Raises:
            BackendValidationError: If the environment is missing, torch cannot
                be imported, or the output is not valid JSON
        """
        if not self.env_manager.env_exists():
            raise BackendValidationError(
                f"Environment not found at {self.env_manager.env_path}"
            )

        cmd = [str(self.env_manager.python_exe), "-c", PROBE_SCRIPT]
        logger.debug("[BackendVerifier] Probing torch backend")

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired as e:
            raise BackendValidationError("Backend probe timed out") from e
        except OSError as e:
            raise BackendValidationError(f"Failed to run environment python: {e}") from e

        if result.returncode != 0:
            raise BackendValidationError(
                f"PyTorch not installed correctly: {result.stderr.strip()[-500:]}"
            )

        try:
            data = json.loads(result.stdout.strip().splitlines()[-1])
        except (json.JSONDecodeError, IndexError) as e:
            raise BackendValidationError(f"Unreadable probe output: {result.stdout!r}") from e

        report = BackendReport.from_dict(data)
        logger.info(
            f"[BackendVerifier] torch {report.torch_version}, "
            f"backend={classify_backend(report).value}, gpu_available={report.gpu_available}"
        )
        return report

    def verify(self, option: BuildOption) -> ValidationResult:
        """Probe the environment and check it against the selected option."""
        result = check_consistency(option, self.probe())
        status = "✓" if result.consistent else "✗"
        logger.info(
            f"[BackendVerifier] {status} expected {result.expected.value}, "
            f"installed {result.installed.value}"
        )
        for message in result.messages:
            logger.warning(f"[BackendVerifier] {message}")
        return result
