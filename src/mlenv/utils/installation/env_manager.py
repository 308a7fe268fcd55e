"""Python environment manager for creating and using uv virtual environments."""

import logging
import shutil
import subprocess
from pathlib import Path

from mlenv.exceptions import InstallError

logger = logging.getLogger(__name__)


class PythonEnvManager:
    """Manages virtual environment creation and uv pip operations."""

    TIMEOUT = 1800  # 30 minutes; CUDA wheels are large

    def __init__(self, env_path: Path | str, uv_exe: str | None = None):
        """Initialize environment manager.

        Args:
            env_path: Directory of the virtual environment
            uv_exe: Path to uv executable; looked up on PATH if omitted
        """
        self.env_path = Path(env_path).expanduser()
        self.uv_exe = uv_exe or "uv"

        logger.debug(
            f"[PythonEnvManager] Initialized with env_path={self.env_path}, "
            f"uv_exe={self.uv_exe}"
        )

    def check_uv(self) -> str:
        """Return the uv version string.

        Raises:
            InstallError: If uv is not installed
        """
        if shutil.which(self.uv_exe) is None and not Path(self.uv_exe).exists():
            raise InstallError(
                "uv is not installed. Install it with: "
                "curl -LsSf https://astral.sh/uv/install.sh | sh"
            )
        result = self._run([self.uv_exe, "--version"], timeout=30)
        return result.stdout.strip()

    def create_env(self, python_version: str) -> Path:
        """Create the virtual environment unless it already exists.

        Returns:
            Path to the environment

        Raises:
            InstallError: If creation fails
        """
        if self.env_exists():
            logger.info(f"[PythonEnvManager] Environment already exists: {self.env_path}")
            return self.env_path

        logger.info(
            f"[PythonEnvManager] Creating Python {python_version} environment at {self.env_path}"
        )
        self.env_path.parent.mkdir(parents=True, exist_ok=True)
        self._run(
            [self.uv_exe, "venv", str(self.env_path), "--python", python_version]
        )

        if not self.env_exists():
            raise InstallError(f"Failed to create virtual environment at {self.env_path}")
        logger.info(f"[PythonEnvManager] Environment created: {self.env_path}")
        return self.env_path

    def run_pip(self, *args: str) -> subprocess.CompletedProcess:
        """Run ``uv pip`` against this environment.

        Raises:
            InstallError: If the command fails or times out
        """
        cmd = [self.uv_exe, "pip", *args, "--python", str(self.python_exe)]
        return self._run(cmd)

    def freeze(self, output_file: Path | None = None) -> Path:
        """Write ``uv pip freeze`` output into the environment directory."""
        output_file = output_file or self.env_path / "requirements-installed.txt"
        result = self.run_pip("freeze")
        output_file.write_text(result.stdout, encoding="utf-8")
        logger.info(f"[PythonEnvManager] Package list saved to {output_file}")
        return output_file

    @property
    def python_exe(self) -> Path:
        return self.env_path / "bin" / "python"

    def env_exists(self) -> bool:
        return self.python_exe.exists()

    def _run(
        self, cmd: list[str], timeout: int | None = None
    ) -> subprocess.CompletedProcess:
        logger.debug(f"[PythonEnvManager] Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout or self.TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"[PythonEnvManager] Command timed out: {cmd[0]} {cmd[1]}")
            raise InstallError(f"Command timed out: {' '.join(cmd[:3])}") from e
        except (FileNotFoundError, OSError) as e:
            raise InstallError(f"Failed to run {cmd[0]}: {e}") from e

        if result.returncode != 0:
            error_msg = result.stderr or result.stdout
            logger.error(f"[PythonEnvManager] Command failed: {error_msg}")
            raise InstallError(f"{' '.join(cmd[:3])} failed: {error_msg.strip()}")
        return result
