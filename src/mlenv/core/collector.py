"""
Hardware facts collector.

Read-only probes of the vendor tools. Each probe runs with a timeout, and a
missing tool, non-zero exit or timeout means "not available". Facts are
assembled only after every probe has finished, so an interrupted run never
yields a partial record.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from mlenv.core.classifier import (
    classify_amd,
    extract_gfx_arch,
    first_gpu_agent,
    parse_compute_capability,
    parse_rocminfo_agents,
)
from mlenv.core.config import ProbeSettings
from mlenv.core.facts import (
    Accelerator,
    AmdInfo,
    GroupMembership,
    HardwareFacts,
    NvidiaInfo,
    Platform,
)
from mlenv.exceptions import ProbeUnavailableError
from mlenv.utils.logger import get_logger

logger = get_logger("mlenv.collector")

PROC_VERSION = Path("/proc/version")
HOSTED_VM_MARKER = "microsoft"
UNKNOWN_AMD_NAME = "Unknown AMD GPU"


class CommandRunner:
    """Runs external commands with a fixed timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout

    def run(self, *cmd: str) -> str:
        """Run a command and return its stdout.

        Raises:
            ProbeUnavailableError: If the tool is missing, fails, or times out
        """
        logger.debug(f"[CommandRunner] Executing: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                list(cmd),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
            raise ProbeUnavailableError(
                f"{cmd[0]} unavailable: {type(e).__name__}: {e}"
            ) from e

        if result.returncode != 0:
            raise ProbeUnavailableError(
                f"{cmd[0]} exited with {result.returncode}: {result.stderr.strip()[:200]}"
            )
        return result.stdout


class HardwareCollector:
    """Collects HardwareFacts from the running machine."""

    def __init__(
        self,
        settings: ProbeSettings | None = None,
        runner: CommandRunner | None = None,
        proc_version: Path = PROC_VERSION,
    ):
        self.settings = settings or ProbeSettings()
        self.runner = runner or CommandRunner(self.settings.timeout_seconds)
        self.proc_version = proc_version

    def collect(self) -> HardwareFacts:
        """Probe the platform and accelerator and return normalized facts."""
        logger.info("[HardwareCollector] Detecting system configuration")
        platform = self.detect_platform()
        accelerator = self.detect_accelerator()

        nvidia_info = None
        amd_info = None
        membership = None

        if accelerator == Accelerator.NVIDIA:
            nvidia_info = self.query_nvidia()
            if nvidia_info is None:
                logger.warning(
                    "[HardwareCollector] NVIDIA query failed, treating as no accelerator"
                )
                accelerator = Accelerator.NONE
        elif accelerator == Accelerator.AMD:
            amd_info = self.query_amd()
            membership = self.check_groups()

        facts = HardwareFacts(
            platform=platform,
            accelerator=accelerator,
            nvidia_info=nvidia_info,
            amd_info=amd_info,
            group_membership=membership,
        )
        logger.info(
            f"[HardwareCollector] Platform: {platform.value}, GPU type: {accelerator.value}"
        )
        return facts

    def detect_platform(self) -> Platform:
        """HostedVM if the kernel version names a Microsoft host (WSL)."""
        try:
            version = self.proc_version.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"[HardwareCollector] Cannot read {self.proc_version}: {e}")
            return Platform.NATIVE

        if HOSTED_VM_MARKER in version.lower():
            return Platform.HOSTED_VM
        return Platform.NATIVE

    def detect_accelerator(self) -> Accelerator:
        """Probe NVIDIA first, then AMD; the first responding probe wins."""
        if self._probe("nvidia-smi"):
            return Accelerator.NVIDIA
        if self._probe("rocm-smi"):
            return Accelerator.AMD
        if self._lspci_amd_line() is not None:
            return Accelerator.AMD
        return Accelerator.NONE

    def query_nvidia(self) -> NvidiaInfo | None:
        """Name and compute capability of the first NVIDIA GPU, or None."""
        try:
            output = self.runner.run(
                "nvidia-smi",
                "--query-gpu=name,compute_cap",
                "--format=csv,noheader",
            )
        except ProbeUnavailableError as e:
            logger.debug(f"[HardwareCollector] {e}")
            return None

        lines = [line.strip() for line in output.splitlines() if line.strip()]
        if not lines:
            return None

        name, _, raw_capability = lines[0].rpartition(",")
        if not name:
            # No comma at all: a name without capability
            name, raw_capability = raw_capability, ""
        name = name.strip()
        raw_capability = raw_capability.strip()

        capability = parse_compute_capability(raw_capability)
        logger.info(
            f"[HardwareCollector] GPU: {name}, compute capability: {raw_capability or '?'}"
        )
        return NvidiaInfo(
            name=name,
            compute_capability=capability,
            raw_capability=raw_capability,
        )

    def query_amd(self) -> AmdInfo:
        """Marketing name and gfx architecture of the first AMD GPU."""
        name = UNKNOWN_AMD_NAME
        gfx_arch = None

        try:
            output = self.runner.run("rocminfo")
        except ProbeUnavailableError as e:
            logger.debug(f"[HardwareCollector] {e}")
            line = self._lspci_amd_line()
            if line:
                name = line
                gfx_arch = extract_gfx_arch(line)
        else:
            gpu = first_gpu_agent(parse_rocminfo_agents(output))
            if gpu is None:
                logger.debug("[HardwareCollector] rocminfo lists no GPU agent")
                gfx_arch = extract_gfx_arch(output)
            else:
                name = gpu.get("Marketing Name") or UNKNOWN_AMD_NAME
                gfx_arch = extract_gfx_arch(gpu.get("Name")) or extract_gfx_arch(
                    " ".join(gpu.values())
                )

        info = classify_amd(name, gfx_arch)
        logger.info(
            f"[HardwareCollector] AMD GPU: {info.name}, architecture: "
            f"{info.gfx_arch or 'unknown'}, variant: {info.variant.value}"
        )
        return info

    def check_groups(self) -> GroupMembership:
        """Check the current user's groups for render and video."""
        try:
            groups = set(self.runner.run("id", "-nG").split())
        except ProbeUnavailableError as e:
            logger.debug(f"[HardwareCollector] {e}")
            groups = set()

        membership = GroupMembership(
            has_render_group="render" in groups,
            has_video_group="video" in groups,
        )
        if not membership.complete:
            logger.warning(
                f"[HardwareCollector] User not in required groups: "
                f"{', '.join(membership.missing_groups)}"
            )
        return membership

    def _probe(self, *cmd: str) -> bool:
        try:
            self.runner.run(*cmd)
            return True
        except ProbeUnavailableError as e:
            logger.debug(f"[HardwareCollector] {e}")
            return False

    def _lspci_amd_line(self) -> str | None:
        try:
            output = self.runner.run("lspci")
        except ProbeUnavailableError as e:
            logger.debug(f"[HardwareCollector] {e}")
            return None

        for line in output.splitlines():
            if "VGA" in line and "AMD" in line:
                return line.strip()
        return None
