"""
Pytest configuration and shared fixtures for mlenv tests.
"""

import pytest

from mlenv.core.classifier import classify_amd
from mlenv.core.facts import (
    ComputeCapability,
    GroupMembership,
    HardwareFacts,
    Platform,
)
from mlenv.exceptions import ProbeUnavailableError


class FakeRunner:
    """Stands in for CommandRunner.

    ``outputs`` maps either a full command tuple or a bare program name to the
    stdout it should produce. An Exception value is raised instead; a command
    with no entry behaves like a missing tool.
    """

    def __init__(self, outputs: dict):
        self.outputs = outputs
        self.calls = []

    def run(self, *cmd: str) -> str:
        self.calls.append(cmd)
        if cmd in self.outputs:
            output = self.outputs[cmd]
        elif cmd[0] in self.outputs:
            output = self.outputs[cmd[0]]
        else:
            raise ProbeUnavailableError(f"{cmd[0]} not found")

        if isinstance(output, BaseException):
            raise output
        return output


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def proc_native(tmp_path):
    path = tmp_path / "version"
    path.write_text("Linux version 6.8.0-45-generic (buildd@lcy02-amd64-115)\n")
    return path


@pytest.fixture
def proc_wsl(tmp_path):
    path = tmp_path / "version"
    path.write_text(
        "Linux version 5.15.153.1-microsoft-standard-WSL2 (root@941d701f84f1)\n"
    )
    return path


def nvidia_facts(major, minor, platform=Platform.NATIVE, name="NVIDIA GeForce RTX"):
    return HardwareFacts.nvidia(
        name=name,
        compute_capability=ComputeCapability(major, minor),
        platform=platform,
    )


def amd_facts(name, gfx_arch, render=True, video=True):
    return HardwareFacts.amd(
        amd_info=classify_amd(name, gfx_arch),
        group_membership=GroupMembership(has_render_group=render, has_video_group=video),
    )


@pytest.fixture
def ampere_facts():
    return nvidia_facts(8, 6, name="NVIDIA GeForce RTX 3090")


@pytest.fixture
def blackwell_facts():
    return nvidia_facts(12, 0, name="NVIDIA GeForce RTX 5090")


@pytest.fixture
def strix_halo_facts():
    return amd_facts("AMD Radeon 8060S", "gfx1151")


@pytest.fixture
def rdna3_facts():
    return amd_facts("AMD Radeon RX 7900 XTX", "gfx1100")


@pytest.fixture
def cpu_facts():
    return HardwareFacts.cpu_only()
