"""
Classification of raw vendor tool output into typed hardware facts.

Kept free of I/O so the known name/architecture tables can be unit tested.
"""

from __future__ import annotations

import re

from mlenv.core.facts import AmdInfo, AmdVariant, ComputeCapability

# Marketing names that identify Strix Halo APUs
STRIX_HALO_NAME_PATTERNS = (
    "Radeon 8060S",
    "Ryzen AI MAX",
)

# LLVM target of the Strix Halo iGPU
STRIX_HALO_GFX_ARCHS = frozenset({"gfx1151"})

_CAPABILITY_RE = re.compile(r"^\s*(\d+)\.(\d+)\s*$")
_GFX_RE = re.compile(r"\bgfx[0-9a-f]+\b", re.IGNORECASE)
_AGENT_HEADER_RE = re.compile(r"^Agent \d+$")


def parse_compute_capability(raw: str | None) -> ComputeCapability | None:
    """Parse an nvidia-smi compute capability string.

    "8.6" becomes (8, 6), never the float 8.6.

    Args:
        raw: Capability string as printed by ``nvidia-smi --query-gpu=compute_cap``

    Returns:
        ComputeCapability, or None if the string is not "<int>.<int>"
    """
    if not raw:
        return None
    match = _CAPABILITY_RE.match(raw)
    if not match:
        return None
    return ComputeCapability(major=int(match.group(1)), minor=int(match.group(2)))


def extract_gfx_arch(text: str | None) -> str | None:
    """Return the first gfx architecture token (e.g. "gfx1151") in text."""
    if not text:
        return None
    match = _GFX_RE.search(text)
    return match.group(0).lower() if match else None


def classify_amd_variant(name: str, gfx_arch: str | None) -> AmdVariant:
    """Classify an AMD GPU; either the name or the architecture is sufficient."""
    lowered = name.lower()
    if any(pattern.lower() in lowered for pattern in STRIX_HALO_NAME_PATTERNS):
        return AmdVariant.STRIX_HALO
    if gfx_arch and gfx_arch.lower() in STRIX_HALO_GFX_ARCHS:
        return AmdVariant.STRIX_HALO
    return AmdVariant.OTHER_AMD


def classify_amd(name: str, gfx_arch: str | None) -> AmdInfo:
    """Build an AmdInfo record from a marketing name and architecture token."""
    return AmdInfo(
        variant=classify_amd_variant(name, gfx_arch),
        gfx_arch=gfx_arch,
        name=name,
    )


def nvidia_architecture_name(capability: ComputeCapability) -> str:
    """Human-readable architecture family for log and diagnostic messages."""
    if capability.major >= 12:
        return "Blackwell"
    if capability.major >= 9:
        return "Hopper"
    if capability.major == 8 and capability.minor >= 9:
        return "Ada Lovelace"
    if capability.major >= 8:
        return "Ampere"
    if capability.major == 7 and capability.minor >= 5:
        return "Turing"
    if capability.major >= 7:
        return "Volta"
    return "Legacy"


def parse_rocminfo_agents(output: str | None) -> list[dict[str, str]]:
    """Split ``rocminfo`` output into one key/value mapping per HSA agent.

    Only the first occurrence of a key within an agent is kept, so nested
    sections such as "ISA Info" do not overwrite the agent's own "Name".
    """
    agents: list[dict[str, str]] = []
    current: dict[str, str] | None = None

    for line in (output or "").splitlines():
        stripped = line.strip()
        if _AGENT_HEADER_RE.match(stripped):
            current = {}
            agents.append(current)
            continue
        if current is None:
            continue
        key, sep, value = stripped.partition(":")
        if sep and key.strip() and key.strip() not in current:
            current[key.strip()] = value.strip()

    return agents


def first_gpu_agent(agents: list[dict[str, str]]) -> dict[str, str] | None:
    """Return the first agent whose Device Type is GPU; CPU agents come first."""
    for agent in agents:
        if agent.get("Device Type", "").upper() == "GPU":
            return agent
    return None
