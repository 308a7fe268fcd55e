"""Installation utilities for mlenv.

Classes for creating the uv environment, installing a resolved build plan,
and verifying the installed backend.
"""

from .env_manager import PythonEnvManager
from .package_installer import PlanInstaller, build_install_args
from .verifier import (
    BackendReport,
    BackendVerifier,
    ValidationResult,
    check_consistency,
    classify_backend,
)

__all__ = [
    "PythonEnvManager",
    "PlanInstaller",
    "build_install_args",
    "BackendReport",
    "BackendVerifier",
    "ValidationResult",
    "check_consistency",
    "classify_backend",
]
