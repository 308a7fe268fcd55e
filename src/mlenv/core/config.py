"""
Configuration Parser and Validator (YAML)

@requires: Optional YAML file matching the SetupConfig schema
@returns: Immutable SetupConfig passed explicitly to collector and resolver
@errors: ConfigError
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mlenv.exceptions import ConfigError

# ML libraries installed alongside the PyTorch build
DEFAULT_EXTRA_PACKAGES = [
    "numpy>=1.26.0,<2.0.0",
    "pandas>=2.0.0",
    "matplotlib>=3.8.0",
    "scikit-learn>=1.4.0",
    "jupyter>=1.0.0",
    "ipython>=8.20.0",
    "tqdm>=4.66.0",
    "tensorboard>=2.16.0",
]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ProbeSettings(_Frozen):
    """Settings for hardware probes."""

    timeout_seconds: float = Field(default=5.0, ge=2.0, le=30.0)


class ResolverSettings(_Frozen):
    """Settings that influence build selection.

    Attributes:
        non_interactive: Select the first (most tested) candidate instead of
            asking the caller to choose
        accept_missing_groups: Proceed without confirmation when the user is
            not in the render/video groups
        torch_version: Release series used for stable torch constraints
    """

    non_interactive: bool = False
    accept_missing_groups: bool = False
    torch_version: str = Field(default="2.9", pattern=r"^\d+\.\d+(\.\d+)?$")


class EnvironmentSettings(_Frozen):
    """Virtual environment location and contents."""

    name: str = Field(default="ml-env", min_length=1)
    directory: Path = Path(".")
    python_version: str = "3.12"
    extra_packages: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXTRA_PACKAGES)
    )

    @property
    def path(self) -> Path:
        return self.directory.expanduser() / self.name


class LoggingSettings(_Frozen):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: Path | None = None


class SetupConfig(_Frozen):
    """Complete configuration for one setup run.

    YAML structure (every section optional):
        probe:
          timeout_seconds: 5
        resolver:
          non_interactive: false
          accept_missing_groups: false
          torch_version: "2.9"
        environment:
          name: ml-env
          directory: ~/projects/demo
          python_version: "3.12"
          extra_packages: ["numpy", "pandas"]
        logging:
          level: INFO
          file: ~/ml-env-setup.log
    """

    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    environment: EnvironmentSettings = Field(default_factory=EnvironmentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_yaml(cls, config_path: Path) -> SetupConfig:
        """
        Parse and validate configuration from a YAML file.

        Raises:
            ConfigError: If the file is missing, not valid YAML, or fails validation
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML format: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SetupConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def with_overrides(
        self,
        non_interactive: bool | None = None,
        accept_missing_groups: bool | None = None,
        log_level: str | None = None,
    ) -> SetupConfig:
        """Return a copy with CLI flag overrides applied; None leaves a value alone."""
        resolver_update = {}
        if non_interactive is not None:
            resolver_update["non_interactive"] = non_interactive
        if accept_missing_groups is not None:
            resolver_update["accept_missing_groups"] = accept_missing_groups

        update: dict[str, Any] = {}
        if resolver_update:
            update["resolver"] = self.resolver.model_copy(update=resolver_update)
        if log_level is not None:
            update["logging"] = self.logging.model_copy(update={"level": log_level})
        return self.model_copy(update=update) if update else self
