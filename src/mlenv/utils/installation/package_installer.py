"""Plan consumer: installs a resolved BuildPlan into a uv environment."""

import logging
from typing import Callable

from mlenv.core.resolver import BuildOption, BuildPlan
from mlenv.exceptions import InstallError

from .env_manager import PythonEnvManager

logger = logging.getLogger(__name__)


def build_install_args(option: BuildOption) -> list[str]:
    """Build ``uv pip`` arguments for a build option.

    Example:
        ["install", "torch~=2.9", "torchvision", "torchaudio",
         "--index-url", "https://download.pytorch.org/whl/cu128"]
    """
    args = ["install", *option.requirements]

    if option.source_index:
        args.extend(["--index-url", option.source_index])

    if option.prerelease:
        args.append("--prerelease=allow")

    return args


class PlanInstaller:
    """Installs the selected build and the extra ML libraries."""

    def __init__(
        self,
        env_manager: PythonEnvManager,
        log_callback: Callable[[str], None] | None = None,
    ):
        """Initialize plan installer.

        Args:
            env_manager: Environment the plan is installed into
            log_callback: Optional callback for progress messages
        """
        self.env_manager = env_manager
        self.log_callback = log_callback or (lambda msg: None)

        logger.debug("[PlanInstaller] Initialized")

    def install(
        self,
        plan: BuildPlan,
        extra_packages: list[str] | None = None,
        dry_run: bool = False,
    ) -> list[list[str]]:
        """Install a resolved plan.

        Args:
            plan: Plan with a selected option
            extra_packages: Additional requirements installed from the default index
            dry_run: Only return the commands that would run

        Returns:
            The uv pip argument lists, in execution order

        Raises:
            InstallError: If the plan still needs a user choice or uv fails
        """
        if plan.requires_user_choice or plan.selected_option is None:
            raise InstallError("Build plan has no selected option; a choice is required")

        option = plan.selected_option
        commands = [build_install_args(option)]
        if extra_packages:
            commands.append(["install", *extra_packages])

        if dry_run:
            for args in commands:
                self.log_callback(f"Would run: uv pip {' '.join(args)}")
            logger.info("[PlanInstaller] Dry run mode - skipping execution")
            return commands

        self.log_callback(f"Installing PyTorch ({option.label})...")
        logger.info(
            f"[PlanInstaller] Installing {option.label} from "
            f"{option.source_index or 'default index'}"
        )
        self.env_manager.run_pip(*commands[0])

        if extra_packages:
            self.log_callback("Installing additional ML libraries...")
            self.env_manager.run_pip(*commands[1])

        self.env_manager.freeze()
        self.log_callback("All packages installed successfully")
        logger.info("[PlanInstaller] All packages installed")
        return commands
