"""
Command Line Interface for mlenv

Detects hardware, resolves a PyTorch build, installs it into a uv virtual
environment, and validates the result. This module is the only place that
prompts for a build choice.
"""

import argparse
import sys
from pathlib import Path
from typing import Callable

from . import __version__
from .core.collector import HardwareCollector
from .core.config import SetupConfig
from .core.facts import Accelerator, HardwareFacts
from .core.resolver import BuildPlan, Severity, resolve
from .exceptions import InvalidChoiceError, SetupError
from .schemas import FactsResponse, PlanResponse, ValidationResponse
from .utils.installation import BackendVerifier, PlanInstaller, PythonEnvManager
from .utils.logger import setup_logging


def print_banner():
    """Print welcome banner."""
    print("=" * 60)
    print(f"  Universal ML Environment Setup v{__version__}")
    print("  PyTorch + CUDA/ROCm Auto-Detection")
    print("=" * 60)


def print_facts(facts: HardwareFacts):
    """Print detected hardware."""
    print(f"🖥️  Platform: {facts.platform.value}")
    print(f"🎮 GPU Type: {facts.accelerator.value}")

    if facts.nvidia_info is not None:
        info = facts.nvidia_info
        print(f"   GPU: {info.name}")
        print(f"   Compute Capability: {info.compute_capability or info.raw_capability}")
    elif facts.amd_info is not None:
        info = facts.amd_info
        print(f"   GPU: {info.name}")
        print(f"   Variant: {info.variant.value}")
        if info.gfx_arch:
            print(f"   Architecture: {info.gfx_arch}")
        missing = facts.group_membership.missing_groups
        if missing:
            print(f"   ⚠️  Missing groups: {', '.join(missing)}")


def print_plan(plan: BuildPlan):
    """Print diagnostics and the candidate or selected build."""
    for diagnostic in plan.diagnostics:
        icon = "⚠️ " if diagnostic.severity == Severity.WARNING else "ℹ️ "
        print(f"{icon} {diagnostic.message}")

    if plan.selected_option is not None:
        option = plan.selected_option
        print(f"\n📦 Selected build: {option.label} ({option.stability_tier.value})")
        print(f"   Packages: {' '.join(option.requirements)}")
        if option.source_index:
            print(f"   Index URL: {option.source_index}")
        if option.prerelease:
            print("   Pre-release: yes")
        return

    print("\nChoose installation option:")
    for i, option in enumerate(plan.candidates, start=1):
        print(f"  {i}) {option.description or option.label}")
        if option.source_index:
            print(f"     Index: {option.source_index}")
        print(f"     Status: {option.stability_tier.value}")


def choose_plan(
    facts: HardwareFacts,
    config: SetupConfig,
    choice: int | None = None,
    prompt: Callable[[str], str] = input,
) -> BuildPlan:
    """Resolve a plan, prompting until the resolver no longer needs a choice.

    Raises:
        SetupError: If a choice is required but no input is available
    """
    plan = resolve(facts, choice, config.resolver)

    while plan.requires_user_choice:
        print_plan(plan)
        try:
            raw = prompt(f"Choice [1-{len(plan.candidates)}]: ")
        except EOFError:
            raise SetupError(
                "A build choice is required; rerun with --choice N or --non-interactive"
            )

        try:
            plan = resolve(facts, int(raw.strip()), config.resolver)
        except ValueError:
            print(f"❌ Not a number: {raw.strip()!r}")
        except InvalidChoiceError as e:
            print(f"❌ {e}")

    return plan


def load_config(args) -> SetupConfig:
    """Load YAML config (if given) and apply command line overrides."""
    config = SetupConfig.from_yaml(Path(args.config)) if args.config else SetupConfig()
    config = config.with_overrides(
        non_interactive=True if getattr(args, "non_interactive", False) else None,
        accept_missing_groups=(
            True if getattr(args, "accept_missing_groups", False) else None
        ),
        log_level="DEBUG" if args.verbose else None,
    )
    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
    )
    return config


def collect_facts(config: SetupConfig) -> HardwareFacts:
    return HardwareCollector(config.probe).collect()


def cmd_detect(args):
    """Handle detect command."""
    config = load_config(args)
    facts = collect_facts(config)

    if args.json:
        print(FactsResponse.from_facts(facts).model_dump_json(indent=2))
        return

    print_facts(facts)


def cmd_plan(args):
    """Handle plan command."""
    config = load_config(args)
    facts = collect_facts(config)

    if args.json:
        plan = resolve(facts, args.choice, config.resolver)
        print(PlanResponse.from_plan(plan).model_dump_json(indent=2))
        return

    print_facts(facts)
    print()
    plan = choose_plan(facts, config, args.choice)
    print_plan(plan)


def cmd_install(args):
    """Handle install command."""
    config = load_config(args)
    env_settings = config.environment
    env_manager = PythonEnvManager(env_settings.path)

    if not args.dry_run:
        print(f"✓ uv found: {env_manager.check_uv()}")

    print("\n🔍 Detecting system configuration...")
    facts = collect_facts(config)
    print_facts(facts)
    print()

    plan = choose_plan(facts, config, args.choice)
    print_plan(plan)

    installer = PlanInstaller(env_manager, log_callback=lambda msg: print(f"   {msg}"))

    if args.dry_run:
        installer.install(plan, env_settings.extra_packages, dry_run=True)
        return

    print(f"\n🐍 Creating Python {env_settings.python_version} virtual environment...")
    env_manager.create_env(env_settings.python_version)

    print("\n🚀 Installing PyTorch...")
    installer.install(plan, env_settings.extra_packages)

    print("\n" + "=" * 60)
    print("🎉 Installation Complete")
    print("=" * 60)
    print(f"Environment location: {env_manager.env_path}")
    print(f"To activate: source {env_manager.env_path}/bin/activate")
    print("To verify:   mlenv validate")
    if facts.accelerator == Accelerator.NVIDIA and facts.nvidia_info is not None:
        print(f"GPU: {facts.nvidia_info.name}")


def cmd_validate(args):
    """Handle validate command."""
    config = load_config(args)
    env_manager = PythonEnvManager(config.environment.path)

    facts = collect_facts(config)
    plan = resolve(facts, args.choice, config.resolver)
    if plan.selected_option is None:
        # Without a recorded choice, validate against the first (default) candidate
        plan = resolve(facts, 1, config.resolver)

    result = BackendVerifier(env_manager).verify(plan.selected_option)

    if args.json:
        print(ValidationResponse.from_result(result).model_dump_json(indent=2))
    else:
        print(f"📦 PyTorch: {result.report.torch_version}")
        print(f"🔧 Installed backend: {result.installed.value}")
        print(f"🎯 Expected backend: {result.expected.value}")
        for device in result.report.devices:
            print(
                f"   GPU: {device.get('name')} (compute {device.get('compute_capability')}, "
                f"{device.get('total_memory_gb')} GB)"
            )
        if result.report.gpu_matmul_ok is not None:
            status = "✓" if result.report.gpu_matmul_ok else "✗"
            print(f"🧮 GPU computation: {status}")
        for message in result.messages:
            print(f"⚠️  {message}")
        print("✅ Validation passed" if result.consistent else "❌ Validation failed")

    if not result.consistent:
        sys.exit(1)


def _add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--config", help="Path to configuration YAML file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )


def _add_choice_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--choice", type=int, help="1-based build option index to select"
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Select the first (most tested) build option without prompting",
    )
    parser.add_argument(
        "--accept-missing-groups",
        action="store_true",
        help="Proceed without confirmation when render/video groups are missing",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mlenv",
        description="Universal ML Environment Setup - PyTorch + CUDA/ROCm Auto-Detection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Detect command
    detect_parser = subparsers.add_parser("detect", help="Detect GPU hardware")
    _add_common_arguments(detect_parser)
    detect_parser.add_argument("--json", action="store_true", help="Print JSON")
    detect_parser.set_defaults(func=cmd_detect)

    # Plan command
    plan_parser = subparsers.add_parser(
        "plan", help="Resolve the PyTorch build for this machine"
    )
    _add_common_arguments(plan_parser)
    _add_choice_arguments(plan_parser)
    plan_parser.add_argument("--json", action="store_true", help="Print JSON")
    plan_parser.set_defaults(func=cmd_plan)

    # Install command
    install_parser = subparsers.add_parser(
        "install", help="Create the environment and install the resolved build"
    )
    _add_common_arguments(install_parser)
    _add_choice_arguments(install_parser)
    install_parser.add_argument(
        "--dry-run", action="store_true", help="Print commands without running them"
    )
    install_parser.set_defaults(func=cmd_install)

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate", help="Check the installed backend against this machine's build"
    )
    _add_common_arguments(validate_parser)
    validate_parser.add_argument(
        "--choice", type=int, help="Build option index used at install time"
    )
    validate_parser.add_argument("--json", action="store_true", help="Print JSON")
    validate_parser.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if not getattr(args, "json", False):
        print_banner()
        print()

    try:
        args.func(args)
    except SetupError as e:
        print(f"\n❌ Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        # Partially collected facts are discarded; nothing was installed
        print("\n❌ Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
