"""
Command line entry point: build one release archive for one target.
"""

import argparse
import os
import shutil
import subprocess
import sys
import traceback
from pathlib import Path
from typing import Callable, List, Optional

from .builder import CMakeNinjaBuildSystem
from .config import ENVIRONMENT_VARIABLES, ReleaseConfig
from .errors import BuildLockError, MissingToolError, ReleaseError
from .packager import Packager
from .plan import BuildLayout, BuildPlan
from .platforms import SUPPORTED_TARGETS, HostDescriptor, PlatformCatalog
from .source import SourceManager
from .stages import StageSequencer
from .toolchain import ToolchainResolver
from .utils import Color, format_command, log_error, run_command

REQUIRED_TOOLS = ("cmake", "ninja", "git")

# ============================================================================
# HELPERS
# ============================================================================

def check_required_tools(which: Callable[[str], Optional[str]] = shutil.which):
    for tool in REQUIRED_TOOLS:
        if which(tool) is None:
            raise MissingToolError(tool)

class BuildLock:
    """Exclusive per-target lock file, so two runs never share a build tree"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def __enter__(self) -> "BuildLock":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            raise BuildLockError(
                f"Another build for this target holds {self.path}; "
                "remove it if that build is no longer running") from None
        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()}\n")
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

def other_active_builds(layout: BuildLayout) -> List[Path]:
    """Lock files of runs for other targets that share this build base"""
    own = {layout.lock_path, layout.source_lock_path}
    if not layout.build_base.is_dir():
        return []
    return sorted(path for path in layout.build_base.glob("*.lock") if path not in own)

# ============================================================================
# MAIN PROGRAM
# ============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser"""
    platforms = "\n".join(f"  - {target}" for target in SUPPORTED_TARGETS)
    variables = "\n".join(f"  {name:<21} {text}" for name, text in ENVIRONMENT_VARIABLES.items())

    parser = argparse.ArgumentParser(
        prog="clang-release",
        description="Espressif LLVM Cross-Platform Release Builder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Supported platforms:
{platforms}

Environment variables:
{variables}

Examples:
  clang-release x86_64-linux-gnu
  TAG=19.1.2_20250312 KEEP_BUILD_DIR=1 clang-release x86_64-w64-mingw32
"""
    )
    parser.add_argument('target', nargs='?', help='Platform to build')
    return parser

def run_release(target_name: str, config: ReleaseConfig, host: HostDescriptor, *,
                catalog: Optional[PlatformCatalog] = None,
                which: Callable[[str], Optional[str]] = shutil.which,
                build_system=None,
                runner: Callable[..., subprocess.CompletedProcess] = run_command) -> int:
    """Resolve, build and package one target. Returns the process exit code."""
    catalog = catalog or PlatformCatalog()

    # Everything that can be checked without touching the disk comes first
    try:
        target = catalog.resolve(target_name)
        check_required_tools(which)
        plan = BuildPlan.derive(target, host)
        toolchain = ToolchainResolver(which, config.cross_sysroot).resolve(target, host)
    except ReleaseError as e:
        log_error(str(e))
        return 1

    print(f"""
{Color.BOLD}{Color.CYAN}🏗️ Espressif LLVM Release Builder{Color.RESET}
{Color.BOLD}Target:     {Color.GREEN}{target}{Color.RESET}
{Color.BOLD}Version:    {Color.GREEN}{config.version_string}{Color.RESET}
{Color.BOLD}Host:       {Color.GREEN}{host.triple}{Color.RESET}
{Color.BOLD}Branch:     {Color.GREEN}{config.branch}{Color.RESET}
{Color.BOLD}Cross:      {Color.GREEN}{'yes' if plan.cross else 'no'}{Color.RESET}
{Color.BOLD}Stages:     {Color.GREEN}{', '.join(kind.value for kind in plan.stages)}{Color.RESET}
{Color.BOLD}Jobs:       {Color.GREEN}{config.jobs}{Color.RESET}
    """)

    layout = config.layout(target.triple)
    if build_system is None:
        build_system = CMakeNinjaBuildSystem(config.jobs)

    try:
        with BuildLock(layout.lock_path):
            with BuildLock(layout.source_lock_path):
                SourceManager(layout.source_dir, config.tag, runner=runner).fetch(
                    in_use_by=other_active_builds(layout))
            sequencer = StageSequencer(
                plan, toolchain, layout, build_system,
                Packager(layout.dist_dir, config.version_string),
                keep_build_dir=config.keep_build_dir,
            )
            outcome = sequencer.run()
    except ReleaseError as e:
        log_error(str(e))
        return 1
    except subprocess.CalledProcessError as e:
        log_error(f"Command failed with exit status {e.returncode}: {format_command(e.cmd)}")
        return 1

    if not outcome.succeeded:
        failure = outcome.failure
        if failure is not None:
            detail = f"{failure.state.value} {failure.failure.value}"
            if failure.returncode:
                detail += f" (exit status {failure.returncode})"
            log_error(f"Build failed for {target} during {detail}")
        return outcome.exit_code

    print(f"""
{Color.BOLD}{Color.GREEN}✅ Build completed successfully for {target}!{Color.RESET}

Release directory: {Color.CYAN}{layout.dist_dir / target.triple}{Color.RESET}
Tarball:           {Color.CYAN}{outcome.archive}{Color.RESET}
    """)
    return 0

def main(argv: Optional[List[str]] = None) -> int:
    """Main program entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.target:
        parser.print_help()
        return 1

    try:
        # Host detection may launch xcrun, so an unknown target is rejected first
        catalog = PlatformCatalog()
        catalog.resolve(args.target)
        config = ReleaseConfig.from_env()
        host = HostDescriptor.detect()
        return run_release(args.target, config, host, catalog=catalog)
    except ReleaseError as e:
        log_error(str(e))
        return 1
    except KeyboardInterrupt:
        log_error("Build interrupted by user")
        return 1
    except Exception as e:
        log_error(f"Unexpected error: {e}")
        traceback.print_exc()
        return 1

if __name__ == "__main__":
    sys.exit(main())
