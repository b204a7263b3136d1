"""
CMake + Ninja build-system collaborator.

Every step returns a StepResult instead of raising, so the stage sequencer
decides what a failure means.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from .options import OptionSet
from .utils import run_command

@dataclass(frozen=True)
class StepResult:
    """Outcome of one configure/build/install invocation"""
    step: str
    returncode: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

class CMakeNinjaBuildSystem:
    """Run cmake/ninja for a stage"""

    def __init__(self, jobs: int, cmake: str = "cmake", ninja: str = "ninja",
                 runner: Callable[..., subprocess.CompletedProcess] = run_command,
                 verbose: bool = True):
        self.jobs = jobs
        self.cmake = cmake
        self.ninja = ninja
        self.runner = runner
        self.verbose = verbose

    def configure(self, source_dir: Path, build_dir: Path, options: OptionSet) -> StepResult:
        """Generate the Ninja build tree in ``build_dir``"""
        cmd = [self.cmake, "-G", "Ninja", str(source_dir), *options.to_args()]
        return self._run("configure", cmd, build_dir)

    def build(self, build_dir: Path, targets: Sequence[str] = ()) -> StepResult:
        """Build ``targets``, or everything when none are given"""
        cmd = [self.ninja, f"-j{self.jobs}", *targets]
        return self._run("build", cmd, build_dir)

    def install(self, build_dir: Path, targets: Sequence[str] = ("install",)) -> StepResult:
        """Run the install targets into CMAKE_INSTALL_PREFIX"""
        cmd = [self.ninja, *targets]
        return self._run("install", cmd, build_dir)

    def _run(self, step: str, cmd, cwd: Path) -> StepResult:
        result = self.runner(cmd, cwd=cwd, check=False, verbose=self.verbose)
        return StepResult(step, result.returncode)
