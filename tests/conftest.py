"""
Shared test fixtures: hosts, directory layouts and fake collaborators.
"""

import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from clang_release.builder import StepResult
from clang_release.config import ReleaseConfig
from clang_release.plan import BuildLayout
from clang_release.platforms import HostDescriptor, OSFamily, PlatformCatalog

TAG = "19.1.2_20250312"


class FakeBuildSystem:
    """
    Records every configure/build/install call and fakes their side effects.

    ``fail_at`` maps (build dir name, step) to the exit status to return.
    """

    def __init__(self, fail_at: Optional[Dict[Tuple[str, str], int]] = None,
                 exe_suffix: str = ""):
        self.fail_at = fail_at or {}
        self.exe_suffix = exe_suffix
        self.calls: List[Tuple[str, str]] = []
        self.options = {}
        self.targets = {}

    def _result(self, step: str, build_dir: Path) -> StepResult:
        name = Path(build_dir).name
        self.calls.append((step, name))
        return StepResult(step, self.fail_at.get((name, step), 0))

    def configure(self, source_dir, build_dir, options):
        self.options[Path(build_dir).name] = options
        return self._result("configure", build_dir)

    def build(self, build_dir, targets=()):
        self.targets[Path(build_dir).name] = tuple(targets)
        result = self._result("build", build_dir)
        if result.ok and "llvm-tblgen" in targets:
            bin_dir = Path(build_dir) / "bin"
            bin_dir.mkdir(parents=True, exist_ok=True)
            for tool in ("llvm-tblgen", "clang-tblgen"):
                (bin_dir / f"{tool}{self.exe_suffix}").write_text("#!/bin/sh\n")
        return result

    def install(self, build_dir, targets=("install",)):
        result = self._result("install", build_dir)
        if result.ok:
            prefix = Path(self.options[Path(build_dir).name]["CMAKE_INSTALL_PREFIX"])
            for sub in ("bin", "include", "lib", "share"):
                (prefix / sub).mkdir(parents=True, exist_ok=True)
            (prefix / "bin" / "clang").write_text("clang")
            (prefix / "include" / "llvm.h").write_text("// header")
        return result

    def steps_for(self, name: str) -> List[str]:
        return [step for step, build_dir in self.calls if build_dir == name]


class FakeGit:
    """Stand-in for run_command that understands the git calls SourceManager makes"""

    def __init__(self, branch: Optional[str] = None):
        self.branch = branch
        self.calls: List[List[str]] = []

    def __call__(self, cmd, cwd=None, env=None, capture=False, check=True, verbose=False):
        cmd = [str(arg) for arg in cmd]
        self.calls.append(cmd)
        if cmd[:2] == ["git", "rev-parse"]:
            if self.branch is None:
                return subprocess.CompletedProcess(cmd, 128, "", "fatal")
            return subprocess.CompletedProcess(cmd, 0, f"{self.branch}\n", "")
        if cmd[:2] == ["git", "describe"]:
            return subprocess.CompletedProcess(cmd, 128, "", "fatal")
        if cmd[:2] == ["git", "clone"]:
            (Path(cmd[-1]) / ".git").mkdir(parents=True)
            (Path(cmd[-1]) / "llvm").mkdir()
            self.branch = cmd[cmd.index("-b") + 1]
            return subprocess.CompletedProcess(cmd, 0, "", "")
        raise AssertionError(f"unexpected command {cmd}")

    @property
    def clones(self) -> int:
        return sum(1 for cmd in self.calls if cmd[:2] == ["git", "clone"])


def make_which(*missing: str):
    """``shutil.which`` replacement that finds everything except ``missing``"""
    def which(tool: str) -> Optional[str]:
        return None if tool in missing else f"/usr/bin/{tool}"
    return which


@pytest.fixture
def linux_host() -> HostDescriptor:
    return HostDescriptor(OSFamily.LINUX, "x86_64")


@pytest.fixture
def darwin_host() -> HostDescriptor:
    return HostDescriptor(OSFamily.DARWIN, "aarch64", sdk_root="/Library/SDKs/MacOSX.sdk")


@pytest.fixture
def windows_host() -> HostDescriptor:
    return HostDescriptor(OSFamily.WINDOWS, "x86_64")


@pytest.fixture
def catalog() -> PlatformCatalog:
    return PlatformCatalog()


@pytest.fixture
def release_config(tmp_path: Path) -> ReleaseConfig:
    return ReleaseConfig(
        tag=TAG,
        source_dir=tmp_path / "llvm-project",
        build_base=tmp_path / "build",
        install_base=tmp_path / "install",
        dist_dir=tmp_path / "dist",
        jobs=2,
    )


@pytest.fixture
def make_layout(release_config: ReleaseConfig):
    def factory(target: str) -> BuildLayout:
        return release_config.layout(target)
    return factory
