"""
LLVM source checkout management.
"""

import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional, Sequence

from .errors import BuildLockError, ConfigurationError
from .utils import log_info, log_step, log_success, log_warning, run_command

LLVM_REPOSITORY = "https://github.com/espressif/llvm-project"
BRANCH_PREFIX = "xtensa_release_"

def branch_for_tag(tag: str) -> str:
    """19.1.2_20250312 -> xtensa_release_19.1.2"""
    version = tag.split("_", 1)[0]
    if not version:
        raise ConfigurationError(f"Cannot derive a branch from tag '{tag}'")
    return f"{BRANCH_PREFIX}{version}"

class SourceManager:
    """Keep a shallow clone of the release branch in ``source_dir``"""

    def __init__(self, source_dir: Path, tag: str, repository: str = LLVM_REPOSITORY,
                 runner: Callable[..., subprocess.CompletedProcess] = run_command):
        self.source_dir = Path(source_dir)
        self.tag = tag
        self.branch = branch_for_tag(tag)
        self.repository = repository
        self.runner = runner

    def current_branch(self) -> Optional[str]:
        """Branch (or exact tag) checked out in the source directory"""
        result = self.runner(["git", "rev-parse", "--abbrev-ref", "HEAD"],
                             cwd=self.source_dir, capture=True, check=False)
        branch = (result.stdout or "").strip()
        if result.returncode == 0 and branch and branch != "HEAD":
            return branch

        result = self.runner(["git", "describe", "--tags", "--exact-match"],
                             cwd=self.source_dir, capture=True, check=False)
        tag = (result.stdout or "").strip()
        if result.returncode == 0 and tag:
            return tag
        return None

    def fetch(self, in_use_by: Sequence[Path] = ()) -> Path:
        """
        Make sure ``source_dir`` holds the release branch.

        An existing checkout on the right branch is reused; a checkout on any
        other branch is removed and cloned again. ``in_use_by`` lists the lock
        files of other runs reading the checkout; while it is non-empty the
        checkout is never removed.
        """
        log_step("SOURCE", f"Target branch: {self.branch}")

        if (self.source_dir / ".git").is_dir():
            current = self.current_branch()
            if current == self.branch:
                log_info(f"Already on correct branch: {current}")
                return self.source_dir
            log_warning(f"Current branch: {current or 'unknown'}, expected: {self.branch}")
            if in_use_by:
                raise BuildLockError(
                    f"{self.source_dir} is in use by other builds "
                    f"({', '.join(str(path) for path in in_use_by)}); cannot switch to {self.branch}")
            log_info("Removing existing directory and re-cloning...")
            shutil.rmtree(self.source_dir)
        elif self.source_dir.exists():
            raise ConfigurationError(f"{self.source_dir} exists but is not a git checkout")

        log_info(f"Cloning LLVM project branch {self.branch}...")
        self.runner(["git", "clone", "-b", self.branch, "--depth=1",
                     self.repository, str(self.source_dir)], verbose=True)
        log_success(f"LLVM source ready in {self.source_dir}")
        return self.source_dir
