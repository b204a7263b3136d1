"""
Release configuration, read from environment variables once at start-up.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError
from .plan import BuildLayout
from .source import branch_for_tag

DEFAULT_TAG = "19.1.2_20250312"

TRUE_VALUES = ("1", "true", "yes", "on")

# Environment variable -> description, shown in --help
ENVIRONMENT_VARIABLES = {
    "TAG": f"Version tag (default: {DEFAULT_TAG})",
    "LLVM_PROJECTDIR": "LLVM source directory (default: llvm-project)",
    "BUILD_DIR_BASE": "Build directory base (default: build)",
    "INSTALL_DIR_BASE": "Install directory base (default: install)",
    "DIST_DIR": "Release output directory (default: dist)",
    "LLVM_NATIVE_TOOL_DIR": "Directory holding native llvm-tblgen/clang-tblgen",
    "CROSS_SYSROOT": "Sysroot for cross builds (default: /usr/<target>)",
    "KEEP_BUILD_DIR": "Keep build directories after the run (default: off)",
    "JOBS": "Number of parallel build jobs (default: CPU count)",
}

@dataclass
class ReleaseConfig:
    """Release build configuration"""
    tag: str = DEFAULT_TAG
    source_dir: Path = Path("llvm-project")
    build_base: Path = Path("build")
    install_base: Path = Path("install")
    dist_dir: Path = Path("dist")
    native_tool_dir: Optional[Path] = None
    cross_sysroot: Optional[str] = None
    keep_build_dir: bool = False
    jobs: int = field(default_factory=lambda: os.cpu_count() or 4)

    def __post_init__(self):
        self.source_dir = Path(self.source_dir)
        self.build_base = Path(self.build_base)
        self.install_base = Path(self.install_base)
        self.dist_dir = Path(self.dist_dir)
        if self.native_tool_dir is not None:
            self.native_tool_dir = Path(self.native_tool_dir)
        if self.jobs < 1:
            raise ConfigurationError(f"JOBS must be positive, got {self.jobs}")

    @property
    def version_string(self) -> str:
        return self.tag

    @property
    def branch(self) -> str:
        return branch_for_tag(self.tag)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ReleaseConfig":
        env = os.environ if environ is None else environ
        config = cls()

        config.tag = env.get("TAG") or config.tag
        config.source_dir = Path(env.get("LLVM_PROJECTDIR") or config.source_dir)
        config.build_base = Path(env.get("BUILD_DIR_BASE") or config.build_base)
        config.install_base = Path(env.get("INSTALL_DIR_BASE") or config.install_base)
        config.dist_dir = Path(env.get("DIST_DIR") or config.dist_dir)
        if env.get("LLVM_NATIVE_TOOL_DIR"):
            config.native_tool_dir = Path(env["LLVM_NATIVE_TOOL_DIR"])
        config.cross_sysroot = env.get("CROSS_SYSROOT") or None
        config.keep_build_dir = env.get("KEEP_BUILD_DIR", "").strip().lower() in TRUE_VALUES

        if env.get("JOBS"):
            try:
                config.jobs = int(env["JOBS"])
            except ValueError:
                raise ConfigurationError(f"JOBS must be an integer, got '{env['JOBS']}'") from None
            if config.jobs < 1:
                raise ConfigurationError(f"JOBS must be positive, got {config.jobs}")

        return config

    def layout(self, target: str) -> BuildLayout:
        """Absolute per-target directories; CMake needs an absolute install prefix"""
        return BuildLayout(
            target=target,
            source_dir=self.source_dir.absolute(),
            build_base=self.build_base.absolute(),
            install_base=self.install_base.absolute(),
            dist_dir=self.dist_dir.absolute(),
            native_tool_dir=self.native_tool_dir.absolute() if self.native_tool_dir else None,
        )
