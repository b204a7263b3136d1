"""
Build plan and directory layout for one release invocation.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .platforms import (HostDescriptor, PlatformFamily, Target,
                        requires_cross_compilation, toolchain_prefix)

class StageKind(Enum):
    SINGLE = "single"
    STAGE1 = "stage1"
    STAGE2 = "stage2"

@dataclass(frozen=True)
class BuildPlan:
    """Decisions derived from (target, host); never changed after derivation"""
    target: Target
    host: HostDescriptor
    cross: bool
    toolchain_prefix: Optional[str]
    needs_native_helpers: bool
    two_stage: bool

    @classmethod
    def derive(cls, target: Target, host: HostDescriptor) -> "BuildPlan":
        cross = requires_cross_compilation(target, host)
        return cls(
            target=target,
            host=host,
            cross=cross,
            toolchain_prefix=toolchain_prefix(target, host),
            needs_native_helpers=cross and host.supports_native_helpers,
            two_stage=target.family is PlatformFamily.WINDOWS,
        )

    @property
    def stages(self):
        if self.two_stage:
            return (StageKind.STAGE1, StageKind.STAGE2)
        return (StageKind.SINGLE,)

@dataclass(frozen=True)
class BuildLayout:
    """
    Directories used by one target. Everything lives below a directory
    named after the target, so runs for different targets never share a
    build or install path.
    """
    target: str
    source_dir: Path
    build_base: Path
    install_base: Path
    dist_dir: Path
    native_tool_dir: Optional[Path] = None

    @property
    def llvm_source_dir(self) -> Path:
        """CMake source root inside the checkout"""
        return self.source_dir / "llvm"

    @property
    def target_build_root(self) -> Path:
        """Everything built for this target; removed on cleanup"""
        return self.build_base / self.target

    @property
    def target_install_root(self) -> Path:
        return self.install_base / self.target

    def build_dir(self, stage: StageKind) -> Path:
        """CMake build directory for one stage"""
        return self.target_build_root / stage.value

    def install_dir(self, stage: StageKind) -> Path:
        """CMAKE_INSTALL_PREFIX for one stage"""
        return self.target_install_root / stage.value

    @property
    def native_build_dir(self) -> Path:
        """Host build of the tablegen helpers"""
        return self.target_build_root / "native"

    @property
    def lock_path(self) -> Path:
        """Held for the whole run of this target"""
        return self.build_base / f"{self.target}.lock"

    @property
    def source_lock_path(self) -> Path:
        """Held while the shared source checkout is inspected or replaced"""
        return self.source_dir.with_name(f"{self.source_dir.name}.lock")
