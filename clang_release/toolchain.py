"""
Toolchain resolution: which compiler, archiver and strip tool build a target.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .errors import MissingToolchainError
from .platforms import (HostDescriptor, OSFamily, Target,
                        requires_cross_compilation, toolchain_prefix)

# Code generators that must run on the build machine during an LLVM build
NATIVE_HELPER_TOOLS = ("llvm-tblgen", "clang-tblgen")

HOST_DEFAULT_TOOLS: Dict[OSFamily, Tuple[str, str, str, str]] = {
    OSFamily.LINUX: ("gcc", "g++", "ar", "strip"),
    OSFamily.DARWIN: ("clang", "clang++", "ar", "strip"),
    OSFamily.WINDOWS: ("gcc", "g++", "ar", "strip"),
}

CROSS_TOOL_NAMES = ("gcc", "g++", "ar", "strip")

INSTALL_HINTS = {
    "gcc": "sudo apt-get install build-essential",
    "aarch64-linux-gnu-gcc": "sudo apt-get install gcc-aarch64-linux-gnu g++-aarch64-linux-gnu",
    "arm-linux-gnueabihf-gcc": "sudo apt-get install gcc-arm-linux-gnueabihf g++-arm-linux-gnueabihf",
    "x86_64-linux-gnu-gcc": "sudo apt-get install gcc-x86-64-linux-gnu g++-x86-64-linux-gnu",
    "x86_64-w64-mingw32-gcc": "sudo apt-get install gcc-mingw-w64-x86-64 g++-mingw-w64-x86-64",
}

@dataclass(frozen=True)
class ToolchainSpec:
    """Compiler triad (plus strip) used to build one target"""
    cc: str
    cxx: str
    ar: str
    strip: str
    prefix: str = ""
    sysroot: Optional[str] = None
    needs_native_helpers: bool = False

    @property
    def tools(self) -> Tuple[str, str, str, str]:
        return (self.cc, self.cxx, self.ar, self.strip)

class ToolchainResolver:
    """Resolve and verify the toolchain for a (target, host) pair"""

    def __init__(self, which: Callable[[str], Optional[str]] = shutil.which,
                 sysroot_override: Optional[str] = None):
        self.which = which
        self.sysroot_override = sysroot_override

    def resolve(self, target: Target, host: HostDescriptor) -> ToolchainSpec:
        """
        Pick the tools for ``target`` and check they are on PATH.

        Raises MissingToolchainError naming the first executable that is not
        found, before any build directory exists.
        """
        spec = self.describe(target, host)
        for tool in spec.tools:
            if self.which(tool) is None:
                raise MissingToolchainError(tool, _install_hint(tool, spec))
        return spec

    def describe(self, target: Target, host: HostDescriptor) -> ToolchainSpec:
        """Tool names only, no PATH lookup"""
        cc, cxx, ar, strip = HOST_DEFAULT_TOOLS[host.os_family]

        if not requires_cross_compilation(target, host):
            return ToolchainSpec(cc, cxx, ar, strip)

        prefix = toolchain_prefix(target, host)
        if prefix is None:
            # Apple target on a Darwin host of the other architecture
            return ToolchainSpec(
                cc, cxx, ar, strip,
                sysroot=self.sysroot_override or host.sdk_root,
                needs_native_helpers=host.supports_native_helpers,
            )

        cc, cxx, ar, strip = (f"{prefix}{name}" for name in CROSS_TOOL_NAMES)
        return ToolchainSpec(
            cc, cxx, ar, strip,
            prefix=prefix,
            sysroot=self.sysroot_override or f"/usr/{target.triple}",
            needs_native_helpers=host.supports_native_helpers,
        )

def _install_hint(tool: str, spec: ToolchainSpec) -> Optional[str]:
    if tool in INSTALL_HINTS:
        return INSTALL_HINTS[tool]
    # g++/ar/strip ship with the same packages as the C compiler
    return INSTALL_HINTS.get(spec.cc)

def helper_paths(directory: Path, host: HostDescriptor) -> Dict[str, Path]:
    return {name: Path(directory) / f"{name}{host.exe_suffix}" for name in NATIVE_HELPER_TOOLS}

def verify_native_helpers(directory: Path, host: HostDescriptor) -> Path:
    """Check that every native helper exists in ``directory``"""
    for path in helper_paths(directory, host).values():
        if not path.is_file():
            raise MissingToolchainError(str(path))
    return Path(directory)

def native_helpers_present(directory: Optional[Path], host: HostDescriptor) -> bool:
    if directory is None:
        return False
    return all(path.is_file() for path in helper_paths(directory, host).values())
