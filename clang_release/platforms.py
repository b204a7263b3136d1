"""
Platform catalog: supported release targets and the host they are built on.
"""

import os
import platform
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Tuple

from .errors import UnsupportedTargetError

# ============================================================================
# ENUMS AND DATA CLASSES
# ============================================================================

class OSFamily(Enum):
    DARWIN = "Darwin"
    LINUX = "Linux"
    WINDOWS = "Windows_NT"

class PlatformFamily(Enum):
    APPLE = "apple"
    LINUX = "linux"
    WINDOWS = "windows"

# CMAKE_SYSTEM_NAME for each family
SYSTEM_NAMES = {
    PlatformFamily.APPLE: "Darwin",
    PlatformFamily.LINUX: "Linux",
    PlatformFamily.WINDOWS: "Windows",
}

ARCH_ALIASES = {
    'x86_64': 'x86_64',
    'amd64': 'x86_64',
    'aarch64': 'aarch64',
    'arm64': 'aarch64',
    'arm': 'arm',
    'armv6l': 'arm',
    'armv7': 'arm',
    'armv7l': 'arm',
    'armv8l': 'arm',
}

def normalize_arch(machine: str) -> str:
    return ARCH_ALIASES.get(machine.lower(), machine.lower())

@dataclass(frozen=True)
class Target:
    """Target triple (e.g., aarch64-apple-darwin)"""
    triple: str
    arch: str
    vendor: str
    os: str
    abi: str = ""

    @classmethod
    def parse(cls, triple: str) -> "Target":
        """Parse a target triple, filling in the vendor when it is omitted"""
        parts = triple.split('-')
        if len(parts) < 3 or not all(parts):
            raise UnsupportedTargetError(triple)

        if len(parts) == 3 and parts[1] == 'linux':
            # aarch64-linux-gnu style: no vendor token
            return cls(triple, parts[0], 'unknown', parts[1], parts[2])
        return cls(triple, parts[0], parts[1], parts[2], '-'.join(parts[3:]))

    @property
    def family(self) -> PlatformFamily:
        if self.vendor == 'apple' or self.os.startswith('darwin'):
            return PlatformFamily.APPLE
        if self.os.startswith('mingw') or self.vendor == 'w64':
            return PlatformFamily.WINDOWS
        return PlatformFamily.LINUX

    @property
    def os_family(self) -> OSFamily:
        return {
            PlatformFamily.APPLE: OSFamily.DARWIN,
            PlatformFamily.LINUX: OSFamily.LINUX,
            PlatformFamily.WINDOWS: OSFamily.WINDOWS,
        }[self.family]

    @property
    def system_name(self) -> str:
        return SYSTEM_NAMES[self.family]

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.family is PlatformFamily.WINDOWS else ""

    def __str__(self) -> str:
        return self.triple

@dataclass(frozen=True)
class HostDescriptor:
    """Machine running the release builder, detected once per process"""
    os_family: OSFamily
    arch: str
    sdk_root: Optional[str] = None

    @classmethod
    def detect(cls, environ: Optional[Mapping[str, str]] = None) -> "HostDescriptor":
        environ = os.environ if environ is None else environ
        system = platform.system()

        if system == "Windows" or system.startswith(("MSYS", "MINGW", "CYGWIN")) or environ.get("WINDIR"):
            os_family = OSFamily.WINDOWS
        elif system == "Darwin":
            os_family = OSFamily.DARWIN
        else:
            os_family = OSFamily.LINUX

        sdk_root = None
        if os_family is OSFamily.DARWIN:
            sdk_root = environ.get("SDKROOT") or _xcrun_sdk_path()

        return cls(os_family, normalize_arch(platform.machine()), sdk_root)

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.os_family is OSFamily.WINDOWS else ""

    @property
    def supports_native_helpers(self) -> bool:
        """Whether tablegen helpers can be built locally with the host toolchain"""
        return self.os_family in (OSFamily.LINUX, OSFamily.DARWIN)

    @property
    def triple(self) -> str:
        if self.os_family is OSFamily.DARWIN:
            return f"{self.arch}-apple-darwin"
        if self.os_family is OSFamily.WINDOWS:
            return f"{self.arch}-w64-mingw32"
        if self.arch == 'arm':
            return "arm-linux-gnueabihf"
        return f"{self.arch}-linux-gnu"

def _xcrun_sdk_path() -> Optional[str]:
    try:
        result = subprocess.run(["xcrun", "--show-sdk-path"], capture_output=True, text=True)
    except FileNotFoundError:
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None

# ============================================================================
# CATALOG
# ============================================================================

SUPPORTED_TARGETS: Tuple[str, ...] = (
    "aarch64-apple-darwin",
    "aarch64-linux-gnu",
    "arm-linux-gnueabihf",
    "x86_64-apple-darwin",
    "x86_64-linux-gnu",
    "x86_64-w64-mingw32",
)

def requires_cross_compilation(target: Target, host: HostDescriptor) -> bool:
    """
    Windows targets are always built through a MinGW cross toolchain unless
    the host is Windows itself. Everything else is cross compiled when the
    architecture or OS family differs from the host's.
    """
    if target.family is PlatformFamily.WINDOWS:
        return host.os_family is not OSFamily.WINDOWS
    return target.arch != host.arch or target.os_family is not host.os_family

def toolchain_prefix(target: Target, host: HostDescriptor) -> Optional[str]:
    """Tool name prefix for a cross build, None for the host's own tools"""
    if not requires_cross_compilation(target, host):
        return None
    if target.family is PlatformFamily.APPLE and host.os_family is OSFamily.DARWIN:
        # Apple clang is multi-arch; CMAKE_OSX_ARCHITECTURES selects the slice
        return None
    return f"{target.triple}-"

class PlatformCatalog:
    """Fixed set of release targets, matched exactly"""

    def __init__(self, targets: Tuple[str, ...] = SUPPORTED_TARGETS):
        self._targets: Dict[str, Target] = {name: Target.parse(name) for name in targets}

    def resolve(self, target_string: str) -> Target:
        try:
            return self._targets[target_string]
        except KeyError:
            raise UnsupportedTargetError(target_string, self._targets) from None

    def requires_cross_compilation(self, target: Target, host: HostDescriptor) -> bool:
        return requires_cross_compilation(target, host)

    def __contains__(self, target_string: object) -> bool:
        return target_string in self._targets

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets.values())
