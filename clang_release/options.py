"""
Layered CMake option composition.

An OptionSet is built by applying layers in a fixed order:

    BASE -> PLATFORM -> CROSS -> STAGE -> INSTALL

Each layer may add keys or override keys set by an earlier layer. A key
keeps the position where it was first set, so the flattened flag list is
stable across runs, while its value always comes from the latest layer that
set it.
"""

from enum import IntEnum
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from .plan import BuildLayout, StageKind
from .platforms import HostDescriptor, OSFamily, PlatformFamily, Target
from .toolchain import HOST_DEFAULT_TOOLS, NATIVE_HELPER_TOOLS, ToolchainSpec

OptionValue = Union[str, bool, int, Path, List[str], Tuple[str, ...]]

class Layer(IntEnum):
    BASE = 1
    PLATFORM = 2
    CROSS = 3
    STAGE = 4
    INSTALL = 5

def render_value(value: OptionValue) -> str:
    """Render a Python value the way CMake expects it on the command line"""
    if isinstance(value, bool):
        return "ON" if value else "OFF"
    if isinstance(value, (list, tuple)):
        return ";".join(str(item) for item in value)
    return str(value)

class OptionSet:
    """Ordered, deduplicated mapping of CMake cache variables"""

    def __init__(self):
        self._values: Dict[str, str] = {}
        self._origins: Dict[str, Layer] = {}
        self._top = 0

    def layered(self, layer: Layer, options: Mapping[str, OptionValue]) -> "OptionSet":
        """Return a new set with ``options`` applied on top of this one"""
        if layer < self._top:
            raise ValueError(f"layer {layer.name} applied after {Layer(self._top).name}")

        merged = OptionSet()
        merged._values = dict(self._values)
        merged._origins = dict(self._origins)
        merged._top = int(layer)
        for key, value in options.items():
            merged._values[key] = render_value(value)
            merged._origins[key] = layer
        return merged

    def origin(self, key: str) -> Layer:
        """Layer that supplied the current value of ``key``"""
        return self._origins[key]

    def items(self) -> List[Tuple[str, str]]:
        return list(self._values.items())

    def to_args(self) -> List[str]:
        """Flatten into ``-DKEY=VALUE`` flags"""
        return [f"-D{key}={value}" for key, value in self._values.items()]

    def to_yaml(self) -> str:
        entries = [
            {"name": key, "value": value, "layer": self._origins[key].name.lower()}
            for key, value in self._values.items()
        ]
        return yaml.safe_dump({"options": entries}, sort_keys=False)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OptionSet):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"OptionSet({self.items()!r})"

# ============================================================================
# LAYERS
# ============================================================================

LLVM_TARGETS = ("X86", "ARM", "AArch64", "AVR", "Mips", "RISCV", "WebAssembly")
LLVM_EXPERIMENTAL_TARGETS = ("Xtensa",)
LLVM_PROJECTS = ("clang", "lld")
LLVM_RUNTIMES = ("compiler-rt", "libcxx", "libcxxabi", "libunwind")

def base_layer() -> Dict[str, OptionValue]:
    """Options shared by every platform and every stage"""
    return {
        "CMAKE_BUILD_TYPE": "Release",
        "LLVM_TARGETS_TO_BUILD": LLVM_TARGETS,
        "LLVM_EXPERIMENTAL_TARGETS_TO_BUILD": LLVM_EXPERIMENTAL_TARGETS,
        "LLVM_ENABLE_PROJECTS": LLVM_PROJECTS,
        "LLVM_ENABLE_EH": True,
        "LLVM_ENABLE_RTTI": True,
        "LLVM_POLLY_LINK_INTO_TOOLS": True,
        "LLVM_INCLUDE_DOCS": False,
        "LLVM_INCLUDE_EXAMPLES": False,
        "LLVM_INCLUDE_TESTS": False,
        "LLVM_INCLUDE_BENCHMARKS": False,
        "LLVM_BUILD_DOCS": False,
        "LLVM_ENABLE_DOXYGEN": False,
        "LLVM_INSTALL_UTILS": True,
        "LLVM_ENABLE_Z3_SOLVER": False,
        "LLVM_ENABLE_LIBEDIT": False,
        "LLVM_ENABLE_TERMINFO": False,
        "LLVM_ENABLE_ZLIB": False,
        "LLVM_ENABLE_ZSTD": False,
        "LLVM_OPTIMIZED_TABLEGEN": True,
        "LLVM_USE_RELATIVE_PATHS_IN_FILES": True,
        "LLVM_SOURCE_PREFIX": ".",
        "LLVM_TOOL_CLANG_TOOLS_EXTRA_BUILD": False,
        "CLANG_ENABLE_STATIC_ANALYZER": False,
        "CLANG_ENABLE_ARCMT": False,
        "CLANG_FORCE_MATCHING_LIBCLANG_SOVERSION": False,
        "LIBCLANG_BUILD_STATIC": True,
        "CMAKE_POSITION_INDEPENDENT_CODE": True,
        "LLVM_LINK_LLVM_DYLIB": True,
        "CLANG_LINK_CLANG_DYLIB": True,
    }

def platform_layer(target: Target, host: HostDescriptor) -> Dict[str, OptionValue]:
    """Family options, chosen from the target's vendor/OS tokens"""
    family = target.family

    if family is PlatformFamily.APPLE:
        arch = "arm64" if target.arch == "aarch64" else "x86_64"
        options: Dict[str, OptionValue] = {
            "LLVM_BUILD_LLVM_C_DYLIB": True,
            "LLVM_ENABLE_LIBCXX": True,
            "LIBCXX_PSTL_BACKEND": "libdispatch",
            "CMAKE_OSX_ARCHITECTURES": arch,
            "DARWIN_osx_ARCHS": arch,
            "DARWIN_osx_BUILTIN_ARCHS": arch,
            "COMPILER_RT_ENABLE_IOS": False,
            "LIBCXXABI_USE_SYSTEM_LIBS": True,
        }
        if host.sdk_root:
            options["CMAKE_OSX_SYSROOT"] = host.sdk_root
        return options

    if family is PlatformFamily.WINDOWS:
        # libLLVM as a shared library is not supported on Windows
        return {
            "CMAKE_SYSTEM_NAME": "Windows",
            "LLVM_BUILD_LLVM_DYLIB": False,
            "LLVM_LINK_LLVM_DYLIB": False,
            "CLANG_LINK_CLANG_DYLIB": False,
            "LLVM_ENABLE_LIBXML2": False,
            "LIBCXX_ENABLE_SHARED": False,
            "LIBCXXABI_ENABLE_SHARED": False,
            "LIBUNWIND_ENABLE_SHARED": False,
            "LIBCXX_ENABLE_STATIC_ABI_LIBRARY": True,
        }

    return {
        "LLVM_ENABLE_LIBXML2": False,
        "LLVM_ENABLE_LIBCXX": False,
        "CLANG_DEFAULT_CXX_STDLIB": "libstdc++",
        "LLVM_BUILD_LLVM_DYLIB": True,
        "COMPILER_RT_USE_LLVM_UNWINDER": True,
    }

def cross_layer(target: Target, host: HostDescriptor, toolchain: ToolchainSpec,
                native_tool_dir: Optional[Path] = None) -> Dict[str, OptionValue]:
    """Tool substitution, sysroot pinning and triples for a cross build"""
    options: Dict[str, OptionValue] = {
        "CMAKE_SYSTEM_NAME": target.system_name,
        "CMAKE_SYSTEM_PROCESSOR": target.arch,
        "CMAKE_C_COMPILER": toolchain.cc,
        "CMAKE_CXX_COMPILER": toolchain.cxx,
        "CMAKE_AR": toolchain.ar,
        "CMAKE_STRIP": toolchain.strip,
    }

    if toolchain.sysroot:
        # Programs come from the host PATH, libraries and headers only from the sysroot
        options.update({
            "CMAKE_FIND_ROOT_PATH": toolchain.sysroot,
            "CMAKE_FIND_ROOT_PATH_MODE_PROGRAM": "NEVER",
            "CMAKE_FIND_ROOT_PATH_MODE_LIBRARY": "ONLY",
            "CMAKE_FIND_ROOT_PATH_MODE_INCLUDE": "ONLY",
            "CMAKE_FIND_ROOT_PATH_MODE_PACKAGE": "ONLY",
        })

    options["LLVM_DEFAULT_TARGET_TRIPLE"] = target.triple
    options["LLVM_HOST_TRIPLE"] = target.triple

    if native_tool_dir is not None:
        tool_dir = Path(native_tool_dir)
        options["LLVM_NATIVE_TOOL_DIR"] = tool_dir
        llvm_tblgen, clang_tblgen = NATIVE_HELPER_TOOLS
        options["LLVM_TABLEGEN"] = tool_dir / f"{llvm_tblgen}{host.exe_suffix}"
        options["CLANG_TABLEGEN"] = tool_dir / f"{clang_tblgen}{host.exe_suffix}"

    if target.family is PlatformFamily.WINDOWS and host.os_family is not OSFamily.WINDOWS:
        options.update({
            "LLVM_ENABLE_PIC": False,
            "LLVM_ENABLE_THREADS": False,
            "LLVM_TOOLCHAIN_CROSS_BUILD_MINGW": True,
            "CMAKE_CXX_FLAGS": "-fpermissive -Wno-error -std=gnu++17",
        })

    return options

def runtime_options() -> Dict[str, OptionValue]:
    """compiler-rt, libc++, libc++abi and libunwind, linked statically"""
    return {
        "LLVM_ENABLE_RUNTIMES": LLVM_RUNTIMES,
        "LLVM_BUILD_EXTERNAL_COMPILER_RT": True,
        "LLVM_ENABLE_PER_TARGET_RUNTIME_DIR": False,
        "LIBCXX_INSTALL_MODULES": True,
        "COMPILER_RT_BUILD_SANITIZERS": False,
        "COMPILER_RT_BUILD_XRAY": False,
        "COMPILER_RT_BUILD_LIBFUZZER": False,
        "COMPILER_RT_BUILD_PROFILE": False,
        "COMPILER_RT_BUILD_MEMPROF": False,
        "COMPILER_RT_BUILD_ORC": False,
        "COMPILER_RT_BUILD_GWP_ASAN": False,
        "COMPILER_RT_BUILD_CTX_PROFILE": False,
        "COMPILER_RT_DEFAULT_TARGET_ONLY": True,
        "COMPILER_RT_USE_BUILTINS_LIBRARY": True,
        "LIBCXX_ENABLE_STATIC_ABI_LIBRARY": True,
        "LIBCXX_STATICALLY_LINK_ABI_IN_SHARED_LIBRARY": False,
        "LIBCXX_STATICALLY_LINK_ABI_IN_STATIC_LIBRARY": True,
        "LIBCXX_USE_COMPILER_RT": True,
        "LIBCXX_HAS_ATOMIC_LIB": False,
        "LIBCXXABI_ENABLE_STATIC_UNWINDER": True,
        "LIBCXXABI_STATICALLY_LINK_UNWINDER_IN_SHARED_LIBRARY": False,
        "LIBCXXABI_STATICALLY_LINK_UNWINDER_IN_STATIC_LIBRARY": True,
        "LIBCXXABI_USE_COMPILER_RT": True,
        "LIBCXXABI_USE_LLVM_UNWINDER": True,
        "LIBUNWIND_USE_COMPILER_RT": True,
        "SANITIZER_CXX_ABI": "libc++",
        "SANITIZER_TEST_CXX": "libc++",
    }

def stage_layer(target: Target, host: HostDescriptor, stage: StageKind,
                layout: BuildLayout) -> Dict[str, OptionValue]:
    """What one stage builds, and with which compiler"""
    if stage is StageKind.STAGE1:
        # Core compiler and linker only
        return {
            "LLVM_BUILD_LLVM_DYLIB": False,
            "LLVM_LINK_LLVM_DYLIB": False,
            "CLANG_LINK_CLANG_DYLIB": False,
            "LLVM_BUILD_LLVM_C_DYLIB": False,
            "LLVM_INSTALL_UTILS": False,
            "LLVM_INSTALL_TOOLCHAIN_ONLY": True,
        }

    options = runtime_options()
    if (stage is StageKind.STAGE2 and target.family is PlatformFamily.WINDOWS
            and host.os_family is OSFamily.WINDOWS):
        # Self-hosting handoff: only runnable when the host is Windows too
        stage1_bin = layout.install_dir(StageKind.STAGE1) / "bin"
        options["CMAKE_C_COMPILER"] = stage1_bin / "clang.exe"
        options["CMAKE_CXX_COMPILER"] = stage1_bin / "clang++.exe"
    return options

def install_layer(install_dir: Path) -> Dict[str, OptionValue]:
    """Each stage installs into its own directory"""
    return {"CMAKE_INSTALL_PREFIX": install_dir}

# ============================================================================
# COMPOSITION
# ============================================================================

def compose_options(target: Target, stage: StageKind, toolchain: ToolchainSpec,
                    cross: bool, *, host: HostDescriptor, layout: BuildLayout,
                    native_tool_dir: Optional[Path] = None) -> OptionSet:
    """
    Compose the option set for one stage. Pure: the same inputs always give
    an equal OptionSet and no file is touched.
    """
    options = OptionSet().layered(Layer.BASE, base_layer())
    options = options.layered(Layer.PLATFORM, platform_layer(target, host))
    if cross:
        options = options.layered(Layer.CROSS, cross_layer(target, host, toolchain, native_tool_dir))
    options = options.layered(Layer.STAGE, stage_layer(target, host, stage, layout))
    return options.layered(Layer.INSTALL, install_layer(layout.install_dir(stage)))

def native_helper_options(host: HostDescriptor, layout: BuildLayout) -> OptionSet:
    """Minimal host build that only has to produce the tablegen helpers"""
    cc, cxx, _, _ = HOST_DEFAULT_TOOLS[host.os_family]
    options = OptionSet().layered(Layer.BASE, {
        "CMAKE_BUILD_TYPE": "Release",
        "LLVM_TARGETS_TO_BUILD": "host",
        "LLVM_ENABLE_PROJECTS": "clang",
        "LLVM_INCLUDE_TESTS": False,
        "LLVM_INCLUDE_EXAMPLES": False,
        "LLVM_INCLUDE_BENCHMARKS": False,
        "LLVM_ENABLE_TERMINFO": False,
        "LLVM_ENABLE_ZLIB": False,
        "LLVM_ENABLE_ZSTD": False,
        "LLVM_ENABLE_LIBXML2": False,
    })
    options = options.layered(Layer.STAGE, {
        "CMAKE_C_COMPILER": cc,
        "CMAKE_CXX_COMPILER": cxx,
    })
    return options.layered(Layer.INSTALL, install_layer(layout.native_build_dir))
