"""
Tests for toolchain resolution and native helper verification.
"""

import pytest

from clang_release.errors import MissingToolchainError
from clang_release.toolchain import (ToolchainResolver, ToolchainSpec, native_helpers_present,
                                     verify_native_helpers)

from conftest import make_which


class TestResolve:
    def test_native_linux_uses_host_tools(self, catalog, linux_host):
        spec = ToolchainResolver(make_which()).resolve(catalog.resolve("x86_64-linux-gnu"), linux_host)
        assert spec == ToolchainSpec("gcc", "g++", "ar", "strip")
        assert not spec.needs_native_helpers

    def test_native_darwin_uses_clang(self, catalog, darwin_host):
        spec = ToolchainResolver(make_which()).resolve(catalog.resolve("aarch64-apple-darwin"), darwin_host)
        assert spec.tools == ("clang", "clang++", "ar", "strip")
        assert spec.sysroot is None

    def test_cross_prefixes_every_tool(self, catalog, linux_host):
        spec = ToolchainResolver(make_which()).resolve(catalog.resolve("aarch64-linux-gnu"), linux_host)
        assert spec.tools == (
            "aarch64-linux-gnu-gcc",
            "aarch64-linux-gnu-g++",
            "aarch64-linux-gnu-ar",
            "aarch64-linux-gnu-strip",
        )
        assert spec.prefix == "aarch64-linux-gnu-"
        assert spec.sysroot == "/usr/aarch64-linux-gnu"
        assert spec.needs_native_helpers

    def test_sysroot_override(self, catalog, linux_host):
        resolver = ToolchainResolver(make_which(), sysroot_override="/opt/sysroot")
        spec = resolver.resolve(catalog.resolve("arm-linux-gnueabihf"), linux_host)
        assert spec.sysroot == "/opt/sysroot"

    def test_windows_cross_from_windows_host_is_native(self, catalog, windows_host):
        spec = ToolchainResolver(make_which()).resolve(catalog.resolve("x86_64-w64-mingw32"), windows_host)
        assert spec.prefix == ""
        assert not spec.needs_native_helpers

    def test_apple_cross_on_darwin_uses_sdk(self, catalog, darwin_host):
        spec = ToolchainResolver(make_which()).resolve(catalog.resolve("x86_64-apple-darwin"), darwin_host)
        assert spec.cc == "clang"
        assert spec.sysroot == darwin_host.sdk_root
        assert spec.needs_native_helpers

    def test_missing_cross_compiler_names_executable(self, catalog, linux_host):
        resolver = ToolchainResolver(make_which("x86_64-w64-mingw32-gcc"))
        with pytest.raises(MissingToolchainError) as exc_info:
            resolver.resolve(catalog.resolve("x86_64-w64-mingw32"), linux_host)
        assert exc_info.value.executable == "x86_64-w64-mingw32-gcc"
        assert "gcc-mingw-w64-x86-64" in str(exc_info.value)

    def test_missing_secondary_tool_reuses_compiler_hint(self, catalog, linux_host):
        resolver = ToolchainResolver(make_which("aarch64-linux-gnu-strip"))
        with pytest.raises(MissingToolchainError) as exc_info:
            resolver.resolve(catalog.resolve("aarch64-linux-gnu"), linux_host)
        assert exc_info.value.executable == "aarch64-linux-gnu-strip"
        assert "gcc-aarch64-linux-gnu" in exc_info.value.hint

    def test_describe_does_not_look_up_tools(self, catalog, linux_host):
        def which(tool):
            raise AssertionError("describe must not search PATH")
        spec = ToolchainResolver(which).describe(catalog.resolve("aarch64-linux-gnu"), linux_host)
        assert spec.cc == "aarch64-linux-gnu-gcc"


class TestNativeHelpers:
    def test_verify_accepts_complete_directory(self, tmp_path, linux_host):
        for tool in ("llvm-tblgen", "clang-tblgen"):
            (tmp_path / tool).write_text("")
        assert verify_native_helpers(tmp_path, linux_host) == tmp_path
        assert native_helpers_present(tmp_path, linux_host)

    def test_verify_reports_missing_helper(self, tmp_path, linux_host):
        (tmp_path / "llvm-tblgen").write_text("")
        with pytest.raises(MissingToolchainError) as exc_info:
            verify_native_helpers(tmp_path, linux_host)
        assert exc_info.value.executable == str(tmp_path / "clang-tblgen")
        assert not native_helpers_present(tmp_path, linux_host)

    def test_windows_host_expects_exe_suffix(self, tmp_path, windows_host):
        for tool in ("llvm-tblgen", "clang-tblgen"):
            (tmp_path / tool).write_text("")
        assert not native_helpers_present(tmp_path, windows_host)

    def test_no_directory_means_not_present(self, linux_host):
        assert not native_helpers_present(None, linux_host)
