"""
Tests for the cmake/ninja command lines.
"""

import subprocess
from pathlib import Path

from clang_release.builder import CMakeNinjaBuildSystem, StepResult
from clang_release.options import Layer, OptionSet


class RecordingRunner:
    def __init__(self, returncode=0):
        self.returncode = returncode
        self.calls = []

    def __call__(self, cmd, cwd=None, check=True, verbose=False, **kwargs):
        self.calls.append((list(cmd), cwd, check))
        return subprocess.CompletedProcess(cmd, self.returncode, "", "")


def test_configure_command():
    runner = RecordingRunner()
    options = OptionSet().layered(Layer.BASE, {"CMAKE_BUILD_TYPE": "Release", "LLVM_ENABLE_EH": True})
    build_system = CMakeNinjaBuildSystem(jobs=8, runner=runner)

    result = build_system.configure(Path("/src/llvm"), Path("/build/stage1"), options)

    assert result == StepResult("configure", 0)
    cmd, cwd, check = runner.calls[0]
    assert cmd == ["cmake", "-G", "Ninja", "/src/llvm",
                   "-DCMAKE_BUILD_TYPE=Release", "-DLLVM_ENABLE_EH=ON"]
    assert cwd == Path("/build/stage1")
    assert check is False


def test_build_and_install_commands():
    runner = RecordingRunner()
    build_system = CMakeNinjaBuildSystem(jobs=4, runner=runner)

    build_system.build(Path("/build/stage1"), ("clang", "lld"))
    build_system.install(Path("/build/stage1"), ("install-clang", "install-lld"))
    build_system.install(Path("/build/stage2"))

    assert [call[0] for call in runner.calls] == [
        ["ninja", "-j4", "clang", "lld"],
        ["ninja", "install-clang", "install-lld"],
        ["ninja", "install"],
    ]


def test_nonzero_exit_is_a_result():
    build_system = CMakeNinjaBuildSystem(jobs=1, runner=RecordingRunner(returncode=2))
    result = build_system.build(Path("/build/single"))

    assert not result.ok
    assert result.step == "build"
    assert result.returncode == 2
