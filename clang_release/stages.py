"""
Stage sequencer: native helpers, single or two-stage build, then packaging.

States and the transitions allowed between them:

    IDLE          -> NATIVE_HELPER | SINGLE | STAGE1
    NATIVE_HELPER -> SINGLE | STAGE1 | FAILED
    SINGLE        -> PACKAGING | FAILED
    STAGE1        -> STAGE2 | FAILED
    STAGE2        -> PACKAGING | FAILED
    PACKAGING     -> DONE | FAILED

Any other transition raises InvalidTransitionError, so STAGE2 can only be
reached through a STAGE1 that completed its install step.
"""

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .builder import StepResult
from .errors import InvalidTransitionError, MissingToolchainError, PackagingError
from .options import OptionSet, compose_options, native_helper_options
from .packager import Packager
from .plan import BuildLayout, BuildPlan, StageKind
from .toolchain import (NATIVE_HELPER_TOOLS, ToolchainSpec, helper_paths,
                        native_helpers_present, verify_native_helpers)
from .utils import log_error, log_info, log_step, log_success

# ============================================================================
# STATES AND RESULTS
# ============================================================================

class SequencerState(Enum):
    IDLE = "idle"
    NATIVE_HELPER = "native-helper"
    SINGLE = "single"
    STAGE1 = "stage1"
    STAGE2 = "stage2"
    PACKAGING = "packaging"
    DONE = "done"
    FAILED = "failed"

TRANSITIONS = {
    SequencerState.IDLE: {SequencerState.NATIVE_HELPER, SequencerState.SINGLE, SequencerState.STAGE1},
    SequencerState.NATIVE_HELPER: {SequencerState.SINGLE, SequencerState.STAGE1, SequencerState.FAILED},
    SequencerState.SINGLE: {SequencerState.PACKAGING, SequencerState.FAILED},
    SequencerState.STAGE1: {SequencerState.STAGE2, SequencerState.FAILED},
    SequencerState.STAGE2: {SequencerState.PACKAGING, SequencerState.FAILED},
    SequencerState.PACKAGING: {SequencerState.DONE, SequencerState.FAILED},
    SequencerState.DONE: set(),
    SequencerState.FAILED: set(),
}

STAGE_STATES = {
    StageKind.SINGLE: SequencerState.SINGLE,
    StageKind.STAGE1: SequencerState.STAGE1,
    StageKind.STAGE2: SequencerState.STAGE2,
}

class FailureKind(Enum):
    CONFIGURE = "configure"
    BUILD = "build"
    INSTALL = "install"
    TOOLCHAIN = "toolchain"
    PACKAGING = "packaging"

@dataclass(frozen=True)
class StageResult:
    state: SequencerState
    failure: Optional[FailureKind] = None
    returncode: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

STAGE1_BUILD_TARGETS = ("clang", "lld")
STAGE1_INSTALL_TARGETS = ("install-clang", "install-lld", "install-clang-resource-headers")
FULL_INSTALL_TARGETS = ("install",)

# Written into each stage build directory for diagnostics
OPTIONS_SNAPSHOT = "options.yml"

@dataclass(frozen=True)
class StageDescriptor:
    kind: StageKind
    options: OptionSet
    build_dir: Path
    install_dir: Path
    build_targets: Tuple[str, ...] = ()
    install_targets: Tuple[str, ...] = FULL_INSTALL_TARGETS

@dataclass
class SequencerOutcome:
    state: SequencerState
    history: List[SequencerState]
    results: List[StageResult] = field(default_factory=list)
    archive: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.state is SequencerState.DONE

    @property
    def failure(self) -> Optional[StageResult]:
        for result in self.results:
            if not result.ok:
                return result
        return None

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

# ============================================================================
# SEQUENCER
# ============================================================================

class StageSequencer:
    """
    Drive the stages of one build plan.

    ``build_system`` needs ``configure(source_dir, build_dir, options)``,
    ``build(build_dir, targets)`` and ``install(build_dir, targets)``, each
    returning a StepResult.
    """

    def __init__(self, plan: BuildPlan, toolchain: ToolchainSpec, layout: BuildLayout,
                 build_system, packager: Packager, keep_build_dir: bool = False):
        self.plan = plan
        self.toolchain = toolchain
        self.layout = layout
        self.build_system = build_system
        self.packager = packager
        self.keep_build_dir = keep_build_dir

        self.state = SequencerState.IDLE
        self.history: List[SequencerState] = [SequencerState.IDLE]
        self.results: List[StageResult] = []
        self.native_tool_dir: Optional[Path] = None
        self.archive: Optional[Path] = None

    def transition(self, new_state: SequencerState):
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.state.name} -> {new_state.name}")
        self.state = new_state
        self.history.append(new_state)

    def describe(self, kind: StageKind) -> StageDescriptor:
        options = compose_options(
            self.plan.target, kind, self.toolchain, self.plan.cross,
            host=self.plan.host, layout=self.layout,
            native_tool_dir=self.native_tool_dir,
        )
        if kind is StageKind.STAGE1:
            return StageDescriptor(kind, options, self.layout.build_dir(kind),
                                   self.layout.install_dir(kind),
                                   STAGE1_BUILD_TARGETS, STAGE1_INSTALL_TARGETS)
        return StageDescriptor(kind, options, self.layout.build_dir(kind),
                               self.layout.install_dir(kind))

    def run(self) -> SequencerOutcome:
        try:
            final_stage = self._run_stages()
            if final_stage is not None:
                self._package(final_stage)
        finally:
            self._cleanup()

        return SequencerOutcome(self.state, list(self.history), list(self.results), self.archive)

    def manifest(self) -> Dict[str, Any]:
        plan = self.plan
        return {
            "target": plan.target.triple,
            "version": self.packager.version,
            "host": plan.host.triple,
            "cross": plan.cross,
            "native_helpers": plan.needs_native_helpers,
            "two_stage": plan.two_stage,
            "stages": [kind.value for kind in plan.stages],
            "toolchain": {
                "cc": self.toolchain.cc,
                "cxx": self.toolchain.cxx,
                "ar": self.toolchain.ar,
                "strip": self.toolchain.strip,
            },
        }

    def _run_stages(self) -> Optional[StageDescriptor]:
        if self.toolchain.needs_native_helpers:
            self.transition(SequencerState.NATIVE_HELPER)
            if not self._record(self._run_native_helper()):
                return None

        stage = None
        for kind in self.plan.stages:
            self.transition(STAGE_STATES[kind])
            stage = self.describe(kind)
            if not self._record(self._execute(stage)):
                return None
        return stage

    def _record(self, result: StageResult) -> bool:
        self.results.append(result)
        if not result.ok:
            self.transition(SequencerState.FAILED)
        return result.ok

    def _run_native_helper(self) -> StageResult:
        host = self.plan.host
        override = self.layout.native_tool_dir
        log_step("NATIVE", f"Building native helper tools for {host.triple}")

        if native_helpers_present(override, host):
            log_info(f"Using prebuilt native helper tools from {override}")
            self.native_tool_dir = override
            return StageResult(SequencerState.NATIVE_HELPER)

        build_dir = self.layout.native_build_dir
        build_dir.mkdir(parents=True, exist_ok=True)
        options = native_helper_options(host, self.layout)

        failed = self._run_steps(SequencerState.NATIVE_HELPER, [
            lambda: self.build_system.configure(self.layout.llvm_source_dir, build_dir, options),
            lambda: self.build_system.build(build_dir, NATIVE_HELPER_TOOLS),
        ])
        if failed is not None:
            return failed

        built = build_dir / "bin"
        try:
            verify_native_helpers(built, host)
            if override is not None:
                override.mkdir(parents=True, exist_ok=True)
                for path in helper_paths(built, host).values():
                    shutil.copy2(path, override / path.name)
                built = verify_native_helpers(override, host)
        except MissingToolchainError as e:
            log_error(str(e))
            return StageResult(SequencerState.NATIVE_HELPER, FailureKind.TOOLCHAIN, message=str(e))

        self.native_tool_dir = built
        log_success(f"Native helper tools published to {built}")
        return StageResult(SequencerState.NATIVE_HELPER)

    def _execute(self, stage: StageDescriptor) -> StageResult:
        state = STAGE_STATES[stage.kind]
        log_step(stage.kind.value.upper(), f"Building {self.plan.target} ({stage.kind.value})")

        # An install tree always reflects exactly one build
        if stage.install_dir.exists():
            shutil.rmtree(stage.install_dir)
        stage.build_dir.mkdir(parents=True, exist_ok=True)
        (stage.build_dir / OPTIONS_SNAPSHOT).write_text(stage.options.to_yaml())

        log_info("CMake configuration:")
        for arg in stage.options.to_args():
            print(f"  {arg}")

        failed = self._run_steps(state, [
            lambda: self.build_system.configure(self.layout.llvm_source_dir, stage.build_dir, stage.options),
            lambda: self.build_system.build(stage.build_dir, stage.build_targets),
            lambda: self.build_system.install(stage.build_dir, stage.install_targets),
        ])
        if failed is not None:
            return failed

        log_success(f"Installed {stage.kind.value} to {stage.install_dir}")
        return StageResult(state)

    def _run_steps(self, state: SequencerState, steps) -> Optional[StageResult]:
        """Run steps in order, stopping at the first non-zero exit"""
        for step in steps:
            result: StepResult = step()
            if not result.ok:
                log_error(f"{state.value} {result.step} failed with exit status {result.returncode}")
                return StageResult(state, FailureKind(result.step), result.returncode)
        return None

    def _package(self, stage: StageDescriptor):
        self.transition(SequencerState.PACKAGING)
        try:
            self.archive = self.packager.package(self.plan.target, stage.install_dir, self.manifest())
        except PackagingError as e:
            log_error(str(e))
            self._record(StageResult(SequencerState.PACKAGING, FailureKind.PACKAGING, message=str(e)))
            return
        self._record(StageResult(SequencerState.PACKAGING))
        self.transition(SequencerState.DONE)

    def _cleanup(self):
        if self.keep_build_dir:
            log_info(f"Keeping build directory {self.layout.target_build_root}")
            return

        paths = [self.layout.target_build_root]
        if self.plan.two_stage:
            paths.append(self.layout.install_dir(StageKind.STAGE1))
        for path in paths:
            if path.exists():
                log_info(f"Removing {path}")
                shutil.rmtree(path)
