#!/usr/bin/env python3
# -- coding: utf-8 --
#
# pipeline.py
# gfxbundle
#
# Copyright 2024 gfxbundle Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Prepare-and-build pipeline for one application variant.

    IDLE -> STAGING -> BUILDING -> COMPLETE
               |           |
               +-> FAILED <+

STAGING runs the asset copy and the validation layer injection side by side
and waits for both. BUILDING starts only once both succeeded: the native
build delegate is never invoked after a staging failure. The run either
returns a complete PipelineResult or raises one AggregateFailure naming
every cause.
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from gfxbundle.build_scripts.build_native import BuildDescriptor, NativeBuildDelegate
from gfxbundle.build_scripts.build_utils import (
    copy_file_if_changed,
    format_elapsed_time,
    paths_overlap,
    print_section,
    print_time,
    print_tree,
)
from gfxbundle.build_scripts.inject_validation_layer import inject
from gfxbundle.build_scripts.stage_assets import StagingReport, stage
from gfxbundle.utils.errors import (
    AggregateFailure,
    GfxBundleError,
    PartialCopyFailure,
    PipelineCancelled,
    PipelineStateError,
    StagingError,
)
from gfxbundle.utils.variant.config import Variant


class PipelineState(Enum):
    IDLE = "idle"
    STAGING = "staging"
    BUILDING = "building"
    COMPLETE = "complete"
    FAILED = "failed"


TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.STAGING},
    PipelineState.STAGING: {PipelineState.BUILDING, PipelineState.FAILED},
    PipelineState.BUILDING: {PipelineState.COMPLETE, PipelineState.FAILED},
    # a finished pipeline may be prepared again
    PipelineState.COMPLETE: {PipelineState.IDLE},
    PipelineState.FAILED: {PipelineState.IDLE},
}


@dataclass
class StagingTask:
    name: str
    description: str
    source_path: str
    destination_path: str
    action: Callable[[], StagingReport]

    def run(self) -> StagingReport:
        return self.action()


@dataclass(frozen=True)
class PipelineResult:
    staged_asset_root: str
    staged_library_root: str
    compiled_libraries: Dict[str, str]
    staging_reports: Dict[str, StagingReport] = field(default_factory=dict)


class Pipeline:
    """
    Coordinator of one variant's staging and native build.

    Args:
        variant: the Variant to prepare
        delegate: native build delegate; defaults to a NativeBuildDelegate
            configured from the variant
        max_parallel: concurrent ABI builds for the default delegate
        verbose: print every staged file and full toolchain output
        delegate_options: extra NativeBuildDelegate arguments (ndk_root,
            cmake, incremental, timeout_second, runner)
    """

    def __init__(
        self,
        variant: Variant,
        delegate: Optional[NativeBuildDelegate] = None,
        max_parallel: Optional[int] = None,
        verbose: bool = False,
        **delegate_options,
    ):
        self.variant = variant
        self.verbose = verbose
        self.cancel_event = threading.Event()
        if delegate is None:
            delegate = NativeBuildDelegate(
                variant.native_build_dir,
                min_sdk=variant.min_sdk,
                build_type=variant.build_type,
                library_name=variant.library_name,
                max_parallel=max_parallel or variant.jobs or None,
                cancel_event=self.cancel_event,
                verbose=verbose,
                **delegate_options,
            )
        self.delegate = delegate
        self.state = PipelineState.IDLE
        self.state_history: List[PipelineState] = [PipelineState.IDLE]
        self._state_lock = threading.Lock()

    def _transition(self, new_state: PipelineState):
        with self._state_lock:
            if new_state not in TRANSITIONS[self.state]:
                raise PipelineStateError(
                    f"illegal transition {self.state.value} -> {new_state.value}"
                )
            self.state = new_state
            self.state_history.append(new_state)
        print(f"[{self.variant.name}] state: {new_state.value}")

    def cancel(self):
        """Ask a running prepare() to stop; in-flight toolchain processes are terminated."""
        self.cancel_event.set()
        cancel = getattr(self.delegate, "cancel", None)
        if cancel is not None:
            cancel()

    def staging_tasks(self) -> List[StagingTask]:
        variant = self.variant
        tasks = [
            StagingTask(
                name="copyResToAssets",
                description="Copy resource data into the assets directory",
                source_path=variant.asset_source,
                destination_path=variant.asset_destination,
                action=lambda: stage(
                    variant.asset_source, variant.asset_destination, verbose=self.verbose
                ),
            )
        ]
        if variant.validation_layer:
            tasks.append(
                StagingTask(
                    name="copyValidationLayer",
                    description="Copy the validation layer into jniLibs",
                    source_path=variant.validation_layer_source,
                    destination_path=variant.library_destination,
                    action=lambda: inject(
                        variant.architectures,
                        variant.validation_layer_source,
                        variant.library_destination,
                        library_name=variant.validation_layer_library,
                        verbose=self.verbose,
                    ),
                )
            )
        return tasks

    def _run_staging(self) -> Dict[str, StagingReport]:
        tasks = self.staging_tasks()
        if len(tasks) > 1 and paths_overlap(tasks[0].destination_path, tasks[1].destination_path):
            raise AggregateFailure(
                [StagingError(
                    f"asset destination {tasks[0].destination_path} and library destination "
                    f"{tasks[1].destination_path} overlap"
                )],
                summary="staging failed",
            )

        reports = {}
        errors = []
        with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = {executor.submit(task.run): task for task in tasks}
            # wait for every task, a failing one does not stop the other
            try:
                for future, task in futures.items():
                    try:
                        reports[task.name] = future.result()
                    except GfxBundleError as e:
                        print(f"❌ {task.name} failed: {e}")
                        errors.append(e)
            except BaseException:
                self.cancel_event.set()
                for future in futures:
                    future.cancel()
                raise

        if self.cancel_event.is_set():
            errors.append(PipelineCancelled("cancelled during staging"))
        if errors:
            raise AggregateFailure(errors, summary="staging failed")
        return reports

    def _install_libraries(self, compiled: Dict[str, str]) -> Dict[str, str]:
        """
        Copy every compiled library into jniLibs/<abi>/.

        All or nothing: when one copy fails, the libraries written by this
        call are removed again before PartialCopyFailure is raised.
        """
        installed = {}
        written = []
        failures = []
        for arch, library in compiled.items():
            rel = os.path.join(arch, os.path.basename(library))
            dst = os.path.join(self.variant.library_destination, rel)
            try:
                if copy_file_if_changed(library, dst):
                    written.append(dst)
            except OSError as e:
                failures.append((rel, e.strerror or str(e)))
                continue
            installed[arch] = dst
        if failures:
            for dst in written:
                try:
                    os.remove(dst)
                except OSError as e:
                    print(f"⚠️ could not remove {dst}: {e}")
            raise PartialCopyFailure(self.variant.library_destination, failures)
        return installed

    def prepare(self) -> PipelineResult:
        """
        Stage, build and install for the variant.

        Returns:
            PipelineResult

        Raises:
            AggregateFailure: every error that made the run fail
            PipelineStateError: a run is already in progress
        """
        variant = self.variant
        with self._state_lock:
            busy = self.state in (PipelineState.STAGING, PipelineState.BUILDING)
        if busy:
            raise PipelineStateError(f"[{variant.name}] prepare() called while {self.state.value}")
        if self.state is not PipelineState.IDLE:
            self._transition(PipelineState.IDLE)
            self.cancel_event.clear()

        before_time = time.time()
        print_section(f"Prepare {variant.name} ({variant.application_id})")
        print(
            f"archs: {list(variant.architectures)}, build_type: {variant.build_type}, "
            f"validation_layer: {variant.validation_layer}, minify: {variant.minify}"
        )

        self._transition(PipelineState.STAGING)
        try:
            reports = self._run_staging()
        except BaseException:
            self._transition(PipelineState.FAILED)
            raise

        self._transition(PipelineState.BUILDING)
        descriptor = BuildDescriptor(
            script_path=variant.native_script,
            toolchain_version=variant.toolchain_version,
        )
        try:
            compiled = self.delegate.build(descriptor, variant.architectures)
            missing = [a for a in variant.architectures if a not in compiled]
            if missing:
                raise GfxBundleError(
                    f"native build returned no library for {', '.join(missing)}"
                )
            installed = self._install_libraries(compiled)
        except GfxBundleError as e:
            self._transition(PipelineState.FAILED)
            raise AggregateFailure([e], summary=f"[{variant.name}] build failed") from e
        except BaseException:
            self._transition(PipelineState.FAILED)
            raise

        self._transition(PipelineState.COMPLETE)
        result = PipelineResult(
            staged_asset_root=variant.asset_destination,
            staged_library_root=variant.library_destination,
            compiled_libraries=installed,
            staging_reports=reports,
        )
        print_time()
        print(f"[{variant.name}] prepared in {format_elapsed_time(time.time() - before_time)}")
        return result


def print_pipeline_result(result: PipelineResult):
    print_section("Bundle Inputs")
    print("assets:")
    print_tree(result.staged_asset_root)
    print("native libraries:")
    print_tree(result.staged_library_root)
    print_section("Prepare Complete")
