#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_native.py
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
Android native library build delegate.

Hands the app's CMake build script to CMake with the Android NDK toolchain,
once per requested ABI, and collects the shared library each invocation
produces. Nothing is compiled here: CMake and the NDK do the work, this
module only supplies the script path, the minimum CMake version and the
per-ABI settings, then waits for the result.

Per-ABI builds are independent and run on a thread pool. Every ABI runs to
completion (success or failure) before failures are reported, so one broken
ABI never hides a second one.

Requirements:
- Android NDK r25c or later (ANDROID_NDK_HOME or NDK_ROOT)
- CMake at least the version the app pins (3.22.1 by default), either the
  SDK-managed $ANDROID_HOME/cmake/<version> or cmake on PATH

Output:
    <build_root>/<abi>/          CMake build tree (kept for incremental builds)
    <build_root>/<abi>/lib/      produced shared libraries
"""

import multiprocessing
import os
import shlex
import shutil
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional

from gfxbundle.build_scripts.build_utils import (
    format_elapsed_time,
    get_android_toolchain_file,
    get_ndk_root,
    list_files,
    parse_cmake_version,
    print_section,
    resolve_cmake,
    system_is_windows,
    version_at_least,
)
from gfxbundle.utils.cmd.cmd_util import (
    BUILD_TIMEOUT_SECOND,
    DEFAULT_TIMEOUT_SECOND,
    ERR_CODE_CANCELLED,
    exec_command_with_timeout_second,
)
from gfxbundle.utils.context.result import CliResult
from gfxbundle.utils.errors import AggregateFailure, NativeBuildError
from gfxbundle.utils.variant.config import DEFAULT_MIN_SDK, parse_arch_list

ANDROID_STL = "c++_shared"
# lines of toolchain output kept in a NativeBuildError
ERROR_TAIL_LINES = 60


@dataclass(frozen=True)
class BuildDescriptor:
    """What the native toolchain is handed: the build script and the minimum CMake version."""

    script_path: str
    toolchain_version: str

    @property
    def source_dir(self) -> str:
        return os.path.dirname(os.path.abspath(self.script_path))


def _output_tail(output, lines=ERROR_TAIL_LINES):
    output_lines = (output or "").rstrip().splitlines()
    if len(output_lines) > lines:
        output_lines = ["..."] + output_lines[-lines:]
    return "\n".join(output_lines)


def get_cmake_generator():
    if shutil.which("ninja"):
        return ["-G", "Ninja"]
    if system_is_windows():
        return ["-G", "Unix Makefiles"]
    return []


class NativeBuildDelegate:
    """
    Drive CMake + NDK builds for a set of ABIs.

    Args:
        build_root: directory holding one CMake build tree per ABI
        min_sdk: Android API level passed as ANDROID_PLATFORM
        build_type: "debug" or "release"
        library_name: expected output is lib<library_name>.so; when None
            each ABI must produce exactly one shared library
        ndk_root: NDK path (default: discovered from the environment)
        cmake: cmake executable (default: discovered, see resolve_cmake)
        max_parallel: concurrent ABI builds (default: min(#abis, cpu count))
        jobs_per_build: `cmake --build --parallel` value (default: cpu
            count divided among the concurrent builds)
        incremental: keep existing build trees (default) or start clean
        timeout_second: per toolchain invocation
        runner: callable(command, cwd) -> (exit_code, output); defaults to
            a subprocess runner honouring cancel_event
        cancel_event: threading.Event; once set, running toolchain
            processes are terminated and queued ABIs are skipped
        verbose: print the full toolchain output of every invocation
    """

    def __init__(
        self,
        build_root,
        min_sdk=DEFAULT_MIN_SDK,
        build_type="debug",
        library_name=None,
        ndk_root=None,
        cmake=None,
        max_parallel=None,
        jobs_per_build=None,
        incremental=True,
        timeout_second=BUILD_TIMEOUT_SECOND,
        runner=None,
        cancel_event=None,
        verbose=False,
    ):
        self.build_root = os.path.abspath(build_root)
        self.min_sdk = min_sdk
        self.build_type = build_type
        self.library_name = library_name
        self.ndk_root = ndk_root
        self.cmake = cmake
        self.max_parallel = max_parallel
        self.jobs_per_build = jobs_per_build
        self.incremental = incremental
        self.timeout_second = timeout_second
        self.cancel_event = cancel_event or threading.Event()
        self.runner = runner or self._run_subprocess
        self.verbose = verbose
        self._lock = threading.Lock()

    def _run_subprocess(self, command, cwd=None):
        timeout = self.timeout_second
        if "--version" in command:
            timeout = DEFAULT_TIMEOUT_SECOND
        return exec_command_with_timeout_second(
            command, timeout, cwd=cwd, cancel_event=self.cancel_event
        )

    def cancel(self):
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def arch_build_dir(self, arch) -> str:
        return os.path.join(self.build_root, arch)

    def arch_output_dir(self, arch) -> str:
        return os.path.join(self.arch_build_dir(arch), "lib")

    def _cmake_build_type(self):
        return "Release" if self.build_type == "release" else "Debug"

    def toolchain_preflight(self, descriptor: BuildDescriptor) -> Optional[str]:
        """
        Check the build script, NDK and CMake once per run.

        Returns:
            None when the toolchain is usable, otherwise the error message
        """
        if not os.path.isfile(descriptor.script_path):
            return f"native build script not found: {descriptor.script_path}"

        ndk_root = get_ndk_root(self.ndk_root)
        if not ndk_root:
            return "Android NDK not found, set ANDROID_NDK_HOME or NDK_ROOT"
        if not os.path.isfile(get_android_toolchain_file(ndk_root)):
            return f"android.toolchain.cmake not found in NDK at {ndk_root}"
        self.ndk_root = ndk_root

        cmake = resolve_cmake(descriptor.toolchain_version, self.cmake)
        if not cmake:
            return f"cmake {descriptor.toolchain_version} or newer not found"
        try:
            err_code, output = self.runner([cmake, "--version"], None)
        except OSError as e:
            return f"cannot run {cmake}: {e}"
        version = parse_cmake_version(output) if err_code == 0 else None
        if not version:
            return f"cannot determine cmake version of {cmake}: {_output_tail(output, 5)}"
        if not version_at_least(version, descriptor.toolchain_version):
            return (
                f"cmake {version} at {cmake} is older than the required "
                f"{descriptor.toolchain_version}"
            )
        self.cmake = cmake
        print(f"native toolchain: cmake {version} ({cmake}), ndk {ndk_root}")
        return None

    def configure_command(self, descriptor: BuildDescriptor, arch) -> List[str]:
        return [
            self.cmake,
            "-S", descriptor.source_dir,
            "-B", self.arch_build_dir(arch),
            *get_cmake_generator(),
            f"-DANDROID_ABI={arch}",
            f"-DANDROID_PLATFORM=android-{self.min_sdk}",
            f"-DANDROID_NDK={self.ndk_root}",
            f"-DCMAKE_TOOLCHAIN_FILE={get_android_toolchain_file(self.ndk_root)}",
            f"-DANDROID_STL={ANDROID_STL}",
            f"-DCMAKE_BUILD_TYPE={self._cmake_build_type()}",
            f"-DCMAKE_LIBRARY_OUTPUT_DIRECTORY={self.arch_output_dir(arch)}",
            "-DCMAKE_EXPORT_COMPILE_COMMANDS=ON",
        ]

    def build_command(self, arch, jobs) -> List[str]:
        return [
            self.cmake,
            "--build", self.arch_build_dir(arch),
            "--config", self._cmake_build_type(),
            "--parallel", str(jobs),
        ]

    def find_output_library(self, arch) -> str:
        output_dir = self.arch_output_dir(arch)
        if self.library_name:
            library = os.path.join(output_dir, f"lib{self.library_name}.so")
            if os.path.isfile(library):
                return library
            raise NativeBuildError(
                arch, f"build finished but {os.path.basename(library)} was not produced in {output_dir}"
            )
        libraries = list_files(output_dir, "*.so")
        if len(libraries) == 1:
            return libraries[0]
        if not libraries:
            raise NativeBuildError(arch, f"build finished but no shared library was produced in {output_dir}")
        raise NativeBuildError(
            arch,
            f"build produced several shared libraries, set library_name: "
            f"{', '.join(os.path.basename(x) for x in libraries)}",
        )

    def _invoke(self, arch, step, command, cwd=None):
        with self._lock:
            print(f"[{arch}] {step} cmd: [{shlex.join(command)}]")
        err_code, output = self.runner(command, cwd)
        if self.verbose and output:
            with self._lock:
                print(output)
        if err_code == ERR_CODE_CANCELLED or (err_code != 0 and self.cancelled):
            raise NativeBuildError(arch, "cancelled")
        if err_code != 0:
            raise NativeBuildError(
                arch, f"{step} failed with exit code {err_code}:\n{_output_tail(output)}"
            )

    def build_arch(self, descriptor: BuildDescriptor, arch, jobs) -> CliResult:
        """Configure and build one ABI. Never raises; the outcome is in the result."""
        before_time = time.time()
        try:
            if self.cancelled:
                raise NativeBuildError(arch, "cancelled")
            build_dir = self.arch_build_dir(arch)
            if not self.incremental and os.path.isdir(build_dir):
                shutil.rmtree(build_dir)
            os.makedirs(build_dir, exist_ok=True)
            self._invoke(arch, "configure", self.configure_command(descriptor, arch), build_dir)
            self._invoke(arch, "build", self.build_command(arch, jobs), build_dir)
            library = self.find_output_library(arch)
        except NativeBuildError as e:
            return CliResult.failure(e, elapsed=time.time() - before_time)
        except OSError as e:
            return CliResult.failure(
                NativeBuildError(arch, f"{type(e).__name__}: {e}"),
                elapsed=time.time() - before_time,
            )
        return CliResult.success(library, elapsed=time.time() - before_time)

    def build(self, descriptor: BuildDescriptor, architectures) -> Dict[str, str]:
        """
        Build every requested ABI.

        Returns:
            dict: {abi: path of the produced shared library}

        Raises:
            AggregateFailure: of one NativeBuildError per failed ABI, raised
                only after every ABI has finished
        """
        archs = list(parse_arch_list(architectures))
        before_time = time.time()
        print_section(f"Native Build, archs: {archs}, type: {self.build_type}")

        error = self.toolchain_preflight(descriptor)
        if error:
            print(f"❌ {error}")
            raise AggregateFailure(
                [NativeBuildError(arch, error) for arch in archs],
                summary="native toolchain unavailable",
            )

        cpu_count = multiprocessing.cpu_count()
        max_parallel = self.max_parallel or min(len(archs), cpu_count)
        max_parallel = max(1, min(max_parallel, len(archs)))
        jobs = self.jobs_per_build or max(1, cpu_count // max_parallel)

        results: Dict[str, CliResult] = {}
        completed_count = 0
        with ThreadPoolExecutor(max_workers=max_parallel) as executor:
            futures = {
                executor.submit(self.build_arch, descriptor, arch, jobs): arch
                for arch in archs
            }
            try:
                for future in as_completed(futures):
                    arch = futures[future]
                    result = future.result()
                    results[arch] = result
                    completed_count += 1
                    elapsed = format_elapsed_time(result.elapsed)
                    with self._lock:
                        if result.is_success():
                            print(f"✅ [{completed_count}/{len(archs)}] {arch} completed ({elapsed})")
                        else:
                            print(f"❌ [{completed_count}/{len(archs)}] {arch} failed ({elapsed})")
            except BaseException:
                # Ctrl-C or a crashed worker: stop running toolchains, drop queued archs
                self.cancel_event.set()
                for future in futures:
                    future.cancel()
                raise

        success_archs = [a for a in archs if results[a].is_success()]
        failed_archs = [a for a in archs if results[a].is_failure()]
        print_section("Native Build Done")
        print(f"Build All:{archs}")
        print(f"Build Success:{success_archs}")
        print(f"Build Failed:{failed_archs}")
        print(f"use time: {format_elapsed_time(time.time() - before_time)}")

        if failed_archs:
            raise AggregateFailure(
                [results[a].get_error() for a in failed_archs],
                summary=f"native build failed for {', '.join(failed_archs)}",
            )
        return {arch: results[arch].get_value() for arch in archs}
