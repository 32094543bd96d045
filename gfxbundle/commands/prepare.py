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

import sys
import time
import argparse

from gfxbundle.build_scripts.build_utils import format_elapsed_time, print_section
from gfxbundle.build_scripts.pipeline import Pipeline, print_pipeline_result
from gfxbundle.utils.context.namespace import CliNameSpace
from gfxbundle.utils.context.context import CliContext
from gfxbundle.utils.context.command import CliCommand
from gfxbundle.utils.errors import GfxBundleError
from gfxbundle.utils.variant.config import load_variant_matrix, parse_arch_list


class Prepare(CliCommand):
    def description(self) -> str:
        return """
        Prepare an Android app module for packaging.

        For every selected app:
            1. copy the resource tree into src/main/assets/res
            2. copy the validation layer of every ABI into src/main/jniLibs/<abi>
               (when enabled for the app)
            3. build the native library for every ABI with CMake + NDK
            4. install the built libraries into src/main/jniLibs/<abi>

        Steps 1 and 2 run side by side; step 3 starts only once both succeeded.
        Any failure stops the app with a list of every cause; nothing is
        reported as built unless every ABI built.

        Examples:
            gfxbundle prepare                         # every app in GFXBUNDLE.toml
            gfxbundle prepare computeshader           # one app
            gfxbundle prepare all --release           # release build type
            gfxbundle prepare all --arch arm64,x86_64 # override abi_filters
            gfxbundle prepare all --no-validation-layer
            gfxbundle prepare hellotriangle -j 1      # build ABIs one at a time
        """

    def add_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument(
            "target",
            nargs="?",
            default="all",
            help="App name from GFXBUNDLE.toml, or 'all' (default: all)",
        )
        parser.add_argument(
            "--config",
            action="store",
            default=None,
            help="Path to GFXBUNDLE.toml (default: search the current directory)",
        )
        parser.add_argument(
            "--arch",
            action="store",
            default=None,
            help="ABIs like arm64-v8a,x86_64 (aliases: arm64, x64, ...), overrides abi_filters",
        )
        build_type = parser.add_mutually_exclusive_group()
        build_type.add_argument(
            "--release",
            dest="build_type",
            action="store_const",
            const="release",
            help="Build native libraries in release mode",
        )
        build_type.add_argument(
            "--debug",
            dest="build_type",
            action="store_const",
            const="debug",
            help="Build native libraries in debug mode",
        )
        parser.add_argument(
            "--no-validation-layer",
            action="store_true",
            help="Skip validation layer injection for every selected app",
        )
        parser.add_argument(
            "-j", "--jobs",
            type=int,
            default=None,
            help="Number of ABIs built in parallel (default: number of ABIs, at most CPU count)",
        )
        parser.add_argument(
            "--no-incremental",
            action="store_true",
            help="Remove the CMake build trees before building",
        )
        parser.add_argument(
            "--ndk",
            action="store",
            default=None,
            help="Android NDK path (default: ANDROID_NDK_HOME or NDK_ROOT)",
        )
        parser.add_argument(
            "--cmake",
            action="store",
            default=None,
            help="cmake executable (default: SDK cmake of the pinned version, then PATH)",
        )
        parser.add_argument(
            "--timeout",
            type=int,
            default=None,
            help="Timeout in seconds of each toolchain invocation",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Print every staged file and the full toolchain output",
        )

    def variant_overrides(self, args: CliNameSpace) -> dict:
        overrides = {"build_type": args.get("build_type")}
        if args.get("arch"):
            overrides["architectures"] = parse_arch_list(args.arch)
        if args.get("no_validation_layer"):
            overrides["validation_layer"] = False
        return overrides

    def delegate_options(self, args: CliNameSpace) -> dict:
        options = {
            "ndk_root": args.get("ndk"),
            "cmake": args.get("cmake"),
            "incremental": not args.get("no_incremental"),
        }
        if args.get("timeout"):
            options["timeout_second"] = args.timeout
        return options

    def exec(self, context: CliContext, args: CliNameSpace):
        start_time = time.time()
        try:
            matrix = load_variant_matrix(args.get("config") or context.config_path)
            variants = [
                v.with_overrides(**self.variant_overrides(args))
                for v in matrix.select(args.target)
            ]
        except GfxBundleError as e:
            print(f"ERROR: {e}")
            sys.exit(1)

        succeeded = []
        failed = []
        for variant in variants:
            pipeline = Pipeline(
                variant,
                max_parallel=args.get("jobs"),
                verbose=args.get("verbose", False),
                **self.delegate_options(args),
            )
            try:
                result = pipeline.prepare()
            except KeyboardInterrupt:
                pipeline.cancel()
                print("\n\n🛑 Prepare aborted by user")
                sys.exit(130)
            except GfxBundleError as e:
                print(f"\n❌ {e}")
                failed.append(variant.name)
                continue
            print_pipeline_result(result)
            succeeded.append(variant.name)

        print_section("Prepare Summary")
        print(f"Prepare All:{[v.name for v in variants]}")
        print(f"Prepare Success:{succeeded}")
        print(f"Prepare Failed:{failed}")
        print(f"\n⏱ Completed in {format_elapsed_time(time.time() - start_time)}")
        if failed:
            sys.exit(1)
