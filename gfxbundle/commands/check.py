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

import os
import sys
import argparse

from gfxbundle.build_scripts.build_utils import (
    check_ndk_env,
    get_android_toolchain_file,
    get_ndk_root,
    parse_cmake_version,
    resolve_cmake,
    version_at_least,
)
from gfxbundle.build_scripts.inject_validation_layer import resolve_layer_libraries
from gfxbundle.utils.cmd.cmd_util import exec_command_with_timeout_second
from gfxbundle.utils.context.namespace import CliNameSpace
from gfxbundle.utils.context.context import CliContext
from gfxbundle.utils.context.command import CliCommand
from gfxbundle.utils.errors import GfxBundleError, StagingError
from gfxbundle.utils.variant.config import Variant, load_variant_matrix


class Check(CliCommand):
    def description(self) -> str:
        return """
        This is a subcommand to check that every app can be prepared.

        Checks:
            - GFXBUNDLE.toml parses and every app is valid
            - the asset source directory of every app exists
            - the validation layer has a library for every requested ABI
            - the CMake build script exists
            - the Android NDK is installed (r25c or later)
            - cmake is at least the pinned version

        Examples:
            gfxbundle check                  # Check every app
            gfxbundle check tessellation     # Check one app
            gfxbundle check --verbose        # Also list asset and layer files
        """

    def add_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument(
            "target",
            nargs="?",
            default="all",
            help="App to check (default: all)",
        )
        parser.add_argument(
            "--config",
            action="store",
            default=None,
            help="Path to GFXBUNDLE.toml (default: search the current directory)",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show detailed information",
        )

    def exec(self, context: CliContext, args: CliNameSpace):
        print(f"🔍 Checking {args.target} configuration...\n")
        checker = BundleChecker(verbose=args.get("verbose", False))
        try:
            matrix = load_variant_matrix(args.get("config") or context.config_path)
            variants = matrix.select(args.target)
        except GfxBundleError as e:
            checker.print_error(f"config: {e}")
            checker.print_summary()
            sys.exit(1)

        checker.print_ok(f"config: {matrix.config_path} ({len(matrix)} app(s))")
        for variant in variants:
            checker.check_variant(variant)
        checker.check_toolchain(sorted({v.toolchain_version for v in variants}))
        checker.print_summary()
        if checker.errors:
            sys.exit(1)


class BundleChecker:
    def __init__(self, verbose=False):
        self.verbose = verbose
        self.warnings = []
        self.errors = []

    def print_ok(self, msg):
        """Print success message"""
        print(f"  ✅ {msg}")

    def print_error(self, msg):
        """Print error message"""
        print(f"  ❌ {msg}")
        self.errors.append(msg)

    def print_warning(self, msg):
        """Print warning message"""
        print(f"  ⚠️  {msg}")
        self.warnings.append(msg)

    def print_info(self, msg):
        """Print info message"""
        print(f"  ℹ️  {msg}")

    def print_section(self, title):
        """Print section header"""
        print(f"\n{'='*60}")
        print(f"  {title}")
        print(f"{'='*60}")

    def check_variant(self, variant: Variant):
        self.print_section(f"{variant.name} ({variant.application_id})")
        self.print_info(
            f"archs: {', '.join(variant.architectures)}, build_type: {variant.build_type}, "
            f"sdk: {variant.min_sdk}/{variant.target_sdk}/{variant.compile_sdk}"
        )

        if os.path.isdir(variant.asset_source):
            count = sum(len(files) for _, _, files in os.walk(variant.asset_source))
            self.print_ok(f"assets: {variant.asset_source} ({count} files)")
            if count == 0:
                self.print_warning(f"assets: {variant.asset_source} is empty")
        else:
            self.print_error(f"assets: {variant.asset_source} does not exist")

        if variant.validation_layer:
            self.check_validation_layer(variant)
        else:
            self.print_info("validation layer: disabled")

        if os.path.isfile(variant.native_script):
            self.print_ok(f"native script: {variant.native_script}")
        else:
            self.print_error(f"native script: {variant.native_script} does not exist")

    def check_validation_layer(self, variant: Variant):
        source = variant.validation_layer_source
        if not os.path.isdir(source):
            self.print_error(f"validation layer: {source} does not exist")
            return
        try:
            libraries = resolve_layer_libraries(
                variant.architectures, source, variant.validation_layer_library
            )
        except StagingError as e:
            self.print_error(f"validation layer: {e}")
            return
        self.print_ok(f"validation layer: {source}")
        if self.verbose:
            for arch, library in libraries.items():
                self.print_info(f"  {arch}: {os.path.basename(library)}")

    def check_toolchain(self, versions):
        self.print_section("Native Toolchain")
        ndk_root = get_ndk_root()
        ok, message = check_ndk_env(ndk_root)
        if ok and not os.path.isfile(get_android_toolchain_file(ndk_root)):
            ok, message = False, f"android.toolchain.cmake missing in {ndk_root}"
        if ok:
            self.print_ok(f"NDK: {ndk_root} (revision {message})")
        else:
            self.print_error(f"NDK: {message}")

        for required in versions:
            cmake = resolve_cmake(required)
            if not cmake:
                self.print_error(f"CMake {required}: not found")
                continue
            try:
                err_code, output = exec_command_with_timeout_second([cmake, "--version"])
            except OSError:
                err_code, output = -1, ""
            version = parse_cmake_version(output) if err_code == 0 else None
            if not version:
                self.print_error(f"CMake {required}: cannot run {cmake}")
            elif version_at_least(version, required):
                self.print_ok(f"CMake: {version} ({cmake}), required {required}")
            else:
                self.print_error(f"CMake: {version} ({cmake}) is older than required {required}")

    def print_summary(self):
        print(f"\n{'='*60}")
        print("  Summary")
        print(f"{'='*60}")
        if self.errors:
            print(f"\n❌ {len(self.errors)} error(s):")
            for error in self.errors:
                print(f"   - {error}")
        if self.warnings:
            print(f"\n⚠️  {len(self.warnings)} warning(s):")
            for warning in self.warnings:
                print(f"   - {warning}")
        if not self.errors and not self.warnings:
            print("\n✅ Everything is ready")
