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
import shutil

from gfxbundle.build_scripts.build_utils import format_size
from gfxbundle.utils.context.namespace import CliNameSpace
from gfxbundle.utils.context.context import CliContext
from gfxbundle.utils.context.command import CliCommand
from gfxbundle.utils.errors import GfxBundleError
from gfxbundle.utils.variant.config import Variant, load_variant_matrix


class Clean(CliCommand):
    def description(self) -> str:
        return """
        This is a subcommand to remove what prepare produced.

        Cleans the following directories of every selected app:
        - src/main/assets/res/    # Staged resources
        - src/main/jniLibs/       # Validation layer and native libraries
        - .cxx/                   # CMake build trees

        Examples:
            gfxbundle clean                 # Clean every app (with confirmation)
            gfxbundle clean computeshader   # Clean one app
            gfxbundle clean --dry-run       # Preview what will be cleaned
            gfxbundle clean -y              # Clean without confirmation
            gfxbundle clean --native-only   # Clean only the CMake build trees
        """

    def add_arguments(self, parser: argparse.ArgumentParser):
        parser.add_argument(
            "target",
            nargs="?",
            default="all",
            help="App to clean (default: all)",
        )
        parser.add_argument(
            "--config",
            action="store",
            default=None,
            help="Path to GFXBUNDLE.toml (default: search the current directory)",
        )
        parser.add_argument(
            "--native-only",
            action="store_true",
            help="Clean only the CMake build trees",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be cleaned without actually deleting",
        )
        parser.add_argument(
            "-y", "--yes",
            action="store_true",
            help="Skip confirmation prompts",
        )

    def exec(self, context: CliContext, args: CliNameSpace):
        print("Cleaning staged files and build trees...\n")
        try:
            matrix = load_variant_matrix(args.get("config") or context.config_path)
            variants = matrix.select(args.target)
        except GfxBundleError as e:
            print(f"ERROR: {e}")
            sys.exit(1)

        cleaner = BundleCleaner(dry_run=args.get("dry_run", False), skip_confirm=args.get("yes", False))
        for variant in variants:
            cleaner.clean_variant(variant, native_only=args.get("native_only", False))
        cleaner.print_summary()
        if cleaner.failed_dirs:
            sys.exit(1)


class BundleCleaner:
    def __init__(self, dry_run=False, skip_confirm=False):
        self.dry_run = dry_run
        self.skip_confirm = skip_confirm
        self.cleaned_dirs = []
        self.cleaned_size = 0
        self.failed_dirs = []

    def get_dir_size(self, path):
        """Get total size of directory in bytes"""
        total_size = 0
        for dirpath, _, filenames in os.walk(path):
            for filename in filenames:
                try:
                    total_size += os.path.getsize(os.path.join(dirpath, filename))
                except OSError:
                    pass
        return total_size

    def remove_directory(self, dir_path, display_name):
        """Remove a directory and track the result"""
        if not os.path.isdir(dir_path):
            print(f"  ℹ️  {display_name} does not exist")
            return False

        size = self.get_dir_size(dir_path)
        if self.dry_run:
            print(f"  [DRY RUN] Would remove: {display_name} ({format_size(size)})")
            return True

        try:
            shutil.rmtree(dir_path)
        except OSError as e:
            self.failed_dirs.append((display_name, str(e)))
            print(f"  ❌ Failed to remove {display_name}: {e}")
            return False
        self.cleaned_dirs.append(display_name)
        self.cleaned_size += size
        print(f"  ✅ Removed: {display_name} ({format_size(size)})")
        return True

    def confirm_clean(self, message):
        """Ask user for confirmation"""
        if self.skip_confirm or self.dry_run:
            return True
        response = input(f"{message} (y/N): ").strip().lower()
        return response in ["y", "yes"]

    def clean_variant(self, variant: Variant, native_only=False):
        print("\n" + "=" * 60)
        print(f"  Cleaning {variant.name}")
        print("=" * 60)

        targets = [(variant.native_build_dir, "CMake build tree")]
        if not native_only:
            targets = [
                (variant.asset_destination, "staged assets"),
                (variant.library_destination, "jniLibs"),
            ] + targets

        for path, label in targets:
            display_name = f"{variant.name}: {label} {path}"
            if os.path.isdir(path) and not self.confirm_clean(f"  Remove {path}?"):
                print("  ⏭️  Skipped")
                continue
            self.remove_directory(path, display_name)

    def print_summary(self):
        print("\n" + "=" * 60)
        print("  Clean Summary")
        print("=" * 60)
        if self.dry_run:
            print("\n  [DRY RUN] Nothing was removed")
            return
        print(f"\n  Removed {len(self.cleaned_dirs)} director(ies), {format_size(self.cleaned_size)} freed")
        if self.failed_dirs:
            print(f"\n❌ {len(self.failed_dirs)} failed:")
            for name, error in self.failed_dirs:
                print(f"   - {name}: {error}")
