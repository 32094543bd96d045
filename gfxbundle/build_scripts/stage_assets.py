#!/usr/bin/env python3
# -- coding: utf-8 --
#
# stage_assets.py
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
Copy an application's resource tree (shader binaries, models, textures)
into the asset directory of its bundle before the native build.

The copy is additive: files already present at the destination but not in
the source are left alone. Files whose destination copy is byte-identical
are not rewritten, so staging twice from an unchanged source leaves the
destination untouched.

Usage:
    python3 -m gfxbundle.build_scripts.stage_assets <source_dir> <destination_dir>
"""

import os
import sys
import time
from dataclasses import dataclass, field
from typing import List

from gfxbundle.build_scripts.build_utils import (
    copy_file_if_changed,
    format_elapsed_time,
    is_subpath,
    paths_overlap,
)
from gfxbundle.utils.errors import (
    DestinationUnwritable,
    PartialCopyFailure,
    SourceNotFound,
    StagingError,
)


@dataclass
class StagingReport:
    """What one staging action did to its destination tree."""

    source: str
    destination: str
    copied: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.copied) + len(self.unchanged)

    def summary(self) -> str:
        return (
            f"{len(self.copied)} copied, {len(self.unchanged)} unchanged -> {self.destination}"
        )


def ensure_destination(destination_path):
    """Create the destination root, or raise DestinationUnwritable."""
    try:
        os.makedirs(destination_path, exist_ok=True)
    except OSError as e:
        raise DestinationUnwritable(destination_path, e.strerror or str(e)) from e
    if not os.access(destination_path, os.W_OK):
        raise DestinationUnwritable(destination_path, "permission denied")


def stage(source_path, destination_path, verbose=False) -> StagingReport:
    """
    Recursively copy the contents of source_path into destination_path.

    Args:
        source_path: existing resource directory, outside the bundle tree
        destination_path: asset directory inside the bundle, created if absent
        verbose: print every file written

    Returns:
        StagingReport listing the copied and unchanged relative paths

    Raises:
        SourceNotFound: source_path is not an existing directory
        StagingError: source and destination trees overlap
        DestinationUnwritable: destination_path cannot be created
        PartialCopyFailure: some entries failed; every other entry was
            still attempted
    """
    source_path = os.path.abspath(source_path)
    destination_path = os.path.abspath(destination_path)
    before_time = time.time()

    if not os.path.isdir(source_path):
        raise SourceNotFound(source_path)
    if paths_overlap(source_path, destination_path):
        raise StagingError(
            f"source {source_path} and destination {destination_path} overlap"
        )
    ensure_destination(destination_path)

    report = StagingReport(source=source_path, destination=destination_path)
    failures = []

    def on_walk_error(error):
        rel = os.path.relpath(error.filename or source_path, source_path)
        failures.append((rel, error.strerror or str(error)))

    # symlinked directories are copied as directories, like a Gradle Copy task
    for dirpath, dirnames, filenames in os.walk(source_path, onerror=on_walk_error, followlinks=True):
        dirnames.sort()
        rel_dir = os.path.relpath(dirpath, source_path)
        for dirname in list(dirnames):
            child = os.path.join(dirpath, dirname)
            if os.path.islink(child) and is_subpath(dirpath, child):
                failures.append((os.path.normpath(os.path.join(rel_dir, dirname)), "symlink loop"))
                dirnames.remove(dirname)
        dst_dir = destination_path if rel_dir == "." else os.path.join(destination_path, rel_dir)
        try:
            os.makedirs(dst_dir, exist_ok=True)
        except OSError as e:
            failures.append((rel_dir, e.strerror or str(e)))
            # every file below would fail the same way
            failures.extend(
                (os.path.normpath(os.path.join(rel_dir, f)), "parent directory not created")
                for f in filenames
            )
            continue

        for filename in sorted(filenames):
            rel = os.path.normpath(os.path.join(rel_dir, filename))
            try:
                if copy_file_if_changed(os.path.join(dirpath, filename), os.path.join(dst_dir, filename)):
                    report.copied.append(rel)
                    if verbose:
                        print(f"  copy {rel}")
                else:
                    report.unchanged.append(rel)
            except OSError as e:
                failures.append((rel, e.strerror or str(e)))

    if failures:
        print(f"❌ staging {source_path} failed for {len(failures)} entries")
        raise PartialCopyFailure(destination_path, failures)

    print(
        f"✅ staged assets: {report.summary()} "
        f"({format_elapsed_time(time.time() - before_time)})"
    )
    return report


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    try:
        stage(sys.argv[1], sys.argv[2], verbose=True)
    except StagingError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
