#!/usr/bin/env python3
# -- coding: utf-8 --
#
# inject_validation_layer.py
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
Copy the Vulkan validation layer library of every requested ABI into the
bundle's jniLibs directory, so debug builds can load it at runtime.

Expected source layout (as shipped by the Khronos validation layer releases):
    <source_root>/arm64-v8a/libVkLayer_khronos_validation.so
    <source_root>/x86_64/libVkLayer_khronos_validation.so

Alias directory names (arm64, x64, ...) are accepted as well.

Produced layout:
    <destination_root>/<abi>/<library>

Every requested ABI is resolved before anything is copied, so a missing
variant never leaves a half-injected bundle behind.

Usage:
    python3 -m gfxbundle.build_scripts.inject_validation_layer <source_root> <destination_root> [abi1,abi2,...]
"""

import os
import sys
import time

from gfxbundle.build_scripts.build_utils import (
    copy_file_if_changed,
    format_elapsed_time,
    list_files,
    paths_overlap,
)
from gfxbundle.build_scripts.stage_assets import StagingReport, ensure_destination
from gfxbundle.utils.errors import (
    AmbiguousArchVariant,
    GfxBundleError,
    MissingArchVariant,
    PartialCopyFailure,
    SourceNotFound,
    StagingError,
)
from gfxbundle.utils.variant.config import ARCH_ALIASES, DEFAULT_ARCHS, parse_arch_list

LAYER_LIBRARY_PATTERN = "*.so"


def find_arch_dir(source_library_root, arch):
    """
    The source directory holding the libraries of one ABI.

    The ABI name itself is preferred; a directory named after one of its
    aliases (e.g. "arm64" for arm64-v8a) is accepted otherwise.
    """
    arch_dir = os.path.join(source_library_root, arch)
    if os.path.isdir(arch_dir):
        return arch_dir
    for alias in sorted(a for a, name in ARCH_ALIASES.items() if name == arch):
        arch_dir = os.path.join(source_library_root, alias)
        if os.path.isdir(arch_dir):
            return arch_dir
    return None


def resolve_layer_libraries(architectures, source_library_root, library_name=None):
    """
    Find the one diagnostic library to stage for each arch.

    Args:
        architectures: ABI names (aliases accepted)
        source_library_root: directory holding one subdirectory per ABI
        library_name: file name to pick; when None the ABI directory must
            hold exactly one *.so file

    Returns:
        dict: {abi: library_path}, in request order

    Raises:
        MissingArchVariant: naming every ABI without a library
        AmbiguousArchVariant: an ABI directory holds several candidates and
            no library_name was given
    """
    libraries = {}
    missing = []
    for arch in parse_arch_list(architectures):
        arch_dir = find_arch_dir(source_library_root, arch)
        if arch_dir is None:
            missing.append(arch)
            continue
        if library_name:
            candidate = os.path.join(arch_dir, library_name)
            if os.path.isfile(candidate):
                libraries[arch] = candidate
            else:
                missing.append(arch)
            continue
        candidates = list_files(arch_dir, LAYER_LIBRARY_PATTERN)
        if not candidates:
            missing.append(arch)
        elif len(candidates) > 1:
            raise AmbiguousArchVariant(arch, [os.path.basename(c) for c in candidates])
        else:
            libraries[arch] = candidates[0]

    if missing:
        raise MissingArchVariant(missing, source_library_root)
    return libraries


def inject(
    architectures,
    source_library_root,
    destination_library_root,
    library_name=None,
    verbose=False,
) -> StagingReport:
    """
    Stage one validation layer library per requested ABI.

    Args:
        architectures: ABIs to inject, must not be empty
        source_library_root: validation layer release directory
        destination_library_root: the bundle's jniLibs directory
        library_name: optional file name of the layer library
        verbose: print every file written

    Returns:
        StagingReport with "<abi>/<library>" relative paths

    Raises:
        SourceNotFound, MissingArchVariant, AmbiguousArchVariant,
        DestinationUnwritable, PartialCopyFailure
    """
    source_library_root = os.path.abspath(source_library_root)
    destination_library_root = os.path.abspath(destination_library_root)
    before_time = time.time()

    archs = parse_arch_list(architectures)
    if not archs:
        raise StagingError("no architectures requested for validation layer injection")
    if not os.path.isdir(source_library_root):
        raise SourceNotFound(source_library_root)
    if paths_overlap(source_library_root, destination_library_root):
        raise StagingError(
            f"source {source_library_root} and destination {destination_library_root} overlap"
        )

    libraries = resolve_layer_libraries(archs, source_library_root, library_name)
    ensure_destination(destination_library_root)

    report = StagingReport(source=source_library_root, destination=destination_library_root)
    failures = []
    for arch, src in libraries.items():
        rel = os.path.join(arch, os.path.basename(src))
        try:
            if copy_file_if_changed(src, os.path.join(destination_library_root, rel)):
                report.copied.append(rel)
                if verbose:
                    print(f"  copy {rel}")
            else:
                report.unchanged.append(rel)
        except OSError as e:
            failures.append((rel, e.strerror or str(e)))

    if failures:
        print(f"❌ validation layer injection failed for {len(failures)} arch(s)")
        raise PartialCopyFailure(destination_library_root, failures)

    print(
        f"✅ injected validation layer for {', '.join(archs)}: {report.summary()} "
        f"({format_elapsed_time(time.time() - before_time)})"
    )
    return report


if __name__ == "__main__":
    if len(sys.argv) not in (3, 4):
        print(__doc__)
        sys.exit(2)
    archs = sys.argv[3] if len(sys.argv) == 4 else DEFAULT_ARCHS
    try:
        inject(archs, sys.argv[1], sys.argv[2], verbose=True)
    except GfxBundleError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
