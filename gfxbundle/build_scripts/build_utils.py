#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_utils.py
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
Build utility functions shared by the staging and native build steps.

This module provides:
- File operations (byte-identical checks, additive copy, tree listing)
- Android NDK discovery and version checking
- CMake discovery, including the per-version CMake of the Android SDK
- Console output helpers (section banners, elapsed time, sizes)
"""

import errno
import filecmp
import glob
import os
import platform
import re
import shutil
import sys
import time

CMAKE_VERSION_PATTERN = re.compile(r"cmake version (\d+(?:\.\d+)*)", re.IGNORECASE)

# environment variables checked, in order, for the NDK location
NDK_ENV_VARS = ("ANDROID_NDK_HOME", "NDK_ROOT", "ANDROID_NDK_ROOT")
# environment variables checked, in order, for the Android SDK location
SDK_ENV_VARS = ("ANDROID_HOME", "ANDROID_SDK_ROOT")

MIN_NDK_REVISION = "25.2"


def system_is_windows():
    return platform.system() == "Windows"


def parse_version(version):
    """
    Parse a dotted version string into a tuple of ints.

    Non-numeric suffixes are ignored: "3.22.1-g37088a8" -> (3, 22, 1).
    """
    parts = []
    for part in str(version).strip().split("."):
        match = re.match(r"\d+", part)
        if not match:
            break
        parts.append(int(match.group(0)))
    return tuple(parts)


def version_at_least(actual, required):
    """True if version ``actual`` >= ``required`` (missing parts count as 0)."""
    a = parse_version(actual)
    r = parse_version(required)
    width = max(len(a), len(r))
    return a + (0,) * (width - len(a)) >= r + (0,) * (width - len(r))


def get_android_sdk_root():
    for var in SDK_ENV_VARS:
        value = os.environ.get(var)
        if value and os.path.isdir(value):
            return value
    return None


def get_ndk_root(explicit=None):
    """
    Locate the Android NDK.

    Priority: explicit path > ANDROID_NDK_HOME > NDK_ROOT > ANDROID_NDK_ROOT >
    the newest side-by-side NDK under $ANDROID_HOME/ndk/.

    Returns:
        str or None
    """
    if explicit:
        return explicit
    for var in NDK_ENV_VARS:
        value = os.environ.get(var)
        if value:
            return value
    sdk_root = get_android_sdk_root()
    if sdk_root:
        candidates = [
            d for d in glob.glob(os.path.join(sdk_root, "ndk", "*")) if os.path.isdir(d)
        ]
        if candidates:
            candidates.sort(key=lambda d: parse_version(os.path.basename(d)))
            return candidates[-1]
    return None


def get_ndk_revision(ndk_path):
    """
    Read the NDK revision from its source.properties file.

    Returns:
        tuple: (error_code, ndk_revision_or_error_message)
            - On success: (0, revision_string)
            - On error: (negative_code, error_message)
    """
    if not ndk_path:
        return -1, "Error: ndk does not exist or you do not set it into ANDROID_NDK_HOME/NDK_ROOT."

    properties = os.path.join(ndk_path, "source.properties")
    if not os.path.isfile(properties):
        return -4, f"Error: source.properties does not exist in {ndk_path}"

    ndk_revision = None
    with open(properties) as f:
        for line in f:
            if line.startswith("Pkg.Revision") and len(line.split("=")) == 2:
                ndk_revision = line.split("=")[1].strip()
                break

    if not ndk_revision or len(ndk_revision) < 4:
        return -5, "Error: parse source.properties fail"
    return 0, ndk_revision


def check_ndk_env(ndk_path):
    """
    Validate that the NDK exists and meets the minimum revision.

    Returns:
        tuple: (ok, message)
    """
    err_code, ndk_revision = get_ndk_revision(ndk_path)
    if err_code != 0:
        return False, ndk_revision
    if not version_at_least(ndk_revision, MIN_NDK_REVISION):
        return False, f"Error: ndk revision {ndk_revision} is older than {MIN_NDK_REVISION}"
    return True, ndk_revision


def get_android_toolchain_file(ndk_path):
    return os.path.join(ndk_path, "build", "cmake", "android.toolchain.cmake")


def resolve_cmake(version=None, explicit=None):
    """
    Find the cmake executable to drive a native build.

    Priority: explicit path > CMAKE environment variable >
    $ANDROID_HOME/cmake/<version>/bin/cmake (the SDK-managed CMake that
    Gradle's externalNativeBuild picks for a pinned version) > cmake on PATH.

    Returns:
        str or None
    """
    if explicit:
        return explicit
    if os.environ.get("CMAKE"):
        return os.environ["CMAKE"]
    sdk_root = get_android_sdk_root()
    if sdk_root and version:
        exe = "cmake.exe" if system_is_windows() else "cmake"
        candidate = os.path.join(sdk_root, "cmake", version, "bin", exe)
        if os.path.isfile(candidate):
            return candidate
    return shutil.which("cmake")


def parse_cmake_version(output):
    """Extract the version from `cmake --version` output, or None."""
    match = CMAKE_VERSION_PATTERN.search(output or "")
    if match:
        return match.group(1)
    return None


def is_subpath(path, parent):
    """True if ``path`` equals ``parent`` or lies below it."""
    path = os.path.realpath(path)
    parent = os.path.realpath(parent)
    try:
        return os.path.commonpath([path, parent]) == parent
    except ValueError:
        # different drives on Windows
        return False


def paths_overlap(a, b):
    return is_subpath(a, b) or is_subpath(b, a)


def files_identical(src, dst):
    """True if dst exists and has the same bytes as src."""
    if not os.path.isfile(dst):
        return False
    if os.path.getsize(src) != os.path.getsize(dst):
        return False
    return filecmp.cmp(src, dst, shallow=False)


def copy_file_if_changed(src, dst):
    """
    Copy a single file, creating parent directories as needed.

    Returns:
        bool: True if the file was written, False if dst was already
        byte-identical to src.

    Raises:
        IsADirectoryError: dst is an existing directory
    """
    if os.path.isdir(dst):
        raise IsADirectoryError(errno.EISDIR, "destination is a directory", dst)
    if files_identical(src, dst):
        return False
    parent = os.path.dirname(dst)
    if parent:
        os.makedirs(parent, exist_ok=True)
    shutil.copy2(src, dst)
    return True


def list_files(root, pattern="*"):
    """Sorted files (not directories) directly inside root matching pattern."""
    return sorted(
        f for f in glob.glob(os.path.join(root, pattern)) if os.path.isfile(f)
    )


def format_size(size_bytes):
    """Format bytes to human-readable size"""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} TB"


def format_elapsed_time(elapsed):
    if elapsed < 60:
        return f"{elapsed:.2f}s"
    if elapsed < 3600:
        return f"{int(elapsed // 60)}m {elapsed % 60:.1f}s"
    return f"{int(elapsed // 3600)}h {int((elapsed % 3600) // 60)}m {elapsed % 60:.0f}s"


def print_section(title):
    print(f"=================={title}========================")


def print_time():
    print(time.strftime("%Y-%m-%d %H:%M:%S", time.localtime()))


def print_tree(root, indent="  "):
    """Print every file below root with its size."""
    if not os.path.isdir(root):
        print(f"{indent}(missing) {root}")
        return
    print(f"{root}/")
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        rel_dir = os.path.relpath(dirpath, root)
        for filename in sorted(filenames):
            filepath = os.path.join(dirpath, filename)
            rel = filename if rel_dir == "." else os.path.join(rel_dir, filename)
            print(f"{indent}{rel} ({format_size(os.path.getsize(filepath))})")
    sys.stdout.flush()
