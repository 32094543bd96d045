"""
Shared fixtures: resource trees, validation layer releases, a fake NDK and a
fake CMake runner, so the pipeline can be exercised without a toolchain.
"""

import os
import threading

import pytest

from gfxbundle.utils.variant.config import Variant

LAYER_LIBRARY = "libVkLayer_khronos_validation.so"


def write_file(path, content="data"):
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    mode = "wb" if isinstance(content, bytes) else "w"
    with open(path, mode) as f:
        f.write(content)
    return str(path)


def read_file(path):
    with open(path) as f:
        return f.read()


class FakeCMake:
    """
    Runner for NativeBuildDelegate answering like cmake would.

    `cmake --build <dir>` writes lib<library_name>.so into <dir>/lib unless the
    ABI (the build directory name) is listed in fail_archs.
    """

    def __init__(self, version="3.22.1", library_name="app", fail_archs=(), produce=True):
        self.version = version
        self.library_name = library_name
        self.fail_archs = set(fail_archs)
        self.produce = produce
        self.commands = []
        self._lock = threading.Lock()

    def __call__(self, command, cwd=None):
        with self._lock:
            self.commands.append(list(command))
        if "--version" in command:
            return 0, f"cmake version {self.version}\n\nCMake suite maintained and supported by Kitware."
        if "--build" in command:
            build_dir = command[command.index("--build") + 1]
            arch = os.path.basename(build_dir)
            if arch in self.fail_archs:
                return 2, f"ninja: build stopped: subcommand failed for {arch}"
            if self.produce:
                write_file(os.path.join(build_dir, "lib", f"lib{self.library_name}.so"), f"elf {arch}")
            return 0, "[100%] Built target app"
        return 0, "-- Configuring done\n-- Generating done"

    def calls(self, step):
        if step == "configure":
            return [c for c in self.commands if "-S" in c]
        if step == "build":
            return [c for c in self.commands if "--build" in c]
        return [c for c in self.commands if step in c]


@pytest.fixture
def resource_tree(tmp_path):
    root = tmp_path / "res"
    write_file(root / "shaders" / "shader.comp.spv", b"\x03\x02\x23\x07comp")
    write_file(root / "shaders" / "shader.vert.spv", b"\x03\x02\x23\x07vert")
    write_file(root / "models" / "teapot.obj", "v 0 0 0\n")
    write_file(root / "readme.txt", "resources")
    return str(root)


@pytest.fixture
def layer_release(tmp_path):
    root = tmp_path / "layers"
    for arch in ("arm64-v8a", "armeabi-v7a", "x86", "x86_64"):
        write_file(root / arch / LAYER_LIBRARY, f"layer {arch}")
    return str(root)


@pytest.fixture
def fake_ndk(tmp_path):
    root = tmp_path / "ndk"
    write_file(root / "build" / "cmake" / "android.toolchain.cmake", "# toolchain\n")
    write_file(root / "source.properties", "Pkg.Desc = Android NDK\nPkg.Revision = 26.1.10909125\n")
    return str(root)


@pytest.fixture
def app_module(tmp_path):
    root = tmp_path / "App" / "app"
    write_file(root / "src" / "main" / "cpp" / "CMakeLists.txt", "cmake_minimum_required(VERSION 3.22.1)\n")
    return str(root)


@pytest.fixture
def make_variant(app_module, resource_tree, layer_release):
    def factory(**overrides):
        options = dict(
            name="App",
            application_id="net.techbito.app",
            project_dir=app_module,
            asset_source=resource_tree,
            validation_layer_source=layer_release,
            validation_layer_library=LAYER_LIBRARY,
        )
        options.update(overrides)
        return Variant(**options)

    return factory
