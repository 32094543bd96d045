import os

import pytest

from gfxbundle.utils.errors import ConfigError
from gfxbundle.utils.variant.config import (
    Variant,
    VariantMatrix,
    find_config_file,
    load_variant_matrix,
    normalize_arch,
    parse_arch_list,
)

from conftest import write_file

SAMPLES_TOML = """
[android]
compile_sdk = 34
min_sdk = 33
target_sdk = 34
abi_filters = ["arm64-v8a", "x86_64"]

[build]
build_type = "debug"
proguard_files = ["proguard-android-optimize.txt", "proguard-rules.pro"]

[native]
cmake_version = "3.22.1"

[validation_layer]
source = "${LAYER_DIR}"
library = "libVkLayer_khronos_validation.so"

[[app]]
name = "ComputeShader"
project_dir = "ComputeShader/app"
application_id = "net.techbito.computeshader"
assets = "../res"

[[app]]
name = "Tessellation"
project_dir = "Tessellation/app"
application_id = "net.techbito.tessellation"
assets = "../res"
validation_layer = false
abi_filters = ["arm64"]
build_type = "release"
"""


@pytest.fixture
def samples(tmp_path, monkeypatch):
    monkeypatch.setenv("LAYER_DIR", str(tmp_path / "layers"))
    return write_file(tmp_path / "GFXBUNDLE.toml", SAMPLES_TOML)


class TestArchs:
    def test_aliases(self):
        assert normalize_arch("arm64") == "arm64-v8a"
        assert normalize_arch("AARCH64") == "arm64-v8a"
        assert normalize_arch("x64") == "x86_64"
        assert normalize_arch("armv7") == "armeabi-v7a"
        assert normalize_arch("x86") == "x86"

    def test_unsupported(self):
        with pytest.raises(ConfigError, match="unsupported arch 'riscv64'"):
            normalize_arch("riscv64")

    def test_list_keeps_order_and_drops_duplicates(self):
        assert parse_arch_list("x86_64, arm64,arm64-v8a") == ("x86_64", "arm64-v8a")
        assert parse_arch_list(["armv7", "x86"]) == ("armeabi-v7a", "x86")


class TestLoadVariantMatrix:
    def test_apps_and_shared_defaults(self, samples, tmp_path):
        matrix = load_variant_matrix(samples)

        assert matrix.names == ["ComputeShader", "Tessellation"]
        compute = matrix.get("ComputeShader")
        assert compute.architectures == ("arm64-v8a", "x86_64")
        assert compute.build_type == "debug"
        assert (compute.min_sdk, compute.target_sdk, compute.compile_sdk) == (33, 34, 34)
        assert compute.namespace == "net.techbito.computeshader"
        assert compute.proguard_files == ("proguard-android-optimize.txt", "proguard-rules.pro")
        assert compute.validation_layer
        assert compute.validation_layer_source == str(tmp_path / "layers")
        assert compute.library_name == "computeshader"

    def test_paths_resolve_against_project_dir(self, samples, tmp_path):
        compute = load_variant_matrix(samples).get("ComputeShader")

        project_dir = str(tmp_path / "ComputeShader" / "app")
        assert compute.project_dir == project_dir
        assert compute.asset_source == str(tmp_path / "ComputeShader" / "res")
        assert compute.asset_destination == os.path.join(project_dir, "src", "main", "assets", "res")
        assert compute.library_destination == os.path.join(project_dir, "src", "main", "jniLibs")
        assert compute.native_script == os.path.join(project_dir, "src", "main", "cpp", "CMakeLists.txt")
        assert compute.native_build_dir == os.path.join(project_dir, ".cxx")

    def test_app_overrides(self, samples):
        tessellation = load_variant_matrix(samples).get("Tessellation")

        assert tessellation.architectures == ("arm64-v8a",)
        assert tessellation.build_type == "release"
        assert tessellation.is_release
        assert not tessellation.validation_layer

    def test_directory_is_searched(self, samples, tmp_path):
        assert load_variant_matrix(str(tmp_path)).config_path == samples

    def test_config_in_subdirectory(self, tmp_path):
        config = write_file(tmp_path / "samples" / "GFXBUNDLE.toml", "[project]\n")
        assert find_config_file(str(tmp_path)) == config

    def test_single_project_table(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", """
[project]
name = "HelloTriangle"
application_id = "net.techbito.hellotriangle"
project_dir = "app"
assets = "../res"
version_code = 3
version_name = "1.2"

[validation_layer]
enabled = false
""")
        matrix = load_variant_matrix(config)

        assert len(matrix) == 1
        variant = matrix.get("HelloTriangle")
        assert (variant.version_code, variant.version_name) == (3, "1.2")
        assert variant.asset_source == str(tmp_path / "res")

    def test_select(self, samples):
        matrix = load_variant_matrix(samples)

        assert [v.name for v in matrix.select("all")] == ["ComputeShader", "Tessellation"]
        assert [v.name for v in matrix.select(None)] == ["ComputeShader", "Tessellation"]
        assert [v.name for v in matrix.select("Tessellation")] == ["Tessellation"]
        with pytest.raises(ConfigError, match="unknown app 'Triangle'"):
            matrix.select("Triangle")


class TestConfigErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_variant_matrix(str(tmp_path / "GFXBUNDLE.toml"))

    def test_invalid_toml(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", "[android\nmin_sdk = ")
        with pytest.raises(ConfigError, match="cannot read"):
            load_variant_matrix(config)

    def test_no_apps(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", "[android]\nmin_sdk = 33\n")
        with pytest.raises(ConfigError, match="no \\[\\[app\\]\\] tables"):
            load_variant_matrix(config)

    def test_missing_assets(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", """
[[app]]
name = "Triangle"
application_id = "net.techbito.triangle"
validation_layer = false
""")
        with pytest.raises(ConfigError, match="assets source is not set"):
            load_variant_matrix(config)

    def test_validation_layer_without_source(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", """
[[app]]
name = "Triangle"
application_id = "net.techbito.triangle"
assets = "res"
""")
        with pytest.raises(ConfigError, match="validation_layer.source is not set"):
            load_variant_matrix(config)

    def test_bad_number(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", """
[android]
min_sdk = "thirty"

[[app]]
name = "Triangle"
application_id = "net.techbito.triangle"
assets = "res"
validation_layer = false
""")
        with pytest.raises(ConfigError, match="invalid value"):
            load_variant_matrix(config)

    def test_quoted_boolean(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", """
[build]
minify = "false"

[[app]]
name = "Triangle"
application_id = "net.techbito.triangle"
assets = "res"
validation_layer = false
""")
        with pytest.raises(ConfigError, match="minify must be true or false, got 'false'"):
            load_variant_matrix(config)

    def test_validation_layer_must_be_boolean(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", """
[[app]]
name = "Triangle"
application_id = "net.techbito.triangle"
assets = "res"
validation_layer = 0
""")
        with pytest.raises(ConfigError, match=r"\[Triangle\] invalid value: validation_layer"):
            load_variant_matrix(config)


class TestVariant:
    def make(self, tmp_path, **kwargs):
        options = dict(
            name="Triangle",
            application_id="net.techbito.triangle",
            project_dir=str(tmp_path),
            asset_source="res",
            validation_layer=False,
        )
        options.update(kwargs)
        return Variant(**options)

    def test_empty_architectures(self, tmp_path):
        with pytest.raises(ConfigError, match="architectures must not be empty"):
            self.make(tmp_path, architectures=())

    def test_sdk_order(self, tmp_path):
        with pytest.raises(ConfigError, match="min_sdk <= target_sdk <= compile_sdk"):
            self.make(tmp_path, min_sdk=34, target_sdk=33)

    def test_build_type(self, tmp_path):
        with pytest.raises(ConfigError, match="build_type"):
            self.make(tmp_path, build_type="profile")

    def test_empty_application_id(self, tmp_path):
        with pytest.raises(ConfigError, match="application_id"):
            self.make(tmp_path, application_id="")

    def test_is_read_only(self, tmp_path):
        variant = self.make(tmp_path)
        with pytest.raises(AttributeError):
            variant.min_sdk = 21

    def test_with_overrides(self, tmp_path):
        variant = self.make(tmp_path)

        release = variant.with_overrides(build_type="release", architectures=("x64",), jobs=None)

        assert release.build_type == "release"
        assert release.architectures == ("x86_64",)
        assert release.asset_source == variant.asset_source
        assert variant.build_type == "debug"
        assert variant.with_overrides(build_type=None) is variant


class TestVariantMatrix:
    def make(self, tmp_path, name, application_id):
        return Variant(
            name=name,
            application_id=application_id,
            project_dir=str(tmp_path),
            asset_source="res",
            validation_layer=False,
        )

    def test_duplicate_name(self, tmp_path):
        with pytest.raises(ConfigError, match="duplicate app name"):
            VariantMatrix([
                self.make(tmp_path, "Triangle", "net.techbito.a"),
                self.make(tmp_path, "Triangle", "net.techbito.b"),
            ])

    def test_duplicate_application_id(self, tmp_path):
        with pytest.raises(ConfigError, match="used by both 'A' and 'B'"):
            VariantMatrix([
                self.make(tmp_path, "A", "net.techbito.same"),
                self.make(tmp_path, "B", "net.techbito.same"),
            ])
