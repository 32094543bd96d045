import os

import pytest

from gfxbundle.build_scripts.inject_validation_layer import inject, resolve_layer_libraries
from gfxbundle.utils.errors import (
    AmbiguousArchVariant,
    ConfigError,
    MissingArchVariant,
    SourceNotFound,
    StagingError,
)

from conftest import LAYER_LIBRARY, read_file, write_file


class TestInject:
    def test_one_library_per_requested_arch(self, layer_release, tmp_path):
        dst = tmp_path / "jniLibs"

        report = inject(["arm64-v8a", "x86_64"], layer_release, str(dst))

        assert sorted(os.listdir(dst)) == ["arm64-v8a", "x86_64"]
        assert read_file(dst / "arm64-v8a" / LAYER_LIBRARY) == "layer arm64-v8a"
        assert read_file(dst / "x86_64" / LAYER_LIBRARY) == "layer x86_64"
        assert report.copied == [
            os.path.join("arm64-v8a", LAYER_LIBRARY),
            os.path.join("x86_64", LAYER_LIBRARY),
        ]

    def test_arch_aliases(self, layer_release, tmp_path):
        dst = tmp_path / "jniLibs"

        inject("arm64,x64", layer_release, str(dst))

        assert sorted(os.listdir(dst)) == ["arm64-v8a", "x86_64"]

    def test_second_run_is_unchanged(self, layer_release, tmp_path):
        dst = str(tmp_path / "jniLibs")
        inject(["x86"], layer_release, dst)

        report = inject(["x86"], layer_release, dst)

        assert report.copied == []
        assert report.unchanged == [os.path.join("x86", LAYER_LIBRARY)]

    def test_existing_libraries_are_kept(self, layer_release, tmp_path):
        dst = tmp_path / "jniLibs"
        native = write_file(dst / "arm64-v8a" / "libapp.so", "native")

        inject(["arm64-v8a"], layer_release, str(dst))

        assert read_file(native) == "native"

    def test_library_name_picks_among_several(self, tmp_path):
        src = tmp_path / "layers"
        write_file(src / "arm64-v8a" / LAYER_LIBRARY, "layer")
        write_file(src / "arm64-v8a" / "libc++_shared.so", "stl")
        dst = tmp_path / "jniLibs"

        inject(["arm64-v8a"], str(src), str(dst), library_name=LAYER_LIBRARY)

        assert os.listdir(dst / "arm64-v8a") == [LAYER_LIBRARY]


class TestInjectErrors:
    def test_missing_arch_copies_nothing(self, tmp_path):
        src = tmp_path / "layers"
        write_file(src / "arm64-v8a" / LAYER_LIBRARY, "layer")
        dst = tmp_path / "jniLibs"

        with pytest.raises(MissingArchVariant) as exc_info:
            inject(["arm64-v8a", "x86_64"], str(src), str(dst))

        assert exc_info.value.archs == ("x86_64",)
        assert exc_info.value.arch == "x86_64"
        assert not os.path.exists(dst)

    def test_every_missing_arch_is_named(self, tmp_path):
        src = tmp_path / "layers"
        write_file(src / "arm64-v8a" / LAYER_LIBRARY, "layer")
        (src / "x86").mkdir()

        with pytest.raises(MissingArchVariant) as exc_info:
            inject(["x86", "arm64-v8a", "x86_64"], str(src), str(tmp_path / "jniLibs"))

        assert exc_info.value.archs == ("x86", "x86_64")

    def test_named_library_absent_for_one_arch(self, tmp_path):
        src = tmp_path / "layers"
        write_file(src / "arm64-v8a" / LAYER_LIBRARY, "layer")
        write_file(src / "x86_64" / "libother.so", "other")

        with pytest.raises(MissingArchVariant) as exc_info:
            resolve_layer_libraries(["arm64-v8a", "x86_64"], str(src), LAYER_LIBRARY)

        assert exc_info.value.archs == ("x86_64",)

    def test_ambiguous_variant(self, tmp_path):
        src = tmp_path / "layers"
        write_file(src / "arm64-v8a" / LAYER_LIBRARY, "layer")
        write_file(src / "arm64-v8a" / "libVkLayer_api_dump.so", "dump")

        with pytest.raises(AmbiguousArchVariant) as exc_info:
            inject(["arm64-v8a"], str(src), str(tmp_path / "jniLibs"))

        assert exc_info.value.arch == "arm64-v8a"
        assert sorted(exc_info.value.candidates) == ["libVkLayer_api_dump.so", LAYER_LIBRARY]

    def test_missing_source_root(self, tmp_path):
        with pytest.raises(SourceNotFound):
            inject(["arm64-v8a"], str(tmp_path / "missing"), str(tmp_path / "jniLibs"))

    def test_no_architectures(self, layer_release, tmp_path):
        with pytest.raises(StagingError, match="no architectures"):
            inject([], layer_release, str(tmp_path / "jniLibs"))

    def test_unknown_arch(self, layer_release, tmp_path):
        with pytest.raises(ConfigError, match="unsupported arch"):
            inject(["mips"], layer_release, str(tmp_path / "jniLibs"))
