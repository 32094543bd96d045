import os

import pytest

from gfxbundle import cli
from gfxbundle.commands.prepare import Prepare
from gfxbundle.utils.variant.config import load_variant_matrix

from conftest import LAYER_LIBRARY, write_file


def write_config(tmp_path, resource_tree, layer_release):
    return write_file(tmp_path / "GFXBUNDLE.toml", f"""
[validation_layer]
source = "{layer_release}"
library = "{LAYER_LIBRARY}"

[[app]]
name = "App"
project_dir = "App/app"
application_id = "net.techbito.app"
assets = "{resource_tree}"
""")


class TestCli:
    def test_command_list(self):
        assert cli.Cli().get_command_list() == ["check", "clean", "init", "prepare"]

    def test_subcommand_and_rest(self):
        args = cli.Cli().cli(["prepare", "App", "--release"])

        assert args.subcommand == "prepare"
        assert args.rest == ["App", "--release"]

    def test_load_command(self):
        assert isinstance(cli.Cli().load_command("prepare"), Prepare)

    def test_no_command(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])
        assert exc_info.value.code == 1


class TestPrepareCommand:
    def test_arguments(self):
        args = Prepare().cli(["App", "--release", "--arch", "arm64,x64", "--no-validation-layer", "-j", "1"])

        assert args.target == "App"
        assert args.jobs == 1
        assert Prepare().variant_overrides(args) == {
            "build_type": "release",
            "architectures": ("arm64-v8a", "x86_64"),
            "validation_layer": False,
        }

    def test_defaults(self):
        args = Prepare().cli([])

        assert args.target == "all"
        assert Prepare().variant_overrides(args) == {"build_type": None}
        assert Prepare().delegate_options(args) == {"ndk_root": None, "cmake": None, "incremental": True}

    def test_invalid_config_exits(self, tmp_path):
        config = write_file(tmp_path / "GFXBUNDLE.toml", "[android]\n")
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["prepare", "--config", config])
        assert exc_info.value.code == 1

    def test_failed_app_exits(self, tmp_path, resource_tree, layer_release):
        config = write_config(tmp_path, resource_tree, layer_release)
        missing_ndk = str(tmp_path / "no-ndk")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["prepare", "--config", config, "--ndk", missing_ndk, "--cmake", "cmake"])

        assert exc_info.value.code == 1
        # staging completed before the toolchain check failed
        app_dir = tmp_path / "App" / "app"
        assert os.path.isfile(app_dir / "src" / "main" / "assets" / "res" / "readme.txt")
        assert os.path.isfile(app_dir / "src" / "main" / "jniLibs" / "x86_64" / LAYER_LIBRARY)


class TestCleanCommand:
    def prepared(self, tmp_path, resource_tree, layer_release):
        config = write_config(tmp_path, resource_tree, layer_release)
        app_dir = tmp_path / "App" / "app"
        write_file(app_dir / "src" / "main" / "assets" / "res" / "readme.txt")
        write_file(app_dir / "src" / "main" / "jniLibs" / "x86_64" / LAYER_LIBRARY)
        write_file(app_dir / ".cxx" / "x86_64" / "CMakeCache.txt")
        return config, app_dir

    def test_dry_run_removes_nothing(self, tmp_path, resource_tree, layer_release):
        config, app_dir = self.prepared(tmp_path, resource_tree, layer_release)

        cli.main(["clean", "--config", config, "--dry-run"])

        assert os.path.isdir(app_dir / "src" / "main" / "assets" / "res")
        assert os.path.isdir(app_dir / ".cxx")

    def test_clean_all(self, tmp_path, resource_tree, layer_release):
        config, app_dir = self.prepared(tmp_path, resource_tree, layer_release)

        cli.main(["clean", "App", "--config", config, "-y"])

        assert not os.path.exists(app_dir / "src" / "main" / "assets" / "res")
        assert not os.path.exists(app_dir / "src" / "main" / "jniLibs")
        assert not os.path.exists(app_dir / ".cxx")
        assert os.path.isdir(app_dir / "src" / "main")

    def test_native_only(self, tmp_path, resource_tree, layer_release):
        config, app_dir = self.prepared(tmp_path, resource_tree, layer_release)

        cli.main(["clean", "--config", config, "--native-only", "-y"])

        assert not os.path.exists(app_dir / ".cxx")
        assert os.path.isdir(app_dir / "src" / "main" / "jniLibs")


class TestInitCommand:
    def test_renders_loadable_config(self, tmp_path):
        cli.main([
            "init", str(tmp_path),
            "--data", "app_name=HelloTriangle",
            "--data", "application_id=net.techbito.hellotriangle",
            "--data", "validation_layer=false",
        ])

        matrix = load_variant_matrix(str(tmp_path / "GFXBUNDLE.toml"))
        variant = matrix.get("HelloTriangle")
        assert variant.application_id == "net.techbito.hellotriangle"
        assert variant.architectures == ("arm64-v8a", "x86_64")
        assert not variant.validation_layer
        assert variant.project_dir == str(tmp_path / "app")
