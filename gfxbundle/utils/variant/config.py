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
Variant matrix configuration for gfxbundle.

Reads GFXBUNDLE.toml and turns every application it describes into a
read-only Variant that parameterizes one pipeline run.

Configuration structure:
    [android]                       # shared defaults
    compile_sdk = 34
    min_sdk = 33
    target_sdk = 34
    abi_filters = ["arm64-v8a", "x86_64"]

    [build]
    build_type = "debug"            # debug/release
    minify = false
    proguard_files = ["proguard-android-optimize.txt", "proguard-rules.pro"]
    jobs = 0                        # parallel arch builds, 0 = auto

    [native]
    script = "src/main/cpp/CMakeLists.txt"
    cmake_version = "3.22.1"        # minimum CMake version
    build_dir = ".cxx"

    [assets]
    destination = "src/main/assets/res"

    [validation_layer]
    enabled = true
    source = "${VULKAN_VALIDATION_LAYER_DIR}"
    destination = "src/main/jniLibs"
    library = "libVkLayer_khronos_validation.so"

    [[app]]
    name = "computeshader"
    project_dir = "ComputeShader/app"
    application_id = "net.techbito.computeshader"
    assets = "../../../ComputeShader/res"

Every shared key can be overridden inside an [[app]] table. Without any
[[app]] table the [project] table describes the single application.

Priority: app table > shared section > built-in default.
Relative paths resolve against the app's project_dir, which itself
resolves against the directory holding GFXBUNDLE.toml.
"""

import os
import re
import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

try:
    import tomllib
except ImportError:
    # Python < 3.11
    import tomli as tomllib

from gfxbundle.utils.errors import ConfigError

CONFIG_FILE_NAME = "GFXBUNDLE.toml"

# Android ABIs a variant may target, also the directory names under jniLibs
SUPPORTED_ARCHS = ("armeabi-v7a", "arm64-v8a", "x86", "x86_64")
ARCH_ALIASES = {
    "arm64": "arm64-v8a",
    "aarch64": "arm64-v8a",
    "armv7": "armeabi-v7a",
    "armv7a": "armeabi-v7a",
    "arm": "armeabi-v7a",
    "x64": "x86_64",
    "amd64": "x86_64",
    "i686": "x86",
    "i386": "x86",
}
DEFAULT_ARCHS = ("arm64-v8a", "x86_64")
BUILD_TYPES = ("debug", "release")

DEFAULT_COMPILE_SDK = 34
DEFAULT_MIN_SDK = 33
DEFAULT_TARGET_SDK = 34
DEFAULT_CMAKE_VERSION = "3.22.1"
DEFAULT_NATIVE_SCRIPT = "src/main/cpp/CMakeLists.txt"
DEFAULT_NATIVE_BUILD_DIR = ".cxx"
DEFAULT_ASSET_DESTINATION = "src/main/assets/res"
DEFAULT_LIBRARY_DESTINATION = "src/main/jniLibs"


def normalize_arch(arch: str) -> str:
    """Map an arch name or alias (e.g. "arm64") to its Android ABI name."""
    name = str(arch).strip().lower()
    name = ARCH_ALIASES.get(name, name)
    if name not in SUPPORTED_ARCHS:
        raise ConfigError(
            f"unsupported arch '{arch}', expected one of {', '.join(SUPPORTED_ARCHS)}"
        )
    return name


def parse_arch_list(value) -> Tuple[str, ...]:
    """Parse "a,b" or ["a", "b"] into a de-duplicated tuple of ABI names."""
    if isinstance(value, str):
        items = [x for x in value.split(",") if x.strip()]
    else:
        items = list(value or [])
    archs = []
    for item in items:
        arch = normalize_arch(item)
        if arch not in archs:
            archs.append(arch)
    return tuple(archs)


@dataclass(frozen=True)
class Variant:
    """One application build variant. Read-only once constructed."""

    name: str
    application_id: str
    project_dir: str
    asset_source: str
    architectures: Tuple[str, ...] = DEFAULT_ARCHS
    namespace: str = ""
    compile_sdk: int = DEFAULT_COMPILE_SDK
    min_sdk: int = DEFAULT_MIN_SDK
    target_sdk: int = DEFAULT_TARGET_SDK
    version_code: int = 1
    version_name: str = "1.0"
    toolchain_version: str = DEFAULT_CMAKE_VERSION
    build_type: str = "debug"
    minify: bool = False
    proguard_files: Tuple[str, ...] = ()
    jobs: int = 0
    asset_destination: str = ""
    library_destination: str = ""
    validation_layer: bool = True
    validation_layer_source: Optional[str] = None
    validation_layer_library: Optional[str] = None
    native_script: str = ""
    native_library_name: Optional[str] = None
    native_build_dir: str = ""

    def __post_init__(self):
        if not self.name:
            raise ConfigError("variant name must not be empty")
        if not self.application_id:
            raise ConfigError(f"[{self.name}] application_id must not be empty")
        if not self.architectures:
            raise ConfigError(f"[{self.name}] architectures must not be empty")
        archs = parse_arch_list(self.architectures)
        object.__setattr__(self, "architectures", archs)
        object.__setattr__(self, "proguard_files", tuple(self.proguard_files))
        if not self.namespace:
            object.__setattr__(self, "namespace", self.application_id)
        if self.build_type not in BUILD_TYPES:
            raise ConfigError(
                f"[{self.name}] build_type must be one of {BUILD_TYPES}, got '{self.build_type}'"
            )
        if not (self.min_sdk <= self.target_sdk <= self.compile_sdk):
            raise ConfigError(
                f"[{self.name}] expected min_sdk <= target_sdk <= compile_sdk, got "
                f"{self.min_sdk}/{self.target_sdk}/{self.compile_sdk}"
            )
        if self.validation_layer and not self.validation_layer_source:
            raise ConfigError(
                f"[{self.name}] validation layer is enabled but validation_layer.source is not set"
            )

        # paths default to the Android Gradle module layout
        for attr, default in (
            ("asset_destination", DEFAULT_ASSET_DESTINATION),
            ("library_destination", DEFAULT_LIBRARY_DESTINATION),
            ("native_script", DEFAULT_NATIVE_SCRIPT),
            ("native_build_dir", DEFAULT_NATIVE_BUILD_DIR),
        ):
            value = getattr(self, attr) or default
            object.__setattr__(self, attr, self.resolve_path(value))
        object.__setattr__(self, "asset_source", self.resolve_path(self.asset_source))
        if self.validation_layer_source:
            object.__setattr__(
                self,
                "validation_layer_source",
                self.resolve_path(self.validation_layer_source),
            )

    def resolve_path(self, path: str) -> str:
        path = os.path.expanduser(path)
        if not os.path.isabs(path):
            path = os.path.join(self.project_dir, path)
        return os.path.normpath(path)

    @property
    def library_name(self) -> str:
        return self.native_library_name or self.name.lower()

    @property
    def is_release(self) -> bool:
        return self.build_type == "release"

    def with_overrides(self, **changes) -> "Variant":
        """Return a copy with some fields replaced (e.g. from CLI flags)."""
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            return self
        return dataclasses.replace(self, **changes)


class VariantMatrix:
    """Every variant of one GFXBUNDLE.toml, unique by name and application_id."""

    def __init__(self, variants: List[Variant], config_path: Optional[str] = None):
        self.config_path = config_path
        self._variants: Dict[str, Variant] = {}
        app_ids = {}
        for variant in variants:
            if variant.name in self._variants:
                raise ConfigError(f"duplicate app name '{variant.name}'")
            if variant.application_id in app_ids:
                raise ConfigError(
                    f"application_id '{variant.application_id}' is used by both "
                    f"'{app_ids[variant.application_id]}' and '{variant.name}'"
                )
            app_ids[variant.application_id] = variant.name
            self._variants[variant.name] = variant

    def __iter__(self) -> Iterator[Variant]:
        return iter(self._variants.values())

    def __len__(self):
        return len(self._variants)

    @property
    def names(self) -> List[str]:
        return list(self._variants)

    def get(self, name: str) -> Variant:
        try:
            return self._variants[name]
        except KeyError:
            raise ConfigError(
                f"unknown app '{name}', configured apps: {', '.join(self.names) or '(none)'}"
            ) from None

    def select(self, target: Optional[str]) -> List[Variant]:
        """"all" (or nothing) selects every app, otherwise the named one."""
        if not target or target == "all":
            return list(self)
        return [self.get(target)]


class VariantConfig:
    """Turn a parsed GFXBUNDLE.toml into Variants."""

    def __init__(self, config: Dict[str, Any], base_dir: str):
        self.raw_config = config
        self.base_dir = os.path.abspath(base_dir)
        self.project = config.get("project", {})
        self.android = config.get("android", {})
        self.build = config.get("build", {})
        self.native = config.get("native", {})
        self.assets = config.get("assets", {})
        self.validation = config.get("validation_layer", {})

    def _expand_env(self, value):
        """Expand ${VAR_NAME} and $VAR_NAME in string values."""
        if not isinstance(value, str):
            return value
        pattern1 = re.compile(r'\$\{([^}]+)\}')
        value = pattern1.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
        pattern2 = re.compile(r'\$([A-Za-z_][A-Za-z0-9_]*)')
        value = pattern2.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
        return value

    def _lookup(self, app, section, key, app_key=None, default=None):
        app_key = app_key or key
        if app_key in app:
            value = app[app_key]
        else:
            value = section.get(key, default)
        return self._expand_env(value)

    def _lookup_bool(self, app, section, key, app_key=None, default=False):
        value = self._lookup(app, section, key, app_key=app_key, default=default)
        if not isinstance(value, bool):
            raise TypeError(f"{app_key or key} must be true or false, got {value!r}")
        return value

    def _apps(self) -> List[Dict[str, Any]]:
        apps = self.raw_config.get("app")
        if apps is None:
            if not self.project:
                raise ConfigError("no [[app]] tables and no [project] table found")
            return [self.project]
        if not isinstance(apps, list):
            raise ConfigError("'app' must be an array of tables ([[app]])")
        return apps

    def parse_app(self, app: Dict[str, Any]) -> Variant:
        name = self._expand_env(app.get("name", ""))
        application_id = self._expand_env(app.get("application_id", ""))
        project_dir = self._expand_env(app.get("project_dir", "."))
        project_dir = os.path.normpath(
            os.path.join(self.base_dir, os.path.expanduser(project_dir))
        )
        asset_source = self._lookup(app, self.assets, "source", app_key="assets")
        if not asset_source:
            raise ConfigError(f"[{name or '?'}] assets source is not set")

        try:
            return Variant(
                name=name,
                application_id=application_id,
                namespace=self._expand_env(app.get("namespace", "")),
                project_dir=project_dir,
                asset_source=asset_source,
                architectures=parse_arch_list(
                    self._lookup(app, self.android, "abi_filters", default=DEFAULT_ARCHS)
                ),
                compile_sdk=int(self._lookup(app, self.android, "compile_sdk", default=DEFAULT_COMPILE_SDK)),
                min_sdk=int(self._lookup(app, self.android, "min_sdk", default=DEFAULT_MIN_SDK)),
                target_sdk=int(self._lookup(app, self.android, "target_sdk", default=DEFAULT_TARGET_SDK)),
                version_code=int(self._lookup(app, self.project, "version_code", default=1)),
                version_name=str(self._lookup(app, self.project, "version_name", default="1.0")),
                toolchain_version=str(
                    self._lookup(app, self.native, "cmake_version", default=DEFAULT_CMAKE_VERSION)
                ),
                build_type=str(self._lookup(app, self.build, "build_type", default="debug")).lower(),
                minify=self._lookup_bool(app, self.build, "minify"),
                proguard_files=tuple(self._lookup(app, self.build, "proguard_files", default=())),
                jobs=int(self._lookup(app, self.build, "jobs", default=0)),
                asset_destination=self._lookup(
                    app, self.assets, "destination", app_key="assets_destination",
                    default=DEFAULT_ASSET_DESTINATION,
                ),
                library_destination=self._lookup(
                    app, self.validation, "destination", app_key="jni_libs_dir",
                    default=DEFAULT_LIBRARY_DESTINATION,
                ),
                validation_layer=self._lookup_bool(
                    app, self.validation, "enabled", app_key="validation_layer", default=True
                ),
                validation_layer_source=self._lookup(
                    app, self.validation, "source", app_key="validation_layer_source"
                ),
                validation_layer_library=self._lookup(
                    app, self.validation, "library", app_key="validation_layer_library"
                ),
                native_script=self._lookup(
                    app, self.native, "script", app_key="native_script",
                    default=DEFAULT_NATIVE_SCRIPT,
                ),
                native_library_name=self._expand_env(app.get("library_name")),
                native_build_dir=self._lookup(
                    app, self.native, "build_dir", app_key="native_build_dir",
                    default=DEFAULT_NATIVE_BUILD_DIR,
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"[{name or '?'}] invalid value: {e}") from e

    def variants(self) -> List[Variant]:
        return [self.parse_app(app) for app in self._apps()]


def find_config_file(start_dir: Optional[str] = None) -> str:
    """
    Locate GFXBUNDLE.toml in start_dir, or in one of its direct subdirectories.
    """
    start_dir = os.path.abspath(start_dir or os.getcwd())
    candidate = os.path.join(start_dir, CONFIG_FILE_NAME)
    if os.path.isfile(candidate):
        return candidate
    for subdir in sorted(os.listdir(start_dir)):
        candidate = os.path.join(start_dir, subdir, CONFIG_FILE_NAME)
        if os.path.isfile(candidate):
            return candidate
    raise ConfigError(f"{CONFIG_FILE_NAME} not found in {start_dir}")


def load_config_file(config_path: str) -> Dict[str, Any]:
    if not os.path.isfile(config_path):
        raise ConfigError(f"config file not found: {config_path}")
    try:
        # Must open in rb mode for tomllib
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"cannot read {config_path}: {e}") from e


def load_variant_matrix(config_path: Optional[str] = None) -> VariantMatrix:
    """
    Load every variant described by a GFXBUNDLE.toml.

    Args:
        config_path: path to the config file, or None to search the
            current working directory

    Returns:
        VariantMatrix instance
    """
    if config_path is None:
        config_path = find_config_file()
    elif os.path.isdir(config_path):
        config_path = find_config_file(config_path)
    config_path = os.path.abspath(config_path)
    config = load_config_file(config_path)
    parser = VariantConfig(config, os.path.dirname(config_path))
    return VariantMatrix(parser.variants(), config_path=config_path)
