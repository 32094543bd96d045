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
Error taxonomy for the staging and native build pipeline.

    GfxBundleError
    ├── ConfigError
    ├── StagingError
    │   ├── SourceNotFound
    │   ├── DestinationUnwritable
    │   ├── PartialCopyFailure
    │   ├── MissingArchVariant
    │   └── AmbiguousArchVariant
    ├── NativeBuildError
    ├── AggregateFailure
    ├── PipelineCancelled
    └── PipelineStateError
"""

from typing import Iterable, List, Sequence, Tuple


class GfxBundleError(Exception):
    """Base class of every error raised by gfxbundle."""


class ConfigError(GfxBundleError):
    """GFXBUNDLE.toml is missing, unreadable or describes an invalid variant."""


class StagingError(GfxBundleError):
    """A staging step could not put its files into the bundle."""


class SourceNotFound(StagingError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"source not found: {path}")


class DestinationUnwritable(StagingError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"destination not writable: {path} ({reason})")


class PartialCopyFailure(StagingError):
    """Some entries were copied and others failed.

    ``failures`` holds ``(relative_path, reason)`` pairs for every entry
    that could not be copied.
    """

    def __init__(self, destination: str, failures: Sequence[Tuple[str, str]]):
        self.destination = destination
        self.failures = list(failures)
        lines = [f"{len(self.failures)} file(s) failed to copy into {destination}:"]
        lines.extend(f"  {path}: {reason}" for path, reason in self.failures)
        super().__init__("\n".join(lines))


class MissingArchVariant(StagingError):
    """No validation layer variant exists for one or more requested archs."""

    def __init__(self, archs: Iterable[str], source_root: str):
        self.archs = tuple(archs)
        self.source_root = source_root
        super().__init__(
            f"validation layer variant missing for arch(s) "
            f"{', '.join(self.archs)} under {source_root}"
        )

    @property
    def arch(self) -> str:
        return self.archs[0]


class AmbiguousArchVariant(StagingError):
    def __init__(self, arch: str, candidates: Sequence[str]):
        self.arch = arch
        self.candidates = list(candidates)
        super().__init__(
            f"more than one validation layer library for arch {arch}: "
            f"{', '.join(self.candidates)} (set validation_layer.library)"
        )


class NativeBuildError(GfxBundleError):
    """The native toolchain failed for one architecture."""

    def __init__(self, arch: str, message: str):
        self.arch = arch
        self.message = message
        super().__init__(f"[{arch}] {message}")


class PipelineCancelled(GfxBundleError):
    """The run was cancelled before it could complete."""


class PipelineStateError(GfxBundleError):
    """An operation was requested in a state that does not allow it."""


class AggregateFailure(GfxBundleError):
    """One failure made of every independent cause that contributed to it.

    Nested aggregates are flattened so ``errors`` only holds leaf errors.
    """

    def __init__(self, errors: Iterable[BaseException], summary: str = "pipeline failed"):
        self.errors: List[BaseException] = []
        for error in errors:
            if isinstance(error, AggregateFailure):
                self.errors.extend(error.errors)
            else:
                self.errors.append(error)
        self.summary = summary
        lines = [f"{summary} ({len(self.errors)} error(s)):"]
        for error in self.errors:
            first, *rest = str(error).splitlines() or [type(error).__name__]
            lines.append(f"  - {type(error).__name__}: {first}")
            lines.extend(f"    {line}" for line in rest)
        super().__init__("\n".join(lines))

    def of_type(self, error_type) -> list:
        return [e for e in self.errors if isinstance(e, error_type)]

    @property
    def failed_archs(self) -> List[str]:
        return sorted({e.arch for e in self.of_type(NativeBuildError)})
