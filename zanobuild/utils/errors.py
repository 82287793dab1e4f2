#
# Copyright 2024 zhlinh and ccgo Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Error types raised by the build pipeline.

Every stage raises a subclass of ZanoBuildError. The error carries the name of
the build target it belongs to (when there is one) and the captured output of
the external process that failed, so the operator sees exactly what the tool
printed.
"""

from typing import Dict, Optional


class ZanoBuildError(Exception):
    """Base class for all pipeline errors"""

    def __init__(self, message: str, target: Optional[str] = None, output: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.target = target
        self.output = output

    def with_target(self, target: str) -> "ZanoBuildError":
        """Attach a target name unless one is already set."""
        if not self.target:
            self.target = target
        return self

    def __str__(self) -> str:
        text = self.message
        if self.target:
            text = f"[{self.target}] {text}"
        if self.output:
            text += "\n" + self.output.rstrip()
        return text


class ConfigError(ZanoBuildError):
    """zanobuild.toml is malformed or inconsistent"""


class FetchError(ZanoBuildError):
    """Remote unreachable or pinned revision missing"""


class ToolchainNotFoundError(ZanoBuildError):
    """NDK, SDK or one of their tools is missing"""


class ExternalBuildError(ZanoBuildError):
    """The wallet or dependency build system failed"""


class MissingArchiveError(ExternalBuildError):
    """The external build finished but an expected archive is absent"""

    def __init__(self, archive: str, path: str, target: Optional[str] = None):
        super().__init__(f"expected archive '{archive}' not found at {path}", target=target)
        self.archive = archive
        self.path = path


class CompileError(ZanoBuildError):
    pass


class UnpackError(ZanoBuildError):
    pass


class LinkError(ZanoBuildError):
    pass


class PackageError(ZanoBuildError):
    pass


class WorkspaceError(ZanoBuildError):
    """A file operation in the scratch tree or output path failed"""


class PipelineError(ZanoBuildError):
    """One or more targets failed; holds every per-target error."""

    def __init__(self, failures: Dict[str, ZanoBuildError]):
        names = ", ".join(sorted(failures))
        super().__init__(f"{len(failures)} target(s) failed: {names}")
        self.failures = dict(failures)

    def __str__(self) -> str:
        parts = [self.message]
        for name in sorted(self.failures):
            parts.append(str(self.failures[name]))
        return "\n\n".join(parts)
