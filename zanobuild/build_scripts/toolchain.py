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
Toolchain resolution for Android NDK and Xcode SDK targets.

Android tools are plain paths inside the NDK, computed from the target's
triple. iOS tools come from `xcrun`, which has to be asked for each SDK.
Nothing here is persisted; handles are recomputed every run.
"""

import glob
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from zanobuild.build_scripts.targets import BuildTarget
from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import ToolchainNotFoundError

NDK_ENV_KEYS = ("ANDROID_NDK_HOME", "ANDROID_NDK_ROOT", "NDK_ROOT")
SDK_ENV_KEYS = ("ANDROID_HOME", "ANDROID_SDK_ROOT")


@dataclass(frozen=True)
class ToolchainHandle:
    ar: str
    cc: str
    cxx: str
    nm: str
    sysroot: str
    flags: Tuple[str, ...] = field(default_factory=tuple)  # Target selection flags for cc/cxx


def get_ndk_host_tag() -> str:
    """
    Get the NDK host platform tag for toolchain paths.

    The NDK ships x86_64 host binaries only, Apple Silicon runs them through
    Rosetta, so the tag is "darwin-x86_64" or "linux-x86_64".
    """
    system_str = platform.system().lower()
    if platform.machine().endswith("64"):
        system_str = system_str + "-x86_64"
    return system_str


def get_ndk_revision(ndk_path) -> Optional[str]:
    """Read Pkg.Revision from the NDK's source.properties."""
    properties = os.path.join(str(ndk_path), "source.properties")
    if not os.path.isfile(properties):
        return None
    with open(properties) as f:
        for line in f:
            if line.startswith("Pkg.Revision") and len(line.split("=")) == 2:
                return line.split("=")[1].strip()
    return None


def _version_key(path: str):
    parts = []
    for piece in os.path.basename(path).split("."):
        parts.append(int(piece) if piece.isdigit() else -1)
    return parts


class ToolchainResolver:
    def __init__(self, config, runner: Optional[CommandRunner] = None, environ: Optional[Mapping[str, str]] = None):
        self.config = config
        self.runner = runner or CommandRunner()
        self.environ = os.environ if environ is None else environ
        self._ndk_path: Optional[Path] = None
        self._xcrun_cache: Dict[Tuple[str, ...], str] = {}

    async def resolve(self, target: BuildTarget) -> ToolchainHandle:
        if target.is_android:
            return self.resolve_android(target)
        return await self.resolve_ios(target)

    # Android

    def ndk_path(self) -> Path:
        """
        Locate the NDK.

        Order: android.ndk_path from config, ANDROID_NDK_HOME, ANDROID_NDK_ROOT,
        NDK_ROOT, then the newest side-by-side NDK under $ANDROID_HOME/ndk.
        """
        if self._ndk_path is not None:
            return self._ndk_path

        candidate = self.config.android_ndk_path
        if not candidate:
            for key in NDK_ENV_KEYS:
                if self.environ.get(key):
                    candidate = self.environ[key]
                    break
        if not candidate:
            for key in SDK_ENV_KEYS:
                sdk = self.environ.get(key)
                if not sdk:
                    continue
                versions = sorted(glob.glob(os.path.join(sdk, "ndk", "*")), key=_version_key)
                if versions:
                    candidate = versions[-1]
                    break
        if not candidate:
            raise ToolchainNotFoundError(
                "Android NDK not found; set android.ndk_path or ANDROID_NDK_HOME"
            )

        path = Path(candidate)
        if not path.is_dir():
            raise ToolchainNotFoundError(f"Android NDK directory does not exist: {path}")
        self._ndk_path = path
        return path

    def ndk_prebuilt_dir(self) -> Path:
        return self.ndk_path() / "toolchains" / "llvm" / "prebuilt" / get_ndk_host_tag()

    def resolve_android(self, target: BuildTarget) -> ToolchainHandle:
        prebuilt = self.ndk_prebuilt_dir()
        bin_dir = prebuilt / "bin"
        tools = {
            "ar": bin_dir / "llvm-ar",
            "cc": bin_dir / f"{target.triple}-clang",
            "cxx": bin_dir / f"{target.triple}-clang++",
            "nm": bin_dir / "llvm-nm",
            "sysroot": prebuilt / "sysroot",
        }
        for name, path in tools.items():
            if not path.exists():
                raise ToolchainNotFoundError(
                    f"NDK {name} not found at {path}", target=target.name
                )
        return ToolchainHandle(
            ar=str(tools["ar"]),
            cc=str(tools["cc"]),
            cxx=str(tools["cxx"]),
            nm=str(tools["nm"]),
            sysroot=str(tools["sysroot"]),
            flags=("-fPIC",),
        )

    # iOS

    async def _xcrun(self, args, target_name: Optional[str] = None) -> str:
        key = tuple(args)
        if key not in self._xcrun_cache:
            output = await self.runner.check(
                ["xcrun"] + list(args),
                ToolchainNotFoundError,
                "xcrun query failed",
                target=target_name,
                quiet=True,
            )
            value = output.strip()
            if not value:
                raise ToolchainNotFoundError(
                    f"xcrun {' '.join(args)} returned nothing", target=target_name
                )
            self._xcrun_cache[key] = value
        return self._xcrun_cache[key]

    async def find_sdk_tool(self, sdk: str, tool: str, target_name: Optional[str] = None) -> str:
        return await self._xcrun(["--sdk", sdk, "--find", tool], target_name)

    async def sdk_path(self, sdk: str, target_name: Optional[str] = None) -> str:
        return await self._xcrun(["--sdk", sdk, "--show-sdk-path"], target_name)

    async def host_tool(self, tool: str) -> str:
        """Host tools such as lipo and xcodebuild."""
        return await self._xcrun(["--find", tool])

    async def resolve_ios(self, target: BuildTarget) -> ToolchainHandle:
        name = target.name
        ar = await self.find_sdk_tool(target.sdk, "ar", name)
        cc = await self.find_sdk_tool(target.sdk, "clang", name)
        cxx = await self.find_sdk_tool(target.sdk, "clang++", name)
        nm = await self.find_sdk_tool(target.sdk, "nm", name)
        sysroot = await self.sdk_path(target.sdk, name)
        return ToolchainHandle(
            ar=ar,
            cc=cc,
            cxx=cxx,
            nm=nm,
            sysroot=sysroot,
            flags=("-arch", target.arch, "-target", target.triple, "-isysroot", sysroot),
        )
