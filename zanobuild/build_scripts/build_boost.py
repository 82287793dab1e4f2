#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_boost.py
# zanobuild
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
Boost dependency builder.

On Android we compile our own Boost with Boost-for-Android, because the copy
bundled with zano_native_lib links the static STL while the shared library
must use the shared STL (c++_shared). One run of build-android.sh builds
every requested ABI, so the step is done once and skipped afterwards when the
marker archive exists.

On iOS the bundled Boost is fine and used as-is.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

from zanobuild.build_scripts.targets import BuildTarget
from zanobuild.build_scripts.toolchain import ToolchainResolver
from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import ExternalBuildError

BOOST_ANDROID_BUILD_SCRIPT = "./build-android.sh"


class BoostBuilder:
    def __init__(
        self,
        config,
        resolver: ToolchainResolver,
        android_archs: List[str],
        runner: Optional[CommandRunner] = None,
    ):
        self.config = config
        self.resolver = resolver
        self.android_archs = list(android_archs)
        self.runner = runner or CommandRunner()
        # The output tree is keyed by arch only and shared by every Android target
        self._lock = asyncio.Lock()

    @property
    def android_source_dir(self) -> Path:
        return self.config.scratch_dir / self.config.boost_repository

    def android_arch_dir(self, arch: str) -> Path:
        return self.android_source_dir / "build" / "out" / arch

    def marker_path(self, arch: str) -> Path:
        return self.android_arch_dir(arch) / "lib" / f"libboost_{self.config.boost_libraries[0]}.a"

    def is_built(self) -> bool:
        return all(self.marker_path(arch).exists() for arch in self.android_archs)

    def include_dir(self, target: BuildTarget) -> Path:
        if target.is_android:
            return self.android_arch_dir(target.arch) / "include"
        return self.config.boost_ios_dir / "include"

    def library_dir(self, target: BuildTarget) -> Path:
        if target.is_android:
            return self.android_arch_dir(target.arch) / "lib"
        return self.config.boost_ios_dir / "stage" / target.sdk / target.arch

    def archives(self, target: BuildTarget) -> List[Path]:
        lib_dir = self.library_dir(target)
        return [lib_dir / f"libboost_{name}.a" for name in self.config.boost_libraries]

    def build_command(self, ndk_path) -> List[str]:
        return [
            BOOST_ANDROID_BUILD_SCRIPT,
            f"--arch={','.join(self.android_archs)}",
            f"--boost={self.config.boost_version}",
            f"--with-libraries={','.join(self.config.boost_libraries)}",
            "--layout=system",
            str(ndk_path),
        ]

    async def ensure(self, target: BuildTarget) -> Path:
        """Return the Boost library directory for target, building it if needed."""
        if target.is_android:
            async with self._lock:
                await self._build_android()

        lib_dir = self.library_dir(target)
        if not lib_dir.is_dir():
            raise ExternalBuildError(f"Boost libraries missing at {lib_dir}", target=target.name)
        return lib_dir

    async def _build_android(self):
        if self.is_built():
            print(f"Boost {self.config.boost_version} for Android already built, skipping")
            return

        print(f"==================build boost {self.config.boost_version} for Android========================")
        ndk_path = self.resolver.ndk_path()
        await self.runner.check(
            self.build_command(ndk_path),
            ExternalBuildError,
            "Boost-for-Android build failed",
            cwd=self.android_source_dir,
        )
        missing = [str(self.marker_path(arch)) for arch in self.android_archs if not self.marker_path(arch).exists()]
        if missing:
            raise ExternalBuildError(
                f"Boost-for-Android finished but {', '.join(missing)} is missing"
            )
