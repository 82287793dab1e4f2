#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_wallet.py
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
Zano wallet library build.

Zano is built by calling its CMake project directly (generate, then build the
install target) once per target. The zano_native_lib helper scripts are not
used. Boost and OpenSSL locations are passed as CMake cache overrides, and
optional subsystems such as Tor are switched off.

After the install step every expected archive must exist. CMake's exit code
does not say which library went missing, so each one is checked by name.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from zanobuild.build_scripts.targets import BuildTarget
from zanobuild.build_scripts.toolchain import ToolchainResolver
from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import ExternalBuildError, MissingArchiveError


@dataclass(frozen=True)
class DependencyPaths:
    """Include and library locations of the wallet's dependencies for one target."""
    boost_include_dir: Path
    boost_library_dir: Path
    boost_version: str
    openssl_include_dir: Path
    openssl_crypto_library: Path
    openssl_ssl_library: Path

    def openssl_archives(self) -> List[Path]:
        return [self.openssl_crypto_library, self.openssl_ssl_library]


def openssl_paths(config, target: BuildTarget):
    """(include dir, libcrypto.a, libssl.a) from the zano_native_lib prebuilts."""
    if target.is_android:
        root = config.openssl_android_dir
        lib_dir = root / target.arch / "lib"
    else:
        root = config.openssl_ios_dir / target.sdk
        lib_dir = root / "lib"
    return root / "include", lib_dir / "libcrypto.a", lib_dir / "libssl.a"


class WalletBuilder:
    def __init__(self, config, resolver: ToolchainResolver, runner: Optional[CommandRunner] = None):
        self.config = config
        self.resolver = resolver
        self.runner = runner or CommandRunner()

    def working_dir(self, target: BuildTarget) -> Path:
        return target.working_dir(self.config.scratch_dir)

    def cmake_dir(self, target: BuildTarget) -> Path:
        return self.working_dir(target) / "cmake"

    def archive_dir(self, target: BuildTarget) -> Path:
        # Zano's install rules put Android archives under <prefix>/<abi>/lib
        if target.is_android:
            return self.working_dir(target) / target.arch / "lib"
        return self.working_dir(target) / "lib"

    def archive_path(self, target: BuildTarget, name: str) -> Path:
        return self.archive_dir(target) / f"lib{name}.a"

    def configure_command(self, target: BuildTarget, deps: DependencyPaths) -> List[str]:
        working = self.working_dir(target)
        args = [
            "cmake",
            # Source directory:
            f"-S{self.config.wallet_source_dir}",
            # Build directory:
            f"-B{self.cmake_dir(target)}",
            # Build options:
            f"-DBoost_INCLUDE_DIRS={deps.boost_include_dir}",
            f"-DBoost_LIBRARY_DIRS={deps.boost_library_dir}",
            # No shell in between, so the value is passed unquoted
            f"-DBoost_VERSION={deps.boost_version}",
            "-DCMAKE_BUILD_TYPE=Release",
            f"-DCMAKE_INSTALL_PREFIX={working}",
            f"-DOPENSSL_CRYPTO_LIBRARY={deps.openssl_crypto_library}",
            f"-DOPENSSL_INCLUDE_DIR={deps.openssl_include_dir}",
            f"-DOPENSSL_SSL_LIBRARY={deps.openssl_ssl_library}",
        ]
        args += [f"-D{option}=TRUE" for option in self.config.wallet_disable_options]

        if target.is_android:
            args += [
                f"-DCMAKE_ANDROID_ARCH_ABI={target.arch}",
                f"-DCMAKE_ANDROID_NDK={self.resolver.ndk_path()}",
                f"-DCMAKE_ANDROID_STL_TYPE={self.config.android_stl}",
                "-DCMAKE_SYSTEM_NAME=Android",
                f"-DCMAKE_SYSTEM_VERSION={self.config.android_system_version}",
            ]
        else:
            args += [
                "-DCMAKE_SYSTEM_NAME=iOS",
                f"-DCMAKE_TOOLCHAIN_FILE={self.config.ios_toolchain_file}",
                "-DCMAKE_XCODE_ATTRIBUTE_ONLY_ACTIVE_ARCH=NO",
                f"-DDEPLOYMENT_TARGET={self.config.ios_min_version}",
                f"-DPLATFORM={target.cmake_platform}",
                "-GXcode",
            ]
        return args

    def build_command(self, target: BuildTarget) -> List[str]:
        args = [
            "cmake",
            "--build",
            str(self.cmake_dir(target)),
            "--config",
            "Release",
            "--target",
            "install",
        ]
        if target.is_android:
            # Makefile generator takes a job count; Xcode schedules itself
            args += ["--", f"-j{self.config.get_jobs()}"]
        return args

    async def build(self, target: BuildTarget, deps: DependencyPaths) -> Dict[str, Path]:
        """Configure, build and install Zano for target; return archive name -> path."""
        print(f"==================build zano ({target.name})========================")
        self.working_dir(target).mkdir(parents=True, exist_ok=True)
        # Archives from an earlier run must not stand in for ones this run failed to install
        if self.archive_dir(target).exists():
            shutil.rmtree(self.archive_dir(target))

        await self.runner.check(
            self.configure_command(target, deps),
            ExternalBuildError,
            "Zano CMake configure failed",
            target=target.name,
        )
        await self.runner.check(
            self.build_command(target),
            ExternalBuildError,
            "Zano build failed",
            target=target.name,
        )
        return self.collect_archives(target)

    def collect_archives(self, target: BuildTarget) -> Dict[str, Path]:
        archives = {}
        for name in self.config.wallet_archives:
            path = self.archive_path(target, name)
            if not path.is_file():
                raise MissingArchiveError(name, str(path), target=target.name)
            archives[name] = path
        return archives


def dependency_paths(config, boost, target: BuildTarget) -> DependencyPaths:
    """Collect Boost and OpenSSL locations for target; boost is a BoostBuilder."""
    include_dir, crypto, ssl = openssl_paths(config, target)
    return DependencyPaths(
        boost_include_dir=boost.include_dir(target),
        boost_library_dir=boost.library_dir(target),
        boost_version=config.boost_version,
        openssl_include_dir=include_dir,
        openssl_crypto_library=crypto,
        openssl_ssl_library=ssl,
    )
