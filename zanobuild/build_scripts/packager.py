#!/usr/bin/env python3
# -- coding: utf-8 --
#
# packager.py
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
Linking and packaging of the final artifacts.

Two strategies share one interface:

- SharedLibraryPackager (Android): links the wrapper objects against the
  unexploded Boost, OpenSSL and Zano archives into one shared library per
  ABI, with a version script so only the JNI entry points are exported.
  Each library stays in its working directory until package() installs
  all ABIs into jniLibs.
- StaticBundlePackager (iOS): archives every object (wrapper plus all
  unpacked archive members) into one static library per SDK and arch, merges
  the arch variants of each SDK with lipo, then bundles the fat libraries
  into one XCFramework.

finish_target() runs once per target as soon as that target is built.
package() is the barrier step that sees every finished target.

Packaged artifacts are first written inside the scratch tree. The old
artifact at the output path is removed only right before the new one is
moved in.
"""

import glob
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from zanobuild.build_scripts.archive_utils import ensure_unique_symbols
from zanobuild.build_scripts.targets import PLATFORM_ANDROID, PLATFORM_IOS, BuildTarget, TargetMatrix
from zanobuild.build_scripts.toolchain import ToolchainHandle, ToolchainResolver
from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import LinkError, PackageError


@dataclass
class TargetBuild:
    """Everything one target contributes to its packaging step."""
    target: BuildTarget
    toolchain: ToolchainHandle
    working_dir: Path
    objects: List[Path] = field(default_factory=list)
    archives: List[Path] = field(default_factory=list)  # Linked as archives, not exploded


def replace_output(staged: Path, output: Path):
    """Move staged into place, deleting whatever was at output just before."""
    output.parent.mkdir(parents=True, exist_ok=True)
    if output.is_dir() and not output.is_symlink():
        shutil.rmtree(output)
    elif output.exists() or output.is_symlink():
        output.unlink()
    shutil.move(str(staged), str(output))


class Packager:
    platform = ""

    def __init__(self, config, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner or CommandRunner()

    async def check_symbols(self, build: TargetBuild, objects: List[Path]):
        if self.config.check_duplicate_symbols and objects:
            await ensure_unique_symbols(build.toolchain.nm, objects, build.target.name, self.runner)

    async def finish_target(self, build: TargetBuild) -> Path:
        raise NotImplementedError

    async def package(self, finished: Dict[BuildTarget, Path]) -> List[Path]:
        raise NotImplementedError


class SharedLibraryPackager(Packager):
    platform = PLATFORM_ANDROID

    def output_path(self, target: BuildTarget) -> Path:
        return self.config.android_output_dir / target.arch / self.config.android_library_name

    def link_command(self, build: TargetBuild, output: Path) -> List[str]:
        return [
            build.toolchain.cxx,
            "-shared",
            *build.toolchain.flags,
            f"-o{output}",
            *[str(x) for x in build.objects],
            *[str(x) for x in build.archives],
            *[f"-l{name}" for name in self.config.android_system_libs],
            f"-Wl,--version-script={self.config.android_version_script}",
            "-Wl,--no-undefined",
        ]

    async def finish_target(self, build: TargetBuild) -> Path:
        target = build.target
        version_script = self.config.android_version_script
        if not version_script.is_file():
            raise LinkError(f"version script not found: {version_script}", target=target.name)
        missing = [str(x) for x in build.archives if not x.is_file()]
        if missing:
            raise LinkError(f"archives missing before link: {', '.join(missing)}", target=target.name)

        await self.check_symbols(build, build.objects + build.archives)

        print(f"Linking {self.config.android_library_name} for Android {target.arch}")
        staged = build.working_dir / self.config.android_library_name
        if staged.exists():
            staged.unlink()
        await self.runner.check(
            self.link_command(build, staged),
            LinkError,
            f"Failed to link {self.config.android_library_name}",
            target=target.name,
        )
        return staged

    async def package(self, finished: Dict[BuildTarget, Path]) -> List[Path]:
        """Move every staged ABI library into jniLibs."""
        targets = sorted(finished, key=lambda t: t.arch)
        missing = [str(finished[t]) for t in targets if not finished[t].is_file()]
        if missing:
            raise PackageError(f"staged libraries missing: {', '.join(missing)}")

        outputs = []
        for target in targets:
            output = self.output_path(target)
            replace_output(finished[target], output)
            outputs.append(output)
        print("==================Android Output========================")
        for path in outputs:
            print(path)
        return outputs


class StaticBundlePackager(Packager):
    platform = PLATFORM_IOS

    def __init__(self, config, resolver: ToolchainResolver, matrix: TargetMatrix, runner: Optional[CommandRunner] = None):
        super().__init__(config, runner)
        self.resolver = resolver
        self.matrix = matrix

    def library_path(self, target: BuildTarget) -> Path:
        return target.working_dir(self.config.scratch_dir) / self.config.ios_library_name

    def merged_path(self, sdk: str) -> Path:
        return self.config.scratch_dir / f"{sdk}-lipo" / self.config.ios_library_name

    def staging_path(self) -> Path:
        return self.config.scratch_dir / "xcframework" / self.config.ios_output.name

    async def finish_target(self, build: TargetBuild) -> Path:
        """Archive every collected object into one static library (ar rcs)."""
        target = build.target
        await self.check_symbols(build, build.objects)

        print(f"Building static library for {target.name}...")
        library = self.library_path(target)
        library.parent.mkdir(parents=True, exist_ok=True)
        if library.exists():
            library.unlink()
        await self.runner.check(
            [build.toolchain.ar, "rcs", str(library), *[str(x) for x in build.objects]],
            PackageError,
            f"Failed to create {library.name}",
            target=target.name,
        )
        return library

    async def query_archs(self, library) -> List[str]:
        lipo = await self.resolver.host_tool("lipo")
        output = await self.runner.check(
            [lipo, "-archs", str(library)],
            PackageError,
            f"Failed to query architectures of {library}",
            quiet=True,
        )
        return output.split()

    async def merge(self, sdk: str, libraries: List[Path]) -> Path:
        """Merge per-arch static libraries of one SDK into a fat library."""
        print(f"Merging libraries for {sdk}...")
        lipo = await self.resolver.host_tool("lipo")
        output = self.merged_path(sdk)
        output.parent.mkdir(parents=True, exist_ok=True)
        if output.exists():
            output.unlink()
        await self.runner.check(
            [lipo, "-create", "-output", str(output), *[str(x) for x in libraries]],
            PackageError,
            f"Failed to merge libraries for {sdk}",
        )
        return output

    async def bundle(self, merged: List[Path]) -> Path:
        """Bundle the per-SDK fat libraries into one XCFramework."""
        print("Creating XCFramework...")
        xcodebuild = await self.resolver.host_tool("xcodebuild")
        staging = self.staging_path()
        if staging.exists():
            shutil.rmtree(staging)
        staging.parent.mkdir(parents=True, exist_ok=True)

        args = [xcodebuild, "-create-xcframework"]
        for library in merged:
            args += ["-library", str(library)]
        args += ["-output", str(staging)]
        await self.runner.check(args, PackageError, "Failed to create XCFramework")

        found = glob.glob(str(staging / "*" / self.config.ios_library_name))
        if len(found) != len(merged):
            raise PackageError(
                f"XCFramework holds {len(found)} libraries, expected {len(merged)}",
                output="\n".join(found),
            )

        output = self.config.ios_output
        replace_output(staging, output)
        return output

    async def package(self, finished: Dict[BuildTarget, Path]) -> List[Path]:
        merged = []
        for sdk in self.matrix.sdks():
            targets = self.matrix.for_sdk(sdk)
            missing = [t.name for t in targets if t not in finished]
            if missing:
                raise PackageError(f"cannot package {sdk}, unfinished targets: {', '.join(missing)}")

            library = await self.merge(sdk, [finished[t] for t in targets])
            archs = await self.query_archs(library)
            expected = [t.arch for t in targets]
            if sorted(archs) != sorted(expected):
                raise PackageError(
                    f"{library} has architectures {' '.join(archs)}, expected {' '.join(expected)}"
                )
            merged.append(library)

        output = await self.bundle(merged)
        print("==================iOS Output========================")
        print(output)
        return [output]
