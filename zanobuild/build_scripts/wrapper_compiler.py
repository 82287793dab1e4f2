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

"""Compiles the wrapper sources that expose the wallet API to the bridge."""

import os
from pathlib import Path
from typing import List, Optional

from zanobuild.build_scripts.targets import BuildTarget
from zanobuild.build_scripts.toolchain import ToolchainHandle
from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import CompileError

C_EXTENSIONS = (".c",)
CXX_EXTENSIONS = (".cc", ".cpp", ".cxx")

OPTIMIZATION_FLAG = "-O2"
# Fails on OS APIs newer than the minimum deployment target
AVAILABILITY_FLAG = "-Werror=partial-availability"


def is_cxx_source(source) -> bool:
    ext = os.path.splitext(str(source))[1].lower()
    if ext in CXX_EXTENSIONS:
        return True
    if ext in C_EXTENSIONS:
        return False
    raise CompileError(f"don't know how to compile {source}")


def object_name(source) -> str:
    return os.path.splitext(os.path.basename(str(source)))[0] + ".o"


class WrapperCompiler:
    def __init__(self, config, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner or CommandRunner()

    def object_dir(self, target: BuildTarget) -> Path:
        return target.working_dir(self.config.scratch_dir) / "obj"

    def common_flags(self, target: BuildTarget, include_paths) -> List[str]:
        flags = [f"-I{path}" for path in include_paths]
        if target.is_ios:
            flags.append(f"-miphoneos-version-min={self.config.ios_min_version}")
        flags += [OPTIMIZATION_FLAG, AVAILABILITY_FLAG]
        return flags

    def cxx_flags(self, target: BuildTarget, include_paths) -> List[str]:
        flags = self.common_flags(target, include_paths)
        std = self.config.android_cxx_std if target.is_android else self.config.ios_cxx_std
        if std:
            flags.append(f"-std={std}")
        return flags

    def compile_command(self, target: BuildTarget, toolchain: ToolchainHandle, source, obj, include_paths) -> List[str]:
        if is_cxx_source(source):
            compiler = toolchain.cxx
            flags = self.cxx_flags(target, include_paths)
        else:
            compiler = toolchain.cc
            flags = self.common_flags(target, include_paths)
        return [compiler, "-c", *flags, *toolchain.flags, f"-o{obj}", str(source)]

    async def compile(
        self,
        target: BuildTarget,
        toolchain: ToolchainHandle,
        sources,
        include_paths,
    ) -> List[Path]:
        """
        Compile each source into <working>/obj/<stem>.o.

        The compiler is picked by extension. Any failure raises CompileError
        and no object list is returned.
        """
        sources = [Path(x) if os.path.isabs(str(x)) else self.config.sources_dir / x for x in sources]
        names = [object_name(x) for x in sources]
        clashes = sorted({x for x in names if names.count(x) > 1})
        if clashes:
            raise CompileError(
                f"wrapper sources map to the same object file: {', '.join(clashes)}",
                target=target.name,
            )

        obj_dir = self.object_dir(target)
        obj_dir.mkdir(parents=True, exist_ok=True)

        objects = []
        for source, name in zip(sources, names):
            print(f"Compiling {source.name} for {target.name}...")
            obj = obj_dir / name
            if obj.exists():
                obj.unlink()
            await self.runner.check(
                self.compile_command(target, toolchain, source, obj, include_paths),
                CompileError,
                f"Failed to compile {source}",
                target=target.name,
            )
            objects.append(obj)
        return objects
