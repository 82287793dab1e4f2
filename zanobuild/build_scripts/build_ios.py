#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_ios.py
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
iOS build for one (SDK, arch) pair.

Compiles the wrapper with the SDK's clang, builds Zano through CMake with the
ios-cmake toolchain, then breaks open the Zano and Boost archives and
re-assembles every object into one libzano-module.a. The iOS packager later
merges the arch variants of each SDK with lipo and bundles them into
ZanoModule.xcframework.

| Piece   | iOS source                                          |
|---------|-----------------------------------------------------|
| Zano    | CMake                                               |
| OpenSSL | OpenSSL-Universal, linked by the app from CocoaPods |
| Boost   | zano_native_lib/_libs_ios/boost                     |

Requirements:
- Xcode with command line tools
- macOS development environment

Output:
    - tmp/{sdk}-{arch}/libzano-module.a
"""

import time
from pathlib import Path

from zanobuild.build_scripts.archive_utils import ArchiveUnpacker
from zanobuild.build_scripts.build_wallet import dependency_paths
from zanobuild.build_scripts.packager import TargetBuild
from zanobuild.build_scripts.states import (
    STATE_DEPENDENCY_READY,
    STATE_EXTERNAL_BUILT,
    STATE_FETCHED,
    STATE_TOOLCHAIN_RESOLVED,
    STATE_UNPACKED,
    STATE_WRAPPER_COMPILED,
)
from zanobuild.build_scripts.targets import BuildTarget


async def build_ios_target(ctx, target: BuildTarget) -> Path:
    """
    Run every per-target stage for one iOS SDK/arch pair.

    Args:
        ctx: BuildContext holding the configuration and shared components
        target: iOS BuildTarget

    Returns:
        Path: per-arch static library, input to the XCFramework step
    """
    before_time = time.time()
    config = ctx.config
    working = target.working_dir(config.scratch_dir)
    print(f"==================build_ios ({target.name})========================")
    ctx.mark(target, STATE_FETCHED)

    toolchain = await ctx.resolver.resolve(target)
    ctx.mark(target, STATE_TOOLCHAIN_RESOLVED)

    await ctx.boost.ensure(target)
    ctx.mark(target, STATE_DEPENDENCY_READY)

    deps = dependency_paths(config, ctx.boost, target)
    wallet_archives = await ctx.wallet.build(target, deps)
    ctx.mark(target, STATE_EXTERNAL_BUILT)

    objects = await ctx.compiler.compile(
        target, toolchain, config.wrapper_sources, config.wrapper_include_paths
    )
    ctx.mark(target, STATE_WRAPPER_COMPILED)

    # Explode Zano and Boost archives and gather the objects
    unpacker = ArchiveUnpacker(working, ar=toolchain.ar, runner=ctx.runner)
    for name in config.wallet_archives:
        objects += await unpacker.unpack(wallet_archives[name], name)
    for name, archive in zip(config.boost_libraries, ctx.boost.archives(target)):
        objects += await unpacker.unpack(archive, f"boost_{name}")
    ctx.mark(target, STATE_UNPACKED)

    build = TargetBuild(
        target=target,
        toolchain=toolchain,
        working_dir=working,
        objects=objects,
    )
    library = await ctx.packager_for(target).finish_target(build)

    print(f"==================[{target.name}] Output========================")
    print(f"static lib: {library} ({len(objects)} objects)")
    print(f"use time: {int(time.time() - before_time)} s")
    return library
