#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_android.py
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
Android build for one ABI.

Builds Boost-for-Android (once), Zano through CMake, compiles the wrapper and
JNI sources with the NDK clang for the ABI's triple, then links
librnzano.so against the unexploded archives.

| Piece   | Android source                     |
|---------|------------------------------------|
| Zano    | CMake                              |
| OpenSSL | zano_native_lib/_libs_android      |
| Boost   | Boost-for-Android (shared STL)     |

Output:
    - android/src/main/jniLibs/{abi}/librnzano.so
"""

import time
from pathlib import Path

from zanobuild.build_scripts.build_wallet import dependency_paths
from zanobuild.build_scripts.packager import TargetBuild
from zanobuild.build_scripts.states import (
    STATE_DEPENDENCY_READY,
    STATE_EXTERNAL_BUILT,
    STATE_FETCHED,
    STATE_LINKED,
    STATE_TOOLCHAIN_RESOLVED,
    STATE_WRAPPER_COMPILED,
)
from zanobuild.build_scripts.targets import BuildTarget


async def build_android_target(ctx, target: BuildTarget) -> Path:
    """
    Run every per-target stage for one Android ABI.

    Args:
        ctx: BuildContext holding the configuration and shared components
        target: Android BuildTarget

    Returns:
        Path: shared library staged in the working dir, installed by package()
    """
    before_time = time.time()
    config = ctx.config
    print(f"==================build_android ({target.name})========================")
    ctx.mark(target, STATE_FETCHED)

    toolchain = await ctx.resolver.resolve(target)
    ctx.mark(target, STATE_TOOLCHAIN_RESOLVED)

    await ctx.boost.ensure(target)
    ctx.mark(target, STATE_DEPENDENCY_READY)

    deps = dependency_paths(config, ctx.boost, target)
    wallet_archives = await ctx.wallet.build(target, deps)
    ctx.mark(target, STATE_EXTERNAL_BUILT)

    sources = config.wrapper_sources + config.android_extra_sources
    objects = await ctx.compiler.compile(target, toolchain, sources, config.wrapper_include_paths)
    ctx.mark(target, STATE_WRAPPER_COMPILED)

    # Archive order: Boost, OpenSSL, then Zano
    archives = ctx.boost.archives(target) + deps.openssl_archives()
    archives += [wallet_archives[name] for name in config.wallet_archives]

    build = TargetBuild(
        target=target,
        toolchain=toolchain,
        working_dir=target.working_dir(config.scratch_dir),
        objects=objects,
        archives=archives,
    )
    output = await ctx.packager_for(target).finish_target(build)
    ctx.mark(target, STATE_LINKED)

    print(f"==================[{target.name}] Output========================")
    print(f"libs(release, staged): {output}")
    print(f"use time: {int(time.time() - before_time)} s")
    return output
