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

import sys
import shutil
import asyncio
import argparse

from zanobuild.build_scripts.build_config import load_build_config
from zanobuild.build_scripts.targets import TargetMatrix
from zanobuild.build_scripts.toolchain import ToolchainResolver, get_ndk_revision
from zanobuild.utils.context.namespace import CliNameSpace
from zanobuild.utils.context.context import CliContext
from zanobuild.utils.context.command import CliCommand
from zanobuild.utils.errors import ZanoBuildError


class Check(CliCommand):
    def description(self) -> str:
        return """
        This is a subcommand to check the build environment.

        Resolves every configured target's toolchain without building
        anything, so a missing NDK or Xcode shows up before a long build.

        Examples:
            zanobuild check android      # Check the Android NDK
            zanobuild check ios          # Check Xcode and the iOS SDKs
            zanobuild check all          # Check both platforms
        """

    def get_target_list(self) -> list:
        return ["all", "android", "ios"]

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="zanobuild check",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "target",
            metavar=f"{self.get_target_list()}",
            type=str,
            choices=self.get_target_list(),
            nargs="?",
            default="all",
            help="Platform to check (default: all)",
        )
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        print(f"🔍 Checking {args.target} build environment...\n")
        try:
            config = load_build_config(str(context.project_dir))
        except ZanoBuildError as e:
            print(f"ERROR: {e}")
            sys.exit(1)

        checker = EnvironmentChecker(config)
        checker.check_host_tools()
        if args.target in ("all", "android"):
            checker.check_android()
        if args.target in ("all", "ios"):
            asyncio.run(checker.check_ios())
        checker.print_summary()


class EnvironmentChecker:
    def __init__(self, config, resolver=None):
        self.config = config
        self.matrix = TargetMatrix.from_config(config)
        self.resolver = resolver or ToolchainResolver(config)
        self.errors = []

    def print_ok(self, msg):
        print(f"  ✅ {msg}")

    def print_error(self, msg):
        print(f"  ❌ {msg}")
        self.errors.append(msg)

    def print_section(self, title):
        print(f"\n{'='*60}")
        print(f"  {title}")
        print(f"{'='*60}")

    def check_host_tools(self):
        self.print_section("Host tools")
        for tool in ("git", "cmake"):
            path = shutil.which(tool)
            if path:
                self.print_ok(f"{tool}: {path}")
            else:
                self.print_error(f"{tool}: Not found")

    def check_android(self):
        self.print_section("Android NDK")
        try:
            ndk = self.resolver.ndk_path()
        except ZanoBuildError as e:
            self.print_error(e.message)
            return
        revision = get_ndk_revision(ndk) or "unknown revision"
        self.print_ok(f"NDK: {ndk} ({revision})")
        for target in self.matrix.for_platform("android"):
            try:
                toolchain = self.resolver.resolve_android(target)
            except ZanoBuildError as e:
                self.print_error(e.message)
                continue
            self.print_ok(f"{target.name}: {toolchain.cxx}")

    async def check_ios(self):
        self.print_section("iOS SDKs")
        for target in self.matrix.for_platform("ios"):
            try:
                toolchain = await self.resolver.resolve_ios(target)
            except ZanoBuildError as e:
                self.print_error(f"{target.name}: {e.message}")
                continue
            self.print_ok(f"{target.name}: {toolchain.sysroot}")
        for tool in ("lipo", "xcodebuild"):
            try:
                path = await self.resolver.host_tool(tool)
            except ZanoBuildError as e:
                self.print_error(e.message)
                continue
            self.print_ok(f"{tool}: {path}")

    def print_summary(self):
        print(f"\n{'='*60}")
        if self.errors:
            print(f"  ❌ {len(self.errors)} problem(s) found")
            sys.exit(1)
        print("  ✅ Environment ready")
