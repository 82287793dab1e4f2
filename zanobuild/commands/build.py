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
import asyncio
import argparse

from zanobuild.build_scripts.build_config import load_build_config
from zanobuild.build_scripts.pipeline import Pipeline
from zanobuild.build_scripts.targets import ALL_PLATFORMS
from zanobuild.utils.context.namespace import CliNameSpace
from zanobuild.utils.context.context import CliContext
from zanobuild.utils.context.command import CliCommand
from zanobuild.utils.errors import PipelineError, ZanoBuildError


def platforms_for(target: str) -> list:
    if target == "all":
        return list(ALL_PLATFORMS)
    return [target]


class Build(CliCommand):
    def description(self) -> str:
        return """
        This is a subcommand to build the Zano native artifacts.

        Android: librnzano.so for every configured ABI, installed under
        android/src/main/jniLibs/<abi>/.
        iOS: ZanoModule.xcframework with one fat static library per SDK.

        A failed target does not stop the others. The command exits non-zero
        and lists every failed target at the end.

        Examples:
            zanobuild build android             # Build all Android ABIs
            zanobuild build ios                 # Build the XCFramework
            zanobuild build all --parallel 2    # Two targets at a time
            zanobuild build android --jobs 4    # Limit external build jobs
        """

    def get_target_list(self) -> list:
        return ["all"] + list(ALL_PLATFORMS)

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="zanobuild build",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "target",
            metavar=f"{self.get_target_list()}",
            type=str,
            nargs="?",
            default="all",
            choices=self.get_target_list(),
            help="Platform to build (default: all)",
        )
        parser.add_argument(
            "--jobs",
            type=int,
            default=None,
            help="Job count passed to the external builds (default: from config, 0 means cpu count)",
        )
        parser.add_argument(
            "--parallel",
            type=int,
            default=None,
            help="Number of targets built at the same time (default: from config)",
        )
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        try:
            config = load_build_config(str(context.project_dir))
        except ZanoBuildError as e:
            print(f"ERROR: {e}")
            sys.exit(1)
        if args.jobs is not None:
            config.jobs = max(0, args.jobs)
        if args.parallel is not None:
            config.parallel_targets = max(1, args.parallel)
        print(config.get_config_summary())

        pipeline = Pipeline(config)
        try:
            report = asyncio.run(pipeline.run(platforms_for(args.target)))
        except PipelineError as e:
            print("\n==================Build Failed========================")
            for name, error in e.failures.items():
                print(f"❌ {name}: {error.message}")
            sys.exit(1)
        except ZanoBuildError as e:
            print(f"\n❌ {e}")
            sys.exit(1)

        print("\n==================Build Succeeded========================")
        for platform, outputs in report.outputs.items():
            for output in outputs:
                print(f"✅ {platform}: {output}")
