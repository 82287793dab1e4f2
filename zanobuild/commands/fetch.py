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
from zanobuild.utils.context.namespace import CliNameSpace
from zanobuild.utils.context.context import CliContext
from zanobuild.utils.context.command import CliCommand
from zanobuild.utils.errors import ZanoBuildError


class Fetch(CliCommand):
    def description(self) -> str:
        return """
        This is a subcommand to fetch the pinned source repositories.

        Repositories already on their pinned revision are left untouched.

        Examples:
            zanobuild fetch
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="zanobuild fetch",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        try:
            config = load_build_config(str(context.project_dir))
            asyncio.run(Pipeline(config).fetch_sources())
        except ZanoBuildError as e:
            print(f"\n❌ {e}")
            sys.exit(1)
        for repo in config.repositories.values():
            print(f"✅ {repo.name} @ {repo.revision}")
