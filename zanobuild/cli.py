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

import os
import sys
import importlib
import argparse

from zanobuild.utils.context.namespace import CliNameSpace
from zanobuild.utils.context.context import CliContext
from zanobuild.utils.context.command import CliCommand

SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]


# Root Class for Command Line Interface
class Cli(CliCommand):
    def description(self) -> str:
        return """zanobuild - Zano wallet native library builder

Fetches the Zano wallet library and its helper repositories at pinned
revisions, then builds the Android shared libraries and the iOS XCFramework
used by the React Native module.

USAGE:
    zanobuild <command> [options]

COMMANDS:
    build       Build native artifacts (android, ios or all)
    fetch       Fetch the pinned source repositories only
    clean       Remove intermediate build files
    check       Check the Android and iOS toolchains

EXAMPLES:
    zanobuild build android          # Build librnzano.so for every ABI
    zanobuild build ios --jobs 8     # Build ZanoModule.xcframework
    zanobuild build all --parallel 2 # Build everything, two targets at once
    zanobuild clean --all            # Also remove fetched sources

For more information on a specific command:
    zanobuild <command> --help
        """

    def get_command_list(self) -> list:
        arr = []
        for command in os.listdir(os.path.join(SCRIPT_PATH, "commands")):
            if not command.startswith("_") and command.endswith(".py"):
                arr.append(os.path.splitext(os.path.basename(command))[0])
        return sorted(arr)

    def _parser(self, add_help: bool) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="zanobuild",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
            add_help=add_help,
        )
        parser.add_argument(
            "subcommand",
            metavar=f"{self.get_command_list()}",
            type=str,
            nargs="?",
            choices=self.get_command_list(),
        )
        return parser

    def cli(self, argv=None) -> CliNameSpace:
        argv = sys.argv[1:] if argv is None else argv
        # Only "zanobuild --help" prints the root help, "zanobuild build --help" belongs to build
        if argv in (["--help"], ["-h"]):
            self._parser(add_help=True).print_help()
            sys.exit(0)

        # parse only known args, the rest belongs to the subcommand
        args, unknown = self._parser(add_help=False).parse_known_args(argv, namespace=CliNameSpace())
        args.argv = unknown
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        if not args.subcommand:
            print("ERROR: No command specified\n")
            self._parser(add_help=True).print_help()
            sys.exit(1)

        # get module name
        module_name = f"zanobuild.commands.{args.subcommand}"
        # get class name
        class_name = args.subcommand.capitalize()
        # import module
        module = importlib.import_module(module_name)
        # get class of module
        klass = getattr(module, class_name)
        # instance class
        sub_cmd = klass()
        # now execute the subcommand
        sub_cmd.exec(context, sub_cmd.cli(args.argv))


def main(argv=None):
    cmd = Cli()
    cmd.exec(CliContext(), cmd.cli(argv))


if __name__ == "__main__":
    main()
