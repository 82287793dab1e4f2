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
import shutil
import argparse

from zanobuild.build_scripts.build_config import load_build_config
from zanobuild.utils.context.namespace import CliNameSpace
from zanobuild.utils.context.context import CliContext
from zanobuild.utils.context.command import CliCommand
from zanobuild.utils.errors import ZanoBuildError


class Clean(CliCommand):
    def description(self) -> str:
        return """
        This is a subcommand to clean intermediate build files.

        By default the per-target working directories under the scratch root
        are removed and the fetched repositories are kept. Installed artifacts
        (jniLibs, xcframework) are never touched.

        Examples:
            zanobuild clean              # Remove per-target build directories
            zanobuild clean --all        # Remove the whole scratch root
            zanobuild clean --dry-run    # Preview what will be cleaned
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="zanobuild clean",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "--all",
            action="store_true",
            help="Also remove fetched repositories (the whole scratch root)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be cleaned without actually deleting",
        )
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        print("Cleaning build artifacts...\n")
        try:
            config = load_build_config(str(context.project_dir))
        except ZanoBuildError as e:
            print(f"ERROR: {e}")
            sys.exit(1)

        cleaner = ScratchCleaner(config, dry_run=args.dry_run)
        if args.all:
            cleaner.clean_all()
        else:
            cleaner.clean_intermediates()
        cleaner.print_summary()


class ScratchCleaner:
    def __init__(self, config, dry_run=False):
        self.config = config
        self.dry_run = dry_run
        self.cleaned_dirs = []
        self.failed_dirs = []

    def intermediate_dirs(self) -> list:
        """Everything under the scratch root except fetched repositories."""
        scratch = self.config.scratch_dir
        if not scratch.is_dir():
            return []
        keep = set(self.config.repositories)
        return sorted(
            x for x in scratch.iterdir()
            if x.is_dir() and x.name not in keep and not x.name.endswith(".partial")
        )

    def remove_directory(self, path):
        if not os.path.isdir(path):
            return False
        if self.dry_run:
            print(f"  [DRY RUN] Would remove: {path}")
            return True
        try:
            shutil.rmtree(path)
        except OSError as e:
            self.failed_dirs.append((str(path), str(e)))
            print(f"  ❌ Failed to remove {path}: {e}")
            return False
        self.cleaned_dirs.append(str(path))
        print(f"  ✅ Removed: {path}")
        return True

    def clean_intermediates(self):
        for path in self.intermediate_dirs():
            self.remove_directory(path)

    def clean_all(self):
        self.remove_directory(self.config.scratch_dir)

    def print_summary(self):
        print(f"\nCleaned {len(self.cleaned_dirs)} director{'y' if len(self.cleaned_dirs) == 1 else 'ies'}")
        if self.failed_dirs:
            print(f"Failed to clean {len(self.failed_dirs)}:")
            for path, error in self.failed_dirs:
                print(f"  {path}: {error}")
            sys.exit(1)
