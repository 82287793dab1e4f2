#!/usr/bin/env python3
# -- coding: utf-8 --
#
# pipeline.py
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
Build pipeline orchestration.

Run order:
1. Fetch every pinned repository (fatal on failure, nothing to continue from)
2. Build each target independently, optionally several at once
3. Package each platform once all of its targets have finished

A failed target does not stop its siblings. Filesystem errors count as target
failures too. Targets only stage their artifacts in the scratch tree, and a
platform with a failed target is not packaged, so its output path keeps the
previous artifacts. The run ends with a PipelineError listing every failure.
"""

import asyncio
import time
from typing import Dict, Iterable, List, Optional

from zanobuild.build_scripts.build_android import build_android_target
from zanobuild.build_scripts.build_boost import BoostBuilder
from zanobuild.build_scripts.build_ios import build_ios_target
from zanobuild.build_scripts.build_wallet import WalletBuilder
from zanobuild.build_scripts.fetcher import SourceFetcher
from zanobuild.build_scripts.packager import Packager, SharedLibraryPackager, StaticBundlePackager
from zanobuild.build_scripts.states import STATE_PACKAGED, next_state
from zanobuild.build_scripts.targets import ALL_PLATFORMS, BuildTarget, TargetMatrix
from zanobuild.build_scripts.toolchain import ToolchainResolver
from zanobuild.build_scripts.wrapper_compiler import WrapperCompiler
from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import PipelineError, WorkspaceError, ZanoBuildError


class BuildContext:
    """
    Configuration plus the shared components of one run.

    Nothing here is process-global: tests build a context around a temporary
    scratch root and a fake command runner.
    """

    def __init__(self, config, runner: Optional[CommandRunner] = None, matrix: Optional[TargetMatrix] = None):
        self.config = config
        self.runner = runner or CommandRunner()
        self.matrix = matrix or TargetMatrix.from_config(config)
        self.fetcher = SourceFetcher(
            config.scratch_dir,
            runner=self.runner,
            retries=config.fetch_retries,
            retry_delay=config.fetch_retry_delay,
        )
        self.resolver = ToolchainResolver(config, runner=self.runner)
        self.boost = BoostBuilder(config, self.resolver, self.matrix.android_archs(), runner=self.runner)
        self.wallet = WalletBuilder(config, self.resolver, runner=self.runner)
        self.compiler = WrapperCompiler(config, runner=self.runner)
        self.packagers: Dict[str, Packager] = {
            "android": SharedLibraryPackager(config, runner=self.runner),
            "ios": StaticBundlePackager(config, self.resolver, self.matrix, runner=self.runner),
        }
        self.states: Dict[str, List[str]] = {}

    def packager_for(self, target: BuildTarget) -> Packager:
        return self.packagers[target.platform]

    def mark(self, target: BuildTarget, state: str):
        """Record that target reached state; states can't be skipped."""
        history = self.states.setdefault(target.name, [])
        expected = next_state(target, history[-1] if history else None)
        if state != expected:
            raise ZanoBuildError(
                f"state '{state}' reached out of order, expected '{expected}'", target=target.name
            )
        history.append(state)
        print(f"[{target.name}] -> {state}")

    def state_of(self, target: BuildTarget) -> Optional[str]:
        history = self.states.get(target.name)
        return history[-1] if history else None


TARGET_BUILDERS = {
    "android": build_android_target,
    "ios": build_ios_target,
}


class PipelineReport:
    def __init__(self):
        self.outputs: Dict[str, List[str]] = {}
        self.target_outputs: Dict[str, str] = {}
        self.failures: Dict[str, ZanoBuildError] = {}
        self.skipped_platforms: List[str] = []

    def is_success(self) -> bool:
        return not self.failures


class Pipeline:
    def __init__(self, config, runner: Optional[CommandRunner] = None, matrix: Optional[TargetMatrix] = None):
        self.config = config
        self.context = BuildContext(config, runner=runner, matrix=matrix)

    async def fetch_sources(self):
        print("==================fetch sources========================")
        for repo in self.config.repositories.values():
            await self.context.fetcher.ensure(repo.name, repo.url, repo.revision)

    def _record_failure(self, report: PipelineReport, name: str, error: ZanoBuildError):
        error.with_target(name)
        print(f"!!!!!!!!!!! {name} failed !!!!!!!!!!!!!!!")
        print(str(error))
        report.failures[name] = error

    async def _build_target(self, target: BuildTarget, semaphore: asyncio.Semaphore, report: PipelineReport):
        async with semaphore:
            try:
                output = await TARGET_BUILDERS[target.platform](self.context, target)
            except ZanoBuildError as e:
                self._record_failure(report, target.name, e)
                return None
            except OSError as e:
                self._record_failure(report, target.name, WorkspaceError(str(e)))
                return None
            report.target_outputs[target.name] = str(output)
            return output

    async def _package(self, platform: str, targets: List[BuildTarget], finished: Dict[BuildTarget, str], report: PipelineReport):
        failed = [t.name for t in targets if t.name in report.failures]
        if failed:
            print(f"!!!!!!!!!!! skip packaging {platform}, failed targets: {', '.join(failed)} !!!!!!!!!!!!!!!")
            report.skipped_platforms.append(platform)
            return
        packager = self.context.packagers[platform]
        try:
            outputs = await packager.package({t: finished[t] for t in targets})
        except ZanoBuildError as e:
            self._record_failure(report, platform, e)
            return
        except OSError as e:
            self._record_failure(report, platform, WorkspaceError(str(e)))
            return
        for target in targets:
            self.context.mark(target, STATE_PACKAGED)
        report.outputs[platform] = [str(x) for x in outputs]

    async def run(self, platforms: Iterable[str] = ALL_PLATFORMS) -> PipelineReport:
        before_time = time.time()
        self.context.states.clear()
        platforms = [p for p in ALL_PLATFORMS if p in set(platforms)]
        targets = self.context.matrix.select(platforms)
        print(f"==================zanobuild ({', '.join(t.name for t in targets)})========================")

        await self.fetch_sources()

        report = PipelineReport()
        semaphore = asyncio.Semaphore(self.config.parallel_targets)
        results = await asyncio.gather(
            *(self._build_target(t, semaphore, report) for t in targets)
        )
        finished = {t: r for t, r in zip(targets, results) if r is not None}

        for platform in platforms:
            platform_targets = [t for t in targets if t.platform == platform]
            if platform_targets:
                await self._package(platform, platform_targets, finished, report)

        print(time.strftime("%Y-%m-%d %H:%M:%S", time.localtime()))
        print(f"use time: {int(time.time() - before_time)} s")
        if report.failures:
            raise PipelineError(report.failures)
        return report
