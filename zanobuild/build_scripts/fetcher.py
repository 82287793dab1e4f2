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
Source repository fetcher.

Clones external repositories into the scratch root and pins them to an exact
commit. A repository that already sits on the requested commit with a clean
tree and initialised submodules is left untouched, so repeated runs cost
nothing.
"""

import asyncio
import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import FetchError

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")


class SourceFetcher:
    """Clones and checks out pinned repositories under cache_dir/<name>."""

    def __init__(
        self,
        cache_dir,
        runner: Optional[CommandRunner] = None,
        retries: int = 3,
        retry_delay: float = 5.0,
    ):
        self.cache_dir = Path(cache_dir)
        self.runner = runner or CommandRunner()
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self._locks: Dict[str, asyncio.Lock] = {}

    def repo_path(self, name: str) -> Path:
        return self.cache_dir / name

    def _lock(self, name: str) -> asyncio.Lock:
        if name not in self._locks:
            self._locks[name] = asyncio.Lock()
        return self._locks[name]

    async def ensure(self, name: str, uri: str, revision: str) -> Path:
        """
        Make cache_dir/name a checkout of revision and return its path.

        Concurrent calls for the same name are serialized.
        """
        if not COMMIT_PATTERN.fullmatch(revision):
            raise FetchError(f"{name}: revision '{revision}' is not a full commit hash")
        async with self._lock(name):
            return await self._ensure_locked(name, uri, revision)

    async def _ensure_locked(self, name: str, uri: str, revision: str) -> Path:
        path = self.repo_path(name)

        if not (path / ".git").exists():
            await self._clone(name, uri, path)
        elif await self._is_checked_out(path, revision):
            if await self._submodules_in_sync(path):
                print(f"   📦 {name} already at {revision[:12]}")
                return path
            # HEAD is right but an earlier submodule update did not finish
            await self._update_submodules(name, path)
            return path

        if not await self._has_revision(path, revision):
            await self._git(
                ["fetch", "--quiet", "origin"],
                f"Failed to fetch {name} from {uri}",
                cwd=path,
            )

        print(f"   📦 Checking out {name} at {revision[:12]}")
        await self._git(
            ["checkout", "--force", "--quiet", revision],
            f"Failed to checkout {name} at {revision}",
            cwd=path,
        )
        if (path / ".gitmodules").exists():
            await self._update_submodules(name, path)
        return path

    async def _clone(self, name: str, uri: str, path: Path):
        # Clone next to the final location and move it in once complete,
        # so an interrupted clone never looks like a valid checkout.
        partial = path.with_name(path.name + ".partial")
        for p in (partial, path):
            if p.exists():
                shutil.rmtree(p)
        path.parent.mkdir(parents=True, exist_ok=True)

        print(f"   📦 Cloning git repository: {uri}")
        await self._with_retries(
            ["git", "clone", "--quiet", uri, str(partial)],
            f"Failed to clone {name} from {uri}",
            cleanup=partial,
        )
        partial.rename(path)

    async def _with_retries(self, args: List[str], message: str, cleanup: Optional[Path] = None):
        last_error = None
        for attempt in range(1, self.retries + 1):
            result = await self.runner.exec(args, quiet=True)
            if result.is_success():
                return result.output
            last_error = FetchError(message, output=result.output)
            print(f"   ⚠️  {message} (attempt {attempt}/{self.retries})")
            if cleanup is not None and cleanup.exists():
                shutil.rmtree(cleanup)
            if attempt < self.retries:
                await asyncio.sleep(self.retry_delay)
        raise last_error

    async def _git(self, args: List[str], message: str, cwd: Path) -> str:
        return await self.runner.check(["git"] + args, FetchError, message, cwd=cwd, quiet=True)

    async def _head(self, path: Path) -> str:
        result = await self.runner.exec(["git", "rev-parse", "HEAD"], cwd=path, quiet=True)
        return result.output.strip() if result.is_success() else ""

    async def _is_checked_out(self, path: Path, revision: str) -> bool:
        if await self._head(path) != revision:
            return False
        result = await self.runner.exec(
            ["git", "status", "--porcelain", "--untracked-files=no"], cwd=path, quiet=True
        )
        return result.is_success() and not result.output.strip()

    async def _has_revision(self, path: Path, revision: str) -> bool:
        result = await self.runner.exec(
            ["git", "cat-file", "-e", f"{revision}^{{commit}}"], cwd=path, quiet=True
        )
        return result.is_success()

    async def _update_submodules(self, name: str, path: Path):
        await self._git(
            ["submodule", "update", "--init", "--recursive", "--force"],
            f"Failed to update submodules of {name}",
            cwd=path,
        )

    async def _submodules_in_sync(self, path: Path) -> bool:
        """
        True when every submodule is initialised at its recorded commit.

        `git submodule status` prefixes a line with "-" (not initialised),
        "+" (different commit checked out) or "U" (merge conflicts).
        """
        if not (path / ".gitmodules").exists():
            return True
        result = await self.runner.exec(
            ["git", "submodule", "status", "--recursive"], cwd=path, quiet=True
        )
        if not result.is_success():
            return False
        return not any(line[:1] in ("-", "+", "U") for line in result.output.splitlines())
