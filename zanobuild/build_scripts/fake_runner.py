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
Scripted CommandRunner for tests.

Commands are matched by prefix, where the first element is compared against
the basename of the executable, so "/ndk/bin/clang++" matches ["clang++"].
A handler may create files (to stand in for what the tool would write) and
returns a CommandResult, an output string or None for a silent success.
Unmatched commands succeed with empty output.
"""

import os
from typing import Callable, List, Optional, Tuple

from zanobuild.utils.cmd.cmd_util import CommandResult, CommandRunner


class FakeRunner(CommandRunner):
    def __init__(self):
        self.calls: List[Tuple[List[str], Optional[str]]] = []
        self._handlers = []

    @staticmethod
    def _matches(prefix, args) -> bool:
        if len(args) < len(prefix):
            return False
        if os.path.basename(args[0]) != prefix[0]:
            return False
        return list(args[1:len(prefix)]) == list(prefix[1:])

    def on(self, prefix: List[str], handler: Callable):
        """Register handler(args, cwd); later registrations win."""
        self._handlers.insert(0, (list(prefix), handler))
        return self

    def reply(self, prefix: List[str], output: str = "", returncode: int = 0):
        return self.on(prefix, lambda args, cwd: CommandResult(args, returncode, output))

    async def exec(self, args, cwd=None, env=None, quiet=False) -> CommandResult:
        args = [str(x) for x in args]
        self.calls.append((args, str(cwd) if cwd else None))
        for prefix, handler in self._handlers:
            if self._matches(prefix, args):
                result = handler(args, cwd)
                if result is None:
                    return CommandResult(args, 0, "")
                if isinstance(result, str):
                    return CommandResult(args, 0, result)
                return result
        return CommandResult(args, 0, "")

    def commands(self, prefix: Optional[List[str]] = None) -> List[List[str]]:
        """Recorded command lines, optionally only those matching prefix."""
        return [args for args, _ in self.calls if prefix is None or self._matches(prefix, args)]
