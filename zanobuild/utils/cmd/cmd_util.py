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

import asyncio
import os
import shlex
import time
from typing import List, Mapping, Optional, Type

from zanobuild.utils.errors import ZanoBuildError

# cmake and clang can print very long single lines (full command echoes)
STREAM_LINE_LIMIT = 4 * 1024 * 1024


def decode_bytes(input: bytes) -> str:
    """
    Decode bytes to string with fallback encoding support.

    Attempts UTF-8 decoding first, falls back to latin-1 so that odd bytes in
    compiler output never hide the real error.
    """
    try:
        return bytes.decode(input, "UTF-8")
    except UnicodeDecodeError:
        return bytes.decode(input, "latin-1")


def format_command(args: List[str]) -> str:
    return " ".join(shlex.quote(str(x)) for x in args)


class CommandResult:
    def __init__(self, args, returncode=0, output=""):
        self.args = [str(x) for x in args]
        self.returncode = returncode
        self.output = output

    def is_success(self):
        return self.returncode == 0

    def __repr__(self):
        return f"CommandResult(args={self.args!r}, returncode={self.returncode})"


class CommandRunner:
    """
    Runs external processes for the pipeline.

    Every stage goes through one runner so tests can swap in a fake that
    records the command lines instead of launching compilers.

    quiet=True captures the output silently (toolchain queries). quiet=False
    echoes the command and streams its output to the console while still
    capturing it for error reports (cmake, compilers, linkers).
    """

    async def exec(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        quiet: bool = False,
    ) -> CommandResult:
        args = [str(x) for x in args]
        if not quiet:
            print(f"exec: [{format_command(args)}]" + (f" (cwd: {cwd})" if cwd else ""))

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        start_mills = int(time.time() * 1000)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd) if cwd else None,
                env=full_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=STREAM_LINE_LIMIT,
            )
        except (FileNotFoundError, PermissionError) as e:
            # Missing executables look the same as a failed run to callers
            return CommandResult(args, 127, f"{args[0]}: {e}")

        if quiet:
            stdout, _ = await proc.communicate()
            output = decode_bytes(stdout or b"")
        else:
            chunks = []
            while True:
                line = await proc.stdout.readline()
                if not line:
                    break
                text = decode_bytes(line)
                chunks.append(text)
                print(text, end="")
            await proc.wait()
            output = "".join(chunks)

        if proc.returncode != 0 and not output:
            use_time = int(time.time() * 1000) - start_mills
            output = f"Failed with exit code {proc.returncode}, use_time: {use_time}ms"
        return CommandResult(args, proc.returncode, output)

    async def check(
        self,
        args: List[str],
        error_cls: Type[ZanoBuildError],
        message: str,
        target: Optional[str] = None,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        quiet: bool = False,
    ) -> str:
        """Run a command and raise error_cls with its output on a non-zero exit."""
        result = await self.exec(args, cwd=cwd, env=env, quiet=quiet)
        if not result.is_success():
            if not quiet:
                print(f"!!!!!!!!!!! {message} (exit {result.returncode}) !!!!!!!!!!!!!!!")
            raise error_cls(
                f"{message}: {format_command(result.args)} exited with {result.returncode}",
                target=target,
                output=result.output,
            )
        return result.output
