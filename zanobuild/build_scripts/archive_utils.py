#!/usr/bin/env python3
# -- coding: utf-8 --
#
# archive_utils.py
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
Static archive utilities.

- Unpacking: explodes a static archive into its member objects so objects
  from many archives can be re-archived into one library.
- Symbol checks: lists the strong global symbols each object or archive
  member defines and rejects sets where two of them define the same one.
  `ar` happily archives both, and a link that pulls members on demand may
  pick one silently.

Note:
    `nm -P` prints one symbol per line as "name type value [size]". Upper
    case types are global. T/D/B/R/S are strong definitions; W/V are weak,
    C is a tentative (common) definition and U is undefined.
"""

import asyncio
import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from zanobuild.utils.cmd.cmd_util import CommandRunner
from zanobuild.utils.errors import LinkError, UnpackError

STRONG_SYMBOL_TYPES = frozenset("TDBRS")
NM_CONCURRENCY = 16
MEMBER_HEADER = re.compile(r"^(?P<archive>.+)\[(?P<member>[^\]]+)\]:$")


class ArchiveUnpacker:
    """Extracts archives into <working_dir>/unpack/<label>."""

    def __init__(self, working_dir, ar: str = "ar", runner: Optional[CommandRunner] = None):
        self.working_dir = Path(working_dir)
        self.ar = ar
        self.runner = runner or CommandRunner()

    def unpack_dir(self, label: str) -> Path:
        return self.working_dir / "unpack" / label

    async def unpack(self, archive, label: str) -> List[Path]:
        """
        Explode archive and return its .o members, sorted by name.

        The label directory is wiped first so objects from an older build of
        the same archive can never leak into the result.
        """
        archive = Path(archive)
        if not archive.is_file():
            raise UnpackError(f"archive not found: {archive}")

        print(f"Unpacking {archive.name}")
        out_path = self.unpack_dir(label)
        if out_path.exists():
            shutil.rmtree(out_path)
        out_path.mkdir(parents=True)

        await self.runner.check(
            [self.ar, "-x", str(archive.resolve())],
            UnpackError,
            f"Failed to unpack {archive}",
            cwd=out_path,
            quiet=True,
        )
        return sorted(p for p in out_path.iterdir() if p.name.endswith(".o"))


def parse_member_symbols(nm_output: str, path: str = "") -> Dict[str, List[str]]:
    """
    Group the strong symbols of one nm run by the object that defines them.

    For an archive nm prints a "lib.a[x.o]:" header before each member; those
    symbols are owned by "<path>(x.o)". Symbols before any header belong to
    path itself.
    """
    tables: Dict[str, List[str]] = {}
    owner = path
    for line in nm_output.splitlines():
        header = MEMBER_HEADER.match(line.strip())
        if header:
            owner = f"{path}({header.group('member')})"
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        if fields[1] in STRONG_SYMBOL_TYPES:
            tables.setdefault(owner, []).append(fields[0])
    return tables


def parse_strong_symbols(nm_output: str) -> List[str]:
    return [symbol for symbols in parse_member_symbols(nm_output).values() for symbol in symbols]


async def list_strong_symbols(nm: str, path, runner: CommandRunner) -> Dict[str, List[str]]:
    output = await runner.check(
        [nm, "-g", "-P", "--defined-only", str(path)],
        LinkError,
        f"Failed to read symbols of {path}",
        quiet=True,
    )
    return parse_member_symbols(output, str(path))


async def find_duplicate_symbols(nm: str, paths, runner: Optional[CommandRunner] = None) -> Dict[str, List[str]]:
    """
    Map each strong symbol defined more than once to the objects defining it.

    paths may mix objects and archives. Archive members are reported as
    "archive(member)".
    """
    runner = runner or CommandRunner()
    semaphore = asyncio.Semaphore(NM_CONCURRENCY)

    async def read(path):
        async with semaphore:
            return await list_strong_symbols(nm, path, runner)

    tables = await asyncio.gather(*(read(Path(x)) for x in paths))

    owners: Dict[str, List[str]] = {}
    for table in tables:
        for owner, symbols in table.items():
            for symbol in set(symbols):
                owners.setdefault(symbol, []).append(owner)
    return {symbol: names for symbol, names in sorted(owners.items()) if len(names) > 1}


async def ensure_unique_symbols(nm: str, paths, target: Optional[str] = None, runner: Optional[CommandRunner] = None):
    duplicates = await find_duplicate_symbols(nm, paths, runner)
    if duplicates:
        lines = [f"{symbol}: {', '.join(names)}" for symbol, names in duplicates.items()]
        raise LinkError(
            f"{len(duplicates)} strong symbol(s) defined more than once",
            target=target,
            output="\n".join(lines),
        )
