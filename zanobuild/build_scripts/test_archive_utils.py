#!/usr/bin/env python3
"""
Tests for archive unpacking and duplicate symbol detection.

Run with: python3 -m pytest test_archive_utils.py
"""

import asyncio
import os
import tempfile
import unittest
from pathlib import Path

from zanobuild.build_scripts.archive_utils import (
    ArchiveUnpacker,
    ensure_unique_symbols,
    find_duplicate_symbols,
    parse_strong_symbols,
)
from zanobuild.build_scripts.fake_runner import FakeRunner
from zanobuild.utils.errors import LinkError, UnpackError

NM_OUTPUT = """libwallet.a[wallet2.o]:
_ZN5tools7wallet24initEv T 0000000000000120 0000000000000040
_ZN5tools7wallet2C1Ev W 0000000000000200 0000000000000010
_ZTVN5tools7wallet2E D 0000000000000000 0000000000000080
g_wallet_count B 0000000000000010 0000000000000004
kVersion R 0000000000000020 0000000000000008
common_buffer C 0000000000000100 0000000000000100
"""


def extract_members(*names):
    def handler(args, cwd):
        for name in names:
            Path(cwd, name).write_bytes(b"\x7fELF")
    return handler


class TestArchiveUnpacker(unittest.TestCase):
    """Test exploding archives into objects."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.working = Path(self.tmp.name) / "iphoneos-arm64"
        self.archive = Path(self.tmp.name) / "libwallet.a"
        self.archive.write_bytes(b"!<arch>\n")
        self.runner = FakeRunner()
        self.unpacker = ArchiveUnpacker(self.working, ar="/xcode/bin/ar", runner=self.runner)

    def tearDown(self):
        self.tmp.cleanup()

    def test_unpack_returns_objects(self):
        """Test members are extracted into the label directory and listed."""
        self.runner.on(["ar", "-x"], extract_members("b.o", "a.o", "__.SYMDEF"))

        objects = asyncio.run(self.unpacker.unpack(self.archive, "wallet"))

        out_dir = self.working / "unpack" / "wallet"
        self.assertEqual(objects, [out_dir / "a.o", out_dir / "b.o"])
        args, cwd = self.runner.calls[0]
        self.assertEqual(args, ["/xcode/bin/ar", "-x", str(self.archive.resolve())])
        self.assertEqual(cwd, str(out_dir))

    def test_rerun_drops_stale_members(self):
        """Test objects from a previous unpack never leak into a re-run."""
        self.runner.on(["ar", "-x"], extract_members("a.o", "old.o"))
        asyncio.run(self.unpacker.unpack(self.archive, "wallet"))

        self.runner.on(["ar", "-x"], extract_members("a.o"))
        objects = asyncio.run(self.unpacker.unpack(self.archive, "wallet"))

        self.assertEqual([x.name for x in objects], ["a.o"])
        self.assertFalse((self.working / "unpack" / "wallet" / "old.o").exists())

    def test_missing_archive(self):
        """Test a missing archive fails before running ar."""
        with self.assertRaises(UnpackError):
            asyncio.run(self.unpacker.unpack(Path(self.tmp.name) / "libnone.a", "none"))
        self.assertEqual(self.runner.calls, [])

    def test_ar_failure(self):
        """Test a corrupt archive surfaces as UnpackError with ar's output."""
        self.runner.reply(["ar", "-x"], "ar: libwallet.a: file format not recognized", returncode=1)

        with self.assertRaises(UnpackError) as context:
            asyncio.run(self.unpacker.unpack(self.archive, "wallet"))
        self.assertIn("not recognized", context.exception.output)


class TestSymbols(unittest.TestCase):
    """Test strong symbol parsing and duplicate detection."""

    def test_parse_strong_symbols(self):
        """Test only T/D/B/R/S definitions count as strong."""
        self.assertEqual(
            parse_strong_symbols(NM_OUTPUT),
            ["_ZN5tools7wallet24initEv", "_ZTVN5tools7wallet2E", "g_wallet_count", "kVersion"],
        )

    def symbol_runner(self, tables):
        runner = FakeRunner()
        runner.on(["nm"], lambda args, cwd: tables[os.path.basename(args[-1])])
        return runner

    def test_no_duplicates(self):
        """Test disjoint objects pass the check."""
        runner = self.symbol_runner({
            "a.o": "foo T 0 4\nshared_weak W 0 4\n",
            "b.o": "bar T 0 4\nshared_weak W 0 4\nfoo U\n",
        })

        duplicates = asyncio.run(find_duplicate_symbols("nm", ["/o/a.o", "/o/b.o"], runner))

        self.assertEqual(duplicates, {})
        self.assertEqual(runner.commands()[0], ["nm", "-g", "-P", "--defined-only", "/o/a.o"])

    def test_duplicate_strong_symbol_is_link_error(self):
        """Test two objects defining one strong symbol fail the build."""
        runner = self.symbol_runner({
            "crypto.o": "keccak T 0 4\n",
            "wallet.o": "keccak T 0 4\nwallet_init T 10 4\n",
            "jni.o": "JNI_OnLoad T 0 4\n",
        })
        objects = ["/o/crypto.o", "/o/wallet.o", "/o/jni.o"]

        with self.assertRaises(LinkError) as context:
            asyncio.run(ensure_unique_symbols("nm", objects, "iphoneos-arm64", runner))

        error = context.exception
        self.assertEqual(error.target, "iphoneos-arm64")
        self.assertIn("keccak: /o/crypto.o, /o/wallet.o", error.output)
        self.assertNotIn("JNI_OnLoad", error.output)

    def test_duplicate_across_archive_members(self):
        """Test members of two archives defining one strong symbol are reported by member."""
        runner = self.symbol_runner({
            "zano-methods.o": "Java_com_rnzano_init T 0 4\n",
            "libcommon.a": "libcommon.a[util.o]:\ndup_symbol T 0 4\n\nlibcommon.a[base58.o]:\nencode T 0 4\n",
            "libcrypto.a": "libcrypto.a[sha.o]:\ndup_symbol T 0 4\nsha_init T 8 4\n",
        })
        paths = ["/o/zano-methods.o", "/lib/libcommon.a", "/lib/libcrypto.a"]

        with self.assertRaises(LinkError) as context:
            asyncio.run(ensure_unique_symbols("nm", paths, "android-arm64-v8a", runner))

        self.assertEqual(
            context.exception.output,
            "dup_symbol: /lib/libcommon.a(util.o), /lib/libcrypto.a(sha.o)",
        )
        self.assertEqual([args[-1] for args in runner.commands(["nm"])], paths)

    def test_symbol_repeated_within_one_member(self):
        """Test a symbol listed twice for one member is not a duplicate."""
        runner = self.symbol_runner({"libwallet.a": "libwallet.a[w.o]:\nwallet_init T 0 4\nwallet_init T 0 4\n"})

        duplicates = asyncio.run(find_duplicate_symbols("nm", ["/lib/libwallet.a"], runner))

        self.assertEqual(duplicates, {})

    def test_nm_failure(self):
        """Test an unreadable object is reported as LinkError."""
        runner = FakeRunner()
        runner.reply(["nm"], "nm: a.o: file format not recognized", returncode=1)

        with self.assertRaises(LinkError):
            asyncio.run(find_duplicate_symbols("nm", ["/o/a.o"], runner))


if __name__ == "__main__":
    unittest.main()
