#!/usr/bin/env python3
"""
Tests for the command runner.

Run with: python3 -m pytest test_cmd_util.py
"""

import asyncio
import importlib.util
import sys
import tempfile
import unittest

from zanobuild.utils.cmd.cmd_util import CommandRunner, decode_bytes, format_command
from zanobuild.utils.errors import CompileError


class TestCommandRunner(unittest.TestCase):
    """Test running real processes."""

    def setUp(self):
        self.runner = CommandRunner()

    def test_captures_output(self):
        """Test stdout and stderr are captured together."""
        code = "import sys; print('out'); print('err', file=sys.stderr)"
        for quiet in (True, False):
            result = asyncio.run(self.runner.exec([sys.executable, "-c", code], quiet=quiet))
            self.assertTrue(result.is_success())
            self.assertIn("out", result.output)
            self.assertIn("err", result.output)

    def test_cwd_and_env(self):
        """Test the working directory and extra environment are applied."""
        code = "import os; print(os.getcwd()); print(os.environ['ZANO_TEST'])"
        with tempfile.TemporaryDirectory() as tmp:
            result = asyncio.run(
                self.runner.exec([sys.executable, "-c", code], cwd=tmp, env={"ZANO_TEST": "1"}, quiet=True)
            )
        lines = result.output.splitlines()
        self.assertEqual(lines[1], "1")

    def test_check_raises_with_output(self):
        """Test a non-zero exit raises the requested error with the output."""
        code = "import sys; print('error: bad'); sys.exit(3)"
        with self.assertRaises(CompileError) as context:
            asyncio.run(self.runner.check([sys.executable, "-c", code], CompileError, "compile", target="x86"))

        error = context.exception
        self.assertEqual(error.target, "x86")
        self.assertIn("exited with 3", error.message)
        self.assertIn("error: bad", error.output)

    def test_missing_executable(self):
        """Test a missing tool is reported like a failed run."""
        result = asyncio.run(self.runner.exec(["zanobuild-no-such-tool"], quiet=True))
        self.assertEqual(result.returncode, 127)
        self.assertFalse(result.is_success())

    def test_scripted_runner_kept_with_tests(self):
        """Test the scripted runner lives with the tests, not in the command package."""
        self.assertIsNone(importlib.util.find_spec("zanobuild.utils.cmd.fake_cmd"))
        self.assertIsNotNone(importlib.util.find_spec("zanobuild.build_scripts.fake_runner"))

    def test_helpers(self):
        """Test byte decoding and command formatting."""
        self.assertEqual(decode_bytes(b"caf\xe9"), "caf\xe9")
        self.assertEqual(format_command(["cmake", "-DX=a b"]), "cmake '-DX=a b'")


if __name__ == "__main__":
    unittest.main()
