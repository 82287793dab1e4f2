#!/usr/bin/env python3
"""
Tests for zanobuild.toml loading and the target matrix.

Run with: python3 -m pytest test_build_config.py
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from zanobuild.build_scripts.build_config import BuildConfig, load_build_config, merge_config
from zanobuild.build_scripts.targets import BuildTarget, TargetMatrix, ios_triple
from zanobuild.utils.errors import ConfigError

CONFIG_TOML = """
[paths]
scratch = "${ZANO_SCRATCH}"

[repositories.zano_native_lib]
url = "https://example.com/zano_native_lib.git"
revision = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"

[android]
stl = "c++_shared"
targets = [{ arch = "arm64-v8a", triple = "aarch64-linux-android33" }]

[ios]
min_version = "15.0"

[build]
jobs = 6
parallel_targets = 0
"""


class TestBuildConfig(unittest.TestCase):
    """Test configuration defaults, overrides and validation."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.project = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_defaults_without_file(self):
        """Test a project without zanobuild.toml builds with the defaults."""
        config = load_build_config(self.tmp.name)

        self.assertEqual(config.scratch_dir, self.project.resolve() / "tmp")
        self.assertEqual(config.android_stl, "c++_shared")
        self.assertEqual(config.ios_min_version, "13.0")
        self.assertEqual(
            config.repositories["zano_native_lib"].revision,
            "391a965d1d609f917cc97908b9d354a7f54e0258",
        )
        self.assertEqual(config.wallet_archives, ["common", "crypto", "currency_core", "wallet", "z"])
        self.assertEqual(
            config.android_version_script, self.project.resolve() / "src" / "jni" / "exports.map"
        )

    def test_file_overrides_defaults(self):
        """Test values from the file replace defaults and lists are replaced whole."""
        (self.project / "zanobuild.toml").write_text(CONFIG_TOML)

        with patch.dict(os.environ, {"ZANO_SCRATCH": "/var/tmp/zano"}):
            config = load_build_config(self.tmp.name)

        self.assertEqual(config.scratch_dir, Path("/var/tmp/zano"))
        self.assertEqual(config.wallet_source_dir, Path("/var/tmp/zano/zano_native_lib/Zano"))
        repo = config.repositories["zano_native_lib"]
        self.assertEqual(repo.url, "https://example.com/zano_native_lib.git")
        self.assertEqual(repo.revision, "a" * 40)
        self.assertIn("Boost-for-Android", config.repositories)
        self.assertEqual(len(config.android_targets), 1)
        self.assertEqual(config.ios_min_version, "15.0")
        self.assertEqual(config.get_jobs(), 6)
        self.assertEqual(config.parallel_targets, 1)

    def test_unparsable_file(self):
        """Test a broken file is an error rather than a silent fallback."""
        (self.project / "zanobuild.toml").write_text("[android\nstl = ")

        with self.assertRaises(ConfigError):
            load_build_config(self.tmp.name)

    def test_repository_needs_revision(self):
        """Test a repository without a pinned revision is rejected."""
        with self.assertRaises(ConfigError):
            BuildConfig({"repositories": {"extra": {"url": "https://example.com/x.git"}}}, self.tmp.name)

    def test_ios_target_unknown_sdk(self):
        """Test iOS targets must name a configured SDK."""
        override = {"ios": {"targets": [{"sdk": "appletvos", "arch": "arm64", "cmake_platform": "TVOS"}]}}
        with self.assertRaises(ConfigError):
            BuildConfig(override, self.tmp.name)

    def test_merge_config_is_deep(self):
        """Test nested tables merge key by key without touching the base."""
        base = {"a": {"x": 1, "y": [1, 2]}, "b": 2}
        merged = merge_config(base, {"a": {"y": [3]}})

        self.assertEqual(merged, {"a": {"x": 1, "y": [3]}, "b": 2})
        self.assertEqual(base["a"]["y"], [1, 2])


class TestTargetMatrix(unittest.TestCase):
    """Test target naming and grouping."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = BuildConfig({}, self.tmp.name)
        self.matrix = TargetMatrix.from_config(self.config)

    def tearDown(self):
        self.tmp.cleanup()

    def test_default_targets(self):
        """Test the default matrix covers four ABIs and three Apple slices."""
        self.assertEqual(
            [t.name for t in self.matrix],
            [
                "android-arm64-v8a",
                "android-armeabi-v7a",
                "android-x86",
                "android-x86_64",
                "iphoneos-arm64",
                "iphonesimulator-arm64",
                "iphonesimulator-x86_64",
            ],
        )
        self.assertEqual(self.matrix.sdks(), ["iphoneos", "iphonesimulator"])
        self.assertEqual(self.matrix.android_archs(), ["arm64-v8a", "armeabi-v7a", "x86", "x86_64"])

    def test_ios_triples(self):
        """Test iOS triples are built from the SDK template and minimum version."""
        simulator = self.matrix.for_sdk("iphonesimulator")[1]
        self.assertEqual(simulator.triple, "x86_64-apple-ios13.0-simulator")
        self.assertEqual(ios_triple("%arch%-apple-ios%min%", "arm64", "15.0"), "arm64-apple-ios15.0")

    def test_working_dirs_are_distinct(self):
        """Test every target gets its own working directory."""
        dirs = {t.working_dir(self.config.scratch_dir) for t in self.matrix}
        self.assertEqual(len(dirs), len(self.matrix))

    def test_duplicate_targets(self):
        """Test the same target listed twice is a configuration error."""
        target = BuildTarget("android", "x86", "i686-linux-android23")
        with self.assertRaises(ConfigError):
            TargetMatrix([target, target])

    def test_select(self):
        """Test selecting a platform keeps declaration order."""
        self.assertEqual([t.platform for t in self.matrix.select(["ios"])], ["ios"] * 3)


if __name__ == "__main__":
    unittest.main()
