#!/usr/bin/env python3
"""
Tests for the Android and iOS packagers.

Run with: python3 -m pytest test_packager.py
"""

import asyncio
import tempfile
import unittest
from pathlib import Path

from zanobuild.build_scripts.build_config import BuildConfig
from zanobuild.build_scripts.packager import SharedLibraryPackager, StaticBundlePackager, TargetBuild
from zanobuild.build_scripts.targets import TargetMatrix
from zanobuild.build_scripts.toolchain import ToolchainHandle, ToolchainResolver
from zanobuild.build_scripts.fake_runner import FakeRunner
from zanobuild.utils.errors import LinkError, PackageError

ANDROID_TOOLCHAIN = ToolchainHandle(
    ar="/ndk/bin/llvm-ar",
    cc="/ndk/bin/x86_64-linux-android23-clang",
    cxx="/ndk/bin/x86_64-linux-android23-clang++",
    nm="/ndk/bin/llvm-nm",
    sysroot="/ndk/sysroot",
    flags=("-fPIC",),
)


def touch(path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


def output_arg(args) -> str:
    return next(x[2:] for x in args if x.startswith("-o") and len(x) > 2)


class TestSharedLibraryPackager(unittest.TestCase):
    """Test linking librnzano.so."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = BuildConfig({}, self.tmp.name)
        self.target = TargetMatrix.from_config(self.config).for_platform("android")[-1]
        self.runner = FakeRunner()
        self.runner.on(["x86_64-linux-android23-clang++"], lambda args, cwd: touch(output_arg(args)) and None)
        self.packager = SharedLibraryPackager(self.config, runner=self.runner)

        working = self.target.working_dir(self.config.scratch_dir)
        touch(self.config.android_version_script)
        self.build = TargetBuild(
            target=self.target,
            toolchain=ANDROID_TOOLCHAIN,
            working_dir=working,
            objects=[touch(working / "obj" / "zano-methods.o"), touch(working / "obj" / "jni.o")],
            archives=[touch(working / "x86_64" / "lib" / "libwallet.a")],
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_link_stages_library(self):
        """Test the shared library is linked into the working dir and jniLibs is untouched."""
        staged = asyncio.run(self.packager.finish_target(self.build))

        self.assertEqual(staged, self.build.working_dir / "librnzano.so")
        self.assertTrue(staged.is_file())
        self.assertFalse(self.config.android_output_dir.exists())

        args = self.runner.commands(["x86_64-linux-android23-clang++"])[0]
        self.assertEqual(args[1], "-shared")
        self.assertIn("-llog", args)
        self.assertIn(f"-Wl,--version-script={self.config.android_version_script}", args)
        self.assertIn("-Wl,--no-undefined", args)
        # Objects come before the archives that resolve them
        self.assertLess(
            args.index(str(self.build.objects[0])), args.index(str(self.build.archives[0]))
        )

    def test_package_installs_every_abi(self):
        """Test package() moves each staged library into jniLibs/<abi>."""
        staged = asyncio.run(self.packager.finish_target(self.build))

        outputs = asyncio.run(self.packager.package({self.target: staged}))

        expected = self.config.android_output_dir / "x86_64" / "librnzano.so"
        self.assertEqual(outputs, [expected])
        self.assertTrue(expected.is_file())
        self.assertFalse(staged.exists())

    def test_package_replaces_stale_output(self):
        """Test a previous library is replaced only when packaging."""
        stale = touch(self.config.android_output_dir / "x86_64" / "librnzano.so")
        stale.write_text("old")

        staged = asyncio.run(self.packager.finish_target(self.build))
        self.assertEqual(stale.read_text(), "old")

        asyncio.run(self.packager.package({self.target: staged}))
        self.assertEqual(stale.read_text(), "")

    def test_package_missing_staged_library(self):
        """Test nothing is installed when one staged library is gone."""
        other = TargetMatrix.from_config(self.config).for_platform("android")[0]
        staged = asyncio.run(self.packager.finish_target(self.build))

        with self.assertRaises(PackageError):
            asyncio.run(self.packager.package({self.target: staged, other: self.build.working_dir / "none.so"}))

        self.assertTrue(staged.is_file())
        self.assertFalse(self.config.android_output_dir.exists())

    def test_missing_archive(self):
        """Test an absent archive fails before the linker runs."""
        self.build.archives.append(self.build.working_dir / "x86_64" / "lib" / "libz.a")

        with self.assertRaises(LinkError) as context:
            asyncio.run(self.packager.finish_target(self.build))

        self.assertIn("libz.a", str(context.exception))
        self.assertEqual(self.runner.commands(["x86_64-linux-android23-clang++"]), [])

    def test_undefined_symbol(self):
        """Test a linker failure keeps the old library in place."""
        stale = touch(self.config.android_output_dir / "x86_64" / "librnzano.so")
        stale.write_text("old")
        self.runner.reply(
            ["x86_64-linux-android23-clang++"], "undefined reference to `wallet_init'", returncode=1
        )

        with self.assertRaises(LinkError) as context:
            asyncio.run(self.packager.finish_target(self.build))

        self.assertEqual(context.exception.target, "android-x86_64")
        self.assertEqual(stale.read_text(), "old")

    def test_duplicate_wrapper_symbols(self):
        """Test wrapper objects defining the same symbol are rejected."""
        self.runner.reply(["llvm-nm"], "Java_com_zano_ZanoModule_init T 0 10\n")

        with self.assertRaises(LinkError):
            asyncio.run(self.packager.finish_target(self.build))
        self.assertEqual(self.runner.commands(["x86_64-linux-android23-clang++"]), [])

    def test_duplicate_symbols_across_archives(self):
        """Test two linked archives defining the same strong symbol fail before the link."""
        working = self.build.working_dir
        self.build.archives = [
            touch(working / "x86_64" / "lib" / "libcommon.a"),
            touch(working / "x86_64" / "lib" / "libcrypto.a"),
        ]
        tables = {
            "libcommon.a": "libcommon.a[util.o]:\ndup_symbol T 0 4\n",
            "libcrypto.a": "libcrypto.a[hash.o]:\ndup_symbol T 0 4\n",
        }
        self.runner.on(["llvm-nm"], lambda args, cwd: tables.get(Path(args[-1]).name, ""))

        with self.assertRaises(LinkError) as context:
            asyncio.run(self.packager.finish_target(self.build))

        self.assertIn("dup_symbol", context.exception.output)
        self.assertIn("libcommon.a(util.o)", context.exception.output)
        self.assertIn("libcrypto.a(hash.o)", context.exception.output)
        scanned = [Path(args[-1]).name for args in self.runner.commands(["llvm-nm"])]
        self.assertIn("libcommon.a", scanned)
        self.assertIn("libcrypto.a", scanned)
        self.assertEqual(self.runner.commands(["x86_64-linux-android23-clang++"]), [])


class TestStaticBundlePackager(unittest.TestCase):
    """Test fat library merging and XCFramework creation."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = BuildConfig({}, self.tmp.name)
        self.matrix = TargetMatrix.from_config(self.config)
        self.runner = FakeRunner()
        self.runner.reply(["xcrun", "--find", "lipo"], "/usr/bin/lipo\n")
        self.runner.reply(["xcrun", "--find", "xcodebuild"], "/usr/bin/xcodebuild\n")
        self.runner.on(["lipo", "-create"], lambda args, cwd: touch(args[3]) and None)
        self.archs = {"iphoneos": "arm64", "iphonesimulator": "x86_64 arm64"}
        self.runner.on(["lipo", "-archs"], self.lipo_archs)
        self.runner.on(["xcodebuild", "-create-xcframework"], self.create_xcframework)
        resolver = ToolchainResolver(self.config, runner=self.runner, environ={})
        self.packager = StaticBundlePackager(self.config, resolver, self.matrix, runner=self.runner)
        self.finished = {
            t: touch(self.packager.library_path(t)) for t in self.matrix.for_platform("ios")
        }

    def tearDown(self):
        self.tmp.cleanup()

    def lipo_archs(self, args, cwd):
        sdk = Path(args[-1]).parent.name[:-len("-lipo")]
        return self.archs[sdk] + "\n"

    def create_xcframework(self, args, cwd):
        libraries = [args[i + 1] for i, x in enumerate(args) if x == "-library"]
        output = Path(args[args.index("-output") + 1])
        for library in libraries:
            slice_name = Path(library).parent.name
            touch(output / slice_name / Path(library).name)
        touch(output / "Info.plist")

    def test_package_builds_xcframework(self):
        """Test one fat library per SDK ends up in the XCFramework."""
        outputs = asyncio.run(self.packager.package(self.finished))

        self.assertEqual(outputs, [self.config.ios_output])
        slices = sorted(x.name for x in self.config.ios_output.iterdir() if x.is_dir())
        self.assertEqual(slices, ["iphoneos-lipo", "iphonesimulator-lipo"])

        merges = self.runner.commands(["lipo", "-create"])
        self.assertEqual(len(merges), 2)
        simulator = [str(self.finished[t]) for t in self.matrix.for_sdk("iphonesimulator")]
        self.assertEqual(merges[1][4:], simulator)

    def test_package_replaces_stale_output(self):
        """Test the previous XCFramework is replaced as a whole."""
        stale = touch(self.config.ios_output / "ios-armv7" / "libzano-module.a")

        asyncio.run(self.packager.package(self.finished))

        self.assertFalse(stale.exists())
        self.assertTrue(self.config.ios_output.is_dir())

    def test_arch_mismatch(self):
        """Test a fat library missing an arch fails and keeps the old output."""
        stale = touch(self.config.ios_output / "Info.plist")
        self.archs["iphonesimulator"] = "arm64"

        with self.assertRaises(PackageError) as context:
            asyncio.run(self.packager.package(self.finished))

        self.assertIn("x86_64", str(context.exception))
        self.assertTrue(stale.exists())
        self.assertEqual(self.runner.commands(["xcodebuild"]), [])

    def test_unfinished_target(self):
        """Test packaging refuses to run with a target missing."""
        target = self.matrix.for_sdk("iphonesimulator")[0]
        del self.finished[target]

        with self.assertRaises(PackageError) as context:
            asyncio.run(self.packager.package(self.finished))
        self.assertIn(target.name, str(context.exception))

    def test_finish_target_archives_objects(self):
        """Test per-target objects are archived into one static library."""
        target = self.matrix.for_sdk("iphoneos")[0]
        working = target.working_dir(self.config.scratch_dir)
        objects = [touch(working / "obj" / "zano-methods.o"), touch(working / "unpack" / "wallet" / "wallet2.o")]
        toolchain = ToolchainHandle(ar="/xcode/bin/ar", cc="clang", cxx="clang++", nm="/xcode/bin/nm", sysroot="/sdk")
        build = TargetBuild(target=target, toolchain=toolchain, working_dir=working, objects=objects)

        library = asyncio.run(self.packager.finish_target(build))

        self.assertEqual(library, working / "libzano-module.a")
        self.assertEqual(
            self.runner.commands(["ar", "rcs"]),
            [["/xcode/bin/ar", "rcs", str(library)] + [str(x) for x in objects]],
        )
        self.assertEqual(len(self.runner.commands(["nm"])), 2)


if __name__ == "__main__":
    unittest.main()
