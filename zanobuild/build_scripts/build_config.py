#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_config.py
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
Build configuration handler for zanobuild.

Reads zanobuild.toml from the project directory. Everything that changes when
upstream moves is configuration rather than code: pinned repository
revisions, the Boost version, minimum OS versions, the Android STL variant and
the per-target triples. Values missing from the file fall back to the
defaults below, which match the current pipeline.

Configuration structure:
    [project]
    name = "react-native-zano"

    [paths]
    scratch = "tmp"             # Scratch root, one subdirectory per target
    sources = "src"             # Wrapper sources, version script

    [repositories.zano_native_lib]
    url = "https://github.com/hyle-team/zano_native_lib.git"
    revision = "391a965d1d609f917cc97908b9d354a7f54e0258"

    [android]
    stl = "c++_shared"
    targets = [{ arch = "arm64-v8a", triple = "aarch64-linux-android33" }]

    [ios]
    min_version = "13.0"
    targets = [{ sdk = "iphoneos", arch = "arm64", cmake_platform = "OS64" }]

String values may reference environment variables as ${VAR} or $VAR.
"""

import copy
import multiprocessing
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

if sys.version_info >= (3, 11, 0, "alpha", 7):
    import tomllib
else:
    import tomli as tomllib

from zanobuild.utils.errors import ConfigError

CONFIG_FILE_NAME = "zanobuild.toml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "project": {
        "name": "react-native-zano",
    },
    "paths": {
        "scratch": "tmp",
        "sources": "src",
    },
    "repositories": {
        "zano_native_lib": {
            "url": "https://github.com/hyle-team/zano_native_lib.git",
            "revision": "391a965d1d609f917cc97908b9d354a7f54e0258",
        },
        "Boost-for-Android": {
            "url": "https://github.com/moritz-wundke/Boost-for-Android.git",
            "revision": "51924ec5533a4fefb5edf99feaeded794c06a4fb",
        },
    },
    "wallet": {
        "source_dir": "zano_native_lib/Zano",
        "archives": ["common", "crypto", "currency_core", "wallet", "z"],
        # Optional subsystems switched off to keep the dependency set small
        "disable_options": ["DISABLE_TOR"],
    },
    "openssl": {
        "android_dir": "zano_native_lib/_libs_android/openssl",
        "ios_dir": "zano_native_lib/_libs_ios/OpenSSL",
    },
    "boost": {
        "version": "1.84.0",
        "repository": "Boost-for-Android",
        "ios_dir": "zano_native_lib/_libs_ios/boost",
        "libraries": [
            "atomic",
            "chrono",
            "date_time",
            "filesystem",
            "program_options",
            "regex",
            "serialization",
            "system",
            "thread",
            "timer",
        ],
    },
    "wrapper": {
        "sources": ["zano-wrapper/zano-methods.cpp"],
        "include_paths": ["zano_native_lib/Zano/src/wallet"],
    },
    "android": {
        "ndk_path": "",
        "output_dir": "android/src/main/jniLibs",
        "library_name": "librnzano.so",
        "extra_sources": ["jni/jni.cpp"],
        "version_script": "jni/exports.map",
        "system_libs": ["log"],
        "stl": "c++_shared",
        "system_version": 23,
        "cxx_std": "",
        "targets": [
            {"arch": "arm64-v8a", "triple": "aarch64-linux-android33"},
            {"arch": "armeabi-v7a", "triple": "armv7a-linux-androideabi23"},
            {"arch": "x86", "triple": "i686-linux-android23"},
            {"arch": "x86_64", "triple": "x86_64-linux-android23"},
        ],
    },
    "ios": {
        "output": "ios/ZanoModule.xcframework",
        "library_name": "libzano-module.a",
        "min_version": "13.0",
        "cxx_std": "c++11",
        "toolchain_file": "zano_native_lib/ios-cmake/ios.toolchain.cmake",
        "sdk_triples": {
            "iphoneos": "%arch%-apple-ios%min%",
            "iphonesimulator": "%arch%-apple-ios%min%-simulator",
        },
        # Zano does not build for armv7/armv7s
        "targets": [
            {"sdk": "iphoneos", "arch": "arm64", "cmake_platform": "OS64"},
            {"sdk": "iphonesimulator", "arch": "arm64", "cmake_platform": "SIMULATORARM64"},
            {"sdk": "iphonesimulator", "arch": "x86_64", "cmake_platform": "SIMULATOR64"},
        ],
    },
    "build": {
        "jobs": 0,
        "parallel_targets": 1,
        "check_duplicate_symbols": True,
        "fetch_retries": 3,
        "fetch_retry_delay": 5.0,
    },
}


@dataclass
class RepositorySpec:
    """A pinned external source repository."""
    name: str
    url: str
    revision: str  # Exact commit hash


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base. Lists are replaced, not merged."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class BuildConfig:
    """Resolved build configuration for one project directory."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, project_dir: str = "."):
        self.raw_config = merge_config(DEFAULT_CONFIG, config or {})
        self.project_dir = Path(project_dir).resolve()
        raw = self.raw_config

        self.project_name = self._expand_env(raw["project"]["name"])

        paths = raw["paths"]
        self.scratch_dir = self._project_path(paths["scratch"])
        self.sources_dir = self._project_path(paths["sources"])

        self.repositories = self._parse_repositories(raw["repositories"])

        wallet = raw["wallet"]
        self.wallet_source_dir = self._scratch_path(wallet["source_dir"])
        self.wallet_archives = self._string_list(wallet, "archives", "wallet")
        self.wallet_disable_options = self._string_list(wallet, "disable_options", "wallet")

        openssl = raw["openssl"]
        self.openssl_android_dir = self._scratch_path(openssl["android_dir"])
        self.openssl_ios_dir = self._scratch_path(openssl["ios_dir"])

        boost = raw["boost"]
        self.boost_version = str(boost["version"])
        self.boost_repository = boost["repository"]
        self.boost_ios_dir = self._scratch_path(boost["ios_dir"])
        self.boost_libraries = self._string_list(boost, "libraries", "boost")
        if not self.boost_libraries:
            raise ConfigError("boost.libraries must not be empty")

        wrapper = raw["wrapper"]
        self.wrapper_sources = self._string_list(wrapper, "sources", "wrapper")
        # Include paths are relative to the scratch root, where sources are fetched
        self.wrapper_include_paths = [
            self._scratch_path(x) for x in self._string_list(wrapper, "include_paths", "wrapper")
        ]

        android = raw["android"]
        self.android_ndk_path = self._expand_env(android.get("ndk_path", ""))
        self.android_output_dir = self._project_path(android["output_dir"])
        self.android_library_name = android["library_name"]
        self.android_extra_sources = self._string_list(android, "extra_sources", "android")
        self.android_version_script = self.sources_dir / android["version_script"]
        self.android_system_libs = self._string_list(android, "system_libs", "android")
        self.android_stl = android["stl"]
        self.android_system_version = int(android["system_version"])
        self.android_cxx_std = android.get("cxx_std", "")
        self.android_targets = self._table_list(android, "targets", ("arch", "triple"), "android")

        ios = raw["ios"]
        self.ios_output = self._project_path(ios["output"])
        self.ios_library_name = ios["library_name"]
        self.ios_min_version = str(ios["min_version"])
        self.ios_cxx_std = ios.get("cxx_std", "")
        self.ios_toolchain_file = self._scratch_path(ios["toolchain_file"])
        self.ios_sdk_triples = dict(ios["sdk_triples"])
        self.ios_targets = self._table_list(ios, "targets", ("sdk", "arch", "cmake_platform"), "ios")
        for row in self.ios_targets:
            if row["sdk"] not in self.ios_sdk_triples:
                raise ConfigError(f"ios target uses unknown sdk '{row['sdk']}'")

        build = raw["build"]
        self.jobs = int(build["jobs"])
        self.parallel_targets = max(1, int(build["parallel_targets"]))
        self.check_duplicate_symbols = bool(build["check_duplicate_symbols"])
        self.fetch_retries = max(1, int(build["fetch_retries"]))
        self.fetch_retry_delay = float(build["fetch_retry_delay"])

    def _expand_env(self, value: str) -> str:
        """
        Expand environment variables in configuration values.

        Supports ${VAR_NAME} and $VAR_NAME syntax.
        """
        if not isinstance(value, str):
            return value

        # Pattern for ${VAR_NAME}
        pattern1 = re.compile(r'\$\{([^}]+)\}')
        value = pattern1.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)

        # Pattern for $VAR_NAME
        pattern2 = re.compile(r'\$([A-Za-z_][A-Za-z0-9_]*)')
        value = pattern2.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)

        return value

    def _project_path(self, value: str) -> Path:
        path = Path(self._expand_env(value))
        return path if path.is_absolute() else self.project_dir / path

    def _scratch_path(self, value: str) -> Path:
        path = Path(self._expand_env(value))
        return path if path.is_absolute() else self.scratch_dir / path

    def _string_list(self, table: Dict[str, Any], key: str, section: str) -> List[str]:
        value = table.get(key, [])
        if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
            raise ConfigError(f"{section}.{key} must be a list of strings")
        return [self._expand_env(x) for x in value]

    def _table_list(self, table, key, required, section) -> List[Dict[str, str]]:
        rows = table.get(key, [])
        if not isinstance(rows, list):
            raise ConfigError(f"{section}.{key} must be an array of tables")
        result = []
        for row in rows:
            if not isinstance(row, dict):
                raise ConfigError(f"{section}.{key} entries must be tables")
            missing = [x for x in required if not row.get(x)]
            if missing:
                raise ConfigError(f"{section}.{key} entry {row} is missing {', '.join(missing)}")
            result.append({k: str(v) for k, v in row.items()})
        return result

    def _parse_repositories(self, repositories: Dict[str, Any]) -> Dict[str, RepositorySpec]:
        result = {}
        for name, spec in repositories.items():
            if not isinstance(spec, dict) or not spec.get("url") or not spec.get("revision"):
                raise ConfigError(f"repositories.{name} needs both url and revision")
            result[name] = RepositorySpec(
                name=name,
                url=self._expand_env(spec["url"]),
                revision=self._expand_env(spec["revision"]).lower(),
            )
        return result

    def get_jobs(self) -> int:
        """Worker-count hint passed to the external builds (0 means cpu count)."""
        if self.jobs > 0:
            return self.jobs
        return multiprocessing.cpu_count()

    def get_config_summary(self) -> str:
        lines = [f"project: {self.project_name}", f"scratch: {self.scratch_dir}"]
        for repo in self.repositories.values():
            lines.append(f"repository {repo.name}: {repo.url} @ {repo.revision}")
        lines.append(f"boost: {self.boost_version} ({', '.join(self.boost_libraries)})")
        lines.append(f"android: stl={self.android_stl} api={self.android_system_version}")
        lines.append(f"ios: min_version={self.ios_min_version}")
        return "\n".join(lines)


def load_build_config(project_dir: str = ".") -> BuildConfig:
    """
    Load configuration from zanobuild.toml.

    Falls back to the default configuration when the file does not exist. A
    file that exists but cannot be parsed is an error, since silently building
    with defaults would produce artifacts for the wrong revisions.
    """
    config_file = os.path.join(project_dir, CONFIG_FILE_NAME)
    if not os.path.isfile(config_file):
        print(f"   ⚠️  Warning: {CONFIG_FILE_NAME} not found at {config_file}")
        print("   ⚠️  Using default configuration values")
        return BuildConfig({}, project_dir)

    try:
        with open(config_file, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Error reading {config_file}: {e}") from e

    return BuildConfig(toml_data, project_dir)
