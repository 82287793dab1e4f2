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
Build target matrix.

A BuildTarget is one (platform, architecture, toolchain) combination. The
matrix built from the configuration is the only list of targets later stages
look at.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple

from zanobuild.utils.errors import ConfigError

PLATFORM_ANDROID = "android"
PLATFORM_IOS = "ios"
ALL_PLATFORMS = (PLATFORM_ANDROID, PLATFORM_IOS)


@dataclass(frozen=True)
class BuildTarget:
    platform: str  # "android" or "ios"
    arch: str  # Android ABI name or Apple arch
    triple: str  # Compiler target triple
    sdk: str = ""  # Apple SDK flavor: iphoneos / iphonesimulator
    cmake_platform: str = ""  # ios-cmake PLATFORM value

    @property
    def name(self) -> str:
        if self.platform == PLATFORM_ANDROID:
            return f"android-{self.arch}"
        return f"{self.sdk}-{self.arch}"

    @property
    def is_android(self) -> bool:
        return self.platform == PLATFORM_ANDROID

    @property
    def is_ios(self) -> bool:
        return self.platform == PLATFORM_IOS

    def working_dir(self, scratch_dir) -> Path:
        """Target-exclusive working directory under the scratch root."""
        return Path(scratch_dir) / self.name

    def __str__(self) -> str:
        return self.name


def ios_triple(template: str, arch: str, min_version: str) -> str:
    return template.replace("%arch%", arch).replace("%min%", min_version)


class TargetMatrix:
    def __init__(self, targets: Iterable[BuildTarget]):
        self.targets: Tuple[BuildTarget, ...] = tuple(targets)
        names = [t.name for t in self.targets]
        duplicates = sorted({x for x in names if names.count(x) > 1})
        if duplicates:
            raise ConfigError(f"duplicate build targets: {', '.join(duplicates)}")

    @classmethod
    def from_config(cls, config) -> "TargetMatrix":
        targets = []
        for row in config.android_targets:
            targets.append(BuildTarget(PLATFORM_ANDROID, row["arch"], row["triple"]))
        for row in config.ios_targets:
            triple = ios_triple(config.ios_sdk_triples[row["sdk"]], row["arch"], config.ios_min_version)
            targets.append(
                BuildTarget(
                    PLATFORM_IOS,
                    row["arch"],
                    triple,
                    sdk=row["sdk"],
                    cmake_platform=row["cmake_platform"],
                )
            )
        return cls(targets)

    def for_platform(self, platform: str) -> List[BuildTarget]:
        return [t for t in self.targets if t.platform == platform]

    def select(self, platforms: Iterable[str]) -> List[BuildTarget]:
        platforms = set(platforms)
        return [t for t in self.targets if t.platform in platforms]

    def sdks(self) -> List[str]:
        """Apple SDK variants in declaration order."""
        result = []
        for t in self.for_platform(PLATFORM_IOS):
            if t.sdk not in result:
                result.append(t.sdk)
        return result

    def for_sdk(self, sdk: str) -> List[BuildTarget]:
        return [t for t in self.targets if t.is_ios and t.sdk == sdk]

    def android_archs(self) -> List[str]:
        return [t.arch for t in self.for_platform(PLATFORM_ANDROID)]

    def __iter__(self):
        return iter(self.targets)

    def __len__(self):
        return len(self.targets)
