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

"""Build stages for the Android and iOS artifacts."""

__all__ = [
    "archive_utils",
    "build_android",
    "build_boost",
    "build_config",
    "build_ios",
    "build_wallet",
    "fetcher",
    "packager",
    "pipeline",
    "states",
    "targets",
    "toolchain",
    "wrapper_compiler",
]
