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
Per-target build states, in order.

fetched -> toolchain-resolved -> dependency-ready -> external-built ->
wrapper-compiled -> (linked | unpacked) -> packaged

Android targets go through "linked", iOS targets through "unpacked".
"""

STATE_FETCHED = "fetched"
STATE_TOOLCHAIN_RESOLVED = "toolchain-resolved"
STATE_DEPENDENCY_READY = "dependency-ready"
STATE_EXTERNAL_BUILT = "external-built"
STATE_WRAPPER_COMPILED = "wrapper-compiled"
STATE_LINKED = "linked"
STATE_UNPACKED = "unpacked"
STATE_PACKAGED = "packaged"

COMMON_STATES = (
    STATE_FETCHED,
    STATE_TOOLCHAIN_RESOLVED,
    STATE_DEPENDENCY_READY,
    STATE_EXTERNAL_BUILT,
    STATE_WRAPPER_COMPILED,
)

ANDROID_STATES = COMMON_STATES + (STATE_LINKED, STATE_PACKAGED)
IOS_STATES = COMMON_STATES + (STATE_UNPACKED, STATE_PACKAGED)


def expected_states(target):
    return ANDROID_STATES if target.is_android else IOS_STATES


def next_state(target, current):
    """The state that must follow current, or None when current is the last one."""
    states = expected_states(target)
    if current is None:
        return states[0]
    index = states.index(current)
    return states[index + 1] if index + 1 < len(states) else None
