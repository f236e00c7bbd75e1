# This file is part of Azchroot, a tool for building Azure images from a chroot.
#
# Copyright 2025 The Azchroot Authors.
#
# SPDX-License-Identifier: GPL-3.0-only
#
# Azchroot is free software: you can redistribute it and/or modify it under
# the terms of the GNU General Public License version 3, as published by the
# Free Software Foundation.
#
# Azchroot is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranties of MERCHANTABILITY,
# SATISFACTORY QUALITY, or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along with
# Azchroot. If not, see <http://www.gnu.org/licenses/>.

"""Duration string parsing utilities.

Polling deadlines in the user configuration are written as duration
strings such as ``15m``, ``1h30m`` or ``90s``.
"""

from __future__ import annotations

import re

# One or more number+unit groups, e.g. "1h30m" or "45s".
DURATION_PATTERN = re.compile(r"^(?:\d+(?:\.\d+)?(?:ms|s|m|h))+$", re.IGNORECASE)
PART_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)", re.IGNORECASE)

UNIT_SECONDS: dict[str, float] = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
}


def parse_duration(value: str | int | float) -> float:
    """Parse a duration string into seconds.

    Supported formats:
        90     -> 90 seconds (bare numbers are seconds)
        30s    -> 30 seconds
        15m    -> 15 minutes
        1h30m  -> 90 minutes
        500ms  -> half a second

    Raises:
        ValueError: If the format is invalid or the duration is negative.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Invalid duration: {value!r} is negative")
        return float(value)

    text = value.strip().replace(" ", "")
    if text.isdigit():
        return float(text)
    if not DURATION_PATTERN.match(text):
        raise ValueError(f"Invalid duration format: '{value}'. Expected format like '15m', '1h30m', '90s'.")

    total = 0.0
    for amount, unit in PART_PATTERN.findall(text):
        total += float(amount) * UNIT_SECONDS[unit.lower()]
    return total
