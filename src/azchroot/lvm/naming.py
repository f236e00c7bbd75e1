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

"""LVM device naming helpers.

LVM exposes a logical volume both as ``/dev/<vg>/<lv>`` and as
``/dev/mapper/<vg>-<lv>``. In the mapper form literal dashes inside either
name are doubled, and the single unescaped dash separates VG from LV.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

MAPPER_PREFIX = "/dev/mapper/"

# Asks device-mapper to split a mapper name; returns (vg, lv) or None.
MapperSplitter = Callable[[str], "tuple[str, str] | None"]


def resolve_mapper_heuristic(name: str) -> str:
    """Split an encoded mapper name into ``vg/lv`` without asking dmsetup.

    The separator is the right-most dash whose neighbours are not dashes.
    Returns "" when no such dash exists.
    """
    last = -1
    for i in range(1, len(name) - 1):
        if name[i] == "-" and name[i - 1] != "-" and name[i + 1] != "-":
            last = i
    if last <= 0:
        return ""
    vg = name[:last].replace("--", "-")
    lv = name[last + 1 :].replace("--", "-")
    return f"{vg}/{lv}"


def resolve_dev_path(device: str) -> str:
    """Return ``vg/lv`` for a ``/dev/<vg>/<lv>`` path, or "" for other shapes."""
    parts = device.split("/")
    if len(parts) < 4:
        return ""
    vg, lv = parts[-2], parts[-1]
    if not vg or not lv:
        return ""
    return f"{vg}/{lv}"


def resolve_vg_lv(device: str, split_mapper_name: MapperSplitter | None = None) -> str:
    """Resolve a device path to the ``vg/lv`` form accepted by ``lvchange``.

    Mapper paths are split by device-mapper when a splitter is available,
    falling back to the dash heuristic. Paths that are neither a mapper
    path nor ``/dev/<vg>/<lv>`` resolve to "".
    """
    if device.startswith(MAPPER_PREFIX):
        name = device[len(MAPPER_PREFIX) :]
        if split_mapper_name is not None:
            split = split_mapper_name(name)
            if split is not None and split[0] and split[1]:
                return f"{split[0]}/{split[1]}"
        logger.debug(f"LVM: dmsetup splitname failed or unavailable, falling back to heuristic for {name}")
        return resolve_mapper_heuristic(name)

    return resolve_dev_path(device)


def vg_from_device_path(device: str, split_mapper_name: MapperSplitter | None = None) -> str:
    """Return the volume group part of a logical volume path, or ""."""
    vg_lv = resolve_vg_lv(device, split_mapper_name)
    if not vg_lv:
        return ""
    return vg_lv.split("/", 1)[0]


def mapper_table_name(device: str) -> str:
    """Return the name ``dmsetup table`` expects for device."""
    if device.startswith(MAPPER_PREFIX):
        return device[len(MAPPER_PREFIX) :]
    return device
