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

"""Finding the root logical volume on a freshly attached disk.

The disk's layout is unknown ahead of time. Discovery scans for physical
volumes on the device (retrying while udev catches up with the attach),
then ranks the logical volumes of the matching volume groups:

1. volumes that are not directly mountable (snapshots, thin pools,
   mirror legs, ...) are dropped,
2. swap volumes are dropped unless that would leave nothing,
3. a single survivor wins; otherwise an exact root-like name, then any
   name containing "root", then the first volume with a warning.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable

from azchroot.core.exceptions import InternalError, LvmError
from azchroot.lvm.naming import mapper_table_name, resolve_vg_lv
from azchroot.lvm.tools import LvInfo, LvmTools, volume_groups_on_device

logger = logging.getLogger(__name__)

Say = Callable[[str], None]
Sleep = Callable[[float], None]

SCAN_ATTEMPTS = 3
SCAN_BACKOFF = 2.0
REFRESH_SETTLE_DELAY = 1.0

ROOT_LV_NAMES = frozenset({"root", "lv_root", "rootlv", "lvroot"})

# First lv_attr character -> volume kind, for kinds that cannot be mounted.
# Upper case marks the same kind without an initialized metadata log;
# only lower-case "p" denotes a pvmove volume.
_NON_MOUNTABLE_KINDS: dict[str, str] = {
    "s": "snapshot",
    "S": "snapshot",
    "v": "virtual volume",
    "V": "virtual volume",
    "t": "thin pool",
    "T": "thin pool",
    "e": "RAID/pool metadata",
    "E": "RAID/pool metadata",
    "i": "internal volume",
    "I": "internal volume",
    "l": "mirror log",
    "L": "mirror log",
    "d": "mirror/RAID image",
    "D": "mirror/RAID image",
    "p": "pvmove volume",
}


class RootMatch(enum.Enum):
    """How the root volume was chosen."""

    ONLY = "only candidate"
    EXACT = "exact name match"
    PARTIAL = "partial name match"
    FIRST = "first candidate"


def is_mountable_lv(attr: str) -> bool:
    """Return False if the lv_attr string marks a volume that cannot be mounted."""
    return not attr or attr[0] not in _NON_MOUNTABLE_KINDS


def lv_type_description(attr: str) -> str:
    if not attr:
        return "unknown type"
    return _NON_MOUNTABLE_KINDS.get(attr[0], "unknown type")


def rank_root_lv(candidates: list[LvInfo]) -> tuple[LvInfo, RootMatch] | None:
    """Pick the root volume among mountable candidates."""
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0], RootMatch.ONLY
    for lv in candidates:
        if lv.name.lower() in ROOT_LV_NAMES:
            return lv, RootMatch.EXACT
    for lv in candidates:
        if "root" in lv.name.lower():
            return lv, RootMatch.PARTIAL
    return candidates[0], RootMatch.FIRST


def select_root_lv(candidates: list[LvInfo]) -> str:
    """Return the device path of the root volume, or "" for no candidates."""
    ranked = rank_root_lv(candidates)
    return ranked[0].path if ranked else ""


def detect_volume_groups(tools: LvmTools, device: str, sleep: Sleep) -> list[str]:
    """Return the volume groups with a physical volume on device.

    Device nodes for a just-attached disk can lag behind the attach, so
    the scan is retried with a fixed backoff. An empty list means the disk
    carries no LVM.
    """
    tools.settle_devices(device, 10)
    for attempt in range(SCAN_ATTEMPTS):
        if attempt > 0:
            logger.info(f"LVM: retry attempt {attempt + 1}/{SCAN_ATTEMPTS}, waiting for device nodes...")
            sleep(SCAN_BACKOFF)
            tools.settle_devices(device, 5)

        try:
            pairs = tools.list_physical_volumes()
        except LvmError as e:
            logger.info(f"LVM: scanning physical volumes, attempt {attempt + 1}: {e.message}")
            continue
        vgs = volume_groups_on_device(pairs, device)
        if vgs:
            return vgs
    return []


def activate_volume_groups(tools: LvmTools, vgs: list[str], say: Say) -> None:
    """Activate exactly ``vgs`` and make sure their device nodes exist.

    Raises:
        LvmError: If vgchange fails.
    """
    tools.scan_volume_groups()
    tools.change_volume_groups(True, vgs)
    tools.make_nodes()
    tools.udev_settle(10)
    say("LVM: volume groups activated successfully")


def find_root_lv(tools: LvmTools, vgs: list[str], say: Say) -> str:
    """Return the device path of the root logical volume within vgs.

    Raises:
        LvmError: If lvs fails or no mountable volume exists.
    """
    wanted = set(vgs)
    all_lvs = [lv for lv in tools.list_logical_volumes() if lv.vg in wanted]
    for lv in all_lvs:
        logger.info(f"LVM: discovered LV: name={lv.name} vg={lv.vg} path={lv.path} attr={lv.attr}")

    mountable: list[LvInfo] = []
    for lv in all_lvs:
        if is_mountable_lv(lv.attr):
            mountable.append(lv)
        else:
            logger.info(f"LVM: skipping LV {lv.name} ({lv.path}): {lv_type_description(lv.attr)}")

    if not mountable:
        raise LvmError(message=f"no mountable logical volumes found in volume groups {vgs}")

    candidates: list[LvInfo] = []
    for lv in mountable:
        if tools.filesystem_type(lv.path).lower() == "swap":
            logger.info(f"LVM: skipping LV {lv.name} ({lv.path}): swap filesystem")
            continue
        candidates.append(lv)

    if not candidates:
        logger.info("LVM: blkid filtered all candidates, falling back to attribute-filtered list")
        candidates = mountable

    ranked = rank_root_lv(candidates)
    if ranked is None:
        raise InternalError(message="no root logical volume candidate to rank")
    chosen, match = ranked

    if match in (RootMatch.EXACT, RootMatch.PARTIAL):
        say(f"LVM: selected root LV by {match.value}: {chosen.name} ({chosen.path})")
    elif match is RootMatch.FIRST:
        say("WARNING: LVM: multiple logical volumes found, unable to determine root by name:")
        for lv in candidates:
            fs_type = tools.filesystem_type(lv.path) or "unknown"
            say(f"  - {lv.name} ({lv.path}) [fs: {fs_type}]")
        say(f"LVM: selecting first candidate: {chosen.path}")
        say("LVM: if this is incorrect, set 'lvm_root_device' in your build template")
    return chosen.path


def verify_device(tools: LvmTools, device: str, say: Say, sleep: Sleep) -> bool:
    """Check that device carries a readable filesystem, refreshing the LV once if not.

    Never fails the build: an unreadable device only produces a warning and
    a diagnostic dump in the log. Returns whether the device was readable.
    """
    fs_type = tools.filesystem_type(device)
    if fs_type:
        logger.info(f"LVM: device {device} has filesystem type: {fs_type}")
        return True

    logger.info(f"LVM: device {device} not immediately readable by blkid, attempting refresh...")
    vg_lv = resolve_vg_lv(device, tools.split_mapper_name)
    if vg_lv:
        tools.refresh_logical_volume(vg_lv)
    tools.udev_settle(10)
    sleep(REFRESH_SETTLE_DELAY)

    fs_type = tools.filesystem_type(device)
    if fs_type:
        logger.info(f"LVM: device {device} now has filesystem type: {fs_type} (after refresh)")
        return True

    say(f"WARNING: LVM: device {device} is not readable by blkid after refresh")
    tools.dump_diagnostics(mapper_table_name(device))
    return False
