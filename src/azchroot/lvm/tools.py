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

"""Boundary between the LVM discovery logic and the lvm2/util-linux tools.

All text parsing of ``pvs``, ``lvs``, ``dmsetup`` and ``blkid`` output
lives here, so the discovery code in azchroot.lvm.discovery can be driven
by canned tool output in tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from azchroot.core.exceptions import LvmError
from azchroot.shell import CommandResult, run_command

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str]], CommandResult]

PVS_ARGS = ["pvs", "--noheadings", "--nosuffix", "-o", "pv_name,vg_name", "--separator", ","]
LVS_ARGS = ["lvs", "--noheadings", "--nosuffix", "-o", "lv_name,vg_name,lv_path,lv_attr", "--separator", ","]


@dataclass(frozen=True)
class LvInfo:
    """One logical volume as reported by ``lvs``.

    The first character of ``attr`` encodes the volume kind (snapshot,
    thin pool, mirror image, ...).
    """

    name: str
    vg: str
    path: str
    attr: str


def parse_pvs_output(output: str) -> list[tuple[str, str]]:
    """Parse ``pvs ... -o pv_name,vg_name --separator ,`` into (pv, vg) pairs."""
    pairs: list[tuple[str, str]] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(",", 1)
        if len(parts) != 2:
            continue
        pairs.append((parts[0].strip(), parts[1].strip()))
    return pairs


def volume_groups_on_device(pairs: list[tuple[str, str]], device: str) -> list[str]:
    """Return distinct VG names, in order, for PVs whose path starts with device."""
    vgs: list[str] = []
    for pv, vg in pairs:
        if not pv.startswith(device):
            continue
        if vg and vg not in vgs:
            vgs.append(vg)
    return vgs


def parse_lvs_output(output: str) -> list[LvInfo]:
    """Parse ``lvs ... -o lv_name,vg_name,lv_path,lv_attr --separator ,``."""
    lvs: list[LvInfo] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(",", 3)
        if len(parts) != 4:
            continue
        name, vg, path, attr = (p.strip() for p in parts)
        lvs.append(LvInfo(name=name, vg=vg, path=path, attr=attr))
    return lvs


def parse_splitname_output(output: str) -> tuple[str, str] | None:
    """Parse ``dmsetup splitname --separator /`` output (``vg/lv/layer``)."""
    parts = output.strip().split("/", 2)
    if len(parts) >= 2 and parts[0] and parts[1]:
        return parts[0], parts[1]
    return None


def _advisory(result: CommandResult, label: str) -> CommandResult:
    if not result.ok:
        output = (result.stdout + result.stderr).strip()
        logger.info(f"LVM: {label}: {result.describe()} (output: {output})")
    return result


class LvmTools(Protocol):
    """What the discovery logic needs from the host."""

    def settle_devices(self, device: str, settle_timeout: int) -> None: ...

    def list_physical_volumes(self) -> list[tuple[str, str]]: ...

    def list_logical_volumes(self) -> list[LvInfo]: ...

    def scan_volume_groups(self) -> None: ...

    def change_volume_groups(self, active: bool, vgs: list[str]) -> None: ...

    def make_nodes(self) -> None: ...

    def udev_settle(self, settle_timeout: int = 10) -> None: ...

    def filesystem_type(self, device: str) -> str: ...

    def split_mapper_name(self, name: str) -> tuple[str, str] | None: ...

    def refresh_logical_volume(self, vg_lv: str) -> None: ...

    def dump_diagnostics(self, dm_name: str) -> None: ...


class SystemLvmTools:
    """LvmTools backed by the real lvm2, udev, parted and util-linux binaries."""

    def __init__(self, runner: Runner = run_command) -> None:
        self.runner = runner

    def settle_devices(self, device: str, settle_timeout: int) -> None:
        """Re-read partitions, settle udev and refresh the PV cache. Never fails."""
        _advisory(self.runner(["partprobe", device]), f"partprobe {device}")
        self.udev_settle(settle_timeout)
        _advisory(self.runner(["pvscan", "--cache"]), "pvscan --cache")

    def udev_settle(self, settle_timeout: int = 10) -> None:
        _advisory(self.runner(["udevadm", "settle", f"--timeout={settle_timeout}"]), "udevadm settle")

    def list_physical_volumes(self) -> list[tuple[str, str]]:
        result = self.runner(PVS_ARGS)
        if not result.ok:
            raise LvmError(
                message=f"pvs: {result.describe()} (stderr: {result.stderr.strip()})",
            )
        return parse_pvs_output(result.stdout)

    def list_logical_volumes(self) -> list[LvInfo]:
        result = self.runner(LVS_ARGS)
        if not result.ok:
            raise LvmError(
                message=f"lvs: {result.describe()} (stderr: {result.stderr.strip()})",
            )
        return parse_lvs_output(result.stdout)

    def scan_volume_groups(self) -> None:
        _advisory(self.runner(["vgscan"]), "vgscan")

    def change_volume_groups(self, active: bool, vgs: list[str]) -> None:
        args = ["-ay" if active else "-an", *vgs]
        result = self.runner(["vgchange", *args])
        if not result.ok:
            raise LvmError(
                message=(
                    f"vgchange {' '.join(args)}: {result.describe()} "
                    f"(stdout: {result.stdout.strip()}, stderr: {result.stderr.strip()})"
                ),
            )

    def make_nodes(self) -> None:
        _advisory(self.runner(["vgmknodes"]), "vgmknodes")

    def filesystem_type(self, device: str) -> str:
        """Return the blkid TYPE of device, or "" if it cannot be read."""
        result = self.runner(["blkid", "-o", "value", "-s", "TYPE", device])
        if not result.ok:
            return ""
        return result.stdout.strip()

    def split_mapper_name(self, name: str) -> tuple[str, str] | None:
        result = self.runner(["dmsetup", "splitname", "--noheadings", "--separator", "/", name, "LVM"])
        if not result.ok:
            return None
        return parse_splitname_output(result.stdout)

    def refresh_logical_volume(self, vg_lv: str) -> None:
        logger.info(f"LVM: running lvchange --refresh {vg_lv}")
        _advisory(self.runner(["lvchange", "--refresh", vg_lv]), f"lvchange --refresh {vg_lv}")

    def dump_diagnostics(self, dm_name: str) -> None:
        """Log ``lvs -a`` and the device-mapper table for post-mortem analysis."""
        for args in (["lvs", "-a"], ["dmsetup", "table", dm_name]):
            label = " ".join(args)
            result = self.runner(args)
            if result.ok:
                logger.info(f"LVM: {label} output:\n{result.stdout}")
            else:
                _advisory(result, label)
