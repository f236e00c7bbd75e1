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

"""Attach and detach managed disks on the VM the build runs on."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from azure.mgmt.compute.models import DataDisk, ManagedDiskParameters

from azchroot.azure.client import AzureClientSet
from azchroot.azure.metadata import ComputeInfo
from azchroot.core.exceptions import AzureAPIDiskError, AzureOperationError, DiskNotFoundError, OperationTimeoutError

logger = logging.getLogger(__name__)

MAX_LUNS = 64
POLL_INTERVAL = 1.0
AZURE_SCSI_LUN_ROOT = Path("/dev/disk/azure/scsi1")


def find_disk_in_list(disks: list[DataDisk], disk_id: str) -> DataDisk | None:
    """Return the data disk whose managed disk id matches disk_id (case-insensitive)."""
    for disk in disks:
        if disk.managed_disk is not None and (disk.managed_disk.id or "").lower() == disk_id.lower():
            return disk
    return None


def first_free_lun(disks: list[DataDisk]) -> int:
    """Return the lowest LUN in 0..63 not used by any attached disk."""
    used = {d.lun for d in disks}
    for lun in range(MAX_LUNS):
        if lun not in used:
            return lun
    raise AzureOperationError(message=f"no free LUN available, all {MAX_LUNS} are in use", operation="attach disk")


class DiskAttacher:
    """Attach/detach disks on this VM and wait for the kernel to see them."""

    def __init__(self, client: AzureClientSet, lun_root: Path = AZURE_SCSI_LUN_ROOT) -> None:
        self.client = client
        self.lun_root = lun_root
        self._vm: ComputeInfo | None = None

    def _this_vm(self) -> ComputeInfo:
        if self._vm is None:
            self._vm = self.client.metadata.get_compute_info()
        return self._vm

    def get_disks(self) -> list[DataDisk]:
        vm = self.client.get_vm(self._this_vm())
        if vm.storage_profile is None:
            raise AzureOperationError(
                message="properties.storageProfile is not set on VM, this is unexpected",
                operation="get VM",
            )
        return list(vm.storage_profile.data_disks or [])

    def set_disks(self, disks: list[DataDisk]) -> None:
        self.client.set_vm_data_disks(self._this_vm(), disks)

    def attach_disk(self, disk_id: str) -> int:
        """Attach disk_id to this VM, returning its LUN.

        A disk that is already attached keeps its LUN.
        """
        data_disks = self.get_disks()

        existing = find_disk_in_list(data_disks, disk_id)
        if existing is not None:
            if existing.lun is None:
                raise AzureOperationError(
                    message="disk is attached, but lun was not set in VM model (possibly an error in the Azure APIs)",
                    operation="attach disk",
                )
            return existing.lun

        lun = first_free_lun(data_disks)
        logger.debug(f"Attaching {disk_id} at LUN {lun}")
        data_disks.append(
            DataDisk(
                lun=lun,
                create_option="Attach",
                managed_disk=ManagedDiskParameters(id=disk_id),
            )
        )
        self.set_disks(data_disks)
        return lun

    def detach_disk(self, disk_id: str) -> None:
        """Remove disk_id from this VM's data disk list.

        Raises:
            AzureAPIDiskError: If the VM model lists a managed disk without an id.
            DiskNotFoundError: If disk_id is not attached.
        """
        logger.debug("Fetching list of disks currently attached to VM")
        current = self.get_disks()

        remaining: list[DataDisk] = []
        for disk in current:
            if disk.managed_disk is None:
                continue
            if not disk.managed_disk.id:
                raise AzureAPIDiskError(
                    message="Azure API returned invalid disk: managed disk without an id",
                    operation="detach disk",
                )
            if disk.managed_disk.id.lower() != disk_id.lower():
                remaining.append(disk)

        if len(remaining) == len(current):
            raise DiskNotFoundError(message=f"Disk not found: {disk_id}", operation="detach disk")

        logger.debug(f"Removing {disk_id} from list of disks currently attached to VM")
        self.set_disks(remaining)

    def wait_for_detach(self, disk_id: str, timeout: float) -> None:
        """Poll the VM model until disk_id is no longer listed.

        Raises:
            OperationTimeoutError: If the disk is still attached after timeout seconds.
        """
        cancel = self.client.cancel
        deadline = time.monotonic() + timeout
        while True:
            if find_disk_in_list(self.get_disks(), disk_id) is None:
                logger.debug("Disk is no longer in VM model, assuming detached")
                return
            if time.monotonic() >= deadline:
                raise OperationTimeoutError(
                    message=f"timeout after {timeout:.0f} seconds waiting for {disk_id} to detach",
                    operation="wait for detach",
                    timeout=timeout,
                )
            cancel.sleep(POLL_INTERVAL)

    def wait_for_device(self, lun: int, timeout: float) -> str:
        """Wait for the udev symlink of ``lun`` and return the block device it points to."""
        link = self.lun_root / f"lun{lun}"
        cancel = self.client.cancel
        deadline = time.monotonic() + timeout
        while True:
            if link.exists():
                device = os.path.realpath(link)
                logger.debug(f"LUN {lun} resolved to {device}")
                return device
            if time.monotonic() >= deadline:
                raise OperationTimeoutError(
                    message=f"timeout after {timeout:.0f} seconds waiting for device for LUN {lun} ({link})",
                    operation="wait for device",
                    timeout=timeout,
                )
            cancel.sleep(POLL_INTERVAL)
