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

"""Create the temporary OS disk (and data disks) the build works on."""

from __future__ import annotations

import logging
from typing import Any

from azure.mgmt.compute.models import CreationData, Disk, DiskSku, ImageDiskReference

from azchroot.azure.resource import OS_DISK_LUN, Diskset, PlatformImage, ResourceId, parse_resource_id
from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError

logger = logging.getLogger(__name__)


class CreateNewDisksetStep(Step):
    """Create a new OS disk from scratch, a platform image, a disk or a gallery image version.

    At most one of source_platform_image, source_os_disk_resource_id and
    source_image_resource_id is set; with none the OS disk is created
    empty. A gallery image version source also gets one data disk per
    data disk image of the version.
    """

    phase = "diskset"

    def __init__(
        self,
        os_disk_id: str,
        location: str,
        *,
        zone: str = "",
        os_disk_size_gb: int = 0,
        os_disk_storage_account_type: str = "",
        data_disk_storage_account_type: str = "",
        hyperv_generation: str = "",
        source_platform_image: PlatformImage | None = None,
        source_os_disk_resource_id: str = "",
        source_image_resource_id: str = "",
        data_disk_id_prefix: str = "",
        skip_cleanup: bool = False,
    ) -> None:
        self.os_disk_id = os_disk_id
        self.location = location
        self.zone = zone
        self.os_disk_size_gb = os_disk_size_gb
        self.os_disk_storage_account_type = os_disk_storage_account_type
        self.data_disk_storage_account_type = data_disk_storage_account_type
        self.hyperv_generation = hyperv_generation
        self.source_platform_image = source_platform_image
        self.source_os_disk_resource_id = source_os_disk_resource_id
        self.source_image_resource_id = source_image_resource_id
        self.data_disk_id_prefix = data_disk_id_prefix
        self.skip_cleanup = skip_cleanup
        self.disks = Diskset()

    def os_disk_definition(self, subscription_id: str) -> Disk:
        if self.source_platform_image is not None:
            creation_data = CreationData(
                create_option="FromImage",
                image_reference=ImageDiskReference(
                    id=self.source_platform_image.image_id(subscription_id, self.location)
                ),
            )
        elif self.source_os_disk_resource_id:
            creation_data = CreationData(create_option="Copy", source_resource_id=self.source_os_disk_resource_id)
        elif self.source_image_resource_id:
            creation_data = CreationData(
                create_option="FromImage",
                gallery_image_reference=ImageDiskReference(id=self.source_image_resource_id),
            )
        else:
            creation_data = CreationData(create_option="Empty")

        return Disk(
            location=self.location,
            zones=[self.zone] if self.zone else None,
            sku=DiskSku(name=self.os_disk_storage_account_type) if self.os_disk_storage_account_type else None,
            os_type="Linux",
            hyper_v_generation=self.hyperv_generation or None,
            disk_size_gb=self.os_disk_size_gb if self.os_disk_size_gb > 0 else None,
            creation_data=creation_data,
        )

    def data_disk_definition(self, lun: int) -> Disk:
        return Disk(
            location=self.location,
            zones=[self.zone] if self.zone else None,
            sku=DiskSku(name=self.data_disk_storage_account_type) if self.data_disk_storage_account_type else None,
            creation_data=CreationData(
                create_option="FromImage",
                gallery_image_reference=ImageDiskReference(id=self.source_image_resource_id, lun=lun),
            ),
        )

    def _fail(self, state: BuildState, message: str, error: AzchrootError | None = None) -> StepAction:
        return step_error(state, f"error creating diskset: {message}", error=error)

    def run(self, state: BuildState) -> StepAction:
        client = state.client
        self.disks = Diskset()

        try:
            os_disk = parse_resource_id(self.os_disk_id)
        except ValueError as e:
            return self._fail(state, f"error parsing resource id {self.os_disk_id!r}: {e}")
        if not os_disk.is_type("Microsoft.Compute", "disks"):
            return self._fail(state, f"Resource {self.os_disk_id!r} is not of type Microsoft.Compute/disks")

        pending: list[tuple[ResourceId, Any]] = []
        try:
            poller = client.begin_create_disk(os_disk, self.os_disk_definition(client.subscription_id))
        except AzchrootError as e:
            return self._fail(state, f"Failed to initiate resource creation: {os_disk}: {e.message}", e)
        self._record(state, OS_DISK_LUN, os_disk)
        state.say(f"Creating disk {self.os_disk_id!r}")
        pending.append((os_disk, poller))

        if self.source_image_resource_id:
            try:
                image_id = parse_resource_id(self.source_image_resource_id)
            except ValueError as e:
                return self._fail(state, f"could not parse source image id {self.source_image_resource_id!r}: {e}")
            if not image_id.is_type("Microsoft.Compute", "galleries/images/versions"):
                return self._fail(
                    state,
                    f"source image id is not a shared image version {self.source_image_resource_id!r}, "
                    "expected type 'Microsoft.Compute/galleries/images/versions'",
                )
            try:
                version = client.get_gallery_image_version(image_id.resource_group, *image_id.names)
            except AzchrootError as e:
                return self._fail(state, f"error retrieving source image {str(image_id)!r}: {e.message}", e)

            storage = version.storage_profile
            for ddi in (storage.data_disk_images if storage is not None else None) or []:
                try:
                    data_disk = parse_resource_id(f"{self.data_disk_id_prefix}{ddi.lun}")
                except ValueError as e:
                    return self._fail(state, f"unable to construct resource id for datadisk: {e}")
                try:
                    poller = client.begin_create_disk(data_disk, self.data_disk_definition(ddi.lun))
                except AzchrootError as e:
                    return self._fail(state, f"Failed to initiate resource creation: {data_disk}: {e.message}", e)
                self._record(state, ddi.lun, data_disk)
                state.say(f"Creating disk {str(data_disk)!r}")
                pending.append((data_disk, poller))

        state.say("Waiting for disks to be created.")
        for resource, poller in pending:
            try:
                client.wait(poller, f"create disk {resource}")
            except AzchrootError as e:
                return self._fail(state, f"Failed to create resource {str(resource)!r} error {e.message}", e)
            state.say(f"Disk {str(resource)!r} created")
        return StepAction.CONTINUE

    def _record(self, state: BuildState, lun: int, resource: ResourceId) -> None:
        self.disks.set(lun, resource)
        state.diskset = self.disks

    def cleanup(self, state: BuildState) -> None:
        if self.skip_cleanup:
            return
        client = state.client
        attacher = state.attacher

        for _, disk in self.disks.items():
            state.say(f"Waiting for disk {str(disk)!r} detach to complete")
            try:
                attacher.wait_for_detach(str(disk), client.polling_timeout)
            except AzchrootError as e:
                state.say(f"ERROR: error detaching disk {str(disk)!r}: {e.message}")

            state.say(f"Deleting disk {str(disk)!r}")
            try:
                client.delete_disk(disk)
            except AzchrootError as e:
                logger.error(f"Deleting disk {disk} failed: {e.message}")
                state.say(f"ERROR: error deleting disk '{disk}': {e.message}.")
