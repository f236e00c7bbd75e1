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

"""Capture the provisioned disks as a managed image or a gallery image version."""

from __future__ import annotations

import logging
from collections.abc import Callable

from azure.mgmt.compute.models import (
    CreationData,
    GalleryDataDiskImage,
    GalleryDiskImageSource,
    GalleryImageVersion,
    GalleryImageVersionPublishingProfile,
    GalleryImageVersionStorageProfile,
    GalleryOSDiskImage,
    Image,
    ImageDataDisk,
    ImageOSDisk,
    ImageStorageProfile,
    Snapshot,
    SubResource,
    TargetRegion,
)

from azchroot.azure.resource import OS_DISK_LUN, Diskset, parse_resource_id
from azchroot.build.config import SharedImageGalleryDestination
from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError

logger = logging.getLogger(__name__)

IMAGE_OS_STATE = "Generalized"


class CreateSnapshotsetStep(Step):
    """Snapshot every disk of the diskset, keyed by the same LUNs."""

    phase = "capture"

    def __init__(
        self,
        os_disk_snapshot_id: str,
        data_disk_snapshot_id_prefix: str,
        location: str,
        skip_cleanup: bool = False,
    ) -> None:
        self.os_disk_snapshot_id = os_disk_snapshot_id
        self.data_disk_snapshot_id_prefix = data_disk_snapshot_id_prefix
        self.location = location
        self.skip_cleanup = skip_cleanup
        self.snapshots = Diskset()

    def run(self, state: BuildState) -> StepAction:
        client = state.client
        self.snapshots = Diskset()

        for lun, disk in state.diskset.items():
            snapshot_id = self.os_disk_snapshot_id if lun == OS_DISK_LUN else f"{self.data_disk_snapshot_id_prefix}{lun}"
            try:
                snapshot = parse_resource_id(snapshot_id)
            except ValueError as e:
                return step_error(state, f"Could not create a valid resource id, tried {snapshot_id!r}: {e}")
            if not snapshot.is_type("Microsoft.Compute", "snapshots"):
                return step_error(state, f"Resource {snapshot_id!r} is not of type Microsoft.Compute/snapshots")

            self.snapshots.set(lun, snapshot)
            state.snapshotset = self.snapshots

            state.say(f"Creating snapshot {snapshot_id!r}")
            model = Snapshot(
                location=self.location,
                creation_data=CreationData(create_option="Copy", source_resource_id=str(disk)),
                incremental=False,
            )
            try:
                client.create_snapshot(snapshot, model)
            except AzchrootError as e:
                return step_error(state, f"error initiating snapshot {snapshot_id!r}: {e.message}", error=e)
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        if self.skip_cleanup:
            return
        client = state.client

        for _, snapshot in self.snapshots.items():
            state.say(f"Removing any active SAS for snapshot {str(snapshot)!r}")
            try:
                client.revoke_snapshot_access(snapshot)
            except AzchrootError as e:
                state.say(f"ERROR: error revoking access to snapshot {str(snapshot)!r}: {e.message}.")

            state.say(f"Deleting snapshot {str(snapshot)!r}")
            try:
                client.delete_snapshot(snapshot)
            except AzchrootError as e:
                state.say(f"ERROR: error deleting snapshot {str(snapshot)!r}: {e.message}.")


class CreateImageStep(Step):
    """Create a managed image from the diskset."""

    phase = "capture"

    def __init__(
        self,
        image_resource_id: str,
        location: str,
        *,
        os_disk_storage_account_type: str = "",
        os_disk_cache_type: str = "",
        data_disk_storage_account_type: str = "",
        data_disk_cache_type: str = "",
    ) -> None:
        self.image_resource_id = image_resource_id
        self.location = location
        self.os_disk_storage_account_type = os_disk_storage_account_type
        self.os_disk_cache_type = os_disk_cache_type
        self.data_disk_storage_account_type = data_disk_storage_account_type
        self.data_disk_cache_type = data_disk_cache_type

    def image_definition(self, diskset: Diskset, say: Callable[[str], None] | None = None) -> Image:
        os_disk = diskset.os()
        data_disks = []
        for lun in diskset.data_luns():
            disk = diskset.data(lun)
            if say is not None:
                say(f"   using {str(disk)!r} for data disk (lun {lun}).")
            data_disks.append(
                ImageDataDisk(
                    lun=lun,
                    managed_disk=SubResource(id=str(disk)),
                    storage_account_type=self.data_disk_storage_account_type or None,
                    caching=self.data_disk_cache_type or None,
                )
            )

        return Image(
            location=self.location,
            storage_profile=ImageStorageProfile(
                os_disk=ImageOSDisk(
                    os_type="Linux",
                    os_state=IMAGE_OS_STATE,
                    managed_disk=SubResource(id=str(os_disk)),
                    storage_account_type=self.os_disk_storage_account_type or None,
                    caching=self.os_disk_cache_type or None,
                ),
                data_disks=data_disks or None,
            ),
        )

    def run(self, state: BuildState) -> StepAction:
        diskset = state.diskset
        state.say(f"Creating image {self.image_resource_id}\n   using {diskset.os()} for os disk.")

        try:
            image_id = parse_resource_id(self.image_resource_id)
        except ValueError as e:
            return step_error(state, f"error parsing image resource id '{self.image_resource_id}': {e}")

        image = self.image_definition(diskset, state.say)
        try:
            state.client.create_image(image_id, image)
        except AzchrootError as e:
            return step_error(state, f"error creating image '{self.image_resource_id}': {e.message}", error=e)
        logger.info("Image creation complete")
        return StepAction.CONTINUE


class CreateSharedImageVersionStep(Step):
    """Publish the snapshotset as a shared image gallery version."""

    phase = "capture"

    def __init__(
        self,
        destination: SharedImageGalleryDestination,
        location: str,
        *,
        os_disk_cache_type: str = "",
        data_disk_cache_type: str = "",
    ) -> None:
        self.destination = destination
        self.location = location
        self.os_disk_cache_type = os_disk_cache_type
        self.data_disk_cache_type = data_disk_cache_type

    def image_version_definition(self, snapshotset: Diskset, say: Callable[[str], None] | None = None) -> GalleryImageVersion:
        target_regions = [
            TargetRegion(
                name=region.name,
                regional_replica_count=region.replicas,
                storage_account_type=region.storage_account_type,
            )
            for region in self.destination.target_regions
        ]

        data_disk_images = []
        for lun in snapshotset.data_luns():
            snapshot = snapshotset.data(lun)
            if say is not None:
                say(f"   using {str(snapshot)!r} for data disk (lun {lun}).")
            data_disk_images.append(
                GalleryDataDiskImage(
                    lun=lun,
                    source=GalleryDiskImageSource(id=str(snapshot)),
                    host_caching=self.data_disk_cache_type or None,
                )
            )

        return GalleryImageVersion(
            location=self.location,
            publishing_profile=GalleryImageVersionPublishingProfile(
                target_regions=target_regions or None,
                exclude_from_latest=self.destination.exclude_from_latest,
            ),
            storage_profile=GalleryImageVersionStorageProfile(
                os_disk_image=GalleryOSDiskImage(
                    source=GalleryDiskImageSource(id=str(snapshotset.os())),
                    host_caching=self.os_disk_cache_type or None,
                ),
                data_disk_images=data_disk_images or None,
            ),
        )

    def run(self, state: BuildState) -> StepAction:
        client = state.client
        snapshotset = state.snapshotset
        dest = self.destination
        resource_id = dest.resource_id(client.subscription_id)

        state.say(f"Creating image version {resource_id}\n   using {str(snapshotset.os())!r} for os disk.")
        image_version = self.image_version_definition(snapshotset, state.say)
        try:
            client.create_gallery_image_version(
                dest.resource_group,
                dest.gallery_name,
                dest.image_name,
                dest.image_version,
                image_version,
            )
        except AzchrootError as e:
            return step_error(state, f"error creating shared image version '{resource_id}': {e.message}", error=e)
        logger.info("Image version creation complete")
        return StepAction.CONTINUE
