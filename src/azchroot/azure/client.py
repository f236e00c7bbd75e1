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

"""Thin wrapper over the Azure compute management client.

Every remote call the build makes goes through AzureClientSet so that
SDK exceptions surface as AzureOperationError and every long-running
operation is bounded by the configured polling deadline and the build's
cancel token.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import (
    DataDisk,
    Disk,
    GalleryImage,
    GalleryImageVersion,
    Image,
    Snapshot,
    VirtualMachine,
)

from azchroot.azure.metadata import ComputeInfo, MetadataClient, MetadataSource
from azchroot.azure.polling import wait_operation
from azchroot.azure.resource import ResourceId
from azchroot.core.cancel import CancelToken
from azchroot.core.exceptions import AzureOperationError
from azchroot.spinner import activity_spinner

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLLING_TIMEOUT = 15 * 60.0


class AzureClientSet:
    """Compute, metadata and polling collaborators for a single build."""

    def __init__(
        self,
        subscription_id: str,
        *,
        credential: Any | None = None,
        compute: ComputeManagementClient | None = None,
        metadata: MetadataSource | None = None,
        cancel: CancelToken | None = None,
        polling_timeout: float = DEFAULT_POLLING_TIMEOUT,
    ) -> None:
        self.subscription_id = subscription_id
        if compute is None:
            compute = ComputeManagementClient(credential or DefaultAzureCredential(), subscription_id)
        self.compute = compute
        self.metadata = metadata or MetadataClient()
        self.cancel = cancel or CancelToken()
        self.polling_timeout = polling_timeout

    def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except AzureError as e:
            raise AzureOperationError(message=f"{operation} failed: {e}", operation=operation) from e

    def wait(self, poller: Any, operation: str) -> Any:
        with activity_spinner("azure", f"Waiting for {operation}"):
            return wait_operation(poller, self.cancel, self.polling_timeout, operation)

    # Disks

    def get_disk(self, disk_id: ResourceId) -> Disk:
        return self._call("get disk", self.compute.disks.get, disk_id.resource_group, disk_id.resource_name)

    def begin_create_disk(self, disk_id: ResourceId, disk: Disk) -> Any:
        return self._call(
            "create disk",
            self.compute.disks.begin_create_or_update,
            disk_id.resource_group,
            disk_id.resource_name,
            disk,
        )

    def delete_disk(self, disk_id: ResourceId) -> None:
        poller = self._call("delete disk", self.compute.disks.begin_delete, disk_id.resource_group, disk_id.resource_name)
        self.wait(poller, f"delete disk {disk_id}")

    # Snapshots

    def create_snapshot(self, snapshot_id: ResourceId, snapshot: Snapshot) -> Snapshot:
        poller = self._call(
            "create snapshot",
            self.compute.snapshots.begin_create_or_update,
            snapshot_id.resource_group,
            snapshot_id.resource_name,
            snapshot,
        )
        return self.wait(poller, f"create snapshot {snapshot_id}")

    def revoke_snapshot_access(self, snapshot_id: ResourceId) -> None:
        poller = self._call(
            "revoke snapshot access",
            self.compute.snapshots.begin_revoke_access,
            snapshot_id.resource_group,
            snapshot_id.resource_name,
        )
        self.wait(poller, f"revoke access to snapshot {snapshot_id}")

    def delete_snapshot(self, snapshot_id: ResourceId) -> None:
        poller = self._call(
            "delete snapshot",
            self.compute.snapshots.begin_delete,
            snapshot_id.resource_group,
            snapshot_id.resource_name,
        )
        self.wait(poller, f"delete snapshot {snapshot_id}")

    # Images and galleries

    def create_image(self, image_id: ResourceId, image: Image) -> Image:
        poller = self._call(
            "create image",
            self.compute.images.begin_create_or_update,
            image_id.resource_group,
            image_id.resource_name,
            image,
        )
        return self.wait(poller, f"create image {image_id}")

    def get_gallery_image(self, resource_group: str, gallery: str, image: str) -> GalleryImage:
        return self._call("get gallery image", self.compute.gallery_images.get, resource_group, gallery, image)

    def get_gallery_image_version(self, resource_group: str, gallery: str, image: str, version: str) -> GalleryImageVersion:
        return self._call(
            "get gallery image version",
            self.compute.gallery_image_versions.get,
            resource_group,
            gallery,
            image,
            version,
        )

    def list_gallery_image_versions(self, resource_group: str, gallery: str, image: str) -> list[GalleryImageVersion]:
        return self._call(
            "list gallery image versions",
            lambda: list(self.compute.gallery_image_versions.list_by_gallery_image(resource_group, gallery, image)),
        )

    def create_gallery_image_version(
        self,
        resource_group: str,
        gallery: str,
        image: str,
        version: str,
        image_version: GalleryImageVersion,
    ) -> GalleryImageVersion:
        poller = self._call(
            "create gallery image version",
            self.compute.gallery_image_versions.begin_create_or_update,
            resource_group,
            gallery,
            image,
            version,
            image_version,
        )
        return self.wait(poller, f"create gallery image version {gallery}/{image}/{version}")

    def list_platform_image_versions(self, location: str, publisher: str, offer: str, sku: str) -> list[str]:
        """Return platform image version names, newest first."""
        images = self._call(
            "list platform image versions",
            self.compute.virtual_machine_images.list,
            location,
            publisher,
            offer,
            sku,
            orderby="name desc",
        )
        return [i.name for i in images or []]

    # Virtual machines

    def get_vm(self, info: ComputeInfo) -> VirtualMachine:
        """Return the model of the VM the build runs on.

        A failure of the plain VM form is retried as a scale-set instance
        when the VM belongs to a scale set.
        """
        try:
            return self._call("get VM", self.compute.virtual_machines.get, info.resource_group_name, info.name)
        except AzureOperationError as e:
            if not info.is_scale_set_instance:
                raise
            # TODO: only fall back on a not-found response once scale-set
            # membership can be told apart from transient failures.
            logger.warning(f"Get VM {info.name} failed ({e.message}), retrying as scale-set instance")
            return self._call(
                "get scale set VM",
                self.compute.virtual_machine_scale_set_vms.get,
                info.resource_group_name,
                info.vm_scale_set_name,
                _instance_id(info),
            )

    def set_vm_data_disks(self, info: ComputeInfo, data_disks: list[DataDisk]) -> None:
        """Replace the data disk list of this VM and wait for the update."""
        vm = self.get_vm(info)
        vm.storage_profile.data_disks = data_disks
        vm.resources = None
        try:
            poller = self._call(
                "update VM",
                self.compute.virtual_machines.begin_create_or_update,
                info.resource_group_name,
                info.name,
                vm,
            )
            self.wait(poller, f"update VM {info.name}")
        except AzureOperationError as e:
            if not info.is_scale_set_instance:
                raise
            logger.warning(f"Update VM {info.name} failed ({e.message}), retrying as scale-set instance")
            poller = self._call(
                "update scale set VM",
                self.compute.virtual_machine_scale_set_vms.begin_update,
                info.resource_group_name,
                info.vm_scale_set_name,
                _instance_id(info),
                vm,
            )
            self.wait(poller, f"update scale set VM {info.name}")


def _instance_id(info: ComputeInfo) -> str:
    """Scale-set instance names look like ``<scaleset>_<instance id>``."""
    return info.name.rsplit("_", 1)[-1]
