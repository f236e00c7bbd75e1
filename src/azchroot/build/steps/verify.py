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

"""Pre-flight checks on source and destination resources."""

from __future__ import annotations

import logging

from azchroot.azure.resource import normalize_location, parse_resource_id
from azchroot.build.config import SharedImageGalleryDestination
from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError

logger = logging.getLogger(__name__)


def _os_type(model: object) -> str:
    value = getattr(model, "os_type", None)
    return str(getattr(value, "value", value) or "")


class VerifySourceDiskStep(Step):
    """Check the source disk is a managed disk in this subscription and location."""

    phase = "verify"

    def __init__(self, source_disk_resource_id: str, location: str) -> None:
        self.source_disk_resource_id = source_disk_resource_id
        self.location = location

    def run(self, state: BuildState) -> StepAction:
        client = state.client
        state.say("Checking source disk location")

        try:
            resource = parse_resource_id(self.source_disk_resource_id)
        except ValueError as e:
            return step_error(state, f"Could not parse resource id {self.source_disk_resource_id!r}: {e}")

        if resource.subscription.lower() != client.subscription_id.lower():
            return step_error(
                state,
                f"Source disk resource {self.source_disk_resource_id!r} is in a different subscription "
                f"than this VM ({client.subscription_id!r}).",
            )

        if not resource.is_type("Microsoft.Compute", "disks"):
            return step_error(state, f"Resource ID {self.source_disk_resource_id!r} is not a managed disk resource")

        try:
            disk = client.get_disk(resource)
        except AzchrootError as e:
            return step_error(
                state, f"Unable to retrieve disk ({self.source_disk_resource_id!r}): {e.message}", error=e
            )

        if (disk.location or "").lower() != self.location.lower():
            return step_error(
                state,
                f"Source disk resource {self.source_disk_resource_id!r} is in a different location "
                f"({disk.location!r}) than this VM ({self.location!r}).",
            )
        return StepAction.CONTINUE


class VerifySharedImageSourceStep(Step):
    """Check the source gallery image version exists, is replicated here and is Linux."""

    phase = "verify"

    def __init__(self, shared_image_id: str, location: str) -> None:
        self.shared_image_id = shared_image_id
        self.location = location

    def run(self, state: BuildState) -> StepAction:
        client = state.client
        image_id = self.shared_image_id

        try:
            resource = parse_resource_id(image_id)
        except ValueError as e:
            return step_error(state, f"Could not parse resource id {image_id!r}: {e}")

        if not resource.is_type("Microsoft.Compute", "galleries/images/versions"):
            return step_error(
                state,
                f"Resource id {image_id!r} does not identify a shared image version, "
                "expected Microsoft.Compute/galleries/images/versions",
            )

        state.say(f"Validating that shared image version {image_id!r} exists")
        gallery, image_name, version_name = resource.names
        try:
            version = client.get_gallery_image_version(resource.resource_group, gallery, image_name, version_name)
        except AzchrootError as e:
            return step_error(state, f"Error retrieving shared image version {image_id!r}: {e.message}", error=e)

        if not version.id:
            return step_error(state, f"Error retrieving shared image version {image_id!r}: ID field in response is empty")

        profile = version.publishing_profile
        if profile is None or profile.target_regions is None:
            return step_error(state, f"Could not retrieve shared image version properties for image {image_id!r}.")

        vm_location = normalize_location(self.location)
        target_locations: list[str] = []
        found = False
        for region in profile.target_regions:
            location = normalize_location(region.name or "")
            target_locations.append(location)
            if location == vm_location:
                found = True
                break
        if not found:
            return step_error(
                state,
                f"Target locations {target_locations} for {image_id!r} does not include VM location {vm_location!r}",
            )

        parent = resource.parent()
        try:
            image = client.get_gallery_image(resource.resource_group, gallery, image_name)
        except AzchrootError as e:
            return step_error(state, f"Error retrieving shared image {str(parent)!r}: {e.message}", error=e)

        if not image.id:
            return step_error(state, f"Error retrieving shared image {str(parent)!r}: ID field in response is empty")

        logger.info(f"Shared image {image.id}, HyperVGeneration: {image.hyper_v_generation}, OS state: {image.os_state}")
        os_type = _os_type(image)
        if os_type.lower() != "linux":
            return step_error(
                state,
                f"The shared image ({image.id!r}) is not a Linux image (found {os_type!r}). "
                "Currently only Linux images are supported.",
            )

        state.say(f"Found image source image version {image_id!r}, available in location {self.location}")
        return StepAction.CONTINUE


class VerifySharedImageDestinationStep(Step):
    """Check the destination gallery image exists here, is Linux and lacks the target version."""

    phase = "verify"

    def __init__(self, destination: SharedImageGalleryDestination, location: str) -> None:
        self.destination = destination
        self.location = location

    def run(self, state: BuildState) -> StepAction:
        client = state.client
        dest = self.destination
        image_uri = (
            f"/subscriptions/{client.subscription_id}/resourceGroups/{dest.resource_group}"
            f"/providers/Microsoft.Compute/galleries/{dest.gallery_name}/images/{dest.image_name}"
        )

        state.say(f"Validating that shared image {image_uri} exists")
        try:
            image = client.get_gallery_image(dest.resource_group, dest.gallery_name, dest.image_name)
        except AzchrootError as e:
            return step_error(state, f"Error retrieving shared image {image_uri!r}: {e.message}", error=e)

        if not image.id:
            return step_error(state, f"Error retrieving shared image {image_uri!r}: ID field in response is empty")

        logger.info(
            f"Destination image {image.id}, location: {image.location}, "
            f"HyperVGeneration: {image.hyper_v_generation}, OS state: {image.os_state}"
        )

        if normalize_location(image.location or "") != normalize_location(self.location):
            return step_error(
                state,
                f"Destination shared image resource {image.id!r} is in a different location "
                f"({image.location!r}) than this VM ({self.location!r}).",
            )

        os_type = _os_type(image)
        if os_type.lower() != "linux":
            return step_error(
                state,
                f"The shared image ({image.id!r}) is not a Linux image (found {os_type!r}). "
                "Currently only Linux images are supported.",
            )

        state.say(f"Found image {image.id} in location {image.location}")

        try:
            versions = client.list_gallery_image_versions(dest.resource_group, dest.gallery_name, dest.image_name)
        except AzchrootError as e:
            return step_error(
                state,
                f"Could not list versions of image group:{dest.resource_group} gallery:{dest.gallery_name} "
                f"image:{dest.image_name}: {e.message}",
                error=e,
            )

        for version in versions:
            if not version.name:
                return step_error(state, f"Could not retrieve versions for image {image.id!r}: unexpected nil name")
            if version.name == dest.image_version:
                return step_error(
                    state, f"Shared image version {dest.image_version!r} already exists for image {image.id!r}."
                )
        return StepAction.CONTINUE
