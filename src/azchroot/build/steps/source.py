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

"""Resolve the build source and record its name for the artifact."""

from __future__ import annotations

import logging

from azchroot.azure.resource import PlatformImage, parse_resource_id
from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError

logger = logging.getLogger(__name__)

SOURCE_IMAGE_NAME_NOT_FOUND = "ERR_SOURCE_IMAGE_NAME_NOT_FOUND"


class ResolvePlatformImageVersionStep(Step):
    """Replace a ``latest`` platform image version with the newest published one.

    The PlatformImage is shared with the steps that run later, so they see
    the resolved version.
    """

    phase = "source"

    def __init__(self, image: PlatformImage, location: str) -> None:
        self.image = image
        self.location = location

    def run(self, state: BuildState) -> StepAction:
        if self.image.version.lower() != "latest":
            state.say("Nothing to do, version is not 'latest'")
            return StepAction.CONTINUE

        image = self.image
        try:
            versions = state.client.list_platform_image_versions(self.location, image.publisher, image.offer, image.sku)
        except AzchrootError as e:
            return step_error(state, f"error retrieving latest version of {image.urn()!r}: {e.message}", error=e)

        if not versions:
            return step_error(
                state, f"{image.publisher}:{image.offer}:{image.sku}:latest could not be found in location {self.location}"
            )

        image.version = versions[0]
        state.say(f"Resolved latest version of source image: {image.version}")
        return StepAction.CONTINUE


class GetSourceImageNameStep(Step):
    """Record the id of the image the build starts from as ``SourceImageName``.

    Failing to determine the name of a gallery image source is not fatal;
    the placeholder ERR_SOURCE_IMAGE_NAME_NOT_FOUND is recorded instead.
    """

    phase = "source"

    def __init__(
        self,
        location: str,
        *,
        source_os_disk_resource_id: str = "",
        source_image_resource_id: str = "",
        source_platform_image: PlatformImage | None = None,
    ) -> None:
        self.location = location
        self.source_os_disk_resource_id = source_os_disk_resource_id
        self.source_image_resource_id = source_image_resource_id
        self.source_platform_image = source_platform_image

    def _put(self, state: BuildState, name: str) -> StepAction:
        if name != SOURCE_IMAGE_NAME_NOT_FOUND:
            state.say(f" -> SourceImageName: '{name}'")
        state.generated_data["SourceImageName"] = name
        return StepAction.CONTINUE

    def run(self, state: BuildState) -> StepAction:
        state.say("Getting source image id for the deployment ...")

        if self.source_os_disk_resource_id:
            return self._put(state, self.source_os_disk_resource_id)

        if self.source_image_resource_id:
            return self._put(state, self._gallery_source_name(state))

        if self.source_platform_image is None:
            return step_error(state, "no source to derive the source image name from")

        image = self.source_platform_image
        image_id = (
            f"/subscriptions/{state.client.subscription_id}/providers/Microsoft.Compute/locations/{self.location}"
            f"/publishers/{image.publisher}/ArtifactTypes/vmimage/offers/{image.offer}"
            f"/skus/{image.sku}/versions/{image.version}"
        )
        return self._put(state, image_id)

    def _gallery_source_name(self, state: BuildState) -> str:
        try:
            image_id = parse_resource_id(self.source_image_resource_id)
        except ValueError as e:
            logger.debug(f"Could not parse source image id {self.source_image_resource_id!r}: {e}")
            return SOURCE_IMAGE_NAME_NOT_FOUND
        if not image_id.is_type("Microsoft.Compute", "galleries/images/versions"):
            logger.debug(f"Source image id {self.source_image_resource_id!r} is not a gallery image version")
            return SOURCE_IMAGE_NAME_NOT_FOUND

        try:
            version = state.client.get_gallery_image_version(image_id.resource_group, *image_id.names)
        except AzchrootError as e:
            logger.debug(f"Error retrieving shared source image {self.source_image_resource_id!r}: {e.message}")
            return SOURCE_IMAGE_NAME_NOT_FOUND

        storage = version.storage_profile
        source = storage.source if storage is not None else None
        if source is not None and getattr(source, "id", None):
            return source.id

        logger.debug("Unable to identify the source image for provided gallery image version")
        return SOURCE_IMAGE_NAME_NOT_FOUND
