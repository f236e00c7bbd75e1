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

"""Tests for azchroot.build.steps.source module."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from azchroot.azure.resource import PlatformImage
from azchroot.build.state import BuildState
from azchroot.build.steps.source import (
    SOURCE_IMAGE_NAME_NOT_FOUND,
    GetSourceImageNameStep,
    ResolvePlatformImageVersionStep,
)
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzureOperationError

PREFIX = "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.Compute"
SOURCE_DISK = f"{PREFIX}/disks/srcdisk"
SIG_VERSION = f"{PREFIX}/galleries/gal/images/img/versions/1.0.0"


@pytest.fixture
def state(make_state: Callable[..., BuildState]) -> BuildState:
    return make_state()


class TestResolvePlatformImageVersionStep:
    """Tests for ResolvePlatformImageVersionStep."""

    def test_pinned_version(self, state: BuildState, fake_client: MagicMock) -> None:
        image = PlatformImage("Canonical", "UbuntuServer", "18.04-LTS", "18.04.202401010")
        messages: list[str] = []
        state.say = messages.append  # type: ignore[method-assign]

        assert ResolvePlatformImageVersionStep(image, "westus2").run(state) is StepAction.CONTINUE
        assert messages == ["Nothing to do, version is not 'latest'"]
        fake_client.list_platform_image_versions.assert_not_called()

    def test_resolves_latest(self, state: BuildState, fake_client: MagicMock) -> None:
        image = PlatformImage("Canonical", "UbuntuServer", "18.04-LTS", "latest")
        fake_client.list_platform_image_versions.return_value = ["18.04.202402010", "18.04.202401010"]

        assert ResolvePlatformImageVersionStep(image, "westus2").run(state) is StepAction.CONTINUE
        fake_client.list_platform_image_versions.assert_called_once_with(
            "westus2", "Canonical", "UbuntuServer", "18.04-LTS"
        )
        assert image.version == "18.04.202402010"

    def test_latest_is_case_insensitive(self, state: BuildState, fake_client: MagicMock) -> None:
        image = PlatformImage("Canonical", "UbuntuServer", "18.04-LTS", "Latest")
        fake_client.list_platform_image_versions.return_value = ["1.0.0"]
        ResolvePlatformImageVersionStep(image, "westus2").run(state)
        assert image.version == "1.0.0"

    def test_no_versions(self, state: BuildState, fake_client: MagicMock) -> None:
        image = PlatformImage("Canonical", "UbuntuServer", "18.04-LTS", "latest")
        fake_client.list_platform_image_versions.return_value = []

        assert ResolvePlatformImageVersionStep(image, "westus2").run(state) is StepAction.HALT
        assert state.error.message == "Canonical:UbuntuServer:18.04-LTS:latest could not be found in location westus2"

    def test_lookup_failure(self, state: BuildState, fake_client: MagicMock) -> None:
        image = PlatformImage("Canonical", "UbuntuServer", "18.04-LTS", "latest")
        fake_client.list_platform_image_versions.side_effect = AzureOperationError(message="forbidden")

        assert ResolvePlatformImageVersionStep(image, "westus2").run(state) is StepAction.HALT
        assert image.version == "latest"


class TestGetSourceImageNameStep:
    """Tests for GetSourceImageNameStep."""

    def test_disk_source(self, state: BuildState) -> None:
        step = GetSourceImageNameStep("westus2", source_os_disk_resource_id=SOURCE_DISK)
        assert step.run(state) is StepAction.CONTINUE
        assert state.generated_data["SourceImageName"] == SOURCE_DISK

    def test_platform_source(self, state: BuildState) -> None:
        image = PlatformImage("Canonical", "UbuntuServer", "18.04-LTS", "18.04.202401010")
        GetSourceImageNameStep("westus2", source_platform_image=image).run(state)
        assert state.generated_data["SourceImageName"] == (
            "/subscriptions/sub1/providers/Microsoft.Compute/locations/westus2/publishers/Canonical"
            "/ArtifactTypes/vmimage/offers/UbuntuServer/skus/18.04-LTS/versions/18.04.202401010"
        )

    def test_gallery_source(self, state: BuildState, fake_client: MagicMock) -> None:
        version = MagicMock()
        version.storage_profile.source.id = f"{PREFIX}/images/base"
        fake_client.get_gallery_image_version.return_value = version

        GetSourceImageNameStep("westus2", source_image_resource_id=SIG_VERSION).run(state)
        assert state.generated_data["SourceImageName"] == f"{PREFIX}/images/base"

    def test_gallery_source_without_source(self, state: BuildState, fake_client: MagicMock) -> None:
        version = MagicMock()
        version.storage_profile.source = None
        fake_client.get_gallery_image_version.return_value = version

        assert GetSourceImageNameStep("westus2", source_image_resource_id=SIG_VERSION).run(state) is StepAction.CONTINUE
        assert state.generated_data["SourceImageName"] == SOURCE_IMAGE_NAME_NOT_FOUND

    def test_gallery_lookup_failure_is_not_fatal(self, state: BuildState, fake_client: MagicMock) -> None:
        fake_client.get_gallery_image_version.side_effect = AzureOperationError(message="not found")

        assert GetSourceImageNameStep("westus2", source_image_resource_id=SIG_VERSION).run(state) is StepAction.CONTINUE
        assert state.generated_data["SourceImageName"] == SOURCE_IMAGE_NAME_NOT_FOUND

    def test_gallery_id_of_wrong_type(self, state: BuildState, fake_client: MagicMock) -> None:
        GetSourceImageNameStep("westus2", source_image_resource_id=SOURCE_DISK).run(state)
        assert state.generated_data["SourceImageName"] == SOURCE_IMAGE_NAME_NOT_FOUND
        fake_client.get_gallery_image_version.assert_not_called()

    def test_no_source(self, state: BuildState) -> None:
        assert GetSourceImageNameStep("westus2").run(state) is StepAction.HALT
