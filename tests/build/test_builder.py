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

"""Tests for azchroot.build.builder module."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from azchroot.azure.metadata import ComputeInfo, StaticMetadata
from azchroot.build.builder import BUILDER_ID, Builder
from azchroot.build.config import BuildConfig
from azchroot.core.exceptions import AzureOperationError, BuildCancelledError, ConfigError

PREFIX = "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.Compute"
SOURCE_DISK = f"{PREFIX}/disks/srcdisk"
IMAGE_ID = f"{PREFIX}/images/myimage"


@pytest.fixture(autouse=True)
def fake_host(monkeypatch: pytest.MonkeyPatch, fake_shell) -> None:
    monkeypatch.setattr("azchroot.build.steps.mount.shell_command", fake_shell)
    monkeypatch.setattr("azchroot.build.steps.chroot.shell_command", fake_shell)
    monkeypatch.setattr("azchroot.shell.shell_command", fake_shell)
    monkeypatch.setattr("azchroot.lvm.discovery.SCAN_BACKOFF", 0)
    monkeypatch.setattr(sys, "platform", "linux")


@pytest.fixture
def lvm_tools() -> MagicMock:
    tools = MagicMock()
    tools.list_physical_volumes.return_value = []
    return tools


@pytest.fixture
def template(tmp_path: Path) -> dict[str, Any]:
    return {
        "source": SOURCE_DISK,
        "image_resource_id": IMAGE_ID,
        "mount_path": f"{tmp_path}/{{{{.Device}}}}",
    }


@pytest.fixture
def make_builder(
    compute_info: ComputeInfo, fake_client: MagicMock, fake_attacher: MagicMock, lvm_tools: MagicMock
):
    disk = MagicMock()
    disk.location = "westus2"
    fake_client.get_disk.return_value = disk
    fake_attacher.attach_disk.return_value = 0
    fake_attacher.wait_for_device.return_value = "/dev/sdc"

    def factory(data: dict[str, Any], **kwargs: Any) -> Builder:
        kwargs.setdefault("metadata", StaticMetadata(compute_info))
        return Builder(
            BuildConfig.from_dict(data),
            client=fake_client,
            attacher=fake_attacher,
            lvm_tools=lvm_tools,
            **kwargs,
        )

    return factory


class TestPrepare:
    """Tests for Builder.prepare and compute_info."""

    def test_metadata_failure_is_explained(self, make_builder, template: dict[str, Any]) -> None:
        metadata = MagicMock()
        metadata.get_compute_info.side_effect = AzureOperationError(message="timeout", operation="metadata")
        builder = make_builder(template, metadata=metadata)

        with pytest.raises(AzureOperationError) as excinfo:
            builder.prepare()
        assert excinfo.value.message.startswith("Error retrieving information ARM resource ID and location")
        assert excinfo.value.operation == "metadata"

    def test_warnings(self, make_builder, template: dict[str, Any]) -> None:
        template["shared_image_destination"] = {
            "resource_group": "rg1",
            "gallery_name": "gal",
            "image_name": "img",
            "image_version": "1.0.0",
        }
        warnings = make_builder(template).prepare()
        assert len(warnings) == 1
        assert "target_regions is empty" in warnings[0]

    def test_invalid_template(self, make_builder) -> None:
        with pytest.raises(ConfigError):
            make_builder({"source": "nope"}).prepare()


class TestRun:
    """Tests for Builder.run against fake Azure and host collaborators."""

    def test_managed_image_build(
        self,
        make_builder,
        template: dict[str, Any],
        fake_client: MagicMock,
        fake_attacher: MagicMock,
        fake_shell,
        tmp_path: Path,
    ) -> None:
        artifact = make_builder(template).run()

        assert artifact.builder_id == BUILDER_ID
        assert artifact.resources == [IMAGE_ID]
        assert artifact.generated_data == {"SourceImageName": SOURCE_DISK}
        fake_client.create_image.assert_called_once()
        fake_attacher.detach_disk.assert_called_once()
        fake_client.delete_disk.assert_called_once()

        mount_path = f"{tmp_path}/sdc"
        assert f"mount  /dev/sdc1 {mount_path}" in fake_shell.commands
        assert fake_shell.commands.count(f"umount -R {mount_path}") == 1
        assert fake_shell.commands.index(f"umount -R {mount_path}") > fake_shell.commands.index(
            f"umount {mount_path}/proc"
        )

    def test_provision_commands_run_in_chroot(
        self, make_builder, template: dict[str, Any], fake_shell, tmp_path: Path
    ) -> None:
        template["provision_commands"] = ["yum -y update"]
        make_builder(template).run()
        assert f"chroot {tmp_path}/sdc /bin/sh -c 'yum -y update'" in fake_shell.commands

    def test_shared_image_build_with_skip_cleanup(
        self, make_builder, template: dict[str, Any], fake_client: MagicMock, compute_info: ComputeInfo
    ) -> None:
        image = MagicMock()
        image.id = f"{PREFIX}/galleries/gal/images/img"
        image.location = "westus2"
        image.os_type = "Linux"
        fake_client.get_gallery_image.return_value = image
        fake_client.list_gallery_image_versions.return_value = []
        template.update(
            {
                "skip_cleanup": True,
                "temporary_os_disk_id": f"{PREFIX}/disks/tmp-os",
                "temporary_os_disk_snapshot_id": f"{PREFIX}/snapshots/tmp-os-snap",
                "shared_image_destination": {
                    "resource_group": "rg1",
                    "gallery_name": "gal",
                    "image_name": "img",
                    "image_version": "1.0.0",
                    "target_regions": [{"name": "westus2"}],
                },
            }
        )

        artifact = make_builder(template).run()

        assert artifact.resources == [
            IMAGE_ID,
            f"{PREFIX}/galleries/gal/images/img/versions/1.0.0",
            f"{PREFIX}/disks/tmp-os",
            f"{PREFIX}/snapshots/tmp-os-snap",
        ]
        fake_client.create_gallery_image_version.assert_called_once()
        fake_client.delete_disk.assert_not_called()
        fake_client.delete_snapshot.assert_not_called()

    def test_failing_step_raises_its_error(
        self, make_builder, template: dict[str, Any], fake_client: MagicMock
    ) -> None:
        fake_client.get_disk.side_effect = AzureOperationError(message="not found")

        with pytest.raises(AzureOperationError) as excinfo:
            make_builder(template).run()
        assert excinfo.value.message.startswith("Unable to retrieve disk")
        fake_client.begin_create_disk.assert_not_called()

    def test_cancelled_before_start(self, make_builder, template: dict[str, Any], fake_client: MagicMock) -> None:
        builder = make_builder(template)
        builder.prepare()
        builder.cancel("interrupted")

        with pytest.raises(BuildCancelledError):
            builder.run()
        fake_client.get_disk.assert_not_called()
        assert not builder.cancel_token.cancelled

    def test_unsupported_platform(
        self, make_builder, template: dict[str, Any], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(sys, "platform", "win32")
        with pytest.raises(ConfigError):
            make_builder(template).run()
