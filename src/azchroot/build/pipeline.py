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

"""Assemble the ordered step list for a prepared build configuration."""

from __future__ import annotations

from azchroot.azure.metadata import ComputeInfo
from azchroot.azure.resource import parse_platform_image_urn
from azchroot.build.config import BuildConfig, SourceType
from azchroot.build.step import NotifyStep, Step
from azchroot.build.steps.attach import AttachDiskStep
from azchroot.build.steps.capture import CreateImageStep, CreateSharedImageVersionStep, CreateSnapshotsetStep
from azchroot.build.steps.chroot import ChrootProvisionStep, CopyFilesStep, MountExtraStep
from azchroot.build.steps.commands import PostMountCommandsStep, PreMountCommandsStep, PreUnmountCommandsStep
from azchroot.build.steps.diskset import CreateNewDisksetStep
from azchroot.build.steps.early_cleanup import EarlyCleanupStep
from azchroot.build.steps.mount import MountDeviceStep
from azchroot.build.steps.setup_lvm import SetupLvmStep
from azchroot.build.steps.source import GetSourceImageNameStep, ResolvePlatformImageVersionStep
from azchroot.build.steps.verify import (
    VerifySharedImageDestinationStep,
    VerifySharedImageSourceStep,
    VerifySourceDiskStep,
)
from azchroot.core.exceptions import InternalError

SKIP_CREATE_IMAGE_MESSAGE = "Skipping image creation..."


def _new_diskset(config: BuildConfig, info: ComputeInfo, **source: object) -> CreateNewDisksetStep:
    return CreateNewDisksetStep(
        config.temporary_os_disk_id,
        info.location,
        zone=info.zone,
        os_disk_size_gb=config.os_disk_size_gb,
        os_disk_storage_account_type=config.os_disk_storage_account_type,
        hyperv_generation=config.image_hyperv_generation,
        skip_cleanup=config.skip_cleanup,
        **source,
    )


def source_steps(config: BuildConfig, info: ComputeInfo) -> list[Step]:
    """Steps that verify the source and create the diskset from it."""
    source_type = config.source_type
    if config.from_scratch:
        source_type = SourceType.FROM_SCRATCH

    if source_type is SourceType.FROM_SCRATCH:
        return [_new_diskset(config, info)]

    if source_type is SourceType.PLATFORM_IMAGE:
        image = parse_platform_image_urn(config.source)
        steps: list[Step] = []
        if image.version.lower() == "latest":
            steps.append(ResolvePlatformImageVersionStep(image, info.location))
        steps.append(GetSourceImageNameStep(info.location, source_platform_image=image))
        steps.append(_new_diskset(config, info, source_platform_image=image))
        return steps

    if source_type is SourceType.DISK:
        return [
            VerifySourceDiskStep(config.source, info.location),
            GetSourceImageNameStep(info.location, source_os_disk_resource_id=config.source),
            _new_diskset(config, info, source_os_disk_resource_id=config.source),
        ]

    if source_type is SourceType.SHARED_IMAGE:
        return [
            VerifySharedImageSourceStep(config.source, info.location),
            GetSourceImageNameStep(info.location, source_image_resource_id=config.source),
            _new_diskset(
                config,
                info,
                source_image_resource_id=config.source,
                data_disk_storage_account_type=config.data_disk_storage_account_type,
                data_disk_id_prefix=config.temporary_data_disk_id_prefix,
            ),
        ]

    raise InternalError(message=f"Unknown source type: {source_type!r} (source {config.source!r})")


def capture_steps(config: BuildConfig, info: ComputeInfo) -> list[Step]:
    """Steps that turn the provisioned diskset into the build output."""
    if config.skip_create_image:
        return [NotifyStep(SKIP_CREATE_IMAGE_MESSAGE)]

    steps: list[Step] = []
    if config.image_resource_id:
        steps.append(
            CreateImageStep(
                config.image_resource_id,
                info.location,
                os_disk_storage_account_type=config.os_disk_storage_account_type,
                os_disk_cache_type=config.os_disk_cache_type,
                data_disk_storage_account_type=config.data_disk_storage_account_type,
                data_disk_cache_type=config.data_disk_cache_type,
            )
        )
    if config.shared_image_destination.is_valid():
        steps.append(
            CreateSnapshotsetStep(
                config.temporary_os_disk_snapshot_id,
                config.temporary_data_disk_snapshot_id,
                info.location,
                skip_cleanup=config.skip_cleanup,
            )
        )
        steps.append(
            CreateSharedImageVersionStep(
                config.shared_image_destination,
                info.location,
                os_disk_cache_type=config.os_disk_cache_type,
                data_disk_cache_type=config.data_disk_cache_type,
            )
        )
    return steps


def build_steps(config: BuildConfig, info: ComputeInfo) -> list[Step]:
    """Return the full ordered step list for a build.

    Raises:
        InternalError: If the source type of the configuration is unknown.
    """
    steps: list[Step] = []
    if config.shared_image_destination.is_valid():
        steps.append(VerifySharedImageDestinationStep(config.shared_image_destination, info.location))

    steps.extend(source_steps(config, info))

    steps.extend(
        [
            AttachDiskStep(),
            SetupLvmStep(config.lvm_root_device),
            PreMountCommandsStep(config.pre_mount_commands),
            MountDeviceStep(
                config.mount_path,
                mount_partition=config.mount_partition,
                mount_options=config.mount_options,
                manual_mount_command=config.manual_mount_command,
            ),
            PostMountCommandsStep(config.post_mount_commands),
            MountExtraStep(config.chroot_mounts),
            CopyFilesStep(config.copy_files or []),
            ChrootProvisionStep(),
            PreUnmountCommandsStep(config.pre_unmount_commands),
            EarlyCleanupStep(),
        ]
    )

    steps.extend(capture_steps(config, info))
    return steps
