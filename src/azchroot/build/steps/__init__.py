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

"""Build steps, in the order the pipeline runs them."""

from azchroot.build.steps.attach import AttachDiskStep
from azchroot.build.steps.capture import CreateImageStep, CreateSharedImageVersionStep, CreateSnapshotsetStep
from azchroot.build.steps.chroot import ChrootCommandsHook, ChrootProvisionStep, CopyFilesStep, MountExtraStep
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

__all__ = [
    "AttachDiskStep",
    "ChrootCommandsHook",
    "ChrootProvisionStep",
    "CopyFilesStep",
    "CreateImageStep",
    "CreateNewDisksetStep",
    "CreateSharedImageVersionStep",
    "CreateSnapshotsetStep",
    "EarlyCleanupStep",
    "GetSourceImageNameStep",
    "MountDeviceStep",
    "MountExtraStep",
    "PostMountCommandsStep",
    "PreMountCommandsStep",
    "PreUnmountCommandsStep",
    "ResolvePlatformImageVersionStep",
    "SetupLvmStep",
    "VerifySharedImageDestinationStep",
    "VerifySharedImageSourceStep",
    "VerifySourceDiskStep",
]
