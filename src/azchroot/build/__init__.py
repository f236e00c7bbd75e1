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

"""Build module for Azchroot.

Provides the step pipeline that attaches a new disk to this VM, mounts
and provisions it as a chroot, and captures it as an image.
"""

# Builder entry points
from azchroot.build.builder import BUILDER_ID, Builder

# Template decoding and validation
from azchroot.build.config import (
    BuildConfig,
    SharedImageGalleryDestination,
    SourceType,
    TargetRegion,
    load_build_config,
)

# Error handling and exit codes
from azchroot.build.errors import (
    EXIT_AZURE_ERROR,
    EXIT_CANCELLED,
    EXIT_CLEANUP_FAILED,
    EXIT_CONFIG_ERROR,
    EXIT_INTERNAL_ERROR,
    EXIT_STEP_FAILED,
    EXIT_SUCCESS,
    log_step_event,
    step_error,
    step_warning,
)

# Pipeline assembly
from azchroot.build.pipeline import build_steps

# State and step runner
from azchroot.build.state import BuildState, CleanupHandle, CleanupHandles, ProvisionHook
from azchroot.build.step import NotifyStep, Step, run_steps
from azchroot.build.types import Artifact, StepAction

__all__ = [
    "BUILDER_ID",
    # Exit codes
    "EXIT_AZURE_ERROR",
    "EXIT_CANCELLED",
    "EXIT_CLEANUP_FAILED",
    "EXIT_CONFIG_ERROR",
    "EXIT_INTERNAL_ERROR",
    "EXIT_STEP_FAILED",
    "EXIT_SUCCESS",
    # Types
    "Artifact",
    "BuildConfig",
    "BuildState",
    "Builder",
    "CleanupHandle",
    "CleanupHandles",
    "NotifyStep",
    "ProvisionHook",
    "SharedImageGalleryDestination",
    "SourceType",
    "Step",
    "StepAction",
    "TargetRegion",
    "build_steps",
    "load_build_config",
    # Error helpers
    "log_step_event",
    "run_steps",
    "step_error",
    "step_warning",
]
