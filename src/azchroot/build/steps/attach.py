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

"""Attach the new OS disk to this VM and wait for its block device."""

from __future__ import annotations

import logging

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError

logger = logging.getLogger(__name__)


class AttachDiskStep(Step):
    """Attach the OS disk of the diskset and publish its device path."""

    phase = "attach"

    def __init__(self) -> None:
        self.attached = False
        self.disk_id = ""

    def run(self, state: BuildState) -> StepAction:
        os_disk = state.diskset.os()
        if os_disk is None:
            return step_error(state, "diskset has no OS disk to attach")
        self.disk_id = str(os_disk)
        attacher = state.attacher

        state.say(f"Attaching disk '{self.disk_id}'")
        try:
            lun = attacher.attach_disk(self.disk_id)
        except AzchrootError as e:
            return step_error(state, f"error attaching disk {self.disk_id!r}: {e.message}", error=e)
        self.attached = True
        state.cleanup.attach = self

        state.say("Disk attached, waiting for device to show up")
        try:
            device = attacher.wait_for_device(lun, state.device_wait_timeout)
        except AzchrootError as e:
            return step_error(state, f"error waiting for attached disk at LUN {lun}: {e.message}", error=e)

        state.say(f"Disk available at {device!r}")
        state.device = device
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        try:
            self.cleanup_func(state)
        except AzchrootError as e:
            state.say(f"ERROR: {e.message}")

    def cleanup_func(self, state: BuildState) -> None:
        """Detach the disk and wait until the VM model no longer lists it."""
        if not self.attached:
            return
        attacher = state.attacher

        state.say(f"Detaching disk '{self.disk_id}'")
        try:
            attacher.detach_disk(self.disk_id)
        except AzchrootError as e:
            e.message = f"error detaching {self.disk_id!r}: {e.message}"
            raise

        state.say("Waiting for disk to be detached")
        attacher.wait_for_detach(self.disk_id, state.client.polling_timeout)
        state.say("Detached disk")
        self.attached = False
