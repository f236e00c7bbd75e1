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

"""Activate LVM volume groups on the attached disk and pick the root volume.

Only the volume groups found on the attached disk are ever touched, so
volume groups of the build VM itself are left alone, even when they carry
the same names.
"""

from __future__ import annotations

import logging

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError, LvmError
from azchroot.lvm.discovery import activate_volume_groups, detect_volume_groups, find_root_lv, verify_device
from azchroot.lvm.naming import vg_from_device_path

logger = logging.getLogger(__name__)


class SetupLvmStep(Step):
    """Detect, activate and select the root logical volume when the disk uses LVM."""

    phase = "lvm"

    def __init__(self, lvm_root_device: str = "") -> None:
        self.lvm_root_device = lvm_root_device
        self.volume_groups: list[str] = []
        self.activated = False

    def run(self, state: BuildState) -> StepAction:
        if self.lvm_root_device:
            return self._run_override(state)
        return self._run_auto(state)

    def _run_override(self, state: BuildState) -> StepAction:
        tools = state.lvm_tools
        device = state.device
        state.say(f"LVM: using user-specified root device: {self.lvm_root_device}")

        self.volume_groups = detect_volume_groups(tools, device, state.cancel.sleep)
        if not self.volume_groups:
            vg = vg_from_device_path(self.lvm_root_device, tools.split_mapper_name)
            if vg:
                logger.info(f"LVM: inferred VG {vg!r} from lvm_root_device")
                self.volume_groups = [vg]

        if not self.volume_groups:
            return step_error(
                state,
                f"LVM: cannot activate volume groups: unable to detect VGs on {device} and unable to "
                f"infer VG from lvm_root_device {self.lvm_root_device!r}; "
                "ensure the source disk contains LVM physical volumes",
            )

        try:
            self._activate(state)
        except AzchrootError as e:
            return step_error(state, f"LVM: error activating volume groups: {e.message}", error=e)

        state.device = self.lvm_root_device
        state.lvm_active = True
        state.cleanup.lvm = self
        return StepAction.CONTINUE

    def _run_auto(self, state: BuildState) -> StepAction:
        tools = state.lvm_tools
        state.say("LVM: scanning attached disk for LVM physical volumes...")

        vgs = detect_volume_groups(tools, state.device, state.cancel.sleep)
        if not vgs:
            state.say("LVM: no volume groups found on attached disk, continuing without LVM")
            state.cleanup.lvm = self
            return StepAction.CONTINUE

        self.volume_groups = vgs
        state.say(f"LVM: found volume group(s): {', '.join(vgs)}")

        try:
            self._activate(state)
        except AzchrootError as e:
            return step_error(state, f"LVM: error activating volume groups: {e.message}", error=e)

        try:
            root_lv = find_root_lv(tools, vgs, state.say)
        except AzchrootError as e:
            return step_error(state, f"LVM: error finding root logical volume: {e.message}", error=e)

        verify_device(tools, root_lv, state.say, state.cancel.sleep)

        state.say(f"LVM: using root logical volume: {root_lv}")
        state.device = root_lv
        state.lvm_active = True
        state.cleanup.lvm = self
        return StepAction.CONTINUE

    def _activate(self, state: BuildState) -> None:
        activate_volume_groups(state.lvm_tools, self.volume_groups, state.say)
        self.activated = True

    def cleanup(self, state: BuildState) -> None:
        try:
            self.cleanup_func(state)
        except AzchrootError as e:
            state.say(f"ERROR: {e.message}")

    def cleanup_func(self, state: BuildState) -> None:
        """Deactivate the volume groups this step activated."""
        if not self.activated:
            return

        vgs = ", ".join(self.volume_groups)
        state.say(f"LVM: deactivating volume groups: {vgs}")
        try:
            state.lvm_tools.change_volume_groups(False, self.volume_groups)
        except LvmError as e:
            raise LvmError(message=f"LVM: error deactivating volume groups {vgs}: {e.message}") from e
        self.activated = False
        state.say("LVM: volume groups deactivated")
