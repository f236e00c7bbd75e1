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

"""Mount the root filesystem of the attached disk."""

from __future__ import annotations

import logging
import os

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError, CommandError
from azchroot.shell import shell_command, wrap_command
from azchroot.template import render

logger = logging.getLogger(__name__)


def mount_options_args(options: list[str]) -> str:
    """Render mount options as repeated ``-o`` flags."""
    if not options:
        return ""
    return "-o " + " -o ".join(options)


class MountDeviceStep(Step):
    """Mount the root device, or hand mounting to a user command."""

    phase = "mount"

    def __init__(
        self,
        mount_path_template: str,
        mount_partition: str = "",
        mount_options: list[str] | None = None,
        manual_mount_command: str = "",
    ) -> None:
        self.mount_path_template = mount_path_template
        self.mount_partition = mount_partition
        self.mount_options = mount_options or []
        self.manual_mount_command = manual_mount_command
        self.mount_path = ""
        self.is_manual_mount = False

    def run(self, state: BuildState) -> StepAction:
        device = state.device
        is_manual_mount = bool(self.manual_mount_command)

        try:
            mount_path = render(self.mount_path_template, {"Device": os.path.basename(device)})
        except ValueError as e:
            return step_error(state, f"error preparing mount directory: {e}")
        mount_path = os.path.abspath(mount_path)
        logger.info(f"Mount path: {mount_path}")

        if not is_manual_mount:
            try:
                os.makedirs(mount_path, mode=0o755, exist_ok=True)
            except OSError as e:
                return step_error(state, f"error creating mount directory: {e}")

        partition = "" if state.lvm_active else self.mount_partition
        device_mount = f"{device}{partition}"
        state.device_mount = device_mount

        state.say("Mounting the root device...")
        if is_manual_mount:
            command = f"{self.manual_mount_command} {mount_path}"
        else:
            opts = mount_options_args(self.mount_options)
            command = wrap_command(state.config.command_wrapper, f"mount {opts} {device_mount} {mount_path}")
        logger.debug(f"Mount command is {command}")

        result = shell_command(command)
        if not result.ok:
            return step_error(
                state,
                f"error mounting root volume: {result.describe()}\nStderr: {result.stderr}",
                error=CommandError(
                    message="error mounting root volume",
                    command=command,
                    returncode=result.returncode,
                    stdout=result.stdout,
                    stderr=result.stderr,
                ),
            )

        self.mount_path = mount_path
        self.is_manual_mount = is_manual_mount
        state.mount_path = mount_path
        state.cleanup.mount_device = self
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        try:
            self.cleanup_func(state)
        except AzchrootError as e:
            state.say(f"ERROR: {e.message}")

    def cleanup_func(self, state: BuildState) -> None:
        """Unmount the root device recursively; a second call does nothing."""
        if not self.mount_path:
            return

        if self.is_manual_mount:
            state.say(
                "Skipping Unmounting the root device, it is manually unmounted via manual mount command script..."
            )
        else:
            state.say("Unmounting the root device...")
            command = wrap_command(state.config.command_wrapper, f"umount -R {self.mount_path}")
            result = shell_command(command)
            if not result.ok:
                raise CommandError(
                    message=f"error unmounting root device: {result.describe()}",
                    command=command,
                    returncode=result.returncode,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )
        self.mount_path = ""
