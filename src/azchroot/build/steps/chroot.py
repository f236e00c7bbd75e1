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

"""Prepare the chroot and provision it.

Extra filesystems (proc, sysfs, /dev, ...) are mounted inside the mounted
root, host files such as /etc/resolv.conf are copied in, and the
provisioning commands run through chroot(8).
"""

from __future__ import annotations

import logging
import os
import shlex

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError, CommandError
from azchroot.shell import CommandResult, shell_command, wrap_command

logger = logging.getLogger(__name__)


def _run_wrapped(state: BuildState, command: str, what: str) -> CommandResult:
    wrapped = wrap_command(state.config.command_wrapper, command)
    logger.debug(f"Executing: {wrapped}")
    result = shell_command(wrapped)
    if not result.ok:
        raise CommandError(
            message=f"{what}: {result.describe()}\nStderr: {result.stderr}",
            command=wrapped,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return result


class MountExtraStep(Step):
    """Mount chroot_mounts entries below the root mount."""

    phase = "chroot"

    def __init__(self, chroot_mounts: list[list[str]]) -> None:
        self.chroot_mounts = [list(m) for m in chroot_mounts]
        self.mounts: list[str] = []

    def run(self, state: BuildState) -> StepAction:
        mount_path = state.mount_path
        state.cleanup.mount_extra = self
        state.say("Mounting additional paths within the chroot...")

        for fstype, source, dest in self.chroot_mounts:
            inner = mount_path + dest
            state.say(f" -> Mounting: {inner}")
            try:
                os.makedirs(inner, mode=0o755, exist_ok=True)
            except OSError as e:
                return step_error(state, f"error creating mount directory {inner}: {e}")

            flags = "--bind" if fstype == "bind" else f"-t {fstype}"
            try:
                _run_wrapped(state, f"mount {flags} {source} {inner}", f"error mounting {inner}")
            except CommandError as e:
                return step_error(state, e.message, error=e)
            self.mounts.append(inner)
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        try:
            self.cleanup_func(state)
        except AzchrootError as e:
            state.say(f"ERROR: {e.message}")

    def cleanup_func(self, state: BuildState) -> None:
        """Unmount in reverse order, forgetting each mount once it is gone."""
        while self.mounts:
            inner = self.mounts[-1]
            _run_wrapped(state, f"umount {inner}", f"error unmounting {inner}")
            self.mounts.pop()


class CopyFilesStep(Step):
    """Copy host files to the same paths inside the chroot."""

    phase = "chroot"

    def __init__(self, files: list[str]) -> None:
        self.files = list(files)
        self.copied: list[str] = []

    def run(self, state: BuildState) -> StepAction:
        mount_path = state.mount_path
        state.cleanup.copy_files = self
        if not self.files:
            return StepAction.CONTINUE

        state.say("Copying files from host to chroot...")
        for path in self.files:
            dest = mount_path + path
            state.say(f"Copying {path}")
            try:
                _run_wrapped(state, f"cp --remove-destination {path} {dest}", f"error copying file {path}")
            except CommandError as e:
                return step_error(state, e.message, error=e)
            self.copied.append(dest)
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        try:
            self.cleanup_func(state)
        except AzchrootError as e:
            state.say(f"ERROR: {e.message}")

    def cleanup_func(self, state: BuildState) -> None:
        """Remove the copied files from the chroot."""
        while self.copied:
            dest = self.copied[-1]
            _run_wrapped(state, f"rm -f {dest}", f"error removing file {dest}")
            self.copied.pop()


class ChrootCommandsHook:
    """Provisioning hook that runs shell commands inside the chroot."""

    def __init__(self, commands: list[str]) -> None:
        self.commands = list(commands)

    def run(self, state: BuildState) -> None:
        for command in self.commands:
            state.say(f"Provisioning: {command}")
            _run_wrapped(
                state,
                f"chroot {state.mount_path} /bin/sh -c {shlex.quote(command)}",
                f"error running provisioning command {command!r}",
            )


class ChrootProvisionStep(Step):
    """Run the provisioning hook against the mounted chroot."""

    phase = "provision"

    def run(self, state: BuildState) -> StepAction:
        if state.hook is None:
            logger.debug("No provisioning hook configured")
            return StepAction.CONTINUE

        state.say(f"Provisioning chroot at {state.mount_path}")
        try:
            state.hook.run(state)
        except AzchrootError as e:
            return step_error(state, f"error provisioning chroot: {e.message}", error=e)
        return StepAction.CONTINUE
