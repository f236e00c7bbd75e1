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

"""User commands run on the host around the root mount."""

from __future__ import annotations

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import CommandError
from azchroot.shell import run_host_commands


class HostCommandsStep(Step):
    """Run a list of host commands with Device and MountPath available as placeholders."""

    phase = "commands"
    label = "commands"

    def __init__(self, commands: list[str]) -> None:
        self.commands = list(commands)

    def run(self, state: BuildState) -> StepAction:
        if not self.commands:
            return StepAction.CONTINUE

        state.say(f"Running {self.label}...")
        try:
            run_host_commands(self.commands, state.config.command_wrapper, state.template_data(), state.say)
        except CommandError as e:
            return step_error(state, e.message, error=e)
        except ValueError as e:
            return step_error(state, f"error rendering {self.label}: {e}")
        return StepAction.CONTINUE


class PreMountCommandsStep(HostCommandsStep):
    label = "pre-mount commands"


class PostMountCommandsStep(HostCommandsStep):
    label = "post-mount commands"


class PreUnmountCommandsStep(HostCommandsStep):
    label = "pre-unmount commands"
