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

"""Tests for azchroot.build.steps.commands module."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from azchroot.build.state import BuildState
from azchroot.build.steps.commands import PostMountCommandsStep, PreMountCommandsStep, PreUnmountCommandsStep
from azchroot.build.types import StepAction
from azchroot.core.exceptions import CommandError


@pytest.fixture
def shell(monkeypatch: pytest.MonkeyPatch, fake_shell):
    monkeypatch.setattr("azchroot.shell.shell_command", fake_shell)
    return fake_shell


@pytest.fixture
def state(make_state: Callable[..., BuildState]) -> BuildState:
    state = make_state()
    state.device = "/dev/sdc"
    return state


class TestHostCommandsSteps:
    """Tests for the pre-mount, post-mount and pre-unmount command steps."""

    def test_no_commands(self, state: BuildState, shell) -> None:
        messages: list[str] = []
        state.say = messages.append  # type: ignore[method-assign]
        assert PreMountCommandsStep([]).run(state) is StepAction.CONTINUE
        assert messages == []
        assert shell.commands == []

    def test_placeholders_before_mount(self, state: BuildState, shell) -> None:
        step = PreMountCommandsStep(["parted {{.Device}} mklabel gpt", "echo '{{.MountPath}}'"])
        assert step.run(state) is StepAction.CONTINUE
        assert shell.commands == ["parted /dev/sdc mklabel gpt", "echo ''"]

    def test_placeholders_after_mount(self, make_state, make_config, shell) -> None:
        state = make_state(make_config(command_wrapper="sudo {{.Command}}"))
        state.device = "/dev/sdc"
        state.mount_path = "/mnt/sdc"
        messages: list[str] = []
        state.say = messages.append  # type: ignore[method-assign]

        assert PostMountCommandsStep(["touch {{ .MountPath }}/etc/marker"]).run(state) is StepAction.CONTINUE
        assert shell.commands == ["sudo touch /mnt/sdc/etc/marker"]
        assert messages == ["Running post-mount commands...", "Executing command: sudo touch /mnt/sdc/etc/marker"]

    def test_stops_at_first_failure(self, state: BuildState, shell) -> None:
        shell.fail("false", returncode=2, stderr="nope")
        step = PreUnmountCommandsStep(["false", "true"])

        assert step.run(state) is StepAction.HALT
        assert shell.commands == ["false"]
        assert isinstance(state.error, CommandError)
        assert state.error.message == "Error executing command: exit status 2\n\nStderr: nope"

    def test_unknown_placeholder(self, state: BuildState, shell) -> None:
        step = PreMountCommandsStep(["mkfs {{.Disk}}"])
        assert step.run(state) is StepAction.HALT
        assert state.error.message.startswith("error rendering pre-mount commands")
        assert shell.commands == []
