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

"""Tests for azchroot.build.steps.mount module."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from azchroot.build.state import BuildState
from azchroot.build.steps.mount import MountDeviceStep, mount_options_args
from azchroot.build.types import StepAction
from azchroot.core.exceptions import CommandError


@pytest.fixture
def shell(monkeypatch: pytest.MonkeyPatch, fake_shell):
    monkeypatch.setattr("azchroot.build.steps.mount.shell_command", fake_shell)
    return fake_shell


@pytest.fixture
def state(make_state: Callable[..., BuildState]) -> BuildState:
    state = make_state()
    state.device = "/dev/sdc"
    return state


class TestMountOptionsArgs:
    """Tests for mount_options_args."""

    def test_empty(self) -> None:
        assert mount_options_args([]) == ""

    def test_repeated_flags(self) -> None:
        assert mount_options_args(["noatime", "nodev"]) == "-o noatime -o nodev"


class TestMountDeviceStep:
    """Tests for MountDeviceStep."""

    def test_mounts_partition(self, state: BuildState, shell, tmp_path: Path) -> None:
        template = f"{tmp_path}/disks/{{{{.Device}}}}"
        step = MountDeviceStep(template, mount_partition="1", mount_options=["noatime", "nodev"])

        assert step.run(state) is StepAction.CONTINUE
        mount_path = f"{tmp_path}/disks/sdc"
        assert Path(mount_path).is_dir()
        assert shell.commands == [f"mount -o noatime -o nodev /dev/sdc1 {mount_path}"]
        assert state.device_mount == "/dev/sdc1"
        assert state.mount_path == mount_path
        assert state.cleanup.mount_device is step

    def test_lvm_device_has_no_partition(self, state: BuildState, shell, tmp_path: Path) -> None:
        state.device = "/dev/rhel/root"
        state.lvm_active = True
        step = MountDeviceStep(f"{tmp_path}/{{{{.Device}}}}", mount_partition="1")

        assert step.run(state) is StepAction.CONTINUE
        assert state.device_mount == "/dev/rhel/root"
        assert shell.commands == [f"mount  /dev/rhel/root {tmp_path}/root"]

    def test_command_wrapper(self, make_state, make_config, shell, tmp_path: Path) -> None:
        state = make_state(make_config(command_wrapper="sudo {{.Command}}"))
        state.device = "/dev/sdc"
        MountDeviceStep(f"{tmp_path}/{{{{.Device}}}}", mount_partition="2").run(state)
        assert shell.commands == [f"sudo mount  /dev/sdc2 {tmp_path}/sdc"]

    def test_manual_mount(self, state: BuildState, shell, tmp_path: Path) -> None:
        step = MountDeviceStep(
            f"{tmp_path}/manual/{{{{.Device}}}}", mount_partition="1", manual_mount_command="/usr/local/bin/mnt.sh"
        )
        messages: list[str] = []
        state.say = messages.append  # type: ignore[method-assign]

        assert step.run(state) is StepAction.CONTINUE
        assert shell.commands == [f"/usr/local/bin/mnt.sh {tmp_path}/manual/sdc"]
        assert not (tmp_path / "manual").exists()

        step.cleanup_func(state)
        assert len(shell.commands) == 1
        assert messages[-1].startswith("Skipping Unmounting the root device")

    def test_mount_failure(self, state: BuildState, shell, tmp_path: Path) -> None:
        shell.fail("mount", returncode=32, stderr="wrong fs type")
        step = MountDeviceStep(f"{tmp_path}/{{{{.Device}}}}", mount_partition="1")

        assert step.run(state) is StepAction.HALT
        assert isinstance(state.error, CommandError)
        assert state.error.message == "error mounting root volume: exit status 32\nStderr: wrong fs type"
        assert state.cleanup.mount_device is None

    def test_bad_template(self, state: BuildState, shell) -> None:
        step = MountDeviceStep("/mnt/{{.Disk}}")
        assert step.run(state) is StepAction.HALT
        assert state.error.message.startswith("error preparing mount directory")
        assert shell.commands == []

    def test_cleanup_unmounts_once(self, state: BuildState, shell, tmp_path: Path) -> None:
        step = MountDeviceStep(f"{tmp_path}/{{{{.Device}}}}", mount_partition="1")
        step.run(state)

        step.cleanup_func(state)
        step.cleanup_func(state)
        step.cleanup(state)
        assert shell.commands[1:] == [f"umount -R {tmp_path}/sdc"]

    def test_unmount_failure(self, state: BuildState, shell, tmp_path: Path) -> None:
        step = MountDeviceStep(f"{tmp_path}/{{{{.Device}}}}", mount_partition="1")
        step.run(state)
        shell.fail("umount", returncode=32)

        with pytest.raises(CommandError):
            step.cleanup_func(state)
        assert step.mount_path == f"{tmp_path}/sdc"
