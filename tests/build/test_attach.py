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

"""Tests for azchroot.build.steps.attach module."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock, call

import pytest

from azchroot.azure.resource import OS_DISK_LUN, Diskset, parse_resource_id
from azchroot.build.state import BuildState
from azchroot.build.steps.attach import AttachDiskStep
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzureOperationError, OperationTimeoutError

DISK = "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.Compute/disks/PackerTemp-osdisk-1"


@pytest.fixture
def state(make_state: Callable[..., BuildState]) -> BuildState:
    state = make_state()
    disks = Diskset()
    disks.set(OS_DISK_LUN, parse_resource_id(DISK))
    state.diskset = disks
    return state


class TestAttachDiskStep:
    """Tests for AttachDiskStep."""

    def test_attach_and_publish_device(self, state: BuildState, fake_attacher: MagicMock) -> None:
        fake_attacher.attach_disk.return_value = 3
        fake_attacher.wait_for_device.return_value = "/dev/sdc"
        step = AttachDiskStep()

        assert step.run(state) is StepAction.CONTINUE
        fake_attacher.attach_disk.assert_called_once_with(DISK)
        fake_attacher.wait_for_device.assert_called_once_with(3, state.device_wait_timeout)
        assert state.device == "/dev/sdc"
        assert state.cleanup.attach is step

    def test_attach_failure_registers_nothing(self, state: BuildState, fake_attacher: MagicMock) -> None:
        fake_attacher.attach_disk.side_effect = AzureOperationError(message="conflict")
        step = AttachDiskStep()

        assert step.run(state) is StepAction.HALT
        assert state.cleanup.attach is None
        assert "error attaching disk" in state.error.message
        step.cleanup(state)
        fake_attacher.detach_disk.assert_not_called()

    def test_device_timeout_still_detaches(self, state: BuildState, fake_attacher: MagicMock) -> None:
        fake_attacher.attach_disk.return_value = 0
        fake_attacher.wait_for_device.side_effect = OperationTimeoutError(message="timed out")
        step = AttachDiskStep()

        assert step.run(state) is StepAction.HALT
        assert state.cleanup.attach is step
        assert isinstance(state.error, OperationTimeoutError)

        step.cleanup(state)
        fake_attacher.detach_disk.assert_called_once_with(DISK)
        fake_attacher.wait_for_detach.assert_called_once_with(DISK, 900.0)

    def test_no_os_disk(self, make_state: Callable[..., BuildState]) -> None:
        state = make_state()
        state.diskset = Diskset()
        assert AttachDiskStep().run(state) is StepAction.HALT

    def test_cleanup_func_is_idempotent(self, state: BuildState, fake_attacher: MagicMock) -> None:
        fake_attacher.attach_disk.return_value = 0
        fake_attacher.wait_for_device.return_value = "/dev/sdc"
        step = AttachDiskStep()
        step.run(state)

        step.cleanup_func(state)
        step.cleanup_func(state)
        step.cleanup(state)
        assert fake_attacher.method_calls[-2:] == [call.detach_disk(DISK), call.wait_for_detach(DISK, 900.0)]
        assert fake_attacher.detach_disk.call_count == 1

    def test_detach_failure(self, state: BuildState, fake_attacher: MagicMock) -> None:
        fake_attacher.attach_disk.return_value = 0
        fake_attacher.wait_for_device.return_value = "/dev/sdc"
        fake_attacher.detach_disk.side_effect = AzureOperationError(message="busy")
        step = AttachDiskStep()
        step.run(state)

        with pytest.raises(AzureOperationError) as excinfo:
            step.cleanup_func(state)
        assert excinfo.value.message == f"error detaching {DISK!r}: busy"
        assert step.attached

        messages: list[str] = []
        state.say = messages.append  # type: ignore[method-assign]
        step.cleanup(state)
        assert messages[-1].startswith("ERROR: error detaching")

    def test_detach_wait_timeout(self, state: BuildState, fake_attacher: MagicMock) -> None:
        fake_attacher.attach_disk.return_value = 0
        fake_attacher.wait_for_device.return_value = "/dev/sdc"
        fake_attacher.wait_for_detach.side_effect = OperationTimeoutError(message="timeout waiting for detach")
        step = AttachDiskStep()
        step.run(state)

        with pytest.raises(OperationTimeoutError):
            step.cleanup_func(state)
        assert step.attached
        fake_attacher.wait_for_detach.assert_called_once_with(DISK, 900.0)
