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

"""Step contract and the sequential step runner."""

from __future__ import annotations

import logging

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError, BuildCancelledError

logger = logging.getLogger(__name__)


class Step:
    """One state transition of a build.

    run() does the work and returns CONTINUE or HALT; cleanup() releases
    whatever run() acquired and is called for every step that was started,
    in reverse order, once the run is over.
    """

    phase = "build"

    @property
    def name(self) -> str:
        return type(self).__name__

    def run(self, state: BuildState) -> StepAction:
        raise NotImplementedError

    def cleanup(self, state: BuildState) -> None:
        return None


class NotifyStep(Step):
    """Step that only prints a message."""

    phase = "capture"

    def __init__(self, message: str) -> None:
        self.message = message

    def run(self, state: BuildState) -> StepAction:
        state.say(self.message)
        return StepAction.CONTINUE


def run_steps(steps: list[Step], state: BuildState) -> None:
    """Run steps in order until one halts, then clean up the started ones.

    A step that raises AzchrootError instead of returning HALT is treated
    as halting with that error. Cancellation stops the sequence before the
    next step starts. Cleanup always runs, in reverse order, and with the
    cancel token reset so that teardown waits are not cut short.
    """
    started: list[Step] = []
    try:
        for step in steps:
            state.phase = step.phase
            if state.cancel.cancelled:
                step_error(state, "build cancelled", error=BuildCancelledError())
                break

            started.append(step)
            logger.debug(f"Running step {step.name}")
            state.log_event({"event": "step.start", "step": step.name})
            try:
                action = step.run(state)
            except AzchrootError as e:
                action = step_error(state, e.message, error=e)

            if action is StepAction.HALT:
                if state.error is None:
                    state.error = AzchrootError(message=f"step {step.name} halted without recording an error")
                break
    finally:
        if state.cancel.cancelled:
            state.cancel.reset()
        for step in reversed(started):
            state.phase = step.phase
            logger.debug(f"Cleaning up step {step.name}")
            try:
                step.cleanup(state)
            except AzchrootError as e:
                state.say(f"ERROR: cleanup of {step.name} failed: {e.message}")
                state.log_event({"event": "step.cleanup_error", "step": step.name, "message": e.message})
