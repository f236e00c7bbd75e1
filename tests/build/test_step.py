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

"""Tests for azchroot.build.step module."""

from __future__ import annotations

from collections.abc import Callable

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import NotifyStep, Step, run_steps
from azchroot.build.types import StepAction
from azchroot.core.exceptions import BuildCancelledError, CommandError, StepError


class RecordingStep(Step):
    """Step that records run and cleanup calls in a shared journal."""

    def __init__(self, label: str, journal: list[str], action: StepAction = StepAction.CONTINUE) -> None:
        self.label = label
        self.journal = journal
        self.action = action

    def run(self, state: BuildState) -> StepAction:
        self.journal.append(f"run {self.label}")
        if self.action is StepAction.HALT:
            return step_error(state, f"{self.label} failed")
        return self.action

    def cleanup(self, state: BuildState) -> None:
        self.journal.append(f"cleanup {self.label}")


class RaisingStep(RecordingStep):
    def run(self, state: BuildState) -> StepAction:
        self.journal.append(f"run {self.label}")
        raise CommandError(message="mount failed", returncode=32)


class CancellingStep(RecordingStep):
    def run(self, state: BuildState) -> StepAction:
        self.journal.append(f"run {self.label}")
        state.cancel.cancel("interrupted")
        return StepAction.CONTINUE


class TestRunSteps:
    """Tests for run_steps."""

    def test_runs_all_then_cleans_up_in_reverse(self, make_state: Callable[..., BuildState]) -> None:
        journal: list[str] = []
        steps = [RecordingStep(x, journal) for x in ("a", "b", "c")]
        state = make_state()
        run_steps(steps, state)
        assert journal == ["run a", "run b", "run c", "cleanup c", "cleanup b", "cleanup a"]
        assert state.error is None

    def test_halt_stops_and_cleans_started_steps(self, make_state: Callable[..., BuildState]) -> None:
        journal: list[str] = []
        steps = [
            RecordingStep("a", journal),
            RecordingStep("b", journal, StepAction.HALT),
            RecordingStep("c", journal),
        ]
        state = make_state()
        run_steps(steps, state)
        assert journal == ["run a", "run b", "cleanup b", "cleanup a"]
        assert isinstance(state.error, StepError)
        assert state.error.message == "b failed"

    def test_raised_error_becomes_halt(self, make_state: Callable[..., BuildState]) -> None:
        journal: list[str] = []
        steps = [RecordingStep("a", journal), RaisingStep("b", journal), RecordingStep("c", journal)]
        state = make_state()
        run_steps(steps, state)
        assert journal == ["run a", "run b", "cleanup b", "cleanup a"]
        assert isinstance(state.error, CommandError)
        assert state.error.returncode == 32

    def test_cancellation_stops_before_next_step(self, make_state: Callable[..., BuildState]) -> None:
        journal: list[str] = []
        steps = [CancellingStep("a", journal), RecordingStep("b", journal)]
        state = make_state()
        run_steps(steps, state)
        assert journal == ["run a", "cleanup a"]
        assert isinstance(state.error, BuildCancelledError)
        assert not state.cancel.cancelled

    def test_halt_without_error_records_one(self, make_state: Callable[..., BuildState]) -> None:
        class SilentHalt(Step):
            def run(self, state: BuildState) -> StepAction:
                return StepAction.HALT

        state = make_state()
        run_steps([SilentHalt()], state)
        assert state.error is not None
        assert "SilentHalt" in state.error.message

    def test_cleanup_error_is_reported_not_raised(self, make_state: Callable[..., BuildState]) -> None:
        journal: list[str] = []

        class BadCleanup(RecordingStep):
            def cleanup(self, state: BuildState) -> None:
                raise CommandError(message="umount busy")

        state = make_state()
        run_steps([RecordingStep("a", journal), BadCleanup("b", journal)], state)
        assert journal == ["run a", "run b", "cleanup a"]
        assert state.error is None

    def test_phase_follows_step(self, make_state: Callable[..., BuildState]) -> None:
        phases: list[str] = []

        class PhaseStep(Step):
            phase = "mount"

            def run(self, state: BuildState) -> StepAction:
                phases.append(state.phase)
                return StepAction.CONTINUE

        run_steps([PhaseStep()], make_state())
        assert phases == ["mount"]


class TestNotifyStep:
    """Tests for NotifyStep."""

    def test_says_message(self, make_state: Callable[..., BuildState]) -> None:
        state = make_state()
        messages: list[str] = []
        state.say = messages.append  # type: ignore[method-assign]
        assert NotifyStep("Skipping image creation...").run(state) is StepAction.CONTINUE
        assert messages == ["Skipping image creation..."]
