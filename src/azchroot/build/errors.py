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

"""Error handling utilities for build steps.

Steps never raise out of run(): a fatal problem is recorded in the build
state, reported to the terminal and the run's event log, and the step
returns StepAction.HALT.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError, StepError
from azchroot.run import activity

if TYPE_CHECKING:
    from azchroot.build.state import BuildState


def log_step_event(
    state: BuildState,
    message: str,
    event_key: str,
    **event_data: Any,
) -> None:
    """Report a step activity message and log a structured event together.

    Example:
        log_step_event(state, f"Disk attached at LUN {lun}", "attach.attached", lun=lun)
    """
    activity(state.phase, message)
    state.log_event({"event": event_key, **event_data})


def step_error(
    state: BuildState,
    message: str,
    *,
    error: AzchrootError | None = None,
    event_key: str | None = None,
    **event_data: Any,
) -> StepAction:
    """Record a fatal step error and return StepAction.HALT.

    The error stored in the state is ``error`` when given, otherwise a
    StepError carrying message. The log event key defaults to
    ``{phase}.error``.

    Example:
        except AzureOperationError as e:
            return step_error(state, f"error creating image {image_id!r}: {e.message}", error=e)
    """
    recorded = error if error is not None else StepError(message=message, step=state.phase)
    if recorded.message != message:
        recorded.message = message
    state.error = recorded

    activity(state.phase, f"ERROR: {message}")
    state.log_event(
        {
            "event": event_key or f"{state.phase}.error",
            "message": message,
            "exit_code": recorded.exit_code,
            **event_data,
        }
    )
    return StepAction.HALT


def step_warning(
    state: BuildState,
    message: str,
    *,
    event_key: str | None = None,
    **event_data: Any,
) -> None:
    """Report a warning without affecting the build outcome."""
    activity(state.phase, f"Warning: {message}")
    state.log_event({"event": event_key or f"{state.phase}.warning", "message": message, **event_data})


# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_STEP_FAILED = 7
EXIT_CLEANUP_FAILED = 8
EXIT_AZURE_ERROR = 9
EXIT_INTERNAL_ERROR = 70
EXIT_CANCELLED = 130
