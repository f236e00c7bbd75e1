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

"""Release chroot, mount, LVM and attach resources before capture."""

from __future__ import annotations

import logging

from azchroot.build.errors import step_error
from azchroot.build.state import BuildState
from azchroot.build.step import Step
from azchroot.build.types import StepAction
from azchroot.core.exceptions import AzchrootError, CleanupError

logger = logging.getLogger(__name__)


class EarlyCleanupStep(Step):
    """Run registered cleanup handles in teardown order.

    The disk has to be unmounted, its volume groups deactivated and the
    disk detached before it can be snapshotted or imaged. Each handle is
    idempotent, so the regular cleanup pass at the end of the build does
    no further work for resources released here.
    """

    phase = "cleanup"

    def run(self, state: BuildState) -> StepAction:
        for name, handle in state.cleanup.ordered():
            if handle is None:
                logger.debug(f"Skipping cleanup func: {name} (not set)")
                continue

            logger.info(f"Running cleanup func: {name}")
            try:
                handle.cleanup_func(state)
            except AzchrootError as e:
                message = f"error during cleanup {name}: {e.message}"
                return step_error(state, message, error=CleanupError(message=message, handle=name))
        return StepAction.CONTINUE
