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

"""Cooperative cancellation for blocking waits.

Every polling loop in a build sleeps through a CancelToken so that a
SIGINT/SIGTERM stops the wait promptly with BuildCancelledError.
"""

from __future__ import annotations

import threading

from azchroot.core.exceptions import BuildCancelledError


class CancelToken:
    """Thread-safe cancellation flag with an interruptible sleep."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "build cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self.reason = ""
        self._event.clear()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise BuildCancelledError(message=self.reason or "build cancelled")

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``, raising BuildCancelledError if cancelled meanwhile."""
        if self._event.wait(seconds):
            raise BuildCancelledError(message=self.reason or "build cancelled")
