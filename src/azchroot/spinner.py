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

"""TTY-aware spinner for long waits on Azure and on the attached device.

Uses Rich spinners when stdout is a TTY, falls back to plain text otherwise.
The spinner output is written directly to the real terminal (sys.__stdout__)
and never goes into captured log files.
"""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Iterator

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner

_disabled = False


def set_spinner_enabled(enabled: bool) -> None:
    """Globally enable or disable animated spinners (``--no-spinner``)."""
    global _disabled
    _disabled = not enabled


def is_tty() -> bool:
    """Return True if stdout is a TTY."""
    try:
        if sys.__stdout__ is None:
            return False  # pragma: no cover
        return sys.__stdout__.isatty()
    except (AttributeError, ValueError):  # pragma: no cover
        return False


@contextlib.contextmanager
def activity_spinner(phase: str, description: str, disable: bool = False) -> Iterator[None]:
    """Context manager that shows a spinner while the wrapped block runs.

    Args:
        phase: Short phase label (e.g., "attach", "diskset").
        description: Human-readable description of the wait.
        disable: Force disable spinner even on TTY.

    When stdout is not a TTY or the spinner is disabled, the activity line
    is printed once without animation.
    """

    text = f"[{phase}] {description}"

    if disable or _disabled or not is_tty():
        with contextlib.suppress(Exception):  # pragma: no cover
            print(text, file=sys.__stdout__, flush=True)
        yield
        return

    console = Console(file=sys.__stdout__, force_terminal=True)
    spinner = Spinner("dots", text=text)
    with Live(spinner, console=console, refresh_per_second=12, transient=True):
        yield

    with contextlib.suppress(Exception):  # pragma: no cover
        print(text, file=sys.__stdout__, flush=True)
