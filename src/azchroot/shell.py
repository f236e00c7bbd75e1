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

"""Host command execution helpers.

Everything the build shells out to (LVM tools, mount, user hooks) goes
through run_command so output is always captured and a missing binary is
reported as a failed result rather than an exception.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from azchroot.core.exceptions import CommandError
from azchroot.template import render

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured result of a host command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        return f"exit status {self.returncode}"


def run_command(args: Sequence[str]) -> CommandResult:
    """Run a command without a shell, capturing stdout and stderr."""
    argv = list(args)
    logger.debug(f"Executing: {' '.join(argv)}")
    try:
        proc = subprocess.run(argv, capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        return CommandResult(args=argv, returncode=127, stderr=str(e))
    except PermissionError as e:
        return CommandResult(args=argv, returncode=126, stderr=str(e))
    return CommandResult(args=argv, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


def shell_command(command: str) -> CommandResult:
    """Run a command line through /bin/sh -c."""
    return run_command(["/bin/sh", "-c", command])


def wrap_command(wrapper: str, command: str) -> str:
    """Apply the configured command wrapper (e.g. ``sudo {{.Command}}``)."""
    return render(wrapper, {"Command": command})


def run_host_commands(
    commands: Sequence[str],
    wrapper: str,
    data: Mapping[str, object],
    say: Callable[[str], None],
) -> None:
    """Render, wrap and run each command on the host, stopping at the first failure.

    Raises:
        CommandError: If a command exits non-zero.
    """
    for raw in commands:
        command = wrap_command(wrapper, render(raw, data))
        say(f"Executing command: {command}")
        result = shell_command(command)
        if not result.ok:
            raise CommandError(
                message=f"Error executing command: {result.describe()}\n\nStderr: {result.stderr}",
                command=command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
