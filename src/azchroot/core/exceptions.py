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

"""Azchroot-specific exception types with associated exit codes."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class AzchrootError(Exception):
    """Base class for Azchroot errors with an exit code."""

    message: str = "An error occurred"
    exit_code: int = field(default=1)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.message} (exit {self.exit_code})"


@dataclass
class ConfigError(AzchrootError):
    """Error raised when a build template fails validation.

    Every problem found is collected in ``errors`` so the user sees the
    whole list before any cloud resource is touched.
    """

    exit_code: int = field(default=1)
    errors: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        lines = [self.message, *(f"  * {e}" for e in self.errors)]
        return "\n".join(lines)


@dataclass
class StepError(AzchrootError):
    """Error raised when a step halts the pipeline."""

    exit_code: int = field(default=7)
    step: str = ""


@dataclass
class CommandError(AzchrootError):
    """Error raised when a shelled-out command exits non-zero."""

    exit_code: int = field(default=7)
    command: str = ""
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""


@dataclass
class LvmError(AzchrootError):
    """Error raised when volume group discovery or activation fails."""

    exit_code: int = field(default=7)


@dataclass
class CleanupError(AzchrootError):
    """Error raised when an ordered cleanup handle fails."""

    exit_code: int = field(default=8)
    handle: str = ""


@dataclass
class AzureOperationError(AzchrootError):
    """Error raised when a remote control-plane call fails."""

    exit_code: int = field(default=9)
    operation: str = ""


@dataclass
class OperationTimeoutError(AzureOperationError):
    """Error raised when a remote call exceeds its deadline."""

    timeout: float = 0.0


@dataclass
class DiskNotFoundError(AzureOperationError):
    """Error raised when a disk to detach is not attached to the VM."""


@dataclass
class AzureAPIDiskError(AzureOperationError):
    """Error raised when the VM model lists a data disk without a managed disk id."""


@dataclass
class BuildCancelledError(AzchrootError):
    """Error raised when cooperative cancellation fires."""

    message: str = "build cancelled"
    exit_code: int = field(default=130)


@dataclass
class InternalError(AzchrootError):
    """Error raised when a pipeline-assembly invariant is violated.

    Examples are reading build state before the step that produces it has
    run, or assembling a pipeline for an unknown source kind.
    """

    exit_code: int = field(default=70)
