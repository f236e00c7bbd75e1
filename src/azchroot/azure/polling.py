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

"""Blocking waits on Azure long-running operations."""

from __future__ import annotations

import logging
import time
from typing import Any

from azure.core.exceptions import AzureError

from azchroot.core.cancel import CancelToken
from azchroot.core.exceptions import AzureOperationError, OperationTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


def wait_operation(
    operation: Any,
    cancel: CancelToken,
    time_out: float,
    failure_identity: str = "",
    interval: float = POLL_INTERVAL,
) -> Any:
    """Wait for an LRO poller to finish and return its result.

    The wait checks the cancel token every ``interval`` seconds. Exceeding
    ``time_out`` is reported the same way as the operation failing.

    Raises:
        BuildCancelledError: If the cancel token fires.
        OperationTimeoutError: If the deadline expires first.
        AzureOperationError: If the operation itself fails.
    """
    identity = failure_identity or "Azure operation"
    deadline = time.monotonic() + time_out
    try:
        while not operation.done():
            cancel.raise_if_cancelled()
            if time.monotonic() >= deadline:
                raise OperationTimeoutError(
                    message=f"{identity} failed: timeout after {time_out:.0f} seconds",
                    operation=identity,
                    timeout=time_out,
                )
            operation.wait(interval)
        return operation.result()
    except AzureError as e:
        raise AzureOperationError(message=f"{identity} failed: {e}", operation=identity) from e
