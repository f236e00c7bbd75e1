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

"""Typed state shared by the steps of one build.

Values produced by one step and consumed by later ones are exposed as
properties that raise InternalError when read before the producing step
has run, so a mis-assembled pipeline fails loudly instead of reading a
default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from azchroot.azure.resource import Diskset
from azchroot.core.cancel import CancelToken
from azchroot.core.exceptions import AzchrootError, InternalError
from azchroot.run import activity

if TYPE_CHECKING:
    from azchroot.azure.client import AzureClientSet
    from azchroot.azure.diskattacher import DiskAttacher
    from azchroot.azure.metadata import ComputeInfo
    from azchroot.build.config import BuildConfig
    from azchroot.lvm.tools import LvmTools
    from azchroot.run import RunContext

logger = logging.getLogger(__name__)


class CleanupHandle(Protocol):
    """A resource release that must happen at a fixed point of the teardown."""

    def cleanup_func(self, state: BuildState) -> None:
        """Release the resource; a second call is a no-op. Raises on failure."""
        ...


class ProvisionHook(Protocol):
    """Runs provisioning against the mounted chroot."""

    def run(self, state: BuildState) -> None: ...


# Teardown order: files copied into the chroot, extra mounts inside it,
# the root mount, the volume groups on the disk, the disk attachment.
CLEANUP_ORDER = ("copy_files", "mount_extra", "mount_device", "lvm", "attach")


@dataclass
class CleanupHandles:
    """One slot per resource class that needs ordered release."""

    copy_files: CleanupHandle | None = None
    mount_extra: CleanupHandle | None = None
    mount_device: CleanupHandle | None = None
    lvm: CleanupHandle | None = None
    attach: CleanupHandle | None = None

    def ordered(self) -> list[tuple[str, CleanupHandle | None]]:
        """Return (name, handle) pairs in teardown order."""
        return [(f"{slot}_cleanup", getattr(self, slot)) for slot in CLEANUP_ORDER]


class BuildState:
    """Mutable state of a single build, passed to every step."""

    def __init__(
        self,
        config: BuildConfig,
        info: ComputeInfo,
        *,
        client: AzureClientSet | None = None,
        attacher: DiskAttacher | None = None,
        lvm_tools: LvmTools | None = None,
        hook: ProvisionHook | None = None,
        run: RunContext | None = None,
        cancel: CancelToken | None = None,
        device_wait_timeout: float = 300.0,
    ) -> None:
        self.config = config
        self.info = info
        self._client = client
        self._attacher = attacher
        self._lvm_tools = lvm_tools
        self.hook = hook
        self.run = run
        self.cancel = cancel or (client.cancel if client is not None else CancelToken())
        self.device_wait_timeout = device_wait_timeout

        self.phase = "build"
        self.lvm_active = False
        self.cleanup = CleanupHandles()
        self.generated_data: dict[str, str] = {}
        self.error: AzchrootError | None = None

        self._device: str | None = None
        self._device_mount: str | None = None
        self._mount_path: str | None = None
        self._diskset: Diskset | None = None
        self._snapshotset: Diskset | None = None

    @staticmethod
    def _require(name: str, value: Any) -> Any:
        if value is None:
            raise InternalError(message=f"build state {name!r} was read before the step that sets it has run")
        return value

    @property
    def client(self) -> AzureClientSet:
        return self._require("client", self._client)

    @property
    def attacher(self) -> DiskAttacher:
        return self._require("attacher", self._attacher)

    @property
    def lvm_tools(self) -> LvmTools:
        return self._require("lvm_tools", self._lvm_tools)

    @property
    def device(self) -> str:
        return self._require("device", self._device)

    @device.setter
    def device(self, value: str) -> None:
        self._device = value

    @property
    def device_mount(self) -> str:
        return self._require("device_mount", self._device_mount)

    @device_mount.setter
    def device_mount(self, value: str) -> None:
        self._device_mount = value

    @property
    def mount_path(self) -> str:
        return self._require("mount_path", self._mount_path)

    @mount_path.setter
    def mount_path(self, value: str) -> None:
        self._mount_path = value

    @property
    def diskset(self) -> Diskset:
        return self._require("diskset", self._diskset)

    @diskset.setter
    def diskset(self, value: Diskset) -> None:
        self._diskset = value

    @property
    def snapshotset(self) -> Diskset:
        return self._require("snapshotset", self._snapshotset)

    @snapshotset.setter
    def snapshotset(self, value: Diskset) -> None:
        self._snapshotset = value

    def created_resources(self) -> list[str]:
        """Ids of temporary disks and snapshots created so far, if any."""
        resources: list[str] = []
        for recorded in (self._diskset, self._snapshotset):
            if recorded is not None:
                resources.extend(recorded.resource_ids())
        return resources

    def say(self, message: str) -> None:
        activity(self.phase, message)
        logger.info(f"[{self.phase}] {message}")

    def log_event(self, event: dict[str, Any]) -> None:
        if self.run is not None:
            self.run.log_event(event)

    def template_data(self) -> dict[str, str]:
        """Placeholder values for user commands run around the mount."""
        return {"Device": self._device or "", "MountPath": self._mount_path or ""}
