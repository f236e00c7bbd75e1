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

"""Fixtures shared by the build pipeline tests."""

from __future__ import annotations

import datetime
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from azchroot.azure.metadata import ComputeInfo
from azchroot.build.config import BuildConfig
from azchroot.build.state import BuildState
from azchroot.core.cancel import CancelToken
from azchroot.shell import CommandResult

FIXED_NOW = datetime.datetime(2025, 1, 1, tzinfo=datetime.UTC)
FIXED_TS = int(FIXED_NOW.timestamp())

DISK_ID = "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.Compute/disks/srcdisk"
SIG_VERSION_ID = (
    "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.Compute/galleries/gal/images/img/versions/1.0.0"
)
IMAGE_ID = "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.Compute/images/myimage"


@pytest.fixture
def make_config(compute_info: ComputeInfo) -> Callable[..., BuildConfig]:
    """Return a factory decoding and preparing a template against the fake VM."""

    def factory(**data: Any) -> BuildConfig:
        data.setdefault("source", "Canonical:UbuntuServer:18.04-LTS:latest")
        data.setdefault("image_resource_id", IMAGE_ID)
        config = BuildConfig.from_dict(data)
        config.prepare(compute_info, now=FIXED_NOW)
        return config

    return factory


@pytest.fixture
def fake_client() -> MagicMock:
    """AzureClientSet stand-in with a real cancel token."""
    client = MagicMock()
    client.subscription_id = "sub1"
    client.polling_timeout = 900.0
    client.cancel = CancelToken()
    return client


@pytest.fixture
def fake_attacher() -> MagicMock:
    return MagicMock()


@pytest.fixture
def make_state(
    make_config: Callable[..., BuildConfig],
    compute_info: ComputeInfo,
    fake_client: MagicMock,
    fake_attacher: MagicMock,
) -> Callable[..., BuildState]:
    """Return a factory for a BuildState wired to the fake collaborators."""

    def factory(config: BuildConfig | None = None, **kwargs: Any) -> BuildState:
        kwargs.setdefault("client", fake_client)
        kwargs.setdefault("attacher", fake_attacher)
        kwargs.setdefault("cancel", fake_client.cancel)
        return BuildState(config or make_config(), compute_info, **kwargs)

    return factory


class FakeShell:
    """Records shell command lines and answers with a fixed exit status per prefix."""

    def __init__(self) -> None:
        self.commands: list[str] = []
        self.failures: dict[str, CommandResult] = {}

    def fail(self, prefix: str, returncode: int = 1, stderr: str = "") -> None:
        self.failures[prefix] = CommandResult(args=[], returncode=returncode, stderr=stderr)

    def __call__(self, command: str) -> CommandResult:
        self.commands.append(command)
        for prefix, result in self.failures.items():
            if command.startswith(prefix):
                return result
        return CommandResult(args=["/bin/sh", "-c", command], returncode=0)


@pytest.fixture
def fake_shell() -> FakeShell:
    return FakeShell()
