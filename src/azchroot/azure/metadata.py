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

"""Azure Instance Metadata Service client.

The build runs on the VM it attaches disks to, so the VM's identity
(subscription, resource group, name, location, scale set) comes from IMDS.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from azchroot.core.exceptions import AzureOperationError

logger = logging.getLogger(__name__)

IMDS_URL = "http://169.254.169.254/metadata/instance?api-version=2021-02-01"


@dataclass
class ComputeInfo:
    """Identity of the VM the build runs on."""

    name: str = ""
    resource_id: str = ""
    resource_group_name: str = ""
    subscription_id: str = ""
    location: str = ""
    vm_scale_set_name: str = ""
    zone: str = ""

    @classmethod
    def from_imds(cls, compute: dict[str, Any]) -> ComputeInfo:
        return cls(
            name=compute.get("name", ""),
            resource_id=compute.get("resourceId", ""),
            resource_group_name=compute.get("resourceGroupName", ""),
            subscription_id=compute.get("subscriptionId", ""),
            location=compute.get("location", ""),
            vm_scale_set_name=compute.get("vmScaleSetName", ""),
            zone=compute.get("zone", ""),
        )

    @property
    def is_scale_set_instance(self) -> bool:
        return bool(self.vm_scale_set_name)


class MetadataSource(Protocol):
    def get_compute_info(self) -> ComputeInfo: ...


class MetadataClient:
    """IMDS client that queries at most once per instance and caches the result."""

    def __init__(self, session: requests.Session | None = None, timeout: int = 10, url: str = IMDS_URL) -> None:
        self.session = session or requests.Session()
        # IMDS is link-local and must never go through a proxy.
        self.session.trust_env = False
        self.timeout = timeout
        self.url = url
        self._cached: ComputeInfo | None = None

    def get_compute_info(self) -> ComputeInfo:
        if self._cached is not None:
            return self._cached

        try:
            resp = self.session.get(self.url, headers={"Metadata": "true"}, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise AzureOperationError(
                message=f"Error retrieving information ARM resource ID and location of this VM: {e}",
                operation="metadata.get_compute_info",
            ) from e

        compute = payload.get("compute") if isinstance(payload, dict) else None
        if not isinstance(compute, dict):
            raise AzureOperationError(
                message="Instance metadata response has no 'compute' section",
                operation="metadata.get_compute_info",
            )

        self._cached = ComputeInfo.from_imds(compute)
        logger.debug(f"VM metadata: {self._cached}")
        return self._cached


@dataclass
class StaticMetadata:
    """Metadata source returning fixed values."""

    info: ComputeInfo

    def get_compute_info(self) -> ComputeInfo:
        return self.info
