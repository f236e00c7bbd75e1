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

"""Azure resource identifiers, disksets and platform image URNs.

Pure data: nothing in this module talks to Azure.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

# Each URN segment is a non-empty run of letters, digits, "-", "_" or ".".
PLATFORM_URN_PATTERN = re.compile(r"^([-_.a-zA-Z0-9]+):([-_.a-zA-Z0-9]+):([-_.a-zA-Z0-9]+):([-_.a-zA-Z0-9]+)$")

# LUN used for the OS disk in a Diskset.
OS_DISK_LUN = -1


@dataclass(frozen=True)
class ResourceId:
    """Parsed ARM resource id.

    ``types`` and ``names`` hold the type/name chain below the provider,
    so ``.../providers/Microsoft.Compute/galleries/g/images/i/versions/1.0.0``
    has types ``("galleries", "images", "versions")`` and names
    ``("g", "i", "1.0.0")``.
    """

    subscription: str
    resource_group: str
    provider: str
    types: tuple[str, ...]
    names: tuple[str, ...]

    @property
    def resource_type(self) -> str:
        return "/".join(self.types)

    @property
    def resource_name(self) -> str:
        return "/".join(self.names)

    @property
    def name(self) -> str:
        return self.names[-1]

    def is_type(self, provider: str, resource_type: str) -> bool:
        """Case-insensitive check of provider namespace and type chain."""
        return self.provider.lower() == provider.lower() and self.resource_type.lower() == resource_type.lower()

    def parent(self) -> ResourceId:
        """Return the id with the last type/name pair dropped.

        Raises:
            ValueError: If the id has no parent resource below the provider.
        """
        if len(self.types) < 2:
            raise ValueError(f"resource id {self} has no parent")
        return ResourceId(
            subscription=self.subscription,
            resource_group=self.resource_group,
            provider=self.provider,
            types=self.types[:-1],
            names=self.names[:-1],
        )

    def __str__(self) -> str:
        chain = "/".join(f"{t}/{n}" for t, n in zip(self.types, self.names, strict=True))
        return (
            f"/subscriptions/{self.subscription}/resourceGroups/{self.resource_group}"
            f"/providers/{self.provider}/{chain}"
        )


def parse_resource_id(value: str) -> ResourceId:
    """Parse an ARM resource id.

    The expected shape is
    ``/subscriptions/<s>/resourceGroups/<rg>/providers/<ns>/<type>/<name>[/<type>/<name>...]``.
    Keywords are matched case-insensitively.

    Raises:
        ValueError: If value is not a well-formed resource id.
    """
    parts = value.strip("/").split("/")
    if len(parts) < 8 or len(parts) % 2 != 0:
        raise ValueError(f"{value!r} is not a valid resource id: unexpected number of segments")
    if any(p == "" for p in parts):
        raise ValueError(f"{value!r} is not a valid resource id: empty segment")
    if parts[0].lower() != "subscriptions":
        raise ValueError(f"{value!r} is not a valid resource id: expected 'subscriptions'")
    if parts[2].lower() != "resourcegroups":
        raise ValueError(f"{value!r} is not a valid resource id: expected 'resourceGroups'")
    if parts[4].lower() != "providers":
        raise ValueError(f"{value!r} is not a valid resource id: expected 'providers'")

    chain = parts[6:]
    return ResourceId(
        subscription=parts[1],
        resource_group=parts[3],
        provider=parts[5],
        types=tuple(chain[0::2]),
        names=tuple(chain[1::2]),
    )


@dataclass
class Diskset:
    """Mapping of LUN to disk (or snapshot) resource id.

    LUN -1 holds the OS disk; other keys are data disk LUNs.
    """

    disks: dict[int, ResourceId] = field(default_factory=dict)

    def set(self, lun: int, resource: ResourceId) -> None:
        self.disks[lun] = resource

    def os(self) -> ResourceId | None:
        return self.disks.get(OS_DISK_LUN)

    def data(self, lun: int) -> ResourceId | None:
        return self.disks.get(lun)

    def data_luns(self) -> list[int]:
        """Return the data disk LUNs in ascending order."""
        return sorted(lun for lun in self.disks if lun != OS_DISK_LUN)

    def __len__(self) -> int:
        return len(self.disks)

    def __iter__(self) -> Iterator[int]:
        return iter(self.disks)

    def __contains__(self, lun: object) -> bool:
        return lun in self.disks

    def items(self) -> list[tuple[int, ResourceId]]:
        return list(self.disks.items())

    def resource_ids(self) -> list[str]:
        return [str(r) for r in self.disks.values()]


@dataclass
class PlatformImage:
    """Marketplace image reference."""

    publisher: str
    offer: str
    sku: str
    version: str

    def urn(self) -> str:
        return f"{self.publisher}:{self.offer}:{self.sku}:{self.version}"

    def image_id(self, subscription: str, location: str) -> str:
        """Return the platform image id used as a disk creation source."""
        return (
            f"/subscriptions/{subscription}/providers/Microsoft.Compute/locations/{location}"
            f"/publishers/{self.publisher}/artifacttypes/vmimage/offers/{self.offer}"
            f"/skus/{self.sku}/versions/{self.version}"
        )


def parse_platform_image_urn(urn: str) -> PlatformImage:
    """Parse ``publisher:offer:sku:version``.

    Raises:
        ValueError: If urn does not have four well-formed segments.
    """
    match = PLATFORM_URN_PATTERN.match(urn)
    if not match:
        raise ValueError(f"{urn!r} is not a valid platform image specifier")
    return PlatformImage(*match.groups())


def normalize_location(location: str) -> str:
    """Normalize an Azure location name (``West US 2`` -> ``westus2``)."""
    return location.replace(" ", "").lower()
