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

"""Build template decoding, defaults and validation.

A build template is a YAML mapping whose keys mirror the Azure chroot
builder options. BuildConfig.from_dict decodes it; BuildConfig.prepare
fills in defaults that depend on the VM the build runs on and collects
every validation problem into a single ConfigError.
"""

from __future__ import annotations

import datetime
import enum
import logging
import posixpath
import unicodedata
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from azchroot.azure.metadata import ComputeInfo
from azchroot.azure.resource import parse_platform_image_urn, parse_resource_id
from azchroot.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

CACHING_TYPES = ["None", "ReadOnly", "ReadWrite"]
STORAGE_ACCOUNT_TYPES = [
    "Premium_LRS",
    "Premium_ZRS",
    "PremiumV2_LRS",
    "StandardSSD_LRS",
    "StandardSSD_ZRS",
    "Standard_LRS",
    "UltraSSD_LRS",
]
HYPERV_GENERATIONS = ["V1", "V2"]

DEFAULT_CHROOT_MOUNTS = [
    ["proc", "proc", "/proc"],
    ["sysfs", "sysfs", "/sys"],
    ["bind", "/dev", "/dev"],
    ["devpts", "devpts", "/dev/pts"],
    ["binfmt_misc", "binfmt_misc", "/proc/sys/fs/binfmt_misc"],
]
DEFAULT_MOUNT_PATH = "/mnt/packer-azure-chroot-disks/{{.Device}}"
DEFAULT_COMMAND_WRAPPER = "{{.Command}}"

_COMPUTE_PREFIX = "/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Compute"
TEMP_OS_DISK_ID = _COMPUTE_PREFIX + "/disks/PackerTemp-osdisk-{ts}"
TEMP_OS_DISK_SNAPSHOT_ID = _COMPUTE_PREFIX + "/snapshots/PackerTemp-osdisk-snapshot-{ts}"
TEMP_DATA_DISK_ID_PREFIX = _COMPUTE_PREFIX + "/disks/PackerTemp-datadisk-{ts}-"
TEMP_DATA_DISK_SNAPSHOT_ID_PREFIX = _COMPUTE_PREFIX + "/snapshots/PackerTemp-datadisk-snapshot-{ts}-"


class SourceType(enum.Enum):
    """Where the OS disk of the build comes from."""

    FROM_SCRATCH = "FromScratch"
    PLATFORM_IMAGE = "PlatformImage"
    DISK = "Disk"
    SHARED_IMAGE = "SharedImage"


class _Decoder:
    """Collects type errors while pulling typed values out of a mapping."""

    def __init__(self, data: dict[str, Any], prefix: str = "") -> None:
        self.data = data
        self.prefix = prefix
        self.errors: list[str] = []

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get_str(self, key: str, default: str = "") -> str:
        value = self.data.get(key, default)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            self.errors.append(f"{self._key(key)}: expected a string, got {type(value).__name__}")
            return default
        return str(value)

    def get_bool(self, key: str) -> bool:
        value = self.data.get(key, False)
        if value is None:
            return False
        if not isinstance(value, bool):
            self.errors.append(f"{self._key(key)}: expected a boolean, got {type(value).__name__}")
            return False
        return value

    def get_int(self, key: str) -> int:
        value = self.data.get(key, 0)
        if value is None:
            return 0
        if isinstance(value, bool) or not isinstance(value, int):
            self.errors.append(f"{self._key(key)}: expected an integer, got {type(value).__name__}")
            return 0
        return value

    def get_str_list(self, key: str) -> list[str] | None:
        value = self.data.get(key)
        if value is None:
            return None
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.errors.append(f"{self._key(key)}: expected a list of strings")
            return None
        return list(value)

    def unknown_keys(self, known: set[str]) -> None:
        for key in self.data:
            if key not in known:
                self.errors.append(f"{self._key(key)}: unknown configuration key")


@dataclass
class TargetRegion:
    """Replication target of a shared image version."""

    name: str
    replicas: int = 1
    storage_account_type: str = "Standard_LRS"


@dataclass
class SharedImageGalleryDestination:
    """Gallery image version to publish the build result to."""

    resource_group: str = ""
    gallery_name: str = ""
    image_name: str = ""
    image_version: str = ""
    target_regions: list[TargetRegion] = field(default_factory=list)
    exclude_from_latest: bool = False
    exclude_from_latest_typo: bool = False

    @classmethod
    def from_dict(cls, data: Any, errors: list[str]) -> SharedImageGalleryDestination:
        if not isinstance(data, dict):
            errors.append("shared_image_destination: expected a mapping")
            return cls()
        dec = _Decoder(data, "shared_image_destination.")
        dec.unknown_keys(
            {
                "resource_group",
                "gallery_name",
                "image_name",
                "image_version",
                "target_regions",
                "exclude_from_latest",
                "exlude_from_latest",
            }
        )

        regions: list[TargetRegion] = []
        raw_regions = data.get("target_regions") or []
        if not isinstance(raw_regions, list):
            dec.errors.append("shared_image_destination.target_regions: expected a list")
            raw_regions = []
        for i, raw in enumerate(raw_regions):
            if not isinstance(raw, dict):
                dec.errors.append(f"shared_image_destination.target_regions[{i}]: expected a mapping")
                continue
            rdec = _Decoder(raw, f"shared_image_destination.target_regions[{i}].")
            rdec.unknown_keys({"name", "replicas", "storage_account_type"})
            regions.append(
                TargetRegion(
                    name=rdec.get_str("name"),
                    replicas=rdec.get_int("replicas") or 1,
                    storage_account_type=rdec.get_str("storage_account_type") or "Standard_LRS",
                )
            )
            dec.errors.extend(rdec.errors)

        dest = cls(
            resource_group=dec.get_str("resource_group"),
            gallery_name=dec.get_str("gallery_name"),
            image_name=dec.get_str("image_name"),
            image_version=dec.get_str("image_version"),
            target_regions=regions,
            exclude_from_latest=dec.get_bool("exclude_from_latest") or dec.get_bool("exlude_from_latest"),
            exclude_from_latest_typo="exlude_from_latest" in data,
        )
        errors.extend(dec.errors)
        return dest

    def validate(self, prefix: str) -> tuple[list[str], list[str]]:
        """Return (errors, warnings) for this destination."""
        errs: list[str] = []
        warns: list[str] = []
        for name in ("resource_group", "gallery_name", "image_name", "image_version"):
            if not getattr(self, name):
                errs.append(f"{prefix}.{name} is required")
        for i, region in enumerate(self.target_regions):
            if not region.name:
                errs.append(f"{prefix}.target_regions[{i}].name is required")
            if region.storage_account_type not in STORAGE_ACCOUNT_TYPES:
                errs.append(
                    f"{prefix}.target_regions[{i}].storage_account_type: "
                    f"{region.storage_account_type!r} is not a valid value {STORAGE_ACCOUNT_TYPES}"
                )
        if not self.target_regions:
            warns.append(f"{prefix}.target_regions is empty; image will only be available in the region of the gallery")
        if self.exclude_from_latest_typo:
            warns.append(f"{prefix}.exlude_from_latest is being deprecated, please use exclude_from_latest")
        return errs, warns

    def is_valid(self) -> bool:
        errs, _ = self.validate("shared_image_destination")
        return not errs

    def resource_id(self, subscription_id: str) -> str:
        return (
            f"/subscriptions/{subscription_id}/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.Compute/galleries/{self.gallery_name}"
            f"/images/{self.image_name}/versions/{self.image_version}"
        )


def validate_lvm_root_device(device: str) -> str | None:
    """Return an error message if device is not a clean absolute path under /dev/."""
    for ch in device:
        if unicodedata.category(ch) == "Cc" or (ch.isspace() and ch != " "):
            return f"{device!r} contains invalid whitespace or control characters"

    cleaned = posixpath.normpath(device) if device else "."
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    if ".." in device.split("/") or ".." in cleaned.split("/"):
        return f"{device!r} must not contain path traversal (..)"
    if not cleaned.startswith("/dev/"):
        return f"{device!r} must be an absolute device path starting with /dev/ (resolved to {cleaned!r})"
    return None


def classify_source(source: str) -> SourceType | None:
    """Return the kind of source specifier, or None if it is not recognised."""
    try:
        parse_platform_image_urn(source)
        return SourceType.PLATFORM_IMAGE
    except ValueError:
        pass
    try:
        rid = parse_resource_id(source)
    except ValueError:
        return None
    if rid.is_type("Microsoft.Compute", "disks"):
        return SourceType.DISK
    if rid.is_type("Microsoft.Compute", "galleries/images/versions"):
        return SourceType.SHARED_IMAGE
    return None


def _check_enum(name: str, value: str, allowed: list[str], errors: list[str]) -> None:
    if value not in allowed:
        errors.append(f"{name}: {value!r} is not a valid value {allowed}")


@dataclass
class BuildConfig:
    """Decoded build template."""

    from_scratch: bool = False
    source: str = ""
    command_wrapper: str = ""
    manual_mount_command: str = ""
    pre_mount_commands: list[str] = field(default_factory=list)
    mount_options: list[str] = field(default_factory=list)
    mount_partition: str = ""
    mount_path: str = ""
    post_mount_commands: list[str] = field(default_factory=list)
    chroot_mounts: list[list[str]] = field(default_factory=list)
    copy_files: list[str] | None = None
    provision_commands: list[str] = field(default_factory=list)
    os_disk_size_gb: int = 0
    os_disk_storage_account_type: str = ""
    os_disk_cache_type: str = ""
    data_disk_storage_account_type: str = ""
    data_disk_cache_type: str = ""
    image_hyperv_generation: str = ""
    temporary_os_disk_id: str = ""
    temporary_os_disk_snapshot_id: str = ""
    temporary_data_disk_id_prefix: str = ""
    temporary_data_disk_snapshot_id: str = ""
    lvm_root_device: str = ""
    pre_unmount_commands: list[str] = field(default_factory=list)
    skip_cleanup: bool = False
    skip_create_image: bool = False
    image_resource_id: str = ""
    shared_image_destination: SharedImageGalleryDestination = field(default_factory=SharedImageGalleryDestination)
    has_shared_image_destination: bool = False
    subscription_id: str = ""
    source_type: SourceType | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildConfig:
        """Decode a template mapping.

        Raises:
            ConfigError: On unknown keys or values of the wrong type.
        """
        if not isinstance(data, dict):
            raise ConfigError(message="Invalid build template", errors=["template must be a mapping"])

        dec = _Decoder(data)
        known = {f.name for f in fields(cls)} - {"has_shared_image_destination", "source_type"}
        dec.unknown_keys(known)

        errors: list[str] = []
        chroot_mounts: list[list[str]] = []
        raw_mounts = data.get("chroot_mounts") or []
        if not isinstance(raw_mounts, list):
            errors.append("chroot_mounts: expected a list of [type, source, destination] lists")
            raw_mounts = []
        for i, mount in enumerate(raw_mounts):
            if not isinstance(mount, list) or len(mount) != 3 or not all(isinstance(m, str) for m in mount):
                errors.append(f"chroot_mounts[{i}]: expected [type, source, destination]")
                continue
            chroot_mounts.append(list(mount))

        has_dest = "shared_image_destination" in data
        dest = (
            SharedImageGalleryDestination.from_dict(data["shared_image_destination"], errors)
            if has_dest
            else SharedImageGalleryDestination()
        )

        cfg = cls(
            from_scratch=dec.get_bool("from_scratch"),
            source=dec.get_str("source"),
            command_wrapper=dec.get_str("command_wrapper"),
            manual_mount_command=dec.get_str("manual_mount_command"),
            pre_mount_commands=dec.get_str_list("pre_mount_commands") or [],
            mount_options=dec.get_str_list("mount_options") or [],
            mount_partition=dec.get_str("mount_partition"),
            mount_path=dec.get_str("mount_path"),
            post_mount_commands=dec.get_str_list("post_mount_commands") or [],
            chroot_mounts=chroot_mounts,
            copy_files=dec.get_str_list("copy_files"),
            provision_commands=dec.get_str_list("provision_commands") or [],
            os_disk_size_gb=dec.get_int("os_disk_size_gb"),
            os_disk_storage_account_type=dec.get_str("os_disk_storage_account_type"),
            os_disk_cache_type=dec.get_str("os_disk_cache_type"),
            data_disk_storage_account_type=dec.get_str("data_disk_storage_account_type"),
            data_disk_cache_type=dec.get_str("data_disk_cache_type"),
            image_hyperv_generation=dec.get_str("image_hyperv_generation"),
            temporary_os_disk_id=dec.get_str("temporary_os_disk_id"),
            temporary_os_disk_snapshot_id=dec.get_str("temporary_os_disk_snapshot_id"),
            temporary_data_disk_id_prefix=dec.get_str("temporary_data_disk_id_prefix"),
            temporary_data_disk_snapshot_id=dec.get_str("temporary_data_disk_snapshot_id"),
            lvm_root_device=dec.get_str("lvm_root_device"),
            pre_unmount_commands=dec.get_str_list("pre_unmount_commands") or [],
            skip_cleanup=dec.get_bool("skip_cleanup"),
            skip_create_image=dec.get_bool("skip_create_image"),
            image_resource_id=dec.get_str("image_resource_id"),
            shared_image_destination=dest,
            has_shared_image_destination=has_dest,
            subscription_id=dec.get_str("subscription_id"),
        )

        errors = dec.errors + errors
        if errors:
            raise ConfigError(message="Invalid build template", errors=errors)
        return cfg

    def prepare(self, info: ComputeInfo, now: datetime.datetime | None = None) -> list[str]:
        """Apply defaults and validate, returning warnings.

        Raises:
            ConfigError: With every validation problem found.
        """
        errs: list[str] = []
        warns: list[str] = []

        if not self.chroot_mounts:
            self.chroot_mounts = [list(m) for m in DEFAULT_CHROOT_MOUNTS]
        if self.copy_files is None:
            self.copy_files = [] if self.from_scratch else ["/etc/resolv.conf"]
        self.command_wrapper = self.command_wrapper or DEFAULT_COMMAND_WRAPPER
        self.mount_path = self.mount_path or DEFAULT_MOUNT_PATH
        self.mount_partition = self.mount_partition or "1"

        ts = int((now or datetime.datetime.now(datetime.UTC)).timestamp())
        sub = info.subscription_id
        rg = info.resource_group_name
        self.temporary_os_disk_id = self.temporary_os_disk_id or TEMP_OS_DISK_ID.format(sub=sub, rg=rg, ts=ts)
        self.temporary_os_disk_snapshot_id = self.temporary_os_disk_snapshot_id or TEMP_OS_DISK_SNAPSHOT_ID.format(
            sub=sub, rg=rg, ts=ts
        )
        self.temporary_data_disk_id_prefix = self.temporary_data_disk_id_prefix or TEMP_DATA_DISK_ID_PREFIX.format(
            sub=sub, rg=rg, ts=ts
        )
        self.temporary_data_disk_snapshot_id = (
            self.temporary_data_disk_snapshot_id or TEMP_DATA_DISK_SNAPSHOT_ID_PREFIX.format(sub=sub, rg=rg, ts=ts)
        )

        self.os_disk_storage_account_type = self.os_disk_storage_account_type or "Premium_LRS"
        self.os_disk_cache_type = self.os_disk_cache_type or "ReadOnly"
        self.data_disk_storage_account_type = self.data_disk_storage_account_type or "Premium_LRS"
        self.data_disk_cache_type = self.data_disk_cache_type or "ReadOnly"
        self.image_hyperv_generation = self.image_hyperv_generation or "V1"

        if self.from_scratch:
            self.source_type = SourceType.FROM_SCRATCH
            if self.lvm_root_device:
                errs.append("lvm_root_device cannot be specified when building from_scratch")
            if self.source:
                errs.append("source cannot be specified when building from_scratch")
            if self.os_disk_size_gb == 0:
                errs.append("os_disk_size_gb is required with from_scratch")
            if not self.pre_mount_commands:
                errs.append("pre_mount_commands is required with from_scratch")
        else:
            self.source_type = classify_source(self.source)
            if self.source_type is None:
                errs.append(
                    f"source: {self.source!r} is not a valid platform image specifier, nor is it a disk resource ID"
                )
            else:
                logger.info(f"Source is {self.source_type.value}: {self.source}")

        _check_enum("os_disk_cache_type", self.os_disk_cache_type, CACHING_TYPES, errs)
        _check_enum("os_disk_storage_account_type", self.os_disk_storage_account_type, STORAGE_ACCOUNT_TYPES, errs)
        _check_enum("data_disk_cache_type", self.data_disk_cache_type, CACHING_TYPES, errs)
        _check_enum("data_disk_storage_account_type", self.data_disk_storage_account_type, STORAGE_ACCOUNT_TYPES, errs)

        if self.image_resource_id:
            try:
                rid = parse_resource_id(self.image_resource_id)
                valid = rid.is_type("Microsoft.Compute", "images")
            except ValueError:
                valid = False
            if not valid:
                errs.append(f"image_resource_id: {self.image_resource_id!r} is not a valid image resource id")

        if self.has_shared_image_destination:
            e, w = self.shared_image_destination.validate("shared_image_destination")
            errs.extend(e)
            warns.extend(w)

        if not self.has_shared_image_destination and not self.image_resource_id:
            errs.append("image_resource_id or shared_image_destination is required")

        _check_enum("image_hyperv_generation", self.image_hyperv_generation, HYPERV_GENERATIONS, errs)

        if self.lvm_root_device:
            problem = validate_lvm_root_device(self.lvm_root_device)
            if problem:
                errs.append(f"lvm_root_device: {problem}")

        if errs:
            raise ConfigError(message="Invalid build template", errors=errs)
        return warns


def load_build_config(path: Path) -> BuildConfig:
    """Read and decode a YAML build template.

    Raises:
        ConfigError: If the file cannot be read or decoded.
    """
    try:
        raw = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigError(message=f"Cannot read build template {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(message=f"Cannot parse build template {path}: {e}") from e
    return BuildConfig.from_dict(raw or {})
