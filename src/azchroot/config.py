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

"""Configuration utilities for Azchroot.

This is the tool-level configuration (where runs are logged, how long to
wait on Azure). Build templates are decoded by azchroot.build.config.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from azchroot.duration import parse_duration

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "runs_root": "~/.cache/azchroot/runs",
    },
    "azure": {
        "polling_duration": "15m",
        "device_wait_timeout": "5m",
        "subscription_id": None,
    },
    "behavior": {"no_spinner": False},
}


def get_config_path() -> Path:
    """Return the path to the config file."""
    return Path.home() / ".config" / "azchroot" / "config.yaml"


def ensure_config_exists() -> None:
    """Create the config file with defaults if it does not exist."""
    cfg_path = get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if not cfg_path.exists():
        cfg_path.write_text(yaml.safe_dump(DEFAULT_CONFIG))


def load_config() -> dict[str, Any]:
    """Load configuration from disk and merge with defaults.

    Top-level sections are merged shallowly: a section present on disk
    overrides individual keys of the matching default section.
    """
    ensure_config_exists()
    cfg_path = get_config_path()
    try:
        raw = yaml.safe_load(cfg_path.read_text()) or {}
    except yaml.YAMLError:
        raw = {}
    if not isinstance(raw, dict):
        raw = {}

    merged: dict[str, Any] = {}
    for key, val in DEFAULT_CONFIG.items():
        if key in raw and isinstance(raw[key], dict):
            merged[key] = {**val, **raw[key]}
        elif isinstance(val, dict):
            merged[key] = dict(val)
        else:
            merged[key] = raw.get(key, val)

    for pkey, pval in merged.get("paths", {}).items():
        merged["paths"][pkey] = str(Path(pval).expanduser())

    return merged


def polling_timeouts(cfg: dict[str, Any]) -> tuple[float, float]:
    """Return (remote operation deadline, device wait deadline) in seconds."""
    azure_cfg = cfg.get("azure", {})
    polling = parse_duration(azure_cfg.get("polling_duration") or DEFAULT_CONFIG["azure"]["polling_duration"])
    device = parse_duration(azure_cfg.get("device_wait_timeout") or DEFAULT_CONFIG["azure"]["device_wait_timeout"])
    return polling, device
