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

"""Placeholder rendering for template strings.

Build templates use placeholders such as ``{{.Device}}`` or
``{{ .MountPath }}``; only plain field references are supported.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*\.([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def render(template: str, data: Mapping[str, object]) -> str:
    """Substitute every ``{{.Name}}`` in template with ``data["Name"]``.

    Raises:
        ValueError: If the template references a name missing from data.
    """

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in data:
            raise ValueError(f"template {template!r}: unknown variable .{key}")
        return str(data[key])

    return PLACEHOLDER_PATTERN.sub(_replace, template)
