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

"""Type definitions shared by build steps."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class StepAction(enum.Enum):
    """What the runner does after a step's run()."""

    CONTINUE = "continue"
    HALT = "halt"


@dataclass
class Artifact:
    """Result of a successful build.

    Attributes:
        builder_id: Identifier of the builder that produced the artifact.
        resources: Azure resource ids that make up the artifact.
        generated_data: Values published by steps (e.g. SourceImageName).
    """

    builder_id: str
    resources: list[str] = field(default_factory=list)
    generated_data: dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = ["Azure resources created:", *(f"  {r}" for r in self.resources)]
        return "\n".join(lines)
