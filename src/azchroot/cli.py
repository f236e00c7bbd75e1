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

"""CLI application definition for Azchroot."""

from __future__ import annotations

from typer import Typer

from azchroot.commands.build import build
from azchroot.commands.validate import validate

app: Typer = Typer(
    name="azchroot",
    help="A tool for building Azure images from a chroot on a running Azure VM.",
    add_completion=False,
)

# Register commands
app.command(name="build")(build)
app.command(name="validate")(validate)
