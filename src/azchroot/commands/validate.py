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

"""Implementation of `azchroot validate`.

Decodes and validates a build template without creating any Azure
resource. The VM identity comes from instance metadata unless
--location is given, which allows validating off Azure.
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from azchroot.azure.metadata import ComputeInfo, StaticMetadata
from azchroot.build.builder import Builder
from azchroot.build.config import load_build_config
from azchroot.build.errors import EXIT_SUCCESS
from azchroot.build.pipeline import build_steps
from azchroot.commands.build import apply_user_defaults, report_config_error
from azchroot.core.exceptions import AzchrootError, ConfigError
from azchroot.run import RunContext, activity


def validate(
    template: Path = typer.Argument(..., help="Path to the YAML build template"),
    location: str = typer.Option("", "--location", help="Validate for this location instead of querying IMDS"),
    subscription_id: str = typer.Option("", "--subscription-id", help="Subscription used with --location"),
    resource_group: str = typer.Option("", "--resource-group", help="Resource group used with --location"),
) -> None:
    """Validate a build template and list the steps it would run.

    Exit codes:
      0 - Template is valid
      1 - Template is invalid
      9 - Instance metadata could not be read
    """
    with RunContext("validate") as run:
        try:
            config = load_build_config(template)
        except ConfigError as e:
            report_config_error(run, e)
            sys.exit(e.exit_code)
        apply_user_defaults(config, run.cfg)

        metadata = None
        if location:
            metadata = StaticMetadata(
                ComputeInfo(
                    name="validate",
                    subscription_id=subscription_id or config.subscription_id,
                    resource_group_name=resource_group,
                    location=location,
                )
            )

        builder = Builder(config, metadata=metadata, run=run)
        try:
            warnings = builder.prepare()
            steps = build_steps(config, builder.compute_info())
        except ConfigError as e:
            report_config_error(run, e)
            sys.exit(e.exit_code)
        except AzchrootError as e:
            activity("validate", f"ERROR: {e.message}")
            run.write_summary(status="failed", error=e.message)
            sys.exit(e.exit_code)

        for warning in warnings:
            activity("config", f"Warning: {warning}")
        activity("validate", f"Template {template} is valid; build would run:")
        for step in steps:
            activity("validate", f"  {step.name}")
        run.write_summary(status="success", steps=[s.name for s in steps], warnings=warnings)
        sys.exit(EXIT_SUCCESS)
