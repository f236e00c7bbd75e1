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

"""Implementation of `azchroot build`.

Runs on an Azure VM: creates a disk from the template's source, attaches
it to this VM, provisions it in a chroot and captures the result as a
managed image and/or a shared image gallery version.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer

from azchroot.build.builder import Builder
from azchroot.build.config import BuildConfig, load_build_config
from azchroot.build.errors import EXIT_CONFIG_ERROR, EXIT_SUCCESS
from azchroot.config import polling_timeouts
from azchroot.core.exceptions import AzchrootError, ConfigError
from azchroot.run import RunContext, activity
from azchroot.spinner import activity_spinner, set_spinner_enabled

CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def report_config_error(run: RunContext, error: ConfigError) -> None:
    """Print every validation problem and record it in the run."""
    activity("config", error.message)
    for problem in error.errors:
        activity("config", f"  * {problem}")
    run.log_event({"event": "config.error", "message": error.message, "errors": error.errors})
    run.write_summary(status="failed", error=error.message, errors=error.errors)


def apply_user_defaults(config: BuildConfig, cfg: dict[str, Any]) -> None:
    """Fill template values that may also come from the user configuration."""
    if not config.subscription_id:
        config.subscription_id = (cfg.get("azure") or {}).get("subscription_id") or ""


def install_cancel_handlers(builder: Builder) -> dict[int, Any]:
    """Turn SIGINT/SIGTERM into a build cancellation; return the previous handlers."""

    def _handler(signum: int, frame: object) -> None:
        activity("build", f"Received signal {signal.Signals(signum).name}, cancelling build and cleaning up...")
        builder.cancel(f"interrupted by {signal.Signals(signum).name}")

    previous: dict[int, Any] = {}
    for sig in CANCEL_SIGNALS:
        previous[sig] = signal.signal(sig, _handler)
    return previous


def restore_handlers(previous: dict[int, Callable[..., Any] | int | None]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def build(
    template: Path = typer.Argument(..., help="Path to the YAML build template"),
    no_spinner: bool = typer.Option(False, "-q", "--no-spinner", help="Disable spinner output (quiet)"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Write debug logging to the run log"),
) -> None:
    """Build an Azure image from a chroot on this VM.

    Exit codes:
      0 - Success
      1 - Configuration error
      7 - Build step failed
      8 - Cleanup failed before capture
      9 - Azure operation failed or timed out
      70 - Internal error
      130 - Cancelled
    """
    with RunContext("build", verbose=verbose) as run:
        cfg = run.cfg
        set_spinner_enabled(not (no_spinner or (cfg.get("behavior") or {}).get("no_spinner", False)))

        try:
            polling_timeout, device_wait_timeout = polling_timeouts(cfg)
        except ValueError as e:
            activity("config", f"Invalid duration in user configuration: {e}")
            run.write_summary(status="failed", error=str(e))
            sys.exit(EXIT_CONFIG_ERROR)

        try:
            config = load_build_config(template)
        except ConfigError as e:
            report_config_error(run, e)
            sys.exit(e.exit_code)
        apply_user_defaults(config, cfg)

        builder = Builder(
            config,
            run=run,
            polling_timeout=polling_timeout,
            device_wait_timeout=device_wait_timeout,
        )

        try:
            with activity_spinner("build", "Reading VM metadata and validating template"):
                warnings = builder.prepare()
        except ConfigError as e:
            report_config_error(run, e)
            sys.exit(e.exit_code)
        except AzchrootError as e:
            activity("build", f"ERROR: {e.message}")
            run.write_summary(status="failed", error=e.message)
            sys.exit(e.exit_code)

        for warning in warnings:
            activity("config", f"Warning: {warning}")
        run.log_event({"event": "build.start", "template": str(template), "warnings": warnings})

        previous = install_cancel_handlers(builder)
        try:
            artifact = builder.run()
        except AzchrootError as e:
            activity("build", f"Build failed: {e.message}")
            run.log_event({"event": "build.failed", "message": e.message, "exit_code": e.exit_code})
            run.write_summary(status="failed", error=e.message, exit_code=e.exit_code)
            sys.exit(e.exit_code)
        finally:
            restore_handlers(previous)

        for line in str(artifact).splitlines():
            activity("build", line)
        run.log_event({"event": "build.complete", "resources": artifact.resources})
        run.write_summary(
            status="success",
            builder_id=artifact.builder_id,
            resources=artifact.resources,
            generated_data=artifact.generated_data,
        )
        sys.exit(EXIT_SUCCESS)
