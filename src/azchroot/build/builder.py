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

"""Top-level builder: prepare a template, run the step pipeline, return the artifact."""

from __future__ import annotations

import logging
import sys
from typing import Any

from azchroot.azure.client import DEFAULT_POLLING_TIMEOUT, AzureClientSet
from azchroot.azure.diskattacher import DiskAttacher
from azchroot.azure.metadata import ComputeInfo, MetadataClient, MetadataSource
from azchroot.build.config import BuildConfig
from azchroot.build.pipeline import build_steps
from azchroot.build.state import BuildState, ProvisionHook
from azchroot.build.step import run_steps
from azchroot.build.steps.chroot import ChrootCommandsHook
from azchroot.build.types import Artifact
from azchroot.core.cancel import CancelToken
from azchroot.core.exceptions import AzureOperationError, ConfigError
from azchroot.lvm.tools import LvmTools, SystemLvmTools
from azchroot.run import RunContext

logger = logging.getLogger(__name__)

BUILDER_ID = "azure.chroot"
SUPPORTED_PLATFORMS = ("linux", "freebsd")


class Builder:
    """Builds one image from a decoded build template.

    Collaborators default to the real Azure and LVM implementations; tests
    pass fakes for any of them.
    """

    def __init__(
        self,
        config: BuildConfig,
        *,
        metadata: MetadataSource | None = None,
        client: AzureClientSet | None = None,
        attacher: DiskAttacher | None = None,
        lvm_tools: LvmTools | None = None,
        hook: ProvisionHook | None = None,
        run: RunContext | None = None,
        credential: Any | None = None,
        polling_timeout: float = DEFAULT_POLLING_TIMEOUT,
        device_wait_timeout: float = 300.0,
    ) -> None:
        self.config = config
        self.metadata = metadata or (client.metadata if client is not None else MetadataClient())
        self.client = client
        self.attacher = attacher
        self.lvm_tools = lvm_tools
        self.hook = hook
        self.run_context = run
        self.credential = credential
        self.polling_timeout = polling_timeout
        self.device_wait_timeout = device_wait_timeout
        self.cancel_token = client.cancel if client is not None else CancelToken()
        self.info: ComputeInfo | None = None
        self._prepared = False

    def compute_info(self) -> ComputeInfo:
        if self.info is None:
            try:
                self.info = self.metadata.get_compute_info()
            except AzureOperationError as e:
                logger.error(f"Retrieving VM metadata failed: {e.message}")
                raise AzureOperationError(
                    message=(
                        "Error retrieving information ARM resource ID and location of the VM "
                        "that azchroot is running on.\n"
                        "Please verify that azchroot is running on a proper Azure VM."
                    ),
                    operation=e.operation,
                ) from e
        return self.info

    def prepare(self) -> list[str]:
        """Apply defaults and validate the template against this VM.

        Returns:
            Warnings to show the user.

        Raises:
            ConfigError: If the template is invalid.
        """
        warnings = self.config.prepare(self.compute_info())
        self._prepared = True
        for warning in warnings:
            logger.warning(warning)
        return warnings

    def cancel(self, reason: str = "build cancelled") -> None:
        """Request the running build to stop; cleanup still runs."""
        self.cancel_token.cancel(reason)

    def run(self) -> Artifact:
        """Run the pipeline and return the artifact.

        Raises:
            AzchrootError: The error recorded by the step that halted the build.
        """
        if not sys.platform.startswith(SUPPORTED_PLATFORMS):
            raise ConfigError(message="the azure chroot builder only works on Linux and FreeBSD environments")

        info = self.compute_info()
        if not self._prepared:
            self.prepare()

        client = self.client or AzureClientSet(
            self.config.subscription_id or info.subscription_id,
            credential=self.credential,
            metadata=self.metadata,
            cancel=self.cancel_token,
            polling_timeout=self.polling_timeout,
        )
        attacher = self.attacher or DiskAttacher(client)
        lvm_tools = self.lvm_tools or SystemLvmTools()
        hook = self.hook
        if hook is None and self.config.provision_commands:
            hook = ChrootCommandsHook(self.config.provision_commands)

        state = BuildState(
            self.config,
            info,
            client=client,
            attacher=attacher,
            lvm_tools=lvm_tools,
            hook=hook,
            run=self.run_context,
            cancel=self.cancel_token,
            device_wait_timeout=self.device_wait_timeout,
        )

        steps = build_steps(self.config, info)
        logger.info(f"Running {len(steps)} steps: {', '.join(s.name for s in steps)}")
        run_steps(steps, state)

        if state.error is not None:
            raise state.error
        return self.artifact(state, info.subscription_id)

    def artifact(self, state: BuildState, subscription_id: str) -> Artifact:
        resources: list[str] = []
        if self.config.image_resource_id:
            resources.append(self.config.image_resource_id)
        if self.config.shared_image_destination.is_valid():
            resources.append(self.config.shared_image_destination.resource_id(subscription_id))
        if self.config.skip_cleanup:
            resources.extend(state.created_resources())
        return Artifact(builder_id=BUILDER_ID, resources=resources, generated_data=dict(state.generated_data))
