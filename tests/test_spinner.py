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

"""Tests for azchroot.spinner module."""

from __future__ import annotations

from collections.abc import Generator
from unittest import mock

import pytest

from azchroot import spinner


@pytest.fixture(autouse=True)
def _spinner_enabled() -> Generator[None, None, None]:
    spinner.set_spinner_enabled(True)
    yield
    spinner.set_spinner_enabled(True)


class TestIsTty:
    """Tests for is_tty function."""

    def test_returns_true_when_stdout_is_tty(self, tty_stdout: None) -> None:
        assert spinner.is_tty() is True

    def test_returns_false_when_stdout_is_not_tty(self, non_tty_stdout: None) -> None:
        assert spinner.is_tty() is False


class TestActivitySpinner:
    """Tests for activity_spinner context manager."""

    def test_prints_text_when_not_tty(self) -> None:
        output: list[str] = []
        with mock.patch("sys.__stdout__") as mock_stdout:
            mock_stdout.isatty.return_value = False
            mock_stdout.write = lambda x: output.append(x)

            with spinner.activity_spinner("azure", "Waiting for create disk"):
                pass

        full_output = "".join(output)
        assert "[azure]" in full_output
        assert "Waiting for create disk" in full_output

    def test_plain_text_when_globally_disabled(self) -> None:
        spinner.set_spinner_enabled(False)
        output: list[str] = []
        with mock.patch("sys.__stdout__") as mock_stdout:
            mock_stdout.isatty.return_value = True
            mock_stdout.write = lambda x: output.append(x)
            mock_stdout.flush = lambda: None

            with spinner.activity_spinner("attach", "Waiting for device"):
                pass

        assert "[attach] Waiting for device" in "".join(output)

    def test_yields_control_to_block(self, non_tty_stdout: None) -> None:
        executed = False
        with spinner.activity_spinner("test", "working"):
            executed = True
        assert executed

    def test_exception_propagates(self, non_tty_stdout: None) -> None:
        with pytest.raises(RuntimeError), spinner.activity_spinner("test", "working"):
            raise RuntimeError("boom")
