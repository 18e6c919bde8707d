# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Web server package for inspecting jobs."""

from .server import run_server, JobNotifier

__all__ = ["run_server", "JobNotifier"]
