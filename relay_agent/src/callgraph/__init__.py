# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Call tree tracking for agent and tool executions.

This module provides:
- The append-only call tree and its nodes
- Plain-text execution reports
"""

from .node import CallNode, NodeKind, NodeState
from .tree import CallTree

__all__ = ["CallNode", "NodeKind", "NodeState", "CallTree"]
