# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Everything user-facing: output targets (chat, console, job store), the
block formatting they share, and progress reporting.
"""

from .types import Block, BlockContent, BlockHandle, MessageContent, MessageHandle, OutputTarget
from .output import Output
from .bridge import TreeBridge
from .progress import Progress, ProgressTarget, NullProgress, FileProgress, ChatProgress, extract_error

__all__ = [
    "Block",
    "BlockContent",
    "BlockHandle",
    "MessageContent",
    "MessageHandle",
    "OutputTarget",
    "Output",
    "TreeBridge",
    "Progress",
    "ProgressTarget",
    "NullProgress",
    "FileProgress",
    "ChatProgress",
    "extract_error",
]
