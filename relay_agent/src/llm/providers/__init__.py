# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Provider implementations for different LLM services."""

from .base_provider import BaseProvider
from .mock import ScriptedProvider, text_completion, tool_use_completion

__all__ = ["BaseProvider", "ScriptedProvider", "text_completion", "tool_use_completion"]
