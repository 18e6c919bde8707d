# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""LLM integration module.

This module provides a provider-neutral interface for model calls. The agent
loop depends only on these types and helpers.
"""

import logging

from .base import (
    Message,
    Completion,
    CompletionChunk,
    ChunkType,
    BlockType,
    TimingInfo,
)
from .api import create_completion, create_streaming_completion, get_provider, set_provider
from .metering import token_meter, get_total_usage

# Quieten LLM API call logs to make stdout more useful
logging.getLogger("httpx").setLevel(logging.WARNING)

__all__ = [
    "Message",
    "Completion",
    "CompletionChunk",
    "ChunkType",
    "BlockType",
    "TimingInfo",
    "create_completion",
    "create_streaming_completion",
    "get_provider",
    "set_provider",
    "token_meter",
    "get_total_usage",
]
