# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Process-wide token and call accounting, per model id."""

from typing import DefaultDict, Optional
from collections import Counter, defaultdict

from ..types.llm_types import TokenUsage

# A mapping from model ids to accumulated token usage
token_meter: DefaultDict[str, TokenUsage] = defaultdict(TokenUsage)
call_meter: Counter[str] = Counter()


def record_call(model: str) -> None:
    call_meter[model] += 1


def record_usage(model: str, usage: TokenUsage) -> None:
    token_meter[model] += usage


def get_call_count(model: Optional[str] = None) -> int:
    if model is not None:
        return call_meter[model]
    return sum(call_meter.values())


def get_total_usage() -> TokenUsage:
    usage = TokenUsage()
    for model_usage in token_meter.values():
        usage += model_usage
    return usage


def reset_meter() -> None:
    token_meter.clear()
    call_meter.clear()
