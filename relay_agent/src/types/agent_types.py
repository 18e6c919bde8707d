# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from enum import Enum
from typing import Callable, Optional, Union
from datetime import datetime
from pydantic import BaseModel

from .llm_types import TokenUsage
from .tool_types import ToolContext


class AgentStatus(str, Enum):
    """Possible states of an agent execution."""

    SUCCESS = "success"
    ERROR = "error"
    RUNNING = "running"
    INCOMPLETE = "incomplete"  # iteration cap reached before the model finished


class AgentMetrics(BaseModel):
    """Metrics about one agent run."""

    start_time: datetime
    end_time: Optional[datetime] = None
    token_usage: TokenUsage = TokenUsage()
    model_calls: int = 0
    tool_calls: int = 0
    iterations: int = 0
    status: AgentStatus = AgentStatus.RUNNING

    @property
    def duration_seconds(self) -> Optional[float]:
        """Calculate execution duration if completed."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def as_log_line(self) -> str:
        duration = self.duration_seconds
        duration_str = f"{duration:.1f}s" if duration is not None else "running"
        return (
            f"status={self.status.value} iterations={self.iterations} "
            f"model_calls={self.model_calls} tool_calls={self.tool_calls} "
            f"tokens={self.token_usage.total_tokens} duration={duration_str}"
        )


# Static instructions, or a function of the job context that builds them
Instructions = Union[str, Callable[[ToolContext], str]]


def resolve_instructions(instructions: Instructions, context: ToolContext) -> str:
    if callable(instructions):
        return instructions(context)
    return instructions

