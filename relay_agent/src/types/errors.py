# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Exception hierarchy shared across the agent runtime."""


class RelayAgentError(Exception):
    """Base class for errors raised by the agent runtime."""


class ToolValidationError(RelayAgentError):
    """Tool input did not match the tool's declared schema."""

    def __init__(self, tool_name: str, details: str):
        self.tool_name = tool_name
        self.details = details
        super().__init__(f"Invalid input for {tool_name}: {details}")


class UnknownToolError(RelayAgentError):
    """The model asked for a tool the agent does not have."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class OutputValidationError(RelayAgentError):
    """The final answer did not match the agent's output schema."""

    def __init__(self, agent_name: str, details: str, raw_output: str = ""):
        self.agent_name = agent_name
        self.details = details
        self.raw_output = raw_output
        super().__init__(f"{agent_name} returned output that failed validation: {details}")


class ModelCallError(RelayAgentError):
    """A request to the model provider failed."""

    def __init__(self, model: str, message: str):
        self.model = model
        super().__init__(f"Model call to {model} failed: {message}")


class JobTimeoutError(RelayAgentError):
    """A job exceeded its end-to-end time limit."""

    def __init__(self, job_id: str, timeout: float):
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Job {job_id} timed out after {timeout:g}s")
