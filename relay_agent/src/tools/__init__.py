# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from .base_tool import BaseTool, FunctionTool, SDKTool, define_tool
from .calculator import Calculator
from .core import wait, send_file

__all__ = [
    "BaseTool",
    "FunctionTool",
    "SDKTool",
    "define_tool",
    "Calculator",
    "wait",
    "send_file",
]
