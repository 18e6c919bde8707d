# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Built-in agents."""

from .math_agent import build_math_agent, add_numbers
from .master import build_master_agent, MasterReply, reply_text

__all__ = ["build_math_agent", "add_numbers", "build_master_agent", "MasterReply", "reply_text"]
