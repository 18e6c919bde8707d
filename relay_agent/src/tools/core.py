# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Small built-in tools available to every bundled agent."""

import asyncio
import logging

from pathlib import Path
from typing import Annotated
from pydantic import Field

from .base_tool import define_tool
from ..types.tool_types import FileOutput, ToolContext

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MAX_WAIT_SECONDS = 60.0


@define_tool(description="Pause for a number of seconds, e.g. before retrying a rate-limited call.")
async def wait(
    seconds: Annotated[float, Field(ge=0, le=MAX_WAIT_SECONDS, description="Seconds to wait")],
) -> dict:
    await asyncio.sleep(seconds)
    return {"waited": seconds}


@define_tool(description="Send a local file to the user as an attachment.")
async def send_file(
    path: Annotated[str, Field(description="Path of the file to send")],
    context: ToolContext,
) -> dict:
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        return {"error": f"File not found: {path}"}
    file = FileOutput.from_path(file_path)
    if not await context.send_file(file):
        return {"error": "This conversation cannot receive files"}
    logger.info(f"Sent {file.filename} ({len(file.data)} bytes) to job {context.job_id}")
    return {"sent": file.filename, "mime_type": file.mime_type}
