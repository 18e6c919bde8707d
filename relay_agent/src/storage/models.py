# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Persisted job records.

A ``StoredJob`` is written as one JSON document per job and holds the block
tree the job produced, so that a finished job can be inspected after the
process that ran it has gone.
"""

from typing import Any, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field

JobStatus = Literal["running", "completed", "error"]
BlockType = Literal["agent", "tool", "text", "file", "error"]
StoredBlockState = Literal["in_progress", "completed", "error"]


class StoredBlock(BaseModel):
    id: str
    type: BlockType
    name: str
    state: StoredBlockState = "in_progress"
    task: Optional[str] = None
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    thinking: Optional[str] = None
    summary: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, description="Seconds")
    children: list["StoredBlock"] = Field(default_factory=list)

    def find(self, block_id: str) -> Optional["StoredBlock"]:
        if self.id == block_id:
            return self
        for child in self.children:
            found = child.find(block_id)
            if found is not None:
                return found
        return None


class StoredJob(BaseModel):
    id: str
    chat_id: Optional[str] = None
    message_id: Optional[int] = None
    user_id: Optional[int] = None
    username: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, description="Seconds")
    status: JobStatus = "running"
    task: str = ""
    blocks: list[StoredBlock] = Field(default_factory=list)

    def find_block(self, block_id: str) -> Optional[StoredBlock]:
        for block in self.blocks:
            found = block.find(block_id)
            if found is not None:
                return found
        return None


class JobMetadata(BaseModel):
    chat_id: Optional[str] = None
    message_id: Optional[int] = None
    user_id: Optional[int] = None
    username: Optional[str] = None
