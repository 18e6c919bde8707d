# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import asyncio
import logging

from uuid import uuid4
from typing import Awaitable, Callable, Literal, Optional
from datetime import datetime
from dataclasses import dataclass

from ..callgraph.node import CallNode
from ..callgraph.tree import CallTree
from ..types.tool_types import FileOutput, ToolContext

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

JobStatus = Literal["running", "completed", "error"]


@dataclass
class ChatBinding:
    """Where a job came from and where its replies go."""

    chat_id: str
    message_id: Optional[int] = None
    user_id: Optional[int] = None
    username: Optional[str] = None
    thread_id: Optional[int] = None


class Job:
    """
    One user request and its execution tree.

    The tree is created with the job, so observers can attach to
    ``job.root`` before the job is picked up by a worker.
    """

    def __init__(
        self,
        user_message: str,
        agent_name: str = "master_agent",
        chat: Optional[ChatBinding] = None,
        job_id: Optional[str] = None,
    ):
        self.id = job_id or uuid4().hex[:12]
        self.user_message = user_message
        self.chat = chat
        self.tree = CallTree(self.id, agent_name, user_message)
        self.created_at = datetime.now()
        self.completed_at: Optional[datetime] = None
        self.status: JobStatus = "running"
        self.answer: Optional[str] = None
        self.error: Optional[str] = None
        self._done = asyncio.Event()

    @property
    def root(self) -> CallNode:
        return self.tree.root

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

    def complete(
        self,
        status: JobStatus,
        answer: Optional[str] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Record the outcome. Only the first call has any effect."""
        if self._done.is_set():
            logger.warning(f"[{self.id}] job already completed as {self.status}, ignoring {status}")
            return False
        if status == "running":
            raise ValueError("A job cannot be completed as running")
        self.status = status
        self.answer = answer
        self.error = error
        self.completed_at = datetime.now()
        self._done.set()
        return True

    async def wait(self) -> JobStatus:
        await self._done.wait()
        return self.status

    def to_context(
        self,
        progress=None,
        attach_file: Optional[Callable[[FileOutput], Awaitable[None] | None]] = None,
    ) -> ToolContext:
        return ToolContext(
            job_id=self.id,
            chat_id=self.chat.chat_id if self.chat else None,
            user=self.chat.username if self.chat else None,
            progress=progress,
            attach_file=attach_file,
            tree=self.tree,
            node=self.tree.root,
        )

    def __repr__(self) -> str:
        return f"Job(id={self.id!r}, status={self.status!r}, message={self.user_message[:40]!r})"
