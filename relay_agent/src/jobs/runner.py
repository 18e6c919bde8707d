# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Running one job end to end.

The runner opens the job's status message on every output target, mirrors
the call tree into it, drives the agent, and posts the final answer (or the
error) before closing the message.
"""

import asyncio
import logging

from typing import Callable, Iterable, Optional

from .job import Job
from ..config import settings
from ..agents.base_agent import Agent
from ..agents.channels import RunChannels
from ..agents.implementations.master import reply_text
from ..events.delta_stream import SubscriptionGroup
from ..io.types import MessageContent, OutputTarget
from ..io.output import Output
from ..io.bridge import TreeBridge
from ..io.progress import Progress, ProgressTarget
from ..io.job_store_output import JobStoreOutput
from ..oversight.summarizer import Summarizer
from ..storage.job_store import JobStore
from ..storage.models import JobMetadata
from ..types.errors import JobTimeoutError
from ..types.tool_types import FileOutput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Output targets for a job, given the job and its inspector link (if any)
OutputFactory = Callable[[Job, Optional[str]], Iterable[OutputTarget]]
ProgressFactory = Callable[[Job], Iterable[ProgressTarget]]


def _discard_result(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.info(f"Abandoned job finished with an error: {task.exception()}")


class JobRunner:
    def __init__(
        self,
        agent: Agent,
        output_factory: OutputFactory,
        store: Optional[JobStore] = None,
        summarizer: Optional[Summarizer] = None,
        timeout: Optional[float] = None,
        progress_factory: Optional[ProgressFactory] = None,
        summary_grace: float = 10.0,
    ):
        self.agent = agent
        self.output_factory = output_factory
        self.store = store
        self.summarizer = summarizer
        self.timeout = timeout if timeout is not None else settings.JOB_TIMEOUT
        self.progress_factory = progress_factory
        self.summary_grace = summary_grace

    async def __call__(self, job: Job) -> None:
        await self.run(job)

    def _store_output(self, job: Job) -> Optional[JobStoreOutput]:
        if self.store is None:
            return None
        chat = job.chat
        metadata = JobMetadata(
            chat_id=chat.chat_id if chat else None,
            message_id=chat.message_id if chat else None,
            user_id=chat.user_id if chat else None,
            username=chat.username if chat else None,
        )
        try:
            stored = self.store.create_job(job.user_message, metadata, job_id=job.id)
        except OSError as e:
            logger.error(f"[{job.id}] could not create stored job: {e}")
            return None
        return JobStoreOutput(self.store, stored)

    async def _run_agent(self, job: Job, context, channels: RunChannels) -> str:
        task = asyncio.ensure_future(
            self.agent.run(job.user_message, context, node=job.root, channels=channels)
        )
        if not self.timeout:
            return await task
        try:
            # Shielded: a timed-out job keeps running and its result is dropped
            return await asyncio.wait_for(asyncio.shield(task), self.timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_discard_result)
            raise JobTimeoutError(job.id, self.timeout)

    async def run(self, job: Job) -> None:
        store_output = self._store_output(job)
        link = settings.job_link(job.id) if store_output else None
        targets = list(self.output_factory(job, link))
        if store_output:
            targets.append(store_output)
        output = Output(targets)
        progress = Progress(self.progress_factory(job) if self.progress_factory else ())

        message = await output.send_message(MessageContent())
        bridge = TreeBridge(job.tree, message, self.summarizer)

        async def attach_file(file: FileOutput) -> None:
            job.tree.add_file(job.root, file.filename, file.mime_type)
            await output.send_files([file])

        root = job.root
        tree = job.tree
        context = job.to_context(progress=progress, attach_file=attach_file)
        status, answer, error = "error", None, None

        logger.info(f"[{job.id}] running {self.agent.name}: {job.user_message[:80]!r}")
        try:
            channels = RunChannels.fresh(f"{self.agent.name}:{job.id}")
            with SubscriptionGroup() as group:
                channels.pipe_into(root, group)
                raw = await self._run_agent(job, context, channels)

            answer = reply_text(self.agent, raw)
            tree.add_text(root, answer)
            tree.complete(root, answer)
            status = "completed"
        except asyncio.CancelledError:
            tree.fail(root, "Cancelled")
            error = "Cancelled"
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.exception(f"[{job.id}] job failed: {error}")
            tree.fail(root, error)
            tree.add_error(root, error)
        finally:
            completed = job.complete(status, answer=answer, error=error)
            await self._finish(job, bridge, message)
            if completed and store_output:
                store_output.complete(status)

        logger.info(f"[{job.id}] {status} in {tree.root.duration_seconds or 0:.2f}s")

    async def _finish(self, job: Job, bridge: TreeBridge, message) -> None:
        if self.summarizer is not None:
            try:
                await asyncio.wait_for(self.summarizer.wait_idle(), self.summary_grace)
            except asyncio.TimeoutError:
                logger.debug(f"[{job.id}] summaries still pending at close")
        bridge.dispose()
        await message.close()
