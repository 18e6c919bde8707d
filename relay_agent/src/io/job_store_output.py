# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Output target that persists a job's blocks and notifies live viewers."""

import json
import logging

from typing import Any

from .types import Block, BlockHandle, MessageContent, MessageHandle, OutputTarget
from ..storage.job_store import JobStore
from ..storage.models import JobStatus, StoredBlock, StoredJob
from ..types.tool_types import FileOutput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return json.loads(json.dumps(value, default=str))


def to_stored_block(block: Block) -> StoredBlock:
    content = block.content
    output = content.text if content.type == "text" else content.result
    return StoredBlock(
        id=block.id,
        type=content.type,
        name=content.filename or content.name or content.type,
        state=block.state.value,
        task=content.task,
        input=_jsonable(content.input),
        output=_jsonable(output),
        error=content.error,
        thinking=content.thinking,
        summary=content.summary,
        started_at=block.started_at,
        completed_at=block.completed_at,
        duration=block.duration_seconds,
        children=[to_stored_block(child) for child in block.children],
    )


class JobStoreMessageHandle(MessageHandle):
    """Only blocks are persisted; plain text and files belong to the chat targets."""

    def __init__(self, job: StoredJob, store: JobStore):
        super().__init__()
        self.job = job
        self.store = store

    def append(self, text: str) -> None:
        pass

    def replace_with(self, text: str) -> None:
        pass

    def add_photo(self, file: FileOutput) -> None:
        pass

    def add_file(self, file: FileOutput) -> None:
        pass

    def clear(self) -> None:
        pass

    def on_block_change(self, handle: BlockHandle) -> None:
        self.job.blocks = [to_stored_block(block) for block in self.blocks]
        try:
            self.store.update_job(self.job)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to persist job {self.job.id}: {e}")
            return
        stored = self.job.find_block(handle.id)
        self.store.notify(
            self.job.id,
            {
                "type": "block_update",
                "blockId": handle.id,
                "block": stored.model_dump(mode="json") if stored else None,
            },
        )


class JobStoreOutput(OutputTarget):
    def __init__(self, store: JobStore, job: StoredJob):
        self.store = store
        self.job = job

    async def send_message(self, content: MessageContent) -> JobStoreMessageHandle:
        return JobStoreMessageHandle(self.job, self.store)

    def complete(self, status: JobStatus) -> None:
        try:
            self.store.complete_job(self.job, status)
        except OSError as e:
            logger.error(f"Failed to complete stored job {self.job.id}: {e}")
