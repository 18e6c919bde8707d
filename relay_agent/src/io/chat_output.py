# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Chat output target.

A ``ChatMessageHandle`` keeps the message text locally and pushes it to the
chat at most once per debounce window. Every network operation goes through a
single writer task, so edits, uploads and deletions reach the chat in the
order they were requested.
"""

import asyncio
import logging

from typing import Optional

from .types import BlockHandle, MessageContent, MessageHandle, OutputTarget
from .chat_client import ChatClient
from .formatting import format_blocks, markdown_to_chat_html
from .message_splitter import split_message
from ..config import settings
from ..types.tool_types import FileOutput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

PLACEHOLDER_TEXT = "..."


class ChatMessageHandle(MessageHandle):
    def __init__(
        self,
        client: ChatClient,
        chat_id: str,
        content: MessageContent,
        reply_to: Optional[int] = None,
        thread_id: Optional[int] = None,
        debounce: float = 0.5,
        verbose: bool = False,
        existing_message_id: Optional[int] = None,
        job_link: Optional[str] = None,
        max_length: int = 4096,
    ):
        super().__init__()
        self.client = client
        self.chat_id = chat_id
        self.reply_to = reply_to
        self.thread_id = thread_id
        self.debounce = debounce
        self.verbose = verbose
        self.job_link = job_link
        self.max_length = max_length

        self.message_ids: list[int] = []
        self._text = content.text
        self._last_sent_text: Optional[str] = None
        self._sent_chunks: list[str] = []
        self._deleted = False
        self._closed = False

        self._loop = asyncio.get_running_loop()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._queue: asyncio.Queue[tuple[str, object]] = asyncio.Queue()

        if existing_message_id is not None:
            self.message_ids = [existing_message_id]
            self._last_sent_text = content.text
        elif content.text:
            self._queue.put_nowait(("replace", content.text))
        for file in content.files:
            self._queue.put_nowait(("photo" if file.is_image else "file", file))

        self._worker = asyncio.create_task(self._process_queue())

    # MessageHandle ===========================================================

    def append(self, text: str) -> None:
        self._text = f"{self._text}\n{text}" if self._text else text
        self._schedule_flush()

    def replace_with(self, text: str) -> None:
        self._text = text
        self._schedule_flush()

    def add_photo(self, file: FileOutput) -> None:
        self._enqueue("photo", file)

    def add_file(self, file: FileOutput) -> None:
        self._enqueue("file", file)

    def clear(self) -> None:
        self._enqueue("clear", None)

    def on_block_change(self, handle: BlockHandle) -> None:
        self.replace_with(format_blocks(self.blocks, self.verbose, self.job_link))

    async def close(self) -> None:
        """Flush pending text, wait for queued operations and stop the writer."""
        if self._closed:
            return
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._queue.put_nowait(("replace", self._text))
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass

    # Scheduling ==============================================================

    def _enqueue(self, op: str, arg: object) -> None:
        if self._closed:
            logger.warning(f"Chat message handle closed, dropping {op}")
            return
        self._queue.put_nowait((op, arg))

    def _schedule_flush(self) -> None:
        if self._closed:
            logger.warning("Chat message handle closed, dropping text update")
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.debounce, self._flush)

    def _flush(self) -> None:
        self._timer = None
        self._queue.put_nowait(("replace", self._text))

    async def _process_queue(self) -> None:
        while True:
            op, arg = await self._queue.get()
            try:
                await self._execute(op, arg)
            except Exception as e:
                logger.error(f"Chat output: {op} failed: {e}")
            finally:
                self._queue.task_done()

    # Operations ==============================================================

    async def _execute(self, op: str, arg: object) -> None:
        if self._deleted and op not in ("photo", "file"):
            return
        if op == "replace":
            await self._replace(arg)
        elif op == "photo":
            await self.client.send_chat_action(self.chat_id, "upload_photo", self.thread_id)
            await self.client.send_photo(self.chat_id, arg, reply_to=self.reply_to, thread_id=self.thread_id)
        elif op == "file":
            await self.client.send_chat_action(self.chat_id, "upload_document", self.thread_id)
            await self.client.send_document(self.chat_id, arg, reply_to=self.reply_to, thread_id=self.thread_id)
        elif op == "clear":
            await self._delete_messages(self.message_ids)
            self.message_ids = []
            self._sent_chunks = []
            self._deleted = True
        else:
            raise ValueError(f"Unknown chat operation {op!r}")

    async def _replace(self, text: str) -> None:
        if text == self._last_sent_text:
            return

        chunks = split_message(markdown_to_chat_html(text or PLACEHOLDER_TEXT), self.max_length)
        new_ids: list[int] = []
        for i, chunk in enumerate(chunks):
            if i < len(self.message_ids):
                message_id = self.message_ids[i]
                if i >= len(self._sent_chunks) or self._sent_chunks[i] != chunk:
                    try:
                        await self.client.edit_message(self.chat_id, message_id, chunk)
                    except Exception as e:
                        logger.debug(f"Failed to edit message {message_id}: {e}")
                new_ids.append(message_id)
            else:
                reply_to = self.reply_to if i == 0 else new_ids[-1] if new_ids else self.reply_to
                try:
                    message_id = await self.client.send_message(
                        self.chat_id, chunk, reply_to=reply_to, thread_id=self.thread_id
                    )
                except Exception as e:
                    logger.error(f"Failed to send message chunk {i + 1}/{len(chunks)}: {e}")
                    continue
                new_ids.append(message_id)

        await self._delete_messages(self.message_ids[len(chunks):])

        self.message_ids = new_ids
        self._sent_chunks = chunks[: len(new_ids)]
        self._last_sent_text = text

    async def _delete_messages(self, message_ids: list[int]) -> None:
        for message_id in message_ids:
            try:
                await self.client.delete_message(self.chat_id, message_id)
            except Exception as e:
                logger.debug(f"Failed to delete message {message_id}: {e}")


class ChatOutput(OutputTarget):
    """Output target writing to one chat, optionally replying to a message."""

    def __init__(
        self,
        client: ChatClient,
        chat_id: str,
        reply_to: Optional[int] = None,
        thread_id: Optional[int] = None,
        debounce: Optional[float] = None,
        verbose: Optional[bool] = None,
        existing_message_id: Optional[int] = None,
        job_link: Optional[str] = None,
        max_length: Optional[int] = None,
    ):
        self.client = client
        self.chat_id = chat_id
        self.reply_to = reply_to
        self.thread_id = thread_id
        self.debounce = settings.debounce_seconds if debounce is None else debounce
        self.verbose = settings.VERBOSE if verbose is None else verbose
        self.existing_message_id = existing_message_id
        self.job_link = job_link
        self.max_length = max_length or settings.MAX_MESSAGE_LENGTH

    async def send_message(self, content: MessageContent) -> ChatMessageHandle:
        existing, self.existing_message_id = self.existing_message_id, None
        return ChatMessageHandle(
            self.client,
            self.chat_id,
            content,
            reply_to=self.reply_to,
            thread_id=self.thread_id,
            debounce=self.debounce,
            verbose=self.verbose,
            existing_message_id=existing,
            job_link=self.job_link,
            max_length=self.max_length,
        )
