# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""The chat platform boundary and its Telegram Bot API implementation."""

import json
import logging

from typing import Any, Optional, Protocol

import httpx

from ..types.errors import RelayAgentError
from ..types.tool_types import FileOutput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class ChatClientError(RelayAgentError):
    def __init__(self, method: str, description: str):
        self.method = method
        self.description = description
        super().__init__(f"{method} failed: {description}")


class ChatClient(Protocol):
    """What the chat output target needs from a chat platform.

    Message ids are integers; text is chat HTML.
    """

    async def send_message(
        self, chat_id: str, text: str, reply_to: Optional[int] = None, thread_id: Optional[int] = None
    ) -> int: ...

    async def edit_message(self, chat_id: str, message_id: int, text: str) -> None: ...

    async def delete_message(self, chat_id: str, message_id: int) -> None: ...

    async def send_photo(
        self, chat_id: str, file: FileOutput, reply_to: Optional[int] = None, thread_id: Optional[int] = None
    ) -> int: ...

    async def send_document(
        self,
        chat_id: str,
        file: FileOutput,
        reply_to: Optional[int] = None,
        caption: Optional[str] = None,
        thread_id: Optional[int] = None,
    ) -> int: ...

    async def send_chat_action(self, chat_id: str, action: str, thread_id: Optional[int] = None) -> None: ...


class TelegramClient:
    """Minimal Telegram Bot API client over ``httpx``."""

    API_URL = "https://api.telegram.org"

    def __init__(self, token: str, http: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        if not token:
            raise ValueError("A Telegram bot token is required")
        self.token = token
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http is None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _call(self, method: str, data: dict[str, Any], files: Optional[dict] = None) -> Any:
        url = f"{self.API_URL}/bot{self.token}/{method}"
        payload = {k: v for k, v in data.items() if v is not None}
        if files:
            response = await self._http.post(url, data=payload, files=files)
        else:
            response = await self._http.post(url, json=payload)
        body = response.json()
        if not body.get("ok"):
            raise ChatClientError(method, body.get("description", f"HTTP {response.status_code}"))
        return body.get("result")

    @staticmethod
    def _reply(reply_to: Optional[int]) -> Optional[dict]:
        return {"message_id": reply_to, "allow_sending_without_reply": True} if reply_to else None

    async def send_message(self, chat_id, text, reply_to=None, thread_id=None) -> int:
        result = await self._call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "parse_mode": "HTML",
                "message_thread_id": thread_id,
                "reply_parameters": self._reply(reply_to),
                "link_preview_options": {"is_disabled": True},
            },
        )
        return result["message_id"]

    async def edit_message(self, chat_id, message_id, text) -> None:
        try:
            await self._call(
                "editMessageText",
                {
                    "chat_id": chat_id,
                    "message_id": message_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "link_preview_options": {"is_disabled": True},
                },
            )
        except ChatClientError as e:
            # Editing to identical content is rejected by the API
            if "message is not modified" not in e.description:
                raise

    async def delete_message(self, chat_id, message_id) -> None:
        await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def _send_file(self, method, field, chat_id, file, reply_to, caption, thread_id) -> int:
        data = {
            "chat_id": chat_id,
            "caption": caption,
            "message_thread_id": thread_id,
        }
        reply = self._reply(reply_to)
        if reply:
            data["reply_parameters"] = json.dumps(reply)
        result = await self._call(method, data, files={field: (file.filename, file.data, file.mime_type)})
        return result["message_id"]

    async def send_photo(self, chat_id, file, reply_to=None, thread_id=None) -> int:
        return await self._send_file("sendPhoto", "photo", chat_id, file, reply_to, None, thread_id)

    async def send_document(self, chat_id, file, reply_to=None, caption=None, thread_id=None) -> int:
        return await self._send_file("sendDocument", "document", chat_id, file, reply_to, caption, thread_id)

    async def send_chat_action(self, chat_id, action, thread_id=None) -> None:
        await self._call("sendChatAction", {"chat_id": chat_id, "action": action, "message_thread_id": thread_id})
