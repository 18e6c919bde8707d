# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import pytest

from typing import Optional

from src.llm.api import set_provider
from src.llm.metering import reset_meter
from src.types.tool_types import FileOutput

# Enable asyncio support for pytest
pytest_plugins = ["pytest_asyncio"]


def pytest_addoption(parser):
    parser.addoption(
        "--run-llm",
        action="store_true",
        default=False,
        help="Run tests marked with 'uses_llm'",
    )
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run tests marked with 'slow'",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "uses_llm: test calls a real model provider")
    config.addinivalue_line("markers", "slow: test takes more than a few seconds")


# Skip tests based on markers unless the corresponding option is provided
def pytest_collection_modifyitems(config, items):
    if not config.getoption("--run-llm"):
        skip_llm = pytest.mark.skip(reason="need --run-llm option to run")
        for item in items:
            if "uses_llm" in item.keywords:
                item.add_marker(skip_llm)
    if not config.getoption("--run-slow"):
        skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def _reset_llm_state():
    """Tests never fall through to the configured provider, and start with a clean meter."""
    reset_meter()
    yield
    set_provider(None)


class FakeChatClient:
    """Records every chat call. Message ids count up from 100."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.messages: dict[int, str] = {}
        self.fail_on: set[str] = set()
        self._next_id = 100

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if method in self.fail_on:
            raise RuntimeError(f"{method} failed")

    def of(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]

    async def send_message(self, chat_id: str, text: str, reply_to: Optional[int] = None, thread_id: Optional[int] = None) -> int:
        self._record("send_message", chat_id, text, reply_to)
        message_id = self._new_id()
        self.messages[message_id] = text
        return message_id

    async def edit_message(self, chat_id: str, message_id: int, text: str) -> None:
        self._record("edit_message", chat_id, message_id, text)
        self.messages[message_id] = text

    async def delete_message(self, chat_id: str, message_id: int) -> None:
        self._record("delete_message", chat_id, message_id)
        self.messages.pop(message_id, None)

    async def send_photo(self, chat_id: str, file: FileOutput, reply_to: Optional[int] = None, thread_id: Optional[int] = None) -> int:
        self._record("send_photo", chat_id, file.filename, reply_to)
        return self._new_id()

    async def send_document(
        self,
        chat_id: str,
        file: FileOutput,
        reply_to: Optional[int] = None,
        caption: Optional[str] = None,
        thread_id: Optional[int] = None,
    ) -> int:
        self._record("send_document", chat_id, file.filename, reply_to)
        return self._new_id()

    async def send_chat_action(self, chat_id: str, action: str, thread_id: Optional[int] = None) -> None:
        self._record("send_chat_action", chat_id, action)


@pytest.fixture
def chat_client():
    return FakeChatClient()
