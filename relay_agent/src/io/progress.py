# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Multi-target progress reporting.

Agents report coarse status changes (agent started, tool finished, error) to
a ``Progress`` instance, which forwards each report to all of its targets.

    progress = Progress([FileProgress(path), ChatProgress(handle)])
    await progress.agent("math_agent", "started")
    await progress.tool("add_numbers", "completed", '{"sum": 5}')
"""

import json
import logging
import traceback

from abc import ABC, abstractmethod
from typing import Any, Iterable, Literal, Optional
from pathlib import Path
from datetime import datetime
from dataclasses import dataclass

from .types import MessageHandle

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

Status = Literal["started", "completed", "error"]


@dataclass
class ExtractedError:
    message: str
    code: Optional[str] = None
    stack: Optional[str] = None
    context: Optional[dict[str, Any]] = None


def extract_error(error: Any) -> ExtractedError:
    """Normalise exceptions, strings and error dicts into one shape."""
    if isinstance(error, ExtractedError):
        return error
    if isinstance(error, BaseException):
        stack = None
        if error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        code = getattr(error, "code", None)
        return ExtractedError(
            message=str(error) or type(error).__name__,
            code=str(code) if code is not None else None,
            stack=stack,
        )
    if isinstance(error, str):
        return ExtractedError(message=error)
    if isinstance(error, dict):
        message = error.get("message") or error.get("error") or json.dumps(error, default=str)
        code = error.get("code")
        return ExtractedError(
            message=str(message), code=str(code) if code is not None else None, context=error
        )
    return ExtractedError(message=str(error))


class ProgressTarget(ABC):
    @abstractmethod
    async def agent(self, name: str, status: Status, message: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def tool(self, name: str, status: Status, result: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def message(self, text: str) -> None:
        pass

    @abstractmethod
    async def error(self, error: ExtractedError) -> None:
        pass


class NullProgress(ProgressTarget):
    async def agent(self, name, status, message=None):
        pass

    async def tool(self, name, status, result=None):
        pass

    async def message(self, text):
        pass

    async def error(self, error):
        pass


class FileProgress(ProgressTarget):
    """Appends one timestamped line per report to a log file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _write(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    @staticmethod
    def _now() -> str:
        return datetime.now().isoformat()

    async def agent(self, name, status, message=None):
        suffix = f" - {message}" if message else ""
        self._write(f"[{self._now()}] AGENT {name} {status.upper()}{suffix}")

    async def tool(self, name, status, result=None):
        suffix = f" - {result}" if result else ""
        self._write(f"[{self._now()}] TOOL {name} {status.upper()}{suffix}")

    async def message(self, text):
        self._write(f"[{self._now()}] MSG {text}")

    async def error(self, error):
        self._write(f"[{self._now()}] ERROR {error.message}")
        if error.code:
            self._write(f"  Code: {error.code}")
        if error.context:
            self._write(f"  Context: {json.dumps(error.context, default=str)}")
        if error.stack:
            self._write(f"  Stack: {error.stack.rstrip()}")


class ChatProgress(ProgressTarget):
    """Keeps a running list of status lines in one (debounced) chat message."""

    def __init__(self, handle: MessageHandle, max_lines: int = 20, result_preview: int = 50):
        self.handle = handle
        self.max_lines = max_lines
        self.result_preview = result_preview
        self.lines: list[str] = []

    def _render(self) -> None:
        self.handle.replace_with("\n".join(self.lines[-self.max_lines:]))

    async def agent(self, name, status, message=None):
        icon = {"started": "🤖", "completed": "✅"}.get(status, "❌")
        label = {"started": "working", "completed": "done"}.get(status, "failed")
        suffix = f" - {message}" if message and status != "started" else ""
        line = f"{icon} **{name}** {label}{suffix}"
        if status == "started":
            self.lines.append(line)
        else:
            for i in range(len(self.lines) - 1, -1, -1):
                if f"**{name}**" in self.lines[i]:
                    self.lines[i] = line
                    break
            else:
                self.lines.append(line)
        self._render()

    async def tool(self, name, status, result=None):
        if status == "started":
            return
        icon = "→" if status == "completed" else "✗"
        text = result or ""
        if len(text) > self.result_preview:
            text = text[: self.result_preview - 3] + "..."
        self.lines.append(f"  {icon} {name}: {text}" if text else f"  {icon} {name}")
        self._render()

    async def message(self, text):
        self.lines.append(f"  {text}")
        self._render()

    async def error(self, error):
        self.lines.append(f"❌ Error: {error.message}")
        self._render()


class Progress:
    """Dispatches every report to all targets. A failing target is logged and skipped."""

    def __init__(self, targets: Iterable[ProgressTarget] = ()):
        self.targets: list[ProgressTarget] = list(targets)

    def add_target(self, target: ProgressTarget) -> "Progress":
        self.targets.append(target)
        return self

    def remove_target(self, target: ProgressTarget) -> "Progress":
        if target in self.targets:
            self.targets.remove(target)
        return self

    async def _dispatch(self, method: str, *args) -> None:
        for target in self.targets:
            try:
                await getattr(target, method)(*args)
            except Exception as e:
                logger.error(f"Progress target {type(target).__name__}.{method} failed: {e}")

    async def agent(self, name: str, status: Status, message: Optional[str] = None) -> None:
        await self._dispatch("agent", name, status, message)

    async def tool(self, name: str, status: Status, result: Optional[str] = None) -> None:
        await self._dispatch("tool", name, status, result)

    async def message(self, text: str) -> None:
        await self._dispatch("message", text)

    async def error(self, error: Any) -> None:
        await self._dispatch("error", extract_error(error))
