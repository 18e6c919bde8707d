# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Function and SDK tools, and the class-based ``BaseTool``."""

import time
import inspect
import logging

from typing import Any, Awaitable, Callable, ClassVar, Optional, get_type_hints
from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from ..types.errors import ToolValidationError
from ..types.tool_types import FileOutput, ToolContext, ToolInterface, ToolKind, ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def format_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def _is_error_payload(output: Any) -> bool:
    return isinstance(output, dict) and "error" in output and len(output) <= 2


async def finalize_result(
    tool_name: str, raw: Any, context: ToolContext, duration: float
) -> ToolResult:
    """Coerce whatever a tool returned into a ``ToolResult`` and deliver its files.

    Accepted shapes: a ``ToolResult``, a ``FileOutput`` or list of them, a
    ``{"files": [...]}`` dict, or any JSON-serialisable value. A returned
    ``{"error": ...}`` dict is an expected failure: the model sees it verbatim
    and the call is marked unsuccessful.
    """
    if isinstance(raw, ToolResult):
        result = raw
        result.duration = duration
    elif isinstance(raw, FileOutput):
        result = ToolResult(tool_name=tool_name, files=[raw], duration=duration)
    elif isinstance(raw, list) and raw and all(isinstance(f, FileOutput) for f in raw):
        result = ToolResult(tool_name=tool_name, files=list(raw), duration=duration)
    elif isinstance(raw, dict) and isinstance(raw.get("files"), list) and all(
        isinstance(f, FileOutput) for f in raw["files"]
    ):
        rest = {k: v for k, v in raw.items() if k != "files"}
        result = ToolResult(
            tool_name=tool_name, files=raw["files"], output=rest or None, duration=duration
        )
    else:
        result = ToolResult(
            tool_name=tool_name,
            success=not _is_error_payload(raw),
            output=raw,
            duration=duration,
        )

    for file in result.files:
        delivered = await context.send_file(file)
        if not delivered:
            logger.debug(f"{tool_name}: no file handler registered, dropped {file.filename}")
    return result


class FunctionTool(ToolInterface):
    """A tool backed by a plain (async or sync) Python function.

    ``fn`` receives the validated ``input_model`` instance and the context.
    """

    kind = ToolKind.FUNCTION

    def __init__(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel],
        fn: Callable[[BaseModel, ToolContext], Any],
    ):
        self.name = name
        self.description = description
        self.input_model = input_model
        self.fn = fn

    def input_schema(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def validate(self, tool_input: dict[str, Any]) -> BaseModel:
        try:
            return self.input_model.model_validate(tool_input or {})
        except ValidationError as e:
            raise ToolValidationError(self.name, format_validation_error(e)) from e

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> ToolResult:
        try:
            args = self.validate(tool_input)
        except ToolValidationError as e:
            logger.info(f"Tool validation error: {e}")
            return ToolResult(tool_name=self.name, success=False, errors=str(e))

        start = time.perf_counter()
        raw = self.fn(args, context)
        if inspect.isawaitable(raw):
            raw = await raw
        return await finalize_result(self.name, raw, context, time.perf_counter() - start)


class SDKTool(ToolInterface):
    """A provider-native tool declaration.

    ``definition`` is sent to the provider as-is. Calls are executed by
    ``handler``; without one the tool only exists on the provider side and
    any client-side call is reported back as an error.
    """

    kind = ToolKind.SDK

    def __init__(
        self,
        definition: dict[str, Any],
        handler: Optional[Callable[[dict[str, Any], ToolContext], Awaitable[Any]]] = None,
        description: str | None = None,
    ):
        if "name" not in definition:
            raise ValueError("SDK tool definitions must carry a name")
        self.definition = definition
        self.name = definition["name"]
        self.description = description or definition.get("description", "")
        self.handler = handler

    def input_schema(self) -> dict[str, Any]:
        return self.definition.get("input_schema", {"type": "object", "properties": {}})

    def native_definition(self) -> dict[str, Any]:
        return self.definition

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> ToolResult:
        if self.handler is None:
            return ToolResult(
                tool_name=self.name,
                success=False,
                errors=f"{self.name} is executed by the provider and cannot be called here",
            )
        start = time.perf_counter()
        raw = await self.handler(tool_input or {}, context)
        return await finalize_result(self.name, raw, context, time.perf_counter() - start)


def _input_model_from_signature(fn: Callable, name: str) -> tuple[type[BaseModel], bool]:
    """Build a pydantic model from ``fn``'s parameters; ``context`` is injected, not modelled."""
    signature = inspect.signature(fn)
    hints = get_type_hints(fn, include_extras=True)
    fields: dict[str, Any] = {}
    wants_context = False
    for param in signature.parameters.values():
        if param.name == "context":
            wants_context = True
            continue
        annotation = hints.get(param.name, Any)
        default = param.default if param.default is not inspect.Parameter.empty else ...
        fields[param.name] = (annotation, default)
    model_name = "".join(part.capitalize() for part in name.split("_")) + "Input"
    return create_model(model_name, **fields), wants_context


def define_tool(
    name: str | None = None,
    description: str | None = None,
) -> Callable[[Callable], FunctionTool]:
    """Decorator turning a function into a ``FunctionTool``.

    The input schema is derived from the function's annotated parameters; a
    parameter called ``context`` receives the ``ToolContext``.

        @define_tool(description="Add two numbers")
        async def add_numbers(a: int, b: int) -> dict:
            return {"sum": a + b}
    """

    def decorator(fn: Callable) -> FunctionTool:
        tool_name = name or fn.__name__
        input_model, wants_context = _input_model_from_signature(fn, tool_name)

        def call(args: BaseModel, context: ToolContext):
            kwargs = {field: getattr(args, field) for field in type(args).model_fields}
            if wants_context:
                kwargs["context"] = context
            return fn(**kwargs)

        return FunctionTool(
            name=tool_name,
            description=description or inspect.getdoc(fn) or tool_name,
            input_model=input_model,
            fn=call,
        )

    return decorator


class BaseTool(BaseModel):
    """Abstract base class for class-based tools.

    Subclasses declare their arguments as pydantic fields and implement
    ``run``. They are handed to agents through ``as_tool()``, which names
    the tool ``TOOL_NAME``.
    """

    # Class variables for tool metadata
    TOOL_NAME: ClassVar[str]
    TOOL_DESCRIPTION: ClassVar[str]

    model_config = ConfigDict(extra="forbid")

    async def run(self, context: ToolContext) -> Any:
        """Execute the tool's functionality"""
        raise NotImplementedError

    @classmethod
    def generate_examples(cls) -> list[tuple["BaseTool", Any]]:
        """Example invocations with their expected outputs"""
        return []

    @classmethod
    def as_tool(cls) -> FunctionTool:
        return FunctionTool(
            name=cls.TOOL_NAME,
            description=cls.TOOL_DESCRIPTION,
            input_model=cls,
            fn=lambda args, context: args.run(context),
        )
