# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import ast
import logging
import operator

from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolContext, ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
MAX_EXPONENT = 1000


def evaluate(expression: str) -> int | float:
    """Evaluate an arithmetic expression without ``eval``. ``^`` means power."""
    tree = ast.parse(expression.replace("^", "**"), mode="eval")

    def _eval(node: ast.AST) -> int | float:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant) and type(node.value) in (int, float):
            return node.value
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            left, right = _eval(node.left), _eval(node.right)
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                raise ValueError(f"Exponent {right} is too large")
            return _BINARY_OPS[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](_eval(node.operand))
        raise ValueError(f"Unsupported expression element: {type(node).__name__}")

    return _eval(tree)


class Calculator(BaseTool):
    TOOL_NAME = "calculate"
    TOOL_DESCRIPTION = """Evaluate an arithmetic expression exactly.
Operators: + - * / // % and ^ (power), with parentheses. Numbers and operators only;
names, function calls and attribute access are rejected."""

    reasoning: str = Field(
        ..., description="Why this calculation is needed, in one sentence"
    )
    expression: str = Field(
        ...,
        description="Mathematical expression to evaluate",
        pattern=r"^[\d\s\+\-\*\/\(\)\.\^%]+$",
    )

    async def run(self, context: ToolContext) -> ToolResult:
        try:
            result = evaluate(self.expression)
            return ToolResult(tool_name=self.TOOL_NAME, success=True, output=str(result))
        except (SyntaxError, ValueError, ArithmeticError) as e:
            return ToolResult(
                tool_name=self.TOOL_NAME, success=False, errors=str(e) or type(e).__name__
            )

    @classmethod
    def generate_examples(cls) -> list[tuple["Calculator", ToolResult]]:
        return [
            (
                cls(
                    reasoning="Total items: two in the first order, three in the second",
                    expression="2 + 3",
                ),
                ToolResult(tool_name=cls.TOOL_NAME, success=True, output=str(5)),
            ),
            (
                cls(
                    reasoning="Split twelve units evenly between two people",
                    expression="(3 * 4) / 2",
                ),
                ToolResult(tool_name=cls.TOOL_NAME, success=True, output=str(6.0)),
            ),
        ]
