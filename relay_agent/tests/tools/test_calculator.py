# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the Calculator tool."""
import warnings
import pytest

from pydantic import ValidationError

from src.tools.base_tool import BaseTool
from src.tools.calculator import Calculator, evaluate
from src.types.tool_types import ToolContext


@pytest.fixture
def context():
    return ToolContext(job_id="test")


@pytest.mark.asyncio
@pytest.mark.parametrize("expression, expected_result", [
    ("2 + 3", "5"),
    ("7 - 12", "-5"),
    ("6 * 7", "42"),
    ("9 / 2", "4.5"),
    ("9 // 2", "4"),
    ("17 % 5", "2"),
    ("1 + 2 * 3", "7"),  # Precedence
    ("(1 + 2) * 3", "9"),
    ("0.1 * 10", "1.0"),
    ("2 ^ 10", "1024"),  # Caret means power
    ("-3 + 1", "-2"),  # Unary minus
])
async def test_valid_expressions(expression, expected_result, context):
    calculator = Calculator(reasoning="Testing calculator", expression=expression)

    result = await calculator.run(context)

    assert result.success is True
    assert result.tool_name == Calculator.TOOL_NAME
    assert result.output == expected_result


@pytest.mark.asyncio
@pytest.mark.parametrize("expression", [
    "5 / 0",
    "5 % 0",
    "3 -",  # Dangling operator
    "((4)",
    "2 ^ 5000",  # Exponent too large
])
async def test_invalid_expressions(expression, context):
    calculator = Calculator(reasoning="Testing invalid expressions", expression=expression)

    result = await calculator.run(context)

    assert result.success is False
    assert result.errors


def test_rejects_non_arithmetic_input():
    with pytest.raises(ValueError):
        Calculator(reasoning="Trying to escape", expression="__import__('os')")


def test_evaluate_refuses_names():
    with pytest.raises(ValueError):
        evaluate("x + 1")


@pytest.mark.asyncio
async def test_examples_are_valid(context):
    """The documented examples actually produce their expected results."""
    for tool_instance, expected_result in Calculator.generate_examples():
        result = await tool_instance.run(context)
        assert result.success == expected_result.success
        assert float(result.output) == float(expected_result.output)
        assert result.tool_name == expected_result.tool_name


@pytest.mark.asyncio
async def test_as_tool_validates_and_serialises(context):
    tool = Calculator.as_tool()

    assert tool.name == "calculate"
    assert "expression" in tool.input_schema()["properties"]

    result = await tool.execute({"reasoning": "sum", "expression": "2 + 3"}, context)
    assert result.success
    assert result.to_content() == "5"

    invalid = await tool.execute({"expression": "2 + 3"}, context)
    assert not invalid.success
    assert "reasoning" in invalid.errors


def test_tool_metadata():
    assert Calculator.TOOL_NAME == "calculate"
    assert "arithmetic" in Calculator.TOOL_DESCRIPTION.lower()
    assert len(Calculator.generate_examples()) > 0


@pytest.mark.asyncio
async def test_unexpected_arguments_are_rejected(context):
    with pytest.raises(ValidationError):
        Calculator(reasoning="sum", expression="1 + 1", precision=3)

    result = await Calculator.as_tool().execute(
        {"reasoning": "sum", "expression": "1 + 1", "precision": 3}, context
    )
    assert not result.success
    assert "precision" in result.errors


def test_subclassing_base_tool_emits_no_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error")

        class Echo(BaseTool):
            TOOL_NAME = "echo"
            TOOL_DESCRIPTION = "Repeat the text"

            text: str

    assert Echo.model_config["extra"] == "forbid"
    assert Echo(text="hi").text == "hi"
