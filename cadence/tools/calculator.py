"""
Calculator capability - evaluates arithmetic expressions safely.

Only numeric literals, + - * / % ** and parentheses are accepted; the
expression is parsed with ast and walked, never passed to eval().
"""
import ast
import math
import operator
import re
from typing import Union

from cadence.core.errors import ExecutionFailed
from cadence.core.intents import IntentKind
from cadence.core.values import Parameters, number_or_str, require_str
from cadence.tools.tool_base import Capability, ExecutionResult

Number = Union[int, float]

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

MAX_EXPONENT = 100


def sanitize_expression(expression: str) -> str:
    """Normalize spoken/typographic operators to Python syntax."""
    expr = expression.replace("×", "*").replace("÷", "/").replace("^", "**")
    expr = re.sub(r"(?<=\d)\s*[xX]\s*(?=\d)", "*", expr)
    return expr.strip()


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("exponent too large")
        return _BIN_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"unsupported element {type(node).__name__}")


def evaluate(expression: str) -> float:
    """
    Evaluate an arithmetic expression.

    Raises:
        ValueError: If the expression is not plain arithmetic or cannot be computed
    """
    try:
        tree = ast.parse(sanitize_expression(expression), mode="eval")
        result = _eval_node(tree)
        if isinstance(result, complex):
            raise ValueError("complex result")
        value = float(result)
    except (SyntaxError, ZeroDivisionError, OverflowError, TypeError) as e:
        raise ValueError(str(e)) from e
    if not math.isfinite(value):
        raise ValueError("result out of range")
    return value


class CalculatorCapability(Capability):
    """Handler for the calculate intent."""

    kind = IntentKind.CALCULATE
    description = "Evaluate an arithmetic expression"

    def handle(self, parameters: Parameters) -> ExecutionResult:
        expression = require_str(parameters, "expression")
        try:
            result = evaluate(expression)
        except ValueError as e:
            raise ExecutionFailed(f"Could not evaluate expression: {expression}") from e
        return ExecutionResult.ok(
            f"{expression} = {number_or_str(round(result, 10))}",
            {"result": result},
        )
