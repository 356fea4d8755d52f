"""Arithmetic expressions over fixed-point values.

Attribute bases are small formulas such as ``"($dx+$ht)/4"`` or
``"floor($basic_speed)"``. ``$name`` references are resolved to text by
a caller-supplied resolver; an empty result counts as zero. The
expression is parsed with ``ast`` and walked node by node, so nothing
beyond arithmetic and a handful of functions is ever executed.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Callable

import structlog

from sheetcalc.models.fixed6 import ZERO, Fixed6

logger = structlog.get_logger(__name__)

_VARIABLE_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?)")

_FUNCTIONS: dict[str, Callable[..., Fixed6]] = {
    "floor": lambda x: x.floor(),
    "ceil": lambda x: x.ceil(),
    "round": lambda x: x.round(),
    "trunc": lambda x: x.trunc(),
    "abs": lambda x: abs(x),
    "min": lambda *xs: min(xs),
    "max": lambda *xs: max(xs),
}


class ExpressionError(ValueError):
    """Raised internally for constructs the evaluator does not support."""


def _number(text: str) -> Fixed6:
    text = text.strip()
    if not text:
        return ZERO
    return Fixed6.parse(text)


class _Evaluator:
    __slots__ = ("_values",)

    def __init__(self, values: dict[str, Fixed6]) -> None:
        self._values = values

    def visit(self, node: ast.AST) -> Fixed6:
        if isinstance(node, ast.Expression):
            return self.visit(node.body)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise ExpressionError(f"unsupported literal {node.value!r}")
            return Fixed6.parse(repr(node.value))
        if isinstance(node, ast.Name):
            if node.id not in self._values:
                raise ExpressionError(f"unknown name {node.id!r}")
            return self._values[node.id]
        if isinstance(node, ast.UnaryOp):
            operand = self.visit(node.operand)
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return operand
            raise ExpressionError("unsupported unary operator")
        if isinstance(node, ast.BinOp):
            left = self.visit(node.left)
            right = self.visit(node.right)
            if isinstance(node.op, ast.Add):
                return left + right
            if isinstance(node.op, ast.Sub):
                return left - right
            if isinstance(node.op, ast.Mult):
                return left * right
            if isinstance(node.op, ast.Div):
                return left / right
            raise ExpressionError("unsupported binary operator")
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS or node.keywords:
                raise ExpressionError("unsupported function call")
            args = [self.visit(arg) for arg in node.args]
            if not args:
                raise ExpressionError(f"{node.func.id}() needs an argument")
            return _FUNCTIONS[node.func.id](*args)
        raise ExpressionError(f"unsupported syntax {type(node).__name__}")


def evaluate(text: str, resolve: Callable[[str], str]) -> Fixed6:
    """Evaluate *text*, resolving ``$variables`` through *resolve*.

    Malformed expressions log ``malformed_expression`` and evaluate to 0.
    Division by zero is not malformed input and propagates.
    """
    if not text.strip():
        return ZERO
    values: dict[str, Fixed6] = {}

    def substitute(match: re.Match[str]) -> str:
        placeholder = f"_v{len(values)}"
        resolved = resolve(match.group(1))
        try:
            values[placeholder] = _number(resolved)
        except ValueError:
            logger.warning("non_numeric_variable", variable=match.group(1), value=resolved)
            values[placeholder] = ZERO
        return placeholder

    source = _VARIABLE_RE.sub(substitute, text)
    try:
        tree = ast.parse(source.strip(), mode="eval")
        return _Evaluator(values).visit(tree)
    except (SyntaxError, ExpressionError, ValueError, TypeError) as exc:
        logger.warning("malformed_expression", expression=text, error=str(exc))
        return ZERO
