"""Character-gated boolean evaluator for condition steps.

Expressions are restricted to ``[A-Za-z0-9_\\s+\\-*/%()><=!&|.]``. Anything
outside that class evaluates to ``False`` instead of raising. Inside the gate
the expression is parsed with :mod:`ast` and only arithmetic, comparison and
boolean nodes are evaluated; names are looked up in the supplied variables
and dotted names walk nested mappings. This is a safety floor, not a
sandbox: swap :func:`evaluate_condition` for a real evaluator behind the same
signature if richer expressions are needed.
"""

from __future__ import annotations

import ast
import logging
import operator
import re
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

ALLOWED_EXPRESSION = re.compile(r"^[A-Za-z0-9_\s+\-*/%()><=!&|.]+$")

_LITERALS = {"true": True, "false": False, "null": None, "none": None}

_BINARY_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}


class UnsupportedExpression(ValueError):
    """Raised internally for syntax outside the evaluator's subset."""


def is_permitted(expression: str) -> bool:
    """Return ``True`` when ``expression`` passes the character gate."""
    return bool(expression) and ALLOWED_EXPRESSION.match(expression) is not None


def _to_python(expression: str) -> str:
    # Strict equality first so the "!" rewrite below never sees "!==".
    translated = expression.replace("===", "==").replace("!==", "!=")
    translated = translated.replace("&&", " and ").replace("||", " or ")
    return re.sub(r"!(?!=)", " not ", translated)


def _lookup(name: str, variables: Mapping[str, Any]) -> Any:
    if name in variables:
        return variables[name]
    return _LITERALS.get(name.lower())


def _evaluate(node: ast.AST, variables: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (bool, int, float)) or node.value is None:
            return node.value
        raise UnsupportedExpression(f"Unsupported literal: {node.value!r}")
    if isinstance(node, ast.Name):
        return _lookup(node.id, variables)
    if isinstance(node, ast.Attribute):
        container = _evaluate(node.value, variables)
        if isinstance(container, Mapping):
            return container.get(node.attr)
        return None
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _evaluate(value, variables)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _evaluate(value, variables)
            if result:
                return result
        return result
    if isinstance(node, ast.UnaryOp):
        operand = _evaluate(node.operand, variables)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return +operand
    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS.get(type(node.op))
        if op is not None:
            return op(_evaluate(node.left, variables), _evaluate(node.right, variables))
    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, variables)
        for op_node, comparator in zip(node.ops, node.comparators):
            op = _COMPARE_OPS.get(type(op_node))
            if op is None:
                raise UnsupportedExpression(f"Unsupported comparison: {type(op_node).__name__}")
            right = _evaluate(comparator, variables)
            if not op(left, right):
                return False
            left = right
        return True
    raise UnsupportedExpression(f"Unsupported syntax: {type(node).__name__}")


def evaluate_condition(
    expression: str, variables: Optional[Mapping[str, Any]] = None
) -> bool:
    """Evaluate ``expression`` to a boolean; never raises."""

    if not is_permitted(expression):
        logger.debug(f"Condition rejected by character gate: {expression!r}")
        return False
    try:
        tree = ast.parse(_to_python(expression).strip(), mode="eval")
        return bool(_evaluate(tree.body, variables or {}))
    except (SyntaxError, ValueError, TypeError, ArithmeticError, RecursionError) as exc:
        logger.debug(f"Condition {expression!r} evaluated to false: {exc}")
        return False
