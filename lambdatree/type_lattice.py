"""Type lattice: numeric widening, assignability and operator result types.

Python classes stand in for the host type descriptors.  ``object`` is the
dynamic type: anything is assignable to it, it is assignable to anything,
and operators applied to it are allowed and yield ``object``.
"""

from __future__ import annotations

import numbers
from typing import Any

from .errors import InvariantViolation
from .expression import ExpressionType, INTEGRAL_OPERATOR_TYPES, ORDERING_TYPES

# Value types cannot hold None.
VALUE_TYPES: tuple[type, ...] = (bool, int, float, complex)
INTEGRAL_TYPES: tuple[type, ...] = (bool, int)
SEQUENCE_TYPES: tuple[type, ...] = (str, bytes, bytearray, list, tuple, range)

_RANK: dict[type, int] = {bool: 0, int: 1, float: 2, complex: 3}

WIDENING: dict[type, frozenset[type]] = {
    bool: frozenset({int, float, complex}),
    int: frozenset({float, complex}),
    float: frozenset({complex}),
}

ZERO_VALUES: dict[type, Any] = {bool: False, int: 0, float: 0.0, complex: 0j}

# Binary operator → (dunder, reflected dunder) looked up on non-numeric types.
OPERATOR_DUNDERS: dict[ExpressionType, tuple[str, str]] = {
    ExpressionType.ADD: ("__add__", "__radd__"),
    ExpressionType.SUBTRACT: ("__sub__", "__rsub__"),
    ExpressionType.MULTIPLY: ("__mul__", "__rmul__"),
    ExpressionType.DIVIDE: ("__truediv__", "__rtruediv__"),
    ExpressionType.FLOOR_DIVIDE: ("__floordiv__", "__rfloordiv__"),
    ExpressionType.MODULO: ("__mod__", "__rmod__"),
    ExpressionType.POWER: ("__pow__", "__rpow__"),
    ExpressionType.BITWISE_AND: ("__and__", "__rand__"),
    ExpressionType.BITWISE_OR: ("__or__", "__ror__"),
    ExpressionType.EXCLUSIVE_OR: ("__xor__", "__rxor__"),
    ExpressionType.LEFT_SHIFT: ("__lshift__", "__rlshift__"),
    ExpressionType.RIGHT_SHIFT: ("__rshift__", "__rrshift__"),
}

UNARY_DUNDERS: dict[ExpressionType, str] = {
    ExpressionType.NEGATE: "__neg__",
    ExpressionType.UNARY_PLUS: "__pos__",
    ExpressionType.BITWISE_NOT: "__invert__",
}

_BOOLEAN_BITWISE = frozenset(
    {ExpressionType.BITWISE_AND, ExpressionType.BITWISE_OR, ExpressionType.EXCLUSIVE_OR}
)


def is_dynamic(t: type) -> bool:
    return t is object


def is_numeric(t: type) -> bool:
    return t in _RANK


def is_integral(t: type) -> bool:
    return t in INTEGRAL_TYPES


def is_value_type(t: type) -> bool:
    return t in _RANK


def widens_to(source: type, target: type) -> bool:
    return target in WIDENING.get(source, ())


def is_assignable(target: type, source: type) -> bool:
    """True when a value of ``source`` type may stand where ``target`` is declared."""
    if target is source or is_dynamic(target) or is_dynamic(source):
        return True
    if widens_to(source, target):
        return True
    return (
        isinstance(source, type)
        and isinstance(target, type)
        and issubclass(source, target)
    )


def wider(first: type, second: type, floor: type = bool) -> type:
    """The wider of two numeric types, never narrower than ``floor``."""
    return max((first, second, floor), key=_RANK.__getitem__)


def common_type(first: type, second: type) -> type:
    """Widest type both arguments convert to without loss."""
    if first is second:
        return first
    if is_numeric(first) and is_numeric(second):
        return wider(first, second)
    for candidate in first.__mro__:
        if issubclass(second, candidate):
            return candidate
    return object


def zero_of(t: type) -> Any:
    return ZERO_VALUES[t]


def _has_operator(first: type, second: type, kind: ExpressionType) -> bool:
    dunder, reflected = OPERATOR_DUNDERS[kind]
    return hasattr(first, dunder) or hasattr(second, reflected)


def binary_result_type(kind: ExpressionType, first: type, second: type) -> type:
    """Result type of an arithmetic, bitwise or shift operator."""
    if is_dynamic(first) or is_dynamic(second):
        return object
    if is_numeric(first) and is_numeric(second):
        if kind in INTEGRAL_OPERATOR_TYPES:
            if not (is_integral(first) and is_integral(second)):
                raise InvariantViolation(
                    f"{kind.value} requires integral operands, got "
                    f"{first.__name__} and {second.__name__}"
                )
            if first is bool and second is bool and kind in _BOOLEAN_BITWISE:
                return bool
            return int
        if kind == ExpressionType.DIVIDE:
            return wider(first, second, float)
        if (
            kind == ExpressionType.POWER
            and is_integral(first)
            and is_integral(second)
        ):
            # int ** negative int is a float
            return object
        return wider(first, second, int)
    if not _has_operator(first, second, kind):
        raise InvariantViolation(
            f"{kind.value} is not defined for {first.__name__} and {second.__name__}"
        )
    if kind in (ExpressionType.ADD, ExpressionType.MODULO) and first is second:
        return first if first in SEQUENCE_TYPES else object
    if kind == ExpressionType.MULTIPLY:
        for t in (first, second):
            if t in SEQUENCE_TYPES and (first is int or second is int):
                return t
    return object


def unary_result_type(kind: ExpressionType, operand: type) -> type:
    """Result type of negation, unary plus and bitwise complement."""
    if is_dynamic(operand):
        return object
    if is_numeric(operand):
        if kind == ExpressionType.BITWISE_NOT and not is_integral(operand):
            raise InvariantViolation(
                f"{kind.value} requires an integral operand, got {operand.__name__}"
            )
        return int if operand is bool else operand
    if not hasattr(operand, UNARY_DUNDERS[kind]):
        raise InvariantViolation(
            f"{kind.value} is not defined for {operand.__name__}"
        )
    return operand


def check_comparable(kind: ExpressionType, first: type, second: type) -> None:
    """Ordering comparisons need numeric, dynamic or related operand types."""
    if kind not in ORDERING_TYPES:
        return
    if is_dynamic(first) or is_dynamic(second):
        return
    if is_numeric(first) and is_numeric(second):
        if complex in (first, second):
            raise InvariantViolation(f"{kind.value} is not defined for complex")
        return
    if issubclass(first, second) or issubclass(second, first):
        return
    if issubclass(first, numbers.Real) and issubclass(second, numbers.Real):
        return
    raise InvariantViolation(
        f"{kind.value} cannot order {first.__name__} and {second.__name__}"
    )
