"""Expression tree: immutable node kinds produced by the lifter and the builder."""

from __future__ import annotations

import types
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from . import constants

if TYPE_CHECKING:
    from .visitor import ExpressionVisitor


class ExpressionType(str, Enum):
    # Leaves
    CONSTANT = "Constant"
    PARAMETER = "Parameter"
    # Unary
    NEGATE = "Negate"
    UNARY_PLUS = "UnaryPlus"
    BITWISE_NOT = "BitwiseNot"
    LOGICAL_NOT = "LogicalNot"
    ARRAY_LENGTH = "ArrayLength"
    IS_NULL = "IsNull"
    IS_NON_NULL = "IsNonNull"
    CONVERT = "Convert"
    QUOTE = "Quote"
    # Arithmetic
    ADD = "Add"
    SUBTRACT = "Subtract"
    MULTIPLY = "Multiply"
    DIVIDE = "Divide"
    FLOOR_DIVIDE = "FloorDivide"
    MODULO = "Modulo"
    POWER = "Power"
    # Bitwise / shift
    BITWISE_AND = "BitwiseAnd"
    BITWISE_OR = "BitwiseOr"
    EXCLUSIVE_OR = "ExclusiveOr"
    LEFT_SHIFT = "LeftShift"
    RIGHT_SHIFT = "RightShift"
    # Comparison
    EQUAL = "Equal"
    NOT_EQUAL = "NotEqual"
    LESS_THAN = "LessThan"
    LESS_THAN_OR_EQUAL = "LessThanOrEqual"
    GREATER_THAN = "GreaterThan"
    GREATER_THAN_OR_EQUAL = "GreaterThanOrEqual"
    IS = "Is"
    IS_NOT = "IsNot"
    IN = "In"
    NOT_IN = "NotIn"
    # Logical
    LOGICAL_AND = "LogicalAnd"
    LOGICAL_OR = "LogicalOr"
    # Other binary
    ARRAY_INDEX = "ArrayIndex"
    COALESCE = "Coalesce"
    INSTANCE_OF = "InstanceOf"
    CONDITIONAL = "Conditional"
    # Members
    FIELD_ACCESS = "FieldAccess"
    METHOD_ACCESS = "MethodAccess"
    NEW = "New"
    # Composites
    INVOKE = "Invoke"
    LAMBDA = "Lambda"


UNARY_TYPES: frozenset[ExpressionType] = frozenset(
    {
        ExpressionType.NEGATE,
        ExpressionType.UNARY_PLUS,
        ExpressionType.BITWISE_NOT,
        ExpressionType.LOGICAL_NOT,
        ExpressionType.ARRAY_LENGTH,
        ExpressionType.IS_NULL,
        ExpressionType.IS_NON_NULL,
        ExpressionType.CONVERT,
        ExpressionType.QUOTE,
    }
)

ARITHMETIC_TYPES: frozenset[ExpressionType] = frozenset(
    {
        ExpressionType.ADD,
        ExpressionType.SUBTRACT,
        ExpressionType.MULTIPLY,
        ExpressionType.DIVIDE,
        ExpressionType.FLOOR_DIVIDE,
        ExpressionType.MODULO,
        ExpressionType.POWER,
    }
)

INTEGRAL_OPERATOR_TYPES: frozenset[ExpressionType] = frozenset(
    {
        ExpressionType.BITWISE_AND,
        ExpressionType.BITWISE_OR,
        ExpressionType.EXCLUSIVE_OR,
        ExpressionType.LEFT_SHIFT,
        ExpressionType.RIGHT_SHIFT,
    }
)

ORDERING_TYPES: frozenset[ExpressionType] = frozenset(
    {
        ExpressionType.LESS_THAN,
        ExpressionType.LESS_THAN_OR_EQUAL,
        ExpressionType.GREATER_THAN,
        ExpressionType.GREATER_THAN_OR_EQUAL,
    }
)

COMPARISON_TYPES: frozenset[ExpressionType] = ORDERING_TYPES | {
    ExpressionType.EQUAL,
    ExpressionType.NOT_EQUAL,
    ExpressionType.IS,
    ExpressionType.IS_NOT,
    ExpressionType.IN,
    ExpressionType.NOT_IN,
}

MEMBER_TYPES: frozenset[ExpressionType] = frozenset(
    {ExpressionType.FIELD_ACCESS, ExpressionType.METHOD_ACCESS, ExpressionType.NEW}
)

BINARY_SYMBOLS: dict[ExpressionType, str] = {
    ExpressionType.ADD: "+",
    ExpressionType.SUBTRACT: "-",
    ExpressionType.MULTIPLY: "*",
    ExpressionType.DIVIDE: "/",
    ExpressionType.FLOOR_DIVIDE: "//",
    ExpressionType.MODULO: "%",
    ExpressionType.POWER: "**",
    ExpressionType.BITWISE_AND: "&",
    ExpressionType.BITWISE_OR: "|",
    ExpressionType.EXCLUSIVE_OR: "^",
    ExpressionType.LEFT_SHIFT: "<<",
    ExpressionType.RIGHT_SHIFT: ">>",
    ExpressionType.EQUAL: "==",
    ExpressionType.NOT_EQUAL: "!=",
    ExpressionType.LESS_THAN: "<",
    ExpressionType.LESS_THAN_OR_EQUAL: "<=",
    ExpressionType.GREATER_THAN: ">",
    ExpressionType.GREATER_THAN_OR_EQUAL: ">=",
    ExpressionType.IS: "is",
    ExpressionType.IS_NOT: "is not",
    ExpressionType.IN: "in",
    ExpressionType.NOT_IN: "not in",
    ExpressionType.LOGICAL_AND: "and",
    ExpressionType.LOGICAL_OR: "or",
}

SYMBOL_TYPES: dict[str, ExpressionType] = {
    symbol: kind
    for kind, symbol in BINARY_SYMBOLS.items()
    if kind not in (ExpressionType.LOGICAL_AND, ExpressionType.LOGICAL_OR)
}


def _type_name(t: Any) -> str:
    return getattr(t, "__qualname__", None) or getattr(t, "__name__", repr(t))


def format_constant(value: Any) -> str:
    if isinstance(value, type):
        return _type_name(value)
    if isinstance(value, (types.FunctionType, types.BuiltinFunctionType)):
        return _type_name(value)
    if isinstance(value, types.ModuleType):
        return value.__name__
    if isinstance(value, slice):
        return format_slice(value.start, value.stop, value.step)
    if isinstance(value, Expression):
        return f"quote({value})"
    return repr(value)


def format_slice(start: Any, stop: Any, step: Any = None) -> str:
    parts = ["" if part is None else str(part) for part in (start, stop)]
    if step is not None:
        parts.append(str(step))
    return ":".join(parts)


# ── Nodes ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Expression:
    """Base of every node: a kind tag plus the Python type of its result."""

    expression_type: ExpressionType
    result_type: type

    def accept(self, visitor: ExpressionVisitor) -> Any:
        raise NotImplementedError

    def children(self) -> tuple[Expression, ...]:
        """Direct sub-expressions sharing this node's parameter scope."""
        return ()

    @property
    def is_boolean(self) -> bool:
        return self.result_type is bool


@dataclass(frozen=True)
class Constant(Expression):
    value: Any

    def __hash__(self) -> int:
        try:
            return hash((self.expression_type, self.result_type, self.value))
        except TypeError:
            return hash((self.expression_type, self.result_type, id(self.value)))

    def accept(self, visitor: ExpressionVisitor) -> Any:
        return visitor.visit_constant(self)

    def __str__(self) -> str:
        return format_constant(self.value)


@dataclass(frozen=True)
class Parameter(Expression):
    index: int

    def accept(self, visitor: ExpressionVisitor) -> Any:
        return visitor.visit_parameter(self)

    def __str__(self) -> str:
        return f"{constants.PARAM_PREFIX}{self.index}"


@dataclass(frozen=True)
class Unary(Expression):
    operand: Expression

    def accept(self, visitor: ExpressionVisitor) -> Any:
        return visitor.visit_unary(self)

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        kind = self.expression_type
        if kind == ExpressionType.NEGATE:
            return f"-{self.operand}"
        if kind == ExpressionType.UNARY_PLUS:
            return f"+{self.operand}"
        if kind == ExpressionType.BITWISE_NOT:
            return f"~{self.operand}"
        if kind == ExpressionType.LOGICAL_NOT:
            return f"(not {self.operand})"
        if kind == ExpressionType.ARRAY_LENGTH:
            return f"len({self.operand})"
        if kind == ExpressionType.IS_NULL:
            return f"({self.operand} is None)"
        if kind == ExpressionType.IS_NON_NULL:
            return f"({self.operand} is not None)"
        if kind == ExpressionType.CONVERT:
            if self.result_type is object:
                return str(self.operand)
            return f"{_type_name(self.result_type)}({self.operand})"
        return f"quote({self.operand})"


@dataclass(frozen=True)
class Binary(Expression):
    first: Expression
    second: Expression
    test: Expression | None = None

    def accept(self, visitor: ExpressionVisitor) -> Any:
        return visitor.visit_binary(self)

    def children(self) -> tuple[Expression, ...]:
        if self.test is None:
            return (self.first, self.second)
        return (self.test, self.first, self.second)

    def __str__(self) -> str:
        kind = self.expression_type
        if kind == ExpressionType.CONDITIONAL:
            return f"({self.first} if {self.test} else {self.second})"
        if kind == ExpressionType.ARRAY_INDEX:
            return f"{self.first}[{_format_index(self.second)}]"
        if kind == ExpressionType.COALESCE:
            return f"coalesce({self.first}, {self.second})"
        if kind == ExpressionType.INSTANCE_OF:
            return f"isinstance({self.first}, {self.second})"
        return f"({self.first} {BINARY_SYMBOLS[kind]} {self.second})"


def _format_index(index: Expression) -> str:
    if (
        isinstance(index, Invocation)
        and isinstance(index.target, Member)
        and index.target.member is slice
    ):
        return format_slice(*(str(arg) for arg in index.arguments))
    return str(index)


@dataclass(frozen=True)
class Member(Expression):
    """A field, a method or a constructor; ``instance`` is None when static."""

    instance: Expression | None
    member: Any
    name: str
    parameter_types: tuple[type, ...] = ()

    def accept(self, visitor: ExpressionVisitor) -> Any:
        return visitor.visit_member(self)

    def children(self) -> tuple[Expression, ...]:
        return () if self.instance is None else (self.instance,)

    def __str__(self) -> str:
        if self.instance is None:
            return self.name
        return f"{self.instance}.{self.name}"


@dataclass(frozen=True)
class Invocation(Expression):
    target: Expression
    arguments: tuple[Expression, ...] = ()

    def accept(self, visitor: ExpressionVisitor) -> Any:
        return visitor.visit_invocation(self)

    def children(self) -> tuple[Expression, ...]:
        return (self.target, *self.arguments)

    def __str__(self) -> str:
        args = ", ".join(str(arg) for arg in self.arguments)
        target = self.target
        if isinstance(target, Lambda):
            return f"({target})({args})"
        if (
            isinstance(target, Member)
            and target.instance is not None
            and target.name == constants.CALL_METHOD_NAME
        ):
            return f"{target.instance}({args})"
        return f"{target}({args})"


@dataclass(frozen=True)
class Lambda(Expression):
    """A closure-shaped subtree; its body's parameters index ``parameters``."""

    body: Expression
    parameters: tuple[Parameter, ...] = ()

    def accept(self, visitor: ExpressionVisitor) -> Any:
        return visitor.visit_lambda(self)

    def compile(self) -> Callable[..., Any]:
        """Return a callable that evaluates this lambda on positional arguments."""
        from .evaluator import compile_lambda

        return compile_lambda(self)

    def __str__(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        if not params:
            return f"lambda: {self.body}"
        return f"lambda {params}: {self.body}"
