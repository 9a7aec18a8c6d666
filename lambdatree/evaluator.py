"""Evaluator: compile an expression tree into nested Python closures."""

from __future__ import annotations

import logging
import operator
from typing import Any, Callable

from .expression import (
    Binary,
    Constant,
    Expression,
    ExpressionType,
    Invocation,
    Lambda,
    Member,
    Parameter,
    Unary,
)
from .visitor import ExpressionVisitor

logger = logging.getLogger(__name__)

Evaluate = Callable[[tuple], Any]


class Operators:
    """Strict operator tables; operands are evaluated before the call."""

    BINOP_TABLE: dict[ExpressionType, Callable[[Any, Any], Any]] = {
        ExpressionType.ADD: operator.add,
        ExpressionType.SUBTRACT: operator.sub,
        ExpressionType.MULTIPLY: operator.mul,
        ExpressionType.DIVIDE: operator.truediv,
        ExpressionType.FLOOR_DIVIDE: operator.floordiv,
        ExpressionType.MODULO: operator.mod,
        ExpressionType.POWER: operator.pow,
        ExpressionType.BITWISE_AND: operator.and_,
        ExpressionType.BITWISE_OR: operator.or_,
        ExpressionType.EXCLUSIVE_OR: operator.xor,
        ExpressionType.LEFT_SHIFT: operator.lshift,
        ExpressionType.RIGHT_SHIFT: operator.rshift,
        ExpressionType.EQUAL: operator.eq,
        ExpressionType.NOT_EQUAL: operator.ne,
        ExpressionType.LESS_THAN: operator.lt,
        ExpressionType.LESS_THAN_OR_EQUAL: operator.le,
        ExpressionType.GREATER_THAN: operator.gt,
        ExpressionType.GREATER_THAN_OR_EQUAL: operator.ge,
        ExpressionType.IS: operator.is_,
        ExpressionType.IS_NOT: operator.is_not,
        ExpressionType.IN: lambda a, b: a in b,
        ExpressionType.NOT_IN: lambda a, b: a not in b,
        ExpressionType.ARRAY_INDEX: operator.getitem,
        ExpressionType.INSTANCE_OF: isinstance,
    }

    UNOP_TABLE: dict[ExpressionType, Callable[[Any], Any]] = {
        ExpressionType.NEGATE: operator.neg,
        ExpressionType.UNARY_PLUS: operator.pos,
        ExpressionType.BITWISE_NOT: operator.invert,
        ExpressionType.LOGICAL_NOT: operator.not_,
        ExpressionType.ARRAY_LENGTH: len,
        ExpressionType.IS_NULL: lambda a: a is None,
        ExpressionType.IS_NON_NULL: lambda a: a is not None,
    }

    CONVERSIONS: dict[type, Callable[[Any], Any]] = {
        bool: bool,
        int: int,
        float: float,
        complex: complex,
        str: str,
        object: lambda a: a,
    }

    @classmethod
    def converter(cls, to: type) -> Callable[[Any], Any]:
        conversion = cls.CONVERSIONS.get(to)
        if conversion is not None:
            return conversion

        def cast(value: Any) -> Any:
            if value is not None and not isinstance(value, to):
                raise TypeError(
                    f"cannot convert {type(value).__name__} to {to.__name__}"
                )
            return value

        return cast


class Interpreter(ExpressionVisitor[Evaluate]):
    """Turn each node into a function of the argument tuple."""

    def visit_constant(self, e: Constant) -> Evaluate:
        value = e.value
        return lambda args: value

    def visit_parameter(self, e: Parameter) -> Evaluate:
        index = e.index
        return lambda args: args[index]

    def visit_unary(self, e: Unary) -> Evaluate:
        if e.expression_type == ExpressionType.QUOTE:
            quoted = e.operand
            return lambda args: quoted
        operand = e.operand.accept(self)
        if e.expression_type == ExpressionType.CONVERT:
            op = Operators.converter(e.result_type)
        else:
            op = Operators.UNOP_TABLE[e.expression_type]
        return lambda args: op(operand(args))

    def visit_binary(self, e: Binary) -> Evaluate:
        first = e.first.accept(self)
        second = e.second.accept(self)
        kind = e.expression_type
        if kind == ExpressionType.CONDITIONAL:
            test = e.test.accept(self)
            return lambda args: first(args) if test(args) else second(args)
        if kind == ExpressionType.LOGICAL_AND:
            return lambda args: first(args) and second(args)
        if kind == ExpressionType.LOGICAL_OR:
            return lambda args: first(args) or second(args)
        if kind == ExpressionType.COALESCE:

            def coalesce(args: tuple) -> Any:
                value = first(args)
                return value if value is not None else second(args)

            return coalesce
        op = Operators.BINOP_TABLE[kind]
        return lambda args: op(first(args), second(args))

    def visit_member(self, e: Member) -> Evaluate:
        if e.instance is None:
            if e.expression_type == ExpressionType.FIELD_ACCESS:
                owner, name = e.member, e.name
                return lambda args: getattr(owner, name)
            target = e.member
            return lambda args: target
        instance = e.instance.accept(self)
        name = e.name
        return lambda args: getattr(instance(args), name)

    def visit_invocation(self, e: Invocation) -> Evaluate:
        target = e.target.accept(self)
        arguments = [arg.accept(self) for arg in e.arguments]
        return lambda args: target(args)(*(arg(args) for arg in arguments))

    def visit_lambda(self, e: Lambda) -> Evaluate:
        compiled = compile_lambda(e)
        return lambda args: compiled


def compile_lambda(expression: Lambda) -> Callable[..., Any]:
    """Compile ``expression`` into a callable taking its parameters positionally."""
    body = expression.body.accept(Interpreter())
    arity = len(expression.parameters)

    def evaluate(*args: Any) -> Any:
        if len(args) != arity:
            raise TypeError(
                f"{expression} takes {arity} positional arguments "
                f"but {len(args)} were given"
            )
        return body(args)

    evaluate.expression = expression
    logger.debug("Compiled %s", expression)
    return evaluate


def evaluate(expression: Expression, *args: Any) -> Any:
    """Evaluate a bare expression against positional parameter values."""
    return expression.accept(Interpreter())(args)
