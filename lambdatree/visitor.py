"""Expression visitors and the rewriting passes built on them."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Generic, Mapping, TypeVar

from . import build, constants
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

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExpressionVisitor(ABC, Generic[T]):
    """One method per node kind; ``Expression.accept`` picks the method."""

    @abstractmethod
    def visit_constant(self, e: Constant) -> T: ...

    @abstractmethod
    def visit_parameter(self, e: Parameter) -> T: ...

    @abstractmethod
    def visit_unary(self, e: Unary) -> T: ...

    @abstractmethod
    def visit_binary(self, e: Binary) -> T: ...

    @abstractmethod
    def visit_member(self, e: Member) -> T: ...

    @abstractmethod
    def visit_invocation(self, e: Invocation) -> T: ...

    @abstractmethod
    def visit_lambda(self, e: Lambda) -> T: ...


class SimpleExpressionVisitor(ExpressionVisitor[Expression]):
    """Identity rewrite that rebuilds a parent only when a child changed.

    Rebuilt nodes go through the smart constructors, so substitutions get
    simplified on the way back up.
    """

    def visit_constant(self, e: Constant) -> Expression:
        return e

    def visit_parameter(self, e: Parameter) -> Expression:
        return e

    def visit_unary(self, e: Unary) -> Expression:
        operand = e.operand.accept(self)
        if operand is e.operand:
            return e
        return build.unary(e.expression_type, operand, e.result_type)

    def visit_binary(self, e: Binary) -> Expression:
        first = e.first.accept(self)
        second = e.second.accept(self)
        test = e.test.accept(self) if e.test is not None else None
        if first is e.first and second is e.second and test is e.test:
            return e
        return build.binary(e.expression_type, first, second, test)

    def visit_member(self, e: Member) -> Expression:
        if e.instance is None:
            return e
        instance = e.instance.accept(self)
        if instance is e.instance:
            return e
        return build.member(
            e.expression_type,
            instance,
            e.member,
            e.name,
            e.result_type,
            e.parameter_types,
        )

    def visit_invocation(self, e: Invocation) -> Expression:
        target = e.target.accept(self)
        arguments = tuple(arg.accept(self) for arg in e.arguments)
        if target is e.target and all(
            new is old for new, old in zip(arguments, e.arguments)
        ):
            return e
        return build.invoke(target, arguments)

    def visit_lambda(self, e: Lambda) -> Expression:
        body = e.body.accept(self)
        if body is e.body:
            return e
        return build.lambda_(body, e.parameters)


class ParameterReplacer(SimpleExpressionVisitor):
    """Substitute parameters by index.

    Unmapped parameters are left alone.  Nested lambdas have their own
    parameter scope and are not entered.
    """

    def __init__(self, bindings: Mapping[int, Expression]):
        self._bindings = dict(bindings)

    def visit_parameter(self, e: Parameter) -> Expression:
        return self._bindings.get(e.index, e)

    def visit_lambda(self, e: Lambda) -> Expression:
        return e


class LambdaInliner(SimpleExpressionVisitor):
    """Replace calls through captured closure parameters with their lambdas.

    ``P{i}(args)`` is rendered by the lifter as an invocation of the
    ``__call__`` method on the parameter; when ``i`` maps to a lifted
    ``Lambda`` of matching arity the call invokes that lambda directly.
    """

    def __init__(self, lambdas: Mapping[int, Lambda]):
        self._lambdas = dict(lambdas)

    def visit_invocation(self, e: Invocation) -> Expression:
        target = e.target
        if (
            isinstance(target, Member)
            and target.expression_type == ExpressionType.METHOD_ACCESS
            and target.name == constants.CALL_METHOD_NAME
            and isinstance(target.instance, Parameter)
        ):
            nested = self._lambdas.get(target.instance.index)
            if nested is not None and len(nested.parameters) == len(e.arguments):
                logger.debug("Inlining nested lambda for %s", target.instance)
                arguments = tuple(arg.accept(self) for arg in e.arguments)
                return build.invoke(nested, arguments)
        return super().visit_invocation(e)
