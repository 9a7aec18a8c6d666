"""TypeConverter: retype an expression to a target class."""

from __future__ import annotations

import logging

from . import build
from .errors import InvariantViolation
from .expression import Binary, Constant, Expression, ExpressionType, Parameter
from .type_lattice import is_assignable, is_integral, is_numeric, widens_to
from .visitor import SimpleExpressionVisitor

logger = logging.getLogger(__name__)


class TypeConverter(SimpleExpressionVisitor):
    """Push a conversion to ``to`` as deep into the tree as it will go.

    Constants are converted at build time, parameters are retyped when the
    conversion is a widening, conditionals convert both arms.  Anything
    else is wrapped in ``Convert``.
    """

    def __init__(self, to: type):
        self._to = to

    @classmethod
    def convert(cls, expression: Expression, to: type) -> Expression:
        if expression.result_type is to:
            return expression
        return expression.accept(cls(to))

    def _default(self, e: Expression) -> Expression:
        return build.convert(e, self._to)

    def visit_constant(self, e: Constant) -> Expression:
        to, source = self._to, e.result_type
        if to is bool and is_integral(source):
            if e.value not in (0, 1):
                raise InvariantViolation(f"{e.value!r} is not a boolean")
            return build.constant(bool(e.value), bool)
        if is_numeric(source) and widens_to(source, to):
            return build.constant(to(e.value), to)
        if is_assignable(to, source) and not is_numeric(to):
            return build.constant(e.value, to)
        return self._default(e)

    def visit_parameter(self, e: Parameter) -> Expression:
        if widens_to(e.result_type, self._to):
            return build.parameter(e.index, self._to)
        return self._default(e)

    def visit_unary(self, e) -> Expression:
        return self._default(e)

    def visit_binary(self, e: Binary) -> Expression:
        if e.expression_type == ExpressionType.CONDITIONAL:
            return build.condition(
                e.test,
                TypeConverter.convert(e.first, self._to),
                TypeConverter.convert(e.second, self._to),
            )
        return self._default(e)

    def visit_member(self, e) -> Expression:
        return self._default(e)

    def visit_invocation(self, e) -> Expression:
        return self._default(e)

    def visit_lambda(self, e) -> Expression:
        return self._default(e)
