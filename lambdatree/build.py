"""Smart constructors: one factory per node kind, with peephole normalisation.

Every factory checks the invariants of the node it builds and raises
:class:`InvariantViolation` when they do not hold.  A handful of rewrites
are applied while building so that trees produced by the lifter come out
already normalised:

* ``convert(e, T)`` returns ``e`` when it already has type ``T``
* comparisons against boolean constants fold to the other operand
* ``and``/``or`` with a boolean constant operand short-circuit
* ``x ^ -1`` becomes ``~x``
* conditionals with boolean constant arms collapse to their test
* ``int(x)``, ``x.__float__()`` and friends become conversions
* ``logical_not`` pushes negation down to dual comparisons (De Morgan)
"""

from __future__ import annotations

import inspect
import logging
import operator
import types
from typing import Any, Callable, Iterable, Iterator, Sequence

from .errors import InvariantViolation, ResourceUnavailable
from .expression import (
    SYMBOL_TYPES,
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
from .type_lattice import (
    SEQUENCE_TYPES,
    binary_result_type,
    check_comparable,
    common_type,
    is_assignable,
    is_dynamic,
    is_integral,
    is_numeric,
    is_value_type,
    unary_result_type,
    wider,
    zero_of,
)

logger = logging.getLogger(__name__)

# Dual predicates used when a comparison is negated.
DUAL_COMPARISONS: dict[ExpressionType, ExpressionType] = {
    ExpressionType.EQUAL: ExpressionType.NOT_EQUAL,
    ExpressionType.NOT_EQUAL: ExpressionType.EQUAL,
    ExpressionType.LESS_THAN: ExpressionType.GREATER_THAN_OR_EQUAL,
    ExpressionType.GREATER_THAN_OR_EQUAL: ExpressionType.LESS_THAN,
    ExpressionType.GREATER_THAN: ExpressionType.LESS_THAN_OR_EQUAL,
    ExpressionType.LESS_THAN_OR_EQUAL: ExpressionType.GREATER_THAN,
    ExpressionType.IS: ExpressionType.IS_NOT,
    ExpressionType.IS_NOT: ExpressionType.IS,
    ExpressionType.IN: ExpressionType.NOT_IN,
    ExpressionType.NOT_IN: ExpressionType.IN,
}

# Calls rewritten to conversions: builtin types called with one argument,
# and the conversion dunders called on an instance with none.
CONVERSION_TYPES: tuple[type, ...] = (bool, int, float, complex, str)

CONVERSION_DUNDERS: dict[str, type] = {
    "__bool__": bool,
    "__int__": int,
    "__index__": int,
    "__float__": float,
    "__complex__": complex,
    "__str__": str,
}


# ── Helpers ──────────────────────────────────────────────────────


def _name(value: Any) -> str:
    return getattr(value, "__qualname__", None) or getattr(
        value, "__name__", repr(value)
    )


def _type_name(t: type) -> str:
    return getattr(t, "__name__", repr(t))


def _strip(expression: Expression) -> Expression:
    """Remove outer Quote and Convert wrappers."""
    while isinstance(expression, Unary) and expression.expression_type in (
        ExpressionType.QUOTE,
        ExpressionType.CONVERT,
    ):
        expression = expression.operand
    return expression


def _is_none(expression: Expression) -> bool:
    return isinstance(expression, Constant) and expression.value is None


def _boolean_split(
    first: Expression, second: Expression
) -> tuple[Constant, Expression] | None:
    """Return (boolean constant, other operand) when one side is a bool constant."""
    if isinstance(first, Constant) and first.is_boolean and second.is_boolean:
        return first, second
    if isinstance(second, Constant) and second.is_boolean and first.is_boolean:
        return second, first
    return None


def _fold_constants(
    first: Expression, second: Expression, op: Callable[[Any, Any], bool]
) -> Constant | None:
    """Evaluate a comparison of two value-type constants at build time."""
    if (
        isinstance(first, Constant)
        and isinstance(second, Constant)
        and is_value_type(first.result_type)
        and is_value_type(second.result_type)
    ):
        return constant(op(first.value, second.value), bool)
    return None


def _widen(expression: Expression, to: type) -> Expression:
    if expression.result_type is to:
        return expression
    if isinstance(expression, Constant):
        return constant(to(expression.value), to)
    return convert(expression, to)


def _promote(first: Expression, second: Expression) -> tuple[Expression, Expression]:
    """Wrap the narrower numeric operand so both share the wider type."""
    a, b = first.result_type, second.result_type
    if a is b or not (is_numeric(a) and is_numeric(b)):
        return first, second
    target = wider(a, b)
    return _widen(first, target), _widen(second, target)


def walk(expression: Expression) -> Iterator[Expression]:
    """Yield ``expression`` and every descendant sharing its parameter scope."""
    pending = [expression]
    while pending:
        node = pending.pop()
        yield node
        pending.extend(reversed(node.children()))


# ── Leaves ───────────────────────────────────────────────────────


def constant(value: Any, result_type: type | None = None) -> Constant:
    if result_type is None:
        result_type = object if value is None else type(value)
    if not isinstance(result_type, type):
        raise InvariantViolation(f"result type must be a class, got {result_type!r}")
    if value is None and is_value_type(result_type):
        raise InvariantViolation(
            f"None cannot carry the value type {_type_name(result_type)}"
        )
    return Constant(ExpressionType.CONSTANT, result_type, value)


def parameter(index: int, result_type: type = object) -> Parameter:
    if index < 0:
        raise InvariantViolation(f"parameter index must be >= 0, got {index}")
    return Parameter(ExpressionType.PARAMETER, result_type, index)


# ── Unary ────────────────────────────────────────────────────────


def convert(expression: Expression, to: type) -> Expression:
    if expression.result_type is to:
        return expression
    if not isinstance(to, type):
        raise InvariantViolation(f"conversion target must be a class, got {to!r}")
    return Unary(ExpressionType.CONVERT, to, expression)


def negate(expression: Expression) -> Unary:
    result = unary_result_type(ExpressionType.NEGATE, expression.result_type)
    return Unary(ExpressionType.NEGATE, result, expression)


def unary_plus(expression: Expression) -> Unary:
    result = unary_result_type(ExpressionType.UNARY_PLUS, expression.result_type)
    return Unary(ExpressionType.UNARY_PLUS, result, expression)


def bitwise_not(expression: Expression) -> Unary:
    result = unary_result_type(ExpressionType.BITWISE_NOT, expression.result_type)
    return Unary(ExpressionType.BITWISE_NOT, result, expression)


def array_length(expression: Expression) -> Unary:
    if is_value_type(expression.result_type):
        raise InvariantViolation(
            f"{_type_name(expression.result_type)} has no length"
        )
    return Unary(ExpressionType.ARRAY_LENGTH, int, expression)


def is_null(expression: Expression) -> Unary:
    if is_value_type(expression.result_type):
        raise InvariantViolation(
            f"{_type_name(expression.result_type)} values are never None"
        )
    return Unary(ExpressionType.IS_NULL, bool, expression)


def is_non_null(expression: Expression) -> Unary:
    if is_value_type(expression.result_type):
        raise InvariantViolation(
            f"{_type_name(expression.result_type)} values are never None"
        )
    return Unary(ExpressionType.IS_NON_NULL, bool, expression)


def quote(expression: Expression) -> Unary:
    return Unary(ExpressionType.QUOTE, type(expression), expression)


def truth_test(expression: Expression) -> Expression:
    """Boolean view of ``expression``, the way ``if`` would see it."""
    t = expression.result_type
    if t is bool:
        return expression
    if isinstance(expression, Constant):
        return constant(bool(expression.value), bool)
    if is_numeric(t):
        return not_equal(expression, constant(zero_of(t), t))
    return convert(expression, bool)


def logical_not(expression: Expression) -> Expression:
    expression = truth_test(expression)
    kind = expression.expression_type

    if isinstance(expression, Constant):
        return constant(not expression.value, bool)

    if isinstance(expression, Unary):
        if kind == ExpressionType.LOGICAL_NOT:
            return expression.operand
        if kind == ExpressionType.IS_NULL:
            return is_non_null(expression.operand)
        if kind == ExpressionType.IS_NON_NULL:
            return is_null(expression.operand)

    if isinstance(expression, Binary):
        dual = DUAL_COMPARISONS.get(kind)
        if dual is not None:
            return binary(dual, expression.first, expression.second)
        if kind == ExpressionType.LOGICAL_AND:
            return logical_or(
                logical_not(expression.first), logical_not(expression.second)
            )
        if kind == ExpressionType.LOGICAL_OR:
            return logical_and(
                logical_not(expression.first), logical_not(expression.second)
            )
        if kind == ExpressionType.CONDITIONAL:
            return condition(
                expression.test,
                logical_not(expression.first),
                logical_not(expression.second),
            )

    return Unary(ExpressionType.LOGICAL_NOT, bool, expression)


# ── Arithmetic, bitwise and shifts ───────────────────────────────


def _arithmetic(kind: ExpressionType, first: Expression, second: Expression) -> Binary:
    result = binary_result_type(kind, first.result_type, second.result_type)
    if kind not in (ExpressionType.LEFT_SHIFT, ExpressionType.RIGHT_SHIFT):
        first, second = _promote(first, second)
    return Binary(kind, result, first, second)


def add(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.ADD, first, second)


def subtract(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.SUBTRACT, first, second)


def multiply(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.MULTIPLY, first, second)


def divide(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.DIVIDE, first, second)


def floor_divide(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.FLOOR_DIVIDE, first, second)


def modulo(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.MODULO, first, second)


def power(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.POWER, first, second)


def bitwise_and(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.BITWISE_AND, first, second)


def bitwise_or(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.BITWISE_OR, first, second)


def exclusive_or(first: Expression, second: Expression) -> Expression:
    for operand, other in ((first, second), (second, first)):
        if (
            isinstance(other, Constant)
            and is_integral(other.result_type)
            and other.value == -1
            and (is_integral(operand.result_type) or is_dynamic(operand.result_type))
        ):
            return bitwise_not(operand)
    return _arithmetic(ExpressionType.EXCLUSIVE_OR, first, second)


def left_shift(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.LEFT_SHIFT, first, second)


def right_shift(first: Expression, second: Expression) -> Binary:
    return _arithmetic(ExpressionType.RIGHT_SHIFT, first, second)


# ── Comparisons ──────────────────────────────────────────────────


def _comparison(kind: ExpressionType, first: Expression, second: Expression) -> Binary:
    check_comparable(kind, first.result_type, second.result_type)
    first, second = _promote(first, second)
    return Binary(kind, bool, first, second)


def equal(first: Expression, second: Expression) -> Expression:
    folded = _fold_constants(first, second, operator.eq)
    if folded is not None:
        return folded
    split = _boolean_split(first, second)
    if split is not None:
        c, other = split
        return other if c.value else logical_not(other)
    return _comparison(ExpressionType.EQUAL, first, second)


def not_equal(first: Expression, second: Expression) -> Expression:
    folded = _fold_constants(first, second, operator.ne)
    if folded is not None:
        return folded
    split = _boolean_split(first, second)
    if split is not None:
        c, other = split
        return logical_not(other) if c.value else other
    return _comparison(ExpressionType.NOT_EQUAL, first, second)


def less_than(first: Expression, second: Expression) -> Binary:
    return _comparison(ExpressionType.LESS_THAN, first, second)


def less_than_or_equal(first: Expression, second: Expression) -> Binary:
    return _comparison(ExpressionType.LESS_THAN_OR_EQUAL, first, second)


def greater_than(first: Expression, second: Expression) -> Binary:
    return _comparison(ExpressionType.GREATER_THAN, first, second)


def greater_than_or_equal(first: Expression, second: Expression) -> Binary:
    return _comparison(ExpressionType.GREATER_THAN_OR_EQUAL, first, second)


def is_(first: Expression, second: Expression) -> Expression:
    if _is_none(second) and not is_value_type(first.result_type):
        return is_null(first)
    if _is_none(first) and not is_value_type(second.result_type):
        return is_null(second)
    return Binary(ExpressionType.IS, bool, first, second)


def is_not(first: Expression, second: Expression) -> Expression:
    if _is_none(second) and not is_value_type(first.result_type):
        return is_non_null(first)
    if _is_none(first) and not is_value_type(second.result_type):
        return is_non_null(second)
    return Binary(ExpressionType.IS_NOT, bool, first, second)


def contains(item: Expression, container: Expression) -> Binary:
    if is_value_type(container.result_type):
        raise InvariantViolation(
            f"{_type_name(container.result_type)} is not a container"
        )
    return Binary(ExpressionType.IN, bool, item, container)


def not_contains(item: Expression, container: Expression) -> Binary:
    if is_value_type(container.result_type):
        raise InvariantViolation(
            f"{_type_name(container.result_type)} is not a container"
        )
    return Binary(ExpressionType.NOT_IN, bool, item, container)


# ── Logical ──────────────────────────────────────────────────────


def logical_and(first: Expression, second: Expression) -> Expression:
    first, second = truth_test(first), truth_test(second)
    split = _boolean_split(first, second)
    if split is not None:
        c, other = split
        return other if c.value else c
    return Binary(ExpressionType.LOGICAL_AND, bool, first, second)


def logical_or(first: Expression, second: Expression) -> Expression:
    first, second = truth_test(first), truth_test(second)
    split = _boolean_split(first, second)
    if split is not None:
        c, other = split
        return c if c.value else other
    return Binary(ExpressionType.LOGICAL_OR, bool, first, second)


def _unify(
    if_true: Expression, if_false: Expression
) -> tuple[Expression, Expression]:
    """Retype both arms to a shared type without changing either value.

    Numeric widening would turn ``2`` into ``2.0`` or ``False`` into ``0``,
    so differing numeric arms meet at ``object``.
    """
    from .converter import TypeConverter

    first, second = if_true.result_type, if_false.result_type
    if is_numeric(first) and is_numeric(second):
        target = object
    else:
        target = common_type(first, second)
    return (
        TypeConverter.convert(if_true, target),
        TypeConverter.convert(if_false, target),
    )


def _last_operand(expression: Expression, kind: ExpressionType) -> Expression:
    """The operand whose value a chain of ``kind`` yields when it decides.

    ``a and b`` is ``b`` whenever it is true; ``a or b`` is ``b`` whenever
    it is false.
    """
    while isinstance(expression, Binary) and expression.expression_type == kind:
        expression = expression.second
    return expression


def condition(test: Expression, if_true: Expression, if_false: Expression) -> Expression:
    test = truth_test(test)
    if if_true.result_type is not if_false.result_type:
        if_true, if_false = _unify(if_true, if_false)

    if isinstance(test, Unary) and test.expression_type == ExpressionType.LOGICAL_NOT:
        return condition(test.operand, if_false, if_true)

    if if_true.is_boolean:
        stripped_true, stripped_false = _strip(if_true), _strip(if_false)
        true_is_constant = isinstance(stripped_true, Constant)
        false_is_constant = isinstance(stripped_false, Constant)
        if true_is_constant and false_is_constant:
            if stripped_true.value == stripped_false.value:
                return if_true
            return convert(
                test if stripped_true.value else logical_not(test),
                if_true.result_type,
            )
        if if_false == _last_operand(test, ExpressionType.LOGICAL_OR):
            return logical_and(test, if_true)
        if if_true == _last_operand(test, ExpressionType.LOGICAL_AND):
            return logical_or(test, if_false)
        negated = logical_not(test)
        if if_false == negated:
            return logical_or(negated, if_true)
        if if_true == negated:
            return logical_and(negated, if_false)
        if false_is_constant:
            if stripped_false.value:
                return logical_or(logical_not(test), if_true)
            return logical_and(test, if_true)
        if true_is_constant:
            if stripped_true.value:
                return logical_or(test, if_false)
            return logical_and(logical_not(test), if_false)

    if (
        isinstance(test, Unary)
        and test.expression_type == ExpressionType.IS_NON_NULL
        and test.operand == if_true
    ):
        return coalesce(if_true, if_false)
    if (
        isinstance(test, Unary)
        and test.expression_type == ExpressionType.IS_NULL
        and test.operand == if_false
    ):
        return coalesce(if_false, if_true)

    return Binary(ExpressionType.CONDITIONAL, if_true.result_type, if_true, if_false, test)


# ── Other binary ─────────────────────────────────────────────────


def array_index(array: Expression, index: Expression) -> Binary:
    container, key = array.result_type, index.result_type
    if is_value_type(container):
        raise InvariantViolation(f"{_type_name(container)} is not subscriptable")
    if container in SEQUENCE_TYPES and not (
        is_integral(key) or key is slice or is_dynamic(key)
    ):
        raise InvariantViolation(
            f"{_type_name(container)} indices must be integral, got {_type_name(key)}"
        )
    if key is slice:
        result = container if container in SEQUENCE_TYPES else object
    elif container is str:
        result = str
    elif container in (bytes, bytearray):
        result = int
    else:
        result = object
    return Binary(ExpressionType.ARRAY_INDEX, result, array, index)


def coalesce(first: Expression, second: Expression) -> Binary:
    for operand in (first, second):
        if is_value_type(operand.result_type):
            raise InvariantViolation(
                f"coalesce does not accept the value type "
                f"{_type_name(operand.result_type)}"
            )
    result = common_type(first.result_type, second.result_type)
    return Binary(ExpressionType.COALESCE, result, first, second)


def _is_class_info(value: Any) -> bool:
    if isinstance(value, tuple):
        return all(_is_class_info(item) for item in value)
    return isinstance(value, type) or isinstance(value, types.UnionType)


def instance_of(expression: Expression, cls: Any) -> Binary:
    if not isinstance(cls, Expression):
        cls = constant(cls)
    if not (isinstance(cls, Constant) and _is_class_info(cls.value)):
        raise InvariantViolation(f"{cls} is not a class")
    return Binary(ExpressionType.INSTANCE_OF, bool, expression, cls)


# ── Members ──────────────────────────────────────────────────────


def _is_static_owner(value: Any) -> bool:
    return isinstance(value, (type, types.ModuleType))


def _attribute(owner: Any, name: str) -> Any:
    try:
        return getattr(owner, name)
    except AttributeError as exc:
        raise ResourceUnavailable(f"{_name(owner)}.{name}", "no such member") from exc


def field(instance: Expression | None, name: str, owner: Any = None) -> Expression:
    """Attribute read.  A static read names its ``owner`` class or module.

    Reading from a module or class constant is done now, so ``math.sqrt``
    becomes the function itself and a later call on it is static.
    """
    if instance is None:
        if owner is None:
            raise InvariantViolation(f"static field {name} needs an owner")
        result = type(_attribute(owner, name))
        return Member(ExpressionType.FIELD_ACCESS, result, None, owner, name)
    if isinstance(instance, Constant) and _is_static_owner(instance.value):
        return constant(_attribute(instance.value, name))
    return Member(ExpressionType.FIELD_ACCESS, object, instance, name, name)


def _annotation_type(annotation: Any) -> type:
    if annotation is inspect.Parameter.empty or not isinstance(annotation, type):
        return object
    return annotation


def _signature_types(fn: Callable, arity: int) -> tuple[tuple[type, ...], type]:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return (object,) * arity, object
    try:
        signature.bind(*range(arity))
    except TypeError as exc:
        raise InvariantViolation(
            f"{_name(fn)} cannot take {arity} positional arguments"
        ) from exc
    params = [
        p
        for p in signature.parameters.values()
        if p.kind
        in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        )
    ]
    declared = tuple(
        _annotation_type(params[min(i, len(params) - 1)].annotation)
        for i in range(arity)
    )
    return declared, _annotation_type(signature.return_annotation)


def method(instance: Expression | None, member: Any, arity: int) -> Member:
    """Method reference.

    With an ``instance`` expression, ``member`` is the method name and the
    call dispatches on the receiver at evaluation time.  A module or class
    constant receiver is resolved eagerly to a static reference.  Without an
    instance, ``member`` is the callable itself.
    """
    if instance is not None:
        if isinstance(instance, Constant) and _is_static_owner(instance.value):
            return method(None, _attribute(instance.value, member), arity)
        return Member(
            ExpressionType.METHOD_ACCESS,
            object,
            instance,
            member,
            member,
            (object,) * arity,
        )
    if not callable(member):
        raise InvariantViolation(f"{member!r} is not callable")
    declared, result = _signature_types(member, arity)
    return Member(
        ExpressionType.METHOD_ACCESS, result, None, member, _name(member), declared
    )


def new(cls: type, arity: int) -> Member:
    if not isinstance(cls, type):
        raise InvariantViolation(f"{cls!r} is not a class")
    return Member(ExpressionType.NEW, cls, None, cls, _name(cls), (object,) * arity)


def member(
    kind: ExpressionType,
    instance: Expression | None,
    handle: Any,
    name: str,
    result_type: type = object,
    parameter_types: Sequence[type] = (),
) -> Member:
    """Generic member factory used when rebuilding existing members."""
    if kind not in (
        ExpressionType.FIELD_ACCESS,
        ExpressionType.METHOD_ACCESS,
        ExpressionType.NEW,
    ):
        raise InvariantViolation(f"{kind.value} is not a member kind")
    if kind == ExpressionType.NEW and instance is not None:
        raise InvariantViolation("constructors take no instance")
    return Member(kind, result_type, instance, handle, name, tuple(parameter_types))


def _rewrite_call(
    target: Member, arguments: tuple[Expression, ...]
) -> Expression | None:
    kind = target.expression_type
    if kind == ExpressionType.NEW:
        if target.member in CONVERSION_TYPES and len(arguments) == 1:
            return convert(arguments[0], target.member)
        return None
    if target.instance is None:
        if target.member is len and len(arguments) == 1:
            return array_length(arguments[0])
        if (
            target.member is isinstance
            and len(arguments) == 2
            and isinstance(arguments[1], Constant)
            and _is_class_info(arguments[1].value)
        ):
            return instance_of(arguments[0], arguments[1])
        return None
    to = CONVERSION_DUNDERS.get(target.name)
    if to is not None and not arguments:
        return convert(target.instance, to)
    return None


def invoke(target: Expression, arguments: Iterable[Expression] = ()) -> Expression:
    arguments = tuple(arguments)
    if isinstance(target, Lambda):
        declared = tuple(p.result_type for p in target.parameters)
    elif isinstance(target, Member) and target.expression_type in (
        ExpressionType.METHOD_ACCESS,
        ExpressionType.NEW,
    ):
        declared = target.parameter_types
    else:
        raise InvariantViolation(f"{target} is not invocable")

    if len(arguments) != len(declared):
        raise InvariantViolation(
            f"{target} expects {len(declared)} arguments, got {len(arguments)}"
        )
    for position, (argument, expected) in enumerate(zip(arguments, declared)):
        if not is_assignable(expected, argument.result_type):
            raise InvariantViolation(
                f"argument {position} of {target}: "
                f"{_type_name(argument.result_type)} is not assignable to "
                f"{_type_name(expected)}"
            )

    if isinstance(target, Member):
        rewritten = _rewrite_call(target, arguments)
        if rewritten is not None:
            return rewritten
    return Invocation(ExpressionType.INVOKE, target.result_type, target, arguments)


def lambda_(
    body: Expression,
    parameters: Sequence[Parameter] = (),
    result_type: type | None = None,
) -> Lambda:
    parameters = tuple(parameters)
    for position, param in enumerate(parameters):
        if param.index != position:
            raise InvariantViolation(
                f"parameter {position} is declared with index {param.index}"
            )
    for node in walk(body):
        if isinstance(node, Parameter) and node.index >= len(parameters):
            raise InvariantViolation(
                f"{node} is outside the {len(parameters)} declared parameters"
            )
    if result_type is not None:
        body = convert(body, result_type)
    return Lambda(ExpressionType.LAMBDA, body.result_type, body, parameters)


# ── Dispatch ─────────────────────────────────────────────────────


UNARY_DISPATCH: dict[ExpressionType, Callable[..., Expression]] = {
    ExpressionType.NEGATE: negate,
    ExpressionType.UNARY_PLUS: unary_plus,
    ExpressionType.BITWISE_NOT: bitwise_not,
    ExpressionType.LOGICAL_NOT: logical_not,
    ExpressionType.ARRAY_LENGTH: array_length,
    ExpressionType.IS_NULL: is_null,
    ExpressionType.IS_NON_NULL: is_non_null,
    ExpressionType.QUOTE: quote,
}

BINARY_DISPATCH: dict[ExpressionType, Callable[[Expression, Expression], Expression]] = {
    ExpressionType.ADD: add,
    ExpressionType.SUBTRACT: subtract,
    ExpressionType.MULTIPLY: multiply,
    ExpressionType.DIVIDE: divide,
    ExpressionType.FLOOR_DIVIDE: floor_divide,
    ExpressionType.MODULO: modulo,
    ExpressionType.POWER: power,
    ExpressionType.BITWISE_AND: bitwise_and,
    ExpressionType.BITWISE_OR: bitwise_or,
    ExpressionType.EXCLUSIVE_OR: exclusive_or,
    ExpressionType.LEFT_SHIFT: left_shift,
    ExpressionType.RIGHT_SHIFT: right_shift,
    ExpressionType.EQUAL: equal,
    ExpressionType.NOT_EQUAL: not_equal,
    ExpressionType.LESS_THAN: less_than,
    ExpressionType.LESS_THAN_OR_EQUAL: less_than_or_equal,
    ExpressionType.GREATER_THAN: greater_than,
    ExpressionType.GREATER_THAN_OR_EQUAL: greater_than_or_equal,
    ExpressionType.IS: is_,
    ExpressionType.IS_NOT: is_not,
    ExpressionType.IN: contains,
    ExpressionType.NOT_IN: not_contains,
    ExpressionType.LOGICAL_AND: logical_and,
    ExpressionType.LOGICAL_OR: logical_or,
    ExpressionType.ARRAY_INDEX: array_index,
    ExpressionType.COALESCE: coalesce,
    ExpressionType.INSTANCE_OF: instance_of,
}


def unary(
    kind: ExpressionType, operand: Expression, result_type: type | None = None
) -> Expression:
    """Route to the unary factory for ``kind``; Convert needs ``result_type``."""
    if kind == ExpressionType.CONVERT:
        if result_type is None:
            raise InvariantViolation("Convert needs a target type")
        return convert(operand, result_type)
    factory = UNARY_DISPATCH.get(kind)
    if factory is None:
        raise InvariantViolation(f"{kind.value} is not a unary expression type")
    return factory(operand)


def binary(
    kind: ExpressionType,
    first: Expression,
    second: Expression,
    test: Expression | None = None,
) -> Expression:
    """Route to the binary factory for ``kind``; Conditional needs ``test``."""
    if kind == ExpressionType.CONDITIONAL:
        if test is None:
            raise InvariantViolation("Conditional needs a test")
        return condition(test, first, second)
    factory = BINARY_DISPATCH.get(kind)
    if factory is None:
        raise InvariantViolation(f"{kind.value} is not a binary expression type")
    return factory(first, second)


def symbol_operator(symbol: str) -> ExpressionType:
    try:
        return SYMBOL_TYPES[symbol]
    except KeyError as exc:
        raise InvariantViolation(f"unknown operator {symbol!r}") from exc
