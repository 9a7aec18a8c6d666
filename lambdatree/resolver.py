"""Closure resolver: from a Python callable to a typed Lambda tree.

Resolution runs in two stages.  The code of the underlying function is
lifted with every argument and free variable as a parameter; then the
values the closure carries (cell contents, a bound receiver, partial
arguments) are substituted as constants and the remaining parameters are
renumbered from zero.
"""

from __future__ import annotations

import functools
import inspect
import logging
import types
import weakref
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict

from . import build, constants
from .code_source import CodeSource, RuntimeCodeSource, closure_key
from .config import ResolverConfig
from .errors import NotAClosure, ResourceUnavailable
from .expression import (
    Expression,
    ExpressionType,
    Invocation,
    Lambda,
    Member,
    Parameter,
    Unary,
)
from .lifter import LiftStats, Lifter, lookup_global
from .visitor import LambdaInliner, ParameterReplacer

logger = logging.getLogger(__name__)

_UNSUPPORTED_FLAGS = (
    inspect.CO_GENERATOR
    | inspect.CO_COROUTINE
    | inspect.CO_ASYNC_GENERATOR
    | inspect.CO_ITERABLE_COROUTINE
)
_VARIADIC_FLAGS = inspect.CO_VARARGS | inspect.CO_VARKEYWORDS


class ClosureInfo(BaseModel):
    """What a closure value carries, independent of where its code lives."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    module: str
    qualname: str
    firstlineno: int
    code: types.CodeType | None = None
    function: types.FunctionType | None = None
    captured: tuple[Any, ...] = ()
    bound: tuple[Any, ...] = ()
    has_receiver: bool = False

    @property
    def key(self) -> str:
        return closure_key(self.module, self.qualname, self.firstlineno)

    @property
    def is_synthetic(self) -> bool:
        return self.qualname.endswith(constants.SYNTHETIC_CODE_NAME)

    @property
    def namespace(self) -> dict[str, Any]:
        return self.function.__globals__ if self.function is not None else {}


def _cell_contents(function: types.FunctionType) -> tuple[Any, ...]:
    values = []
    names = function.__code__.co_freevars
    for name, cell in zip(names, function.__closure__ or ()):
        try:
            values.append(cell.cell_contents)
        except ValueError as exc:
            raise ResourceUnavailable(name, "captured variable is not bound yet") from exc
    return tuple(values)


def describe(value: Any) -> ClosureInfo:
    """Unwrap partials, bound methods and callable objects down to a function."""
    target = value
    bound: list[Any] = []
    has_receiver = False

    if isinstance(target, functools.partial):
        if target.keywords:
            raise NotAClosure(f"{value!r} binds keyword arguments")
        bound = list(target.args)
        target = target.func
    if isinstance(target, types.MethodType):
        bound.insert(0, target.__self__)
        has_receiver = True
        target = target.__func__
    elif not isinstance(target, types.FunctionType) and callable(target):
        call = getattr(type(target), constants.CALL_METHOD_NAME, None)
        if isinstance(call, types.FunctionType):
            bound.insert(0, target)
            has_receiver = True
            target = call

    if not isinstance(target, types.FunctionType):
        raise NotAClosure(f"{value!r} is not a Python function")
    code = target.__code__
    if code.co_flags & _UNSUPPORTED_FLAGS:
        raise NotAClosure(f"{target.__qualname__} is a generator or coroutine")
    if code.co_flags & _VARIADIC_FLAGS or code.co_kwonlyargcount:
        raise NotAClosure(f"{target.__qualname__} takes *args, **kwargs or keywords")
    if len(bound) > code.co_argcount:
        raise NotAClosure(f"{value!r} binds more arguments than it accepts")

    return ClosureInfo(
        module=target.__module__ or "",
        qualname=target.__qualname__,
        firstlineno=code.co_firstlineno,
        code=code,
        function=target,
        captured=_cell_contents(target),
        bound=tuple(bound),
        has_receiver=has_receiver,
    )


def _annotation(function: types.FunctionType | None, name: str, default: type) -> type:
    if function is None:
        return default
    annotation = function.__annotations__.get(name)
    return annotation if isinstance(annotation, type) else default


def _strip_conversions(expression: Expression) -> Expression:
    while isinstance(expression, Unary) and expression.expression_type == ExpressionType.CONVERT:
        expression = expression.operand
    return expression


def _retype(expression: Expression, result_type: type) -> Expression:
    if result_type is object:
        return expression
    return build.convert(expression, result_type)


def _inline_forward(call: Invocation, inner: Lambda) -> Expression | None:
    """``inner``'s body if ``call`` passes it the caller's parameters in order."""
    arguments = call.arguments
    in_order = len(arguments) == len(inner.parameters) and all(
        isinstance(arg, Parameter) and arg.index == i
        for i, arg in enumerate(arguments)
    )
    if not in_order:
        return None
    return inner.body.accept(ParameterReplacer(dict(enumerate(arguments))))


def _globals_unchanged(namespace: dict[str, Any], snapshot: dict[str, Any]) -> bool:
    for name, value in snapshot.items():
        try:
            if lookup_global(namespace, name) is not value:
                return False
        except ResourceUnavailable:
            return False
    return True


class ClosureResolver:
    """Resolve closure values to Lambda trees using one code source."""

    def __init__(
        self,
        source: CodeSource | None = None,
        config: ResolverConfig | None = None,
    ):
        self.source = source or RuntimeCodeSource()
        self.config = config or ResolverConfig()
        self._active: set[types.CodeType] = set()

    def resolve(self, value: Any, param_types: Sequence[type] | None = None) -> Lambda:
        info = describe(value)
        code = self.source.code_for(info)
        slot_types = self._slot_types(info, code, param_types)
        self._active.add(code)
        try:
            raw, stats = self._lift(info, code, slot_types)
            if info.is_synthetic:
                raw = self._chase_forwarder(raw)
            result = self._bind(info, code, raw, stats)
        finally:
            self._active.discard(code)
        logger.info("Resolved %s: %s", info.key, result)
        return result

    # ── stage 1: lift with every slot free ───────────────────────

    def _slot_types(
        self,
        info: ClosureInfo,
        code: types.CodeType,
        param_types: Sequence[type] | None,
    ) -> tuple[type, ...]:
        names = code.co_varnames[: code.co_argcount]
        free = names[len(info.bound) :]
        given = list(param_types or ())
        default = self.config.default_param_type
        free_types = [
            given[i] if i < len(given) else _annotation(info.function, name, default)
            for i, name in enumerate(free)
        ]
        leading = [object] * len(info.bound)
        captures = [object] * len(code.co_freevars)
        return tuple(leading + free_types + captures)

    def _lift(
        self, info: ClosureInfo, code: types.CodeType, slot_types: tuple[type, ...]
    ) -> tuple[Lambda, LiftStats]:
        lifter = Lifter(code, slot_types, info.namespace)
        body = lifter.lift()
        parameters = [build.parameter(i, t) for i, t in enumerate(slot_types)]
        return build.lambda_(body, parameters), lifter.stats

    def _chase_forwarder(self, raw: Lambda) -> Lambda:
        body = raw.body
        call = _strip_conversions(body)
        if not (
            isinstance(call, Invocation)
            and isinstance(call.target, Member)
            and call.target.expression_type == ExpressionType.METHOD_ACCESS
            and call.target.instance is None
            and isinstance(call.target.member, types.FunctionType)
            and call.target.member.__code__.co_name == constants.SYNTHETIC_CODE_NAME
            and call.target.member.__code__ not in self._active
        ):
            return raw
        inner = self.resolve(call.target.member)
        logger.debug("Chasing forwarder into %s", inner)
        chased = _inline_forward(call, inner)
        if chased is None:
            chased = build.invoke(inner, call.arguments)
        return build.lambda_(_retype(chased, body.result_type), raw.parameters)

    # ── stage 2: bind what the closure carries ───────────────────

    def _bind(
        self,
        info: ClosureInfo,
        code: types.CodeType,
        raw: Lambda,
        stats: LiftStats,
    ) -> Lambda:
        argcount = code.co_argcount
        bindings: dict[int, Expression] = {}

        for slot, value in enumerate(info.bound):
            if slot == 0 and info.has_receiver and not stats.instance_requested:
                logger.warning("%s never reads its receiver; dropping it", info.key)
                continue
            bindings[slot] = build.constant(value)

        nested: dict[int, Lambda] = {}
        for offset, value in enumerate(info.captured):
            slot = argcount + offset
            bindings[slot] = build.constant(value)
            if (
                isinstance(value, types.FunctionType)
                and value.__code__.co_name == constants.SYNTHETIC_CODE_NAME
                and value.__code__ not in self._active
            ):
                nested[slot] = self.resolve(value)

        remaining = raw.parameters[len(info.bound) : argcount]
        for new_index, param in enumerate(remaining):
            bindings[param.index] = build.parameter(new_index, param.result_type)

        body = raw.body
        if nested:
            body = body.accept(LambdaInliner(nested))
        body = body.accept(ParameterReplacer(bindings))
        if nested:
            body = self._direct_return(body)
        parameters = [build.parameter(i, p.result_type) for i, p in enumerate(remaining)]
        return build.lambda_(body, parameters)

    def _direct_return(self, body: Expression) -> Expression:
        """Replace a call of an inlined lambda on the caller's parameters by its body."""
        call = _strip_conversions(body)
        if not (isinstance(call, Invocation) and isinstance(call.target, Lambda)):
            return body
        chased = _inline_forward(call, call.target)
        if chased is None:
            return body
        logger.debug("Forwarding %s directly to %s", body, chased)
        return _retype(chased, body.result_type)


class CachedResolver(ClosureResolver):
    """ClosureResolver that lifts each code object once per parameter typing.

    The cached tree still has every slot free, so captured values are bound
    afresh on every call.  An entry is dropped once a global it read has
    been rebound or deleted.
    """

    def __init__(
        self,
        source: CodeSource | None = None,
        config: ResolverConfig | None = None,
    ):
        super().__init__(source, config)
        self._cache: weakref.WeakKeyDictionary[
            types.CodeType, dict[tuple[type, ...], tuple[Lambda, LiftStats]]
        ] = weakref.WeakKeyDictionary()

    def _lift(
        self, info: ClosureInfo, code: types.CodeType, slot_types: tuple[type, ...]
    ) -> tuple[Lambda, LiftStats]:
        entries = self._cache.setdefault(code, {})
        cached = entries.get(slot_types)
        if cached is not None:
            if _globals_unchanged(info.namespace, cached[1].globals_read):
                logger.info("Cache hit for %s", info.key)
                return cached
            logger.info("Globals read by %s changed; lifting again", info.key)
        entries[slot_types] = super()._lift(info, code, slot_types)
        return entries[slot_types]

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._cache.values())
