"""Tests for closure resolution: unwrapping, binding and caching."""

import functools
import logging
import sys

import pytest

from lambdatree.errors import NotAClosure, ResourceUnavailable, UnsupportedOpcode
from lambdatree.expression import ExpressionType, Lambda
from lambdatree.resolver import CachedResolver, ClosureResolver, describe

_SUBTRACT = lambda a, b: a - b  # noqa: E731

_LIMIT = 5

_COMBINE = lambda a, b: a - b  # noqa: E731


def _over_limit(n):
    return n > _LIMIT


def _rebinds(x):
    y = x + 1
    return y


def _make_adder(x):
    return lambda y: x + y


def _make_unbound():
    f = lambda: late + 1  # noqa: E731
    return f
    late = 1  # noqa: F841


def _multiply(a, b):
    return a * b


def _typed(a: int, b: float):
    return a + b


class Threshold:
    def __init__(self, limit):
        self.limit = limit

    def exceeds(self, n):
        return n > self.limit

    def positive(self, n):
        return n > 0


class Doubler:
    def __init__(self, k):
        self.k = k

    def __call__(self, x):
        return x * self.k


def _generator(x):
    yield x


def _variadic(*args):
    return args


def _keyword_only(a, *, b):
    return a + b


class TestDescribe:
    def test_plain_lambda(self):
        info = describe(lambda x: x)
        assert info.is_synthetic
        assert info.bound == ()
        assert not info.has_receiver

    def test_captured_values(self):
        info = describe(_make_adder(5))
        assert info.captured == (5,)

    def test_bound_method(self):
        t = Threshold(10)
        info = describe(t.exceeds)
        assert info.bound == (t,)
        assert info.has_receiver
        assert info.qualname == "Threshold.exceeds"

    def test_partial(self):
        info = describe(functools.partial(_multiply, 3))
        assert info.bound == (3,)
        assert not info.has_receiver

    def test_callable_object(self):
        d = Doubler(2)
        info = describe(d)
        assert info.bound == (d,)
        assert info.qualname == "Doubler.__call__"

    def test_key_names_module_and_line(self):
        info = describe(_multiply)
        assert info.key.startswith(f"{__name__}._multiply@")

    def test_builtin_rejected(self):
        with pytest.raises(NotAClosure):
            describe(len)

    def test_generator_rejected(self):
        with pytest.raises(NotAClosure):
            describe(_generator)

    def test_variadic_rejected(self):
        with pytest.raises(NotAClosure):
            describe(_variadic)

    def test_keyword_only_rejected(self):
        with pytest.raises(NotAClosure):
            describe(_keyword_only)

    def test_partial_keywords_rejected(self):
        with pytest.raises(NotAClosure):
            describe(functools.partial(_multiply, b=2))

    def test_not_a_closure_is_a_type_error(self):
        with pytest.raises(TypeError):
            describe(42)

    def test_unbound_cell(self):
        with pytest.raises(ResourceUnavailable):
            describe(_make_unbound())


class TestResolve:
    def test_parameter_types(self):
        lam = ClosureResolver().resolve(lambda x: x + 1, [int])
        assert isinstance(lam, Lambda)
        assert lam.parameters[0].result_type is int
        assert lam.result_type is int
        assert str(lam) == "lambda P0: (P0 + 1)"

    def test_annotations_fill_missing_types(self):
        lam = ClosureResolver().resolve(_typed)
        assert [p.result_type for p in lam.parameters] == [int, float]
        assert lam.result_type is float

    def test_default_type_is_object(self):
        lam = ClosureResolver().resolve(lambda x: x)
        assert lam.parameters[0].result_type is object

    def test_captured_value_becomes_constant(self):
        lam = ClosureResolver().resolve(_make_adder(5), [int])
        assert len(lam.parameters) == 1
        assert str(lam) == "lambda P0: (5 + P0)"
        assert lam.compile()(3) == 8

    def test_bound_receiver(self):
        t = Threshold(10)
        lam = ClosureResolver().resolve(t.exceeds, [int])
        assert len(lam.parameters) == 1
        compiled = lam.compile()
        assert compiled(11)
        assert not compiled(10)

    def test_receiver_fields_are_read_at_call_time(self):
        t = Threshold(10)
        compiled = ClosureResolver().resolve(t.exceeds, [int]).compile()
        t.limit = 20
        assert not compiled(15)

    def test_unused_receiver_is_dropped(self, caplog):
        lam = ClosureResolver().resolve(Threshold(1).positive, [int])
        assert str(lam) == "lambda P0: (P0 > 0)"
        assert "never reads its receiver" in caplog.text

    def test_partial_arguments_are_bound(self):
        lam = ClosureResolver().resolve(functools.partial(_multiply, 3), [int])
        assert str(lam) == "lambda P0: (3 * P0)"
        assert lam.compile()(4) == 12

    def test_callable_object(self):
        lam = ClosureResolver().resolve(Doubler(3), [int])
        assert lam.compile()(5) == 15

    def test_forwarding_lambda_is_chased(self):
        lam = ClosureResolver().resolve(lambda a, b: _SUBTRACT(a, b))
        assert str(lam) == "lambda P0, P1: (P0 - P1)"
        assert lam.body.expression_type == ExpressionType.SUBTRACT
        assert lam.compile()(9, 4) == 5

    def test_reordered_forwarding_keeps_the_call(self):
        lam = ClosureResolver().resolve(lambda a, b: _SUBTRACT(b, a))
        assert lam.body.expression_type == ExpressionType.INVOKE
        assert lam.compile()(2, 10) == 8

    def test_captured_lambda_is_inlined(self):
        square = lambda v: v * v  # noqa: E731
        lam = ClosureResolver().resolve(lambda x: square(x) + 1, [int])
        assert lam.body.expression_type == ExpressionType.ADD
        invocation = lam.body.first
        assert isinstance(invocation.target, Lambda)
        assert lam.compile()(4) == 17

    def test_captured_function_stays_a_constant_call(self):
        lam = ClosureResolver().resolve(lambda x: _multiply(x, 2), [int])
        assert lam.compile()(21) == 42

    def test_captured_forwarder_returns_its_body(self):
        step = lambda y: y + 1  # noqa: E731
        lam = ClosureResolver().resolve(lambda x: step(x), [int])
        assert str(lam) == "lambda P0: (P0 + 1)"
        assert lam.body.expression_type == ExpressionType.ADD
        assert lam.result_type is int

    def test_captured_forwarder_with_reordered_arguments_keeps_the_call(self):
        minus = lambda a, b: a - b  # noqa: E731
        lam = ClosureResolver().resolve(lambda a, b: minus(b, a), [int, int])
        assert lam.body.expression_type == ExpressionType.INVOKE
        assert lam.compile()(2, 10) == 8

    def test_mixed_numeric_arms_keep_their_values(self):
        compiled = ClosureResolver().resolve(lambda t: 1.5 if t else 2, [bool]).compile()
        assert compiled(True) == 1.5
        assert type(compiled(False)) is int

    def test_unsupported_code_is_rejected(self):
        with pytest.raises(UnsupportedOpcode, match="Not a lambda expression"):
            ClosureResolver().resolve(_rebinds, [int])


class TestCachedResolver:
    def test_lifts_each_code_once(self):
        resolver = CachedResolver()
        first = resolver.resolve(_make_adder(1), [int])
        second = resolver.resolve(_make_adder(2), [int])
        assert len(resolver) == 1
        assert first.compile()(10) == 11
        assert second.compile()(10) == 12

    def test_parameter_types_are_part_of_the_key(self):
        resolver = CachedResolver()
        resolver.resolve(_make_adder(1), [int])
        resolver.resolve(_make_adder(1), [float])
        assert len(resolver) == 2

    def test_clear(self):
        resolver = CachedResolver()
        resolver.resolve(_make_adder(1), [int])
        resolver.clear()
        assert len(resolver) == 0

    def test_rebound_global_is_read_again(self, monkeypatch):
        resolver = CachedResolver()
        assert resolver.resolve(_over_limit, [int]).compile()(10)

        monkeypatch.setattr(sys.modules[__name__], "_LIMIT", 50)

        assert not resolver.resolve(_over_limit, [int]).compile()(10)
        assert len(resolver) == 1

    def test_unchanged_globals_hit_the_cache(self, caplog):
        caplog.set_level(logging.INFO, logger="lambdatree")
        resolver = CachedResolver()
        resolver.resolve(_over_limit, [int])
        resolver.resolve(_over_limit, [int])
        assert "Cache hit" in caplog.text

    def test_rebound_forwarding_target_is_chased_again(self, monkeypatch):
        resolver = CachedResolver()
        forwarder = lambda a, b: _COMBINE(a, b)  # noqa: E731
        assert str(resolver.resolve(forwarder)) == "lambda P0, P1: (P0 - P1)"

        monkeypatch.setattr(sys.modules[__name__], "_COMBINE", lambda a, b: a + b)

        assert str(resolver.resolve(forwarder)) == "lambda P0, P1: (P0 + P1)"
