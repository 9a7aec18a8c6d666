"""Tests for TypeConverter."""

import pytest

from lambdatree import build
from lambdatree.converter import TypeConverter
from lambdatree.errors import InvariantViolation
from lambdatree.expression import ExpressionType


class TestConstants:
    def test_one_becomes_true(self):
        assert TypeConverter.convert(build.constant(1), bool) == build.constant(True)

    def test_zero_becomes_false(self):
        assert TypeConverter.convert(build.constant(0), bool) == build.constant(False)

    def test_other_integers_are_not_booleans(self):
        with pytest.raises(InvariantViolation):
            TypeConverter.convert(build.constant(2), bool)

    def test_widening_is_eager(self):
        e = TypeConverter.convert(build.constant(3), float)
        assert e.result_type is float
        assert e.value == 3.0

    def test_retag_to_supertype(self):
        e = TypeConverter.convert(build.constant("abc"), object)
        assert e.result_type is object
        assert e.value == "abc"

    def test_narrowing_wraps(self):
        e = TypeConverter.convert(build.constant(2.5), int)
        assert e.expression_type == ExpressionType.CONVERT


class TestOtherNodes:
    def test_same_type_is_identity(self):
        p = build.parameter(0, int)
        assert TypeConverter.convert(p, int) is p

    def test_parameter_is_retyped_when_widening(self):
        e = TypeConverter.convert(build.parameter(0, int), float)
        assert e.expression_type == ExpressionType.PARAMETER
        assert e.result_type is float

    def test_parameter_is_wrapped_otherwise(self):
        e = TypeConverter.convert(build.parameter(0, object), str)
        assert e.expression_type == ExpressionType.CONVERT

    def test_conditional_converts_both_arms(self):
        test = build.parameter(0, bool)
        e = build.condition(test, build.constant(1), build.constant(2))
        converted = TypeConverter.convert(e, float)
        assert converted.expression_type == ExpressionType.CONDITIONAL
        assert converted.first == build.constant(1.0)
        assert converted.second == build.constant(2.0)
        assert converted.result_type is float

    def test_arithmetic_is_wrapped(self):
        e = build.add(build.parameter(0, int), build.constant(1))
        converted = TypeConverter.convert(e, float)
        assert converted.expression_type == ExpressionType.CONVERT
        assert converted.operand == e
