"""Tests for the rewriting visitors."""

from lambdatree import build
from lambdatree.expression import ExpressionType, Invocation, Lambda
from lambdatree.visitor import LambdaInliner, ParameterReplacer, SimpleExpressionVisitor


class TestSimpleExpressionVisitor:
    def test_unchanged_tree_is_returned_as_is(self):
        e = build.add(build.parameter(0, int), build.field(build.parameter(1), "x"))
        assert e.accept(SimpleExpressionVisitor()) is e


class TestParameterReplacer:
    def test_replaces_by_index(self):
        e = build.add(build.parameter(0, int), build.parameter(1, int))
        replaced = e.accept(ParameterReplacer({1: build.constant(5)}))
        assert str(replaced) == "(P0 + 5)"

    def test_rebuilt_nodes_are_simplified(self):
        e = build.equal(build.parameter(0, bool), build.parameter(1, bool))
        replaced = e.accept(ParameterReplacer({1: build.constant(True)}))
        assert replaced == build.parameter(0, bool)

    def test_renumbering(self):
        e = build.subtract(build.parameter(2, int), build.parameter(1, int))
        replaced = e.accept(
            ParameterReplacer(
                {1: build.constant(10), 2: build.parameter(0, int)}
            )
        )
        assert str(replaced) == "(P0 - 10)"

    def test_does_not_enter_nested_lambda(self):
        inner = build.lambda_(build.negate(build.parameter(0, int)), [build.parameter(0, int)])
        e = build.invoke(inner, [build.parameter(0, int)])
        replaced = e.accept(ParameterReplacer({0: build.constant(3)}))
        assert isinstance(replaced, Invocation)
        assert replaced.target is inner
        assert replaced.arguments == (build.constant(3),)

    def test_member_instance_is_replaced(self):
        e = build.field(build.parameter(0), "name")
        replaced = e.accept(ParameterReplacer({0: build.constant("abc")}))
        assert str(replaced) == "'abc'.name"


class TestLambdaInliner:
    def test_call_through_parameter_is_inlined(self):
        nested = build.lambda_(
            build.multiply(build.parameter(0, int), build.constant(2)),
            [build.parameter(0, int)],
        )
        call = build.invoke(
            build.method(build.parameter(1), "__call__", 1), [build.parameter(0, int)]
        )
        inlined = call.accept(LambdaInliner({1: nested}))
        assert isinstance(inlined.target, Lambda)
        assert str(inlined) == "(lambda P0: (P0 * 2))(P0)"

    def test_arity_mismatch_is_left_alone(self):
        nested = build.lambda_(build.constant(1))
        call = build.invoke(
            build.method(build.parameter(1), "__call__", 1), [build.parameter(0)]
        )
        assert call.accept(LambdaInliner({1: nested})) is call

    def test_unmapped_parameter_is_left_alone(self):
        call = build.invoke(build.method(build.parameter(0), "__call__", 0), [])
        result = call.accept(LambdaInliner({}))
        assert result is call
        assert result.target.expression_type == ExpressionType.METHOD_ACCESS
