"""Tests for the branch reducer."""

import itertools

import pytest

from lambdatree import build
from lambdatree.errors import InvariantViolation
from lambdatree.evaluator import evaluate
from lambdatree.expression import ExpressionType
from lambdatree.reducer import reduce, reduce_two
from lambdatree.stack import ExpressionStack


def _c(value):
    return build.constant(value)


def _test(index: int):
    return build.parameter(index, bool)


def _truth_table(arity: int):
    return itertools.product((False, True), repeat=arity)


class TestSiblings:
    def test_merge_into_conditional(self):
        root = ExpressionStack()
        root.push(_c("keep"))
        branch = root.fork(_test(0))
        branch.true.push(_c(1))
        branch.false.push(_c(2))

        merged = reduce([branch.false, branch.true])

        assert merged is root
        assert merged.is_leaf
        assert merged.view()[0] == _c("keep")
        assert str(merged.view()[1]) == "(1 if P0 else 2)"

    def test_equal_entries_are_not_wrapped(self):
        root = ExpressionStack()
        branch = root.fork(_test(0))
        branch.true.push(_c(7))
        branch.false.push(_c(7))
        assert reduce([branch.true, branch.false]).view() == [_c(7)]

    def test_copied_entry_merges_with_replaced_entry(self):
        # ``x and y``: the false side keeps x, the true side replaces it
        root = ExpressionStack()
        root.push(_test(0))
        branch = root.fork(_test(0))
        branch.true.pop()
        branch.true.push(_test(1))

        merged = reduce_two(branch.false, branch.true)

        value = merged.view()[0]
        assert value.expression_type == ExpressionType.LOGICAL_AND
        assert str(value) == "(P0 and P1)"

    def test_merged_stacks_are_marked(self):
        root = ExpressionStack()
        branch = root.fork(_test(0))
        reduce([branch.true, branch.false])
        assert branch.true.reduced
        assert branch.false.reduced


class TestCousins:
    def _grid(self):
        # P0 splits into a P1 fork and a P2 fork; each leaf holds one value
        root = ExpressionStack()
        outer = root.fork(_test(0))
        left = outer.true.fork(_test(1))
        right = outer.false.fork(_test(2))
        left.true.push(_c(1))
        left.false.push(_c(3))
        right.true.push(_c(2))
        right.false.push(_c(4))
        return root, left, right

    def test_cousins_merge_under_a_new_branch(self):
        root, left, right = self._grid()

        merged = reduce([left.true, right.true])

        assert root.branch.true is merged
        assert list(root.leaves()) == [merged, left.false, right.false]
        assert str(merged.view()[0]) == "(1 if P0 else 2)"
        reached = root.branch.test
        for p0, p1, p2 in _truth_table(3):
            assert evaluate(reached, p0, p1, p2) == (p1 if p0 else p2)

    def test_remaining_cousins_merge_back(self):
        root, left, right = self._grid()
        merged = reduce([left.true, right.true])

        final = reduce([merged, left.false, right.false])

        assert final is root
        assert final.is_leaf
        value = final.view()[0]
        for p0, p1, p2 in _truth_table(3):
            expected = (1 if p1 else 3) if p0 else (2 if p2 else 4)
            assert evaluate(value, p0, p1, p2) == expected


class TestAcrossLevels:
    def test_short_circuit_or_into_and(self):
        # (a or b) and c: a true jumps straight to c, b false skips c
        root = ExpressionStack()
        outer = root.fork(_test(0))
        past_a = outer.false
        past_a.push(_test(1))
        inner = past_a.fork(_test(1))
        inner.true.pop()

        at_c = reduce([outer.true, inner.true])
        assert str(root.branch.test) == "(P0 or P1)"
        assert root.branch.false is inner.false

        at_c.push(_test(2))
        final = reduce([inner.false, at_c])

        value = final.view()[-1]
        assert final is root
        assert str(value) == "((P0 or P1) and P2)"
        for a, b, c in _truth_table(3):
            assert evaluate(value, a, b, c) == ((a or b) and c)

    def test_cheaper_orientation_negates_the_light_test(self):
        root = ExpressionStack()
        outer = root.fork(_test(0))
        heavy = build.logical_and(_test(1), _test(2))
        inner = outer.false.fork(heavy)
        outer.true.push(_c(1))
        inner.false.push(_c(2))
        inner.true.push(_c(3))

        merged = reduce([outer.true, inner.false])

        assert root.branch.false is merged
        assert root.branch.true is inner.true
        avoided = root.branch.test
        for p0, p1, p2 in _truth_table(3):
            assert evaluate(avoided, p0, p1, p2) == (not p0 and (p1 and p2))


class TestFolding:
    def test_single_stack(self):
        stack = ExpressionStack()
        assert reduce([stack]) is stack

    def test_duplicates_count_once(self):
        stack = ExpressionStack()
        assert reduce([stack, stack]) is stack

    def test_nothing_to_reduce(self):
        with pytest.raises(InvariantViolation):
            reduce([])

    def test_unrelated_roots(self):
        with pytest.raises(InvariantViolation, match="share no root"):
            reduce([ExpressionStack(), ExpressionStack()])

    def test_uneven_heights(self):
        root = ExpressionStack()
        branch = root.fork(_test(0))
        branch.true.push(_c(1))
        with pytest.raises(InvariantViolation, match="differ in height"):
            reduce_two(branch.true, branch.false)

    def test_forked_stack_cannot_be_merged(self):
        root = ExpressionStack()
        branch = root.fork(_test(0))
        with pytest.raises(InvariantViolation, match="cannot be merged"):
            reduce([root, branch.true])
