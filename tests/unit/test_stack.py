"""Tests for ExpressionStack and Branch."""

import pytest

from lambdatree import build
from lambdatree.errors import InvariantViolation
from lambdatree.stack import Branch, ExpressionStack


def _c(value):
    return build.constant(value)


def _stack(*values) -> ExpressionStack:
    stack = ExpressionStack()
    for value in values:
        stack.push(_c(value))
    return stack


class TestPushPop:
    def test_lifo(self):
        stack = _stack(1, 2)
        assert stack.pop() == _c(2)
        assert stack.pop() == _c(1)

    def test_pop_empty_root(self):
        with pytest.raises(InvariantViolation):
            ExpressionStack().pop()

    def test_peek(self):
        stack = _stack(1, 2, 3)
        assert stack.peek() == _c(3)
        assert stack.peek(2) == _c(1)

    def test_peek_past_bottom(self):
        with pytest.raises(InvariantViolation):
            _stack(1).peek(1)

    def test_pop_expression_rejects_marker(self):
        stack = _stack(1)
        stack.push(object())
        with pytest.raises(InvariantViolation):
            stack.pop_expression()

    def test_view_is_a_copy(self):
        stack = _stack(1)
        stack.view().append(_c(2))
        assert len(stack) == 1

    def test_str(self):
        assert str(_stack(1, "a")) == "[1, 'a']"


class TestFork:
    def test_children_copy_the_entries(self):
        stack = _stack(1, 2)
        branch = stack.fork(build.parameter(0, bool))
        assert branch.true.view() == [_c(1), _c(2)]
        assert branch.false.view() == [_c(1), _c(2)]
        assert branch.true.is_leaf
        assert not stack.is_leaf

    def test_links(self):
        stack = _stack(1)
        branch = stack.fork(build.parameter(0, bool))
        assert stack.branch is branch
        assert branch.parent is stack
        assert branch.true.parent is branch

    def test_forked_stack_is_no_longer_live(self):
        stack = _stack(1)
        stack.fork(build.parameter(0, bool))
        with pytest.raises(InvariantViolation):
            stack.push(_c(2))
        with pytest.raises(InvariantViolation):
            stack.pop()
        with pytest.raises(InvariantViolation):
            stack.fork(build.parameter(1, bool))

    def test_depth(self):
        stack = _stack(1)
        branch = stack.fork(build.parameter(0, bool))
        inner = branch.true.fork(build.parameter(1, bool))
        assert stack.depth == 0
        assert branch.true.depth == 1
        assert inner.false.depth == 2
        assert inner.depth == 1

    def test_children_are_independent(self):
        stack = _stack(1)
        branch = stack.fork(build.parameter(0, bool))
        branch.true.pop()
        branch.true.push(_c(5))
        assert branch.false.view() == [_c(1)]
        assert branch.true.view() == [_c(5)]
        assert stack.entries == [_c(1)]

    def test_str_of_forked_stack(self):
        stack = _stack()
        stack.fork(build.parameter(0, bool))
        assert str(stack) == "<branch P0>"


class TestTree:
    def test_ancestors_run_up_to_the_root(self):
        root = _stack()
        middle = root.fork(build.parameter(0, bool)).false
        leaf = middle.fork(build.parameter(1, bool)).true
        assert leaf.ancestors() == [leaf, middle, root]
        assert root.ancestors() == [root]

    def test_leaves_in_order(self):
        root = _stack()
        outer = root.fork(build.parameter(0, bool))
        inner = outer.true.fork(build.parameter(1, bool))
        assert list(root.leaves()) == [inner.true, inner.false, outer.false]

    def test_construction_reparents_children(self):
        parent = _stack()
        true, false = ExpressionStack(), ExpressionStack()
        branch = Branch(build.parameter(0, bool), true, false, parent)
        assert true.parent is branch
        assert false.parent is branch

    def test_reduce_marks_the_stack(self):
        stack = _stack()
        stack.reduce()
        assert stack.reduced
