"""Branch reducer: merge the stacks that meet at a jump target.

The stacks arriving at one label are merged at their nearest common
stack in the branch tree.  Every entry of the merged stack selects
between the arriving values along the branch tests below that stack.
Leaves below it that go elsewhere survive under a new branch whose test
says whether the label was reached.  The familiar shapes are special
cases of this:

1. siblings of one fork: the fork collapses into a ``condition``
2. cousins under a common fork: the tests of both forks combine into the
   test of one new branch
3. a stack and a deeper one hanging off its sibling's subtree: the
   deeper test joins the shallower one through ``and``/``or``
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

from . import build
from .errors import InvariantViolation
from .expression import Expression
from .stack import Branch, Entry, ExpressionStack

logger = logging.getLogger(__name__)

# A path condition that is still a plain truth value, or an expression.
PathTest = Union[bool, Expression]


def _weight(expression: Expression) -> int:
    return sum(1 for _ in build.walk(expression))


def _common_stack(stacks: Sequence[ExpressionStack]) -> ExpressionStack:
    chains = [stack.ancestors() for stack in stacks]
    others = [set(chain) for chain in chains[1:]]
    for candidate in chains[0]:
        if all(candidate in chain for chain in others):
            return candidate
    raise InvariantViolation(
        "stacks " + ", ".join(str(stack) for stack in stacks) + " share no root"
    )


# ── Path conditions ──────────────────────────────────────────────


def _path_test(
    stack: ExpressionStack, targets: set[ExpressionStack], hit: bool
) -> tuple[PathTest, int]:
    """Condition, relative to ``stack``, of ending in ``targets`` (or not).

    The second value counts the nodes of branch tests that had to be
    negated on the way; the reducer prefers the cheaper orientation.
    """
    branch = stack.branch
    if branch is None:
        return (stack in targets) == hit, 0
    when_true, true_cost = _path_test(branch.true, targets, hit)
    when_false, false_cost = _path_test(branch.false, targets, hit)
    cost = true_cost + false_cost
    test = branch.test

    if isinstance(when_true, bool) and isinstance(when_false, bool):
        if when_true == when_false:
            return when_true, cost
        if when_true:
            return test, cost
        return build.logical_not(test), cost + _weight(test)
    if when_true is True:
        return build.logical_or(test, when_false), cost
    if when_true is False:
        return build.logical_and(build.logical_not(test), when_false), cost + _weight(test)
    if when_false is False:
        return build.logical_and(test, when_true), cost
    if when_false is True:
        return build.logical_or(build.logical_not(test), when_true), cost + _weight(test)
    return build.condition(test, when_true, when_false), cost


def _as_expression(test: PathTest) -> Expression:
    if isinstance(test, bool):
        return build.constant(test)
    return test


# ── Values ───────────────────────────────────────────────────────


def _select(stack: ExpressionStack, targets: set[ExpressionStack], position: int):
    """The entry at ``position`` seen at the label, or None if no target is below."""
    branch = stack.branch
    if branch is None:
        return stack.entries[position] if stack in targets else None
    when_true = _select(branch.true, targets, position)
    when_false = _select(branch.false, targets, position)
    if when_true is None:
        return when_false
    if when_false is None or when_true is when_false:
        return when_true
    if isinstance(when_true, Expression) and isinstance(when_false, Expression):
        if when_true == when_false:
            return when_true
        return build.condition(branch.test, when_true, when_false)
    raise InvariantViolation(f"cannot merge stack entries {when_true} and {when_false}")


def _merge_entries(
    common: ExpressionStack, targets: set[ExpressionStack], height: int
) -> list[Entry]:
    return [_select(common, targets, position) for position in range(height)]


# ── Pruning ──────────────────────────────────────────────────────


def _prune(stack: ExpressionStack, targets: set[ExpressionStack]) -> ExpressionStack | None:
    """Drop ``targets`` from the subtree; a fork left with one side collapses."""
    branch = stack.branch
    if branch is None:
        return None if stack in targets else stack
    when_true = _prune(branch.true, targets)
    when_false = _prune(branch.false, targets)
    if when_true is None:
        return when_false
    if when_false is None:
        return when_true
    if when_true is not branch.true or when_false is not branch.false:
        stack.branch = Branch(branch.test, when_true, when_false, stack)
    return stack


def _remainder(
    common: ExpressionStack, targets: set[ExpressionStack]
) -> ExpressionStack | None:
    branch = common.branch
    when_true = _prune(branch.true, targets)
    when_false = _prune(branch.false, targets)
    if when_true is None:
        return when_false
    if when_false is None:
        return when_true
    rest = ExpressionStack()
    rest.branch = Branch(branch.test, when_true, when_false, rest)
    return rest


# ── Folding ──────────────────────────────────────────────────────


def _merge(stacks: list[ExpressionStack]) -> ExpressionStack:
    for stack in stacks:
        if not stack.is_leaf:
            raise InvariantViolation(f"{stack} has forked and cannot be merged")
    heights = {len(stack) for stack in stacks}
    if len(heights) != 1:
        raise InvariantViolation(
            "stacks meeting at one label differ in height: "
            + ", ".join(str(stack) for stack in stacks)
        )
    common = _common_stack(stacks)
    targets = set(stacks)
    entries = _merge_entries(common, targets, heights.pop())
    reach, reach_cost = _path_test(common, targets, True)
    avoid, avoid_cost = _path_test(common, targets, False)
    rest = _remainder(common, targets)
    for stack in stacks:
        stack.reduce()

    if rest is None:
        common.branch = None
        common.entries = entries
        logger.debug("Merged %d stacks into depth %d", len(stacks), common.depth)
        return common

    merged = ExpressionStack(entries=entries)
    if avoid_cost < reach_cost:
        common.branch = Branch(_as_expression(avoid), rest, merged, common)
    else:
        common.branch = Branch(_as_expression(reach), merged, rest, common)
    logger.debug(
        "Merged %d stacks under %s at depth %d", len(stacks), common.branch, common.depth
    )
    return merged


def reduce_two(first: ExpressionStack, second: ExpressionStack) -> ExpressionStack:
    """Merge two stacks meeting at one label."""
    return reduce([first, second])


def reduce(stacks: list[ExpressionStack]) -> ExpressionStack:
    """Fold the pending stacks at a label into a single stack."""
    unique: list[ExpressionStack] = []
    for stack in stacks:
        if not any(stack is seen for seen in unique):
            unique.append(stack)
    if not unique:
        raise InvariantViolation("no stacks to reduce")
    if len(unique) == 1:
        return unique[0]
    return _merge(unique)
