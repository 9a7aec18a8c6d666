"""Symbolic operand stacks and the branch tree that links them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from .errors import InvariantViolation
from .expression import Expression

logger = logging.getLogger(__name__)

# Stack entries are expressions or the lifter's call markers.
Entry = Any

# ── Data types ───────────────────────────────────────────────────


@dataclass(eq=False)
class Branch:
    """A conditional jump that has not been merged yet.

    ``true`` is the path taken when ``test`` holds, ``false`` the other
    one; which of them is the jump and which the fall-through depends on
    the jump instruction.  ``parent`` is the stack that was live when the
    jump was reached.
    """

    test: Expression
    true: ExpressionStack
    false: ExpressionStack
    parent: ExpressionStack | None = None

    def __post_init__(self):
        self.true.parent = self
        self.false.parent = self

    @property
    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth

    def __str__(self) -> str:
        return f"<branch {self.test}>"


@dataclass(eq=False)
class ExpressionStack:
    """One path's operand stack, or an inner node of the branch tree.

    A stack that has forked keeps its ``branch`` and stops taking entries;
    its children start with a copy of its entries.  Only leaves are live.
    """

    parent: Branch | None = None
    entries: list[Entry] = field(default_factory=list)
    branch: Branch | None = None
    reduced: bool = False

    @property
    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth + 1

    @property
    def is_leaf(self) -> bool:
        return self.branch is None

    def view(self) -> list[Entry]:
        return list(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def _check_live(self) -> None:
        if self.branch is not None:
            raise InvariantViolation("stack has forked and is no longer live")

    def push(self, entry: Entry) -> None:
        self._check_live()
        self.entries.append(entry)

    def pop(self) -> Entry:
        self._check_live()
        if not self.entries:
            raise InvariantViolation("pop from an empty expression stack")
        return self.entries.pop()

    def peek(self, n: int = 0) -> Entry:
        if n >= len(self.entries):
            raise InvariantViolation("peek past the bottom of the expression stack")
        return self.entries[-1 - n]

    def pop_expression(self) -> Expression:
        entry = self.pop()
        if not isinstance(entry, Expression):
            raise InvariantViolation(f"expected an expression, found {entry}")
        return entry

    def reduce(self) -> None:
        self.reduced = True

    def fork(self, test: Expression) -> Branch:
        """Turn this stack into a branch; both children copy its entries."""
        self._check_live()
        self.branch = Branch(
            test,
            ExpressionStack(entries=list(self.entries)),
            ExpressionStack(entries=list(self.entries)),
            self,
        )
        logger.debug(
            "Forked at depth %d on %s (stack size %d)", self.depth, test, len(self)
        )
        return self.branch

    def ancestors(self) -> list[ExpressionStack]:
        """This stack followed by every stack above it, up to the root."""
        chain = [self]
        while chain[-1].parent is not None and chain[-1].parent.parent is not None:
            chain.append(chain[-1].parent.parent)
        return chain

    def leaves(self) -> Iterator[ExpressionStack]:
        if self.branch is None:
            yield self
            return
        yield from self.branch.true.leaves()
        yield from self.branch.false.leaves()

    def __str__(self) -> str:
        if self.branch is not None:
            return str(self.branch)
        shown = ", ".join(str(entry) for entry in self.entries)
        return f"[{shown}]"
