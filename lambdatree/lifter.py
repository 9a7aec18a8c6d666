"""Bytecode lifter: symbolic execution of a code object into one expression.

Each instruction is handled against the current :class:`ExpressionStack`.
A forward conditional jump forks the stack; the jump-taken side is parked
under the target offset and picked up again when the walk reaches that
offset, where all stacks waiting there are merged by the reducer.
Returns park the stack under a sentinel end label that is reduced last.
"""

from __future__ import annotations

import builtins
import dis
import logging
import sys
import types
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from pydantic import BaseModel, Field

from . import build, constants
from .errors import InvariantViolation, ResourceUnavailable, UnsupportedOpcode
from .expression import Constant, Expression
from .reducer import reduce
from .stack import ExpressionStack

logger = logging.getLogger(__name__)

# LOAD_GLOBAL carries a push-NULL bit from 3.11, LOAD_ATTR a method bit
# from 3.12; from 3.13 the NULL goes above the callable instead of below.
GLOBAL_NULL_BIT = sys.version_info >= (3, 11)
ATTR_METHOD_BIT = sys.version_info >= (3, 12)
NULL_ABOVE_CALLABLE = sys.version_info >= (3, 13)


class _Null:
    """Marks the empty self slot below or above a callable."""

    def __str__(self) -> str:
        return "NULL"


NULL = _Null()


@dataclass(frozen=True)
class MethodRef:
    """A method looked up on ``receiver`` and not called yet."""

    receiver: Expression
    name: str

    def __str__(self) -> str:
        return f"{self.receiver}.{self.name}"


def _itself(value: Expression) -> Expression:
    return value


def _is_none(value: Expression) -> Expression:
    return build.is_(value, build.constant(None))


def _is_not_none(value: Expression) -> Expression:
    return build.is_not(value, build.constant(None))


def lookup_global(namespace: Mapping[str, Any], name: str) -> Any:
    """Resolve ``name`` the way ``LOAD_GLOBAL`` does: globals, then builtins."""
    if name in namespace:
        return namespace[name]
    fallback = namespace.get("__builtins__", builtins)
    if isinstance(fallback, types.ModuleType):
        fallback = vars(fallback)
    if name in fallback:
        return fallback[name]
    raise ResourceUnavailable(name, "global name is not defined")


class LiftStats(BaseModel):
    """Counters collected while lifting one code object."""

    code_name: str = ""
    instructions: int = 0
    forks: int = 0
    labels: int = 0
    max_depth: int = 0
    instance_requested: bool = False
    # Global name to the value read for it, for cache validation.
    globals_read: dict[str, Any] = Field(default_factory=dict, repr=False)


class Lifter:
    """Lift the instruction stream of ``code`` into a single expression.

    ``param_types`` gives the type of every argument slot followed by every
    free variable; missing entries default to ``object``.  ``globals_`` is
    the namespace that ``LOAD_GLOBAL`` resolves against, falling back to
    the builtins.
    """

    def __init__(
        self,
        code: types.CodeType,
        param_types: Sequence[type] = (),
        globals_: Mapping[str, Any] | None = None,
    ):
        self._code = code
        self._argcount = code.co_argcount
        slots = self._argcount + len(code.co_freevars)
        self._types: list[type] = list(param_types)[:slots]
        self._types += [object] * (slots - len(self._types))
        self._globals: Mapping[str, Any] = globals_ or {}
        self._current: ExpressionStack | None = None
        self._branches: dict[int, list[ExpressionStack]] = {}
        self._ends: list[ExpressionStack] = []
        self.stats = LiftStats(code_name=code.co_name)

        self._DISPATCH: dict[str, Callable[[dis.Instruction], None]] = {}
        self._register(("LOAD_CONST", "LOAD_SMALL_INT"), self._load_const)
        self._register(
            ("LOAD_FAST", "LOAD_FAST_CHECK", "LOAD_FAST_BORROW"), self._load_fast
        )
        self._register(
            ("LOAD_FAST_LOAD_FAST", "LOAD_FAST_BORROW_LOAD_FAST_BORROW"),
            self._load_fast_pair,
        )
        self._register(("LOAD_DEREF", "LOAD_CLOSURE"), self._load_deref)
        self._register(("LOAD_GLOBAL", "LOAD_NAME"), self._load_global)
        self._register(("LOAD_ATTR",), self._load_attr)
        self._register(("LOAD_METHOD",), self._load_method)
        self._register(("PUSH_NULL",), self._push_null)
        self._register(("CALL", "CALL_METHOD"), self._call)
        self._register(("CALL_FUNCTION",), self._call_function)
        self._register(("BINARY_OP",), self._binary_op)
        self._register(tuple(constants.LEGACY_BINARY_OPNAMES), self._legacy_binary_op)
        self._register(("BINARY_SUBSCR",), self._binary_subscr)
        self._register(("BINARY_SLICE",), self._binary_slice)
        self._register(("BUILD_SLICE",), self._build_slice)
        self._register(("COMPARE_OP",), self._compare_op)
        self._register(("IS_OP",), self._is_op)
        self._register(("CONTAINS_OP",), self._contains_op)
        self._register(("UNARY_NEGATIVE",), self._unary(build.negate))
        self._register(("UNARY_POSITIVE",), self._unary(build.unary_plus))
        self._register(("UNARY_INVERT",), self._unary(build.bitwise_not))
        self._register(("UNARY_NOT",), self._unary(build.logical_not))
        self._register(("TO_BOOL",), self._unary(build.truth_test))
        self._register(("CALL_INTRINSIC_1",), self._unary(build.unary_plus))
        self._register(("COPY",), self._copy)
        self._register(("SWAP",), self._swap)
        self._register(("DUP_TOP",), self._dup_top)
        self._register(("DUP_TOP_TWO",), self._dup_top_two)
        self._register(("ROT_TWO",), self._rot(2))
        self._register(("ROT_THREE",), self._rot(3))
        self._register(("ROT_FOUR",), self._rot(4))
        self._register(("POP_TOP",), self._pop_top)
        self._register(
            ("JUMP_FORWARD", "JUMP_ABSOLUTE", "JUMP", "JUMP_NO_INTERRUPT"),
            self._jump,
        )
        self._register(
            ("POP_JUMP_IF_FALSE", "POP_JUMP_FORWARD_IF_FALSE"),
            self._pop_jump(_itself, jump_when=False),
        )
        self._register(
            ("POP_JUMP_IF_TRUE", "POP_JUMP_FORWARD_IF_TRUE"),
            self._pop_jump(_itself, jump_when=True),
        )
        self._register(
            ("POP_JUMP_IF_NONE", "POP_JUMP_FORWARD_IF_NONE"),
            self._pop_jump(_is_not_none, jump_when=False),
        )
        self._register(
            ("POP_JUMP_IF_NOT_NONE", "POP_JUMP_FORWARD_IF_NOT_NONE"),
            self._pop_jump(_is_none, jump_when=False),
        )
        self._register(("JUMP_IF_FALSE_OR_POP",), self._jump_or_pop(jump_when=False))
        self._register(("JUMP_IF_TRUE_OR_POP",), self._jump_or_pop(jump_when=True))
        self._register(("RETURN_VALUE",), self._return_value)
        self._register(("RETURN_CONST",), self._return_const)

    def _register(self, opnames: Sequence[str], handler: Callable) -> None:
        for opname in opnames:
            if opname in dis.opmap:
                self._DISPATCH[opname] = handler

    # ── driver ───────────────────────────────────────────────────

    def lift(self) -> Expression:
        instructions = list(dis.get_instructions(self._code))
        self._prescan(instructions)
        self._current = ExpressionStack()
        for instr in instructions:
            if instr.offset in self._branches:
                self._visit_label(instr.offset)
            if self._current is None:
                continue
            handler = self._DISPATCH.get(instr.opname)
            if handler is None:
                continue
            handler(instr)
            self.stats.instructions += 1
            if self._current is not None:
                self.stats.max_depth = max(self.stats.max_depth, self._current.depth)
            logger.debug(
                "%4d %-24s %s",
                instr.offset,
                instr.opname,
                "-" if self._current is None else self._current,
            )
        result = self._finish()
        logger.debug("Lifted %s: %s (%s)", self._code.co_name, result, self.stats)
        return result

    def _prescan(self, instructions: Sequence[dis.Instruction]) -> None:
        for instr in instructions:
            opname = instr.opname
            if opname in constants.NOOP_OPNAMES:
                continue
            supported = opname in self._DISPATCH
            if opname == "CALL_INTRINSIC_1":
                supported = instr.argrepr == constants.INTRINSIC_UNARY_POSITIVE
            elif "JUMP" in opname:
                supported = (
                    supported
                    and "BACKWARD" not in opname
                    and isinstance(instr.argval, int)
                    and instr.argval > instr.offset
                )
            if not supported:
                raise UnsupportedOpcode(instr.opcode, opname, instr.offset)

    def _visit_label(self, offset: int) -> None:
        pending = [stack for stack in self._branches.pop(offset) if not stack.reduced]
        if self._current is not None:
            pending.append(self._current)
        self.stats.labels += 1
        self._current = reduce(pending) if pending else None

    def _finish(self) -> Expression:
        if self._current is not None:
            raise InvariantViolation(
                f"{self._code.co_name} falls off the end without returning"
            )
        if self._branches:
            raise InvariantViolation(
                f"jumps to unknown offsets {sorted(self._branches)}"
            )
        final = reduce([stack for stack in self._ends if not stack.reduced])
        view = final.view()
        if final.parent is not None or len(view) != 1:
            raise InvariantViolation(
                f"expected a single expression at {constants.END_LABEL}, got {final}"
            )
        result = view[0]
        if not isinstance(result, Expression):
            raise InvariantViolation(f"{result} is not an expression")
        return result

    # ── stack helpers ────────────────────────────────────────────

    def _push(self, entry) -> None:
        self._current.push(entry)

    def _pop(self) -> Expression:
        return self._current.pop_expression()

    def _pop_many(self, count: int) -> list[Expression]:
        values = [self._pop() for _ in range(count)]
        values.reverse()
        return values

    def _parameter(self, slot: int) -> Expression:
        if slot == 0:
            self.stats.instance_requested = True
        return build.parameter(slot, self._types[slot])

    def _push_callable(self, value: Expression) -> None:
        if NULL_ABOVE_CALLABLE:
            self._push(value)
            self._push(NULL)
        else:
            self._push(NULL)
            self._push(value)

    # ── loads ────────────────────────────────────────────────────

    def _load_const(self, instr: dis.Instruction) -> None:
        self._push(build.constant(instr.argval))

    def _load_fast(self, instr: dis.Instruction) -> None:
        self._push(self._local(instr.arg, instr))

    def _load_fast_pair(self, instr: dis.Instruction) -> None:
        self._push(self._local(instr.arg >> 4, instr))
        self._push(self._local(instr.arg & 15, instr))

    def _local(self, slot: int, instr: dis.Instruction) -> Expression:
        if slot >= self._argcount:
            raise InvariantViolation(
                f"slot {slot} at offset {instr.offset} is a local variable, "
                f"not an argument"
            )
        return self._parameter(slot)

    def _load_deref(self, instr: dis.Instruction) -> None:
        name = instr.argval
        arguments = self._code.co_varnames[: self._argcount]
        if name in arguments:
            self._push(self._parameter(arguments.index(name)))
        elif name in self._code.co_freevars:
            slot = self._argcount + self._code.co_freevars.index(name)
            self._push(build.parameter(slot, self._types[slot]))
        else:
            raise InvariantViolation(f"{name} is neither an argument nor captured")

    def _load_global(self, instr: dis.Instruction) -> None:
        found = lookup_global(self._globals, instr.argval)
        self.stats.globals_read[instr.argval] = found
        value = build.constant(found)
        if instr.opname == "LOAD_GLOBAL" and GLOBAL_NULL_BIT and instr.arg & 1:
            self._push_callable(value)
        else:
            self._push(value)

    def _load_attr(self, instr: dis.Instruction) -> None:
        receiver = self._pop()
        if ATTR_METHOD_BIT and instr.arg & 1:
            self._push_method(receiver, instr.argval)
        else:
            self._push(build.field(receiver, instr.argval))

    def _load_method(self, instr: dis.Instruction) -> None:
        self._push_method(self._pop(), instr.argval)

    def _push_method(self, receiver: Expression, name: str) -> None:
        self._push(MethodRef(receiver, name))
        self._push(NULL)

    def _push_null(self, instr: dis.Instruction) -> None:
        self._push(NULL)

    # ── calls ────────────────────────────────────────────────────

    def _call(self, instr: dis.Instruction) -> None:
        arguments = self._pop_many(instr.arg)
        top, below = self._current.pop(), self._current.pop()
        if top is NULL:
            target = below
        elif below is NULL:
            target = top
        else:
            raise InvariantViolation(
                f"no callable for {instr.opname} at offset {instr.offset}"
            )
        self._push(self._invocation(target, arguments))

    def _call_function(self, instr: dis.Instruction) -> None:
        arguments = self._pop_many(instr.arg)
        self._push(self._invocation(self._current.pop(), arguments))

    def _invocation(self, target: Any, arguments: list[Expression]) -> Expression:
        arity = len(arguments)
        if isinstance(target, MethodRef):
            member = build.method(target.receiver, target.name, arity)
        elif isinstance(target, Constant) and isinstance(target.value, type):
            member = build.new(target.value, arity)
        elif isinstance(target, Constant) and callable(target.value):
            member = build.method(None, target.value, arity)
        elif isinstance(target, Expression):
            member = build.method(target, constants.CALL_METHOD_NAME, arity)
        else:
            raise InvariantViolation(f"{target} is not callable")
        return build.invoke(member, arguments)

    # ── operators ────────────────────────────────────────────────

    def _binary(self, symbol: str) -> None:
        second = self._pop()
        first = self._pop()
        if symbol == constants.SUBSCRIPT_SYMBOL:
            self._push(build.array_index(first, second))
        else:
            self._push(build.binary(build.symbol_operator(symbol), first, second))

    def _binary_op(self, instr: dis.Instruction) -> None:
        self._binary(instr.argrepr.removesuffix("="))

    def _legacy_binary_op(self, instr: dis.Instruction) -> None:
        self._binary(constants.LEGACY_BINARY_OPNAMES[instr.opname])

    def _binary_subscr(self, instr: dis.Instruction) -> None:
        self._binary(constants.SUBSCRIPT_SYMBOL)

    def _slice(self, bounds: list[Expression]) -> Expression:
        return build.invoke(build.new(slice, len(bounds)), bounds)

    def _binary_slice(self, instr: dis.Instruction) -> None:
        bounds = self._pop_many(2)
        container = self._pop()
        self._push(build.array_index(container, self._slice(bounds)))

    def _build_slice(self, instr: dis.Instruction) -> None:
        self._push(self._slice(self._pop_many(instr.arg)))

    def _compare_op(self, instr: dis.Instruction) -> None:
        self._binary(instr.argval)

    def _is_op(self, instr: dis.Instruction) -> None:
        second = self._pop()
        first = self._pop()
        factory = build.is_not if instr.arg else build.is_
        self._push(factory(first, second))

    def _contains_op(self, instr: dis.Instruction) -> None:
        container = self._pop()
        item = self._pop()
        factory = build.not_contains if instr.arg else build.contains
        self._push(factory(item, container))

    def _unary(self, factory: Callable[[Expression], Expression]) -> Callable:
        def handle(instr: dis.Instruction) -> None:
            self._push(factory(self._pop()))

        return handle

    # ── stack shuffles ───────────────────────────────────────────

    def _copy(self, instr: dis.Instruction) -> None:
        self._push(self._current.peek(instr.arg - 1))

    def _dup_top(self, instr: dis.Instruction) -> None:
        self._push(self._current.peek())

    def _dup_top_two(self, instr: dis.Instruction) -> None:
        self._push(self._current.peek(1))
        self._push(self._current.peek(1))

    def _swap(self, instr: dis.Instruction) -> None:
        entries = [self._current.pop() for _ in range(instr.arg)]
        entries[0], entries[-1] = entries[-1], entries[0]
        for entry in reversed(entries):
            self._push(entry)

    def _rot(self, count: int) -> Callable:
        def handle(instr: dis.Instruction) -> None:
            entries = [self._current.pop() for _ in range(count)]
            self._push(entries[0])
            for entry in reversed(entries[1:]):
                self._push(entry)

        return handle

    def _pop_top(self, instr: dis.Instruction) -> None:
        self._current.pop()

    # ── control flow ─────────────────────────────────────────────

    def _park(self, target: int, stack: ExpressionStack) -> None:
        self._branches.setdefault(target, []).append(stack)

    def _fork(self, test: Expression, target: int, jump_when: bool) -> None:
        """Fork on ``test``; the side where it equals ``jump_when`` jumps."""
        branch = self._current.fork(build.truth_test(test))
        self.stats.forks += 1
        if jump_when:
            jumped, fell = branch.true, branch.false
        else:
            jumped, fell = branch.false, branch.true
        self._park(target, jumped)
        self._current = fell

    def _jump(self, instr: dis.Instruction) -> None:
        self._park(instr.argval, self._current)
        self._current = None

    def _pop_jump(
        self, test_of: Callable[[Expression], Expression], jump_when: bool
    ) -> Callable:
        def handle(instr: dis.Instruction) -> None:
            self._fork(test_of(self._pop()), instr.argval, jump_when)

        return handle

    def _jump_or_pop(self, jump_when: bool) -> Callable:
        def handle(instr: dis.Instruction) -> None:
            self._fork(self._current.peek(), instr.argval, jump_when)
            self._current.pop()

        return handle

    def _return_value(self, instr: dis.Instruction) -> None:
        self._ends.append(self._current)
        self._current = None

    def _return_const(self, instr: dis.Instruction) -> None:
        self._load_const(instr)
        self._return_value(instr)


def lift(
    code: types.CodeType,
    param_types: Sequence[type] = (),
    globals_: Mapping[str, Any] | None = None,
) -> tuple[Expression, LiftStats]:
    """Lift ``code`` and return its body expression with the lift counters."""
    lifter = Lifter(code, param_types, globals_)
    return lifter.lift(), lifter.stats
