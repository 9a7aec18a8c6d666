"""Structured failures raised while building, lifting and resolving expressions."""

from __future__ import annotations


class LambdaTreeError(Exception):
    """Base for every failure raised by lambdatree."""


class NotAClosure(LambdaTreeError, TypeError):
    """The value is not a closure, or no functional entry point exists."""


class UnsupportedOpcode(LambdaTreeError):
    """The lifter met an instruction outside the supported sublanguage."""

    def __init__(self, opcode: int, opname: str, offset: int = -1):
        self.opcode = opcode
        self.opname = opname
        self.offset = offset
        super().__init__(
            f"Not a lambda expression. Opcode {opname} ({opcode}) is illegal"
            + (f" at offset {offset}." if offset >= 0 else ".")
        )


class InvariantViolation(LambdaTreeError, ValueError):
    """A smart constructor rejected its inputs."""


class ResourceUnavailable(LambdaTreeError, LookupError):
    """Code could not be located, or a reflective lookup failed."""

    def __init__(self, name: str, reason: str = ""):
        self.name = name
        self.reason = reason
        super().__init__(f"{name}: {reason}" if reason else name)
