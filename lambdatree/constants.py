"""Named constants shared across the lifter, resolver and code sources."""

from __future__ import annotations

PARAM_PREFIX = "P"

SYNTHETIC_CODE_NAME = "<lambda>"

DUMP_DIR_ENV = "LAMBDATREE_DUMP_DIR"
CACHE_ENV = "LAMBDATREE_CACHE"
DUMP_FILE_SUFFIX = ".code"
DUMP_KEY_TEMPLATE = "{module}.{qualname}@{firstlineno}"

CALL_METHOD_NAME = "__call__"

END_LABEL = "end"

# Instructions with no effect on the symbolic stack.
NOOP_OPNAMES: frozenset[str] = frozenset(
    {
        "RESUME",
        "NOP",
        "CACHE",
        "EXTENDED_ARG",
        "PRECALL",
        "NOT_TAKEN",
        "COPY_FREE_VARS",
        "MAKE_CELL",
    }
)


# BINARY_OP argrepr → operator symbol (in-place forms are stripped of "=").
SUBSCRIPT_SYMBOL = "[]"

LEGACY_BINARY_OPNAMES: dict[str, str] = {
    "BINARY_ADD": "+",
    "BINARY_SUBTRACT": "-",
    "BINARY_MULTIPLY": "*",
    "BINARY_TRUE_DIVIDE": "/",
    "BINARY_FLOOR_DIVIDE": "//",
    "BINARY_MODULO": "%",
    "BINARY_POWER": "**",
    "BINARY_LSHIFT": "<<",
    "BINARY_RSHIFT": ">>",
    "BINARY_AND": "&",
    "BINARY_OR": "|",
    "BINARY_XOR": "^",
    "INPLACE_ADD": "+",
    "INPLACE_SUBTRACT": "-",
    "INPLACE_MULTIPLY": "*",
    "INPLACE_TRUE_DIVIDE": "/",
    "INPLACE_FLOOR_DIVIDE": "//",
    "INPLACE_MODULO": "%",
    "INPLACE_POWER": "**",
    "INPLACE_LSHIFT": "<<",
    "INPLACE_RSHIFT": ">>",
    "INPLACE_AND": "&",
    "INPLACE_OR": "|",
    "INPLACE_XOR": "^",
}

INTRINSIC_UNARY_POSITIVE = "INTRINSIC_UNARY_POSITIVE"
