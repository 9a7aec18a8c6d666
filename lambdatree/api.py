"""Composable API: resolve, lift, compile and dump expression trees."""

from __future__ import annotations

import functools
import logging
import types
from typing import Any, Callable, Sequence

from .code_source import DirectoryCodeSource, RuntimeCodeSource
from .config import ResolverConfig
from .evaluator import compile_lambda as _compile_lambda
from .expression import (
    Constant,
    Expression,
    Lambda,
    Member,
    Parameter,
    format_constant,
)
from .lifter import lift
from .resolver import CachedResolver, ClosureResolver

logger = logging.getLogger(__name__)

_INDENT = "  "


@functools.lru_cache(maxsize=None)
def _resolver_for(config: ResolverConfig) -> ClosureResolver:
    source = (
        DirectoryCodeSource(config.dump_dir) if config.dump_dir else RuntimeCodeSource()
    )
    factory = CachedResolver if config.use_cache else ClosureResolver
    logger.info(
        "Creating %s over %s", factory.__name__, type(source).__name__
    )
    return factory(source, config)


def resolve(
    fn: Any,
    param_types: Sequence[type] | None = None,
    config: ResolverConfig | None = None,
) -> Lambda:
    """Resolve a closure value to a typed Lambda tree.

    Args:
        fn: A function, lambda, bound method, ``functools.partial`` or an
            object with a Python ``__call__``.
        param_types: Types of the free parameters, in order.  Missing
            entries fall back to annotations, then to
            ``config.default_param_type``.
        config: Resolver settings; read from the environment when omitted.

    Returns:
        A Lambda whose parameters are the arguments left free by ``fn``.
    """
    config = config if config is not None else ResolverConfig.from_env()
    return _resolver_for(config).resolve(fn, param_types)


def compile_lambda(fn: Any, param_types: Sequence[type] | None = None) -> Callable[..., Any]:
    """Resolve ``fn`` and compile the result back into a callable."""
    if isinstance(fn, Lambda):
        return _compile_lambda(fn)
    return _compile_lambda(resolve(fn, param_types))


def lift_code(
    code: types.CodeType,
    param_types: Sequence[type] = (),
    globals_: dict[str, Any] | None = None,
) -> Expression:
    """Lift a bare code object with every argument and free variable left free.

    Args:
        code: The code object to lift.
        param_types: Types of the argument slots followed by the free variables.
        globals_: Namespace for global lookups; builtins when omitted.

    Returns:
        The body expression.
    """
    body, stats = lift(code, param_types, globals_)
    logger.info("Lifted %s in %d instructions", stats.code_name, stats.instructions)
    return body


def _describe(node: Expression) -> str:
    kind = node.expression_type.value
    type_name = getattr(node.result_type, "__name__", repr(node.result_type))
    if isinstance(node, Constant):
        return f"{kind} {format_constant(node.value)} : {type_name}"
    if isinstance(node, Parameter):
        return f"{kind} {node} : {type_name}"
    if isinstance(node, Member):
        return f"{kind} {node.name} : {type_name}"
    return f"{kind} : {type_name}"


def _tree_lines(node: Expression, depth: int) -> list[str]:
    lines = [f"{_INDENT * depth}{_describe(node)}"]
    if isinstance(node, Lambda):
        children: tuple[Expression, ...] = (*node.parameters, node.body)
    else:
        children = node.children()
    for child in children:
        lines.extend(_tree_lines(child, depth + 1))
    return lines


def dump_tree(expression: Expression) -> str:
    """Render ``expression`` one node per line, children indented under parents.

    Args:
        expression: Any expression, typically a resolved Lambda.

    Returns:
        A multi-line string; each line names the node kind and result type.
    """
    return "\n".join(_tree_lines(expression, 0))
