"""Lift Python closures into typed expression trees."""

from . import build  # noqa: F401
from .api import (  # noqa: F401
    resolve,
    compile_lambda,
    lift_code,
    dump_tree,
)
from .code_source import dump_code  # noqa: F401
from .config import ResolverConfig  # noqa: F401
from .errors import (  # noqa: F401
    InvariantViolation,
    LambdaTreeError,
    NotAClosure,
    ResourceUnavailable,
    UnsupportedOpcode,
)
from .expression import Expression, ExpressionType, Lambda  # noqa: F401
