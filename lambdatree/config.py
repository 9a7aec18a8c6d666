"""Resolver configuration (pure data, read from the environment)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from . import constants

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class ResolverConfig:
    """Groups closure resolution settings."""

    dump_dir: str = ""
    use_cache: bool = False
    default_param_type: type = object

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ResolverConfig:
        env = os.environ if environ is None else environ
        return cls(
            dump_dir=env.get(constants.DUMP_DIR_ENV, ""),
            use_cache=env.get(constants.CACHE_ENV, "").strip().lower() in _TRUE_VALUES,
        )
