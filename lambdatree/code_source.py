"""Code sources: where the resolver finds the code object of a closure."""

from __future__ import annotations

import logging
import marshal
import re
import types
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

from . import constants
from .errors import NotAClosure, ResourceUnavailable

if TYPE_CHECKING:
    from .resolver import ClosureInfo

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.@-]")


def closure_key(module: str, qualname: str, firstlineno: int) -> str:
    """Stable name of a function's code, independent of the running process."""
    return constants.DUMP_KEY_TEMPLATE.format(
        module=module, qualname=qualname, firstlineno=firstlineno
    )


def dump_filename(key: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", key) + constants.DUMP_FILE_SUFFIX


class CodeSource(ABC):
    """Strategy for locating the code object described by a ClosureInfo."""

    @abstractmethod
    def code_for(self, info: ClosureInfo) -> types.CodeType:
        """Return the code object for ``info`` or raise ResourceUnavailable."""
        ...


class RuntimeCodeSource(CodeSource):
    """Default source: the code object the closure already carries."""

    def code_for(self, info: ClosureInfo) -> types.CodeType:
        if info.code is None:
            raise ResourceUnavailable(info.key, "closure carries no code object")
        return info.code


class MappingCodeSource(CodeSource):
    """In-memory source keyed by closure key."""

    def __init__(self, codes: Mapping[str, types.CodeType]):
        self._codes = dict(codes)

    def code_for(self, info: ClosureInfo) -> types.CodeType:
        try:
            return self._codes[info.key]
        except KeyError as exc:
            raise ResourceUnavailable(info.key, "no code registered") from exc


class DirectoryCodeSource(CodeSource):
    """Reads marshalled code objects written by :func:`dump_code`."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / dump_filename(key)

    def code_for(self, info: ClosureInfo) -> types.CodeType:
        path = self.path_for(info.key)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ResourceUnavailable(info.key, f"cannot read {path}") from exc
        try:
            code = marshal.loads(data)
        except (EOFError, ValueError, TypeError) as exc:
            raise ResourceUnavailable(info.key, f"{path} is not marshalled code") from exc
        if not isinstance(code, types.CodeType):
            raise ResourceUnavailable(info.key, f"{path} does not hold a code object")
        logger.debug("Loaded code for %s from %s", info.key, path)
        return code


def _function_of(fn) -> types.FunctionType:
    target = getattr(fn, "__func__", fn)
    if not isinstance(target, types.FunctionType):
        raise NotAClosure(f"{fn!r} has no Python code to dump")
    return target


def dump_code(fn, directory: str | Path) -> Path:
    """Write the marshalled code of ``fn`` where DirectoryCodeSource finds it."""
    function = _function_of(fn)
    code = function.__code__
    key = closure_key(function.__module__, function.__qualname__, code.co_firstlineno)
    path = Path(directory) / dump_filename(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(marshal.dumps(code))
    logger.info("Dumped %s to %s", key, path)
    return path
