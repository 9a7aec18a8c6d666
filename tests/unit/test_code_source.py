"""Tests for code sources and code dumping."""

import marshal

import pytest

from lambdatree.code_source import (
    DirectoryCodeSource,
    MappingCodeSource,
    RuntimeCodeSource,
    closure_key,
    dump_code,
    dump_filename,
)
from lambdatree.errors import NotAClosure, ResourceUnavailable
from lambdatree.resolver import ClosureResolver, describe

_DOUBLE = lambda x: x * 2  # noqa: E731
_TRIPLE = lambda x: x * 3  # noqa: E731


def _scale(x, factor):
    return x * factor


class TestKeys:
    def test_closure_key(self):
        assert closure_key("pkg.mod", "f.<locals>.<lambda>", 12) == "pkg.mod.f.<locals>.<lambda>@12"

    def test_filename_is_sanitised(self):
        assert dump_filename("pkg.mod.<lambda>@3") == "pkg.mod._lambda_@3.code"


class TestRuntimeCodeSource:
    def test_returns_carried_code(self):
        info = describe(_scale)
        assert RuntimeCodeSource().code_for(info) is _scale.__code__


class TestMappingCodeSource:
    def test_lookup_by_key(self):
        info = describe(_DOUBLE)
        source = MappingCodeSource({info.key: _TRIPLE.__code__})
        lam = ClosureResolver(source).resolve(_DOUBLE, [int])
        assert lam.compile()(5) == 15

    def test_missing_key(self):
        with pytest.raises(ResourceUnavailable):
            MappingCodeSource({}).code_for(describe(_DOUBLE))


class TestDirectoryCodeSource:
    def test_dump_then_resolve(self, tmp_path):
        path = dump_code(_scale, tmp_path)
        assert path.exists()
        source = DirectoryCodeSource(tmp_path)
        lam = ClosureResolver(source).resolve(_scale, [int, int])
        assert str(lam) == str(ClosureResolver().resolve(_scale, [int, int]))

    def test_path_matches_dump(self, tmp_path):
        path = dump_code(_scale, tmp_path)
        assert DirectoryCodeSource(tmp_path).path_for(describe(_scale).key) == path

    def test_dump_bound_method_uses_function(self, tmp_path):
        class Box:
            def get(self):
                return 1

        path = dump_code(Box().get, tmp_path)
        assert "Box.get" in path.name

    def test_missing_file(self, tmp_path):
        with pytest.raises(ResourceUnavailable):
            DirectoryCodeSource(tmp_path).code_for(describe(_scale))

    def test_corrupt_file(self, tmp_path):
        source = DirectoryCodeSource(tmp_path)
        info = describe(_scale)
        source.path_for(info.key).write_bytes(b"not marshal data")
        with pytest.raises(ResourceUnavailable):
            source.code_for(info)

    def test_marshalled_non_code(self, tmp_path):
        source = DirectoryCodeSource(tmp_path)
        info = describe(_scale)
        source.path_for(info.key).write_bytes(marshal.dumps(42))
        with pytest.raises(ResourceUnavailable):
            source.code_for(info)

    def test_dump_builtin_rejected(self, tmp_path):
        with pytest.raises(NotAClosure):
            dump_code(len, tmp_path)
