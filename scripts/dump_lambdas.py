"""Write the marshalled code of named functions for DirectoryCodeSource.

Usage:
    python scripts/dump_lambdas.py out_dir mypkg.filters:is_active mypkg.filters:Order.total

Each target is ``module:attribute.path``.  The files land in ``out_dir``
under the names the resolver looks up when ``LAMBDATREE_DUMP_DIR`` is set.
"""

from __future__ import annotations

import argparse
import functools
import importlib
import logging
import sys

from lambdatree import dump_code
from lambdatree.errors import LambdaTreeError

logger = logging.getLogger(__name__)


def _load(target: str):
    module_name, _, path = target.partition(":")
    if not path:
        raise ValueError(f"{target!r} is not of the form module:attribute")
    module = importlib.import_module(module_name)
    return functools.reduce(getattr, path.split("."), module)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Dump function code objects for offline lifting"
    )
    parser.add_argument("directory", help="Output directory")
    parser.add_argument("targets", nargs="+", help="module:attribute targets")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log each dumped file"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    failures = 0
    for target in args.targets:
        try:
            path = dump_code(_load(target), args.directory)
        except (ImportError, AttributeError, ValueError, LambdaTreeError) as exc:
            logger.error("Skipping %s: %s", target, exc)
            failures += 1
            continue
        print(path)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
