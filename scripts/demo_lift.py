"""Demo: lift a handful of closures and show their trees and results."""

import logging
import math
import sys

from lambdatree import compile_lambda, dump_tree, resolve
from lambdatree.config import ResolverConfig


class Customer:
    def __init__(self, name, city):
        self.name = name
        self.city = city


def _make_city_filter(city):
    return lambda c: c.city == city


SCENARIOS = [
    ("conditional", lambda t: t < 12 if t > 6 else t > 2, (int,), (7,)),
    ("mixed and/or", lambda r: (r < 6 or r > 25) and r < 23 or r > 25, (int,), (26,)),
    ("complement", lambda r: ~r, (int,), (-6,)),
    ("method chain", lambda s: s.replace("a", "b").upper(), (str,), ("banana",)),
    ("global call", lambda x: math.sqrt(x) + 1, (float,), (16.0,)),
    ("captured value", _make_city_filter("London"), (Customer,), (Customer("Ann", "London"),)),
    ("short circuit", lambda a, b: a is not None and b in a, (object, object), ("abc", "b")),
]


def main():
    verbose = "-v" in sys.argv[1:]
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = ResolverConfig()

    for title, fn, types_, args in SCENARIOS:
        print("=" * 60)
        print(title.upper())
        print("=" * 60)
        tree = resolve(fn, types_, config)
        print(tree)
        print()
        print(dump_tree(tree))
        print()
        compiled = compile_lambda(tree)
        print(f"original{args} = {fn(*args)!r}")
        print(f"compiled{args} = {compiled(*args)!r}")
        print()


if __name__ == "__main__":
    main()
