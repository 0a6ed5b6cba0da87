#!/usr/bin/env python3

"""
Generate an instance that is "difficult" for the incremental Hungarian
matching algorithm.

Output in DIMACS-like assignment format.
"""

from __future__ import annotations

import sys
import argparse
from typing import Any, TextIO


count_delta_step = [0]
count_augment = [0]


def patch_matching_code() -> None:
    """Patch the matching code to count events."""

    from mcmatching import algorithm

    orig_increase_all_in = algorithm._MatchingContext.increase_all_in
    orig_augment_matching = algorithm._MatchingContext.augment_matching

    def stub_increase_all_in(*args: Any, **kwargs: Any) -> Any:
        count_delta_step[0] += 1
        return orig_increase_all_in(*args, **kwargs)

    def stub_augment_matching(*args: Any, **kwargs: Any) -> Any:
        count_augment[0] += 1
        return orig_augment_matching(*args, **kwargs)

    algorithm._MatchingContext.increase_all_in = (  # type: ignore
        stub_increase_all_in)
    algorithm._MatchingContext.augment_matching = (  # type: ignore
        stub_augment_matching)


def run_min_cost_matching(
        costs: list[list[tuple[int, int]]]
        ) -> tuple[int, int, int]:
    """Run the matching algorithm and count subroutine calls."""
    import mcmatching

    count_delta_step[0] = 0
    count_augment[0] = 0

    result = mcmatching.min_cost_bipartite_matching(costs)
    assert result is not None
    (_assignment, total_cost) = result
    return (int(total_cost), count_delta_step[0], count_augment[0])


def write_instance(
        f: TextIO,
        costs: list[list[tuple[int, int]]]
        ) -> None:
    """Write an instance in DIMACS-like assignment format."""

    num_left = len(costs)
    num_edge = sum(len(row) for row in costs)

    print(f"p asn {num_left} {num_edge}", file=f)

    for (x, row) in enumerate(costs):
        for (y, c) in row:
            print(f"e {x+1} {y+1} {c}", file=f)


def make_staircase_instance(n: int) -> list[list[tuple[int, int]]]:
    """Generate an instance with N left vertices and N right vertices.

    Left vertex "i" has edges to right vertices 0 .. i, where the edge
    to right vertex "j" costs "j". The only perfect matching pairs
    left vertex "i" with right vertex "i", but every new left vertex
    first explores all right vertices that are already matched.

    The instance contains O(n**2) edges and triggers O(n**2) delta steps.

    Number of edges = M = N * (N + 1) / 2
    """

    assert n >= 1

    costs: list[list[tuple[int, int]]] = []

    for i in range(n):
        costs.append([(j, j) for j in range(i + 1)])

    return costs


def main() -> int:
    """Main program."""

    parser = argparse.ArgumentParser()
    parser.description = "Generate a difficult instance."

    parser.add_argument("--check",
                        action="store_true",
                        help="solve the matching and count delta steps")
    parser.add_argument("n",
                        action="store",
                        type=int,
                        help="number of left vertices")

    args = parser.parse_args()

    if args.n < 1:
        print("ERROR: Number of left vertices must be >= 1", file=sys.stderr)
        return 1

    if args.check:
        patch_matching_code()

    costs = make_staircase_instance(args.n)

    if args.check:
        (total_cost, num_delta, num_augment) = run_min_cost_matching(costs)
        num_edge = sum(len(row) for row in costs)
        print(f"n={args.n} m={num_edge} cost={total_cost} "
              f"ndelta={num_delta} naugment={num_augment}",
              file=sys.stderr)

    write_instance(sys.stdout, costs)

    return 0


if __name__ == "__main__":
    sys.exit(main())
