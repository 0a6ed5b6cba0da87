#!/usr/bin/env python3

"""
Calculate minimum cost bipartite matching of instances in DIMACS-like format.
"""

from __future__ import annotations

import sys
import argparse
import logging
import math
import os
import os.path
from collections.abc import Sequence
from typing import Optional, TextIO

from mcmatching import min_cost_bipartite_matching


def parse_int_or_float(s: str) -> int|float:
    """Convert a string to integer or float value."""
    try:
        return int(s)
    except ValueError:
        pass
    return float(s)


def read_instance(f: TextIO) -> list[list[tuple[int, int|float]]]:
    """Read a bipartite matching instance.

    The instance starts with a problem line "p asn <num_left> <num_edge>",
    followed by edge lines "e <left> <right> <cost>" with 1-based indices.
    """

    costs: Optional[list[list[tuple[int, int|float]]]] = None

    for line in f:
        s = line.strip()
        words = s.split()

        if not words:
            # Skip empty line.
            continue

        if words[0].startswith("c"):
            # Skip comment line.
            pass

        elif words[0] == "p":
            # Handle "problem" line.
            if len(words) != 4:
                raise ValueError(
                    f"Expecting problem line but got {s!r}")
            if words[1] != "asn":
                raise ValueError(
                    f"Expecting assignment format but got {words[1]!r}")
            if costs is not None:
                raise ValueError("Duplicate problem line")
            num_left = int(words[2])
            if num_left < 0:
                raise ValueError(f"Invalid number of vertices {s!r}")
            costs = [[] for _i in range(num_left)]

        elif words[0] == "e":
            # Handle "edge" line.
            if costs is None:
                raise ValueError("Edge line before problem line")
            if len(words) != 4:
                raise ValueError(f"Expecting edge but got {s!r}")
            x = int(words[1])
            y = int(words[2])
            if (x < 1) or (x > len(costs)) or (y < 1):
                raise ValueError(f"Invalid vertex index {s!r}")
            c = parse_int_or_float(words[3])
            costs[x - 1].append((y - 1, c))

        else:
            raise ValueError(f"Unknown line type {words[0]!r}")

    if costs is None:
        raise ValueError("Missing problem line")

    return costs


def read_instance_file(filename: str) -> list[list[tuple[int, int|float]]]:
    """Read an instance from file or stdin."""
    if filename:
        with open(filename, "r", encoding="ascii") as f:
            try:
                return read_instance(f)
            except ValueError as exc:
                raise ValueError(f"{exc} in {filename!r}") from None
    else:
        try:
            return read_instance(sys.stdin)
        except ValueError as exc:
            raise ValueError(f"{exc} in (stdin)") from None


def read_matching(
        f: TextIO
        ) -> tuple[Optional[int|float], list[tuple[int, int]]]:
    """Read a matching solution.

    Returns:
        Tuple "(cost, pairs)" where "cost" is None if the solution
        states that the instance is infeasible.
    """

    have_cost = False
    cost: Optional[int|float] = None
    pairs: list[tuple[int, int]] = []

    for line in f:
        s = line.strip()
        words = s.split()

        if not words:
            # Skip empty line.
            continue

        if words[0].startswith("c"):
            # Skip comment line.
            pass

        elif words[0] == "s":
            # Handle "solution" line.
            if len(words) != 2:
                raise ValueError(
                    f"Expecting solution line but got {s!r}")
            if have_cost:
                raise ValueError("Duplicate solution line")
            have_cost = True
            if words[1] == "infeasible":
                cost = None
            else:
                cost = parse_int_or_float(words[1])

        elif words[0] == "m":
            # Handle "matching" line.
            if len(words) != 3:
                raise ValueError(
                    f"Expecting matched edge but got {s!r}")
            x = int(words[1])
            y = int(words[2])
            if (x < 1) or (y < 1):
                raise ValueError(f"Invalid vertex index {s!r}")
            pairs.append((x - 1, y - 1))

        else:
            raise ValueError(f"Unknown line type {words[0]!r}")

    if not have_cost:
        raise ValueError("Missing solution line")

    if (cost is None) and pairs:
        raise ValueError("Infeasible solution with matched edges")

    return (cost, pairs)


def read_matching_file(
        filename: str
        ) -> tuple[Optional[int|float], list[tuple[int, int]]]:
    """Read a matching from file."""
    with open(filename, "r", encoding="ascii") as f:
        try:
            return read_matching(f)
        except ValueError as exc:
            raise ValueError(f"{exc} in {filename!r}") from None


def write_matching(
        f: TextIO,
        cost: Optional[int|float],
        pairs: list[tuple[int, int]]
        ) -> None:
    """Write a matching solution."""

    if cost is None:
        print("s infeasible", file=f)
    elif isinstance(cost, int):
        print("s", cost, file=f)
    else:
        print("s", f"{cost:.12g}", file=f)

    for (x, y) in pairs:
        print("m", x + 1, y + 1, file=f)


def write_matching_file(
        filename: str,
        cost: Optional[int|float],
        pairs: list[tuple[int, int]]
        ) -> None:
    """Write a matching to file or stdout."""
    if filename:
        with open(filename, "x", encoding="ascii") as f:
            write_matching(f, cost, pairs)
    else:
        write_matching(sys.stdout, cost, pairs)


def calc_matching_cost(
        costs: Sequence[Sequence[tuple[int, int|float]]],
        pairs: list[tuple[int, int]]
        ) -> int|float:
    """Verify that the matching is valid and calculate its cost.

    If an instance contains multiple edges between the same pair of
    vertices, the cheapest one counts.
    """

    cost: int|float = 0
    left_used: set[int] = set()
    right_used: set[int] = set()

    for (x, y) in pairs:
        if (x >= len(costs)) or (x in left_used):
            raise ValueError(f"Invalid matched left vertex {x + 1}")
        if y in right_used:
            raise ValueError(f"Right vertex {y + 1} matched twice")
        edge_costs = [c for (j, c) in costs[x] if j == y]
        if not edge_costs:
            raise ValueError(
                f"Matching contains non-existing edge ({x + 1}, {y + 1})")
        cost += min(edge_costs)
        left_used.add(x)
        right_used.add(y)

    if len(left_used) != len(costs):
        raise ValueError("Matching does not cover all left vertices")

    return cost


def generate_matching(
        input_filename: str,
        output_filename: str
        ) -> None:
    """Calculate matching of one instance."""

    costs = read_instance_file(input_filename)

    result = min_cost_bipartite_matching(costs)

    if result is None:
        write_matching_file(output_filename, None, [])
        return

    (assignment, _total_cost) = result
    pairs = list(enumerate(assignment))
    cost = calc_matching_cost(costs, pairs)

    write_matching_file(output_filename, cost, pairs)


def run_generate(
        filenames: list[str],
        outdir: Optional[str]
        ) -> int:
    """Calculate matching(s) and write output to disk or stdout."""

    if len(filenames) == 0:
        # Read from stdin; write to stdout.
        generate_matching("", "")

    elif not outdir:
        # Read from file, write to stdout.
        assert len(filenames) == 1
        generate_matching(filenames[0], "")

    else:
        # Read from file, write to file.
        for filename in filenames:
            output_filename = os.path.join(
                outdir,
                os.path.splitext(os.path.basename(filename))[0] + ".out")
            print(f"Processing {filename!r} -> {output_filename!r} ...",
                  end=" ")
            sys.stdout.flush()

            generate_matching(filename, output_filename)

            print(" OK")
            sys.stdout.flush()

    return 0


def compare_cost(cost1: int|float, cost2: int|float) -> bool:
    """Return True if the costs are equal, allowing rounding errors."""
    if isinstance(cost1, int) and isinstance(cost2, int):
        return cost1 == cost2
    return math.isclose(cost1, cost2, rel_tol=1e-9, abs_tol=1e-9)


def verify_matching(filename: str, cfactor: float) -> bool:
    """Verify matching of one instance."""

    print("Verifying", repr(filename), "...", end=" ")
    sys.stdout.flush()

    matching_filename = os.path.splitext(filename)[0] + ".out"

    costs = read_instance_file(filename)
    (gold_cost, _gold_pairs) = read_matching_file(matching_filename)

    costs_adj: Sequence[Sequence[tuple[int, int|float]]] = costs

    if cfactor != 1.0:
        factor: int|float = cfactor
        if cfactor.is_integer():
            factor = round(cfactor)
        costs_adj = [[(j, c * factor) for (j, c) in row] for row in costs]

    result = min_cost_bipartite_matching(costs_adj)

    if result is None:
        if gold_cost is not None:
            print(f"FAILED (got infeasible, expected cost {gold_cost})")
            return False
        print("OK")
        return True

    if gold_cost is None:
        print("FAILED (got a matching, expected infeasible)")
        return False

    (assignment, _total_cost) = result
    cost = calc_matching_cost(costs, list(enumerate(assignment)))

    if not compare_cost(cost, gold_cost):
        print(f"FAILED (got cost {cost}, expected {gold_cost})")
        return False

    print("OK")
    return True


def run_verify(filenames: list[str], cfactor: float) -> int:
    """Verify matching(s)."""

    num_passed = 0
    failed_tests: list[str] = []

    for filename in filenames:
        if verify_matching(filename, cfactor):
            num_passed += 1
        else:
            failed_tests.append(filename)
        sys.stdout.flush()

    print("done.")
    print(num_passed, "tests passed")
    if failed_tests:
        print(len(failed_tests), "tests failed:")
        for filename in failed_tests:
            print("   ", filename, "FAILED")
    else:
        print("All tests passed")
    sys.stdout.flush()

    return 1 if failed_tests else 0


def main() -> int:
    """Main program."""

    parser = argparse.ArgumentParser()
    parser.description = (
        "Calculate minimum cost bipartite matching of instances"
        " in DIMACS-like format.")

    parser.add_argument("--verify",
                        action="store_true",
                        help="verify existing output file(s)")
    parser.add_argument("--cfactor",
                        action="store",
                        type=float,
                        default=1.0,
                        help="adjust costs by specified factor")
    parser.add_argument("--outdir",
                        action="store",
                        type=str,
                        help="directory to write output")
    parser.add_argument("-v", "--verbose",
                        action="store_true",
                        help="log details of the matching algorithm")
    parser.add_argument("input",
                        nargs="*",
                        help="input file(s); leave empty to read from stdin")

    args = parser.parse_args()

    logging.basicConfig(
        level=(logging.DEBUG if args.verbose else logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr)

    if (not args.input) and os.isatty(sys.stdin.fileno()):
        print("ERROR: Expecting input from stdin but stdin is a terminal",
              file=sys.stderr)
        print(file=sys.stderr)
        parser.print_help(sys.stderr)
        return 1

    if (not args.input) and args.verify:
        print("ERROR: Can not verify when reading from stdin",
              file=sys.stderr)
        return 1

    if len(args.input) > 1 and (not args.verify) and (not args.outdir):
        print("ERROR: Need --outdir or --verify to process multiple inputs",
              file=sys.stderr)
        return 1

    try:
        if args.verify:
            return run_verify(args.input, args.cfactor)
        else:
            return run_generate(args.input, args.outdir)
    except (OSError, ValueError) as exc:
        print("ERROR:", exc, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
