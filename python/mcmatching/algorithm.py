"""
Algorithm for finding a minimum cost perfect matching in bipartite graphs.
"""

from __future__ import annotations

import sys
import math
import logging
from collections.abc import Sequence
from typing import Optional


logger = logging.getLogger(__name__)


class MatchingError(Exception):
    """Raised when verification of the matching fails."""


def min_cost_bipartite_matching(
        costs: Sequence[Sequence[tuple[int, int|float]]]
        ) -> Optional[tuple[list[int], int|float]]:
    """Compute a minimum cost matching which covers every left vertex
    of the bipartite graph given by "costs".

    The graph is specified as one row of edges per left vertex.
    "costs[i]" lists the edges of left vertex "i", each edge specified
    as a tuple of the right vertex index and the edge cost.

    Left vertices are indexed by the position of their row.
    Right vertices are indexed by consecutive, non-negative integers.
    The number of right vertices is one more than the largest right
    index that appears in any edge. Right vertices without edges are
    allowed; they can never be matched.

    Edge costs may be integers or floating point numbers.
    An edge with cost "math.inf" is treated as a missing edge.
    Multiple edges between the same pair of vertices are allowed;
    only the cheapest one matters.

    The algorithm inserts the left vertices one by one. Each insertion
    grows an alternating tree over tight edges until it reaches an
    unmatched right vertex, then flips the matching along the path.
    This is efficient when each left vertex has only a few edges.

    This function takes time O(n * m) in the worst case, where "n" is
    the number of left vertices and "m" is the number of edges.
    This function uses O(n + t + m) memory, where "t" is the number of
    right vertices.

    Parameters:
        costs: List of rows, one per left vertex. Each row is a list of
            edges "(j, c)" where "j" is a right vertex index and "c" is
            the cost of the edge.

    Returns:
        None if no matching exists that covers all left vertices.
        Otherwise a tuple "(assignment, total_cost)" where
        "assignment[i]" is the right vertex matched to left vertex "i"
        and "total_cost" is the sum of the costs of the matched edges.

    Raises:
        ValueError: If the input does not satisfy the constraints.
        TypeError: If the input contains invalid data types.
    """

    # Check that the input meets all constraints.
    _check_input_types(costs)

    # Initialize graph representation.
    graph = _GraphInfo(costs)

    # Initialize the matching algorithm.
    ctx = _MatchingContext(graph)

    # Insert left vertices one at a time.
    #
    # Each pass through this loop matches one more left vertex.
    # Left vertices that were matched before stay matched, although
    # they may be moved to a different right vertex.
    for s in range(graph.s_size):
        if not ctx.run_stage(s):
            logger.debug("Left vertex %d can not be matched.", s)
            return None

    # Extract the final solution.
    assignment = ctx.left_assignment()
    total_cost = ctx.total_cost()

    # Verify that the matching is optimal.
    # This only works reliably for integer costs.
    # Verification is a redundant step; if the matching algorithm is correct,
    # verification will always pass.
    if graph.integer_costs:
        _verify_optimum(ctx)

    return (assignment, total_cost)


def costs_from_matrix(
        matrix: Sequence[Sequence[Optional[int|float]]]
        ) -> list[list[tuple[int, int|float]]]:
    """Convert a dense cost matrix to sparse rows of edges.

    "matrix[i][j]" is the cost of the edge between left vertex "i" and
    right vertex "j". Entries equal to "None" or "math.inf" denote
    missing edges and are left out.

    Returns:
        List of rows, suitable as input for
        "min_cost_bipartite_matching()".
    """
    return [[(j, c) for (j, c) in enumerate(row)
             if (c is not None) and (c != math.inf)]
            for row in matrix]


def _check_input_types(
        costs: Sequence[Sequence[tuple[int, int|float]]]
        ) -> None:
    """Check that the input consists of valid data types and valid
    numerical ranges.

    This function takes time O(m).

    Parameters:
        costs: List of rows of edges "(j, c)".

    Raises:
        ValueError: If the input does not satisfy the constraints.
        TypeError: If the input contains invalid data types.
    """

    float_limit = sys.float_info.max / 4

    if not isinstance(costs, (list, tuple)):
        raise TypeError('"costs" must be a list')

    for row in costs:
        if not isinstance(row, (list, tuple)):
            raise TypeError("Each row of costs must be a list of edges")

        for e in row:
            if (not isinstance(e, tuple)) or (len(e) != 2):
                raise TypeError("Each edge must be specified as a 2-tuple")

            (j, c) = e

            if not isinstance(j, int):
                raise TypeError("Right vertex indices must be integers")

            if j < 0:
                raise ValueError(
                    "Right vertex indices must be non-negative integers")

            if not isinstance(c, (int, float)):
                raise TypeError(
                    "Edge costs must be integers or floating point numbers")

            if isinstance(c, float):
                if math.isnan(c) or (c == -math.inf):
                    raise ValueError(
                        "Edge costs must be finite numbers or math.inf")

                # Check that this edge cost will not cause our potential
                # calculations to exceed the valid floating point range.
                if (c != math.inf) and (abs(c) > float_limit):
                    raise ValueError("Floating point edge costs must be"
                                     f" less than {float_limit:g}")


class _GraphInfo:
    """Representation of the input graph.

    These data remain unchanged while the algorithm runs.
    """

    def __init__(
            self,
            costs: Sequence[Sequence[tuple[int, int|float]]]
            ) -> None:
        """Initialize the graph representation.

        This function takes time O(n + m).
        """

        # Left vertices are indexed by integers in range 0 .. s_size-1.
        # Right vertices are indexed by integers in range 0 .. t_size-1.
        #
        # "costs[i]" is the list of edges of left vertex "i".
        # Each edge is a tuple "(j, c)" where "j" is the index of
        # a right vertex and "c" is the edge cost.
        #
        # These data remain unchanged while the algorithm runs.
        self.costs: Sequence[Sequence[tuple[int, int|float]]] = costs

        # s_size = the number of left vertices.
        self.s_size: int = len(costs)

        # t_size = the number of right vertices.
        self.t_size: int = 1 + max((j for row in costs for (j, _c) in row),
                                   default=-1)

        # An extra right vertex with index "t_size" serves as sentinel.
        # While a new left vertex is inserted, the sentinel is matched to it.
        # This avoids special cases for the single left vertex that is
        # not yet matched.
        self.sentinel: int = self.t_size

        # Determine whether _all_ costs are integers.
        # In this case we can avoid floating point computations entirely.
        self.integer_costs: bool = all(isinstance(c, int)
                                       for row in costs
                                       for (_j, c) in row)


class _MatchingContext:
    """Holds all data used by the matching algorithm.

    It contains a partial solution of the matching problem and the
    potentials (dual variables) of all vertices.
    """

    def __init__(self, graph: _GraphInfo) -> None:
        """Set up the initial state of the matching algorithm."""

        # Reference to the input graph.
        # The graph does not change while the algorithm runs.
        self.graph = graph

        # Each right vertex is either unmatched or matched to
        # a left vertex.
        #
        # If right vertex "j" is matched to left vertex "i",
        # "matching[j] == i".
        #
        # If right vertex "j" is unmatched, "matching[j] == -1".
        #
        # "matching[sentinel]" is the left vertex that is being inserted.
        #
        # Initially all vertices are unmatched.
        self.matching: list[int] = (graph.t_size + 1) * [-1]

        # Every left vertex has a potential.
        # Every right vertex (including the sentinel) also has a potential,
        # but we keep track of its negation. The stored values of right
        # vertices never become negative.
        #
        # For every edge "(i, j, c)" that has been examined, the reduced cost
        #   c - s_potential[i] + neg_t_potential[j]
        # is non-negative. Matched edges have zero reduced cost.
        #
        # "neg_t_potential[sentinel]" equals the total cost of the matching.
        #
        # All potentials start at zero.
        self.s_potential: list[int|float] = graph.s_size * [0]
        self.neg_t_potential: list[int|float] = (graph.t_size + 1) * [0]

    def increase_all_in(self, z: set[int], delta: int|float) -> None:
        """Add "delta" to the potentials of all vertices in the tree.

        This leaves the reduced cost of edges inside the tree unchanged.
        """
        for t in z:
            self.s_potential[self.matching[t]] += delta
            self.neg_t_potential[t] += delta

    def grow_alternating_tree(
            self,
            unmatched_s: int
            ) -> Optional[tuple[int, dict[int, int]]]:
        """Grow an alternating tree from the left vertex "unmatched_s"
        until it reaches an unmatched right vertex.

        The tree consists of right vertices and the left vertices
        matched to them. In each step, the potentials of the tree are
        increased until an edge to a right vertex outside the tree
        becomes tight. That vertex is then added to the tree.

        This function takes time O(k * (k + d)) where "k" is the number of
        right vertices added to the tree and "d" is the number of edges
        incident to the left vertices of the tree.

        Returns:
            Tuple "(t, previous)" where "t" is the unmatched right vertex
            that was reached and "previous" maps each right vertex that
            joined the tree to the tree vertex it was reached from.
            None if no right vertex outside the tree can be reached.
        """

        costs = self.graph.costs
        matching = self.matching
        s_potential = self.s_potential
        neg_t_potential = self.neg_t_potential

        # The sentinel stands in for the unmatched left vertex.
        t = self.graph.sentinel
        matching[t] = unmatched_s

        # "z" is the set of right vertices in the tree.
        # The left vertices in the tree are exactly those matched to "z".
        z: set[int] = set()

        # For each right vertex "j" outside the tree that is reachable via
        # an edge from the tree, "min_ingoing[j]" is the least reduced cost
        # of such an edge, and "previous[j]" is the tree vertex whose
        # matched left vertex is the source of that edge.
        #
        # Dict ordering makes the choice between equal reduced costs
        # deterministic.
        min_ingoing: dict[int, int|float] = {}
        previous: dict[int, int] = {}

        # Grow the tree until we reach an unmatched right vertex.
        while matching[t] != -1:

            # Add "t" to the tree.
            z.add(t)
            min_ingoing.pop(t, None)

            # Scan the edges of the left vertex matched to "t".
            s = matching[t]
            for (j, c) in costs[s]:
                if (c != math.inf) and (j not in z):
                    slack = c - s_potential[s] + neg_t_potential[j]
                    if (j not in min_ingoing) or (slack < min_ingoing[j]):
                        min_ingoing[j] = slack
                        previous[j] = t

            # Stop if no edge leaves the tree.
            # This means that not all left vertices can be matched.
            if not min_ingoing:
                return None

            # Find the least-slack edge out of the tree.
            next_t = -1
            delta: int|float = 0
            for (j, slack) in min_ingoing.items():
                if (next_t == -1) or (slack < delta):
                    next_t = j
                    delta = slack

            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Delta step %s to right vertex %d via left vertex %d;"
                    " tree %s.",
                    delta, next_t, matching[previous[next_t]], sorted(z))

            # Apply the delta step to the potentials in the tree.
            self.increase_all_in(z, delta)

            # Reduced costs of edges out of the tree drop by the same delta.
            for j in min_ingoing:
                min_ingoing[j] -= delta

            t = next_t

        return (t, previous)

    def augment_matching(self, t: int, previous: dict[int, int]) -> None:
        """Flip the matching along the path from the sentinel to the
        unmatched right vertex "t".

        Every right vertex on the path is rematched to the left vertex
        that was matched to its predecessor on the path.
        This function takes time O(k) where "k" is the path length.
        """
        sentinel = self.graph.sentinel
        matching = self.matching
        while t != sentinel:
            prev_t = previous[t]
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Matching right vertex %d to left vertex %d.",
                    t, matching[prev_t])
            matching[t] = matching[prev_t]
            t = prev_t

    #
    # Main stage function:
    #

    def run_stage(self, unmatched_s: int) -> bool:
        """Insert the left vertex "unmatched_s" into the matching.

        Returns:
            True if the matching was successfully augmented.
            False if the left vertex can not be matched.
        """

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Inserting left vertex %d with edges %s.",
                unmatched_s, list(self.graph.costs[unmatched_s]))
            logger.debug(
                "Current matching: %s.",
                ", ".join(f"{j}-{i}" for (j, i) in enumerate(self.matching)
                          if i != -1))
            logger.debug("Left potentials: %s.", self.s_potential)
            logger.debug("Negated right potentials: %s.",
                         self.neg_t_potential)

        found = self.grow_alternating_tree(unmatched_s)
        if found is None:
            return False

        (t, previous) = found
        self.augment_matching(t, previous)
        return True

    def left_assignment(self) -> list[int]:
        """Return the right vertex matched to each left vertex."""
        assignment = self.graph.s_size * [-1]
        for (j, i) in enumerate(self.matching[:self.graph.t_size]):
            if i != -1:
                assignment[i] = j
        return assignment

    def total_cost(self) -> int|float:
        """Return the total cost of the matching."""
        return self.neg_t_potential[self.graph.sentinel]


def _verify_optimum(ctx: _MatchingContext) -> None:
    """Verify that the optimum solution has been found.

    This function takes time O(n + t + m).

    Raises:
        MatchingError: If the solution is not optimal.
    """

    graph = ctx.graph
    s_size = graph.s_size
    t_size = graph.t_size

    matching = ctx.matching[:t_size]
    s_potential = ctx.s_potential
    neg_t_potential = ctx.neg_t_potential

    # Double-check that every left vertex is matched to a distinct
    # right vertex.
    assignment = s_size * [-1]
    for (j, i) in enumerate(matching):
        if i != -1:
            if assignment[i] != -1:
                raise MatchingError(
                    f"Left vertex {i} matched to right vertices"
                    f" {assignment[i]} and {j}")
            assignment[i] = j

    for i in range(s_size):
        if assignment[i] == -1:
            raise MatchingError(f"Left vertex {i} is not matched")

    # Check that all right potentials are non-positive
    # (i.e. negated potentials are non-negative).
    for j in range(t_size):
        if neg_t_potential[j] < 0:
            raise MatchingError(
                f"Negative negated potential {neg_t_potential[j]}"
                f" of right vertex {j}")

    # Check that all unmatched right vertices have zero potential.
    for j in range(t_size):
        if (matching[j] == -1) and (neg_t_potential[j] != 0):
            raise MatchingError(
                f"Non-zero potential {neg_t_potential[j]}"
                f" of unmatched right vertex {j}")

    # Calculate the reduced cost of each edge.
    # Also find the cost of each matched edge.
    matched_cost: list[Optional[int|float]] = s_size * [None]

    for i in range(s_size):
        for (j, c) in graph.costs[i]:
            if c == math.inf:
                continue

            slack = c - s_potential[i] + neg_t_potential[j]

            # Check that all edges have non-negative reduced cost.
            if slack < 0:
                raise MatchingError(
                    f"Negative reduced cost {slack} of edge ({i}, {j})")

            # Check that the matched edge has zero reduced cost.
            if (j == assignment[i]) and (slack == 0):
                matched_cost[i] = c

    for i in range(s_size):
        if matched_cost[i] is None:
            raise MatchingError(
                f"No tight edge ({i}, {assignment[i]}) in the graph")

    # Check that the total cost agrees with the matched edges.
    total_cost = sum(c for c in matched_cost if c is not None)
    if total_cost != ctx.total_cost():
        raise MatchingError(
            f"Total cost {ctx.total_cost()} differs from sum of"
            f" matched edge costs {total_cost}")

    # Optimum solution confirmed.
