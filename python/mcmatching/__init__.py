"""
Algorithm for finding a minimum cost perfect matching in bipartite graphs.

Every left vertex is matched to a distinct right vertex such that the
total cost of the matched edges is minimal. Each left vertex specifies
its own sparse list of edges.
"""

from mcmatching.algorithm import (
    MatchingError,
    min_cost_bipartite_matching,
    costs_from_matrix)

solve = min_cost_bipartite_matching

__all__ = [
    "MatchingError",
    "min_cost_bipartite_matching",
    "costs_from_matrix",
    "solve"]
