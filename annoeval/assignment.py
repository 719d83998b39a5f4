"""Minimum-cost bipartite assignment.

The matcher only depends on the SolveAssignment contract: a rectangular
cost matrix in, a one-to-one list of (row, column) pairs out. The default
solver is scipy's Hungarian-style linear_sum_assignment.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np
from scipy.optimize import linear_sum_assignment

# Cost marking a forbidden pair. Finite so the solver always has a full
# assignment; pairs at this cost are discarded afterwards.
FORBIDDEN_COST = 1_000_000.0


class SolveAssignment(Protocol):
    def __call__(self, cost: np.ndarray) -> list[tuple[int, int]]: ...


def hungarian_assignment(cost: np.ndarray) -> list[tuple[int, int]]:
    """Pair rows with columns minimizing total cost (rectangular allowed)."""
    if cost.size == 0:
        return []
    rows, cols = linear_sum_assignment(cost)
    return [(int(r), int(c)) for r, c in zip(rows, cols)]


def solve(
    cost: np.ndarray,
    solver: SolveAssignment | None = None,
) -> list[tuple[int, int, float]]:
    """
    Run a solver and keep only the pairs below FORBIDDEN_COST.

    Returns:
        (row, column, cost) triples sorted by row
    """
    solver = solver or hungarian_assignment
    pairs = []
    for row, col in solver(cost):
        value = float(cost[row, col])
        if value < FORBIDDEN_COST:
            pairs.append((row, col, value))
    pairs.sort()
    return pairs
