"""Tests for annoeval.assignment."""

import numpy as np

from annoeval.assignment import FORBIDDEN_COST, hungarian_assignment, solve


class TestHungarianAssignment:
    def test_square(self):
        cost = np.array([[1.0, 0.0], [0.0, 1.0]])
        assert sorted(hungarian_assignment(cost)) == [(0, 1), (1, 0)]

    def test_rectangular(self):
        cost = np.array([[0.5, 0.1, 0.9]])
        assert hungarian_assignment(cost) == [(0, 1)]

    def test_empty(self):
        assert hungarian_assignment(np.zeros((0, 3))) == []


class TestSolve:
    """Tests for solve()."""

    def test_drops_forbidden_pairs(self):
        cost = np.array([[0.2, FORBIDDEN_COST], [FORBIDDEN_COST, FORBIDDEN_COST]])
        assert solve(cost) == [(0, 0, 0.2)]

    def test_prefers_global_minimum(self):
        # Row 0 alone would take column 0; the joint optimum gives it column 1
        cost = np.array([[0.1, 0.2], [0.3, FORBIDDEN_COST]])
        assert solve(cost) == [(0, 1, 0.2), (1, 0, 0.3)]

    def test_custom_solver(self):
        cost = np.array([[0.4, 0.1], [0.2, 0.3]])

        def diagonal(matrix):
            return [(i, i) for i in range(min(matrix.shape))]

        assert solve(cost, diagonal) == [(0, 0, 0.4), (1, 1, 0.3)]

    def test_results_sorted_by_row(self):
        cost = np.array([[0.4, 0.1], [0.2, 0.3]])

        def reversed_pairs(matrix):
            return [(1, 0), (0, 1)]

        assert [row for row, _, _ in solve(cost, reversed_pairs)] == [0, 1]
