"""
Unit tests for grid_gmrf.domains module.
"""

import pytest
import numpy as np
from scipy import sparse

from grid_gmrf.domains import CartesianGrid, Graph
from grid_gmrf.exceptions import DomainError


class TestCartesianGrid:
    """Test suite for regular grids."""

    def test_extents_and_counts(self):
        grid = CartesianGrid(4, 5)

        assert grid.extents == (4, 5)
        assert grid.ndim == 2
        assert grid.element_count == 20
        assert len(grid) == 20

    def test_column_major_numbering(self):
        """Test k = j * n1 + i and its inverse."""
        grid = CartesianGrid(4, 5)

        assert grid.linear_index(1, 0) == 1
        assert grid.linear_index(0, 1) == 4
        assert grid.linear_index(3, 4) == 19

        k = np.arange(20)
        i, j = grid.cell_index(k)
        np.testing.assert_array_equal(grid.linear_index(i, j), k)

    def test_one_dimensional(self):
        grid = CartesianGrid(7)

        assert grid.ndim == 1
        assert grid.element_count == 7
        assert grid.linear_index(3) == 3
        assert grid.cell_index(3) == (3,)

    @pytest.mark.parametrize("extents", [(), (0,), (3, -1), (2.5,)])
    def test_invalid_extents(self, extents):
        with pytest.raises(DomainError):
            CartesianGrid(*extents)


class TestGraph:
    """Test suite for simple undirected graphs."""

    def setup_method(self):
        # two components: a triangle and a single edge
        self.graph = Graph(5, [(0, 1), (1, 2), (2, 0), (3, 4)])

    def test_counts(self):
        assert self.graph.element_count == 5
        assert self.graph.edge_count == 4
        assert len(self.graph) == 5

    def test_edges_keep_insertion_order(self):
        assert list(self.graph.edges()) == [(0, 1), (1, 2), (2, 0), (3, 4)]

    def test_adjacency_is_symmetric(self):
        A = self.graph.adjacency()

        assert (A != A.T).nnz == 0
        np.testing.assert_array_equal(np.asarray(A.sum(axis=1)).ravel(), [2, 2, 2, 1, 1])

    def test_connected_components(self):
        n_components, labels = self.graph.connected_components()

        assert n_components == 2
        assert labels[0] == labels[1] == labels[2]
        assert labels[3] == labels[4] != labels[0]

    def test_from_adjacency(self):
        """Test edges read row-major from the strict upper triangle."""
        A = sparse.csr_matrix(np.array([
            [0, 1, 1, 0],
            [1, 0, 0, 1],
            [1, 0, 0, 0],
            [0, 1, 0, 0],
        ]))
        graph = Graph.from_adjacency(A)

        assert graph.element_count == 4
        assert list(graph.edges()) == [(0, 1), (0, 2), (1, 3)]

    def test_from_asymmetric_adjacency(self):
        with pytest.raises(DomainError):
            Graph.from_adjacency(np.array([[0, 1], [0, 0]]))

    @pytest.mark.parametrize("n, edges", [
        (0, []),
        (3, [(0, 3)]),
        (3, [(-1, 0)]),
        (3, [(1, 1)]),
        (3, [(0, 1), (1, 0)]),
    ])
    def test_invalid_graphs(self, n, edges):
        with pytest.raises(DomainError):
            Graph(n, edges)
