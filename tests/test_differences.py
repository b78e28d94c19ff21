"""
Unit tests for grid_gmrf.differences module.

Tests difference operator construction including:
- 1-D grids (first/second order, open/circular)
- 2-D grids with column-major numbering and boundary-aware stencils
- Graph differences
- Rejection of unsupported configurations
"""

import pytest
import numpy as np

import grid_gmrf.differences as differences_module
from grid_gmrf.differences import (
    difference,
    classify_cells,
    neighbor_pairs,
    check_configuration,
    StencilKind,
)
from grid_gmrf.domains import CartesianGrid, Graph
from grid_gmrf.exceptions import DomainError, UnsupportedConfigurationError


CONFIGURATIONS = [
    (CartesianGrid(6), 1, False),
    (CartesianGrid(6), 1, True),
    (CartesianGrid(6), 2, False),
    (CartesianGrid(6), 2, True),
    (CartesianGrid(3, 3), 1, False),
    (CartesianGrid(3, 3), 1, True),
    (CartesianGrid(3, 3), 2, False),
    (CartesianGrid(3, 3), 2, True),
    (CartesianGrid(4, 5), 1, False),
    (CartesianGrid(4, 5), 1, True),
    (CartesianGrid(4, 5), 2, False),
    (CartesianGrid(4, 5), 2, True),
    (CartesianGrid(2, 3), 2, True),
    (Graph(4, [(0, 1), (1, 2), (2, 3), (3, 0)]), 1, False),
    (Graph(4, [(0, 1), (1, 2), (2, 3), (3, 0)]), 2, False),
    (Graph(5, [(0, 1), (0, 2), (0, 3), (3, 4)]), 1, False),
]


def _config_id(config):
    domain, order, circular = config
    return f"{domain}-order{order}-{'circular' if circular else 'open'}"


class TestDifference1D:
    """Test suite for differences on 1-D grids."""

    def test_first_order_open(self):
        """Test (n-1) x n first differences."""
        D = difference(CartesianGrid(5), order=1).toarray()

        assert D.shape == (4, 5)
        expected = np.zeros((4, 5))
        for i in range(4):
            expected[i, i] = -1
            expected[i, i + 1] = 1
        np.testing.assert_array_equal(D, expected)

    def test_first_order_circular_wraps(self):
        """Test that the last row references the first column."""
        D = difference(CartesianGrid(4), order=1, circular=True).toarray()

        assert D.shape == (4, 4)
        np.testing.assert_array_equal(D[3], [1, 0, 0, -1])
        np.testing.assert_array_equal(D[0], [-1, 1, 0, 0])

    def test_second_order_open(self):
        """Test (n-2) x n second differences."""
        D = difference(CartesianGrid(5), order=2).toarray()

        np.testing.assert_array_equal(D, [
            [1, -2, 1, 0, 0],
            [0, 1, -2, 1, 0],
            [0, 0, 1, -2, 1],
        ])

    def test_second_order_circular(self):
        """Test wrapped second differences."""
        D = difference(CartesianGrid(4), order=2, circular=True).toarray()

        np.testing.assert_array_equal(D, [
            [1, -2, 1, 0],
            [0, 1, -2, 1],
            [1, 0, 1, -2],
            [-2, 1, 0, 1],
        ])

    def test_too_small_grid(self):
        """Test that a grid with no restrictions is rejected."""
        with pytest.raises(DomainError):
            difference(CartesianGrid(2), order=2)
        with pytest.raises(DomainError):
            difference(CartesianGrid(1), order=1, circular=True)


class TestDifference2D:
    """Test suite for differences on 2-D grids."""

    def setup_method(self):
        """Hand-derived boundary-aware stencil matrix of a 3x3 grid."""
        self.reference_3x3 = np.array([
            [-2, 1, 0, 1, 0, 0, 0, 0, 0],
            [1, -3, 1, 0, 1, 0, 0, 0, 0],
            [0, 1, -2, 0, 0, 1, 0, 0, 0],
            [1, 0, 0, -3, 1, 0, 1, 0, 0],
            [0, 1, 0, 1, -4, 1, 0, 1, 0],
            [0, 0, 1, 0, 1, -3, 0, 0, 1],
            [0, 0, 0, 1, 0, 0, -2, 1, 0],
            [0, 0, 0, 0, 1, 0, 1, -3, 1],
            [0, 0, 0, 0, 0, 1, 0, 1, -2],
        ])

    def test_first_order_open_shape_and_order(self):
        """Test right pairs come first, each block with the first axis outermost."""
        grid = CartesianGrid(3, 2)
        D = difference(grid, order=1).toarray()

        # (n1 - 1) * n2 right pairs + n1 * (n2 - 1) top pairs
        assert D.shape == (7, 6)

        # right pairs: cells (0,0), (0,1), (1,0), (1,1)
        np.testing.assert_array_equal(D[0], [-1, 1, 0, 0, 0, 0])
        np.testing.assert_array_equal(D[1], [0, 0, 0, -1, 1, 0])
        np.testing.assert_array_equal(D[2], [0, -1, 1, 0, 0, 0])
        # first top pair: (0,0) -> (0,1), i.e. linear index 0 -> 3
        np.testing.assert_array_equal(D[4], [-1, 0, 0, 1, 0, 0])

    def test_first_order_circular_has_two_rows_per_cell(self):
        """Test toroidal pairs, exactly 2n rows."""
        grid = CartesianGrid(4, 5)
        D = difference(grid, order=1, circular=True)

        assert D.shape == (40, 20)
        nnz_per_row = np.diff(D.indptr)
        assert np.all(nnz_per_row == 2)

        # cell (3, 0) pairs with (0, 0) on the right
        base, neighbor = neighbor_pairs(grid, circular=True)
        k = list(base[:20]).index(3)
        assert neighbor[k] == 0

    def test_second_order_open_reference(self):
        """Test the full 9x9 matrix of a 3x3 grid against a hand-derived reference."""
        D = difference(CartesianGrid(3, 3), order=2).toarray()
        np.testing.assert_array_equal(D, self.reference_3x3)

    def test_second_order_open_stencil_sizes(self):
        """Test -4/-3/-2 centers with 5/4/3 nonzeros."""
        D = difference(CartesianGrid(3, 3), order=2)
        nnz_per_row = np.diff(D.indptr)
        diagonal = D.diagonal()

        assert diagonal[4] == -4 and nnz_per_row[4] == 5
        for k in (1, 3, 5, 7):
            assert diagonal[k] == -3 and nnz_per_row[k] == 4
        for k in (0, 2, 6, 8):
            assert diagonal[k] == -2 and nnz_per_row[k] == 3

    def test_second_order_circular(self):
        """Test -4 centers with 4 wrapped unit neighbors."""
        D = difference(CartesianGrid(3, 3), order=2, circular=True).toarray()

        np.testing.assert_array_equal(D[0], [-4, 1, 1, 1, 0, 0, 1, 0, 0])
        assert np.all(np.diag(D) == -4)
        assert np.all((D != 0).sum(axis=1) == 5)

    def test_second_order_circular_small_extent_sums_coinciding_neighbors(self):
        """Test that left and right neighbors coincide on a 2-wide torus."""
        D = difference(CartesianGrid(2, 3), order=2, circular=True).toarray()

        # cell 0 = (0, 0): right and left are both cell 1
        assert D[0, 1] == 2
        assert D[0, 0] == -4

    def test_boundary_stencils_need_two_cells_per_axis(self):
        """Test that degenerate strips are rejected for open second order."""
        with pytest.raises(DomainError):
            difference(CartesianGrid(1, 4), order=2)

    def test_first_order_on_strip(self):
        """Test that a 1 x n strip still has top pairs."""
        D = difference(CartesianGrid(1, 4), order=1)
        assert D.shape == (3, 4)


class TestClassifyCells:
    """Test suite for per-cell stencil classification."""

    def test_kind_counts(self):
        """Test corner/edge/interior counts on a 4x5 grid."""
        stencils = classify_cells(4, 5)

        assert len(stencils) == 20
        assert len(stencils.cells(StencilKind.CORNER)) == 4
        assert len(stencils.cells(StencilKind.EDGE)) == 2 * 2 + 2 * 3
        assert len(stencils.cells(StencilKind.INTERIOR)) == 2 * 3

    def test_corner_neighbors(self):
        """Test neighbor table of the first corner (right, top, left, bottom)."""
        stencils = classify_cells(4, 5)

        np.testing.assert_array_equal(stencils.neighbors[0], [1, 4, -1, -1])
        assert stencils.center[0] == -2
        assert stencils.kind[0] == StencilKind.CORNER

    def test_center_matches_kind(self):
        """Test that the center coefficient is minus the neighbor count."""
        stencils = classify_cells(5, 3)
        np.testing.assert_array_equal(stencils.center, -stencils.kind)
        np.testing.assert_array_equal(stencils.kind, (stencils.neighbors >= 0).sum(axis=1))

    def test_circular_cells_are_interior(self):
        """Test that a torus has no boundary cells."""
        stencils = classify_cells(4, 5, circular=True)

        assert np.all(stencils.kind == StencilKind.INTERIOR)
        assert np.all(stencils.neighbors >= 0)
        # cell (0, 0) wraps left to (3, 0) and down to (0, 4)
        np.testing.assert_array_equal(stencils.neighbors[0], [1, 4, 3, 16])


class TestGraphDifference:
    """Test suite for differences on graphs."""

    def setup_method(self):
        self.path = Graph(3, [(0, 1), (1, 2)])

    def test_path_first_order(self):
        """Test one row per edge with -1 at src and +1 at dst."""
        D = difference(self.path, order=1).toarray()
        np.testing.assert_array_equal(D, [[-1, 1, 0], [0, -1, 1]])

    def test_path_second_order(self):
        """Test that second order equals -D^T D."""
        D1 = np.array([[-1, 1, 0], [0, -1, 1]], dtype=float)
        D2 = difference(self.path, order=2).toarray()

        np.testing.assert_array_equal(D2, -D1.T @ D1)
        np.testing.assert_array_equal(np.diag(D2), [-1, -2, -1])

    def test_edge_order_is_preserved(self):
        """Test that rows follow the graph's edge enumeration and orientation."""
        graph = Graph(3, [(2, 1), (0, 1)])
        D = difference(graph).toarray()
        np.testing.assert_array_equal(D, [[0, 1, -1], [-1, 1, 0]])

    def test_graph_without_edges(self):
        with pytest.raises(DomainError):
            difference(Graph(3))


class TestDifferenceInvariants:
    """Properties that hold for every supported configuration."""

    @pytest.mark.parametrize("config", CONFIGURATIONS, ids=_config_id)
    def test_rows_sum_to_zero(self, config):
        """Test that every row is a contrast."""
        domain, order, circular = config
        D = difference(domain, order=order, circular=circular)

        row_sums = np.asarray(D.sum(axis=1)).ravel()
        assert np.all(row_sums == 0)
        assert D.shape[1] == domain.element_count

    @pytest.mark.parametrize("config", CONFIGURATIONS, ids=_config_id)
    def test_canonical_storage(self, config):
        """Test that no explicit zeros or unsorted indices are stored."""
        domain, order, circular = config
        D = difference(domain, order=order, circular=circular)

        assert np.all(D.data != 0)
        assert D.has_sorted_indices


class TestUnsupportedConfigurations:
    """Test that unsupported configurations fail before building anything."""

    @pytest.fixture
    def build_calls(self, monkeypatch):
        calls = []
        original = differences_module.tidy_csr

        def recording_tidy_csr(matrix):
            calls.append(matrix)
            return original(matrix)

        monkeypatch.setattr(differences_module, "tidy_csr", recording_tidy_csr)
        return calls

    @pytest.mark.parametrize("domain, order, circular", [
        (CartesianGrid(5), 3, False),
        (CartesianGrid(5), 0, True),
        (CartesianGrid(3, 3), 3, True),
        (CartesianGrid(2, 2, 2), 1, False),
        (Graph(3, [(0, 1), (1, 2)]), 1, True),
        (Graph(3, [(0, 1), (1, 2)]), 3, False),
        ("not a domain", 1, False),
    ])
    def test_raises_and_builds_nothing(self, build_calls, domain, order, circular):
        with pytest.raises(UnsupportedConfigurationError):
            difference(domain, order=order, circular=circular)
        assert build_calls == []

    def test_check_configuration_accepts_supported(self):
        """Test that supported configurations pass validation."""
        for domain, order, circular in CONFIGURATIONS:
            check_configuration(domain, order, circular)

    def test_supported_configuration_is_recorded(self, build_calls):
        """Test that the recorder sees the matrices a supported call builds."""
        import grid_gmrf

        assert callable(grid_gmrf.difference)
        assert differences_module.difference is grid_gmrf.difference

        D = difference(CartesianGrid(4), order=1)

        assert len(build_calls) == 1
        assert build_calls[0].shape == D.shape
