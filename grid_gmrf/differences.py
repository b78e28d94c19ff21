"""
Difference operators on grids and graphs.

This module builds the sparse difference matrix D of a domain. Each row of
D is a local contrast between domain elements (first or second
differences), so every row sums to zero. The structure matrix of the
corresponding intrinsic GMRF is S = D^T D.
"""

import numpy as np
from scipy import sparse
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence, Tuple, Union

from grid_gmrf.domains import CartesianGrid, Graph
from grid_gmrf.exceptions import DomainError, UnsupportedConfigurationError
from grid_gmrf.utils import tidy_csr

Domain = Union[CartesianGrid, Graph]

# right, top, left, bottom
NEIGHBOR_OFFSETS = ((1, 0), (0, 1), (-1, 0), (0, -1))

FIRST_DIFFERENCE = (-1.0, 1.0)
SECOND_DIFFERENCE = (1.0, -2.0, 1.0)


class StencilKind(IntEnum):
    """Position of a grid cell, valued by its number of in-domain neighbors."""
    CORNER = 2
    EDGE = 3
    INTERIOR = 4


@dataclass(frozen=True)
class CellStencils:
    """
    Per-cell 5-point stencils of a 2-D grid.

    Attributes
    ----------
    extents : Tuple[int, int]
        Grid extents (n1, n2)
    kind : np.ndarray
        StencilKind value of every cell, shape (n,)
    center : np.ndarray
        Center coefficient of every cell, shape (n,)
    neighbors : np.ndarray
        Linear indices of the right, top, left and bottom neighbors of every
        cell, shape (n, 4); -1 marks a neighbor outside the domain
    """
    extents: Tuple[int, int]
    kind: np.ndarray
    center: np.ndarray
    neighbors: np.ndarray

    def __len__(self) -> int:
        return len(self.kind)

    def cells(self, kind: StencilKind) -> np.ndarray:
        """Linear indices of all cells of the given kind."""
        return np.flatnonzero(self.kind == kind)

    def to_matrix(self) -> sparse.csr_matrix:
        """Assemble one stencil row per cell; row k belongs to cell k."""
        n = len(self)
        inside = self.neighbors >= 0
        cells = np.repeat(np.arange(n)[:, None], 4, axis=1)

        rows = np.concatenate([np.arange(n), cells[inside]])
        cols = np.concatenate([np.arange(n), self.neighbors[inside]])
        data = np.concatenate([self.center, np.ones(inside.sum())])

        return tidy_csr(sparse.coo_matrix((data, (rows, cols)), shape=(n, n)))


def classify_cells(n1: int, n2: int, circular: bool = False) -> CellStencils:
    """
    Classify every cell of an n1 x n2 grid and attach its stencil.

    On an open grid a cell is INTERIOR (4 neighbors, center -4), EDGE
    (3 neighbors, center -3) or CORNER (2 neighbors, center -2). On a
    circular (toroidal) grid every cell is INTERIOR and its neighbors wrap
    around the grid borders.

    Parameters
    ----------
    n1, n2 : int
        Grid extents
    circular : bool
        Wrap neighbors around the grid borders

    Returns
    -------
    CellStencils
        Tagged stencil table indexed by column-major cell index
    """
    if not circular and (n1 < 2 or n2 < 2):
        raise DomainError(
            f"Boundary-aware stencils need at least 2 cells per axis, got {n1}x{n2}"
        )

    n = n1 * n2
    k = np.arange(n)
    ii, jj = k % n1, k // n1

    neighbors = np.empty((n, 4), dtype=np.int64)
    for col, (di, dj) in enumerate(NEIGHBOR_OFFSETS):
        ni, nj = ii + di, jj + dj
        if circular:
            neighbors[:, col] = (nj % n2) * n1 + (ni % n1)
        else:
            inside = (ni >= 0) & (ni < n1) & (nj >= 0) & (nj < n2)
            neighbors[:, col] = np.where(inside, nj * n1 + ni, -1)

    n_inside = (neighbors >= 0).sum(axis=1)

    return CellStencils(
        extents=(n1, n2),
        kind=n_inside.astype(np.int64),
        center=-n_inside.astype(np.float64),
        neighbors=neighbors
    )


def neighbor_pairs(domain: Domain, circular: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    """
    Enumerate first-order neighbor pairs of a domain.

    Grid pairs are listed as all "right" pairs followed by all "top" pairs
    (2-D grids), each block ordered with the first axis outermost. Graph
    pairs follow the graph's edge order.

    :param domain: CartesianGrid (1-D or 2-D) or Graph
    :param circular: Wrap grid neighbors around the borders
    :return: (base, neighbor) arrays of linear indices
    """
    if isinstance(domain, Graph):
        if circular:
            raise UnsupportedConfigurationError(
                "Circular boundaries are not defined for graph domains"
            )
        edges = domain.edge_array()
        return edges[:, 0], edges[:, 1]

    if not isinstance(domain, CartesianGrid):
        raise UnsupportedConfigurationError(
            f"Unsupported domain type {type(domain).__name__}"
        )

    if domain.ndim == 1:
        n = domain.element_count
        base = np.arange(n) if circular else np.arange(n - 1)
        return base, (base + 1) % n

    if domain.ndim != 2:
        raise UnsupportedConfigurationError(
            f"Difference operators are only defined for 1-D and 2-D grids, "
            f"got a {domain.ndim}-D grid {domain.extents}"
        )

    n1, n2 = domain.extents
    ii, jj = np.meshgrid(np.arange(n1), np.arange(n2), indexing="ij")
    ii, jj = ii.ravel(), jj.ravel()

    if circular:
        right = np.ones(len(ii), dtype=bool)
        top = right
    else:
        right = ii < n1 - 1
        top = jj < n2 - 1

    base = np.concatenate([
        domain.linear_index(ii[right], jj[right]),
        domain.linear_index(ii[top], jj[top])
    ])
    neighbor = np.concatenate([
        domain.linear_index((ii[right] + 1) % n1, jj[right]),
        domain.linear_index(ii[top], (jj[top] + 1) % n2)
    ])
    return base, neighbor


def check_configuration(domain: Domain, order: int, circular: bool) -> None:
    """
    Validate a (domain, order, circular) combination without building anything.

    Raises
    ------
    UnsupportedConfigurationError
        If the combination has no construction rule
    DomainError
        If the domain is too small for the requested order
    """
    if order not in (1, 2):
        raise UnsupportedConfigurationError(
            f"Difference order must be 1 or 2, got order={order}"
        )

    if isinstance(domain, Graph):
        if circular:
            raise UnsupportedConfigurationError(
                "Circular boundaries are not defined for graph domains"
            )
        if domain.edge_count == 0:
            raise DomainError(f"Graph differences need at least one edge, got {domain}")
        return

    if not isinstance(domain, CartesianGrid):
        raise UnsupportedConfigurationError(
            f"Unsupported domain type {type(domain).__name__}"
        )

    if domain.ndim == 1:
        if domain.element_count <= order:
            raise DomainError(
                f"Order {order} differences need more than {order} cells, got {domain}"
            )
    elif domain.ndim == 2:
        n1, n2 = domain.extents
        if order == 1 and n1 * n2 < 2:
            raise DomainError(f"Order 1 differences need at least 2 cells, got {domain}")
        if order == 2 and not circular and (n1 < 2 or n2 < 2):
            raise DomainError(
                f"Boundary-aware stencils need at least 2 cells per axis, got {domain}"
            )
    else:
        raise UnsupportedConfigurationError(
            f"Difference operators are only defined for 1-D and 2-D grids, "
            f"got a {domain.ndim}-D grid {domain.extents}"
        )


def difference(domain: Domain, order: int = 1, circular: bool = False) -> sparse.csr_matrix:
    """
    Sparse difference matrix D of a domain.

    D has one row per restriction (local contrast) and one column per domain
    element. Supported configurations:

    - 1-D grid, order 1 or 2, open or circular
    - 2-D grid, order 1 or 2, open or circular (column-major cell numbering)
    - Graph, order 1 (one row per edge) or 2 (D = -D1^T D1)

    Parameters
    ----------
    domain : CartesianGrid or Graph
        Domain to difference over
    order : int
        Order of the differences, 1 or 2
    circular : bool
        Treat a grid as a torus so neighbors wrap around its borders

    Returns
    -------
    sparse.csr_matrix
        Difference matrix of shape (n_restrictions, n_elements)

    Raises
    ------
    UnsupportedConfigurationError
        If the (domain kind, order, circular) combination is not supported
    DomainError
        If the domain is too small for the requested order
    """
    check_configuration(domain, order, circular)

    n = domain.element_count

    if isinstance(domain, Graph):
        src, dst = neighbor_pairs(domain)
        D1 = _pair_difference(src, dst, n)
        if order == 1:
            return D1
        return tidy_csr(-(D1.T @ D1))

    if domain.ndim == 1:
        coefficients = FIRST_DIFFERENCE if order == 1 else SECOND_DIFFERENCE
        return _band_difference(n, coefficients, circular)

    if order == 1:
        base, neighbor = neighbor_pairs(domain, circular)
        return _pair_difference(base, neighbor, n)

    n1, n2 = domain.extents
    return classify_cells(n1, n2, circular).to_matrix()


def _band_difference(n: int, coefficients: Sequence[float], circular: bool) -> sparse.csr_matrix:
    """Rows holding `coefficients` at consecutive columns, optionally wrapped mod n."""
    n_rows = n if circular else n - len(coefficients) + 1
    base = np.arange(n_rows)

    rows = np.tile(base, len(coefficients))
    cols = np.concatenate([base + offset for offset in range(len(coefficients))])
    if circular:
        cols = cols % n
    data = np.repeat(np.asarray(coefficients, dtype=np.float64), n_rows)

    return tidy_csr(sparse.coo_matrix((data, (rows, cols)), shape=(n_rows, n)))


def _pair_difference(base: np.ndarray, neighbor: np.ndarray, n: int) -> sparse.csr_matrix:
    """One row per pair: -1 at the base element, +1 at its neighbor."""
    m = len(base)
    rows = np.tile(np.arange(m), 2)
    cols = np.concatenate([base, neighbor])
    data = np.repeat(np.asarray(FIRST_DIFFERENCE), m)

    return tidy_csr(sparse.coo_matrix((data, (rows, cols)), shape=(m, n)))
