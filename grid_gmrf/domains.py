"""
Spatial domains for GMRF construction.

Two kinds of domain are supported:
- CartesianGrid: a regular 1-D or 2-D grid with column-major cell numbering
- Graph: a simple undirected graph with a fixed edge enumeration order

Domains are owned by the caller; matrix builders only read them.
"""

import numpy as np
from scipy import sparse
from scipy.sparse import csgraph
from typing import Iterator, Sequence, Tuple, Union

from grid_gmrf.exceptions import DomainError


class CartesianGrid:
    """
    Regular grid of cells.

    Cells of a 2-D grid with extents (n1, n2) are numbered column-major,
    i.e. cell (i, j) has linear index k = j * n1 + i.

    Attributes
    ----------
    extents : Tuple[int, ...]
        Number of cells along each axis
    """

    def __init__(self, *extents: int):
        """
        Parameters
        ----------
        *extents : int
            Number of cells along each axis, e.g. ``CartesianGrid(10)`` or
            ``CartesianGrid(4, 5)``
        """
        if len(extents) == 0:
            raise DomainError("CartesianGrid needs at least one extent")

        checked = []
        for extent in extents:
            if int(extent) != extent or extent < 1:
                raise DomainError(
                    f"Grid extents must be positive integers, got {extents}"
                )
            checked.append(int(extent))

        self._extents = tuple(checked)

    @property
    def extents(self) -> Tuple[int, ...]:
        return self._extents

    @property
    def ndim(self) -> int:
        return len(self._extents)

    @property
    def element_count(self) -> int:
        return int(np.prod(self._extents))

    def __len__(self) -> int:
        return self.element_count

    def linear_index(
        self,
        i: Union[int, np.ndarray],
        j: Union[int, np.ndarray] = 0
    ) -> Union[int, np.ndarray]:
        """
        Convert cell coordinates to column-major linear indices.

        :param i: Index along the first axis
        :param j: Index along the second axis (ignored for 1-D grids)
        :return: Linear index k = j * n1 + i
        """
        if self.ndim == 1:
            return i
        return j * self._extents[0] + i

    def cell_index(self, k: Union[int, np.ndarray]) -> Tuple:
        """
        Convert column-major linear indices back to cell coordinates.

        :param k: Linear index
        :return: (i,) for 1-D grids, (i, j) for 2-D grids
        """
        if self.ndim == 1:
            return (k,)
        n1 = self._extents[0]
        return (k % n1, k // n1)

    def __repr__(self) -> str:
        return f"CartesianGrid{self._extents}"


class Graph:
    """
    Simple undirected graph.

    Each undirected edge is stored once, as given, and edges are always
    enumerated in insertion order so difference matrices built from the
    graph are reproducible.

    Attributes
    ----------
    n_vertices : int
        Number of vertices
    """

    def __init__(self, n_vertices: int, edges: Sequence[Tuple[int, int]] = ()):
        """
        Parameters
        ----------
        n_vertices : int
            Number of vertices, labelled 0..n_vertices-1
        edges : Sequence[Tuple[int, int]]
            Undirected edges as (src, dst) pairs, each listed once
        """
        if int(n_vertices) != n_vertices or n_vertices < 1:
            raise DomainError(
                f"Graph needs a positive number of vertices, got {n_vertices}"
            )
        self.n_vertices = int(n_vertices)

        edge_array = np.asarray(list(edges), dtype=np.int64).reshape(-1, 2)

        if edge_array.size > 0:
            if edge_array.min() < 0 or edge_array.max() >= self.n_vertices:
                raise DomainError(
                    f"Edge endpoints must lie in [0, {self.n_vertices}), "
                    f"got range [{edge_array.min()}, {edge_array.max()}]"
                )
            loops = edge_array[:, 0] == edge_array[:, 1]
            if np.any(loops):
                raise DomainError(
                    f"Self-loops are not allowed in a simple graph: "
                    f"vertex {edge_array[loops][0, 0]}"
                )
            undirected = np.sort(edge_array, axis=1)
            if len(np.unique(undirected, axis=0)) != len(undirected):
                raise DomainError("Each undirected edge must be listed only once")

        self._edges = edge_array

    @classmethod
    def from_adjacency(cls, adjacency) -> "Graph":
        """
        Build a graph from a symmetric adjacency matrix.

        Edges are read from the strict upper triangle in row-major order.

        :param adjacency: Dense array or scipy sparse matrix of shape (n, n)
        :return: Graph with one edge per nonzero upper-triangular entry
        """
        A = sparse.csr_matrix(adjacency)
        A.eliminate_zeros()
        if A.shape[0] != A.shape[1]:
            raise DomainError(f"Adjacency must be square, got shape {A.shape}")
        if (A != A.T).nnz > 0:
            raise DomainError("Adjacency must be symmetric for an undirected graph")

        upper = sparse.triu(A, k=1).tocoo()
        order = np.lexsort((upper.col, upper.row))
        edges = np.column_stack([upper.row[order], upper.col[order]])
        return cls(A.shape[0], edges)

    @property
    def element_count(self) -> int:
        return self.n_vertices

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    def __len__(self) -> int:
        return self.n_vertices

    def edges(self) -> Iterator[Tuple[int, int]]:
        """Iterate over (src, dst) pairs in insertion order."""
        for src, dst in self._edges:
            yield int(src), int(dst)

    def edge_array(self) -> np.ndarray:
        """Edges as an (edge_count, 2) integer array, in insertion order."""
        return self._edges.copy()

    def adjacency(self) -> sparse.csr_matrix:
        """Symmetric 0/1 adjacency matrix."""
        n = self.n_vertices
        src, dst = self._edges[:, 0], self._edges[:, 1]
        data = np.ones(2 * len(src))
        A = sparse.coo_matrix(
            (data, (np.concatenate([src, dst]), np.concatenate([dst, src]))),
            shape=(n, n)
        )
        return A.tocsr()

    def connected_components(self) -> Tuple[int, np.ndarray]:
        """
        Label connected components.

        :return: (n_components, labels) with one label per vertex
        """
        n_components, labels = csgraph.connected_components(self.adjacency(), directed=False)
        return n_components, labels

    def __repr__(self) -> str:
        return f"Graph(n_vertices={self.n_vertices}, n_edges={self.edge_count})"
