"""
Sparse Cholesky factorization of structure matrices.

A symmetric positive definite S is reordered with a fill-reducing symmetric
permutation P (reverse Cuthill-McKee) and factorized as

    P S P^T = U^T U

with U sparse upper triangular. The factor is obtained from SuperLU without
pivoting: for an SPD matrix the LU factor satisfies U_lu = D U with D the
positive pivots, so U = D^(-1/2) U_lu.
"""

import numpy as np
from scipy import sparse
from scipy.sparse.csgraph import reverse_cuthill_mckee
from scipy.sparse.linalg import splu, spsolve_triangular
from dataclasses import dataclass
from typing import Literal

from grid_gmrf.exceptions import (
    DimensionMismatchError,
    NotPositiveDefiniteError,
    UnsupportedConfigurationError,
)
from grid_gmrf.structure import is_symmetric
from grid_gmrf.utils import tidy_csr

Ordering = Literal["rcm", "natural"]

# pivots below n * eps * max|pivot| count as zero
PIVOT_RTOL = np.finfo(np.float64).eps


@dataclass(frozen=True)
class CholeskyFactor:
    """
    Sparse Cholesky factor with P S P^T = U^T U.

    Attributes
    ----------
    U : sparse.csr_matrix
        Upper triangular factor with positive diagonal
    perm : np.ndarray
        Symmetric permutation, the factorized matrix is S[perm][:, perm]
    """
    U: sparse.csr_matrix
    perm: np.ndarray

    @property
    def n(self) -> int:
        return self.U.shape[0]

    def solve_upper(self, b: np.ndarray) -> np.ndarray:
        """Solve U y = b by back-substitution, b of shape (n,) or (n, k)."""
        return solve_upper(self.U, b)

    def log_diag_sum(self) -> float:
        """Sum of log U[i, i]."""
        return log_diag_sum(self.U)

    def logdet(self) -> float:
        """log det S = 2 * sum(log U[i, i])."""
        return 2.0 * self.log_diag_sum()

    def permute(self, x: np.ndarray) -> np.ndarray:
        """Map domain-ordered rows of x to factor order."""
        return np.asarray(x)[self.perm]

    def unpermute(self, y: np.ndarray) -> np.ndarray:
        """Map factor-ordered rows of y back to domain order."""
        y = np.asarray(y)
        x = np.empty_like(y)
        x[self.perm] = y
        return x

    def to_matrix(self) -> sparse.csr_matrix:
        """Reassemble S = P^T U^T U P."""
        inverse = np.argsort(self.perm)
        SP = (self.U.T @ self.U).tocsr()
        return tidy_csr(SP[inverse][:, inverse])


def factorize(S: sparse.spmatrix, ordering: Ordering = "rcm") -> CholeskyFactor:
    """
    Sparse Cholesky factorization of a symmetric positive definite matrix.

    Parameters
    ----------
    S : sparse matrix
        Symmetric positive definite n x n matrix
    ordering : {"rcm", "natural"}
        Symmetric fill-reducing ordering applied before factorizing

    Returns
    -------
    CholeskyFactor
        Factor with S[perm][:, perm] = U^T U

    Raises
    ------
    DimensionMismatchError
        If S is not square
    NotPositiveDefiniteError
        If S is not symmetric, is singular or is indefinite
    """
    S = sparse.csr_matrix(S, dtype=np.float64)
    n = S.shape[0]

    if S.shape[0] != S.shape[1]:
        raise DimensionMismatchError(f"Cannot factorize non-square matrix of shape {S.shape}")
    if not is_symmetric(S):
        raise NotPositiveDefiniteError(
            f"Cholesky factorization needs a symmetric matrix; {n}x{n} input is not symmetric"
        )

    if ordering == "rcm":
        perm = np.asarray(reverse_cuthill_mckee(S, symmetric_mode=True), dtype=np.int64)
    elif ordering == "natural":
        perm = np.arange(n)
    else:
        raise UnsupportedConfigurationError(
            f"Unknown ordering '{ordering}'. Use 'rcm' or 'natural'"
        )

    S_perm = S[perm][:, perm].tocsc()

    try:
        lu = splu(
            S_perm,
            permc_spec="NATURAL",
            diag_pivot_thresh=0.0,
            options=dict(SymmetricMode=True)
        )
    except RuntimeError as e:
        raise NotPositiveDefiniteError(
            f"Cholesky factorization of {n}x{n} structure matrix failed: {e}"
        ) from e

    # SuperLU may still apply a symmetric reordering of its own
    if not np.array_equal(lu.perm_r, lu.perm_c):
        raise NotPositiveDefiniteError(
            f"Cholesky factorization of {n}x{n} structure matrix needed off-diagonal "
            "pivoting; the matrix is not positive definite"
        )
    inner = np.argsort(lu.perm_c)
    perm = perm[inner]

    pivots = lu.U.diagonal()
    threshold = n * PIVOT_RTOL * np.max(np.abs(pivots))
    bad = np.flatnonzero(pivots <= threshold)
    if len(bad) > 0:
        raise NotPositiveDefiniteError(
            f"Cholesky factorization of {n}x{n} structure matrix failed: "
            f"pivot {pivots[bad[0]]:.3e} at position {bad[0]} is not positive "
            f"({len(bad)} non-positive pivots)"
        )

    U = sparse.diags(1.0 / np.sqrt(pivots)) @ lu.U
    return CholeskyFactor(U=tidy_csr(sparse.triu(U)), perm=perm)


def solve_upper(U: sparse.spmatrix, b: np.ndarray) -> np.ndarray:
    """
    Solve U y = b for upper triangular sparse U.

    :param U: Upper triangular n x n sparse matrix
    :param b: Right-hand side of shape (n,) or (n, k)
    :return: Solution y with the shape of b
    """
    b = np.ascontiguousarray(b, dtype=np.float64)
    if b.shape[0] != U.shape[0]:
        raise DimensionMismatchError(
            f"Right-hand side has {b.shape[0]} rows, factor has {U.shape[0]}"
        )
    return spsolve_triangular(sparse.csr_matrix(U), b, lower=False)


def log_diag_sum(U: sparse.spmatrix) -> float:
    """
    Sum of the logarithms of the diagonal of a triangular factor.

    :param U: Triangular sparse matrix with positive diagonal
    :return: sum(log U[i, i])
    """
    return float(np.sum(np.log(U.diagonal())))
