"""
Gaussian Markov random fields with precision Q = kappa * S.

AbstractGMRF defines the capability interface (scale and structure) and
implements sampling and log-density once on top of it; GMRF is the standard
zero-mean variant built from a scale and a structure matrix.
"""

import numpy as np
from scipy import sparse
from abc import ABC, abstractmethod
from typing import Optional, Union
import threading

from grid_gmrf.cholesky import CholeskyFactor, Ordering, factorize
from grid_gmrf.differences import Domain
from grid_gmrf.exceptions import DimensionMismatchError, NotPositiveDefiniteError
from grid_gmrf.structure import AssemblyMethod, structure_matrix
from grid_gmrf.utils import tidy_csr

RandomState = Optional[Union[np.random.Generator, int]]


class AbstractGMRF(ABC):
    """
    Zero-mean GMRF with precision matrix Q = kappa * S.

    Subclasses provide `scale` (kappa) and `structure` (S); dimension,
    precision, sampling and log-density are derived from those two.
    The Cholesky factor of S is computed on first use and then shared
    read-only, so one instance can be used from several threads.
    """

    ordering: Ordering = "rcm"

    def __init__(self):
        self._factor = None
        self._factor_lock = threading.Lock()

    @property
    @abstractmethod
    def scale(self) -> float:
        """Scale parameter kappa > 0."""

    @property
    @abstractmethod
    def structure(self) -> sparse.csr_matrix:
        """Structure matrix S."""

    @property
    def dimension(self) -> int:
        return self.structure.shape[0]

    def __len__(self) -> int:
        return self.dimension

    def precision(self) -> sparse.csr_matrix:
        """Precision matrix Q = kappa * S."""
        return self.scale * self.structure

    def cholesky(self) -> CholeskyFactor:
        """Cholesky factor of the structure matrix, computed once."""
        if self._factor is None:
            with self._factor_lock:
                if self._factor is None:
                    self._factor = factorize(self.structure, ordering=self.ordering)
        return self._factor

    def sample(
        self,
        rng: RandomState = None,
        size: Optional[int] = None,
        out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Draw samples from the field.

        With S[perm][:, perm] = U^T U and z ~ N(0, I), y = U^(-1) z has
        covariance S^(-1) in factor order; undoing the permutation and
        dividing by sqrt(kappa) gives a draw from N(0, (kappa S)^(-1)).

        Parameters
        ----------
        rng : np.random.Generator, int or None
            Random generator or seed for np.random.default_rng
        size : int, optional
            Number of independent draws. If None a single vector is returned
        out : np.ndarray, optional
            Buffer of shape (n,) or (m, n) to fill instead of allocating

        Returns
        -------
        np.ndarray
            Shape (n,) for a single draw, (size, n) otherwise, one draw per row
        """
        n = self.dimension

        if out is not None:
            if out.ndim not in (1, 2) or out.shape[-1] != n:
                raise DimensionMismatchError(
                    f"Sample buffer of shape {out.shape} does not match dimension {n}"
                )
            shape = out.shape
        elif size is None:
            shape = (n,)
        else:
            shape = (int(size), n)

        rng = np.random.default_rng(rng)
        factor = self.cholesky()

        z = rng.standard_normal(shape)
        y = factor.solve_upper(z.T)
        x = (factor.unpermute(y) / np.sqrt(self.scale)).T

        if out is not None:
            out[...] = x
            return out
        return x

    def logpdf(self, x: np.ndarray) -> Union[float, np.ndarray]:
        """
        Log-density of the field.

        log p(x) = -n/2 log(2 pi) + 1/2 (n log kappa + log det S)
                   - kappa/2 x^T S x

        log det S comes from the Cholesky factor, which is shared by all
        vectors of a batch.

        Parameters
        ----------
        x : np.ndarray
            One vector of shape (n,) or a batch of shape (m, n)

        Returns
        -------
        float or np.ndarray
            Log-density, shape (m,) for a batch
        """
        x = np.asarray(x, dtype=np.float64)
        n = self.dimension

        if x.ndim not in (1, 2) or x.shape[-1] != n:
            raise DimensionMismatchError(
                f"Expected an array of shape ({n},) or (m, {n}), got {x.shape}"
            )

        factor = self.cholesky()
        kappa = self.scale

        log_norm = -0.5 * n * np.log(2.0 * np.pi)
        log_norm += 0.5 * (n * np.log(kappa) + factor.logdet())

        X = np.atleast_2d(x)
        quad = np.einsum("ij,ij->i", X, (self.structure @ X.T).T)
        lp = log_norm - 0.5 * kappa * quad

        if x.ndim == 1:
            return float(lp[0])
        return lp


class GMRF(AbstractGMRF):
    """
    GMRF defined by a scale and a structure matrix.

    Attributes
    ----------
    scale : float
        Scale parameter kappa > 0
    structure : sparse.csr_matrix
        Symmetric n x n structure matrix S

    Examples
    --------
    >>> grid = CartesianGrid(20, 30)
    >>> S = structure_matrix(grid, order=1) + sparse.identity(600)
    >>> field = GMRF(2.0, S)
    >>> x = field.sample(rng=42)
    >>> field.logpdf(x)
    """

    def __init__(self, scale: float, structure: sparse.spmatrix):
        """
        Parameters
        ----------
        scale : float
            Scale parameter kappa, must be positive and finite
        structure : sparse matrix
            Square structure matrix S; copied
        """
        super().__init__()

        scale = float(scale)
        if not np.isfinite(scale) or scale <= 0:
            raise NotPositiveDefiniteError(
                f"Scale must be positive and finite, got kappa={scale}"
            )

        S = tidy_csr(structure)
        if S.shape[0] != S.shape[1]:
            raise DimensionMismatchError(
                f"Structure matrix must be square, got shape {S.shape}"
            )

        self._scale = scale
        self._structure = S

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def structure(self) -> sparse.csr_matrix:
        # copy, the cached factor belongs to this exact S
        return self._structure.copy()

    @property
    def dimension(self) -> int:
        return self._structure.shape[0]

    @classmethod
    def from_domain(
        cls,
        domain: Domain,
        scale: float = 1.0,
        order: int = 1,
        circular: bool = False,
        ridge: float = 0.0,
        method: AssemblyMethod = "auto",
        verbose: bool = False
    ) -> "GMRF":
        """
        Build a GMRF from the structure matrix of a domain.

        Parameters
        ----------
        domain : CartesianGrid or Graph
            Domain of the field
        scale : float
            Scale parameter kappa
        order : int
            Difference order, 1 or 2
        circular : bool
            Treat a grid as a torus
        ridge : float
            Added to the diagonal of S; a positive ridge makes intrinsic
            structures proper
        method : {"auto", "stencil", "product"}
            Structure assembly route
        verbose : bool
            Print structure matrix diagnostics

        Returns
        -------
        GMRF
        """
        S = structure_matrix(
            domain, order=order, circular=circular, method=method, ridge=ridge, verbose=verbose
        )
        return cls(scale, S)
