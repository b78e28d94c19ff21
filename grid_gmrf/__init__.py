"""
GRID_GMRF: Sparse Gaussian Markov random fields on grids and graphs
"""

__version__ = "0.1.0"

# Domains
from .domains import CartesianGrid, Graph

# Difference operators and structure matrices
from .differences import (
    difference,
    classify_cells,
    neighbor_pairs,
    StencilKind,
    CellStencils,
)
from .structure import (
    structure_matrix,
    structure_from_difference,
    laplacian,
    is_symmetric,
    structure_diagnostics,
)

# Distributions
from .cholesky import CholeskyFactor, factorize
from .distribution import AbstractGMRF, GMRF

# Exceptions
from .exceptions import (
    GmrfError,
    DomainError,
    UnsupportedConfigurationError,
    DimensionMismatchError,
    NotPositiveDefiniteError,
)

__all__ = [
    # Domains
    'CartesianGrid',
    'Graph',

    # Operators
    'difference',
    'classify_cells',
    'neighbor_pairs',
    'StencilKind',
    'CellStencils',
    'structure_matrix',
    'structure_from_difference',
    'laplacian',
    'is_symmetric',
    'structure_diagnostics',

    # Distributions
    'CholeskyFactor',
    'factorize',
    'AbstractGMRF',
    'GMRF',

    # Exceptions
    'GmrfError',
    'DomainError',
    'UnsupportedConfigurationError',
    'DimensionMismatchError',
    'NotPositiveDefiniteError',
]
