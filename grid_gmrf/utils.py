"""
Utility functions for working with sparse GMRF matrices
"""

import numpy as np
from scipy import sparse


def tidy_csr(matrix) -> sparse.csr_matrix:
    """
    Convert a sparse matrix to canonical float64 CSR form.

    Duplicate entries are summed, explicitly stored zeros are dropped and
    column indices are sorted, so two matrices with equal entries also have
    equal storage.

    :param matrix: Any scipy sparse matrix (or dense array)
    :returns: Canonical csr_matrix
    """
    matrix = sparse.csr_matrix(matrix, dtype=np.float64, copy=True)
    matrix.sum_duplicates()
    matrix.eliminate_zeros()
    matrix.sort_indices()
    return matrix
