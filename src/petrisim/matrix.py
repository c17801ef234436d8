"""Sparse correspondence and stoichiometry matrices."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
from scipy import sparse


def correspondence_matrix(subset_indices: Sequence[int], size: int) -> sparse.csr_matrix:
    """0/1 selector of shape ``(size, len(subset))``.

    ``M @ v_subset`` scatters a subset vector into all-places space and
    ``M.T @ v_all`` gathers the subset back.
    """
    cols = np.arange(len(subset_indices))
    rows = np.asarray(subset_indices, dtype=int)
    data = np.ones(len(subset_indices), dtype=float)
    return sparse.csr_matrix((data, (rows, cols)), shape=(size, len(subset_indices)))


def stoichiometry_vector(
    codomain_indices: Sequence[int], coefficients: Sequence[float], size: int
) -> sparse.csc_matrix:
    """Sparse column holding ``coefficients`` at the codomain rows."""
    rows = np.asarray(codomain_indices, dtype=int)
    cols = np.zeros(len(codomain_indices), dtype=int)
    data = np.asarray(coefficients, dtype=float)
    return sparse.csc_matrix((data, (rows, cols)), shape=(size, 1))


def stoichiometry_matrix(
    columns: Sequence[sparse.spmatrix],
    size: int,
    selector: Optional[sparse.spmatrix] = None,
) -> sparse.csr_matrix:
    """Stack per-transition columns; ``selector`` restricts the rows to a subset."""
    if columns:
        matrix = sparse.hstack(list(columns), format="csr")
    else:
        matrix = sparse.csr_matrix((size, 0), dtype=float)
    if selector is not None:
        matrix = sparse.csr_matrix(selector.T @ matrix)
    return matrix


__all__ = ["correspondence_matrix", "stoichiometry_matrix", "stoichiometry_vector"]
