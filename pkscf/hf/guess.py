from __future__ import annotations

"""Orthogonalizers and starting orbitals."""

import logging

import numpy as np

from pkscf.blocked import BlockedMatrix, BlockedVector

logger = logging.getLogger(__name__)


def _sym_powers(S: np.ndarray, *, eps: float = 1e-12) -> tuple[np.ndarray, np.ndarray]:
    S = 0.5 * (S + S.T)
    s, U = np.linalg.eigh(S)
    if np.any(s <= eps):
        raise ValueError("S is not positive definite (small/negative eigenvalues)")
    X = U @ np.diag(s ** (-0.5)) @ U.T
    Y = U @ np.diag(s ** 0.5) @ U.T
    return X, Y


def orthogonalizer(S: BlockedMatrix, *, eps: float = 1e-12) -> tuple[BlockedMatrix, BlockedMatrix]:
    """Return ``(S^{-1/2}, S^{1/2})`` blockwise (symmetric orthogonalization).

    ``X.T @ S @ X = I`` in every irrep.
    """

    X = BlockedMatrix(S.dims, name="S^-1/2")
    Y = BlockedMatrix(S.dims, name="S^1/2")
    for h in range(S.nirrep):
        if S.dims[h] == 0:
            continue
        try:
            x, y = _sym_powers(S[h], eps=eps)
        except ValueError as e:
            raise ValueError(f"irrep {h}: {e}") from e
        X[h][:, :] = x
        Y[h][:, :] = y
    return X, Y


def core_guess(H: BlockedMatrix, X: BlockedMatrix) -> tuple[BlockedMatrix, BlockedVector]:
    """Core-Hamiltonian guess ``C = X · eig(Xᵗ H X)``; returns ``(C, eps)``."""

    Ht = H.transform(X)
    Ht.name = "H (orthonormal basis)"
    Ht.symmetrize()
    U, eps = Ht.diagonalize()
    C = X @ U
    C.name = "C"
    return C, eps


def restart_guess(C0: BlockedMatrix, S: BlockedMatrix) -> BlockedMatrix:
    """Re-orthonormalize restart coefficients against the current ``S``.

    Löwdin: ``C = C0 (C0ᵗ S C0)^{-1/2}``.
    """

    S._check_dims(C0.dims)
    M = S.transform(C0)
    M.symmetrize()
    try:
        Minv, _ = orthogonalizer(M)
    except ValueError as e:
        raise ValueError(f"restart coefficients are linearly dependent: {e}") from e
    C = C0 @ Minv
    C.name = "C"
    dev = M.copy().add(BlockedMatrix.identity(M.dims), -1.0).max_abs()
    if dev > 1e-8:
        logger.info("Restart orbitals re-orthonormalized (max |CᵗSC - 1| = %.3e)", dev)
    return C


__all__ = ["core_guess", "orthogonalizer", "restart_guess"]
