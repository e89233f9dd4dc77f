"""Shared model systems for the SCF tests."""

from __future__ import annotations

import numpy as np
import pytest

from pkscf.basis import SOBasis


def irrep_eri(so_irrep: np.ndarray, rng, *, naux: int = 6, scale: float = 0.05) -> np.ndarray:
    """Positive semidefinite 8-fold symmetric ERIs obeying the D2-type selection rule.

    ``(ij|kl)`` is nonzero only if ``irr(i)^irr(j)^irr(k)^irr(l) == 0``.
    """

    irr = np.asarray(so_irrep, dtype=np.int64)
    n = int(irr.shape[0])
    nirrep = int(irr.max()) + 1 if n else 1
    Bs = []
    for g in range(nirrep):
        mask = (irr[:, None] ^ irr[None, :]) == g
        for _ in range(naux):
            A = rng.normal(size=(n, n))
            Bs.append(scale * 0.5 * (A + A.T) * mask)
    diag = np.zeros((n, n))
    np.fill_diagonal(diag, 0.3)
    Bs.append(diag)
    B = np.stack(Bs, axis=0)
    return np.einsum("Qpq,Qrs->pqrs", B, B, optimize=True)


def model_system(dims=(3, 1, 2, 2), seed: int = 7):
    """Small symmetry-blocked system: ``(basis, S, H, eri)`` with dense SO-indexed arrays."""

    rng = np.random.default_rng(seed)
    basis = SOBasis.from_dims(dims, labels=("a1", "a2", "b1", "b2")[: len(dims)])
    irr = basis.so_irrep
    n = basis.nso
    same = irr[:, None] == irr[None, :]

    levels = np.linspace(-4.0, 1.0, n)
    rng.shuffle(levels)
    A = rng.normal(size=(n, n))
    H = np.diag(levels) + 0.05 * 0.5 * (A + A.T) * same
    A = rng.normal(size=(n, n))
    S = np.eye(n) + 0.03 * 0.5 * (A + A.T) * same
    np.fill_diagonal(S, 1.0)
    eri = irrep_eri(irr, rng)
    return basis, S, H, eri


def shuffled(basis: SOBasis, perm: np.ndarray) -> SOBasis:
    """Same irreps with SO ``perm[g]`` relabelled as global index ``g``."""

    return SOBasis(
        dims=basis.dims,
        so_irrep=basis.so_irrep[perm],
        so_local=basis.so_local[perm],
        irrep_labels=basis.irrep_labels,
    )


@pytest.fixture
def model():
    return model_system()


@pytest.fixture
def hand_system():
    """Two irreps of one SO each; the only integral is ``(11|00) = 0.5``."""

    basis = SOBasis.from_dims((1, 1))
    S = np.eye(2)
    H = np.diag([-2.0, -1.0])
    records = [(1, 1, 0, 0, 0.5)]
    return basis, S, H, records
