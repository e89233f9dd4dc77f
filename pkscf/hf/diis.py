from __future__ import annotations

"""Pulay DIIS over symmetry-blocked Fock matrices."""

import logging
import warnings

import numpy as np
import scipy.linalg

from pkscf.blocked import BlockedMatrix

logger = logging.getLogger(__name__)


def _flatten(A: BlockedMatrix) -> np.ndarray:
    blocks = [np.ravel(b) for b in A.blocks() if b.size]
    if not blocks:
        return np.zeros((0,), dtype=np.float64)
    return np.concatenate(blocks)


class DIIS:
    """Bounded FIFO of ``(F, error)`` pairs.

    When more than ``max_vec`` pairs are pushed the oldest is dropped.
    """

    def __init__(self, max_vec: int = 8):
        self.max_vec = int(max_vec)
        if self.max_vec < 1:
            raise ValueError("max_vec must be >= 1")
        self._F: list[BlockedMatrix] = []
        self._e: list[BlockedMatrix] = []

    def __len__(self) -> int:
        return len(self._F)

    def reset(self) -> None:
        self._F.clear()
        self._e.clear()

    def push(self, F: BlockedMatrix, e: BlockedMatrix) -> None:
        F._check_dims(e.dims)
        if self._F:
            self._F[-1]._check_dims(F.dims)
        self._F.append(F.copy())
        self._e.append(e.copy())
        if len(self._F) > self.max_vec:
            self._F.pop(0)
            self._e.pop(0)

    def coefficients(self) -> np.ndarray | None:
        """Solve the bordered B system; ``None`` when it is singular or ill-posed."""

        n = len(self._F)
        if n < 2:
            return None

        # G[i,j] = <e_i | e_j>
        E = np.stack([_flatten(e) for e in self._e], axis=0)
        G = E @ E.T

        B = np.empty((n + 1, n + 1), dtype=np.float64)
        B[:n, :n] = G
        B[:n, n] = -1.0
        B[n, :n] = -1.0
        B[n, n] = 0.0

        rhs = np.zeros((n + 1,), dtype=np.float64)
        rhs[n] = -1.0
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("error", scipy.linalg.LinAlgWarning)
                coeff = scipy.linalg.solve(B, rhs)[:n]
        except (np.linalg.LinAlgError, scipy.linalg.LinAlgWarning) as exc:
            logger.debug("DIIS subspace of %d vectors is singular: %s", n, exc)
            return None
        if not np.all(np.isfinite(coeff)):
            logger.debug("DIIS coefficients are not finite; skipping extrapolation")
            return None
        return coeff

    def extrapolate(self) -> BlockedMatrix | None:
        coeff = self.coefficients()
        if coeff is None:
            return None
        out = BlockedMatrix(self._F[-1].dims, name="F (DIIS)")
        for c, F in zip(coeff, self._F):
            out.add(F, float(c))
        return out


def rohf_gradient(Feff: BlockedMatrix, doccpi, soccpi) -> BlockedMatrix:
    """Off-diagonal closed/open/virtual blocks of ``Feff`` (MO basis).

    Vanishes at ROHF convergence.
    """

    grad = Feff.copy(name="orbital gradient")
    for h in range(grad.nirrep):
        n = grad.dims[h]
        if n == 0:
            continue
        d = int(doccpi[h])
        s = int(soccpi[h])
        blk = grad[h]
        for lo, hi in ((0, d), (d, d + s), (d + s, n)):
            blk[lo:hi, lo:hi] = 0.0
    return grad


__all__ = ["DIIS", "rohf_gradient"]
