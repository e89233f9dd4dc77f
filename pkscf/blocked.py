from __future__ import annotations

"""Symmetry-blocked dense matrices and vectors.

A :class:`BlockedMatrix` holds one square ``float64`` block per irrep. The
block shapes are fixed at construction: operations overwrite block contents
in place or return new objects, they never reshape a block. Indexing is
always *within* a block (``A.get(h, i, j)``); there is no cross-block access.
"""

from typing import Iterator, Sequence

import numpy as np

from .basis import SOBasis
from .errors import NumericalInstability

_SYMMETRY_TOL = 1e-10


def _dims_of(dims: Sequence[int]) -> tuple[int, ...]:
    out = tuple(int(d) for d in dims)
    if any(d < 0 for d in out):
        raise ValueError(f"block dimensions must be >= 0, got {out}")
    return out


class BlockedVector:
    """One 1-D ``float64`` block per irrep (e.g. orbital energies)."""

    def __init__(self, dims: Sequence[int], *, name: str = ""):
        self._dims = _dims_of(dims)
        self._blocks = [np.zeros((d,), dtype=np.float64) for d in self._dims]
        self.name = str(name)

    @classmethod
    def zeros(cls, dims: Sequence[int], *, name: str = "") -> "BlockedVector":
        return cls(dims, name=name)

    @classmethod
    def from_blocks(cls, blocks, *, name: str = "") -> "BlockedVector":
        arrs = [np.asarray(b, dtype=np.float64).ravel() for b in blocks]
        out = cls([a.shape[0] for a in arrs], name=name)
        for h, a in enumerate(arrs):
            out._blocks[h][:] = a
        return out

    @property
    def dims(self) -> tuple[int, ...]:
        return self._dims

    @property
    def nirrep(self) -> int:
        return len(self._dims)

    def __getitem__(self, h: int) -> np.ndarray:
        return self._blocks[h]

    def __len__(self) -> int:
        return len(self._dims)

    def get(self, h: int, i: int) -> float:
        return float(self._blocks[h][i])

    def set(self, h: int, i: int, value: float) -> None:
        self._blocks[h][i] = float(value)

    def copy(self) -> "BlockedVector":
        return BlockedVector.from_blocks(self._blocks, name=self.name)

    def to_array(self) -> np.ndarray:
        """All entries concatenated in irrep order."""

        if not self._blocks:
            return np.zeros((0,), dtype=np.float64)
        return np.concatenate(self._blocks)

    def irrep_array(self) -> np.ndarray:
        """Irrep label of each entry of :meth:`to_array`."""

        return np.repeat(np.arange(self.nirrep, dtype=np.int64), self._dims)

    def pairs(self) -> Iterator[tuple[float, int]]:
        for h, blk in enumerate(self._blocks):
            for v in blk:
                yield float(v), h

    def __repr__(self) -> str:
        return f"BlockedVector(name={self.name!r}, dims={self._dims})"


class BlockedMatrix:
    """Block-diagonal matrix with one square block per irrep."""

    def __init__(self, dims: Sequence[int], *, name: str = ""):
        self._dims = _dims_of(dims)
        self._blocks = [np.zeros((d, d), dtype=np.float64) for d in self._dims]
        self.name = str(name)

    # ---- construction ---------------------------------------------------

    @classmethod
    def zeros(cls, dims: Sequence[int], *, name: str = "") -> "BlockedMatrix":
        return cls(dims, name=name)

    @classmethod
    def identity(cls, dims: Sequence[int], *, name: str = "") -> "BlockedMatrix":
        out = cls(dims, name=name)
        for blk in out._blocks:
            np.fill_diagonal(blk, 1.0)
        return out

    @classmethod
    def from_blocks(cls, blocks, *, name: str = "") -> "BlockedMatrix":
        arrs = [np.asarray(b, dtype=np.float64) for b in blocks]
        for a in arrs:
            if a.ndim != 2 or a.shape[0] != a.shape[1]:
                raise ValueError(f"blocks must be square 2D arrays, got shape {a.shape}")
        out = cls([a.shape[0] for a in arrs], name=name)
        for h, a in enumerate(arrs):
            out._blocks[h][:, :] = a
        return out

    @classmethod
    def from_dense(cls, A, basis: SOBasis, *, name: str = "") -> "BlockedMatrix":
        """Pick the irrep blocks out of an SO-indexed ``(nso, nso)`` matrix."""

        A = np.asarray(A, dtype=np.float64)
        if A.shape != (basis.nso, basis.nso):
            raise ValueError(f"A must have shape ({basis.nso}, {basis.nso}), got {A.shape}")
        out = cls(basis.dims, name=name)
        for h in range(basis.nirrep):
            idx = basis.irrep_so(h)
            out._blocks[h][:, :] = A[np.ix_(idx, idx)]
        return out

    def to_dense(self, basis: SOBasis) -> np.ndarray:
        """Scatter the blocks into an SO-indexed ``(nso, nso)`` matrix."""

        self._check_dims(basis.dims)
        out = np.zeros((basis.nso, basis.nso), dtype=np.float64)
        for h in range(self.nirrep):
            idx = basis.irrep_so(h)
            out[np.ix_(idx, idx)] = self._blocks[h]
        return out

    # ---- shape ------------------------------------------------------------

    @property
    def dims(self) -> tuple[int, ...]:
        return self._dims

    @property
    def nirrep(self) -> int:
        return len(self._dims)

    def __len__(self) -> int:
        return len(self._dims)

    def __getitem__(self, h: int) -> np.ndarray:
        return self._blocks[h]

    def blocks(self) -> list[np.ndarray]:
        return list(self._blocks)

    def _check_dims(self, dims) -> None:
        dims = tuple(dims)
        if dims != self._dims:
            raise ValueError(f"irrep dimension mismatch: {self._dims} vs {dims}")

    # ---- element access --------------------------------------------------

    def get(self, h: int, i: int, j: int) -> float:
        return float(self._blocks[h][i, j])

    def set(self, h: int, i: int, j: int, value: float) -> None:
        self._blocks[h][i, j] = float(value)

    # ---- in-place algebra ------------------------------------------------

    def zero(self) -> "BlockedMatrix":
        for blk in self._blocks:
            blk.fill(0.0)
        return self

    def copy_from(self, other: "BlockedMatrix") -> "BlockedMatrix":
        self._check_dims(other.dims)
        for h, blk in enumerate(self._blocks):
            blk[:, :] = other[h]
        return self

    def add(self, other: "BlockedMatrix", alpha: float = 1.0) -> "BlockedMatrix":
        self._check_dims(other.dims)
        a = float(alpha)
        for h, blk in enumerate(self._blocks):
            blk += a * other[h]
        return self

    def scale(self, alpha: float) -> "BlockedMatrix":
        a = float(alpha)
        for blk in self._blocks:
            blk *= a
        return self

    def symmetrize(self) -> "BlockedMatrix":
        for blk in self._blocks:
            blk[:, :] = 0.5 * (blk + blk.T)
        return self

    # ---- out-of-place algebra --------------------------------------------

    def copy(self, *, name: str | None = None) -> "BlockedMatrix":
        out = BlockedMatrix(self._dims, name=self.name if name is None else name)
        return out.copy_from(self)

    def transpose(self) -> "BlockedMatrix":
        return BlockedMatrix.from_blocks([blk.T for blk in self._blocks], name=self.name)

    def __matmul__(self, other: "BlockedMatrix") -> "BlockedMatrix":
        self._check_dims(other.dims)
        return BlockedMatrix.from_blocks([a @ b for a, b in zip(self._blocks, other.blocks())])

    def transform(self, X: "BlockedMatrix") -> "BlockedMatrix":
        """Return ``Xᵗ·A·X`` blockwise."""

        self._check_dims(X.dims)
        return BlockedMatrix.from_blocks([x.T @ a @ x for a, x in zip(self._blocks, X.blocks())])

    def back_transform(self, X: "BlockedMatrix") -> "BlockedMatrix":
        """Return ``X·A·Xᵗ`` blockwise."""

        self._check_dims(X.dims)
        return BlockedMatrix.from_blocks([x @ a @ x.T for a, x in zip(self._blocks, X.blocks())])

    def vector_dot(self, other: "BlockedMatrix") -> float:
        """Trace inner product ``Σ_h Σ_ij A[h]ij·B[h]ij``."""

        self._check_dims(other.dims)
        return float(sum(float(np.vdot(a, b)) for a, b in zip(self._blocks, other.blocks())))

    def rms_diff(self, other: "BlockedMatrix") -> float:
        self._check_dims(other.dims)
        n = sum(d * d for d in self._dims)
        if n == 0:
            return 0.0
        ss = sum(float(np.sum((a - b) ** 2)) for a, b in zip(self._blocks, other.blocks()))
        return float(np.sqrt(ss / n))

    def max_abs(self) -> float:
        return max((float(np.max(np.abs(b))) for b in self._blocks if b.size), default=0.0)

    def diagonalize(self) -> tuple["BlockedMatrix", BlockedVector]:
        """Symmetric eigendecomposition; eigenvalues ascend within each irrep."""

        evecs = BlockedMatrix(self._dims, name=f"{self.name} eigenvectors" if self.name else "")
        evals = BlockedVector(self._dims, name=f"{self.name} eigenvalues" if self.name else "")
        for h, blk in enumerate(self._blocks):
            if blk.size == 0:
                continue
            asym = float(np.max(np.abs(blk - blk.T)))
            scale = max(1.0, float(np.max(np.abs(blk))))
            if asym > _SYMMETRY_TOL * scale:
                raise NumericalInstability(
                    f"block {h} of {self.name or 'matrix'} is not symmetric (max |A - A^T| = {asym:.3e})"
                )
            if not np.all(np.isfinite(blk)):
                raise NumericalInstability(f"block {h} of {self.name or 'matrix'} has non-finite entries")
            e, v = np.linalg.eigh(0.5 * (blk + blk.T))
            evecs[h][:, :] = v
            evals[h][:] = e
        return evecs, evals

    def __repr__(self) -> str:
        return f"BlockedMatrix(name={self.name!r}, dims={self._dims})"


__all__ = ["BlockedMatrix", "BlockedVector"]
