from __future__ import annotations

"""Symmetry-orbital (SO) bookkeeping.

Every SO has a global index in ``[0, nso)`` and a ``(irrep, local index)``
label. The tables here are precomputed once by the caller (or built with
:meth:`SOBasis.from_dims` for the usual irrep-ordered layout) and shared
read-only by the integral, PK and matrix layers.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np


def npair(n: int) -> int:
    n = int(n)
    return n * (n + 1) // 2


@dataclass(frozen=True)
class SOBasis:
    dims: tuple[int, ...]
    so_irrep: np.ndarray
    so_local: np.ndarray
    irrep_labels: tuple[str, ...]

    def __post_init__(self):
        dims = tuple(int(d) for d in self.dims)
        if len(dims) == 0:
            raise ValueError("dims must contain at least one irrep")
        if any(d < 0 for d in dims):
            raise ValueError(f"dims must be >= 0, got {dims}")
        so_irrep = np.asarray(self.so_irrep, dtype=np.int64).ravel()
        so_local = np.asarray(self.so_local, dtype=np.int64).ravel()
        nso = int(sum(dims))
        if so_irrep.shape != (nso,) or so_local.shape != (nso,):
            raise ValueError(f"so_irrep/so_local must have shape ({nso},)")
        if nso and (so_irrep.min() < 0 or so_irrep.max() >= len(dims)):
            raise ValueError("so_irrep entries out of range")
        dims_arr = np.asarray(dims, dtype=np.int64)
        if nso and (np.any(so_local < 0) or np.any(so_local >= dims_arr[so_irrep])):
            raise ValueError("so_local entries out of range for their irrep")
        seen = so_irrep * max(1, max(dims)) + so_local
        if np.unique(seen).size != nso:
            raise ValueError("(irrep, local index) labels must be unique")

        labels = tuple(str(x) for x in self.irrep_labels) if self.irrep_labels else ()
        if not labels:
            labels = tuple(f"h{h}" for h in range(len(dims)))
        if len(labels) != len(dims):
            raise ValueError("irrep_labels must have one entry per irrep")

        so_irrep.setflags(write=False)
        so_local.setflags(write=False)
        object.__setattr__(self, "dims", dims)
        object.__setattr__(self, "so_irrep", so_irrep)
        object.__setattr__(self, "so_local", so_local)
        object.__setattr__(self, "irrep_labels", labels)

    @classmethod
    def from_dims(cls, dims: Sequence[int], labels: Sequence[str] | None = None) -> "SOBasis":
        """Irrep-ordered layout: all SOs of irrep 0 first, then irrep 1, ..."""

        dims = tuple(int(d) for d in dims)
        so_irrep = np.repeat(np.arange(len(dims), dtype=np.int64), dims)
        so_local = np.concatenate([np.arange(d, dtype=np.int64) for d in dims]) if dims else np.zeros(0, np.int64)
        return cls(dims=dims, so_irrep=so_irrep, so_local=so_local, irrep_labels=tuple(labels or ()))

    @property
    def nirrep(self) -> int:
        return len(self.dims)

    @property
    def nso(self) -> int:
        return int(sum(self.dims))

    @property
    def pair_offsets(self) -> np.ndarray:
        """Start of each irrep's ``p >= q`` pair range in the packed pair space."""

        sizes = np.asarray([npair(d) for d in self.dims], dtype=np.int64)
        return np.concatenate(([0], np.cumsum(sizes)[:-1])).astype(np.int64)

    @property
    def npairs(self) -> int:
        return int(sum(npair(d) for d in self.dims))

    def irrep_so(self, h: int) -> np.ndarray:
        """Global SO indices of irrep ``h`` ordered by local index."""

        sel = np.nonzero(self.so_irrep == int(h))[0]
        return sel[np.argsort(self.so_local[sel], kind="stable")]


__all__ = ["SOBasis", "npair"]
