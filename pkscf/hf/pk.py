from __future__ import annotations

"""PK / K supermatrix construction.

The supermatrices are indexed by packed same-irrep orbital pairs
``P = offset[h] + p*(p+1)/2 + q`` (``p >= q`` local indices of irrep ``h``)
and stored as lower triangles, ``INDEX2(P, Q)`` with ``P >= Q``. After the
build

    PK[pq,rs] = (pq|rs) - 1/4 [(pr|qs) + (ps|qr)]
    K[pq,rs]  =         - 1/4 [(pr|qs) + (ps|qr)]

for ``pq != rs``; diagonal entries are stored at half weight so that the
symmetric triangular sweep in :mod:`pkscf.hf.fock` counts them once.
"""

from dataclasses import dataclass
import logging
import time
from typing import Iterable

import numpy as np

from pkscf.basis import SOBasis, npair
from pkscf.errors import ResourceExhausted
from pkscf.integrals.stream import DEFAULT_CHUNK_SIZE, iter_chunks

logger = logging.getLogger(__name__)


def _index2(a, b):
    hi = np.maximum(a, b)
    lo = np.minimum(a, b)
    return hi * (hi + 1) // 2 + lo


def estimate_pk_nbytes(dims) -> int:
    """Bytes needed to hold both PK and K in core."""

    npairs = int(sum(npair(d) for d in dims))
    return int(2 * npair(npairs) * np.dtype(np.float64).itemsize)


@dataclass(frozen=True)
class PKSupermatrix:
    """Packed PK and K buffers plus the pair offset table (read-only)."""

    pk: np.ndarray
    k: np.ndarray
    npairs: int
    pair_offsets: np.ndarray
    dims: tuple[int, ...]
    nintegrals: int = 0

    @property
    def size(self) -> int:
        return int(self.pk.shape[0])

    @property
    def nbytes(self) -> int:
        return int(self.pk.nbytes + self.k.nbytes)

    def unpack(self) -> tuple[np.ndarray, np.ndarray]:
        """Dense symmetric ``(npairs, npairs)`` PK and K.

        Diagonal entries come out at full weight, i.e. ``unpack()[0] @ d``
        equals the triangular sweep over the packed buffer.
        """

        n = int(self.npairs)
        rows, cols = np.tril_indices(n)
        out = []
        for buf in (self.pk, self.k):
            M = np.zeros((n, n), dtype=np.float64)
            M[rows, cols] = buf
            out.append(M + M.T)
        return out[0], out[1]


def build_pk(
    stream: Iterable,
    basis: SOBasis,
    *,
    memory_budget_bytes: int | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    profile: dict | None = None,
) -> PKSupermatrix:
    """Consume an integral stream once and build the PK/K supermatrices.

    Raises :class:`ResourceExhausted` before allocating anything when the two
    buffers would exceed ``memory_budget_bytes``.
    """

    npairs = int(basis.npairs)
    size = npair(npairs)
    nbytes = estimate_pk_nbytes(basis.dims)
    if memory_budget_bytes is not None and nbytes > int(memory_budget_bytes):
        logger.warning(
            "Insufficient memory for in-core PK: would need %d doubles (%.5f MiB)",
            2 * size,
            nbytes / 1048576.0,
        )
        raise ResourceExhausted(nbytes, int(memory_budget_bytes))

    t0 = time.perf_counter()
    pk = np.zeros((size,), dtype=np.float64)
    kx = np.zeros((size,), dtype=np.float64)
    logger.info("Allocated %d elements (%d pairs) for PK and K (%.5f MiB)", size, npairs, nbytes / 1048576.0)

    so_irrep = basis.so_irrep
    so_local = basis.so_local
    offsets = basis.pair_offsets
    nso = int(basis.nso)

    nread = 0
    nused = 0
    for chunk in iter_chunks(stream, chunk_size=chunk_size):
        if len(chunk) == 0:
            continue
        i, j, k, l, v = chunk.i, chunk.j, chunk.k, chunk.l, chunk.values
        lo = min(int(i.min()), int(j.min()), int(k.min()), int(l.min()))
        hi = max(int(i.max()), int(j.max()), int(k.max()), int(l.max()))
        if lo < 0 or hi >= nso:
            raise ValueError(f"integral label out of range [0, {nso}): saw [{lo}, {hi}]")
        nread += len(chunk)

        si, sj, sk, sl = so_irrep[i], so_irrep[j], so_irrep[k], so_irrep[l]
        li, lj, lk, ll = so_local[i], so_local[j], so_local[k], so_local[l]
        touched = np.zeros(v.shape, dtype=bool)

        # J: (ij|kl)
        m = (si == sj) & (sk == sl)
        if np.any(m):
            bra = _index2(li[m], lj[m]) + offsets[si[m]]
            ket = _index2(lk[m], ll[m]) + offsets[sk[m]]
            np.add.at(pk, _index2(bra, ket), v[m])
            touched |= m

        # K/2, first pairing: (ik|jl)
        m = (si == sk) & (sj == sl)
        if np.any(m):
            bra = _index2(li[m], lk[m]) + offsets[si[m]]
            ket = _index2(lj[m], ll[m]) + offsets[sj[m]]
            w = np.where((i[m] == k[m]) | (j[m] == l[m]), 0.5, 0.25)
            idx = _index2(bra, ket)
            np.add.at(pk, idx, -w * v[m])
            np.add.at(kx, idx, -w * v[m])
            touched |= m

        # K/2, second pairing: (il|jk); coincides with the first when i==j or k==l
        m = (si == sl) & (sj == sk) & (i != j) & (k != l)
        if np.any(m):
            bra = _index2(li[m], ll[m]) + offsets[si[m]]
            ket = _index2(lj[m], lk[m]) + offsets[sj[m]]
            w = np.where((i[m] == l[m]) | (j[m] == k[m]), 0.5, 0.25)
            idx = _index2(bra, ket)
            np.add.at(pk, idx, -w * v[m])
            np.add.at(kx, idx, -w * v[m])
            touched |= m

        nused += int(np.count_nonzero(touched))

    diag = _index2(np.arange(npairs, dtype=np.int64), np.arange(npairs, dtype=np.int64))
    pk[diag] *= 0.5
    kx[diag] *= 0.5

    pk.setflags(write=False)
    kx.setflags(write=False)
    offsets = offsets.copy()
    offsets.setflags(write=False)

    logger.info("Processed %d two-electron integrals (%d symmetry-allowed)", nread, nused)
    if profile is not None:
        prof = profile.setdefault("pk", {})
        prof["build_ms"] = float(prof.get("build_ms", 0.0)) + (time.perf_counter() - t0) * 1000.0
        prof["nintegrals"] = int(nread)
        prof["nbytes"] = int(nbytes)

    return PKSupermatrix(
        pk=pk,
        k=kx,
        npairs=npairs,
        pair_offsets=offsets,
        dims=tuple(basis.dims),
        nintegrals=int(nread),
    )


__all__ = ["PKSupermatrix", "build_pk", "estimate_pk_nbytes"]
