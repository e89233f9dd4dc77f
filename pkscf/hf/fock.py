from __future__ import annotations

"""G-matrix and Fock-operator construction for ROHF.

With closed/open densities ``Dc``/``Do`` (one electron per spin in each
occupied orbital) the two-electron parts are

    Gc = 2J[Dc] - K[Dc] + J[Do] - 1/2 K[Do]
    Go = J[Dc] - 1/2 K[Dc] + 1/2 (J[Do] - K[Do])

and the operators are ``Fc = H + Gc``, ``Fo = H/2 + Go``.
"""

from dataclasses import dataclass
import logging
from typing import Iterable

import numpy as np

from pkscf.basis import SOBasis
from pkscf.blocked import BlockedMatrix
from pkscf.errors import AlgorithmNotImplemented

from .pk import PKSupermatrix

logger = logging.getLogger(__name__)


def pack_density(D: BlockedMatrix, pair_offsets) -> np.ndarray:
    """Lower-triangular pair vector of ``D`` with off-diagonal entries doubled."""

    offsets = np.asarray(pair_offsets, dtype=np.int64)
    n_total = int(sum(d * (d + 1) // 2 for d in D.dims))
    out = np.zeros((n_total,), dtype=np.float64)
    for h in range(D.nirrep):
        n = int(D.dims[h])
        if n == 0:
            continue
        p, q = np.tril_indices(n)
        w = np.where(p != q, 2.0, 1.0)
        off = int(offsets[h])
        out[off : off + p.shape[0]] = w * D[h][p, q]
    return out


def unpack_pairs(vec: np.ndarray, dims, pair_offsets, *, factor: float = 1.0, name: str = "") -> BlockedMatrix:
    """Symmetric blocked matrix from a lower-triangular pair vector."""

    offsets = np.asarray(pair_offsets, dtype=np.int64)
    out = BlockedMatrix(dims, name=name)
    for h, n in enumerate(out.dims):
        if n == 0:
            continue
        p, q = np.tril_indices(n)
        off = int(offsets[h])
        vals = float(factor) * vec[off : off + p.shape[0]]
        out[h][p, q] = vals
        out[h][q, p] = vals
    return out


def form_G_from_PK(
    pk: PKSupermatrix,
    Dc: BlockedMatrix,
    Do: BlockedMatrix,
) -> tuple[BlockedMatrix, BlockedMatrix]:
    """Contract closed/open densities with PK and K; returns ``(Gc, Go)``.

    One triangular sweep over pair rows ``pq``: each stored element
    ``PK[pq,rs]`` (``rs <= pq``) updates both the ``pq`` and ``rs``
    accumulators.
    """

    if tuple(Dc.dims) != tuple(pk.dims) or tuple(Do.dims) != tuple(pk.dims):
        raise ValueError(f"density dims {Dc.dims} do not match PK dims {pk.dims}")

    npairs = int(pk.npairs)
    dc = pack_density(Dc, pk.pair_offsets)
    do = pack_density(Do, pk.pair_offsets)
    gc = np.zeros((npairs,), dtype=np.float64)
    go = np.zeros((npairs,), dtype=np.float64)

    # Gc += PK (Dc + Do/2);  Go += PK Dc/2 + (PK + K) Do/4
    dcc = dc + 0.5 * do
    PK = pk.pk
    K = pk.k
    start = 0
    for pq in range(npairs):
        stop = start + pq + 1
        row_pk = PK[start:stop]
        row_pkk = row_pk + K[start:stop]

        gc[pq] += row_pk @ dcc[: pq + 1]
        gc[: pq + 1] += row_pk * dcc[pq]

        go[pq] += 0.5 * (row_pk @ dc[: pq + 1]) + 0.25 * (row_pkk @ do[: pq + 1])
        go[: pq + 1] += (0.5 * dc[pq]) * row_pk + (0.25 * do[pq]) * row_pkk
        start = stop

    Gc = unpack_pairs(gc, pk.dims, pk.pair_offsets, factor=2.0, name="G closed")
    Go = unpack_pairs(go, pk.dims, pk.pair_offsets, factor=2.0, name="G open")
    return Gc, Go


def _dense_JK(eri: np.ndarray, D: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    J = np.einsum("pqrs,rs->pq", eri, D, optimize=True)
    # K_pq = sum_rs D_rs (pr|qs)
    K = np.einsum("prqs,rs->pq", eri, D, optimize=True)
    return J, K


def form_G_dense(
    eri,
    basis: SOBasis,
    Dc: BlockedMatrix,
    Do: BlockedMatrix,
) -> tuple[BlockedMatrix, BlockedMatrix]:
    """Reference ``(Gc, Go)`` from a dense SO-indexed ``(nso,)*4`` ERI tensor.

    O(N⁴) per call; meant for validation of the PK path on small systems.
    """

    eri = np.asarray(eri, dtype=np.float64)
    nso = int(basis.nso)
    if eri.shape != (nso, nso, nso, nso):
        raise ValueError(f"eri must have shape ({nso},)*4, got {eri.shape}")
    dc = Dc.to_dense(basis)
    do = Do.to_dense(basis)
    Jc, Kc = _dense_JK(eri, dc)
    Jo, Ko = _dense_JK(eri, do)
    gc = 2.0 * Jc - Kc + Jo - 0.5 * Ko
    go = Jc - 0.5 * Kc + 0.5 * (Jo - Ko)
    Gc = BlockedMatrix.from_dense(gc, basis, name="G closed")
    Go = BlockedMatrix.from_dense(go, basis, name="G open")
    return Gc.symmetrize(), Go.symmetrize()


class PKGBuilder:
    """G-build strategy backed by an in-core :class:`PKSupermatrix`."""

    algorithm = "PK"

    def __init__(self, pk: PKSupermatrix):
        self.pk = pk

    def __call__(self, Dc: BlockedMatrix, Do: BlockedMatrix) -> tuple[BlockedMatrix, BlockedMatrix]:
        return form_G_from_PK(self.pk, Dc, Do)


class UnavailableGBuilder:
    """Placeholder for declared but unimplemented G-build algorithms."""

    def __init__(self, algorithm: str, detail: str = ""):
        self.algorithm = str(algorithm)
        self.detail = str(detail)

    def __call__(self, Dc: BlockedMatrix, Do: BlockedMatrix) -> tuple[BlockedMatrix, BlockedMatrix]:
        logger.error("ROHF %s algorithm is not implemented", self.algorithm)
        raise AlgorithmNotImplemented(self.algorithm, self.detail)


def make_out_of_core_builder(stream: Iterable, basis: SOBasis) -> UnavailableGBuilder:
    """Streaming PK contraction; the interface exists, the contraction does not."""

    del stream, basis
    return UnavailableGBuilder("OUT_OF_CORE", "streaming PK contraction is not available")


@dataclass(frozen=True)
class FockSet:
    """Fock operators of one iteration.

    ``Fc``/``Fo`` are in the SO basis; ``Fc_mo``/``Fo_mo``/``Feff`` in the MO
    basis of the coefficients they were built with.
    """

    Fc: BlockedMatrix
    Fo: BlockedMatrix
    Fc_mo: BlockedMatrix
    Fo_mo: BlockedMatrix
    Feff: BlockedMatrix


def assemble_feff(Fc_mo: BlockedMatrix, Fo_mo: BlockedMatrix, doccpi, soccpi) -> BlockedMatrix:
    """Effective ROHF operator in the MO basis.

    Per irrep, with closed ``c``, open ``o`` and virtual ``v`` ranges::

                 c          o          v
        c  |    Fc     2(Fc-Fo)       Fc
        o  | 2(Fc-Fo)      Fc         2Fo
        v  |    Fc        2Fo         Fc

    With no open shells this is exactly ``Fc``.
    """

    Feff = Fc_mo.copy(name="F effective (MO basis)")
    for h in range(Feff.nirrep):
        d = int(doccpi[h])
        s = int(soccpi[h])
        if s == 0:
            continue
        fc = Fc_mo[h]
        fo = Fo_mo[h]
        blk = Feff[h]
        o = slice(d, d + s)
        c = slice(0, d)
        v = slice(d + s, Feff.dims[h])
        co = 2.0 * (fc[o, c] - fo[o, c])
        blk[o, c] = co
        blk[c, o] = co.T
        ov = 2.0 * fo[o, v]
        blk[o, v] = ov
        blk[v, o] = ov.T
    return Feff


def form_F(
    H: BlockedMatrix,
    Gc: BlockedMatrix,
    Go: BlockedMatrix,
    C: BlockedMatrix,
    doccpi,
    soccpi,
) -> FockSet:
    """``Fc = H + Gc``, ``Fo = H/2 + Go``, both taken to the MO basis, plus Feff."""

    Fc = H.copy(name="F closed").add(Gc)
    Fo = H.copy(name="F open").scale(0.5).add(Go)
    Fc_mo = Fc.transform(C)
    Fo_mo = Fo.transform(C)
    Fc_mo.symmetrize()
    Fo_mo.symmetrize()
    Feff = assemble_feff(Fc_mo, Fo_mo, doccpi, soccpi)
    return FockSet(Fc=Fc, Fo=Fo, Fc_mo=Fc_mo, Fo_mo=Fo_mo, Feff=Feff)


def compute_E(
    H: BlockedMatrix,
    Fc: BlockedMatrix,
    Fo: BlockedMatrix,
    Dc: BlockedMatrix,
    Do: BlockedMatrix,
    *,
    enuc: float = 0.0,
) -> float:
    """``E = E_nuc + Dc·(H + Fc) + Do·(H/2 + Fo)``."""

    HFc = H.copy().add(Fc)
    HFo = H.copy().scale(0.5).add(Fo)
    return float(enuc) + Dc.vector_dot(HFc) + Do.vector_dot(HFo)


def compute_initial_E(H: BlockedMatrix, Dc: BlockedMatrix, Do: BlockedMatrix, *, enuc: float = 0.0) -> float:
    """One-electron energy of the guess, ``E_nuc + Dc·H + Do·(H/2)``."""

    return float(enuc) + Dc.vector_dot(H) + 0.5 * Do.vector_dot(H)


__all__ = [
    "FockSet",
    "PKGBuilder",
    "UnavailableGBuilder",
    "assemble_feff",
    "compute_E",
    "compute_initial_E",
    "form_F",
    "form_G_dense",
    "form_G_from_PK",
    "make_out_of_core_builder",
    "pack_density",
    "unpack_pairs",
]
