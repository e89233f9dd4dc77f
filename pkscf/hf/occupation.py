from __future__ import annotations

"""Aufbau occupation selection across irreps."""

import numpy as np

from pkscf.blocked import BlockedVector


def count_electrons(nelec: int, multiplicity: int) -> tuple[int, int]:
    """Return ``(ndocc, nsocc)`` for a high-spin state.

    ``nsocc = multiplicity - 1`` and ``ndocc = (nelec - nsocc) / 2``.
    """

    nelec = int(nelec)
    multiplicity = int(multiplicity)
    if nelec < 0:
        raise ValueError(f"nelec must be >= 0, got {nelec}")
    if multiplicity < 1:
        raise ValueError(f"multiplicity must be >= 1, got {multiplicity}")
    nsocc = multiplicity - 1
    if nsocc > nelec:
        raise ValueError(f"multiplicity {multiplicity} needs more than {nelec} electrons")
    if (nelec - nsocc) % 2 != 0:
        raise ValueError(f"nelec={nelec} and multiplicity={multiplicity} have inconsistent parity")
    return (nelec - nsocc) // 2, nsocc


def sorted_orbital_energies(eps: BlockedVector) -> tuple[np.ndarray, np.ndarray]:
    """All eigenvalues in ascending order with their irreps (stable on ties)."""

    values = eps.to_array()
    irreps = eps.irrep_array()
    order = np.argsort(values, kind="stable")
    return values[order], irreps[order]


def select_occupation(eps: BlockedVector, ndocc: int, nsocc: int) -> tuple[np.ndarray, np.ndarray]:
    """Fill the lowest ``ndocc`` orbitals doubly and the next ``nsocc`` singly.

    Returns per-irrep ``(doccpi, soccpi)``. Ties keep irrep order.
    """

    ndocc = int(ndocc)
    nsocc = int(nsocc)
    if ndocc < 0 or nsocc < 0:
        raise ValueError("ndocc and nsocc must be >= 0")
    _, irreps = sorted_orbital_energies(eps)
    norb = int(irreps.shape[0])
    if ndocc + nsocc > norb:
        raise ValueError(f"cannot place {ndocc} doubly + {nsocc} singly occupied orbitals in {norb} orbitals")

    nirrep = eps.nirrep
    doccpi = np.bincount(irreps[:ndocc], minlength=nirrep).astype(np.int64)
    soccpi = np.bincount(irreps[ndocc : ndocc + nsocc], minlength=nirrep).astype(np.int64)
    return doccpi, soccpi


def frozen_per_irrep(eps: BlockedVector, nfrozen: int, *, from_top: bool = False) -> np.ndarray:
    """Distribute ``nfrozen`` frozen orbitals over irreps.

    The lowest orbitals overall are frozen core; with ``from_top=True`` the
    highest are frozen virtuals.
    """

    nfrozen = int(nfrozen)
    _, irreps = sorted_orbital_energies(eps)
    if nfrozen < 0 or nfrozen > irreps.shape[0]:
        raise ValueError(f"nfrozen must be in [0, {irreps.shape[0]}], got {nfrozen}")
    sel = irreps[irreps.shape[0] - nfrozen :] if from_top else irreps[:nfrozen]
    return np.bincount(sel, minlength=eps.nirrep).astype(np.int64)


def check_occupation(dims, doccpi, soccpi, nelec: int) -> None:
    """Raise ``ValueError`` unless the occupation fits ``dims`` and holds ``nelec`` electrons."""

    dims = np.asarray(dims, dtype=np.int64)
    doccpi = np.asarray(doccpi, dtype=np.int64)
    soccpi = np.asarray(soccpi, dtype=np.int64)
    if doccpi.shape != dims.shape or soccpi.shape != dims.shape:
        raise ValueError(f"occupation vectors must have {dims.shape[0]} entries")
    if np.any(doccpi < 0) or np.any(soccpi < 0):
        raise ValueError("occupation counts must be >= 0")
    if np.any(doccpi + soccpi > dims):
        raise ValueError(f"docc+socc {tuple(doccpi + soccpi)} exceeds irrep dimensions {tuple(dims)}")
    total = 2 * int(doccpi.sum()) + int(soccpi.sum())
    if total != int(nelec):
        raise ValueError(f"occupation holds {total} electrons, expected {int(nelec)}")


__all__ = [
    "check_occupation",
    "count_electrons",
    "frozen_per_irrep",
    "select_occupation",
    "sorted_orbital_energies",
]
