"""Hartree–Fock (SCF) over symmetry-blocked SO integrals.

The PK supermatrix is built once from a two-electron integral stream; each
iteration then contracts it with the closed/open densities.
"""

from __future__ import annotations

from .density import form_D
from .diis import DIIS, rohf_gradient
from .driver import SCFDriver, SCFResult, SCFState, run_scf
from .fock import (
    FockSet,
    PKGBuilder,
    UnavailableGBuilder,
    assemble_feff,
    compute_E,
    compute_initial_E,
    form_F,
    form_G_dense,
    form_G_from_PK,
)
from .guess import core_guess, orthogonalizer, restart_guess
from .occupation import count_electrons, frozen_per_irrep, select_occupation
from .pk import PKSupermatrix, build_pk, estimate_pk_nbytes
from .reference import RHFReference, ROHFReference, make_reference

__all__ = [
    "DIIS",
    "FockSet",
    "PKGBuilder",
    "PKSupermatrix",
    "RHFReference",
    "ROHFReference",
    "SCFDriver",
    "SCFResult",
    "SCFState",
    "UnavailableGBuilder",
    "assemble_feff",
    "build_pk",
    "compute_E",
    "compute_initial_E",
    "core_guess",
    "count_electrons",
    "estimate_pk_nbytes",
    "form_D",
    "form_F",
    "form_G_dense",
    "form_G_from_PK",
    "frozen_per_irrep",
    "make_reference",
    "orthogonalizer",
    "restart_guess",
    "rohf_gradient",
    "run_scf",
    "select_occupation",
]
