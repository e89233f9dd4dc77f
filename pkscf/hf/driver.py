from __future__ import annotations

"""ROHF/RHF self-consistent-field driver over a PK supermatrix."""

from dataclasses import dataclass
import enum
import logging
import math
import os
import time
from typing import Any, Callable, Iterable
import warnings

import numpy as np

from pkscf.basis import SOBasis
from pkscf.blocked import BlockedMatrix, BlockedVector
from pkscf.config import SCFOptions
from pkscf.errors import ConvergenceFailure, ResourceExhausted
from pkscf.io.checkpoint import CheckpointRecord, count_open_irreps, load_checkpoint
from pkscf.io.diagnostics import IterationRecord, LoggingDiagnostics, format_summary

from .diis import DIIS, rohf_gradient
from .fock import PKGBuilder, UnavailableGBuilder, compute_initial_E, make_out_of_core_builder
from .guess import core_guess, orthogonalizer, restart_guess
from .occupation import (
    check_occupation,
    count_electrons,
    frozen_per_irrep,
    select_occupation,
    sorted_orbital_energies,
)
from .pk import build_pk
from .reference import make_reference

logger = logging.getLogger(__name__)


class SCFState(enum.Enum):
    INIT = "init"
    ITERATING = "iterating"
    CONVERGED = "converged"
    FAILED = "failed"


@dataclass(frozen=True)
class SCFResult:
    method: str
    algorithm: str
    converged: bool
    niter: int
    e_tot: float
    e_last: float
    e_nuc: float
    mo_energy: BlockedVector
    mo_coeff: BlockedMatrix
    doccpi: tuple[int, ...]
    soccpi: tuple[int, ...]
    Dc: BlockedMatrix
    Do: BlockedMatrix
    Feff: BlockedMatrix
    history: tuple[IterationRecord, ...] = ()

    @property
    def e_elec(self) -> float:
        return float(self.e_tot - self.e_nuc)


def _as_blocked(A, basis: SOBasis, name: str) -> BlockedMatrix:
    if isinstance(A, BlockedMatrix):
        A._check_dims(basis.dims)
        return A.copy(name=name)
    return BlockedMatrix.from_dense(A, basis, name=name)


def _empty_profile() -> dict[str, Any]:
    return {"pk_ms": 0.0, "g_ms": 0.0, "diag_ms": 0.0, "diis_ms": 0.0, "diis_fallbacks": 0, "iters": 0}


class SCFDriver:
    """Fixed-point iteration ``INIT -> ITERATING -> {CONVERGED, FAILED}``.

    ``S`` and ``H`` are blocked matrices (or dense SO-indexed arrays) in the
    basis described by ``basis``; ``integrals`` is a one-shot two-electron
    integral stream consumed while building the PK supermatrix. A driver runs
    once.
    """

    def __init__(
        self,
        basis: SOBasis,
        S,
        H,
        integrals: Iterable,
        *,
        nelec: int,
        enuc: float = 0.0,
        options: SCFOptions | None = None,
        checkpoint: Callable[[CheckpointRecord], None] | None = None,
        diagnostics: Callable[[IterationRecord], None] | None = None,
    ):
        self.basis = basis
        self.options = SCFOptions() if options is None else options
        self.S = _as_blocked(S, basis, "S")
        self.H = _as_blocked(H, basis, "H")
        self.integrals = integrals
        self.nelec = int(nelec)
        self.enuc = float(enuc)
        self.checkpoint = checkpoint
        self.diagnostics = LoggingDiagnostics(self.options.reference) if diagnostics is None else diagnostics
        self.reference = make_reference(self.options.reference)
        self.algorithm = self.options.algorithm
        self.state = SCFState.INIT

        self.ndocc, self.nsocc = count_electrons(self.nelec, self.options.multiplicity)
        if self.options.fixed_occupation:
            if len(self.options.docc) != basis.nirrep:
                raise ValueError(f"docc/socc must have {basis.nirrep} entries")
            check_occupation(basis.dims, self.options.docc, self.options.socc, self.nelec)
            if int(sum(self.options.socc)) != self.nsocc:
                raise ValueError(
                    f"socc holds {int(sum(self.options.socc))} open shells; multiplicity "
                    f"{self.options.multiplicity} needs {self.nsocc}"
                )

    # ---- INIT ------------------------------------------------------------

    def _make_g_builder(self, profile: dict[str, Any]):
        opts = self.options
        if opts.algorithm == "PK":
            t0 = time.perf_counter()
            try:
                pk = build_pk(self.integrals, self.basis, memory_budget_bytes=opts.memory_budget_bytes, profile=profile)
            except ResourceExhausted as e:
                logger.warning("%s; switching to out-of-core algorithm", e)
                self.algorithm = "OUT_OF_CORE"
                return make_out_of_core_builder(self.integrals, self.basis)
            finally:
                profile["scf"]["pk_ms"] += (time.perf_counter() - t0) * 1000.0
            return PKGBuilder(pk)
        if opts.algorithm == "OUT_OF_CORE":
            return make_out_of_core_builder(self.integrals, self.basis)
        details = {
            "DIRECT": "integral-direct G build is not available",
            "DF": "density-fitted G build is not available",
            "CD": "Cholesky-decomposed G build is not available",
        }
        return UnavailableGBuilder(opts.algorithm, details.get(opts.algorithm, ""))

    def _initial_orbitals(self, X: BlockedMatrix, restart):
        """Return ``(C, eps, doccpi, soccpi)`` for iteration 1."""

        if restart is None:
            C, eps = core_guess(self.H, X)
            logger.info("Core-Hamiltonian guess")
            return C, eps, None, None

        record = restart
        if isinstance(restart, (str, os.PathLike)):
            record = load_checkpoint(restart)
            logger.info("Read previous orbitals from %s", os.fspath(restart))
        if not isinstance(record, CheckpointRecord):
            raise TypeError("restart must be a CheckpointRecord or a path to a checkpoint file")
        if tuple(record.dims) != tuple(self.basis.dims):
            raise ValueError(f"restart orbitals have dims {record.dims}, basis has {self.basis.dims}")

        C = restart_guess(record.coefficients(), self.S)
        eps = BlockedVector.from_blocks(record.mo_energy, name="eps")
        try:
            check_occupation(self.basis.dims, record.doccpi, record.soccpi, self.nelec)
        except ValueError:
            return C, eps, None, None
        if int(sum(record.soccpi)) != self.nsocc:
            return C, eps, None, None
        return C, eps, np.asarray(record.doccpi, dtype=np.int64), np.asarray(record.soccpi, dtype=np.int64)

    def _occupation(self, eps: BlockedVector):
        if self.options.fixed_occupation:
            return np.asarray(self.options.docc, dtype=np.int64), np.asarray(self.options.socc, dtype=np.int64)
        return select_occupation(eps, self.ndocc, self.nsocc)

    # ---- ITERATING -------------------------------------------------------

    def run(self, restart=None, *, profile: dict | None = None) -> SCFResult:
        if self.state is not SCFState.INIT:
            raise RuntimeError("SCFDriver.run() can only be called once")
        prof: dict[str, Any] = {} if profile is None else profile
        prof["scf"] = _empty_profile()
        try:
            return self._run(restart, prof)
        except Exception:
            self.state = SCFState.FAILED
            raise

    def _run(self, restart, profile: dict[str, Any]) -> SCFResult:
        opts = self.options
        ref = self.reference
        H = self.H
        sprof = profile["scf"]

        X, Y = orthogonalizer(self.S)
        g_build = self._make_g_builder(profile)

        C, eps, doccpi, soccpi = self._initial_orbitals(X, restart)
        if doccpi is None or opts.fixed_occupation:
            doccpi, soccpi = self._occupation(eps)
        Dc, Do = ref.build_density(C, doccpi, soccpi)
        E_init = compute_initial_E(H, Dc, Do, enuc=self.enuc)
        logger.info(
            "%s SCF: nelec=%d multiplicity=%d ndocc=%d nsocc=%d algorithm=%s",
            ref.name,
            self.nelec,
            opts.multiplicity,
            self.ndocc,
            self.nsocc,
            self.algorithm,
        )
        logger.info("Initial energy: %20.14f", E_init)

        diis = DIIS(opts.diis_max_vectors) if opts.diis_enabled else None
        history: list[IterationRecord] = []
        E: float | None = None
        Feff = None
        converged = False
        iteration = 0

        self.state = SCFState.ITERATING
        while iteration < int(opts.max_iterations):
            iteration += 1
            Dc_old = Dc.copy()
            Do_old = Do.copy()
            E_prev = E

            t0 = time.perf_counter()
            Gc, Go = g_build(Dc, Do)
            sprof["g_ms"] += (time.perf_counter() - t0) * 1000.0

            fock = ref.build_fock(H, Gc, Go, C, doccpi, soccpi)
            E = ref.compute_energy(H, fock, Dc, Do, enuc=self.enuc)
            Feff = fock.Feff

            diis_applied = False
            if diis is not None and iteration >= int(opts.diis_min_vectors) and iteration % int(opts.diis_period) == 0:
                t0 = time.perf_counter()
                # orthonormal basis: U = S^{1/2} C is orthogonal
                U = Y @ C
                diis.push(Feff.back_transform(U), rohf_gradient(Feff, doccpi, soccpi).back_transform(U))
                F_ext = diis.extrapolate()
                if F_ext is not None:
                    Feff = F_ext.transform(U)
                    Feff.name = "F effective (DIIS)"
                    Feff.symmetrize()
                    diis_applied = True
                elif len(diis) >= 2:
                    sprof["diis_fallbacks"] += 1
                sprof["diis_ms"] += (time.perf_counter() - t0) * 1000.0

            t0 = time.perf_counter()
            evecs, eps = Feff.diagonalize()
            sprof["diag_ms"] += (time.perf_counter() - t0) * 1000.0
            doccpi, soccpi = self._occupation(eps)
            C = C @ evecs
            C.name = "C"
            Dc, Do = ref.build_density(C, doccpi, soccpi)
            check_occupation(self.basis.dims, doccpi, soccpi, self.nelec)

            rms = max(Dc.rms_diff(Dc_old), Do.rms_diff(Do_old))
            rec = IterationRecord(
                iteration=int(iteration),
                energy=float(E),
                delta_energy=float(E - (E_init if E_prev is None else E_prev)),
                diis_applied=bool(diis_applied),
                density_rms=float(rms),
                doccpi=tuple(int(x) for x in doccpi),
                soccpi=tuple(int(x) for x in soccpi),
            )
            history.append(rec)
            if self.diagnostics is not None:
                self.diagnostics(rec)

            if ref.test_convergence(E, E_prev, opts.energy_convergence_threshold):
                converged = True
                break

        sprof["iters"] = int(iteration)
        doccpi_t = tuple(int(x) for x in doccpi)
        soccpi_t = tuple(int(x) for x in soccpi)

        if not converged:
            self.state = SCFState.FAILED
            msg = f"{ref.name} SCF failed to converge in {iteration} iterations (last energy {E:.14f})"
            logger.error(msg)
            warnings.warn(msg, ConvergenceFailure, stacklevel=3)
            e_tot = math.nan
        else:
            self.state = SCFState.CONVERGED
            e_tot = float(E)
            logger.info("Energy converged in %d iterations: %20.14f", iteration, e_tot)
            self._save(e_tot, C, eps, Feff, doccpi_t, soccpi_t)

        return SCFResult(
            method=ref.name,
            algorithm=self.algorithm,
            converged=bool(converged),
            niter=int(iteration),
            e_tot=float(e_tot),
            e_last=float(E),
            e_nuc=float(self.enuc),
            mo_energy=eps,
            mo_coeff=C,
            doccpi=doccpi_t,
            soccpi=soccpi_t,
            Dc=Dc,
            Do=Do,
            Feff=Feff,
            history=tuple(history),
        )

    # ---- CONVERGED -------------------------------------------------------

    def _save(self, e_tot: float, C: BlockedMatrix, eps: BlockedVector, Feff: BlockedMatrix, doccpi, soccpi) -> None:
        opts = self.options
        labels = self.basis.irrep_labels
        values, irreps = sorted_orbital_energies(eps)
        mo_coeff = [C[h] for h in range(C.nirrep)] if opts.print_mos else None
        logger.info("\n%s", format_summary(doccpi, soccpi, values, irreps, labels, mo_coeff=mo_coeff))

        if self.checkpoint is None:
            return
        record = CheckpointRecord(
            e_tot=float(e_tot),
            e_ref=float(e_tot),
            reference=self.reference.name,
            irrep_labels=tuple(labels),
            dims=tuple(self.basis.dims),
            doccpi=tuple(doccpi),
            soccpi=tuple(soccpi),
            frzcpi=tuple(int(x) for x in frozen_per_irrep(eps, opts.nfrozen_core)),
            frzvpi=tuple(int(x) for x in frozen_per_irrep(eps, opts.nfrozen_virtual, from_top=True)),
            iopen=count_open_irreps(soccpi),
            mo_energy=tuple(np.array(eps[h]) for h in range(eps.nirrep)),
            mo_coeff=tuple(np.array(C[h]) for h in range(C.nirrep)),
            feff=tuple(np.array(Feff[h]) for h in range(Feff.nirrep)),
        )
        self.checkpoint(record)


def run_scf(
    basis: SOBasis,
    S,
    H,
    integrals: Iterable,
    *,
    nelec: int,
    enuc: float = 0.0,
    options: SCFOptions | None = None,
    restart=None,
    checkpoint: Callable[[CheckpointRecord], None] | None = None,
    diagnostics: Callable[[IterationRecord], None] | None = None,
    profile: dict | None = None,
) -> SCFResult:
    """Build an :class:`SCFDriver` and run it."""

    driver = SCFDriver(
        basis,
        S,
        H,
        integrals,
        nelec=nelec,
        enuc=enuc,
        options=options,
        checkpoint=checkpoint,
        diagnostics=diagnostics,
    )
    return driver.run(restart, profile=profile)


__all__ = ["SCFDriver", "SCFResult", "SCFState", "run_scf"]
