from __future__ import annotations

"""Reference wavefunction variants driven by :class:`pkscf.hf.driver.SCFDriver`."""

from dataclasses import replace
from typing import Protocol

import numpy as np

from pkscf.blocked import BlockedMatrix

from .density import form_D
from .fock import FockSet, compute_E, form_F


class Reference(Protocol):
    """Per-reference pieces of one SCF iteration.

    The driver owns the loop; a reference decides how densities, the
    operator to diagonalize, the energy and the stopping test are formed.
    """

    name: str

    def build_density(self, C: BlockedMatrix, doccpi, soccpi) -> tuple[BlockedMatrix, BlockedMatrix]:
        ...

    def build_fock(
        self,
        H: BlockedMatrix,
        Gc: BlockedMatrix,
        Go: BlockedMatrix,
        C: BlockedMatrix,
        doccpi,
        soccpi,
    ) -> FockSet:
        ...

    def compute_energy(
        self,
        H: BlockedMatrix,
        fock: FockSet,
        Dc: BlockedMatrix,
        Do: BlockedMatrix,
        *,
        enuc: float = 0.0,
    ) -> float:
        ...

    def test_convergence(self, E: float, E_prev: float | None, threshold: float) -> bool:
        ...


def _energy_converged(E: float, E_prev: float | None, threshold: float) -> bool:
    if E_prev is None:
        return False
    return bool(abs(float(E) - float(E_prev)) < float(threshold))


class ROHFReference:
    """High-spin restricted open-shell reference."""

    name = "ROHF"

    def build_density(self, C, doccpi, soccpi):
        return form_D(C, doccpi, soccpi)

    def build_fock(self, H, Gc, Go, C, doccpi, soccpi):
        return form_F(H, Gc, Go, C, doccpi, soccpi)

    def compute_energy(self, H, fock, Dc, Do, *, enuc=0.0):
        return compute_E(H, fock.Fc, fock.Fo, Dc, Do, enuc=enuc)

    def test_convergence(self, E, E_prev, threshold):
        return _energy_converged(E, E_prev, threshold)


class RHFReference:
    """Closed-shell reference: no singly occupied orbitals and ``Feff = Fc``."""

    name = "RHF"

    @staticmethod
    def _check_closed(soccpi) -> None:
        if np.any(np.asarray(soccpi, dtype=np.int64) != 0):
            raise ValueError("RHF reference cannot hold singly occupied orbitals")

    def build_density(self, C, doccpi, soccpi):
        self._check_closed(soccpi)
        return form_D(C, doccpi, soccpi)

    def build_fock(self, H, Gc, Go, C, doccpi, soccpi):
        self._check_closed(soccpi)
        fock = form_F(H, Gc, Go, C, doccpi, soccpi)
        return replace(fock, Feff=fock.Fc_mo.copy(name="F effective (MO basis)"))

    def compute_energy(self, H, fock, Dc, Do, *, enuc=0.0):
        HFc = H.copy().add(fock.Fc)
        return float(enuc) + Dc.vector_dot(HFc)

    def test_convergence(self, E, E_prev, threshold):
        return _energy_converged(E, E_prev, threshold)


def make_reference(name: str) -> Reference:
    key = str(name).strip().upper()
    if key == "ROHF":
        return ROHFReference()
    if key == "RHF":
        return RHFReference()
    raise ValueError(f"unknown reference {name!r}")


__all__ = ["RHFReference", "ROHFReference", "Reference", "make_reference"]
