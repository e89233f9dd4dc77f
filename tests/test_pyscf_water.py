"""Cross-check against PySCF in a C2v symmetry-adapted basis."""

from __future__ import annotations

import numpy as np
import pytest

from pkscf.basis import SOBasis
from pkscf.config import SCFOptions
from pkscf.hf.driver import run_scf
from pkscf.integrals import unique_integrals

pyscf = pytest.importorskip("pyscf")
from pyscf import gto, scf, symm  # noqa: E402


def _water(charge: int = 0, spin: int = 0):
    return gto.M(
        atom="O 0 0 0.1173; H 0 0.7572 -0.4692; H 0 -0.7572 -0.4692",
        basis="sto-3g",
        symmetry=True,
        charge=charge,
        spin=spin,
        verbose=0,
    )


def _so_integrals(mol):
    dims = tuple(int(c.shape[1]) for c in mol.symm_orb)
    basis = SOBasis.from_dims(dims, labels=tuple(mol.irrep_name))
    Cso = np.hstack(mol.symm_orb)
    S = Cso.T @ mol.intor("int1e_ovlp") @ Cso
    H = Cso.T @ (mol.intor("int1e_kin") + mol.intor("int1e_nuc")) @ Cso
    eri_ao = mol.intor("int2e")
    eri = np.einsum("pqrs,pi,qj,rk,sl->ijkl", eri_ao, Cso, Cso, Cso, Cso, optimize=True)
    return basis, S, H, eri


def _occupations(mol, mf):
    S = mol.intor("int1e_ovlp")
    orbsym = np.asarray(symm.label_orb_symm(mol, mol.irrep_id, mol.symm_orb, mf.mo_coeff, s=S))
    occ = np.asarray(mf.mo_occ)
    docc = tuple(int(np.sum((orbsym == ir) & (occ > 1.5))) for ir in mol.irrep_id)
    socc = tuple(int(np.sum((orbsym == ir) & (occ > 0.5) & (occ < 1.5))) for ir in mol.irrep_id)
    return docc, socc


def test_water_rhf_energy_matches_pyscf():
    mol = _water()
    ref = scf.RHF(mol)
    ref.conv_tol = 1e-12
    e_ref = ref.kernel()

    basis, S, H, eri = _so_integrals(mol)
    for reference in ("RHF", "ROHF"):
        res = run_scf(
            basis,
            S,
            H,
            unique_integrals(eri),
            nelec=mol.nelectron,
            enuc=mol.energy_nuc(),
            options=SCFOptions(reference=reference, max_iterations=100),
        )
        assert res.converged
        assert res.e_tot == pytest.approx(e_ref, abs=1e-7)
        assert res.doccpi == _occupations(mol, ref)[0]


def test_water_cation_rohf_energy_matches_pyscf():
    mol = _water(charge=1, spin=1)
    ref = scf.ROHF(mol)
    ref.conv_tol = 1e-12
    e_ref = ref.kernel()
    docc, socc = _occupations(mol, ref)

    basis, S, H, eri = _so_integrals(mol)
    res = run_scf(
        basis,
        S,
        H,
        unique_integrals(eri),
        nelec=mol.nelectron,
        enuc=mol.energy_nuc(),
        options=SCFOptions(multiplicity=2, docc=docc, socc=socc, max_iterations=200),
    )
    assert res.converged
    assert res.e_tot == pytest.approx(e_ref, abs=1e-6)
