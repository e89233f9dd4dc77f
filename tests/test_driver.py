"""End-to-end tests for the SCF driver."""

from __future__ import annotations

import math

import numpy as np
import pytest

from conftest import model_system
from pkscf.blocked import BlockedMatrix
from pkscf.config import SCFOptions
from pkscf.errors import AlgorithmNotImplemented, ConvergenceFailure
from pkscf.hf.diis import rohf_gradient
from pkscf.hf.driver import SCFDriver, SCFState, run_scf
from pkscf.hf.fock import compute_E, form_F, form_G_dense
from pkscf.integrals import unique_integrals
from pkscf.io import MemorySink, NpzCheckpointSink, RecordingDiagnostics


def test_hand_scenario_converges_to_known_energy(hand_system):
    basis, S, H, records = hand_system
    diag = RecordingDiagnostics()
    sink = MemorySink()
    driver = SCFDriver(
        basis,
        S,
        H,
        records,
        nelec=3,
        options=SCFOptions(multiplicity=2, nfrozen_core=1),
        checkpoint=sink,
        diagnostics=diag,
    )
    res = driver.run()

    assert driver.state is SCFState.CONVERGED
    assert res.converged
    assert res.niter == 2
    assert res.e_tot == pytest.approx(-4.0, abs=1e-12)
    assert res.doccpi == (1, 0)
    assert res.soccpi == (0, 1)
    assert res.Feff[0][0, 0] == pytest.approx(-1.5)
    assert res.Feff[1][0, 0] == pytest.approx(0.0, abs=1e-14)
    assert np.allclose(np.abs(res.mo_coeff.to_dense(basis)), np.eye(2))

    assert [r.iteration for r in diag.records] == [1, 2]
    assert diag.records[0].delta_energy == pytest.approx(-1.5)
    assert diag.records[1].delta_energy == pytest.approx(0.0, abs=1e-14)
    assert not any(r.diis_applied for r in diag.records)

    rec = sink.last
    assert rec is not None
    assert rec.e_tot == pytest.approx(-4.0)
    assert rec.reference == "ROHF"
    assert rec.iopen == 2
    assert rec.frzcpi == (1, 0)
    assert rec.frzvpi == (0, 0)
    values, irreps = rec.orbital_energies
    assert values.tolist() == pytest.approx([-1.5, 0.0])
    assert irreps.tolist() == [0, 1]


def test_fixed_occupation(hand_system):
    basis, S, H, records = hand_system
    opts = SCFOptions(multiplicity=2, docc=(1, 0), socc=(0, 1))
    res = run_scf(basis, S, H, records, nelec=3, options=opts)
    assert res.e_tot == pytest.approx(-4.0)

    with pytest.raises(ValueError):
        SCFDriver(basis, S, H, records, nelec=3, options=SCFOptions(multiplicity=2, docc=(0, 0), socc=(1, 1)))


def test_iteration_cap_reports_failure(hand_system):
    basis, S, H, records = hand_system
    driver = SCFDriver(basis, S, H, records, nelec=3, options=SCFOptions(multiplicity=2, max_iterations=1))
    with pytest.warns(ConvergenceFailure):
        res = driver.run()
    assert driver.state is SCFState.FAILED
    assert not res.converged
    assert res.niter == 1
    assert math.isnan(res.e_tot)
    assert res.e_last == pytest.approx(-4.0)


def test_driver_runs_once(hand_system):
    basis, S, H, records = hand_system
    driver = SCFDriver(basis, S, H, records, nelec=3, options=SCFOptions(multiplicity=2))
    driver.run()
    with pytest.raises(RuntimeError):
        driver.run()


@pytest.mark.parametrize("algorithm", ["DIRECT", "DF", "CD", "OUT_OF_CORE"])
def test_unimplemented_algorithms_are_fatal(hand_system, algorithm):
    basis, S, H, records = hand_system
    driver = SCFDriver(basis, S, H, records, nelec=3, options=SCFOptions(multiplicity=2, algorithm=algorithm))
    with pytest.raises(AlgorithmNotImplemented):
        driver.run()
    assert driver.state is SCFState.FAILED


def test_over_budget_pk_falls_back_to_out_of_core(hand_system):
    basis, S, H, records = hand_system
    opts = SCFOptions(multiplicity=2, memory_budget_bytes=16)
    driver = SCFDriver(basis, S, H, records, nelec=3, options=opts)
    with pytest.raises(AlgorithmNotImplemented) as exc:
        driver.run()
    assert driver.algorithm == "OUT_OF_CORE"
    assert exc.value.algorithm == "OUT_OF_CORE"


def test_profile(hand_system):
    basis, S, H, records = hand_system
    prof: dict = {}
    run_scf(basis, S, H, records, nelec=3, options=SCFOptions(multiplicity=2), profile=prof)
    assert prof["scf"]["iters"] == 2
    for key in ("pk_ms", "g_ms", "diag_ms", "diis_ms"):
        assert prof["scf"][key] >= 0.0
    assert prof["pk"]["nintegrals"] == 1


def _run_model(reference="ROHF", multiplicity=1, nelec=6, **kw):
    basis, S, H, eri = model_system()
    opts = SCFOptions(reference=reference, multiplicity=multiplicity, max_iterations=100, **kw)
    diag = RecordingDiagnostics()
    res = run_scf(basis, S, H, unique_integrals(eri), nelec=nelec, enuc=1.25, options=opts, diagnostics=diag)
    return basis, S, H, eri, res, diag


def test_closed_shell_rohf_equals_rhf():
    *_, rohf, _ = _run_model("ROHF")
    *_, rhf, _ = _run_model("RHF")
    assert rohf.converged and rhf.converged
    assert rohf.e_tot == pytest.approx(rhf.e_tot, abs=1e-10)
    assert rohf.doccpi == rhf.doccpi
    assert sum(rhf.doccpi) == 3


def test_open_shell_model_reaches_stationary_point():
    basis, S, H, eri, res, diag = _run_model("ROHF", multiplicity=3, nelec=6)
    assert res.converged
    assert sum(res.soccpi) == 2 and sum(res.doccpi) == 2

    # occupation invariant on every iteration
    for rec in diag.records:
        assert 2 * sum(rec.doccpi) + sum(rec.soccpi) == 6
        assert all(d + s <= n for d, s, n in zip(rec.doccpi, rec.soccpi, basis.dims))

    Hb = BlockedMatrix.from_dense(H, basis)
    Gc, Go = form_G_dense(eri, basis, res.Dc, res.Do)
    fock = form_F(Hb, Gc, Go, res.mo_coeff, res.doccpi, res.soccpi)
    E = compute_E(Hb, fock.Fc, fock.Fo, res.Dc, res.Do, enuc=1.25)
    assert E == pytest.approx(res.e_tot, abs=1e-8)
    assert rohf_gradient(fock.Feff, res.doccpi, res.soccpi).max_abs() < 1e-4

    # orbitals stay S-orthonormal
    CtSC = BlockedMatrix.from_dense(S, basis).transform(res.mo_coeff)
    for h in range(CtSC.nirrep):
        assert np.allclose(CtSC[h], np.eye(basis.dims[h]), atol=1e-10)


def test_diis_is_used_and_optional():
    *_, with_diis, diag = _run_model("ROHF", multiplicity=3, nelec=6)
    *_, without, _ = _run_model("ROHF", multiplicity=3, nelec=6, diis_enabled=False)
    assert with_diis.converged and without.converged
    assert with_diis.e_tot == pytest.approx(without.e_tot, abs=1e-7)
    if with_diis.niter > 3:
        assert any(r.diis_applied for r in diag.records)


def test_restart_from_checkpoint_file(tmp_path):
    basis, S, H, eri = model_system()
    path = tmp_path / "chk" / "scf.npz"
    opts = SCFOptions(multiplicity=3, max_iterations=100)
    first = run_scf(basis, S, H, unique_integrals(eri), nelec=6, options=opts, checkpoint=NpzCheckpointSink(path))
    assert first.converged
    assert path.exists()

    again = run_scf(basis, S, H, unique_integrals(eri), nelec=6, options=opts, restart=path)
    assert again.converged
    assert again.niter <= 3
    assert again.e_tot == pytest.approx(first.e_tot, abs=1e-9)
    assert again.doccpi == first.doccpi
    assert again.soccpi == first.soccpi
