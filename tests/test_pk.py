"""Tests for the PK/K supermatrix builder."""

from __future__ import annotations

import numpy as np
import pytest

from conftest import irrep_eri, model_system, shuffled
from pkscf.basis import SOBasis
from pkscf.errors import ResourceExhausted
from pkscf.hf.pk import build_pk, estimate_pk_nbytes
from pkscf.integrals import IntegralChunk, chunked_records, unique_integrals


def _pair_labels(basis: SOBasis) -> list[tuple[int, int]]:
    """Global SO pair ``(p, q)`` of every packed pair index."""

    out = []
    for h in range(basis.nirrep):
        idx = basis.irrep_so(h)
        for a in range(basis.dims[h]):
            for b in range(a + 1):
                out.append((int(idx[a]), int(idx[b])))
    return out


def _expected_pk(eri: np.ndarray, basis: SOBasis) -> tuple[np.ndarray, np.ndarray]:
    pairs = _pair_labels(basis)
    n = len(pairs)
    X = np.zeros((n, n))
    K = np.zeros((n, n))
    for P, (p, q) in enumerate(pairs):
        for R, (r, s) in enumerate(pairs):
            k = -0.25 * (eri[p, r, q, s] + eri[p, s, q, r])
            X[P, R] = eri[p, q, r, s] + k
            K[P, R] = k
    return X, K


def _records(eri):
    out = []
    for chunk in unique_integrals(eri):
        out.extend(zip(chunk.i, chunk.j, chunk.k, chunk.l, chunk.values))
    return out


def test_pk_matches_coulomb_minus_exchange():
    basis, _, _, eri = model_system()
    pk = build_pk(unique_integrals(eri), basis)
    X, K = _expected_pk(eri, basis)
    PKd, Kd = pk.unpack()
    assert np.allclose(PKd, X, atol=1e-12)
    assert np.allclose(Kd, K, atol=1e-12)
    assert np.allclose(PKd, PKd.T)


def test_pk_diagonal_is_halved():
    basis, _, _, eri = model_system()
    pk = build_pk(unique_integrals(eri), basis)
    X, K = _expected_pk(eri, basis)
    n = pk.npairs
    diag = np.arange(n) * (np.arange(n) + 1) // 2 + np.arange(n)
    assert np.allclose(pk.pk[diag], 0.5 * np.diag(X), atol=1e-12)
    assert np.allclose(pk.k[diag], 0.5 * np.diag(K), atol=1e-12)


def test_pk_is_read_only_and_sized():
    basis, _, _, eri = model_system()
    pk = build_pk(unique_integrals(eri), basis)
    assert pk.size == basis.npairs * (basis.npairs + 1) // 2
    assert pk.nbytes == estimate_pk_nbytes(basis.dims)
    with pytest.raises(ValueError):
        pk.pk[0] = 1.0
    with pytest.raises(ValueError):
        pk.k[0] = 1.0


def test_any_permutation_of_the_labels_gives_the_same_pk():
    basis, _, _, eri = model_system()
    ref = build_pk(unique_integrals(eri), basis)

    rng = np.random.default_rng(11)
    perms = [
        lambda i, j, k, l: (i, j, k, l),
        lambda i, j, k, l: (j, i, k, l),
        lambda i, j, k, l: (i, j, l, k),
        lambda i, j, k, l: (j, i, l, k),
        lambda i, j, k, l: (k, l, i, j),
        lambda i, j, k, l: (l, k, i, j),
        lambda i, j, k, l: (k, l, j, i),
        lambda i, j, k, l: (l, k, j, i),
    ]
    scrambled = []
    for i, j, k, l, v in _records(eri):
        f = perms[int(rng.integers(len(perms)))]
        scrambled.append((*f(int(i), int(j), int(k), int(l)), float(v)))
    rng.shuffle(scrambled)

    pk = build_pk(scrambled, basis, chunk_size=17)
    assert np.allclose(pk.pk, ref.pk, atol=1e-13)
    assert np.allclose(pk.k, ref.k, atol=1e-13)
    assert pk.nintegrals == ref.nintegrals


def test_non_irrep_ordered_basis():
    basis, _, _, eri = model_system()
    rng = np.random.default_rng(3)
    perm = rng.permutation(basis.nso)
    sbasis = shuffled(basis, perm)
    # global index g of the shuffled basis is SO perm[g] of the ordered one
    seri = eri[np.ix_(perm, perm, perm, perm)]

    ref = build_pk(unique_integrals(eri), basis)
    pk = build_pk(unique_integrals(seri), sbasis)
    assert np.allclose(pk.pk, ref.pk, atol=1e-13)
    assert np.allclose(pk.k, ref.k, atol=1e-13)


def test_four_irreps_with_empty_irrep():
    basis = SOBasis.from_dims((3, 0, 2, 2))
    eri = irrep_eri(basis.so_irrep, np.random.default_rng(5))
    pk = build_pk(unique_integrals(eri), basis)
    X, _ = _expected_pk(eri, basis)
    assert np.allclose(pk.unpack()[0], X, atol=1e-12)


def test_single_record_deposits_coulomb_only():
    basis = SOBasis.from_dims((1, 1))
    pk = build_pk([(1, 1, 0, 0, 0.5)], basis)
    assert pk.pk.tolist() == [0.0, 0.5, 0.0]
    assert pk.k.tolist() == [0.0, 0.0, 0.0]


def test_chunk_streams_and_last_flag():
    basis, _, _, eri = model_system()
    records = _records(eri)
    a = build_pk(chunked_records(records, chunk_size=5), basis)
    b = build_pk(records, basis)
    assert np.allclose(a.pk, b.pk)

    # nothing after the chunk flagged last is read
    first = IntegralChunk([1], [1], [0], [0], [0.5], last=True)
    extra = IntegralChunk([0], [0], [0], [0], [9.0])
    pk = build_pk([first, extra], SOBasis.from_dims((1, 1)))
    assert pk.pk.tolist() == [0.0, 0.5, 0.0]


def test_budget_is_checked_before_allocation():
    basis, _, _, eri = model_system()
    need = estimate_pk_nbytes(basis.dims)

    def stream():
        raise AssertionError("stream must not be read")
        yield  # pragma: no cover

    with pytest.raises(ResourceExhausted) as exc:
        build_pk(stream(), basis, memory_budget_bytes=need - 1)
    assert exc.value.needed_bytes == need
    assert isinstance(exc.value, MemoryError)


def test_label_out_of_range():
    with pytest.raises(ValueError):
        build_pk([(2, 0, 0, 0, 1.0)], SOBasis.from_dims((1, 1)))


def test_profile_is_filled():
    basis, _, _, eri = model_system()
    prof: dict = {}
    build_pk(unique_integrals(eri), basis, profile=prof)
    assert prof["pk"]["nintegrals"] > 0
    assert prof["pk"]["build_ms"] >= 0.0
