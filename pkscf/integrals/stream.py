from __future__ import annotations

"""Two-electron integral streams over SO indices.

The SCF core only *reads* integrals. A stream is any iterable yielding
either :class:`IntegralChunk` buffers or plain ``(i, j, k, l, value)``
records; it is consumed exactly once, front to back. A chunk with
``last=True`` marks the end of the stream.

Each unique integral must appear once. Any of its eight permutations is
accepted as the label.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np

DEFAULT_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class IntegralChunk:
    i: np.ndarray
    j: np.ndarray
    k: np.ndarray
    l: np.ndarray
    values: np.ndarray
    last: bool = False

    def __post_init__(self):
        labels = [np.asarray(x, dtype=np.int64).ravel() for x in (self.i, self.j, self.k, self.l)]
        values = np.asarray(self.values, dtype=np.float64).ravel()
        n = int(values.shape[0])
        if any(x.shape != (n,) for x in labels):
            raise ValueError("integral labels and values must have the same length")
        for name, x in zip("ijkl", labels):
            object.__setattr__(self, name, x)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "last", bool(self.last))

    def __len__(self) -> int:
        return int(self.values.shape[0])


def _chunk_from_records(records: list, last: bool) -> IntegralChunk:
    if not records:
        empty = np.zeros((0,), dtype=np.int64)
        return IntegralChunk(empty, empty, empty, empty, np.zeros((0,), dtype=np.float64), last=last)
    arr = np.asarray(records, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 5:
        raise ValueError("integral records must be (i, j, k, l, value) tuples")
    lab = arr[:, :4]
    if np.any(lab != np.rint(lab)):
        raise ValueError("integral labels must be integers")
    lab = lab.astype(np.int64)
    return IntegralChunk(lab[:, 0], lab[:, 1], lab[:, 2], lab[:, 3], arr[:, 4], last=last)


def chunked_records(records: Iterable, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[IntegralChunk]:
    """Buffer ``(i, j, k, l, value)`` records into chunks; the final chunk is flagged ``last``."""

    chunk_size = int(chunk_size)
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    buf: list = []
    pending: list | None = None
    for rec in records:
        buf.append(tuple(rec))
        if len(buf) == chunk_size:
            if pending is not None:
                yield _chunk_from_records(pending, last=False)
            pending, buf = buf, []
    if buf:
        if pending is not None:
            yield _chunk_from_records(pending, last=False)
        yield _chunk_from_records(buf, last=True)
    else:
        yield _chunk_from_records(pending or [], last=True)


def iter_chunks(stream: Iterable, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[IntegralChunk]:
    """Normalize a stream of chunks or raw records into chunks.

    Reading stops after the first chunk flagged ``last``.
    """

    raw: list = []
    for item in stream:
        if isinstance(item, IntegralChunk):
            if raw:
                yield _chunk_from_records(raw, last=False)
                raw = []
            yield item
            if item.last:
                return
            continue
        raw.append(tuple(item))
        if len(raw) >= int(chunk_size):
            yield _chunk_from_records(raw, last=False)
            raw = []
    yield _chunk_from_records(raw, last=True)


def unique_integrals(
    eri,
    *,
    threshold: float = 1e-14,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[IntegralChunk]:
    """Stream the unique integrals of a dense ``(nso,)*4`` tensor.

    Labels are canonical (``i >= j``, ``k >= l``, ``ij >= kl``); integrals with
    ``|value| <= threshold`` are dropped.
    """

    eri = np.asarray(eri, dtype=np.float64)
    if eri.ndim != 4 or len(set(eri.shape)) != 1:
        raise ValueError("eri must have shape (nso, nso, nso, nso)")
    nso = int(eri.shape[0])
    p, q = np.tril_indices(nso)
    a, b = np.tril_indices(int(p.shape[0]))
    i, j, k, l = p[a], q[a], p[b], q[b]
    values = eri[i, j, k, l]
    keep = np.abs(values) > float(threshold)
    i, j, k, l, values = i[keep], j[keep], k[keep], l[keep], values[keep]

    n = int(values.shape[0])
    chunk_size = max(1, int(chunk_size))
    if n == 0:
        yield _chunk_from_records([], last=True)
        return
    for s in range(0, n, chunk_size):
        e = min(n, s + chunk_size)
        yield IntegralChunk(i[s:e], j[s:e], k[s:e], l[s:e], values[s:e], last=(e == n))


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "IntegralChunk",
    "chunked_records",
    "iter_chunks",
    "unique_integrals",
]
