from __future__ import annotations

"""Converged-SCF records and where they go.

A sink is any callable taking a :class:`CheckpointRecord`. The NPZ sink
stores scalars and labels as a JSON string (``meta_json``) and the
per-irrep arrays as ``C_<h>``, ``Feff_<h>`` and ``eps_<h>``.
"""

from dataclasses import dataclass
import json
import logging
import os
from typing import Any

import numpy as np

from pkscf.blocked import BlockedMatrix, BlockedVector

logger = logging.getLogger(__name__)

_CHECKPOINT_FORMAT_VERSION = 1


@dataclass(frozen=True)
class CheckpointRecord:
    e_tot: float
    e_ref: float
    reference: str
    irrep_labels: tuple[str, ...]
    dims: tuple[int, ...]
    doccpi: tuple[int, ...]
    soccpi: tuple[int, ...]
    frzcpi: tuple[int, ...]
    frzvpi: tuple[int, ...]
    iopen: int
    mo_energy: tuple[np.ndarray, ...]
    mo_coeff: tuple[np.ndarray, ...]
    feff: tuple[np.ndarray, ...]

    @property
    def nirrep(self) -> int:
        return len(self.dims)

    @property
    def nso(self) -> int:
        return int(sum(self.dims))

    @property
    def orbital_energies(self) -> tuple[np.ndarray, np.ndarray]:
        """All orbital energies ascending, with the irrep of each."""

        eps = BlockedVector.from_blocks(self.mo_energy)
        values = eps.to_array()
        order = np.argsort(values, kind="stable")
        return values[order], eps.irrep_array()[order]

    def coefficients(self) -> BlockedMatrix:
        return BlockedMatrix.from_blocks(self.mo_coeff, name="C")

    def effective_fock(self) -> BlockedMatrix:
        return BlockedMatrix.from_blocks(self.feff, name="F effective (MO basis)")


def count_open_irreps(soccpi) -> int:
    """Open-shell descriptor ``n*(n+1)`` with ``n`` the number of irreps holding open shells."""

    n = int(np.count_nonzero(np.asarray(soccpi, dtype=np.int64)))
    return n * (n + 1)


class MemorySink:
    """Keeps every record it is handed."""

    def __init__(self):
        self.records: list[CheckpointRecord] = []

    def __call__(self, record: CheckpointRecord) -> None:
        self.records.append(record)

    @property
    def last(self) -> CheckpointRecord | None:
        return self.records[-1] if self.records else None


def save_checkpoint(record: CheckpointRecord, path: str | os.PathLike[str]) -> str:
    meta = {
        "format_version": int(_CHECKPOINT_FORMAT_VERSION),
        "e_tot": float(record.e_tot),
        "e_ref": float(record.e_ref),
        "reference": str(record.reference),
        "irrep_labels": [str(x) for x in record.irrep_labels],
        "dims": [int(x) for x in record.dims],
        "doccpi": [int(x) for x in record.doccpi],
        "soccpi": [int(x) for x in record.soccpi],
        "frzcpi": [int(x) for x in record.frzcpi],
        "frzvpi": [int(x) for x in record.frzvpi],
        "iopen": int(record.iopen),
    }
    payload: dict[str, Any] = {
        "meta_json": np.asarray(json.dumps(meta, sort_keys=True, separators=(",", ":")), dtype=np.str_),
    }
    for h in range(record.nirrep):
        payload[f"C_{h}"] = np.ascontiguousarray(record.mo_coeff[h], dtype=np.float64)
        payload[f"Feff_{h}"] = np.ascontiguousarray(record.feff[h], dtype=np.float64)
        payload[f"eps_{h}"] = np.ascontiguousarray(record.mo_energy[h], dtype=np.float64)

    path_str = os.fspath(path)
    outdir = os.path.dirname(path_str)
    if outdir:
        os.makedirs(outdir, exist_ok=True)
    with open(path_str, "wb") as fobj:
        np.savez_compressed(fobj, **payload)
    logger.info("Wrote SCF checkpoint to %s", path_str)
    return path_str


def load_checkpoint(path: str | os.PathLike[str]) -> CheckpointRecord:
    path_str = os.fspath(path)
    with np.load(path_str, allow_pickle=False) as data:
        if "meta_json" not in data:
            raise ValueError("checkpoint file is missing 'meta_json'")
        meta = json.loads(str(np.asarray(data["meta_json"]).item()))
        if not isinstance(meta, dict):
            raise ValueError("checkpoint metadata must decode to a dictionary")
        fmt_ver = int(meta.get("format_version", -1))
        if fmt_ver != int(_CHECKPOINT_FORMAT_VERSION):
            raise ValueError(
                f"unsupported checkpoint format version {fmt_ver}; expected {_CHECKPOINT_FORMAT_VERSION}"
            )

        dims = tuple(int(x) for x in meta["dims"])
        mo_coeff, feff, mo_energy = [], [], []
        for h, n in enumerate(dims):
            C = np.asarray(data[f"C_{h}"], dtype=np.float64)
            F = np.asarray(data[f"Feff_{h}"], dtype=np.float64)
            e = np.asarray(data[f"eps_{h}"], dtype=np.float64)
            if C.shape != (n, n) or F.shape != (n, n) or e.shape != (n,):
                raise ValueError(f"checkpoint arrays for irrep {h} do not match dimension {n}")
            mo_coeff.append(C)
            feff.append(F)
            mo_energy.append(e)

    return CheckpointRecord(
        e_tot=float(meta["e_tot"]),
        e_ref=float(meta["e_ref"]),
        reference=str(meta["reference"]),
        irrep_labels=tuple(str(x) for x in meta["irrep_labels"]),
        dims=dims,
        doccpi=tuple(int(x) for x in meta["doccpi"]),
        soccpi=tuple(int(x) for x in meta["soccpi"]),
        frzcpi=tuple(int(x) for x in meta["frzcpi"]),
        frzvpi=tuple(int(x) for x in meta["frzvpi"]),
        iopen=int(meta["iopen"]),
        mo_energy=tuple(mo_energy),
        mo_coeff=tuple(mo_coeff),
        feff=tuple(feff),
    )


class NpzCheckpointSink:
    """Writes each record to ``path`` (overwriting)."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = os.fspath(path)

    def __call__(self, record: CheckpointRecord) -> None:
        save_checkpoint(record, self.path)


__all__ = [
    "CheckpointRecord",
    "MemorySink",
    "NpzCheckpointSink",
    "count_open_irreps",
    "load_checkpoint",
    "save_checkpoint",
]
