from __future__ import annotations

"""Per-iteration diagnostics and the final orbital summary."""

from dataclasses import dataclass
import logging

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    energy: float
    delta_energy: float
    diis_applied: bool
    density_rms: float
    doccpi: tuple[int, ...]
    soccpi: tuple[int, ...]


class LoggingDiagnostics:
    """Diagnostics sink writing one INFO line per iteration."""

    def __init__(self, label: str = "ROHF", log: logging.Logger | None = None):
        self.label = str(label)
        self.log = logger if log is None else log

    def __call__(self, rec: IterationRecord) -> None:
        self.log.info(
            "@%s iteration %3d energy: %20.14f    %20.14f    %20.14f %s",
            self.label,
            rec.iteration,
            rec.energy,
            rec.delta_energy,
            rec.density_rms,
            "DIIS" if rec.diis_applied else "",
        )


class RecordingDiagnostics:
    """Diagnostics sink keeping every record (useful in tests and notebooks)."""

    def __init__(self):
        self.records: list[IterationRecord] = []

    def __call__(self, rec: IterationRecord) -> None:
        self.records.append(rec)


def _occ_line(title: str, counts, labels) -> str:
    body = " ".join(f"{int(n):2d} {lab:>3s}" for n, lab in zip(counts, labels))
    return f"  Final {title} vector = ({body} )"


def _energy_rows(values, irreps, labels, per_row: int = 4) -> list[str]:
    rows = []
    for s in range(0, len(values), per_row):
        chunk = zip(values[s : s + per_row], irreps[s : s + per_row])
        rows.append("      " + "  ".join(f"{float(e):12.6f} {labels[int(h)]:>3s}" for e, h in chunk))
    return rows


def format_summary(
    doccpi,
    soccpi,
    orbital_energies,
    orbital_irreps,
    irrep_labels,
    *,
    mo_coeff=None,
) -> str:
    """Final DOCC/SOCC vectors and the sorted orbital-energy table.

    ``orbital_energies``/``orbital_irreps`` must already be ascending.
    ``mo_coeff`` (per-irrep blocks) adds the orbitals themselves.
    """

    labels = tuple(str(x) for x in irrep_labels)
    values = np.asarray(orbital_energies, dtype=np.float64).ravel()
    irreps = np.asarray(orbital_irreps, dtype=np.int64).ravel()
    ndocc = int(np.sum(doccpi))
    nsocc = int(np.sum(soccpi))

    lines = [_occ_line("DOCC", doccpi, labels), _occ_line("SOCC", soccpi, labels)]
    if mo_coeff is not None:
        lines.append("")
        lines.append("  Molecular orbitals:")
        for h, C in enumerate(mo_coeff):
            C = np.asarray(C, dtype=np.float64)
            if C.size == 0:
                continue
            lines.append(f"    irrep {labels[h]}")
            for row in C:
                lines.append("      " + " ".join(f"{float(x):10.6f}" for x in row))

    lines.append("")
    lines.append("  Orbital energies (a.u.):")
    for title, lo, hi in (
        ("Doubly occupied orbitals", 0, ndocc),
        ("Singly occupied orbitals", ndocc, ndocc + nsocc),
        ("Unoccupied orbitals", ndocc + nsocc, values.shape[0]),
    ):
        lines.append(f"    {title}")
        lines.extend(_energy_rows(values[lo:hi], irreps[lo:hi], labels))
        lines.append("")
    return "\n".join(lines)


__all__ = ["IterationRecord", "LoggingDiagnostics", "RecordingDiagnostics", "format_summary"]
