from __future__ import annotations

"""Immutable SCF options.

Defaults that depend on the machine (the in-core memory budget) can be set
through environment variables:

- ``PKSCF_MEMORY_GIB``: in-core PK/K budget in GiB (default 2.0). A value
  ``<= 0`` disables the budget check.
"""

from dataclasses import dataclass
import os


ALGORITHMS = ("PK", "OUT_OF_CORE", "DIRECT", "DF", "CD")
REFERENCES = ("ROHF", "RHF")


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except Exception:
        return float(default)


_PKSCF_MEMORY_GIB_DEFAULT = _env_float("PKSCF_MEMORY_GIB", 2.0)


def default_memory_budget_bytes() -> int | None:
    gib = float(_PKSCF_MEMORY_GIB_DEFAULT)
    if gib <= 0.0:
        return None
    return int(gib * (1 << 30))


def _as_counts(name: str, value) -> tuple[int, ...] | None:
    if value is None:
        return None
    out = tuple(int(v) for v in value)
    if any(v < 0 for v in out):
        raise ValueError(f"{name} entries must be >= 0, got {out}")
    return out


@dataclass(frozen=True)
class SCFOptions:
    """Options recognised by :class:`pkscf.hf.driver.SCFDriver`.

    ``docc``/``socc`` pin the per-irrep occupations; when both are ``None``
    the occupations are re-selected by aufbau on every iteration.
    """

    algorithm: str = "PK"
    reference: str = "ROHF"
    multiplicity: int = 1
    energy_convergence_threshold: float = 1e-10
    max_iterations: int = 50
    diis_enabled: bool = True
    diis_min_vectors: int = 2
    diis_max_vectors: int = 8
    diis_period: int = 1
    memory_budget_bytes: int | None = None
    docc: tuple[int, ...] | None = None
    socc: tuple[int, ...] | None = None
    nfrozen_core: int = 0
    nfrozen_virtual: int = 0
    print_mos: bool = False

    def __post_init__(self):
        algorithm = str(self.algorithm).strip().upper()
        if algorithm not in ALGORITHMS:
            raise ValueError(f"algorithm must be one of {ALGORITHMS}, got {self.algorithm!r}")
        object.__setattr__(self, "algorithm", algorithm)

        reference = str(self.reference).strip().upper()
        if reference not in REFERENCES:
            raise ValueError(f"reference must be one of {REFERENCES}, got {self.reference!r}")
        object.__setattr__(self, "reference", reference)

        if int(self.multiplicity) < 1:
            raise ValueError("multiplicity must be >= 1")
        if reference == "RHF" and int(self.multiplicity) != 1:
            raise ValueError("RHF requires multiplicity 1")
        if not float(self.energy_convergence_threshold) > 0.0:
            raise ValueError("energy_convergence_threshold must be > 0")
        if int(self.max_iterations) < 1:
            raise ValueError("max_iterations must be >= 1")
        if int(self.diis_min_vectors) < 0:
            raise ValueError("diis_min_vectors must be >= 0")
        if int(self.diis_max_vectors) < 2:
            raise ValueError("diis_max_vectors must be >= 2")
        if int(self.diis_period) < 1:
            raise ValueError("diis_period must be >= 1")
        if int(self.nfrozen_core) < 0 or int(self.nfrozen_virtual) < 0:
            raise ValueError("nfrozen_core/nfrozen_virtual must be >= 0")

        if self.memory_budget_bytes is None:
            object.__setattr__(self, "memory_budget_bytes", default_memory_budget_bytes())
        elif int(self.memory_budget_bytes) <= 0:
            object.__setattr__(self, "memory_budget_bytes", None)
        else:
            object.__setattr__(self, "memory_budget_bytes", int(self.memory_budget_bytes))

        docc = _as_counts("docc", self.docc)
        socc = _as_counts("socc", self.socc)
        if (docc is None) != (socc is None):
            raise ValueError("docc and socc must be given together")
        if docc is not None and len(docc) != len(socc):
            raise ValueError("docc and socc must have one entry per irrep")
        object.__setattr__(self, "docc", docc)
        object.__setattr__(self, "socc", socc)

    @property
    def fixed_occupation(self) -> bool:
        return self.docc is not None


__all__ = ["ALGORITHMS", "REFERENCES", "SCFOptions", "default_memory_budget_bytes"]
