"""pkscf: symmetry-blocked ROHF with a PK supermatrix Fock build."""

from importlib.metadata import PackageNotFoundError, version as _dist_version

from pkscf.basis import SOBasis
from pkscf.blocked import BlockedMatrix, BlockedVector
from pkscf.config import SCFOptions
from pkscf.errors import (
    AlgorithmNotImplemented,
    ConvergenceFailure,
    NumericalInstability,
    PKSCFError,
    ResourceExhausted,
)
from pkscf.hf import SCFDriver, SCFResult, SCFState, build_pk, run_scf
from pkscf.integrals import IntegralChunk, chunked_records, unique_integrals

try:
    __version__ = _dist_version("pkscf")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Core types
    "BlockedMatrix",
    "BlockedVector",
    "IntegralChunk",
    "SCFOptions",
    "SOBasis",
    # Errors
    "AlgorithmNotImplemented",
    "ConvergenceFailure",
    "NumericalInstability",
    "PKSCFError",
    "ResourceExhausted",
    # Drivers
    "SCFDriver",
    "SCFResult",
    "SCFState",
    "build_pk",
    "chunked_records",
    "run_scf",
    "unique_integrals",
]
