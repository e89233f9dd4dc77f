from __future__ import annotations

"""Exception and warning types raised by the SCF core."""


class PKSCFError(Exception):
    """Base class for all pkscf errors."""


class ResourceExhausted(PKSCFError, MemoryError):
    """The in-core PK/K supermatrix does not fit in the configured memory budget."""

    def __init__(self, needed_bytes: int, budget_bytes: int):
        self.needed_bytes = int(needed_bytes)
        self.budget_bytes = int(budget_bytes)
        super().__init__(
            f"in-core PK/K needs {self.needed_bytes} bytes "
            f"({self.needed_bytes / 1048576.0:.3f} MiB), budget is {self.budget_bytes} bytes"
        )


class AlgorithmNotImplemented(PKSCFError, NotImplementedError):
    """A declared G-build algorithm has no implementation (fatal)."""

    def __init__(self, algorithm: str, detail: str = ""):
        self.algorithm = str(algorithm)
        msg = f"{self.algorithm} G-matrix construction is not implemented"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class NumericalInstability(PKSCFError, ArithmeticError):
    """A symmetric eigenproblem was handed a non-symmetric block."""


class ConvergenceFailure(UserWarning):
    """Issued when the SCF stops at the iteration cap without converging."""


__all__ = [
    "AlgorithmNotImplemented",
    "ConvergenceFailure",
    "NumericalInstability",
    "PKSCFError",
    "ResourceExhausted",
]
