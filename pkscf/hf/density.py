from __future__ import annotations

"""Closed- and open-shell densities from MO coefficients."""

import numpy as np

from pkscf.blocked import BlockedMatrix


def form_D(
    C: BlockedMatrix,
    doccpi,
    soccpi,
    *,
    Dc: BlockedMatrix | None = None,
    Do: BlockedMatrix | None = None,
) -> tuple[BlockedMatrix, BlockedMatrix]:
    """Return ``(Dc, Do)`` built from the docc / socc columns of ``C``.

    ``Dc[h] = C[h][:, :d] C[h][:, :d]ᵗ`` and ``Do[h]`` uses the next
    ``soccpi[h]`` columns. When ``Dc``/``Do`` are given they are overwritten
    and returned.
    """

    doccpi = np.asarray(doccpi, dtype=np.int64).ravel()
    soccpi = np.asarray(soccpi, dtype=np.int64).ravel()
    if doccpi.shape != (C.nirrep,) or soccpi.shape != (C.nirrep,):
        raise ValueError(f"doccpi/soccpi must have {C.nirrep} entries")

    if Dc is None:
        Dc = BlockedMatrix(C.dims, name="D closed")
    if Do is None:
        Do = BlockedMatrix(C.dims, name="D open")

    for h in range(C.nirrep):
        d = int(doccpi[h])
        s = int(soccpi[h])
        if d + s > C.dims[h]:
            raise ValueError(f"irrep {h}: docc+socc={d + s} exceeds dimension {C.dims[h]}")
        Cd = C[h][:, :d]
        Cs = C[h][:, d : d + s]
        Dc[h][:, :] = Cd @ Cd.T
        Do[h][:, :] = Cs @ Cs.T
    return Dc, Do


__all__ = ["form_D"]
