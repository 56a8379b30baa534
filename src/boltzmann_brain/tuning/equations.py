# src/boltzmann_brain/tuning/equations.py

"""
Vectorised generating-function equations of a system.

Every type ``T`` contributes one equation

    Y_T = Σ_{c ∈ T}  w_c · z^{|c|} · Π_j Y_j^{e_cj}

where ``w_c`` is the constructor weight, ``|c|`` its atom size and ``e_cj``
the number of times it references type ``j``. The right-hand side is stored
as an exponent matrix so that ``Φ(z, Y)``, its Jacobian ``∂Φ/∂Y`` and
``∂Φ/∂z`` are plain numpy reductions.

Examples
--------
>>> import numpy as np
>>> from boltzmann_brain.system.model import System, Type, Constructor
>>> s = System([Type("T", [Constructor("Leaf", ["@"]), Constructor("Node", ["@", "T", "T"])])])
>>> eqs = Equations(s)
>>> eqs.phi(0.5, np.array([1.0]))
array([1.])
>>> y = eqs.solve(0.25, precision=1e-12, maxiter=50)
>>> round(float(y[0]), 6)
0.267949
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from boltzmann_brain.system.model import System

__all__ = ["Equations", "spectral_radius"]


def spectral_radius(m: np.ndarray) -> float:
    if m.size == 0:
        return 0.0
    return float(np.max(np.abs(np.linalg.eigvals(m))))


class Equations:
    """
    Generating-function equations ``Y = Φ(z, Y)`` of a system.

    Rows of the constructor arrays follow ``system.constructors()`` order;
    columns of ``Y`` follow the system's type table.
    """

    def __init__(self, system: System):
        self.system = system
        self.names: Tuple[str, ...] = system.names
        index = system.index
        pairs = list(system.constructors())
        n, m = len(self.names), len(pairs)

        self.owner = np.array([index[t.name] for t, _ in pairs], dtype=int)
        self.weight = np.array([c.weight for _, c in pairs], dtype=float)
        self.size = np.array([c.size for _, c in pairs], dtype=float)
        self.exps = np.zeros((m, n), dtype=float)
        for k, (_, c) in enumerate(pairs):
            for r in c.refs:
                self.exps[k, index[r]] += 1.0

        # one row per (constructor, referenced type) pair: the term with
        # that factor differentiated away
        rows: List[np.ndarray] = []
        jac_c: List[int] = []
        jac_j: List[int] = []
        mult: List[float] = []
        for k in range(m):
            for j in np.nonzero(self.exps[k])[0]:
                e = self.exps[k].copy()
                e[j] -= 1.0
                rows.append(e)
                jac_c.append(k)
                jac_j.append(int(j))
                mult.append(self.exps[k, j])
        self._jac_exps = np.array(rows, dtype=float).reshape(len(rows), n)
        self._jac_c = np.array(jac_c, dtype=int)
        self._jac_j = np.array(jac_j, dtype=int)
        self._jac_mult = np.array(mult, dtype=float)

    @property
    def n(self) -> int:
        return len(self.names)

    def to_dict(self) -> Dict[str, Any]:
        """
        The equations as a document for an external numeric solver.

        Constructor rows are keyed by name and list the exponent of each
        referenced type, so the solver's answer can be fed back as tuning data.
        """
        rows = []
        for k, (t, c) in enumerate(self.system.constructors()):
            exps = {self.names[j]: int(e) for j, e in enumerate(self.exps[k]) if e}
            rows.append({
                "name": c.name,
                "type": t.name,
                "weight": float(self.weight[k]),
                "size": int(self.size[k]),
                "exponents": exps,
            })
        return {"types": list(self.names), "constructors": rows}

    # ------------- evaluation -------------

    def terms(self, z: float, y: np.ndarray) -> np.ndarray:
        """Value of every constructor's term at ``(z, y)``."""
        return self.weight * np.power(z, self.size) * np.prod(np.power(y[None, :], self.exps), axis=1)

    def phi(self, z: float, y: np.ndarray) -> np.ndarray:
        return np.bincount(self.owner, weights=self.terms(z, y), minlength=self.n)

    def jacobian(self, z: float, y: np.ndarray) -> np.ndarray:
        """``∂Φ_i/∂Y_j`` at ``(z, y)``."""
        jac = np.zeros((self.n, self.n), dtype=float)
        if self._jac_c.size:
            c = self._jac_c
            vals = (
                self._jac_mult
                * self.weight[c]
                * np.power(z, self.size[c])
                * np.prod(np.power(y[None, :], self._jac_exps), axis=1)
            )
            np.add.at(jac, (self.owner[c], self._jac_j), vals)
        return jac

    def dz(self, z: float, y: np.ndarray) -> np.ndarray:
        """``∂Φ/∂z`` at ``(z, y)``."""
        coef = np.where(self.size > 0, self.size * np.power(z, np.maximum(self.size - 1.0, 0.0)), 0.0)
        vals = self.weight * coef * np.prod(np.power(y[None, :], self.exps), axis=1)
        return np.bincount(self.owner, weights=vals, minlength=self.n)

    def residual(self, z: float, y: np.ndarray) -> float:
        return float(np.max(np.abs(self.phi(z, y) - y)))

    # ------------- solving -------------

    def solve(self, z: float, *, precision: float, maxiter: int) -> Optional[np.ndarray]:
        """
        Newton iteration for ``Y = Φ(z, Y)`` started from ``Y = 0``.

        Below the dominant singularity the iterates increase monotonically
        towards the least fixed point and the Jacobian's spectral radius stays
        below 1. Any violation (non-finite values, spectral radius ≥ 1, a
        negative step, a singular Newton matrix) means ``z`` lies past the
        singularity and ``None`` is returned, as it is when ``maxiter``
        iterations do not reach the residual bound
        ``precision · max(1, max|Y|)``.
        """
        n = self.n
        eye = np.eye(n)
        y = np.zeros(n, dtype=float)
        with np.errstate(all="ignore"):
            for _ in range(maxiter):
                f = self.phi(z, y)
                if not np.all(np.isfinite(f)):
                    return None
                r = f - y
                scale = max(1.0, float(np.max(np.abs(y))))
                jac = self.jacobian(z, y)
                if not np.all(np.isfinite(jac)) or spectral_radius(jac) >= 1.0:
                    return None
                if float(np.max(np.abs(r))) <= precision * scale:
                    return y
                try:
                    step = np.linalg.solve(eye - jac, r)
                except np.linalg.LinAlgError:
                    return None
                if not np.all(np.isfinite(step)) or np.any(step < -precision * scale):
                    return None
                y = y + np.maximum(step, 0.0)
        return None

    def derivative(self, z: float, y: np.ndarray) -> np.ndarray:
        """``dY/dz`` at a solution ``(z, y)`` by implicit differentiation."""
        return np.linalg.solve(np.eye(self.n) - self.jacobian(z, y), self.dz(z, y))

    def expected_sizes(self, z: float, y: np.ndarray) -> np.ndarray:
        """Expected Boltzmann size of every type at ``z``: ``z · Y'(z) / Y(z)``."""
        with np.errstate(all="ignore"):
            return z * self.derivative(z, y) / y
