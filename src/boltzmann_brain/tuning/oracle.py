# src/boltzmann_brain/tuning/oracle.py

"""
Tuning oracles.

An :class:`Oracle` turns a checked system into a :class:`TunedSystem`. Two
implementations share the interface and are picked by caller configuration
(:func:`select_oracle`), never by the sampler:

- :class:`IterativeOracle`   in-process Newton/bisection solver (numpy + SciPy)
- :class:`TuningFileOracle`  externally precomputed tuning data, validated
                             against the system (see :mod:`.io`)

Iterative algorithm
-------------------
1. ``solve(z)``: Newton iteration for ``Y = Φ(z, Y)`` from ``Y = 0``; fails
   past the dominant singularity ρ.
2. Bracket ρ by doubling from 1, then bisect until the bracket's relative
   width is below ``precision``.
3. Polish the critical point with :func:`scipy.optimize.root` on the fold
   system ``Φ(z,Y) − Y = 0, (J − I)v = 0, Σv = 1``; keep the bisection
   point when polishing fails (poles of rational systems).
4. ``CUMULATIVE`` tuning of rational systems moves ``z`` below the pole so that
   the target type's expected size ``z·Y'(z)/Y(z)`` equals
   ``config.expected_size`` (:func:`scipy.optimize.brentq`).
"""

from __future__ import annotations
from typing import Dict, Optional, Tuple, Union

import numpy as np
from scipy.optimize import brentq, root

from boltzmann_brain.config import DEFAULT_LOWER_BOUND, DEFAULT_UPPER_BOUND, TuningConfig
from boltzmann_brain.errors import TuningDidNotConverge
from boltzmann_brain.system.checker import CheckResult, SystemType
from boltzmann_brain.system.model import System
from .equations import Equations
from .tuned import Mode, TunedSystem, as_checked

__all__ = [
    "Oracle",
    "IterativeOracle",
    "TuningFileOracle",
    "select_oracle",
    "tune",
]

_MAX_DOUBLINGS = 64


class Oracle:
    """Abstracts the tuning computation: checked system -> tuned system."""

    def tune(self, checked: CheckResult, mode: Mode, config: TuningConfig) -> TunedSystem:  # pragma: no cover - abstract
        raise NotImplementedError


class IterativeOracle(Oracle):
    """In-process fixed-point solver."""

    def tune(self, checked: CheckResult, mode: Mode, config: TuningConfig) -> TunedSystem:
        system = checked.system
        eqs = Equations(system)
        rho, y_rho = self.singularity(eqs, config)

        z, y = rho, y_rho
        if mode is Mode.CUMULATIVE and checked.system_type is SystemType.RATIONAL:
            z, y = self._expected_size_point(eqs, rho, y_rho, config)

        return build_tuned(checked, eqs, mode, rho, z, y)

    # ------------- singularity -------------

    def singularity(self, eqs: Equations, config: TuningConfig) -> Tuple[float, np.ndarray]:
        """Dominant singularity ρ and the values ``Y(ρ)`` (or just below ρ for poles)."""
        prec, maxiter = config.precision, config.maxiter

        y0 = eqs.solve(0.0, precision=prec, maxiter=maxiter)
        if y0 is None:
            raise TuningDidNotConverge(
                "The equations have no finite solution at z = 0; the system is not well-founded."
            )

        lo, y_lo = 0.0, y0
        hi = 1.0
        doublings = 0
        while True:
            y_hi = eqs.solve(hi, precision=prec, maxiter=maxiter)
            if y_hi is None:
                break
            lo, y_lo = hi, y_hi
            hi *= 2.0
            doublings += 1
            if doublings > _MAX_DOUBLINGS:
                raise TuningDidNotConverge(
                    "No finite singularity found: the system describes a finite class."
                )

        steps = 0
        while hi - lo > prec * hi:
            if steps >= maxiter:
                raise TuningDidNotConverge(
                    f"Singularity bracket [{lo!r}, {hi!r}] did not shrink below "
                    f"precision {prec!r} within {maxiter} iterations."
                )
            mid = 0.5 * (lo + hi)
            y_mid = eqs.solve(mid, precision=prec, maxiter=maxiter)
            if y_mid is None:
                hi = mid
            else:
                lo, y_lo = mid, y_mid
            steps += 1

        if lo <= 0.0:
            raise TuningDidNotConverge("No convergent tuning point above z = 0.")

        polished = self._polish(eqs, lo, hi, y_lo, prec)
        return polished if polished is not None else (lo, y_lo)

    @staticmethod
    def _polish(eqs: Equations, lo: float, hi: float, y_lo: np.ndarray, prec: float) -> Optional[Tuple[float, np.ndarray]]:
        n = eqs.n
        with np.errstate(all="ignore"):
            w, vecs = np.linalg.eig(eqs.jacobian(lo, y_lo))
            k = int(np.argmin(np.abs(w - 1.0)))
            v = np.abs(np.real(vecs[:, k]))
            if not np.all(np.isfinite(v)) or v.sum() <= 0:
                return None
            v = v / v.sum()

            def fold(x: np.ndarray) -> np.ndarray:
                z, y, u = x[0], x[1:n + 1], x[n + 1:]
                return np.concatenate([
                    eqs.phi(z, y) - y,
                    eqs.jacobian(z, y) @ u - u,
                    [u.sum() - 1.0],
                ])

            sol = root(fold, np.concatenate([[lo], y_lo, v]), method="hybr")
            if not sol.success or not np.all(np.isfinite(sol.x)):
                return None
            z, y = float(sol.x[0]), sol.x[1:n + 1]
            if z <= 0 or np.any(y <= 0):
                return None
            scale = max(1.0, float(np.max(np.abs(y))))
            # near a square-root singularity Newton stalls within ~sqrt(precision)
            # of the fold, so the bisection point may sit that far past rho
            slack = np.sqrt(prec)
            if not (lo - slack * hi <= z <= hi + prec * hi):
                return None
            if np.any(y < y_lo - slack * scale):
                return None
            if eqs.residual(z, y) > prec * scale:
                return None
        return z, y

    # ------------- expected size -------------

    def _expected_size_point(
        self, eqs: Equations, rho: float, y_rho: np.ndarray, config: TuningConfig
    ) -> Tuple[float, np.ndarray]:
        system = eqs.system
        target = config.target or system.initial
        if target not in system:
            raise ValueError(f"Unknown tuning target type {target!r}.")
        t = system.index[target]
        goal = config.expected_size
        if goal is None:
            goal = (DEFAULT_LOWER_BOUND + DEFAULT_UPPER_BOUND) / 2.0
        prec, maxiter = config.precision, config.maxiter

        cache: Dict[float, np.ndarray] = {rho: y_rho}

        def values_at(z: float) -> np.ndarray:
            y = cache.get(z)
            if y is None:
                y = eqs.solve(z, precision=prec, maxiter=maxiter)
                if y is None:
                    raise TuningDidNotConverge(f"No fixed point at z = {z!r} below the singularity.")
                cache[z] = y
            return y

        def excess(z: float) -> float:
            e = float(eqs.expected_sizes(z, values_at(z))[t])
            return e - goal if np.isfinite(e) else np.inf

        if excess(rho) <= 0:
            return rho, y_rho

        a = rho * 1e-6
        if excess(a) >= 0:
            raise TuningDidNotConverge(
                f"Expected size {goal!r} of {target!r} is below the smallest achievable expected size."
            )
        try:
            z = brentq(excess, a, rho, xtol=prec * rho, maxiter=maxiter)
        except RuntimeError as e:
            raise TuningDidNotConverge(f"Expected-size tuning did not converge: {e}") from e
        return z, values_at(z)


def build_tuned(
    checked: CheckResult, eqs: Equations, mode: Mode, rho: float, z: float, y: np.ndarray
) -> TunedSystem:
    """Branching probabilities from the solution ``y`` at ``z``."""
    system = checked.system
    for name, v in zip(eqs.names, y):
        if not np.isfinite(v) or v <= 0:
            raise TuningDidNotConverge(
                f"Type {name!r} has generating-function value {float(v)!r} at the tuning point."
            )
    with np.errstate(all="ignore"):
        terms = eqs.terms(z, y)
    probabilities: Dict[str, Tuple[float, ...]] = {}
    k = 0
    for t in system:
        m = len(t.constructors)
        chunk = terms[k:k + m]
        total = float(chunk.sum())
        if not np.isfinite(total) or total <= 0:
            raise TuningDidNotConverge(f"Type {t.name!r} has no positive constructor term at the tuning point.")
        probabilities[t.name] = tuple(float(p) for p in chunk / total)
        k += m
    return TunedSystem(
        system=system,
        system_type=checked.system_type,
        mode=mode,
        singularity=rho,
        parameter=z,
        values={name: float(v) for name, v in zip(eqs.names, y)},
        probabilities=probabilities,
    )


class TuningFileOracle(Oracle):
    """Externally precomputed tuning data (JSON or CSV), validated on load."""

    def __init__(self, path: str, fmt: Optional[str] = None):
        self.path = path
        self.fmt = fmt

    def tune(self, checked: CheckResult, mode: Mode, config: TuningConfig) -> TunedSystem:
        from .io import load_tuning
        return load_tuning(checked, self.path, mode=mode, fmt=self.fmt)


def select_oracle(tuning_file: Optional[str] = None) -> Oracle:
    """Use the tuning file when one is given, else the in-process solver."""
    if tuning_file:
        return TuningFileOracle(tuning_file)
    return IterativeOracle()


def tune(
    system: Union[System, CheckResult],
    mode: Mode = Mode.REGULAR,
    config: Optional[TuningConfig] = None,
    *,
    oracle: Optional[Oracle] = None,
) -> TunedSystem:
    """
    Tune a system.

    Parameters
    ----------
    system : System or CheckResult
        A plain system is checked first (ill-founded systems are rejected).
    mode : Mode, default=Mode.REGULAR
    config : TuningConfig, optional
        Defaults to :meth:`TuningConfig.from_annotations`.
    oracle : Oracle, optional
        Defaults to :class:`IterativeOracle`.

    Raises
    ------
    TuningDidNotConverge, TuningDataMismatch, InvalidTuningData
        No partially tuned system is ever returned.

    Examples
    --------
    >>> from boltzmann_brain.system.model import System, Type, Constructor
    >>> s = System([Type("T", [Constructor("Leaf", ["@"]), Constructor("Node", ["@", "T", "T"])])])
    >>> ts = tune(s)
    >>> round(ts.singularity, 6), [round(p, 4) for p in ts.probabilities["T"]]
    (0.5, [0.5, 0.5])
    """
    checked = as_checked(system)
    if config is None:
        config = TuningConfig.from_annotations(checked.system)
    return (oracle or IterativeOracle()).tune(checked, Mode(mode), config)
