# src/boltzmann_brain/tuning/tuned.py

"""
The tuned system: a checked system decorated with branching probabilities.

A :class:`TunedSystem` is produced once by an oracle and then only read, by
the sampler and by code-generation backends. It may be shared freely across
threads.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple, Union

import numpy as np
import pandas as pd

from boltzmann_brain.errors import InvalidTuningData
from boltzmann_brain.system.checker import CheckResult, SystemType, check
from boltzmann_brain.system.model import System
from boltzmann_brain.system.serialize import constructor_to_dict

__all__ = ["Mode", "TunedSystem", "as_checked"]


class Mode(str, Enum):
    """
    Tuning parametrisation.

    ``REGULAR``     tune at the dominant singularity; the tuned system is the
                    deliverable (``tune`` command).
    ``CUMULATIVE``  tune for driving bounded-size rejection sampling; rational
                    systems are moved below their pole to a target expected size.
    """
    REGULAR = "regular"
    CUMULATIVE = "cumulative"


def as_checked(system: Union[System, CheckResult], allow_unsafe: bool = False) -> CheckResult:
    """Return ``system`` as a :class:`CheckResult`, running the checker if needed."""
    if isinstance(system, CheckResult):
        return system
    return check(system, allow_unsafe=allow_unsafe)


@dataclass(frozen=True, eq=False)
class TunedSystem:
    """
    Branching probabilities of every constructor at the tuning point.

    Parameters
    ----------
    system : System
    system_type : SystemType
    mode : Mode
    singularity : float
        Dominant singularity ρ of the system.
    parameter : float
        Point ``z ≤ ρ`` the probabilities were computed at.
    values : mapping type name -> float
        Generating-function values at ``parameter`` (may be empty for
        externally supplied tunings that omit them).
    probabilities : mapping type name -> tuple of float
        Branching probabilities aligned with each type's constructors.

    Notes
    -----
    ``thresholds(T)`` is the cumulative distribution of ``T``'s constructors
    with the last entry pinned to exactly 1.0, so a uniform draw in ``[0, 1)``
    always selects a constructor.
    """
    system: System
    system_type: SystemType
    mode: Mode
    singularity: float
    parameter: float
    values: Mapping[str, float]
    probabilities: Mapping[str, Tuple[float, ...]]

    def __post_init__(self):
        probs: Dict[str, Tuple[float, ...]] = {}
        for t in self.system:
            ps = self.probabilities.get(t.name)
            if ps is None or len(ps) != len(t.constructors):
                raise InvalidTuningData(f"No probability vector matching the constructors of {t.name!r}.")
            probs[t.name] = tuple(float(p) for p in ps)
        object.__setattr__(self, "probabilities", MappingProxyType(probs))
        object.__setattr__(self, "values", MappingProxyType({k: float(v) for k, v in self.values.items()}))
        object.__setattr__(self, "singularity", float(self.singularity))
        object.__setattr__(self, "parameter", float(self.parameter))

        thresholds: Dict[str, np.ndarray] = {}
        by_name: Dict[str, float] = {}
        for t in self.system:
            ps = probs[t.name]
            cum = np.cumsum(np.asarray(ps, dtype=float))
            cum[-1] = 1.0
            cum.setflags(write=False)
            thresholds[t.name] = cum
            for c, p in zip(t.constructors, ps):
                by_name[c.name] = p
        object.__setattr__(self, "_thresholds", MappingProxyType(thresholds))
        object.__setattr__(self, "_by_name", MappingProxyType(by_name))

    # ------------- lookups -------------

    def probability(self, constructor: str) -> float:
        return self._by_name[constructor]

    def constructor_probabilities(self) -> Mapping[str, float]:
        """Branching probability keyed by constructor name."""
        return self._by_name

    def thresholds(self, type_name: str) -> np.ndarray:
        return self._thresholds[type_name]

    def normalization_error(self) -> float:
        """Largest deviation of a type's probability sum from 1."""
        return max(abs(sum(ps) - 1.0) for ps in self.probabilities.values())

    # ------------- exports -------------

    def to_dict(self) -> Dict[str, Any]:
        """
        Document consumed by code-generation backends and written by ``tune``.

        User types keep their surface syntax; auxiliary sequence/set types are
        listed with their element and the probabilities of ``Nil``/``Cons``.
        """
        types = []
        for t in self.system:
            entry: Dict[str, Any] = {"name": t.name, "value": self.values.get(t.name)}
            if t.is_auxiliary:
                entry["kind"] = t.kind
                entry["element"] = t.element if t.element is not None else "@"
                entry["constructors"] = [
                    {"name": c.name, "probability": p}
                    for c, p in zip(t.constructors, self.probabilities[t.name])
                ]
            else:
                entry["constructors"] = [
                    dict(constructor_to_dict(self.system, c), probability=p)
                    for c, p in zip(t.constructors, self.probabilities[t.name])
                ]
            types.append(entry)
        return {
            "type": self.system_type.value,
            "mode": self.mode.value,
            "singularity": self.singularity,
            "parameter": self.parameter,
            "annotations": dict(self.system.annotations),
            "types": types,
        }

    def frame(self) -> pd.DataFrame:
        """One row per constructor: type, constructor, weight, size, probability, cumulative."""
        rows = []
        for t in self.system:
            for c, p, cum in zip(t.constructors, self.probabilities[t.name], self._thresholds[t.name]):
                rows.append({
                    "type": t.name,
                    "constructor": c.name,
                    "weight": c.weight,
                    "size": c.size,
                    "probability": p,
                    "cumulative": float(cum),
                    "value": self.values.get(t.name, np.nan),
                })
        return pd.DataFrame(rows, columns=["type", "constructor", "weight", "size", "probability", "cumulative", "value"])

    def __repr__(self) -> str:
        return (
            f"TunedSystem(type={self.system_type.value}, mode={self.mode.value}, "
            f"singularity={self.singularity!r}, parameter={self.parameter!r}, types={len(self.system)})"
        )
