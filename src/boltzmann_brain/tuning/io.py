# src/boltzmann_brain/tuning/io.py

"""
Tuning-data files.

Two encodings, chosen by file suffix (or ``fmt``):

JSON (default)::

    {"singularity": 0.5, "parameter": 0.5,
     "values": {"T": 1.0},
     "probabilities": {"Leaf": 0.5, "Node": 0.5}}

The document written by the ``tune`` command (:meth:`TunedSystem.to_dict`)
is accepted as well.

CSV (pandas), one row per constructor::

    type,constructor,probability,singularity,parameter,value
    T,Leaf,0.5,0.5,0.5,1.0

Keys are constructor names. Floats are written with their shortest exact
representation and parsed back bit for bit.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple, Union
import json
import math

import numpy as np
import pandas as pd

from boltzmann_brain.config import TuningConfig
from boltzmann_brain.errors import InvalidTuningData, TuningDataMismatch
from boltzmann_brain.system.checker import CheckResult, SystemType
from boltzmann_brain.system.model import System
from .equations import Equations
from .tuned import Mode, TunedSystem, as_checked

__all__ = [
    "TuningData",
    "write_tuning",
    "read_tuning_data",
    "load_tuning",
    "tuning_problem",
    "SUM_TOLERANCE",
]

SUM_TOLERANCE = 1e-6

PathLike = Union[str, Path]


@dataclass
class TuningData:
    """Raw contents of a tuning file, before validation against a system."""
    singularity: Optional[float]
    parameter: Optional[float]
    probabilities: Dict[str, float]
    values: Dict[str, float] = field(default_factory=dict)
    duplicated: Tuple[str, ...] = ()
    mode: Optional[str] = None


def _format(path: PathLike, fmt: Optional[str]) -> str:
    if fmt is None:
        fmt = "csv" if Path(path).suffix.lower() == ".csv" else "json"
    fmt = fmt.lower()
    if fmt not in ("json", "csv"):
        raise ValueError(f"Unknown tuning-file format {fmt!r} (expected 'json' or 'csv').")
    return fmt


# ---------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------

def write_tuning(tuned: TunedSystem, path: PathLike, fmt: Optional[str] = None) -> Path:
    """Write ``tuned``'s tuning data to ``path`` and return the path."""
    path = Path(path)
    if _format(path, fmt) == "csv":
        df = tuned.frame()[["type", "constructor", "probability", "value"]].copy()
        df.insert(3, "singularity", tuned.singularity)
        df.insert(4, "parameter", tuned.parameter)
        df.to_csv(path, index=False)
    else:
        doc = {
            "type": tuned.system_type.value,
            "mode": tuned.mode.value,
            "singularity": tuned.singularity,
            "parameter": tuned.parameter,
            "values": dict(tuned.values),
            "probabilities": dict(tuned.constructor_probabilities()),
        }
        with path.open("w", encoding="utf-8") as fh:
            json.dump(doc, fh, indent=2)
            fh.write("\n")
    return path


# ---------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------

class _Pairs(dict):
    """JSON object remembering the keys it saw more than once."""

    def __init__(self, pairs):
        super().__init__()
        dups = []
        for k, v in pairs:
            if k in self:
                dups.append(k)
            self[k] = v
        self.duplicated = tuple(dups)


def _number(x, what: str) -> float:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        raise InvalidTuningData(f"{what} must be a number, got {x!r}.")
    return float(x)


def _from_document(doc: Mapping) -> TuningData:
    sing = doc.get("singularity")
    param = doc.get("parameter")
    mode = doc.get("mode")
    if mode is not None and mode not in {m.value for m in Mode}:
        raise InvalidTuningData(f"Unknown tuning mode {mode!r}.")
    values: Dict[str, float] = {}
    dups = []

    if "probabilities" in doc:
        probs_doc = doc["probabilities"]
        if not isinstance(probs_doc, Mapping):
            raise InvalidTuningData("'probabilities' must be an object keyed by constructor name.")
        dups.extend(getattr(probs_doc, "duplicated", ()))
        probs = {k: _number(v, f"Probability of {k!r}") for k, v in probs_doc.items()}
        vals_doc = doc.get("values") or {}
        if not isinstance(vals_doc, Mapping):
            raise InvalidTuningData("'values' must be an object keyed by type name.")
        values = {k: _number(v, f"Value of {k!r}") for k, v in vals_doc.items() if v is not None}
    elif isinstance(doc.get("types"), list):
        probs = {}
        for td in doc["types"]:
            if not isinstance(td, Mapping) or "name" not in td:
                raise InvalidTuningData(f"Malformed type entry {td!r}.")
            if td.get("value") is not None:
                values[td["name"]] = _number(td["value"], f"Value of {td['name']!r}")
            for cd in td.get("constructors", []):
                if not isinstance(cd, Mapping) or "name" not in cd or "probability" not in cd:
                    raise InvalidTuningData(f"Malformed constructor entry {cd!r}.")
                if cd["name"] in probs:
                    dups.append(cd["name"])
                probs[cd["name"]] = _number(cd["probability"], f"Probability of {cd['name']!r}")
    else:
        raise InvalidTuningData("A tuning document needs a 'probabilities' object or a 'types' list.")

    return TuningData(
        singularity=None if sing is None else _number(sing, "Singularity"),
        parameter=None if param is None else _number(param, "Parameter"),
        probabilities=probs,
        values=values,
        duplicated=tuple(dups),
        mode=mode,
    )


def _read_json(path: Path) -> TuningData:
    with path.open("r", encoding="utf-8") as fh:
        try:
            doc = json.load(fh, object_pairs_hook=_Pairs)
        except json.JSONDecodeError as e:
            raise InvalidTuningData(f"{path}: not a JSON document ({e}).") from e
    if not isinstance(doc, Mapping):
        raise InvalidTuningData(f"{path}: expected a JSON object.")
    return _from_document(doc)


def _single(df: pd.DataFrame, column: str) -> Optional[float]:
    if column not in df.columns:
        return None
    col = pd.to_numeric(df[column], errors="coerce").dropna().unique()
    if len(col) == 0:
        return None
    if len(col) > 1:
        raise InvalidTuningData(f"Column {column!r} holds more than one value: {sorted(col)!r}.")
    return float(col[0])


def _read_csv(path: Path) -> TuningData:
    try:
        df = pd.read_csv(
            path,
            float_precision="round_trip",
            dtype={"type": str, "constructor": str},
            keep_default_na=False,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise InvalidTuningData(f"{path}: not a tuning table ({e}).") from e

    for col in ("constructor", "probability", "singularity"):
        if col not in df.columns:
            raise InvalidTuningData(f"{path}: missing column {col!r}.")

    probs_col = pd.to_numeric(df["probability"], errors="coerce")
    if probs_col.isna().any():
        bad = df.loc[probs_col.isna(), "constructor"].tolist()
        raise InvalidTuningData(f"Non-numeric probability for {', '.join(bad)}.")

    names = df["constructor"].tolist()
    dups = df.loc[df["constructor"].duplicated(), "constructor"].tolist()
    probs = {name: float(p) for name, p in zip(names, probs_col)}

    values: Dict[str, float] = {}
    if "type" in df.columns and "value" in df.columns:
        vals = pd.to_numeric(df["value"], errors="coerce")
        for t, v in zip(df["type"], vals):
            if not pd.isna(v):
                values[t] = float(v)

    return TuningData(
        singularity=_single(df, "singularity"),
        parameter=_single(df, "parameter"),
        probabilities=probs,
        values=values,
        duplicated=tuple(dups),
    )


def read_tuning_data(path: PathLike, fmt: Optional[str] = None) -> TuningData:
    """Parse a tuning file without validating it against a system."""
    path = Path(path)
    if _format(path, fmt) == "csv":
        return _read_csv(path)
    return _read_json(path)


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------

def load_tuning(
    system: Union[System, CheckResult],
    path: PathLike,
    mode: Mode = Mode.REGULAR,
    fmt: Optional[str] = None,
) -> TunedSystem:
    """
    Read externally computed tuning data and validate it against ``system``.

    Raises
    ------
    TuningDataMismatch
        The constructor names in the file differ from the system's (missing,
        unknown or duplicated keys).
    InvalidTuningData
        Missing or non-positive singularity, negative or non-finite
        probabilities, per-type sums off by more than ``SUM_TOLERANCE``,
        values keyed by unknown types, or a rational system whose file was
        tuned in another mode than ``mode``. Algebraic systems tune to the
        same point in both modes, so their files load under either.
    """
    checked = as_checked(system)
    s = checked.system
    mode = Mode(mode)
    data = read_tuning_data(path, fmt)

    expected = set(s.constructor_names())
    given = set(data.probabilities)
    if given != expected or data.duplicated:
        raise TuningDataMismatch(
            missing=expected - given,
            extra=given - expected,
            duplicated=set(data.duplicated),
        )

    if data.mode is not None and data.mode != mode.value and checked.system_type is SystemType.RATIONAL:
        raise InvalidTuningData(
            f"Tuning data was computed in {data.mode!r} mode but {mode.value!r} was requested; "
            "rational systems tune to different points in the two modes."
        )

    rho = data.singularity
    if rho is None or not math.isfinite(rho) or rho <= 0:
        raise InvalidTuningData(f"The singularity must be present and positive, got {rho!r}.")
    z = rho if data.parameter is None else data.parameter
    if not math.isfinite(z) or z <= 0:
        raise InvalidTuningData(f"The tuning parameter must be positive, got {z!r}.")

    probabilities: Dict[str, Tuple[float, ...]] = {}
    for t in s:
        ps = tuple(data.probabilities[c.name] for c in t.constructors)
        for c, p in zip(t.constructors, ps):
            if not math.isfinite(p) or p < 0:
                raise InvalidTuningData(f"Probability of {c.name!r} must be finite and non-negative, got {p!r}.")
        total = float(np.sum(ps))
        if abs(total - 1.0) > SUM_TOLERANCE:
            raise InvalidTuningData(f"Probabilities of type {t.name!r} sum to {total!r}, not 1.")
        probabilities[t.name] = ps

    unknown = set(data.values) - set(s.names)
    if unknown:
        raise InvalidTuningData(f"Values given for unknown types: {', '.join(sorted(unknown))}.")
    for k, v in data.values.items():
        if not math.isfinite(v) or v <= 0:
            raise InvalidTuningData(f"Value of type {k!r} must be finite and positive, got {v!r}.")

    return TunedSystem(
        system=s,
        system_type=checked.system_type,
        mode=mode,
        singularity=rho,
        parameter=z,
        values=data.values,
        probabilities=probabilities,
    )


# ---------------------------------------------------------------------
# Tuning problems for external solvers
# ---------------------------------------------------------------------

def tuning_problem(
    system: Union[System, CheckResult],
    config: Optional[TuningConfig] = None,
) -> Dict:
    """
    Export the tuning problem of ``system`` for an external numeric solver.

    The document lists the generating-function equations
    (:meth:`Equations.to_dict`) with the solver settings. A solver answers
    with a tuning file keyed by the same constructor names, which
    :func:`load_tuning` validates.

    Examples
    --------
    >>> from boltzmann_brain.system.model import System, Type, Constructor
    >>> s = System([Type("T", [Constructor("Leaf", ["@"]), Constructor("Node", ["@", "T", "T"])])])
    >>> doc = tuning_problem(s)
    >>> [c["exponents"] for c in doc["constructors"]]
    [{}, {'T': 2}]
    """
    checked = as_checked(system)
    config = config or TuningConfig.from_annotations(checked.system)
    doc = {
        "type": checked.system_type.value,
        "precision": config.precision,
        "maxiter": config.maxiter,
    }
    doc.update(Equations(checked.system).to_dict())
    return doc
