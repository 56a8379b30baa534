# src/boltzmann_brain/errors.py

"""
Exception hierarchy shared by every stage of the compiler core.

Each stage raises a typed error instead of handing a partially built value
to the next stage:

- model construction  -> :class:`ModelError`
- annotation readers  -> :class:`AnnotationError`
- checker / policy    -> :class:`CheckError`
- tuner               -> :class:`TuningError`
- sampler (caller cap)-> :class:`SamplingError`
"""

from __future__ import annotations
from typing import Iterable, Sequence, Tuple

__all__ = [
    "BoltzmannError",
    "ModelError",
    "DuplicateName",
    "UnresolvedReference",
    "EmptyType",
    "InvalidArgument",
    "AnnotationError",
    "CheckError",
    "IllFoundedSystem",
    "WarningsAsErrors",
    "TuningError",
    "TuningDidNotConverge",
    "TuningDataMismatch",
    "InvalidTuningData",
    "SamplingError",
    "SamplingAttemptsExceeded",
]


class BoltzmannError(Exception):
    """Base class of all errors raised by boltzmann_brain."""


# ---------------------------------------------------------------------
# Model errors
# ---------------------------------------------------------------------

class ModelError(BoltzmannError):
    """Structural error found while building a :class:`System`."""


class DuplicateName(ModelError):
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"Duplicate {kind} name {name!r}.")


class UnresolvedReference(ModelError):
    def __init__(self, type_name: str, constructor: str, reference: str):
        self.type_name = type_name
        self.constructor = constructor
        self.reference = reference
        super().__init__(
            f"Constructor {constructor!r} of type {type_name!r} references "
            f"undeclared type {reference!r}."
        )


class EmptyType(ModelError):
    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Type {type_name!r} declares no constructors.")


class InvalidArgument(ModelError):
    """Malformed weight, atom size, modifier or annotation value."""


class AnnotationError(BoltzmannError):
    """An annotation is present but holds a value of the wrong kind."""


# ---------------------------------------------------------------------
# Checker errors
# ---------------------------------------------------------------------

class CheckError(BoltzmannError):
    """Raised by the well-foundedness checker or by a caller's policy on its report."""


class IllFoundedSystem(CheckError):
    def __init__(self, type_name: str, reason: str = ""):
        self.type_name = type_name
        self.reason = reason
        msg = f"Ill-founded system: type {type_name!r}"
        if reason:
            msg += f" {reason}"
        super().__init__(msg + ".")


class WarningsAsErrors(CheckError):
    def __init__(self, diagnostics: Sequence):
        self.diagnostics = tuple(diagnostics)
        lines = "; ".join(d.message for d in self.diagnostics)
        super().__init__(f"{len(self.diagnostics)} warning(s) treated as errors: {lines}")


# ---------------------------------------------------------------------
# Tuning errors
# ---------------------------------------------------------------------

class TuningError(BoltzmannError):
    """The system could not be turned into a :class:`TunedSystem`."""


class TuningDidNotConverge(TuningError):
    pass


class TuningDataMismatch(TuningError):
    def __init__(self, missing: Iterable[str] = (), extra: Iterable[str] = (), duplicated: Iterable[str] = ()):
        self.missing: Tuple[str, ...] = tuple(sorted(missing))
        self.extra: Tuple[str, ...] = tuple(sorted(extra))
        self.duplicated: Tuple[str, ...] = tuple(sorted(duplicated))
        parts = []
        if self.missing:
            parts.append("missing " + ", ".join(self.missing))
        if self.extra:
            parts.append("unknown " + ", ".join(self.extra))
        if self.duplicated:
            parts.append("duplicated " + ", ".join(self.duplicated))
        super().__init__("Tuning data does not match the system constructors: " + "; ".join(parts) + ".")


class InvalidTuningData(TuningError):
    pass


# ---------------------------------------------------------------------
# Sampling errors
# ---------------------------------------------------------------------

class SamplingError(BoltzmannError):
    pass


class SamplingAttemptsExceeded(SamplingError):
    def __init__(self, attempts: int, lower: int, upper: int):
        self.attempts = attempts
        self.lower = lower
        self.upper = upper
        super().__init__(
            f"No structure of size in [{lower}, {upper}] after {attempts} attempts; "
            "the tuning and the size window are probably mismatched."
        )
