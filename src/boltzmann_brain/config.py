# src/boltzmann_brain/config.py

from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple, Union

from boltzmann_brain.errors import AnnotationError

"""
Annotation readers and configuration snapshots.

System annotations are untyped scalars (a parser hands over strings, a JSON
document hands over numbers). The ``with_*`` readers coerce them and fall back
to a documented default when the key is absent. :class:`TuningConfig` and
:class:`SamplerConfig` collect the knobs each stage consumes; treat them as
immutable snapshots passed into the tuner and the sampler.

Recognised keys
---------------
==============  =====================================  ====================
key             effect                                 default
==============  =====================================  ====================
``precision``   tuning residual / bracket tolerance    ``1e-9``
``maxiter``     tuning iteration cap                   ``200``
``expectedSize`` expected size targeted by rational    window midpoint
                cumulative tuning
``samples``     number of structures to draw           ``1``
``lowerBound``  lower end of the acceptance window     ``10``
``upperBound``  upper end of the acceptance window     ``200``
``generate``    type to sample                         the initial type
``module``      backend output naming                  ``"Sampler"``
``seed``        sampler seed                           fresh entropy
==============  =====================================  ====================

Examples
--------
>>> from boltzmann_brain.config import with_int, with_float
>>> ann = {"samples": "3", "precision": 1e-6}
>>> with_int(ann, "samples", 1), with_int(ann, "lowerBound", 10)
(3, 10)
>>> with_float(ann, "precision", 1e-9)
1e-06
"""

__all__ = [
    "DEFAULT_PRECISION",
    "DEFAULT_MAXITER",
    "DEFAULT_SAMPLES",
    "DEFAULT_LOWER_BOUND",
    "DEFAULT_UPPER_BOUND",
    "DEFAULT_MODULE",
    "with_int",
    "with_float",
    "with_string",
    "TuningConfig",
    "SamplerConfig",
]

DEFAULT_PRECISION = 1.0e-9
DEFAULT_MAXITER = 200
DEFAULT_SAMPLES = 1
DEFAULT_LOWER_BOUND = 10
DEFAULT_UPPER_BOUND = 200
DEFAULT_MODULE = "Sampler"

Scalar = Union[str, int, float]


# ---------------------------------------------------------------------
# Typed annotation readers
# ---------------------------------------------------------------------

def with_int(ann: Mapping[str, Scalar], key: str, default: Optional[int]) -> Optional[int]:
    """Read an integer annotation; integral floats and numeric strings are accepted."""
    v = ann.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        raise AnnotationError(f"Annotation {key!r} must be an integer, got {v!r}.")
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, str):
        try:
            return int(v.strip())
        except ValueError:
            pass
    raise AnnotationError(f"Annotation {key!r} must be an integer, got {v!r}.")


def with_float(ann: Mapping[str, Scalar], key: str, default: Optional[float]) -> Optional[float]:
    """Read a real-valued annotation; ints and numeric strings are accepted."""
    v = ann.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        raise AnnotationError(f"Annotation {key!r} must be a number, got {v!r}.")
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v.strip())
        except ValueError:
            pass
    raise AnnotationError(f"Annotation {key!r} must be a number, got {v!r}.")


def with_string(ann: Mapping[str, Scalar], key: str, default: Optional[str]) -> Optional[str]:
    v = ann.get(key)
    if v is None:
        return default
    return v if isinstance(v, str) else str(v)


# ---------------------------------------------------------------------
# Configuration snapshots
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class TuningConfig:
    """
    Knobs of the numeric tuner.

    Parameters
    ----------
    precision : float, default=1e-9
        Residual bound of the fixed-point equations and relative width of the
        final singularity bracket.
    maxiter : int, default=200
        Cap on Newton iterations per evaluation and on bracketing steps.
    expected_size : float, optional
        Expected size of ``target`` aimed at by cumulative tuning of rational
        systems. ``None`` means the midpoint of the default window.
    target : str, optional
        Type whose expected size is controlled; defaults to the initial type.
    """
    precision: float = DEFAULT_PRECISION
    maxiter: int = DEFAULT_MAXITER
    expected_size: Optional[float] = None
    target: Optional[str] = None

    def __post_init__(self):
        if not (self.precision > 0):
            raise ValueError("precision must be > 0")
        if self.maxiter < 1:
            raise ValueError("maxiter must be ≥ 1")
        if self.expected_size is not None and not (self.expected_size > 0):
            raise ValueError("expected_size must be > 0")

    @classmethod
    def from_annotations(cls, system) -> "TuningConfig":
        ann = system.annotations
        lb = with_int(ann, "lowerBound", DEFAULT_LOWER_BOUND)
        ub = with_int(ann, "upperBound", DEFAULT_UPPER_BOUND)
        try:
            return cls(
                precision=with_float(ann, "precision", DEFAULT_PRECISION),
                maxiter=with_int(ann, "maxiter", DEFAULT_MAXITER),
                expected_size=with_float(ann, "expectedSize", (lb + ub) / 2.0),
                target=with_string(ann, "generate", system.initial),
            )
        except ValueError as e:
            raise AnnotationError(str(e)) from e


@dataclass(frozen=True)
class SamplerConfig:
    """
    Knobs of the sampler front-end.

    Parameters
    ----------
    samples : int, default=1
        Number of structures to draw.
    lower_bound, upper_bound : int, default=10, 200
        Inclusive acceptance window on structure size.
    generate : str, optional
        Type to sample; ``None`` means the system's initial type.
    module : str, default="Sampler"
        Module name handed to code-generation backends.
    seed : int, optional
        Seed of the sampler's random streams.
    """
    samples: int = DEFAULT_SAMPLES
    lower_bound: int = DEFAULT_LOWER_BOUND
    upper_bound: int = DEFAULT_UPPER_BOUND
    generate: Optional[str] = None
    module: str = DEFAULT_MODULE
    seed: Optional[int] = None

    def __post_init__(self):
        if self.samples < 0:
            raise ValueError("samples must be ≥ 0")
        if self.lower_bound < 0:
            raise ValueError("lowerBound must be ≥ 0")
        if self.lower_bound > self.upper_bound:
            raise ValueError("lowerBound must not exceed upperBound")

    @property
    def window(self) -> Tuple[int, int]:
        return self.lower_bound, self.upper_bound

    @classmethod
    def from_annotations(cls, system) -> "SamplerConfig":
        ann = system.annotations
        try:
            return cls(
                samples=with_int(ann, "samples", DEFAULT_SAMPLES),
                lower_bound=with_int(ann, "lowerBound", DEFAULT_LOWER_BOUND),
                upper_bound=with_int(ann, "upperBound", DEFAULT_UPPER_BOUND),
                generate=with_string(ann, "generate", system.initial),
                module=with_string(ann, "module", DEFAULT_MODULE),
                seed=with_int(ann, "seed", None),
            )
        except ValueError as e:
            raise AnnotationError(str(e)) from e
