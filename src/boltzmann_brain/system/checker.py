# src/boltzmann_brain/system/checker.py

"""
Static analysis of a :class:`~boltzmann_brain.system.model.System`.

The checker answers two questions:

1. **Is the system well-founded?**  Every type must be *productive* (it has
   at least one finite structure) and no cycle of size-0 productions may
   exist, since such a cycle yields infinitely many structures of one size.
2. **Is it rational or algebraic?**  A well-founded system is rational when
   every constructor has at most one argument (counting multiplicity) that
   references a type of its owner's strongly connected component; the
   generating functions are then rational and sampling can walk an
   automaton. Otherwise it is algebraic.

Non-fatal findings are reported as severity-tagged :class:`Diagnostic`
records. Whether warnings are fatal is the caller's decision.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

import networkx as nx

from boltzmann_brain.config import (
    DEFAULT_LOWER_BOUND,
    DEFAULT_SAMPLES,
    DEFAULT_UPPER_BOUND,
)
from boltzmann_brain.errors import IllFoundedSystem
from .model import System

__all__ = [
    "SystemType",
    "Severity",
    "Diagnostic",
    "CheckResult",
    "productive_types",
    "nullable_types",
    "zero_size_graph",
    "recursive_arity",
    "classify",
    "check",
]


class SystemType(str, Enum):
    RATIONAL = "rational"
    ALGEBRAIC = "algebraic"
    ILL_FORMED = "ill-formed"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    code: str
    message: str
    type_name: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.severity.value}[{self.code}]: {self.message}"


@dataclass(frozen=True)
class CheckResult:
    """A checked system: its classification plus every diagnostic produced."""
    system: System
    system_type: SystemType
    diagnostics: Tuple[Diagnostic, ...] = ()

    @property
    def warnings(self) -> Tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity is Severity.WARNING)

    @property
    def errors(self) -> Tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity is Severity.ERROR)

    @property
    def well_founded(self) -> bool:
        return self.system_type is not SystemType.ILL_FORMED


# ---------------------------------------------------------------------
# Fixed points over the type table
# ---------------------------------------------------------------------

def _least_fixed_point(system: System, *, zero_size_only: bool) -> Set[str]:
    found: Set[str] = set()
    changed = True
    while changed:
        changed = False
        for t, c in system.constructors():
            if t.name in found:
                continue
            if zero_size_only and c.size > 0:
                continue
            if all(r in found for r in c.refs):
                found.add(t.name)
                changed = True
    return found


def productive_types(system: System) -> Set[str]:
    """Types admitting at least one finite structure."""
    return _least_fixed_point(system, zero_size_only=False)


def nullable_types(system: System) -> Set[str]:
    """Types admitting a structure of size 0."""
    return _least_fixed_point(system, zero_size_only=True)


def zero_size_graph(system: System, nullable: Optional[Set[str]] = None) -> nx.DiGraph:
    """
    Edges ``A -> B`` along which size can stay 0.

    ``A -> B`` is present when a size-0 constructor of ``A`` references ``B``
    and every *other* reference of that constructor is nullable.
    """
    if nullable is None:
        nullable = nullable_types(system)
    g = nx.DiGraph()
    g.add_nodes_from(system.names)
    for t, c in system.constructors():
        if c.size > 0:
            continue
        refs = c.refs
        for i, r in enumerate(refs):
            others = refs[:i] + refs[i + 1:]
            if all(o in nullable for o in others):
                g.add_edge(t.name, r)
    return g


def _on_cycle(g: nx.DiGraph, nodes: Iterable[str]) -> Set[str]:
    sub = g.subgraph(nodes)
    out: Set[str] = set()
    for comp in nx.strongly_connected_components(sub):
        if len(comp) > 1:
            out.update(comp)
    out.update(u for u, v in nx.selfloop_edges(sub))
    return out


# ---------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------

def recursive_arity(system: System) -> Dict[str, int]:
    """
    For every constructor, the number of arguments referencing a type of its
    owner's strongly connected component.
    """
    comp = system.components()
    return {
        c.name: sum(1 for r in c.refs if comp[r] == comp[t.name])
        for t, c in system.constructors()
    }


def classify(system: System) -> SystemType:
    """Rational/algebraic classification of a well-founded system."""
    if all(k <= 1 for k in recursive_arity(system).values()):
        return SystemType.RATIONAL
    return SystemType.ALGEBRAIC


# ---------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------

def _warnings(system: System) -> List[Diagnostic]:
    out: List[Diagnostic] = []
    g = system.reference_graph()
    reachable = {system.initial} | nx.descendants(g, system.initial)

    for t in system.user_types():
        if t.name not in reachable:
            out.append(Diagnostic(
                Severity.WARNING, "DEAD_TYPE",
                f"Type {t.name!r} is not reachable from the initial type {system.initial!r}.",
                t.name,
            ))
        if len(t.constructors) == 1 and not t.constructors[0].refs:
            out.append(Diagnostic(
                Severity.WARNING, "TRIVIAL_TYPE",
                f"Type {t.name!r} has a single constructor referencing no type.",
                t.name,
            ))

    defaults = {
        "samples": DEFAULT_SAMPLES,
        "lowerBound": DEFAULT_LOWER_BOUND,
        "upperBound": DEFAULT_UPPER_BOUND,
    }
    missing = [k for k in defaults if k not in system.annotations]
    if missing:
        applied = ", ".join(f"@{k} = {defaults[k]}" for k in missing)
        out.append(Diagnostic(
            Severity.WARNING, "MISSING_METADATA",
            f"No explicit size/sample annotations; using defaults {applied}.",
        ))
    return out


# ---------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------

def check(system: System, allow_unsafe: bool = False) -> CheckResult:
    """
    Check well-foundedness, classify the system and collect warnings.

    Parameters
    ----------
    system : System
        A resolved system.
    allow_unsafe : bool, default=False
        Do not fail on an ill-founded system; return it classified as
        ``ILL_FORMED`` with error-severity diagnostics instead. Whatever is
        done with such a system afterwards is the caller's responsibility.

    Returns
    -------
    CheckResult

    Raises
    ------
    IllFoundedSystem
        Naming the first offending type in table order, unless ``allow_unsafe``.

    Examples
    --------
    >>> from boltzmann_brain.system.model import System, Type, Constructor
    >>> loop = System([Type("T", [Constructor("Wrap", ["T"]), Constructor("Leaf", ["@"])])])
    >>> check(loop, allow_unsafe=True).system_type
    <SystemType.ILL_FORMED: 'ill-formed'>
    """
    errors: List[Diagnostic] = []

    productive = productive_types(system)
    for t in system:
        if t.name not in productive:
            errors.append(Diagnostic(
                Severity.ERROR, "NON_PRODUCTIVE",
                f"Type {t.name!r} admits no finite structure.",
                t.name,
            ))

    nullable = nullable_types(system)
    cyclic = _on_cycle(zero_size_graph(system, nullable), productive)
    for t in system:
        if t.name in cyclic:
            errors.append(Diagnostic(
                Severity.ERROR, "ZERO_SIZE_CYCLE",
                f"Type {t.name!r} lies on a cycle of size-0 productions.",
                t.name,
            ))

    warnings = _warnings(system)

    if errors:
        if not allow_unsafe:
            first = min(errors, key=lambda d: system.index[d.type_name])
            reason = "admits no finite structure" if first.code == "NON_PRODUCTIVE" \
                else "lies on a cycle of size-0 productions"
            raise IllFoundedSystem(first.type_name, reason)
        return CheckResult(system, SystemType.ILL_FORMED, tuple(errors + warnings))

    return CheckResult(system, classify(system), tuple(warnings))
