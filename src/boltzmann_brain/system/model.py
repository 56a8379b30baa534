# src/boltzmann_brain/system/model.py

"""
In-memory model of a combinatorial specification.

A :class:`System` is a flat, ordered table of named :class:`Type` objects.
Each type owns its :class:`Constructor` objects and each constructor refers to
other types *by name* through :class:`Ref` arguments, so recursive and
mutually recursive specifications never create ownership cycles.

Arguments
---------
- ``Ref("T")``     reference to the declared type ``T``
- ``Atom(k)``      atomic unit of size ``k`` (default 1)
- ``Epsilon()``    neutral unit of size 0
- ``Seq(arg)``     zero or more copies of ``arg`` (a ``Ref`` or an ``Atom``)
- ``MSet(arg)``    zero or more copies, unordered

``Seq``/``MSet`` never survive construction: the system desugars them into
auxiliary recursive types ``Seq(T) = Seq(T).Nil | Seq(T).Cons(T, Seq(T))``.

Examples
--------
>>> from boltzmann_brain.system.model import System, Type, Constructor, Atom
>>> trees = System([
...     Type("T", [
...         Constructor("Leaf", [Atom()]),
...         Constructor("Node", [Atom(), "T", "T"]),
...     ]),
... ])
>>> trees.initial
'T'
>>> trees["T"].constructors[1].refs
('T', 'T')
>>> trees.constructor_names()
('Leaf', 'Node')
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union
import math

import networkx as nx

from boltzmann_brain.errors import (
    DuplicateName,
    EmptyType,
    InvalidArgument,
    ModelError,
    UnresolvedReference,
)

__all__ = [
    "Ref",
    "Atom",
    "Epsilon",
    "Seq",
    "MSet",
    "Arg",
    "Constructor",
    "Type",
    "System",
    "to_arg",
    "PLAIN",
    "SEQUENCE",
    "SET",
]

Scalar = Union[str, int, float]

PLAIN = "plain"
SEQUENCE = "sequence"
SET = "set"


# ---------------------------------------------------------------------
# Arguments
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Ref:
    """Reference to another type of the system, by name."""
    type: str

    def __str__(self) -> str:
        return self.type


@dataclass(frozen=True)
class Atom:
    """Atomic unit contributing ``size`` to the size of a structure."""
    size: int = 1

    def __post_init__(self):
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size < 1:
            raise InvalidArgument(f"Atom size must be a positive integer, got {self.size!r}.")

    def __str__(self) -> str:
        return "@" if self.size == 1 else f"@{self.size}"


@dataclass(frozen=True)
class Epsilon:
    """Neutral unit of size 0."""

    def __str__(self) -> str:
        return "_"


def _check_modifier_arg(kind: str, arg) -> Union[Ref, Atom]:
    arg = to_arg(arg)
    if not isinstance(arg, (Ref, Atom)):
        raise InvalidArgument(f"{kind}(...) expects a type reference or an atom, got {arg!r}.")
    return arg


@dataclass(frozen=True)
class Seq:
    """Zero or more copies of ``arg`` (ordered)."""
    arg: Union[Ref, Atom]

    def __post_init__(self):
        object.__setattr__(self, "arg", _check_modifier_arg("Seq", self.arg))

    def __str__(self) -> str:
        return f"Seq({self.arg})"


@dataclass(frozen=True)
class MSet:
    """Zero or more copies of ``arg`` (unordered)."""
    arg: Union[Ref, Atom]

    def __post_init__(self):
        object.__setattr__(self, "arg", _check_modifier_arg("Set", self.arg))

    def __str__(self) -> str:
        return f"Set({self.arg})"


Arg = Union[Ref, Atom, Epsilon, Seq, MSet]


def to_arg(x) -> Arg:
    """
    Coerce shorthand into an argument.

    Strings are read as ``"@"`` (unit atom), ``"_"`` (epsilon) or a type name.

    >>> to_arg("@"), to_arg("_"), to_arg("T")
    (Atom(size=1), Epsilon(), Ref(type='T'))
    """
    if isinstance(x, (Ref, Atom, Epsilon, Seq, MSet)):
        return x
    if isinstance(x, str):
        if x == "@":
            return Atom()
        if x == "_":
            return Epsilon()
        if not x:
            raise InvalidArgument("Empty type reference.")
        return Ref(x)
    raise InvalidArgument(f"Unsupported constructor argument {x!r}.")


# ---------------------------------------------------------------------
# Constructors & types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Constructor:
    """
    One production rule of a type.

    Parameters
    ----------
    name : str
        Symbolic name, unique across the whole system.
    args : sequence of arguments
        Ordered arguments; strings are coerced with :func:`to_arg`.
    weight : float, default=1.0
        Positive multiplier of the constructor's generating-function term.
    """
    name: str
    args: Tuple[Arg, ...] = ()
    weight: float = 1.0

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise InvalidArgument(f"Constructor name must be a non-empty string, got {self.name!r}.")
        object.__setattr__(self, "args", tuple(to_arg(a) for a in self.args))
        try:
            w = float(self.weight)
        except (TypeError, ValueError):
            raise InvalidArgument(f"Constructor {self.name!r} has a non-numeric weight {self.weight!r}.")
        if not math.isfinite(w) or w <= 0:
            raise InvalidArgument(f"Constructor {self.name!r} needs a positive weight, got {self.weight!r}.")
        object.__setattr__(self, "weight", w)

    @property
    def size(self) -> int:
        """Number of atomic units the constructor itself contributes."""
        return sum(a.size for a in self.args if isinstance(a, Atom))

    @property
    def refs(self) -> Tuple[str, ...]:
        """Referenced type names, in argument order (with repetitions)."""
        return tuple(a.type for a in self.args if isinstance(a, Ref))

    def __str__(self) -> str:
        inner = ", ".join(str(a) for a in self.args)
        return f"{self.name}({inner})" if inner else self.name


@dataclass(frozen=True)
class Type:
    """
    A named type owning an ordered, non-empty sequence of constructors.

    ``kind``, ``element`` and ``element_size`` are only set on the auxiliary
    types the system creates for ``Seq``/``MSet`` arguments.
    """
    name: str
    constructors: Tuple[Constructor, ...] = ()
    kind: str = PLAIN
    element: Optional[str] = None
    element_size: int = 0

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise InvalidArgument(f"Type name must be a non-empty string, got {self.name!r}.")
        object.__setattr__(self, "constructors", tuple(self.constructors))

    @property
    def is_auxiliary(self) -> bool:
        return self.kind != PLAIN

    def __str__(self) -> str:
        return f"{self.name} = " + " | ".join(str(c) for c in self.constructors)


def _aux_name(modifier: Union[Seq, MSet]) -> str:
    prefix = "Seq" if isinstance(modifier, Seq) else "Set"
    return f"{prefix}({modifier.arg})"


def _aux_type(modifier: Union[Seq, MSet]) -> Type:
    name = _aux_name(modifier)
    elem = modifier.arg
    return Type(
        name=name,
        constructors=(
            Constructor(f"{name}.Nil", (Epsilon(),)),
            Constructor(f"{name}.Cons", (elem, Ref(name))),
        ),
        kind=SEQUENCE if isinstance(modifier, Seq) else SET,
        element=elem.type if isinstance(elem, Ref) else None,
        element_size=elem.size if isinstance(elem, Atom) else 0,
    )


# ---------------------------------------------------------------------
# System
# ---------------------------------------------------------------------

class System:
    """
    A resolved, immutable combinatorial specification.

    Parameters
    ----------
    types : iterable of Type
        User types in declaration order; the first one is the initial type.
    annotations : mapping, optional
        System-level configuration (string keys, ``str``/``int``/``float`` values).

    Raises
    ------
    DuplicateName, UnresolvedReference, EmptyType, InvalidArgument
        On any structural problem; nothing is analysed before the model is sound.
    """

    def __init__(self, types: Iterable[Type], annotations: Optional[Mapping[str, Scalar]] = None):
        declared: List[Type] = list(types)
        if not declared:
            raise ModelError("A system needs at least one type.")

        user_names = set()
        for t in declared:
            if not isinstance(t, Type):
                raise InvalidArgument(f"Expected a Type, got {t!r}.")
            if t.name in user_names:
                raise DuplicateName("type", t.name)
            if t.is_auxiliary:
                raise InvalidArgument(f"Type {t.name!r} cannot be declared with kind {t.kind!r}.")
            user_names.add(t.name)

        table: Dict[str, Type] = {}
        aux: Dict[str, Type] = {}
        for t in declared:
            if not t.constructors:
                raise EmptyType(t.name)
            ctors = tuple(self._desugar(t, c, user_names, aux) for c in t.constructors)
            table[t.name] = replace(t, constructors=ctors)

        for name, t in aux.items():
            if name in table:
                raise DuplicateName("type", name)
            table[name] = t

        owners: Dict[str, str] = {}
        for t in table.values():
            for c in t.constructors:
                if c.name in owners:
                    raise DuplicateName("constructor", c.name)
                owners[c.name] = t.name
                for r in c.refs:
                    if r not in table:
                        raise UnresolvedReference(t.name, c.name, r)

        self._types: Mapping[str, Type] = MappingProxyType(table)
        self._index: Mapping[str, int] = MappingProxyType({n: i for i, n in enumerate(table)})
        self._owners: Mapping[str, str] = MappingProxyType(owners)
        self._initial: str = declared[0].name
        self._annotations: Mapping[str, Scalar] = MappingProxyType(self._check_annotations(annotations or {}))
        self._graph: Optional[nx.DiGraph] = None
        self._components: Optional[Mapping[str, int]] = None

    @staticmethod
    def _desugar(t: Type, c: Constructor, user_names, aux: Dict[str, Type]) -> Constructor:
        if not isinstance(c, Constructor):
            raise InvalidArgument(f"Type {t.name!r} holds a non-constructor {c!r}.")
        args: List[Arg] = []
        changed = False
        for a in c.args:
            if isinstance(a, (Seq, MSet)):
                if isinstance(a.arg, Ref) and a.arg.type not in user_names:
                    raise UnresolvedReference(t.name, c.name, a.arg.type)
                name = _aux_name(a)
                if name not in aux:
                    aux[name] = _aux_type(a)
                args.append(Ref(name))
                changed = True
            else:
                args.append(a)
        return replace(c, args=tuple(args)) if changed else c

    @staticmethod
    def _check_annotations(annotations: Mapping) -> Dict[str, Scalar]:
        out: Dict[str, Scalar] = {}
        for k, v in annotations.items():
            if not isinstance(k, str):
                raise InvalidArgument(f"Annotation keys must be strings, got {k!r}.")
            if not isinstance(v, (str, int, float)):
                raise InvalidArgument(f"Annotation {k!r} must be a string or a number, got {v!r}.")
            out[k] = v
        return out

    # ------------- table access -------------

    @property
    def types(self) -> Mapping[str, Type]:
        return self._types

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._types)

    @property
    def index(self) -> Mapping[str, int]:
        """Position of every type in the flat type table."""
        return self._index

    @property
    def initial(self) -> str:
        return self._initial

    @property
    def annotations(self) -> Mapping[str, Scalar]:
        return self._annotations

    def __getitem__(self, name: str) -> Type:
        return self._types[name]

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[Type]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def user_types(self) -> Tuple[Type, ...]:
        return tuple(t for t in self if not t.is_auxiliary)

    def constructors(self) -> Iterator[Tuple[Type, Constructor]]:
        """Yield ``(type, constructor)`` pairs in table order."""
        for t in self:
            for c in t.constructors:
                yield t, c

    def constructor_names(self) -> Tuple[str, ...]:
        return tuple(self._owners)

    def owner(self, constructor: str) -> str:
        """Name of the type declaring ``constructor``."""
        return self._owners[constructor]

    # ------------- graph views -------------

    def reference_graph(self) -> nx.DiGraph:
        """
        Frozen directed graph with an edge ``A -> B`` whenever a constructor
        of ``A`` references ``B``; edge attribute ``constructors`` lists them.
        """
        if self._graph is None:
            g = nx.DiGraph()
            g.add_nodes_from(self._types)
            for t, c in self.constructors():
                for r in set(c.refs):
                    if g.has_edge(t.name, r):
                        g[t.name][r]["constructors"].append(c.name)
                    else:
                        g.add_edge(t.name, r, constructors=[c.name])
            self._graph = nx.freeze(g)
        return self._graph

    def components(self) -> Mapping[str, int]:
        """Strongly connected component id of every type in the reference graph."""
        if self._components is None:
            cond = nx.condensation(self.reference_graph())
            self._components = MappingProxyType(dict(cond.graph["mapping"]))
        return self._components

    def __repr__(self) -> str:
        return f"System(types={list(self._types)!r}, annotations={dict(self._annotations)!r})"

    def __str__(self) -> str:
        return "\n".join(str(t) for t in self)
