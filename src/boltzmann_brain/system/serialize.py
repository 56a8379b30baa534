# src/boltzmann_brain/system/serialize.py

"""
JSON-ready encoding of systems.

The document layout is the one written by the ``tune`` command (minus the
tuning data) and read by the command line front-end::

    {
      "annotations": {"lowerBound": 10, "upperBound": 50},
      "types": [
        {"name": "T",
         "constructors": [
            {"name": "Leaf", "args": ["@"]},
            {"name": "Node", "args": ["@", "T", "T"], "weight": 1.0}]}
      ]
    }

Argument encoding: ``"@"`` unit atom, ``{"atom": k}`` atom of size ``k``,
``"_"`` epsilon, ``"T"`` type reference, ``{"seq": arg}`` / ``{"set": arg}``
modifiers over a reference or an atom.
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping

from boltzmann_brain.errors import InvalidArgument
from .model import (
    SEQUENCE,
    Arg,
    Atom,
    Constructor,
    Epsilon,
    MSet,
    Ref,
    Seq,
    System,
    Type,
)

__all__ = ["arg_to_json", "arg_from_json", "system_to_dict", "system_from_dict"]


def arg_to_json(arg: Arg) -> Any:
    if isinstance(arg, Ref):
        return arg.type
    if isinstance(arg, Atom):
        return "@" if arg.size == 1 else {"atom": arg.size}
    if isinstance(arg, Epsilon):
        return "_"
    if isinstance(arg, Seq):
        return {"seq": arg_to_json(arg.arg)}
    if isinstance(arg, MSet):
        return {"set": arg_to_json(arg.arg)}
    raise InvalidArgument(f"Cannot encode argument {arg!r}.")


def arg_from_json(x: Any) -> Arg:
    if isinstance(x, str):
        if x == "@":
            return Atom()
        if x == "_":
            return Epsilon()
        return Ref(x)
    if isinstance(x, Mapping) and len(x) == 1:
        (key, val), = x.items()
        if key == "atom":
            return Atom(val)
        if key == "seq":
            return Seq(arg_from_json(val))
        if key == "set":
            return MSet(arg_from_json(val))
    raise InvalidArgument(f"Cannot decode argument {x!r}.")


def _surface_arg(system: System, arg: Arg) -> Arg:
    """Undo the desugaring of sequence/set arguments."""
    if isinstance(arg, Ref) and system[arg.type].is_auxiliary:
        aux = system[arg.type]
        elem = Ref(aux.element) if aux.element is not None else Atom(aux.element_size)
        return Seq(elem) if aux.kind == SEQUENCE else MSet(elem)
    return arg


def constructor_to_dict(system: System, c: Constructor) -> Dict[str, Any]:
    return {
        "name": c.name,
        "args": [arg_to_json(_surface_arg(system, a)) for a in c.args],
        "weight": c.weight,
    }


def system_to_dict(system: System) -> Dict[str, Any]:
    """Encode the user-facing part of ``system`` (auxiliary types are implied)."""
    return {
        "annotations": dict(system.annotations),
        "types": [
            {
                "name": t.name,
                "constructors": [constructor_to_dict(system, c) for c in t.constructors],
            }
            for t in system.user_types()
        ],
    }


def system_from_dict(doc: Mapping[str, Any]) -> System:
    """
    Build a :class:`System` from its document form.

    Raises
    ------
    InvalidArgument
        On a malformed document; model errors propagate from :class:`System`.
    """
    if not isinstance(doc, Mapping) or not isinstance(doc.get("types"), list):
        raise InvalidArgument("A system document needs a 'types' list.")
    types: List[Type] = []
    for td in doc["types"]:
        if not isinstance(td, Mapping) or "name" not in td:
            raise InvalidArgument(f"Malformed type entry {td!r}.")
        ctors = []
        for cd in td.get("constructors", []):
            if not isinstance(cd, Mapping) or "name" not in cd:
                raise InvalidArgument(f"Malformed constructor entry {cd!r} in type {td['name']!r}.")
            ctors.append(Constructor(
                name=cd["name"],
                args=tuple(arg_from_json(a) for a in cd.get("args", [])),
                weight=cd.get("weight", 1.0),
            ))
        types.append(Type(td["name"], tuple(ctors)))
    annotations = doc.get("annotations") or {}
    if not isinstance(annotations, Mapping):
        raise InvalidArgument("'annotations' must be an object.")
    return System(types, annotations)
