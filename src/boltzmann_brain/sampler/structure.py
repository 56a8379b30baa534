# src/boltzmann_brain/sampler/structure.py

"""
Sampled structures.

A :class:`Structure` is a constructor node: its constructor name, the type it
belongs to, the atom weight of the constructor itself and its ordered
children. Atoms are not nodes and sequence/set elements are flattened into
the parent's children. Samplers can build trees far deeper than Python's
recursion limit, so every traversal here is iterative.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

__all__ = ["Structure"]


@dataclass(eq=False)
class Structure:
    name: str
    type: str
    weight: int = 0
    children: List["Structure"] = field(default_factory=list)

    def walk(self) -> Iterator["Structure"]:
        """Pre-order traversal, children left to right."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    @property
    def size(self) -> int:
        """Total number of atoms in the tree."""
        return sum(node.weight for node in self.walk())

    def __len__(self) -> int:
        """Number of constructor nodes."""
        return sum(1 for _ in self.walk())

    def constructor_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for node in self.walk():
            counts[node.name] = counts.get(node.name, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Nested ``{"name", "type", "weight", "children"}`` document."""
        root: Dict[str, Any] = {}
        stack: List[Tuple[Structure, Dict[str, Any]]] = [(self, root)]
        while stack:
            node, out = stack.pop()
            out["name"] = node.name
            out["type"] = node.type
            out["weight"] = node.weight
            kids = [{} for _ in node.children]
            out["children"] = kids
            stack.extend(zip(node.children, kids))
        return root

    def to_flat(self) -> Dict[str, Any]:
        """
        Pre-order node table; ``children`` hold indices into ``nodes``.

        Unlike :meth:`to_dict` the document has constant nesting depth, so
        the JSON encoder can write structures of any depth.
        """
        order = list(self.walk())
        ids = {id(node): i for i, node in enumerate(order)}
        return {
            "type": self.type,
            "size": sum(node.weight for node in order),
            "nodes": [
                {
                    "name": node.name,
                    "type": node.type,
                    "weight": node.weight,
                    "children": [ids[id(c)] for c in node.children],
                }
                for node in order
            ],
        }

    def shape(self) -> str:
        """Canonical bracket string of the constructor tree, e.g. ``Node(Leaf,Leaf)``."""
        out: List[str] = []
        stack: List[Any] = [self]
        while stack:
            item = stack.pop()
            if isinstance(item, str):
                out.append(item)
                continue
            out.append(item.name)
            if item.children:
                out.append("(")
                stack.append(")")
                for i, child in enumerate(reversed(item.children)):
                    stack.append(child)
                    if i < len(item.children) - 1:
                        stack.append(",")
        return "".join(out)

    def __repr__(self) -> str:
        return f"Structure(name={self.name!r}, type={self.type!r}, size={self.size})"
