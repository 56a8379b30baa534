# src/boltzmann_brain/sampler/engine.py

"""
Anticipated-rejection Boltzmann sampler.

The :class:`Sampler` compiles a read-only :class:`TunedSystem` into per-type
dispatch tables once; every attempt afterwards only draws uniforms and walks
those tables. An attempt keeps a running size and is abandoned as soon as it
exceeds the upper end of the window; a finished structure is accepted when
its size lies inside ``[lower, upper]``.

Two drivers share the tables:

- algebraic (and forced ill-formed) systems: tree descent over an explicit
  work stack, so deep trees never hit Python's recursion limit;
- rational systems: an automaton walk along the single continuation of each
  constructor that stays in the owner's strongly connected component; the
  remaining references live in lower components and are sampled by nested
  walks whose depth is bounded by the number of components.

Examples
--------
>>> from boltzmann_brain.system.model import System, Type, Constructor
>>> from boltzmann_brain.tuning import tune
>>> trees = System([Type("T", [Constructor("Leaf", ["@"]), Constructor("Node", ["@", "T", "T"])])])
>>> s = sample(tune(trees), "T", 5, 15, seed=7)
>>> 5 <= s.size <= 15
True
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from boltzmann_brain.errors import SamplingAttemptsExceeded
from boltzmann_brain.system.checker import SystemType
from boltzmann_brain.tuning.tuned import TunedSystem
from .structure import Structure

__all__ = ["Sampler", "sample", "sample_many"]

SeedLike = Union[None, int, np.random.SeedSequence]

# argument plan opcodes
_REF = 0    # plain type reference
_SEQ = 1    # desugared sequence/set: (p_cons, element type or None, element size)

_BUFFER = 256


class _SizeExceeded(Exception):
    pass


@dataclass(frozen=True)
class _Plan:
    """Compiled form of one constructor."""
    name: str
    type: str
    weight: int
    args: Tuple[tuple, ...]
    continuation: int = -1   # index into ``args`` of the same-component reference (rational)


class _Attempt:
    """Buffered uniform stream plus the size counter of the current attempt, bounded by ``upper``."""

    __slots__ = ("rng", "upper", "size", "_buf", "_pos")

    def __init__(self, rng: np.random.Generator, upper: int):
        self.rng = rng
        self.upper = upper
        self.size = 0
        self._buf = rng.random(_BUFFER)
        self._pos = 0

    def uniform(self) -> float:
        if self._pos == _BUFFER:
            self._buf = self.rng.random(_BUFFER)
            self._pos = 0
        u = self._buf[self._pos]
        self._pos += 1
        return u

    def grow(self, k: int) -> None:
        if k:
            self.size += k
            if self.size > self.upper:
                raise _SizeExceeded


class Sampler:
    """
    Dispatch tables of a tuned system plus the two sampling drivers.

    Parameters
    ----------
    tuned : TunedSystem
        Shared read-only; a single ``Sampler`` may serve many threads.
    """

    def __init__(self, tuned: TunedSystem):
        self.tuned = tuned
        system = tuned.system
        self.rational = tuned.system_type is SystemType.RATIONAL
        comp = system.components()

        self._thresholds: Dict[str, np.ndarray] = {}
        self._plans: Dict[str, Tuple[_Plan, ...]] = {}
        for t in system:
            self._thresholds[t.name] = tuned.thresholds(t.name)
            plans = []
            for c in t.constructors:
                args = []
                cont = -1
                for r in c.refs:
                    target = system[r]
                    if target.is_auxiliary:
                        p_cons = tuned.probabilities[r][1]
                        args.append((_SEQ, p_cons, target.element, target.element_size))
                    else:
                        if self.rational and comp[r] == comp[t.name]:
                            cont = len(args)
                        args.append((_REF, r))
                plans.append(_Plan(c.name, t.name, c.size, tuple(args), cont))
            self._plans[t.name] = tuple(plans)

    # ------------- validation -------------

    def _check_request(self, start: str, lower: int, upper: int) -> None:
        system = self.tuned.system
        if start not in system:
            raise ValueError(f"Unknown start type {start!r}.")
        if system[start].is_auxiliary:
            raise ValueError(f"Start type {start!r} is an auxiliary sequence/set type.")
        if lower < 0:
            raise ValueError(f"lower must be ≥ 0, got {lower!r}.")
        if lower > upper:
            raise ValueError(f"lower ({lower!r}) must not exceed upper ({upper!r}).")

    # ------------- drivers -------------

    def _choose(self, att: _Attempt, type_name: str) -> _Plan:
        plans = self._plans[type_name]
        if len(plans) == 1:
            return plans[0]
        k = int(np.searchsorted(self._thresholds[type_name], att.uniform(), side="right"))
        return plans[k]

    def _node(self, att: _Attempt, type_name: str) -> Tuple[Structure, _Plan]:
        plan = self._choose(att, type_name)
        att.grow(plan.weight)
        return Structure(plan.name, type_name, plan.weight), plan

    @staticmethod
    def _repeat(att: _Attempt, arg: tuple) -> Tuple[int, int]:
        """Geometric number of sequence elements; atom elements are charged at once."""
        _, p_cons, _, elem_size = arg
        count = 0
        while att.uniform() < p_cons:
            count += 1
            att.grow(elem_size)
        return count, count * elem_size

    def _descend(self, att: _Attempt, start: str) -> Structure:
        root, plan = self._node(att, start)
        # work items: (parent, type) pending expansion, first child on top
        todo: List[Tuple[Structure, str]] = []
        self._expand(att, root, plan, todo)
        while todo:
            parent, type_name = todo.pop()
            node, plan = self._node(att, type_name)
            parent.children.append(node)
            self._expand(att, node, plan, todo)
        return root

    def _expand(self, att: _Attempt, node: Structure, plan: _Plan, todo: List[Tuple[Structure, str]]) -> None:
        pending: List[str] = []
        for arg in plan.args:
            if arg[0] == _REF:
                pending.append(arg[1])
            else:
                count, atoms = self._repeat(att, arg)
                node.weight += atoms
                if arg[2] is not None:
                    pending.extend([arg[2]] * count)
        todo.extend((node, r) for r in reversed(pending))

    def _walk(self, att: _Attempt, start: str) -> Structure:
        root: Optional[Structure] = None
        slot: Optional[Tuple[List[Structure], int]] = None
        type_name: Optional[str] = start
        while type_name is not None:
            node, plan = self._node(att, type_name)
            if slot is None:
                root = node
            else:
                slot[0][slot[1]] = node
            slot = None
            type_name = None
            for i, arg in enumerate(plan.args):
                if arg[0] == _REF:
                    if i == plan.continuation:
                        node.children.append(None)  # filled by the next round
                        slot = (node.children, len(node.children) - 1)
                        type_name = arg[1]
                    else:
                        node.children.append(self._walk(att, arg[1]))
                else:
                    count, atoms = self._repeat(att, arg)
                    node.weight += atoms
                    if arg[2] is not None:
                        node.children.extend(self._walk(att, arg[2]) for _ in range(count))
        return root

    # ------------- public API -------------

    def sample(
        self,
        start: str,
        lower: int,
        upper: int,
        rng: Optional[np.random.Generator] = None,
        max_attempts: Optional[int] = None,
    ) -> Structure:
        """
        Draw one structure of type ``start`` with size in ``[lower, upper]``.

        Attempts are repeated until one lands in the window. There is no
        built-in cap: an unreachable window loops forever unless
        ``max_attempts`` is given.

        Raises
        ------
        ValueError
            Unknown or auxiliary ``start``, ``lower < 0`` or ``lower > upper``.
        SamplingAttemptsExceeded
            ``max_attempts`` attempts were rejected.
        """
        self._check_request(start, lower, upper)
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be ≥ 1")
        rng = rng if rng is not None else np.random.default_rng()
        driver = self._walk if self.rational else self._descend

        att = _Attempt(rng, upper)
        attempts = 0
        while max_attempts is None or attempts < max_attempts:
            attempts += 1
            att.size = 0
            try:
                s = driver(att, start)
            except _SizeExceeded:
                continue
            if att.size >= lower:
                return s
        raise SamplingAttemptsExceeded(attempts, lower, upper)

    def sample_many(
        self,
        start: str,
        lower: int,
        upper: int,
        n: int,
        seed: SeedLike = None,
        workers: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ) -> List[Structure]:
        """
        Draw ``n`` independent structures.

        Structure ``i`` is drawn from the ``i``-th child of one
        :class:`numpy.random.SeedSequence`, so the result (in request order)
        does not depend on ``workers``.
        """
        if n < 0:
            raise ValueError(f"n must be ≥ 0, got {n!r}.")
        self._check_request(start, lower, upper)
        ss = seed if isinstance(seed, np.random.SeedSequence) else np.random.SeedSequence(seed)
        streams = [np.random.default_rng(child) for child in ss.spawn(n)]

        def one(rng: np.random.Generator) -> Structure:
            return self.sample(start, lower, upper, rng=rng, max_attempts=max_attempts)

        if workers is None or workers <= 1 or n <= 1:
            return [one(rng) for rng in streams]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(one, streams))


def sample(
    tuned: TunedSystem,
    start: str,
    lower: int,
    upper: int,
    *,
    seed: SeedLike = None,
    max_attempts: Optional[int] = None,
) -> Structure:
    """Draw one structure; see :meth:`Sampler.sample`."""
    return Sampler(tuned).sample(start, lower, upper, rng=np.random.default_rng(seed), max_attempts=max_attempts)


def sample_many(
    tuned: TunedSystem,
    start: str,
    lower: int,
    upper: int,
    n: int,
    *,
    seed: SeedLike = None,
    workers: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> List[Structure]:
    """Draw ``n`` structures; see :meth:`Sampler.sample_many`."""
    return Sampler(tuned).sample_many(
        start, lower, upper, n, seed=seed, workers=workers, max_attempts=max_attempts
    )
