# src/boltzmann_brain/sampler/stats.py

"""
Empirical constructor statistics of sampled structures.
"""

from __future__ import annotations
from typing import Dict, Iterable, Optional, Tuple

import pandas as pd

from boltzmann_brain.tuning.tuned import TunedSystem
from .structure import Structure

__all__ = ["constructor_frequencies", "size_summary"]


def constructor_frequencies(structures: Iterable[Structure], tuned: Optional[TunedSystem] = None) -> pd.DataFrame:
    """
    Count constructor choices over every node of ``structures``.

    Returns
    -------
    pandas.DataFrame
        Columns ``type, constructor, count, frequency`` where ``frequency`` is
        the share of the type's nodes built with that constructor. When
        ``tuned`` is given, every constructor of a non-auxiliary type gets a
        row (zero counts included) and a ``probability`` column is joined.
    """
    counts: Dict[Tuple[str, str], int] = {}
    for s in structures:
        for node in s.walk():
            key = (node.type, node.name)
            counts[key] = counts.get(key, 0) + 1

    if tuned is not None:
        for t in tuned.system.user_types():
            for c in t.constructors:
                counts.setdefault((t.name, c.name), 0)

    df = pd.DataFrame(
        [(t, c, n) for (t, c), n in counts.items()],
        columns=["type", "constructor", "count"],
    )
    totals = df.groupby("type")["count"].transform("sum")
    df["frequency"] = (df["count"] / totals.where(totals > 0)).fillna(0.0)

    if tuned is not None:
        probs = tuned.constructor_probabilities()
        df["probability"] = df["constructor"].map(probs)
        order = {name: i for i, name in enumerate(tuned.system.constructor_names())}
        df = df.assign(_order=df["constructor"].map(order)).sort_values("_order").drop(columns="_order")
    else:
        df = df.sort_values(["type", "constructor"])
    return df.reset_index(drop=True)


def size_summary(structures: Iterable[Structure]) -> pd.Series:
    """``describe()`` of the sizes of ``structures``."""
    return pd.Series([s.size for s in structures], name="size", dtype=float).describe()
