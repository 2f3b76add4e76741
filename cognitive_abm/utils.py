"""Random-source and grouping helpers for the cognitive ABM."""

from __future__ import annotations

import hashlib
import random
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")

EVENT_MULTIPLEXER = 1000


def derive_run_seed(base_seed: Optional[int], run_id: Any) -> int:
    """Combine the configured seed with a stable hash of the run id."""
    if base_seed is None:
        return random.SystemRandom().randint(0, 2**32 - 2)
    run_hash = int(hashlib.sha256(str(run_id).encode("utf-8")).hexdigest(), 16) % 1_000_000
    return (int(base_seed) + run_hash) % (2**32 - 1)


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(seed)


def shuffled(items: Iterable[T], rng: np.random.Generator) -> List[T]:
    """Return the items in a random order drawn from ``rng``."""
    pool = list(items)
    if len(pool) < 2:
        return pool
    return [pool[i] for i in rng.permutation(len(pool))]


def choose_random(items: Sequence[T], rng: Optional[np.random.Generator]) -> Optional[T]:
    """Pick one item uniformly; ``None`` for an empty sequence."""
    if not items:
        return None
    if rng is None or len(items) == 1:
        return items[0]
    return items[int(rng.integers(len(items)))]


def is_event_occur(probability: float, rng: np.random.Generator) -> bool:
    """Bernoulli gate with a resolution of 1/1000."""
    draw = int(rng.integers(1, EVENT_MULTIPLEXER + 1))
    return draw <= probability * EVENT_MULTIPLEXER


def extreme_group(items: Iterable[T], key: Callable[[T], float], largest: bool = True) -> List[T]:
    """Return every item sharing the largest (or smallest) key value."""
    pool = list(items)
    if not pool:
        return []
    values = [key(item) for item in pool]
    target = max(values) if largest else min(values)
    return [item for item, value in zip(pool, values) if value == target]


def group_by(items: Iterable[T], key: Callable[[T], Any]) -> Dict[Any, List[T]]:
    """Group preserving first-seen order of keys and item order within groups."""
    groups: Dict[Any, List[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def safe_mean(data: Any) -> float:
    """Compute the mean, returning NaN for empty collections."""
    arr = np.asarray(data, dtype=float)
    if arr.size == 0:
        return np.nan
    with np.errstate(invalid="ignore"):
        return float(arr.mean())
