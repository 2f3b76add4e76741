"""Probability tables used by the stochastic processes."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .models import InputParameterError
from .utils import is_event_occur

BIRTH_PROBABILITY_TABLE = "Birth"
DEATH_PROBABILITY_TABLE = "Death"
GENERAL_PROBABILITY_TABLE = "General"


class ProbabilityTable:
    """Immutable value -> probability map. Unknown values have probability 0."""

    def __init__(self, probabilities: Dict[Any, float]):
        self._probabilities = {key: float(value) for key, value in probabilities.items()}

    @property
    def keys(self) -> List[Any]:
        return list(self._probabilities)

    def get_probability(self, value: Any) -> float:
        return self._probabilities.get(value, 0.0)

    def is_variable_specific_event_occur(self, value: Any, rng: np.random.Generator) -> bool:
        return is_event_occur(self.get_probability(value), rng)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {"value": list(self._probabilities), "probability": list(self._probabilities.values())}
        )


class ExtendedProbabilityTable(ProbabilityTable):
    """
    Probability table with precomputed normalized and cumulative columns.

    Keys are sorted ascending. The cumulative column supports inverse-CDF
    lookups, and :meth:`random_value` uses the table's keys as batch numbers
    (1..N) to sample a continuous value inside an interval.
    """

    def __init__(self, probabilities: Dict[Any, float]):
        super().__init__(probabilities)
        self.values = sorted(self._probabilities)
        raw = np.array([self._probabilities[value] for value in self.values], dtype=float)
        total = raw.sum()
        if raw.size == 0 or total <= 0:
            raise InputParameterError("An extended probability table needs a positive total probability")
        self.normalized = raw / total
        self.cumulative = np.cumsum(self.normalized)

    @classmethod
    def from_table(cls, table: ProbabilityTable) -> "ExtendedProbabilityTable":
        return cls({key: table.get_probability(key) for key in table.keys})

    @property
    def value_count(self) -> int:
        return len(self.values)

    def get_value_by_cumulative(self, probability: float, default: Any = None) -> Any:
        """First value whose cumulative probability reaches ``probability``."""
        index = int(np.searchsorted(self.cumulative, probability, side="left"))
        if index >= len(self.values):
            return default
        return self.values[index]

    def random_value(self, min_value: float, max_value: float, is_reversed: bool, rng: np.random.Generator) -> float:
        batch_size = abs(max_value - min_value) / self.value_count
        batch = self.get_value_by_cumulative(rng.random(), default=self.values[-1])
        value = min_value + (float(batch) - 1) * batch_size + batch_size * rng.random()
        if is_reversed:
            value = min_value + max_value - value
        return value

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "value": self.values,
                "probability": [self._probabilities[value] for value in self.values],
                "normalized": self.normalized,
                "cumulative": self.cumulative,
            }
        )


class Probabilities:
    """Registry of named probability tables."""

    def __init__(self, tables: Optional[Dict[str, ProbabilityTable]] = None):
        self._tables: Dict[str, ProbabilityTable] = {}
        self._extended: Dict[str, ExtendedProbabilityTable] = {}
        for name, table in (tables or {}).items():
            self.add_probability_table(name, table)

    def add_probability_table(self, name: str, table: ProbabilityTable) -> None:
        if name in self._tables:
            raise ValueError(f"Probability table '{name}' is already registered")
        self._tables[name] = table

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def get_probability_table(self, name: str) -> ProbabilityTable:
        try:
            return self._tables[name]
        except KeyError:
            raise InputParameterError(f"Cannot find probability table by name: {name}") from None

    def get_extended_probability_table(self, name: str) -> ExtendedProbabilityTable:
        table = self._extended.get(name)
        if table is None:
            base = self.get_probability_table(name)
            table = base if isinstance(base, ExtendedProbabilityTable) else ExtendedProbabilityTable.from_table(base)
            self._extended[name] = table
        return table

    def names(self) -> List[str]:
        return list(self._tables)


def _coerce_key(value: Any) -> Any:
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        as_float = float(value)
        return int(as_float) if as_float.is_integer() else as_float
    return value


def load_probability_table(path: str | os.PathLike[str], with_header: bool = True) -> ProbabilityTable:
    """Read a two-column (value, probability) CSV file."""
    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Probability table file not found: {file_path}")
    frame = pd.read_csv(file_path, header=0 if with_header else None)
    if frame.shape[1] < 2:
        raise ValueError(f"Probability table {file_path} must have a value and a probability column")
    values = frame.iloc[:, 0].map(_coerce_key)
    probabilities = frame.iloc[:, 1].astype(float)
    return ProbabilityTable(dict(zip(values, probabilities)))


def load_probabilities(
    tables: Dict[str, str],
    base_dir: Optional[str | os.PathLike[str]] = None,
    with_header: bool = True,
) -> Probabilities:
    """Load every ``name -> csv path`` entry into a registry."""
    registry = Probabilities()
    for name, raw_path in tables.items():
        path = Path(raw_path)
        if base_dir is not None and not path.is_absolute():
            path = Path(base_dir) / path
        registry.add_probability_table(name, load_probability_table(path, with_header))
    return registry


def uniform_batch_table(batches: int = 10) -> ExtendedProbabilityTable:
    """Equal probability for batch numbers 1..``batches``."""
    return ExtendedProbabilityTable({batch: 1.0 / batches for batch in range(1, batches + 1)})
