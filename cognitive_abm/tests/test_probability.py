"""Probability tables and the registry."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from cognitive_abm.models import InputParameterError
from cognitive_abm.probability import (
    ExtendedProbabilityTable,
    Probabilities,
    ProbabilityTable,
    load_probabilities,
    load_probability_table,
    uniform_batch_table,
)
from cognitive_abm.utils import is_event_occur


def test_event_gate_extremes(rng) -> None:
    assert all(is_event_occur(1.0, rng) for _ in range(200))
    assert not any(is_event_occur(0.0, rng) for _ in range(200))


def test_missing_values_never_occur(rng) -> None:
    table = ProbabilityTable({30: 1.0})
    assert table.get_probability(31) == 0.0
    assert not any(table.is_variable_specific_event_occur(31, rng) for _ in range(100))
    assert all(table.is_variable_specific_event_occur(30, rng) for _ in range(100))


def test_extended_table_is_sorted_and_cumulative() -> None:
    table = ExtendedProbabilityTable({3: 2.0, 1: 1.0, 2: 1.0})
    assert table.values == [1, 2, 3]
    assert np.allclose(table.normalized, [0.25, 0.25, 0.5])
    assert table.cumulative[-1] == pytest.approx(1.0)
    assert table.get_value_by_cumulative(0.1) == 1
    assert table.get_value_by_cumulative(0.3) == 2
    assert table.get_value_by_cumulative(0.9) == 3
    frame = table.to_frame()
    assert list(frame.columns) == ["value", "probability", "normalized", "cumulative"]


def test_extended_table_needs_positive_mass() -> None:
    with pytest.raises(InputParameterError):
        ExtendedProbabilityTable({1: 0.0})


def test_random_values_stay_inside_the_interval(rng) -> None:
    table = uniform_batch_table(10)
    for is_reversed in (False, True):
        draws = [table.random_value(2.0, 6.0, is_reversed, rng) for _ in range(500)]
        assert min(draws) >= 2.0
        assert max(draws) <= 6.0


def test_registry_lookups() -> None:
    registry = Probabilities({"Birth": ProbabilityTable({25: 0.1})})
    assert registry.has_table("Birth")
    assert registry.names() == ["Birth"]
    extended = registry.get_extended_probability_table("Birth")
    assert registry.get_extended_probability_table("Birth") is extended
    with pytest.raises(InputParameterError):
        registry.get_probability_table("General")
    with pytest.raises(ValueError):
        registry.add_probability_table("Birth", ProbabilityTable({}))


def test_csv_tables_load_with_and_without_header(tmp_path: Path) -> None:
    with_header = tmp_path / "death.csv"
    with_header.write_text("age,probability\n20,0.5\n21,0.25\n", encoding="utf-8")
    without_header = tmp_path / "general.csv"
    without_header.write_text("1,0.6\n2,0.4\n", encoding="utf-8")

    table = load_probability_table(with_header)
    assert table.get_probability(20) == 0.5
    assert table.get_probability(21) == 0.25

    registry = load_probabilities({"General": "general.csv"}, base_dir=tmp_path, with_header=False)
    assert registry.get_probability_table("General").get_probability(1) == 0.6


def test_missing_csv_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_probability_table(tmp_path / "missing.csv")
