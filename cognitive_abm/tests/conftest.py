"""Shared fixtures: a one-layer harvest model built directly from the data model."""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
for candidate in (PARENT, ROOT):
    path_str = str(candidate)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from cognitive_abm.agents import Agent, Archetype
from cognitive_abm.models import (
    AgentState,
    AntecedentPart,
    Consequent,
    DecisionOption,
    Goal,
    GoalState,
    GoalTendency,
    LayerConfiguration,
    MentalModelConfiguration,
)


def build_harvest_world(tendency: GoalTendency = GoalTendency.MAXIMIZE, capacity: int = 10) -> SimpleNamespace:
    goal = Goal("Income", tendency, "Income", focal_value=10.0)
    layer_configuration = LayerConfiguration(
        modifiable=True,
        max_number_of_decision_options=capacity,
        consequent_value_interval=(0, 10),
        consequent_relationship_sign={"Income": "+"},
    )
    mental_model = {"1": MentalModelConfiguration("Harvest", ["Income"], {"1": layer_configuration})}
    low = DecisionOption(1, 1, [AntecedentPart("Pool", ">", 0)], Consequent("Harvest", 2))
    high = DecisionOption(1, 1, [AntecedentPart("Pool", ">", 0)], Consequent("Harvest", 5))
    archetype = Archetype(
        "Household",
        name_prefix="HH",
        common_variables={"Pool": 100.0},
        goals=[goal],
        mental_model=mental_model,
        decision_options=[low, high],
    )
    agent = Agent("HH1", archetype, {"Income": 0.0, "Harvest": 0.0})
    agent.assign_new_decision_option(low, {goal: 1.0})
    agent.assign_new_decision_option(high, {goal: 2.0})
    return SimpleNamespace(
        goal=goal,
        archetype=archetype,
        agent=agent,
        low=low,
        high=high,
        layer=low.layer,
    )


def state_for(world: SimpleNamespace, value: float = 0.0, focal_value: float = 10.0) -> AgentState:
    state = AgentState.create(False, {world.goal: GoalState(value, focal_value, 1.0)})
    state.ranked_goals = [world.goal]
    return state


@pytest.fixture
def harvest_world() -> SimpleNamespace:
    return build_harvest_world()


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(7)


@pytest.fixture
def make_world():
    return build_harvest_world


@pytest.fixture
def make_state():
    return state_for
