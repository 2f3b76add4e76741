"""Births, pairing and deaths."""

from __future__ import annotations

import pytest

from cognitive_abm.agents import (
    AGE,
    EXTENDED_FAMILY,
    FEMALE,
    GENDER,
    HOUSEHOLD,
    HOUSEHOLD_HEAD,
    MALE,
    NUCLEAR_FAMILY,
    PAIR_STATUS,
    PAIRED,
    UNPAIRED,
    Agent,
    AgentList,
)
from cognitive_abm.builder import network_graph
from cognitive_abm.demographic import Demographic, DemographicConfig
from cognitive_abm.probability import ProbabilityTable


def _member(world, agent_id, age, gender, family="NF1", status=PAIRED, head=False) -> Agent:
    agent = Agent(
        agent_id,
        world.archetype,
        {
            "Income": 3.0,
            "Harvest": 0.0,
            AGE: age,
            GENDER: gender,
            PAIR_STATUS: status,
            HOUSEHOLD: "H1",
            NUCLEAR_FAMILY: family,
            EXTENDED_FAMILY: [family],
            HOUSEHOLD_HEAD: head,
        },
    )
    agent.assign_new_decision_option(world.low, {world.goal: 1.0})
    return agent


def _demographic(birth=None, death=None, **overrides) -> Demographic:
    return Demographic(
        DemographicConfig.from_dict(overrides),
        ProbabilityTable(birth or {}),
        ProbabilityTable(death or {}),
    )


def test_unknown_demographic_parameters_are_rejected() -> None:
    with pytest.raises(KeyError):
        DemographicConfig.from_dict({"adoption_probability": 0.1})
    assert DemographicConfig.from_dict({"maximum_age": 90}).maximum_age == 90


def test_paired_couple_has_a_child(harvest_world, make_state, rng) -> None:
    father = _member(harvest_world, "HH1", 30, MALE)
    mother = _member(harvest_world, "HH2", 30, FEMALE)
    father.connect(mother)
    agents = AgentList([father, mother], [harvest_world.archetype])
    states = {father: make_state(harvest_world, value=3.0), mother: make_state(harvest_world, value=3.0)}

    demographic = _demographic(birth={30: 1.0})
    assert demographic.process_births(2, states, agents, rng) == 1

    child = agents.get("HH3")
    assert child[AGE] == 0
    assert child[PAIR_STATUS] == UNPAIRED
    assert child[HOUSEHOLD] == "H1"
    assert child[NUCLEAR_FAMILY] == "NF1"
    assert child["Income"] == 3.0
    assert not child.contains_variable(HOUSEHOLD_HEAD)
    assert child in father.connected_agents and child in mother.connected_agents
    assert child.anticipation_influence[harvest_world.low] == {harvest_world.goal: 1.0}
    assert states[child].goal_states[harvest_world.goal].value == 0.0

    # Parents wait ``years_between_births`` iterations before the next child.
    assert demographic.process_births(3, states, agents, rng) == 0


def test_singles_pair_into_a_new_family(harvest_world, rng) -> None:
    first = _member(harvest_world, "HH1", 25, MALE, family="NF1", status=UNPAIRED)
    second = _member(harvest_world, "HH2", 27, FEMALE, family="NF2", status=UNPAIRED)
    sibling = _member(harvest_world, "HH3", 10, FEMALE, family="NF2", status=UNPAIRED)
    second.connect(sibling)

    demographic = _demographic(pairing_probability=1.0, sexual_orientation_rate=0.0)
    assert demographic.process_pairing([first, second, sibling], rng) == 1

    assert first[PAIR_STATUS] == PAIRED and second[PAIR_STATUS] == PAIRED
    assert first[NUCLEAR_FAMILY] == second[NUCLEAR_FAMILY]
    assert first[NUCLEAR_FAMILY] not in {"NF1", "NF2"}
    assert len(first[EXTENDED_FAMILY]) == 3
    assert set(first[EXTENDED_FAMILY]) == {"NF1", "NF2", first[NUCLEAR_FAMILY]}
    assert second[EXTENDED_FAMILY] == first[EXTENDED_FAMILY]
    assert second in first.connected_agents
    assert sibling in first.connected_agents
    assert sibling[PAIR_STATUS] == UNPAIRED


def test_no_pairing_without_candidates(harvest_world, rng) -> None:
    lonely = _member(harvest_world, "HH1", 25, MALE, status=UNPAIRED)
    demographic = _demographic(pairing_probability=1.0)
    assert demographic.process_pairing([lonely], rng) == 0


def test_oldest_agents_die_and_pass_on_the_household(harvest_world, rng) -> None:
    head = _member(harvest_world, "HH1", 100, MALE, head=True)
    spouse = _member(harvest_world, "HH2", 60, FEMALE)
    child = _member(harvest_world, "HH3", 10, MALE, status=UNPAIRED)
    for agent in (spouse, child):
        head.connect(agent)
    spouse.connect(child)

    demographic = _demographic(maximum_age=100)
    assert demographic.process_deaths([head, spouse, child], rng) == 1
    assert not head.is_active
    assert spouse[HOUSEHOLD_HEAD] is True
    assert not child[HOUSEHOLD_HEAD]
    assert head not in spouse.connected_agents
    assert head not in child.connected_agents
    assert head.connected_agents == []
    graph = network_graph(AgentList([head, spouse, child], [harvest_world.archetype]))
    assert graph.degree("HH1") == 0
    assert graph.number_of_edges() == 1


def test_change_demographic_reports_counts(harvest_world, make_state, rng) -> None:
    father = _member(harvest_world, "HH1", 30, MALE)
    mother = _member(harvest_world, "HH2", 30, FEMALE)
    father.connect(mother)
    agents = AgentList([father, mother], [harvest_world.archetype])
    states = {father: make_state(harvest_world), mother: make_state(harvest_world)}

    counts = _demographic(birth={30: 1.0}).change_demographic(2, states, agents, rng)
    assert counts == {"births": 1, "pairings": 0, "deaths": 0}
    assert len(agents) == 3
