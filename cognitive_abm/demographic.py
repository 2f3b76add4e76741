"""
Population dynamics between iterations: births, pairing and deaths.

The scheduler calls :meth:`Demographic.change_demographic` once per
iteration (from the second one on). The three steps always run in the order
births, pairing, deaths, and all random draws come from the generator passed
in by the scheduler.
"""

from __future__ import annotations

import copy
import math
import uuid
from dataclasses import dataclass, fields
from typing import Any, Dict, List

import numpy as np

from .agents import (
    AGE,
    DISABILITY,
    EXTENDED_FAMILY,
    EXTERNAL_RELATIONS,
    FEMALE,
    GENDER,
    HOUSEHOLD,
    HOUSEHOLD_HEAD,
    IS_ACTIVE,
    MALE,
    NUCLEAR_FAMILY,
    PAIR_STATUS,
    PAIRED,
    UNPAIRED,
    Agent,
    AgentList,
)
from .models import AgentState
from .probability import ProbabilityTable
from .utils import choose_random, extreme_group, is_event_occur

# Variables a newborn never inherits from its base parent.
NOT_INHERITED = {
    AGE,
    DISABILITY,
    EXTERNAL_RELATIONS,
    GENDER,
    HOUSEHOLD_HEAD,
    IS_ACTIVE,
    PAIR_STATUS,
}


@dataclass
class DemographicConfig:
    maximum_age: int = 100
    death_probability: str = "Death"
    birth_probability: str = "Birth"
    pairing_probability: float = 0.1
    sexual_orientation_rate: float = 0.05
    homosexual_type_rate: float = 0.5
    pairing_age_min: int = 18
    pairing_age_max: int = 60
    years_between_births: int = 2
    minimum_age_for_household_head: int = 18

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "DemographicConfig":
        known = {item.name for item in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise KeyError(f"Unknown demographic parameters: {', '.join(sorted(unknown))}")
        return cls(**values)


class Demographic:
    def __init__(
        self,
        configuration: DemographicConfig,
        birth_probability: ProbabilityTable,
        death_probability: ProbabilityTable,
    ):
        self.configuration = configuration
        self.birth_probability = birth_probability
        self.death_probability = death_probability
        self._births: Dict[int, List[Agent]] = {}

    def change_demographic(
        self,
        iteration: int,
        iteration_state: Dict[Agent, AgentState],
        agent_list: AgentList,
        rng: np.random.Generator,
    ) -> Dict[str, int]:
        births = self.process_births(iteration, iteration_state, agent_list, rng)
        pairings = self.process_pairing(agent_list.active_agents, rng)
        deaths = self.process_deaths(agent_list.active_agents, rng)
        return {"births": births, "pairings": pairings, "deaths": deaths}

    # -- births ----------------------------------------------------------------

    def process_births(
        self,
        iteration: int,
        iteration_state: Dict[Agent, AgentState],
        agent_list: AgentList,
        rng: np.random.Generator,
    ) -> int:
        recent_parents = {
            agent
            for birth_iteration, parents in self._births.items()
            if birth_iteration >= iteration - self.configuration.years_between_births
            for agent in parents
        }
        candidates = [
            agent
            for agent in agent_list.active_agents
            if agent not in recent_parents and agent.get_variable(PAIR_STATUS) == PAIRED
        ]
        families: Dict[Any, List[Agent]] = {}
        for agent in candidates:
            families.setdefault(agent[NUCLEAR_FAMILY], []).append(agent)

        parents_this_iteration: List[Agent] = []
        born = 0
        for pair in families.values():
            if len(pair) != 2:
                continue
            average_age = int(math.ceil(sum(int(agent[AGE]) for agent in pair) / 2))
            if not self.birth_probability.is_variable_specific_event_occur(average_age, rng):
                continue
            gender = MALE if int(rng.integers(2)) == 0 else FEMALE
            base_agent = pair[int(rng.integers(2))]
            child = self._create_child(base_agent, gender, agent_list, rng)

            child.connect(pair[0])
            child.connect(pair[1])
            extended_families = base_agent.get_variable(EXTENDED_FAMILY) or []
            for neighbor in list(base_agent.connected_agents):
                if neighbor.get_variable(NUCLEAR_FAMILY) in extended_families:
                    child.connect(neighbor)

            agent_list.add(child)
            iteration_state[child] = iteration_state[base_agent].create_copy_for_child()
            parents_this_iteration.extend(pair)
            born += 1
        self._births[iteration] = parents_this_iteration
        return born

    def _create_child(self, base_agent: Agent, gender: str, agent_list: AgentList, rng: np.random.Generator) -> Agent:
        prefix = base_agent.archetype.name_prefix
        number = sum(1 for agent in agent_list if agent.archetype.name_prefix == prefix) + 1
        while any(agent.id == f"{prefix}{number}" for agent in agent_list):
            number += 1
        child = base_agent.create_child(gender, f"{prefix}{number}")
        for key, value in base_agent.private_variables.items():
            if key not in NOT_INHERITED and key not in child.private_variables:
                child.private_variables[key] = copy.deepcopy(value)
        child[HOUSEHOLD] = base_agent.get_variable(HOUSEHOLD)
        child[NUCLEAR_FAMILY] = base_agent.get_variable(NUCLEAR_FAMILY)
        child[EXTENDED_FAMILY] = list(base_agent.get_variable(EXTENDED_FAMILY) or [])
        for option in base_agent.assigned_decision_options:
            child.assign_new_decision_option(option, base_agent.anticipation_influence.get(option, {}), rng)
        return child

    # -- pairing ---------------------------------------------------------------

    def process_pairing(self, agents: List[Agent], rng: np.random.Generator) -> int:
        cfg = self.configuration
        if not is_event_occur(cfg.pairing_probability, rng):
            return 0
        singles = [
            agent
            for agent in agents
            if cfg.pairing_age_min <= agent[AGE] < cfg.pairing_age_max and agent[PAIR_STATUS] == UNPAIRED
        ]
        if len(singles) < 2:
            return 0

        is_homosexual_pair = is_event_occur(cfg.sexual_orientation_rate, rng)
        first_gender = MALE if is_event_occur(cfg.homosexual_type_rate, rng) else FEMALE
        if is_homosexual_pair:
            second_gender = first_gender
        else:
            second_gender = FEMALE if first_gender == MALE else MALE

        first = choose_random([agent for agent in singles if agent[GENDER] == first_gender], rng)
        if first is None:
            return 0
        second = choose_random(
            [agent for agent in singles if agent is not first and agent[GENDER] == second_gender], rng
        )
        if second is None:
            return 0

        new_family = str(uuid.UUID(bytes=rng.bytes(16), version=4))
        extended_families = [first.get_variable(NUCLEAR_FAMILY), new_family, second.get_variable(NUCLEAR_FAMILY)]

        # Networks are merged before the nuclear family changes.
        self._fill_connected_agents(first, second)
        self._fill_connected_agents(second, first)
        first.connect(second)

        for partner in (first, second):
            partner[NUCLEAR_FAMILY] = new_family
            partner[EXTENDED_FAMILY] = list(extended_families)
            partner[PAIR_STATUS] = PAIRED
        return 1

    @staticmethod
    def _fill_connected_agents(partner: Agent, other: Agent) -> None:
        family = other.get_variable(NUCLEAR_FAMILY)
        for agent in [a for a in other.connected_agents if a.get_variable(NUCLEAR_FAMILY) == family]:
            partner.connect(agent)

    # -- deaths ----------------------------------------------------------------

    def process_deaths(self, agents: List[Agent], rng: np.random.Generator) -> int:
        cfg = self.configuration
        deaths = 0
        for agent in agents:
            age = int(agent[AGE])
            dies = self.death_probability.is_variable_specific_event_occur(age, rng)
            if not dies and age < cfg.maximum_age:
                continue
            agent[IS_ACTIVE] = False
            deaths += 1
            if agent.get_variable(HOUSEHOLD_HEAD, False):
                self._reassign_household_head(agent, rng)
            # Edges are severed only after the household head is reassigned.
            for neighbor in list(agent.connected_agents):
                agent.disconnect(neighbor)
        return deaths

    def _reassign_household_head(self, agent: Agent, rng: np.random.Generator) -> None:
        min_age = self.configuration.minimum_age_for_household_head
        adults = [
            a for a in agent.connected_agents if a.is_active and int(a.get_variable(AGE, 0)) >= min_age
        ]
        candidates = [a for a in adults if a.get_variable(NUCLEAR_FAMILY) == agent.get_variable(NUCLEAR_FAMILY)]
        if not candidates:
            candidates = [
                a for a in adults if a.get_variable(EXTENDED_FAMILY) == agent.get_variable(EXTENDED_FAMILY)
            ]
        new_head = choose_random(extreme_group(candidates, lambda a: int(a[AGE]), largest=True), rng)
        if new_head is not None:
            new_head[HOUSEHOLD_HEAD] = True
