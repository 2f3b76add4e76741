"""
Common-pool resource demo model.

Households harvest from a shared pool that regenerates logistically between
iterations. Each household member pursues two goals:

* ``Income`` (maximize): the amount harvested in the last iteration.
* ``Stock`` (equal to or above a focal value): the level of the shared pool.

The ``Harvest`` mental model chooses how much to take; the ``Restraint``
mental model chooses how much to put back. The generous contribution is a
collective action scoped to the village: it only goes ahead when enough
connected villagers choose it in the same iteration.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from .agents import (
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
    AgentList,
)
from .builder import build_model
from .config import SimulationConfig
from .probability import (
    BIRTH_PROBABILITY_TABLE,
    DEATH_PROBABILITY_TABLE,
    GENERAL_PROBABILITY_TABLE,
    ExtendedProbabilityTable,
    Probabilities,
    ProbabilityTable,
)
from .simulation import Simulation

ARCHETYPE_NAME = "Household"
POOL = "Pool"
POOL_CAPACITY = "PoolCapacity"
REGENERATION_RATE = "RegenerationRate"
HARVEST = "Harvest"
CONTRIBUTION = "Contribution"
INCOME = "Income"
VILLAGE = "Village"

# Innovation favours small steps away from the current consequent value.
DEMO_GENERAL_PROBABILITIES = {1: 0.25, 2: 0.2, 3: 0.15, 4: 0.12, 5: 0.09, 6: 0.07, 7: 0.05, 8: 0.04, 9: 0.02, 10: 0.01}


def demo_probabilities(maximum_age: int = 100) -> Probabilities:
    """General, Birth and Death tables for the demo population."""
    birth = {age: (0.15 if 20 <= age <= 40 else 0.0) for age in range(maximum_age + 1)}
    death = {}
    for age in range(maximum_age + 1):
        if age < 60:
            death[age] = 0.002
        elif age < 80:
            death[age] = 0.03
        else:
            death[age] = 0.15
    return Probabilities(
        {
            GENERAL_PROBABILITY_TABLE: ExtendedProbabilityTable(DEMO_GENERAL_PROBABILITIES),
            BIRTH_PROBABILITY_TABLE: ProbabilityTable(birth),
            DEATH_PROBABILITY_TABLE: ProbabilityTable(death),
        }
    )


def demo_model_definition(
    n_households: int = 6,
    pool: float = 100.0,
    capacity: float = 200.0,
    regeneration_rate: float = 0.2,
    stock_focal_value: float = 80.0,
    quorum: int = 3,
) -> Dict[str, Any]:
    """Model definition with ``n_households`` paired couples in one village."""
    archetype = {
        "name": ARCHETYPE_NAME,
        "name_prefix": "HH",
        "use_importance_adjusting": True,
        "common_variables": {
            POOL: float(pool),
            POOL_CAPACITY: float(capacity),
            REGENERATION_RATE: float(regeneration_rate),
        },
        "goals": [
            {"name": "Income", "tendency": "Maximize", "reference_variable": INCOME},
            {
                "name": "Stock",
                "tendency": "EqualToOrAboveFocalValue",
                "reference_variable": POOL,
                "focal_value": float(stock_focal_value),
            },
        ],
        "mental_model": {
            "1": {
                "name": "Harvest",
                "associated_with": ["Income"],
                "layer": {
                    "1": {
                        "modifiable": True,
                        "max_number_of_decision_options": 5,
                        "consequent_value_interval": [0, 10],
                        "consequent_relationship_sign": {"Income": "+", "Stock": "-"},
                    }
                },
            },
            "2": {
                "name": "Restraint",
                "associated_with": ["Stock"],
                "layer": {
                    "1": {
                        "modifiable": True,
                        "max_number_of_decision_options": 5,
                        "consequent_value_interval": [0, 5],
                        "consequent_relationship_sign": {"Stock": "+", "Income": "-"},
                    }
                },
            },
        },
        "decision_options": [
            {
                "mental_model": 1,
                "layer": 1,
                "antecedent": [{"param": POOL, "sign": ">", "value": 0}],
                "consequent": {"param": HARVEST, "value": 2},
            },
            {
                "mental_model": 1,
                "layer": 1,
                "antecedent": [{"param": POOL, "sign": ">=", "value": 40}],
                "consequent": {"param": HARVEST, "value": 5},
            },
            {
                "mental_model": 2,
                "layer": 1,
                "antecedent": [{"param": INCOME, "sign": ">=", "value": 0}],
                "consequent": {"param": CONTRIBUTION, "value": 0},
            },
            {
                "mental_model": 2,
                "layer": 1,
                "antecedent": [{"param": INCOME, "sign": ">=", "value": 1}],
                "consequent": {"param": CONTRIBUTION, "value": 3},
                "is_collective_action": True,
                "scope": VILLAGE,
                "required_participants": int(quorum),
            },
        ],
    }

    influences = {
        "MM1-1_DO1": {"Income": 2.0, "Stock": -2.0},
        "MM1-1_DO2": {"Income": 5.0, "Stock": -5.0},
        "MM2-1_DO1": {"Income": 0.0, "Stock": 0.0},
        "MM2-1_DO2": {"Income": -3.0, "Stock": 3.0},
    }
    agents: List[Dict[str, Any]] = []
    for household in range(1, n_households + 1):
        family = f"NF{household}"
        for member, gender in enumerate((MALE, FEMALE)):
            agents.append(
                {
                    "id": f"HH{len(agents) + 1}",
                    "archetype": ARCHETYPE_NAME,
                    "variables": {
                        AGE: 22 + 3 * household + member,
                        GENDER: gender,
                        PAIR_STATUS: PAIRED,
                        HOUSEHOLD: f"H{household}",
                        NUCLEAR_FAMILY: family,
                        EXTENDED_FAMILY: [family],
                        HOUSEHOLD_HEAD: member == 0,
                        VILLAGE: "V1",
                        INCOME: 0.0,
                        HARVEST: 0.0,
                        CONTRIBUTION: 0.0,
                    },
                    "goals": {"Income": {"importance": 0.6}, "Stock": {"importance": 0.4}},
                    "anticipated_influence": influences,
                }
            )
    return {
        "archetypes": [archetype],
        "agents": agents,
        "network": {"group_by": [HOUSEHOLD], "small_world": {}},
    }


class CommonPoolSimulation(Simulation):
    """Households sharing a regenerating pool."""

    def pre_iteration_calculations(self, iteration: int) -> None:
        # Options only fire when activated; stale amounts must not carry over.
        for agent in self.agent_list.active_agents:
            agent[HARVEST] = 0.0
            agent[CONTRIBUTION] = 0.0

    def post_iteration_calculations(self, iteration: int) -> None:
        archetype = self.agent_list.get_archetype(ARCHETYPE_NAME)
        agents = [agent for agent in self.agent_list.active_agents if agent.archetype is archetype]
        pool = float(archetype[POOL])
        capacity = float(archetype[POOL_CAPACITY])

        demand = sum(float(agent[HARVEST]) for agent in agents)
        # Harvests are rationed proportionally when demand exceeds the pool.
        share = min(1.0, pool / demand) if demand > 0 else 0.0
        for agent in agents:
            agent[INCOME] = float(agent[HARVEST]) * share
        pool -= demand * share
        pool += sum(float(agent[CONTRIBUTION]) for agent in agents)
        pool += float(archetype[REGENERATION_RATE]) * pool * (1.0 - pool / capacity)
        archetype[POOL] = max(0.0, min(capacity, pool))

    def maintenance(self) -> None:
        super().maintenance()
        for agent in self.agent_list.active_agents:
            if agent.contains_variable(AGE):
                agent[AGE] = int(agent[AGE]) + 1


def create_demo_simulation(
    config: SimulationConfig,
    output_dir: str,
    run_id: Union[int, str],
    definition: Optional[Dict[str, Any]] = None,
) -> CommonPoolSimulation:
    """Build the demo population and wrap it in a :class:`CommonPoolSimulation`."""
    agent_list: AgentList = build_model(
        definition or demo_model_definition(),
        seed=config.RANDOM_SEED,
        n_neighbors=config.NETWORK_N_NEIGHBORS,
        rewiring_prob=config.NETWORK_REWIRING_PROB,
    )
    maximum_age = int(config.DEMOGRAPHIC.get("maximum_age", 100))
    return CommonPoolSimulation(config, agent_list, output_dir, run_id, probabilities=demo_probabilities(maximum_age))
