"""Agents, archetypes and the agent list for the cognitive ABM."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional

import numpy as np

from .models import (
    DecisionOption,
    DecisionOptionLayer,
    Goal,
    GoalState,
    InputParameterError,
    MentalModel,
    MentalModelConfiguration,
    UnknownVariableError,
)
from .utils import choose_random, group_by

# Variable names shared by the scheduler, the demographic process and models.
AGENT_TYPE = "AgentType"
HOUSEHOLD = "Household"
NUCLEAR_FAMILY = "NuclearFamily"
EXTENDED_FAMILY = "ExtendedFamily"
EXTERNAL_RELATIONS = "ExternalRelations"
PAIR_STATUS = "PairStatus"
AGE = "Age"
GENDER = "Gender"
DISABILITY = "Disability"
HOUSEHOLD_HEAD = "HouseholdHead"
IS_ACTIVE = "IsActive"

PAIRED = "paired"
UNPAIRED = "unpaired"
MALE = "male"
FEMALE = "female"

Influence = Dict[Goal, float]


class Archetype:
    """
    Shared template for a class of agents.

    Holds common variables (read and written through by every agent of the
    archetype), the goal list, the mental-model configuration and the
    decision-option catalog. The mental-model prototype is built from the
    catalog by grouping options by mental-model number, then by layer number.
    """

    def __init__(
        self,
        name: str,
        name_prefix: Optional[str] = None,
        common_variables: Optional[Dict[str, Any]] = None,
        goals: Optional[Iterable[Goal]] = None,
        mental_model: Optional[Dict[str, MentalModelConfiguration]] = None,
        decision_options: Optional[Iterable[DecisionOption]] = None,
        is_data_set_oriented: bool = False,
        use_importance_adjusting: bool = False,
    ):
        self.name = name
        self.name_prefix = name_prefix or name
        self.common_variables: Dict[str, Any] = dict(common_variables or {})
        self.goals: List[Goal] = list(goals or [])
        self.mental_model: Dict[str, MentalModelConfiguration] = dict(mental_model or {})
        self.decision_options: List[DecisionOption] = list(decision_options or [])
        self.is_data_set_oriented = is_data_set_oriented
        self.use_importance_adjusting = use_importance_adjusting
        self._mental_proto: Optional[List[MentalModel]] = None
        if self.decision_options:
            self._build_mental_proto()

    def __getitem__(self, key: str) -> Any:
        if key in self.common_variables:
            return self.common_variables[key]
        raise UnknownVariableError(key, owner=self.name)

    def __setitem__(self, key: str, value: Any) -> None:
        self.common_variables[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self.common_variables

    @property
    def mental_proto(self) -> List[MentalModel]:
        if self._mental_proto is None:
            self._build_mental_proto()
        return self._mental_proto

    def _build_mental_proto(self) -> List[MentalModel]:
        models: List[MentalModel] = []
        by_model = group_by(self.decision_options, lambda option: option.mental_model)
        for model_number in sorted(by_model):
            configuration = self.mental_model.get(str(model_number))
            if configuration is None:
                raise InputParameterError(
                    f"Archetype '{self.name}' has no configuration for mental model {model_number}"
                )
            associated = [goal for goal in self.goals if goal.name in configuration.associated_with]
            layers = []
            by_layer = group_by(by_model[model_number], lambda option: option.layer_number)
            for layer_number in sorted(by_layer):
                layer_configuration = configuration.layer.get(str(layer_number))
                if layer_configuration is None:
                    raise InputParameterError(
                        f"Archetype '{self.name}' has no configuration for layer "
                        f"{layer_number} of mental model {model_number}"
                    )
                layers.append(DecisionOptionLayer(layer_configuration, by_layer[layer_number]))
            models.append(MentalModel(model_number, associated, layers))
        self._mental_proto = models
        return models

    def add_new_decision_option(self, option: DecisionOption, layer: DecisionOptionLayer) -> None:
        if self._mental_proto is None:
            self._build_mental_proto()
        layer.add(option)
        self.decision_options.append(option)

    def find_similar_decision_option(self, option: DecisionOption) -> Optional[DecisionOption]:
        for existing in self.decision_options:
            if existing == option:
                return existing
        return None

    def is_similar_decision_option_exists(self, option: DecisionOption) -> bool:
        return self.find_similar_decision_option(option) is not None

    def get_decision_option(self, option_id: str) -> DecisionOption:
        for option in self.decision_options:
            if option.id == option_id:
                return option
        raise KeyError(f"Archetype '{self.name}' has no decision option '{option_id}'")

    def __repr__(self) -> str:
        return f"Archetype({self.name!r})"


class Agent:
    """
    A cognitive agent with a private variable bag backed by its archetype.

    Reading a variable falls back from the private scope to the archetype's
    common scope. Writing a key the common scope already owns writes through
    to the archetype, otherwise the private scope is used.
    """

    def __init__(self, agent_id: str, archetype: Archetype, variables: Optional[Dict[str, Any]] = None):
        self.id = agent_id
        self.archetype = archetype
        self.private_variables: Dict[str, Any] = dict(variables or {})
        self.connected_agents: List[Agent] = []
        self.assigned_goals: List[Goal] = list(archetype.goals)
        self.assigned_decision_options: List[DecisionOption] = []
        self.anticipation_influence: Dict[DecisionOption, Influence] = {}
        self.decision_option_activation_freshness: Dict[DecisionOption, int] = {}
        self.initial_goal_states: Dict[Goal, GoalState] = {}

    # -- variables -----------------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        if key in self.private_variables:
            return self.private_variables[key]
        if key in self.archetype.common_variables:
            return self.archetype.common_variables[key]
        raise UnknownVariableError(key, owner=self.id)

    def __setitem__(self, key: str, value: Any) -> None:
        old_value = self.get_variable(key)
        self.pre_set_value(key, old_value)
        if key in self.archetype.common_variables:
            self.archetype[key] = value
        else:
            self.private_variables[key] = value
        self.post_set_value(key, value)

    def pre_set_value(self, key: str, old_value: Any) -> None:
        """Hook for models that track variable changes."""

    def post_set_value(self, key: str, new_value: Any) -> None:
        """Hook for models that track variable changes."""

    def contains_variable(self, key: str) -> bool:
        return key in self.private_variables or key in self.archetype.common_variables

    def get_variable(self, key: str, default: Any = None) -> Any:
        if self.contains_variable(key):
            return self[key]
        return default

    def set_to_common(self, key: str, value: Any) -> None:
        self.archetype[key] = value

    @property
    def is_active(self) -> bool:
        return bool(self.get_variable(IS_ACTIVE, True))

    # -- network -------------------------------------------------------------

    def connect(self, other: "Agent") -> None:
        if other is self:
            return
        if other not in self.connected_agents:
            self.connected_agents.append(other)
        if self not in other.connected_agents:
            other.connected_agents.append(self)

    def disconnect(self, other: "Agent") -> None:
        if other in self.connected_agents:
            self.connected_agents.remove(other)
        if self in other.connected_agents:
            other.connected_agents.remove(self)

    # -- decision options ----------------------------------------------------

    def layer_decision_options(self, layer: DecisionOptionLayer) -> List[DecisionOption]:
        return [option for option in self.assigned_decision_options if option.layer is layer]

    def assign_new_decision_option(
        self,
        option: DecisionOption,
        influence: Optional[Influence] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """
        Assign an option, evicting the stalest options of its layer if full.

        The stored influence is restricted to the agent's own goals. Assigning
        an option the agent already holds only resets its freshness and, when
        given, refreshes its influence.
        """
        if option not in self.assigned_decision_options:
            layer = option.layer
            if layer is not None:
                capacity = layer.configuration.max_number_of_decision_options
                while len(self.layer_decision_options(layer)) >= capacity:
                    self._evict_stalest(layer, rng)
            self.assigned_decision_options.append(option)
            self.anticipation_influence[option] = {}
        if influence is not None:
            self.anticipation_influence[option] = {
                goal: float(value) for goal, value in influence.items() if goal in self.assigned_goals
            }
        self.decision_option_activation_freshness[option] = 0

    def _evict_stalest(self, layer: DecisionOptionLayer, rng: Optional[np.random.Generator]) -> DecisionOption:
        candidates = self.layer_decision_options(layer)
        stalest = max(self.decision_option_activation_freshness.get(option, 0) for option in candidates)
        victim = choose_random(
            [option for option in candidates if self.decision_option_activation_freshness.get(option, 0) == stalest],
            rng,
        )
        self.assigned_decision_options.remove(victim)
        self.anticipation_influence.pop(victim, None)
        self.decision_option_activation_freshness.pop(victim, None)
        return victim

    def add_decision_option(
        self,
        option: DecisionOption,
        layer: DecisionOptionLayer,
        influence: Optional[Influence] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """Register ``option`` in the archetype catalog and assign it."""
        self.archetype.add_new_decision_option(option, layer)
        self.assign_new_decision_option(option, influence, rng)

    def mental_models(self) -> List[MentalModel]:
        """Mental models the agent holds options in, ordered by position."""
        models = {option.layer.mental_model for option in self.assigned_decision_options if option.layer}
        return sorted(models, key=lambda model: model.position_number)

    # -- lifecycle -----------------------------------------------------------

    def clone(self) -> "Agent":
        """Copy variables, goals and options; connections are not copied."""
        agent = type(self)(self.id, self.archetype, dict(self.private_variables))
        agent.assigned_goals = list(self.assigned_goals)
        agent.assigned_decision_options = list(self.assigned_decision_options)
        agent.anticipation_influence = {option: dict(values) for option, values in self.anticipation_influence.items()}
        agent.decision_option_activation_freshness = dict(self.decision_option_activation_freshness)
        agent.initial_goal_states = {goal: state.clone() for goal, state in self.initial_goal_states.items()}
        return agent

    def create_child(self, gender: str, name: str) -> "Agent":
        child = type(self)(name, self.archetype)
        child.private_variables = {
            IS_ACTIVE: True,
            AGE: 0,
            GENDER: gender,
            PAIR_STATUS: UNPAIRED,
            DISABILITY: False,
        }
        child.assigned_goals = list(self.assigned_goals)
        return child

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Agent) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"Agent({self.id!r})"


class AgentList:
    """All agents of a simulation together with their archetypes."""

    def __init__(self, agents: Optional[Iterable[Agent]] = None, archetypes: Optional[Iterable[Archetype]] = None):
        self.agents: List[Agent] = list(agents or [])
        self.archetypes: List[Archetype] = list(archetypes or [])
        self._by_id: Dict[str, Agent] = {agent.id: agent for agent in self.agents}

    @property
    def active_agents(self) -> List[Agent]:
        return [agent for agent in self.agents if agent.is_active]

    def add(self, agent: Agent) -> None:
        if agent.id in self._by_id:
            raise ValueError(f"Agent id '{agent.id}' is already in use")
        self.agents.append(agent)
        self._by_id[agent.id] = agent

    def get(self, agent_id: str) -> Agent:
        return self._by_id[agent_id]

    def get_archetype(self, name: str) -> Archetype:
        for archetype in self.archetypes:
            if archetype.name == name:
                return archetype
        raise KeyError(f"Unknown archetype '{name}'")

    def __iter__(self) -> Iterator[Agent]:
        return iter(self.agents)

    def __len__(self) -> int:
        return len(self.agents)
