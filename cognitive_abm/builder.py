"""
Model definitions: building archetypes, agents and their network.

A model definition is a JSON-compatible dictionary::

    {
      "archetypes": [{
        "name": "Household", "name_prefix": "HH",
        "use_importance_adjusting": true,
        "common_variables": {"Pool": 100},
        "goals": [{"name": "Income", "tendency": "Maximize", "reference_variable": "Income"}],
        "mental_model": {"1": {"name": "Harvest", "associated_with": ["Income"],
                               "layer": {"1": {"modifiable": true,
                                               "consequent_value_interval": [0, 10],
                                               "consequent_relationship_sign": {"Income": "+"}}}}},
        "decision_options": [{"mental_model": 1, "layer": 1,
                              "antecedent": [{"param": "Pool", "sign": ">", "value": 0}],
                              "consequent": {"param": "Harvest", "value": 2}}]
      }],
      "agents": [{"id": "HH1", "archetype": "Household", "variables": {...},
                  "goals": {"Income": {"importance": 1.0}},
                  "anticipated_influence": {"MM1-1_DO1": {"Income": 1.0}}}],
      "network": {"group_by": ["Household"], "external_relations": "ExternalRelations"}
    }

Agent entries with a ``count`` expand into that many agents named
``<name_prefix><n>``. Options are referenced by their ``MM<m>-<l>_DO<p>`` id;
when ``assigned_decision_options`` is omitted an agent holds the whole
catalog of its archetype.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import networkx as nx

from .agents import (
    EXTENDED_FAMILY,
    EXTERNAL_RELATIONS,
    NUCLEAR_FAMILY,
    Agent,
    AgentList,
    Archetype,
)
from .models import (
    AntecedentPart,
    Consequent,
    DecisionOption,
    Goal,
    GoalState,
    InputParameterError,
    LayerConfiguration,
    MentalModelConfiguration,
)


def _build_goal(entry: Dict[str, Any]) -> Goal:
    try:
        return Goal(**entry)
    except TypeError as exc:
        raise InputParameterError(f"Invalid goal definition {entry!r}: {exc}") from None


def _build_decision_option(entry: Dict[str, Any]) -> DecisionOption:
    antecedent = [
        AntecedentPart(part["param"], part["sign"], part.get("value"), part.get("reference_variable"))
        for part in entry.get("antecedent", [])
    ]
    consequent_entry = entry["consequent"]
    consequent = Consequent(
        consequent_entry["param"],
        consequent_entry.get("value"),
        consequent_entry.get("variable_value"),
        copy_to_common=bool(consequent_entry.get("copy_to_common", False)),
        save_previous=bool(consequent_entry.get("save_previous", False)),
    )
    return DecisionOption(
        entry["mental_model"],
        entry["layer"],
        antecedent,
        consequent,
        is_modifiable=entry.get("is_modifiable", False),
        is_collective_action=entry.get("is_collective_action", False),
        scope=entry.get("scope"),
        required_participants=entry.get("required_participants", 1),
    )


def _build_mental_model(entry: Dict[str, Any]) -> Dict[str, MentalModelConfiguration]:
    models = {}
    for number, model in entry.items():
        layers = {str(key): LayerConfiguration(**layer) for key, layer in model.get("layer", {}).items()}
        models[str(number)] = MentalModelConfiguration(
            name=model.get("name", str(number)),
            associated_with=list(model.get("associated_with", [])),
            layer=layers,
        )
    return models


def build_archetype(entry: Dict[str, Any]) -> Archetype:
    return Archetype(
        entry["name"],
        name_prefix=entry.get("name_prefix"),
        common_variables=copy.deepcopy(entry.get("common_variables", {})),
        goals=[_build_goal(goal) for goal in entry.get("goals", [])],
        mental_model=_build_mental_model(entry.get("mental_model", {})),
        decision_options=[_build_decision_option(option) for option in entry.get("decision_options", [])],
        is_data_set_oriented=bool(entry.get("is_data_set_oriented", False)),
        use_importance_adjusting=bool(entry.get("use_importance_adjusting", False)),
    )


def _expand_agent_entries(entries: Iterable[Dict[str, Any]], archetypes: Dict[str, Archetype]) -> List[Dict[str, Any]]:
    expanded: List[Dict[str, Any]] = []
    counters: Dict[str, int] = {}
    for entry in entries:
        archetype = archetypes.get(entry.get("archetype"))
        if archetype is None:
            raise InputParameterError(f"Agent definition refers to unknown archetype {entry.get('archetype')!r}")
        count = int(entry.get("count", 1))
        for _ in range(count):
            counters[archetype.name_prefix] = counters.get(archetype.name_prefix, 0) + 1
            item = copy.deepcopy(entry)
            item.pop("count", None)
            if count > 1 or "id" not in item:
                item["id"] = f"{archetype.name_prefix}{counters[archetype.name_prefix]}"
            expanded.append(item)
    return expanded


def build_agent(entry: Dict[str, Any], archetype: Archetype) -> Agent:
    agent = Agent(entry["id"], archetype, copy.deepcopy(entry.get("variables", {})))
    goals_by_name = {goal.name: goal for goal in archetype.goals}

    goal_entries = entry.get("goals", {})
    default_importance = 1.0 / len(archetype.goals) if archetype.goals else 0.0
    for goal in archetype.goals:
        goal_entry = goal_entries.get(goal.name, {})
        agent.initial_goal_states[goal] = GoalState(
            float(goal_entry.get("value", 0.0)),
            float(goal_entry.get("focal_value", goal.focal_value)),
            float(goal_entry.get("importance", default_importance)),
            min_goal_value_static=goal.min_goal_value_static,
            max_goal_value_static=goal.max_goal_value_static,
            min_goal_value_reference=goal.min_goal_value_reference,
            max_goal_value_reference=goal.max_goal_value_reference,
        )

    option_ids = entry.get("assigned_decision_options")
    options = (
        [archetype.get_decision_option(option_id) for option_id in option_ids]
        if option_ids is not None
        else list(archetype.decision_options)
    )
    influences = entry.get("anticipated_influence", {})
    for option in options:
        raw = influences.get(option.id, {})
        unknown = set(raw) - set(goals_by_name)
        if unknown:
            raise InputParameterError(f"Agent '{agent.id}' has influences for unknown goals {sorted(unknown)}")
        agent.assign_new_decision_option(option, {goals_by_name[name]: value for name, value in raw.items()})

    if agent.contains_variable(NUCLEAR_FAMILY) and not agent.contains_variable(EXTENDED_FAMILY):
        agent[EXTENDED_FAMILY] = [agent[NUCLEAR_FAMILY]]
    return agent


def _connect_groups(agents: List[Agent], variable: str) -> None:
    groups: Dict[Any, List[Agent]] = {}
    for agent in agents:
        if agent.contains_variable(variable):
            groups.setdefault(agent[variable], []).append(agent)
    for members in groups.values():
        for i, agent in enumerate(members):
            for other in members[i + 1:]:
                agent.connect(other)


def _connect_external_relations(agents: List[Agent], variable: str, by_id: Dict[str, Agent]) -> None:
    for agent in agents:
        raw = agent.get_variable(variable)
        if not raw:
            continue
        relations = raw.split(";") if isinstance(raw, str) else list(raw)
        for other_id in (item.strip() for item in relations):
            if other_id:
                if other_id not in by_id:
                    raise InputParameterError(f"Agent '{agent.id}' is related to unknown agent '{other_id}'")
                agent.connect(by_id[other_id])


def _connect_small_world(agents: List[Agent], n_neighbors: int, rewiring_prob: float, seed: Optional[int]) -> None:
    if len(agents) <= n_neighbors:
        graph = nx.complete_graph(len(agents))
    else:
        graph = nx.watts_strogatz_graph(n=len(agents), k=n_neighbors, p=rewiring_prob, seed=seed)
    for left, right in graph.edges():
        agents[left].connect(agents[right])


def build_model(
    definition: Dict[str, Any],
    seed: Optional[int] = None,
    n_neighbors: int = 4,
    rewiring_prob: float = 0.1,
) -> AgentList:
    """Build archetypes, agents and connections from a model definition."""
    archetype_list = [build_archetype(entry) for entry in definition.get("archetypes", [])]
    archetypes = {archetype.name: archetype for archetype in archetype_list}
    agent_list = AgentList(archetypes=archetype_list)
    for entry in _expand_agent_entries(definition.get("agents", []), archetypes):
        agent_list.add(build_agent(entry, archetypes[entry["archetype"]]))

    agents = agent_list.agents
    by_id = {agent.id: agent for agent in agents}
    network = definition.get("network", {})
    for variable in network.get("group_by", []):
        _connect_groups(agents, variable)
    relations_variable = network.get("external_relations", EXTERNAL_RELATIONS if network else None)
    if relations_variable:
        _connect_external_relations(agents, relations_variable, by_id)
    if "small_world" in network:
        small_world = network["small_world"] or {}
        _connect_small_world(
            agents,
            int(small_world.get("n_neighbors", n_neighbors)),
            float(small_world.get("rewiring_prob", rewiring_prob)),
            seed,
        )
    for entry in definition.get("agents", []):
        if "id" in entry and "count" not in entry:
            for other_id in entry.get("connected_agents", []):
                if other_id not in by_id:
                    raise InputParameterError(f"Agent '{entry['id']}' is connected to unknown agent '{other_id}'")
                by_id[entry["id"]].connect(by_id[other_id])
    return agent_list


def load_model_definition(path: str | os.PathLike[str]) -> Dict[str, Any]:
    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Model definition not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict) or "archetypes" not in payload:
        raise ValueError(f"Model definition {file_path} must be an object with an 'archetypes' list.")
    return payload


def network_graph(agent_list: AgentList, active_only: bool = False) -> nx.Graph:
    """Export agents and their connections as an undirected graph."""
    agents = agent_list.active_agents if active_only else agent_list.agents
    included = set(agents)
    graph = nx.Graph()
    for agent in agents:
        graph.add_node(agent.id, archetype=agent.archetype.name)
    for agent in agents:
        for other in agent.connected_agents:
            if other in included:
                graph.add_edge(agent.id, other.id)
    return graph