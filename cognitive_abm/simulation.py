"""Iteration scheduler for the cognitive ABM."""

from __future__ import annotations

import json
import math
import os
from typing import Any, Dict, Hashable, List, Optional, Sequence, Union

import networkx as nx
import numpy as np
import pandas as pd

from .actions import ActionTaking
from .agents import Agent, AgentList
from .builder import network_graph
from .config import SimulationConfig
from .demographic import Demographic, DemographicConfig
from .goals import GoalPrioritizing, GoalSelecting
from .innovation import DEBUG_INNOVATION_LOG, Innovation
from .learning import AnticipatoryLearning, CounterfactualThinking
from .models import DEFAULT_DATA_SET, AgentState, DecisionOption, GoalState, TakenAction
from .probability import Probabilities, load_probabilities
from .satisficing import DEBUG_COLLECTIVE_LOG, Satisficing
from .social import SocialLearning
from .utils import derive_run_seed, make_rng, safe_mean, shuffled

Snapshot = Dict[Agent, AgentState]


class Simulation:
    """
    Runs the decision pipeline over a single timeline of iterations.

    Each iteration appends a per-agent state snapshot to ``iterations`` and
    then runs, in order: demographic change, goal ranking, anticipatory
    learning with counterfactual thinking and innovation (round 1), social
    learning (round 2), satisficing part I (round 3) and part II (round 4),
    and action taking (round 5). Every random draw comes from ``rng``.

    Models customise behaviour by overriding the hook methods
    (``initialize_first_iteration_state``, ``post_iteration_calculations``,
    ``maintenance`` and so on); the base implementations are no-ops unless
    documented otherwise.
    """

    def __init__(
        self,
        config: SimulationConfig,
        agent_list: AgentList,
        output_dir: str,
        run_id: Union[int, str],
        probabilities: Optional[Probabilities] = None,
        data_sets: Optional[Sequence[Hashable]] = None,
        goal_prioritizing: Optional[GoalPrioritizing] = None,
        goal_selecting: Optional[GoalSelecting] = None,
    ):
        # --- Core Simulation Setup ---
        self.config = config
        self.run_id = str(run_id)
        self.debug_enabled = bool(getattr(self.config, "ENABLE_DEBUG_LOGS", False))
        self._run_seed = derive_run_seed(getattr(self.config, "RANDOM_SEED", None), self.run_id)
        self.rng: np.random.Generator = make_rng(self._run_seed)

        self.agent_list = agent_list
        if probabilities is None:
            probabilities = load_probabilities(
                config.PROBABILITY_TABLES, with_header=config.PROBABILITY_TABLES_WITH_HEADER
            )
        self.probabilities = probabilities
        self.data_sets: List[Hashable] = list(data_sets) if data_sets else [DEFAULT_DATA_SET]
        self.iterations: List[Snapshot] = []
        self.iteration = 0

        # --- Processes ---
        self.anticipatory_learning = AnticipatoryLearning()
        self.goal_prioritizing = goal_prioritizing or GoalPrioritizing()
        self.goal_selecting = goal_selecting or GoalSelecting()
        self.counterfactual_thinking = CounterfactualThinking()
        self.innovation = Innovation(debug=self.debug_enabled)
        self.social_learning = SocialLearning()
        self.satisficing = Satisficing(debug=self.debug_enabled)
        self.action_taking = ActionTaking()
        self.demographic = self._create_demographic() if self._enabled("USE_DEMOGRAPHIC_PROCESSES") else None

        # --- Data Collection ---
        self.output_dir = output_dir
        self.data_paths = self._setup_data_directories(output_dir, self.run_id)
        self.data_buffer: Dict[str, List[Dict[str, Any]]] = {
            "activations": [],
            "actions": [],
            "goals": [],
            "innovations": [],
            "summary": [],
        }
        self.buffer_flush_interval = max(1, int(getattr(config, "buffer_flush_interval", 10)))
        self.round_log_interval = max(1, int(getattr(config, "round_log_interval", 1)))
        self.enable_round_logging = bool(getattr(config, "enable_round_logging", True))
        self.write_agent_details = bool(getattr(config, "write_agent_details", False))
        self.round_log_path = os.path.join(self.data_paths["base"], "run_log.jsonl")
        if self.enable_round_logging:
            with open(self.round_log_path, "w", encoding="utf-8") as _log_file:
                _log_file.write("")
        if self.debug_enabled:
            self.debug_innovation_path = os.path.join(self.data_paths["base"], "debug_innovation.jsonl")
            self.debug_collective_path = os.path.join(self.data_paths["base"], "debug_collective.jsonl")
        else:
            self.debug_innovation_path = None
            self.debug_collective_path = None
        self._iteration_counters: Dict[str, int] = {}
        self._last_logged_iteration = 0
        self._last_summary: Dict[str, Any] = {}

        self.initialize_agents()

    def _enabled(self, process: str) -> bool:
        return self.config.is_enabled(process)

    def _create_demographic(self) -> Demographic:
        demographic_config = DemographicConfig.from_dict(self.config.DEMOGRAPHIC)
        return Demographic(
            demographic_config,
            self.probabilities.get_probability_table(demographic_config.birth_probability),
            self.probabilities.get_probability_table(demographic_config.death_probability),
        )

    # ------------------------------------------------------------------
    # Extension hooks
    # ------------------------------------------------------------------

    def initialize_agents(self) -> None:
        """Called once at construction, after the agent list is attached."""

    def initialize_first_iteration_state(self) -> Snapshot:
        """Seed state for iteration 1: goal values are read from the agents' variables."""
        return {agent: self._seed_state(agent) for agent in self.agent_list.active_agents}

    def pre_iteration_calculations(self, iteration: int) -> None:
        pass

    def pre_iteration_statistic(self, iteration: int) -> None:
        pass

    def before_counterfactual_thinking(self, agent: Agent, data_set: Hashable) -> None:
        pass

    def after_innovation(self, agent: Agent, data_set: Hashable, option: Optional[DecisionOption]) -> None:
        pass

    def before_action_selection(self, agent: Agent, data_set: Hashable) -> None:
        pass

    def after_action_taking(self, agent: Agent, data_set: Hashable, actions: List[TakenAction]) -> None:
        pass

    def post_iteration_calculations(self, iteration: int) -> None:
        pass

    def post_iteration_statistic(self, iteration: int) -> None:
        if self.write_agent_details:
            self._write_agent_details(iteration)

    def agents_deactivation(self, iteration: int) -> None:
        pass

    def after_deactivation(self, iteration: int) -> None:
        pass

    def reproduction(self, minimum_agent_number: int) -> None:
        pass

    def maintenance(self) -> None:
        """Age every assigned option of every active agent by one iteration."""
        for agent in self.agent_list.active_agents:
            freshness = agent.decision_option_activation_freshness
            for option in freshness:
                freshness[option] += 1

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> Dict[str, Any]:
        """Run until the iteration budget is spent or a stop condition fires."""
        print(f"[{self.run_id}] Starting simulation...")
        self._reset_debug_logs()
        stop_reason = "iterations"
        for _ in range(self.config.N_ITERATIONS):
            stop = self._step()
            if stop is not None:
                stop_reason = stop
                break

        # Ensure any remaining buffered data is persisted
        self._flush_buffers(self.iteration)
        self._save_final_agent_state()
        self._save_network()
        self._write_debug_logs()
        print(f"[{self.run_id}] Simulation finished after {self.iteration} iterations ({stop_reason}).")
        return {
            "run_id": self.run_id,
            "iterations": self.iteration,
            "stop_reason": stop_reason,
            "run_dir": self.data_paths["base"],
            "active_agents": len(self.agent_list.active_agents),
        }

    def _step(self) -> Optional[str]:
        self.iteration += 1
        iteration = self.iteration
        rng = self.rng
        self._iteration_counters = {"innovations": 0, "births": 0, "pairings": 0, "deaths": 0}

        self.pre_iteration_calculations(iteration)
        self.pre_iteration_statistic(iteration)

        prior: Optional[Snapshot] = self.iterations[-1] if self.iterations else None
        current: Snapshot = self.initialize_first_iteration_state() if prior is None else {}
        self.iterations.append(current)

        ordered_agents = self._order_agents()
        for agent in ordered_agents:
            if prior is not None:
                previous = prior.get(agent)
                current[agent] = previous.create_for_next_iteration() if previous else self._seed_state(agent)
            elif agent not in current:
                current[agent] = self._seed_state(agent)
            current[agent].ranked_goals = list(agent.assigned_goals)

        if self.demographic is not None and iteration > 1:
            self._iteration_counters.update(
                self.demographic.change_demographic(iteration, current, self.agent_list, rng)
            )
            # Newborns join the pipeline next iteration.
            ordered_agents = [agent for agent in ordered_agents if agent.is_active]

        ordered_data_sets = shuffled(self.data_sets, rng)

        if iteration == 1:
            for agent in ordered_agents:
                state = current[agent]
                state.ranked_goals = self.goal_selecting.sort_by_importance(agent, state.goal_states, rng)
                if self._enabled("ANTICIPATORY_LEARNING"):
                    state.anticipated_influences = agent.anticipation_influence

        # 1st round: anticipatory learning, goal prioritizing, counterfactual thinking, innovation
        if self._enabled("ANTICIPATORY_LEARNING") and prior is not None:
            for agent in ordered_agents:
                state = current[agent]
                prior_state = prior.get(agent)
                if prior_state is None:
                    # Agents added by a model hook have no history to learn from yet.
                    state.ranked_goals = self.goal_selecting.sort_by_importance(agent, state.goal_states, rng)
                    continue
                self.anticipatory_learning.execute(agent, state, prior_state)
                self.goal_prioritizing.prioritize(agent, state.goal_states)
                state.ranked_goals = self.goal_selecting.sort_by_importance(agent, state.goal_states, rng)
                if self._enabled("COUNTERFACTUAL_THINKING") and any(
                    not goal_state.confidence for goal_state in state.goal_states.values()
                ):
                    self._counterfactual_round(agent, state, prior_state, ordered_data_sets)
                state.anticipated_influences = agent.anticipation_influence

        # 2nd round: social learning
        if self._enabled("SOCIAL_LEARNING") and prior is not None:
            for agent in ordered_agents:
                for mental_model in agent.mental_models():
                    for layer in mental_model.layers:
                        self.social_learning.execute(agent, prior, layer, rng)

        # 3rd round: satisficing part I
        if self._enabled("DECISION_OPTION_SELECTION"):
            for agent in ordered_agents:
                for data_set in self._agent_data_sets(agent, ordered_data_sets):
                    self.before_action_selection(agent, data_set)
                    for mental_model in agent.mental_models():
                        for layer in mental_model.layers:
                            self.satisficing.execute_part_i(
                                agent, current, agent.layer_decision_options(layer), data_set, rng
                            )

            # 4th round: satisficing part II (collective-action quorum)
            if self._enabled("DECISION_OPTION_SELECTION_PART2") and prior is not None:
                for agent in ordered_agents:
                    for data_set in self._agent_data_sets(agent, ordered_data_sets):
                        for mental_model in agent.mental_models():
                            for layer in mental_model.layers:
                                self.satisficing.execute_part_ii(agent, current, layer, data_set, rng)

        # 5th round: action taking
        if self._enabled("ACTION_TAKING"):
            for agent in ordered_agents:
                for data_set in self._agent_data_sets(agent, ordered_data_sets):
                    actions = self.action_taking.execute(agent, current[agent], data_set)
                    self._record_actions(agent, data_set, actions)
                    self.after_action_taking(agent, data_set, actions)

        stop: Optional[str] = None
        if (
            self._enabled("ALGORITHM_STOP_IF_ALL_AGENTS_SELECT_DO_NOTHING")
            and iteration > 1
            and not any(state.activated_options() for state in current.values())
        ):
            stop = "all_agents_do_nothing"

        self.post_iteration_calculations(iteration)
        self.post_iteration_statistic(iteration)
        self._record_iteration(iteration, current, ordered_agents)

        if self._enabled("AGENTS_DEACTIVATION") and iteration > 1:
            self.agents_deactivation(iteration)
            self.after_deactivation(iteration)
        if self._enabled("REPRODUCTION") and iteration > 1:
            self.reproduction(0)

        if stop is None and not self.agent_list.active_agents:
            stop = "no_active_agents"
        if stop is not None:
            self._log_round_summary(self._last_summary, force=True)
            return stop

        self.maintenance()
        return None

    def _counterfactual_round(
        self,
        agent: Agent,
        state: AgentState,
        prior_state: AgentState,
        ordered_data_sets: List[Hashable],
    ) -> None:
        innovation_enabled = self._enabled("INNOVATION")
        for data_set in self._agent_data_sets(agent, ordered_data_sets):
            self.before_counterfactual_thinking(agent, data_set)
            for mental_model in agent.mental_models():
                goal = next((g for g in state.ranked_goals if g in mental_model.associated_goals), None)
                if goal is None:
                    continue
                goal_state = state.goal_states[goal]
                if goal_state.confidence:
                    continue
                for layer in mental_model.layers:
                    layer_options = agent.layer_decision_options(layer)
                    if not layer_options:
                        continue
                    if not layer.is_modifiable and not any(option.is_modifiable for option in layer_options):
                        continue
                    regained = self.counterfactual_thinking.execute(
                        agent, prior_state, goal, goal_state, layer, data_set
                    )
                    if innovation_enabled and not regained:
                        option = self.innovation.execute(
                            agent, self.iterations, goal, layer, data_set, self.probabilities, self.rng
                        )
                        if option is not None:
                            self._record_innovation(agent, data_set, goal.name, option)
                        self.after_innovation(agent, data_set, option)

    def _order_agents(self) -> List[Agent]:
        agents = self.agent_list.active_agents
        if self._enabled("AGENT_RANDOMIZATION"):
            agents = shuffled(agents, self.rng)
        groups: Dict[str, List[Agent]] = {}
        for agent in agents:
            groups.setdefault(agent.archetype.name_prefix, []).append(agent)
        return [agent for prefix in sorted(groups) for agent in groups[prefix]]

    def _agent_data_sets(self, agent: Agent, ordered_data_sets: List[Hashable]) -> List[Hashable]:
        if agent.archetype.is_data_set_oriented:
            return ordered_data_sets
        return [DEFAULT_DATA_SET]

    def _seed_state(self, agent: Agent) -> AgentState:
        goal_states: Dict[Any, GoalState] = {}
        default_importance = 1.0 / len(agent.assigned_goals) if agent.assigned_goals else 0.0
        for goal in agent.assigned_goals:
            initial = agent.initial_goal_states.get(goal)
            if initial is not None:
                goal_state = initial.create_copy()
            else:
                goal_state = GoalState(
                    0.0,
                    goal.focal_value,
                    default_importance,
                    min_goal_value_static=goal.min_goal_value_static,
                    max_goal_value_static=goal.max_goal_value_static,
                    min_goal_value_reference=goal.min_goal_value_reference,
                    max_goal_value_reference=goal.max_goal_value_reference,
                )
            if agent.contains_variable(goal.reference_variable):
                goal_state.value = float(agent[goal.reference_variable])
                goal_state.prior_value = goal_state.value
            if goal.focal_value_reference and agent.contains_variable(goal.focal_value_reference):
                goal_state.focal_value = float(agent[goal.focal_value_reference])
                goal_state.prior_focal_value = goal_state.focal_value
            goal_states[goal] = goal_state
        return AgentState.create(agent.archetype.is_data_set_oriented, goal_states)

    # ------------------------------------------------------------------
    # Data collection
    # ------------------------------------------------------------------

    @staticmethod
    def _data_set_label(data_set: Hashable) -> str:
        return str(getattr(data_set, "name", data_set))

    def _record_innovation(self, agent: Agent, data_set: Hashable, goal_name: str, option: DecisionOption) -> None:
        self._iteration_counters["innovations"] += 1
        self.data_buffer["innovations"].append(
            {
                "iteration": self.iteration,
                "agent_id": agent.id,
                "data_set": self._data_set_label(data_set),
                "goal": goal_name,
                "decision_option": option.id,
                "variable": option.consequent.param,
                "value": option.consequent.value,
            }
        )

    def _record_actions(self, agent: Agent, data_set: Hashable, actions: List[TakenAction]) -> None:
        for action in actions:
            self.data_buffer["actions"].append(
                {
                    "iteration": self.iteration,
                    "agent_id": agent.id,
                    "data_set": self._data_set_label(data_set),
                    "decision_option": action.decision_option_id,
                    "variable": action.variable,
                    "value": action.value,
                }
            )

    def _record_iteration(self, iteration: int, current: Snapshot, processed: List[Agent]) -> None:
        activated = 0
        goal_values: Dict[str, List[float]] = {}
        for agent in processed:
            state = current[agent]
            for data_set, history in state.decision_option_histories.items():
                for option in history.activated:
                    activated += 1
                    self.data_buffer["activations"].append(
                        {
                            "iteration": iteration,
                            "agent_id": agent.id,
                            "data_set": self._data_set_label(data_set),
                            "decision_option": option.id,
                            "mental_model": option.mental_model,
                            "layer": option.layer_number,
                            "matched": len(history.matched),
                            "blocked": len(history.blocked),
                        }
                    )
            for goal, goal_state in state.goal_states.items():
                goal_values.setdefault(goal.name, []).append(goal_state.value)
                self.data_buffer["goals"].append(
                    {
                        "iteration": iteration,
                        "agent_id": agent.id,
                        "goal": goal.name,
                        "value": goal_state.value,
                        "focal_value": goal_state.focal_value,
                        "importance": goal_state.importance,
                        "adjusted_importance": goal_state.adjusted_importance,
                        "confidence": goal_state.confidence,
                        "anticipated_direction": goal_state.anticipated_direction.value,
                    }
                )

        summary: Dict[str, Any] = {
            "iteration": iteration,
            "active_agents": len(self.agent_list.active_agents),
            "processed_agents": len(processed),
            "activated_options": activated,
            "taken_actions": sum(
                len(actions) for agent in processed for actions in current[agent].taken_actions.values()
            ),
            **self._iteration_counters,
        }
        for goal_name, values in goal_values.items():
            summary[f"mean_{goal_name}"] = safe_mean(values)
        self.data_buffer["summary"].append(summary)
        self._last_summary = summary
        self._log_round_summary(summary)

        if iteration % self.buffer_flush_interval == 0:
            self._flush_buffers(iteration)

    def _flush_buffers(self, iteration: int) -> None:
        """Write buffered data to disk"""
        for key, records in self.data_buffer.items():
            if not records:
                continue
            frame = pd.DataFrame(records)
            frame["run_id"] = self.run_id
            frame.to_pickle(os.path.join(self.data_paths[key], f"batch_{iteration}.pkl"))
            self.data_buffer[key] = []

    def _log_round_summary(self, record: Dict[str, Any], force: bool = False) -> None:
        """Append a plain-text JSON record for quick diagnostics."""
        if not self.enable_round_logging:
            return
        iteration = int(record.get("iteration", 0))
        if iteration == self._last_logged_iteration:
            return
        if not force and iteration != self.config.N_ITERATIONS and iteration % self.round_log_interval != 0:
            return
        enriched = dict(record)
        enriched.setdefault("run_id", self.run_id)
        for key, value in list(enriched.items()):
            if isinstance(value, float):
                if math.isnan(value) or math.isinf(value):
                    enriched[key] = 0.0
        with open(self.round_log_path, "a", encoding="utf-8") as log_file:
            log_file.write(json.dumps(enriched, default=float) + "\n")
        self._last_logged_iteration = iteration

    def _reset_debug_logs(self) -> None:
        DEBUG_INNOVATION_LOG.clear()
        DEBUG_COLLECTIVE_LOG.clear()

    def _write_debug_logs(self) -> None:
        if not self.debug_enabled:
            DEBUG_INNOVATION_LOG.clear()
            DEBUG_COLLECTIVE_LOG.clear()
            return
        for entries, path in (
            (DEBUG_INNOVATION_LOG, self.debug_innovation_path),
            (DEBUG_COLLECTIVE_LOG, self.debug_collective_path),
        ):
            if entries:
                with open(path, "w", encoding="utf-8") as log_file:
                    for entry in entries:
                        log_file.write(json.dumps(entry, default=str) + "\n")
                entries.clear()

    def _setup_data_directories(self, base_dir: str, run_id: str) -> Dict[str, str]:
        """Creates subdirectories for this specific simulation run to store output data."""
        run_dir = os.path.join(base_dir, run_id)
        paths = {
            "base": run_dir,
            "activations": os.path.join(run_dir, "activations"),
            "actions": os.path.join(run_dir, "actions"),
            "goals": os.path.join(run_dir, "goals"),
            "innovations": os.path.join(run_dir, "innovations"),
            "summary": os.path.join(run_dir, "summary"),
        }
        for path in paths.values():
            os.makedirs(path, exist_ok=True)
        return paths

    def _agent_record(self, agent: Agent) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "run_id": self.run_id,
            "agent_id": agent.id,
            "archetype": agent.archetype.name,
            "active": agent.is_active,
            "decision_options": len(agent.assigned_decision_options),
            "connections": len(agent.connected_agents),
        }
        for key, value in agent.private_variables.items():
            if isinstance(value, (int, float, str, bool, np.number)):
                record[key] = value
        return record

    def _write_agent_details(self, iteration: int) -> None:
        frame = pd.DataFrame([{"iteration": iteration, **self._agent_record(a)} for a in self.agent_list])
        path = os.path.join(self.data_paths["base"], "agent_details.csv")
        frame.to_csv(path, mode="a", header=not os.path.exists(path), index=False)

    def _save_final_agent_state(self) -> None:
        """Saves final agent data to a pickle file for the analysis framework."""
        last = self.iterations[-1] if self.iterations else {}
        agent_records = []
        for agent in self.agent_list:
            record = self._agent_record(agent)
            state = last.get(agent)
            if state is not None:
                for goal, goal_state in state.goal_states.items():
                    record[f"goal_{goal.name}"] = goal_state.value
            agent_records.append(record)
        output_base = self.data_paths.get("base", self.output_dir)
        os.makedirs(output_base, exist_ok=True)
        pd.DataFrame(agent_records).to_pickle(os.path.join(output_base, "final_agents.pkl"))

    def _save_network(self) -> None:
        graph = network_graph(self.agent_list, active_only=True)
        edges = nx.to_pandas_edgelist(graph)
        edges.to_csv(os.path.join(self.data_paths["base"], "network_edges.csv"), index=False)
