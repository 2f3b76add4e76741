"""
Satisficing: choosing which decision option to activate per layer.

Part I matches the layer's options against the agent's variables and picks
one according to the tendency of the most important goal associated with the
layer's mental model. Choosing a collective action signals interest to
connected agents in the same scope, who receive the option and re-decide if
they had already activated something else in that layer.

Part II enforces the quorum of collective actions: an activated collective
action that too few in-scope neighbours share is moved to *blocked* and
Part I runs again for the layer. Each retry blocks one more option, so the
loop ends with a non-collective choice, a collective choice with quorum, or
no activation.
"""

from __future__ import annotations

from typing import Dict, Hashable, List, Optional

import numpy as np

from .agents import Agent
from .learning import VolatileProcess
from .models import AgentState, AlgorithmError, DecisionOption, DecisionOptionLayer, Goal, GoalState
from .utils import choose_random, extreme_group

# Module-level log populated when debug logging is enabled for a run.
DEBUG_COLLECTIVE_LOG: List[Dict[str, object]] = []


class Satisficing(VolatileProcess):
    def __init__(self, debug: bool = False):
        self.debug = debug

    # -- Part I --------------------------------------------------------------

    def execute_part_i(
        self,
        agent: Agent,
        current: Dict[Agent, AgentState],
        options: List[DecisionOption],
        data_set: Hashable,
        rng: np.random.Generator,
    ) -> Optional[DecisionOption]:
        if not options:
            return None
        state = current[agent]
        history = state.history_for(data_set)
        mental_model = options[0].layer.mental_model
        goal = next((goal for goal in state.ranked_goals if goal in mental_model.associated_goals), None)
        if goal is None:
            raise AlgorithmError(
                f"Agent '{agent.id}' has no ranked goal associated with mental model {mental_model.position_number}"
            )

        matched = [option for option in options if option not in history.blocked and option.is_match(agent)]
        if not matched:
            return None
        if len(matched) == 1:
            chosen = matched[0]
        else:
            chosen = self.specific_logic(goal.tendency, agent, goal, state.goal_states[goal], matched, rng)

        history.matched.extend(option for option in matched if option not in history.matched)
        if chosen is None:
            return None

        if len(mental_model.layers) > 1:
            # Later layers of the same mental model read this value.
            chosen.apply(agent)
        history.activated.append(chosen)

        if chosen.is_collective_action:
            self._signal_interest(agent, current, chosen, data_set, rng)
        return chosen

    @staticmethod
    def _influence(agent: Agent, option: DecisionOption, goal: Goal) -> float:
        return agent.anticipation_influence.get(option, {}).get(goal, 0.0)

    def equal_to_or_above_focal_value(
        self, agent: Agent, goal: Goal, goal_state: GoalState, matched: List[DecisionOption], rng: np.random.Generator
    ) -> Optional[DecisionOption]:
        if goal_state.value >= goal_state.focal_value:
            return None
        deficit = goal_state.focal_value - goal_state.value
        group = extreme_group(matched, lambda option: self._influence(agent, option, goal) - deficit, largest=False)
        return choose_random(group, rng)

    def maximize(
        self, agent: Agent, goal: Goal, goal_state: GoalState, matched: List[DecisionOption], rng: np.random.Generator
    ) -> Optional[DecisionOption]:
        group = extreme_group(matched, lambda option: self._influence(agent, option, goal), largest=True)
        return choose_random(group, rng)

    def minimize(
        self, agent: Agent, goal: Goal, goal_state: GoalState, matched: List[DecisionOption], rng: np.random.Generator
    ) -> Optional[DecisionOption]:
        group = extreme_group(matched, lambda option: self._influence(agent, option, goal), largest=False)
        return choose_random(group, rng)

    def maintain_at_value(
        self, agent: Agent, goal: Goal, goal_state: GoalState, matched: List[DecisionOption], rng: np.random.Generator
    ) -> Optional[DecisionOption]:
        if goal_state.value == goal_state.focal_value:
            return None
        gap = abs(goal_state.focal_value - goal_state.value)
        group = extreme_group(matched, lambda option: self._influence(agent, option, goal) - gap, largest=False)
        return choose_random(group, rng)

    @staticmethod
    def _in_scope(agent: Agent, other: Agent, option: DecisionOption) -> bool:
        scope = option.scope
        if scope is None:
            return True
        return (
            agent.contains_variable(scope)
            and other.contains_variable(scope)
            and agent[scope] == other[scope]
        )

    def _signal_interest(
        self,
        agent: Agent,
        current: Dict[Agent, AgentState],
        option: DecisionOption,
        data_set: Hashable,
        rng: np.random.Generator,
    ) -> None:
        signaled: List[Agent] = []
        for neighbor in agent.connected_agents:
            if not self._in_scope(agent, neighbor, option) or option in neighbor.assigned_decision_options:
                continue
            neighbor.assign_new_decision_option(option, agent.anticipation_influence.get(option, {}), rng)
            signaled.append(neighbor)

        layer = option.layer
        for neighbor in signaled:
            neighbor_state = current.get(neighbor)
            if neighbor_state is None:
                continue
            history = neighbor_state.decision_option_histories.get(data_set)
            if history is None or not any(item.layer is layer for item in history.activated):
                continue
            history.activated = [item for item in history.activated if item.layer is not layer]
            history.matched = [item for item in history.matched if item.layer is not layer]
            self.execute_part_i(neighbor, current, neighbor.layer_decision_options(layer), data_set, rng)

    # -- Part II -------------------------------------------------------------

    def execute_part_ii(
        self,
        agent: Agent,
        current: Dict[Agent, AgentState],
        layer: DecisionOptionLayer,
        data_set: Hashable,
        rng: np.random.Generator,
    ) -> Optional[DecisionOption]:
        history = current[agent].history_for(data_set)
        # Every retry blocks one more option of the layer.
        for _ in range(len(agent.layer_decision_options(layer)) + 1):
            selected = next((option for option in history.activated if option.layer is layer), None)
            if selected is None or not selected.is_collective_action:
                return selected
            participants = self.count_participants(agent, current, selected, data_set)
            if participants >= selected.required_participants - 1:
                return selected

            history.activated.remove(selected)
            history.blocked.append(selected)
            if self.debug:
                DEBUG_COLLECTIVE_LOG.append(
                    {
                        "agent_id": agent.id,
                        "decision_option": selected.id,
                        "participants": participants,
                        "required": selected.required_participants,
                    }
                )
            self.execute_part_i(agent, current, agent.layer_decision_options(layer), data_set, rng)
        raise AlgorithmError(f"Collective-action negotiation did not settle for agent '{agent.id}'")

    def count_participants(
        self,
        agent: Agent,
        current: Dict[Agent, AgentState],
        option: DecisionOption,
        data_set: Hashable,
    ) -> int:
        """Connected in-scope agents that activated ``option`` this iteration."""
        count = 0
        for neighbor in agent.connected_agents:
            if not self._in_scope(agent, neighbor, option):
                continue
            neighbor_state = current.get(neighbor)
            if neighbor_state is None:
                continue
            history = neighbor_state.decision_option_histories.get(data_set)
            if history is not None and option in history.activated:
                count += 1
        return count
