"""Innovation: synthesis of new decision options from an existing prototype."""

from __future__ import annotations

from typing import Dict, Hashable, List, Optional, Sequence

import numpy as np

from .agents import Agent
from .models import (
    AgentState,
    AlgorithmError,
    AnticipatedDirection,
    ConsequentRelationship,
    DecisionOption,
    DecisionOptionLayer,
    Goal,
)
from .probability import GENERAL_PROBABILITY_TABLE, Probabilities
from .utils import choose_random

# Module-level log populated when debug logging is enabled for a run.
DEBUG_INNOVATION_LOG: List[Dict[str, object]] = []


class Innovation:
    """
    Create a new option when neither learning nor counterfactual thinking
    restored confidence in a goal.

    The prototype is the option last activated in the layer (searching back
    through the iteration history), or a random option the agent holds in
    that layer. A new consequent value is drawn from the ``General``
    extended probability table on the side of the current value the goal's
    anticipated direction and the layer's sign relationship call for, then
    rounded to the layer's precision and kept inside the layer's bounds.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    def execute(
        self,
        agent: Agent,
        iterations: Sequence[Dict[Agent, AgentState]],
        goal: Goal,
        layer: DecisionOptionLayer,
        data_set: Hashable,
        probabilities: Probabilities,
        rng: np.random.Generator,
    ) -> Optional[DecisionOption]:
        current_state = iterations[-1][agent]
        goal_state = current_state.goal_states[goal]

        prototype = self._find_prototype(agent, iterations, layer, data_set, rng)
        if prototype is None:
            return None
        if not (layer.is_modifiable or prototype.is_modifiable):
            return None

        configuration = layer.configuration
        min_value = configuration.min_value(agent)
        max_value = configuration.max_value(agent)
        consequent_value = float(prototype.consequent.resolve(agent))
        precision = configuration.consequent_precision_digits_after_decimal_point
        min_step = 0.1 ** precision
        table = probabilities.get_extended_probability_table(GENERAL_PROBABILITY_TABLE)

        direction = goal_state.anticipated_direction
        if direction is AnticipatedDirection.STAY:
            raise AlgorithmError(f"Innovation is not implemented for anticipated direction 'Stay' (goal '{goal.name}')")
        relationship = configuration.relationship_for(goal)
        increase = (direction is AnticipatedDirection.UP) == (relationship is ConsequentRelationship.POSITIVE)

        if increase:
            if consequent_value + min_step > max_value:
                return None
            new_value = table.random_value(consequent_value + min_step, max_value, False, rng)
        else:
            if consequent_value - min_step < min_value:
                return None
            new_value = table.random_value(min_value, consequent_value - min_step, True, rng)
        new_value = float(np.clip(round(new_value, precision), min_value, max_value))

        if layer.position_number == 1:
            antecedent = prototype.antecedent
        else:
            antecedent = tuple(part.renew(agent[part.param]) for part in prototype.antecedent)
        candidate = prototype.renew(antecedent, prototype.consequent.renew(new_value))

        influence = self._proportional_influence(agent, prototype, consequent_value, new_value, direction)

        existing = agent.archetype.find_similar_decision_option(candidate)
        created = existing is None
        if created:
            agent.add_decision_option(candidate, layer, influence, rng)
        elif existing not in agent.assigned_decision_options:
            agent.assign_new_decision_option(existing, influence, rng)

        if len(layer.mental_model.layers) > 1:
            # Later layers of the same mental model read this value.
            candidate.apply(agent)

        if self.debug:
            DEBUG_INNOVATION_LOG.append(
                {
                    "agent_id": agent.id,
                    "goal": goal.name,
                    "prototype": prototype.id,
                    "old_value": consequent_value,
                    "new_value": new_value,
                    "created": created,
                    "decision_option": (candidate if created else existing).id,
                }
            )
        return candidate if created else None

    @staticmethod
    def _find_prototype(
        agent: Agent,
        iterations: Sequence[Dict[Agent, AgentState]],
        layer: DecisionOptionLayer,
        data_set: Hashable,
        rng: np.random.Generator,
    ) -> Optional[DecisionOption]:
        prototype = None
        for snapshot in reversed(iterations[:-1]):
            state = snapshot.get(agent)
            if state is None:
                break
            history = state.decision_option_histories.get(data_set)
            if history is not None:
                prototype = next((option for option in history.activated if option.layer is layer), None)
            if prototype is not None:
                break
        if prototype is None or prototype not in agent.assigned_decision_options:
            prototype = choose_random(agent.layer_decision_options(layer), rng)
        return prototype

    @staticmethod
    def _proportional_influence(
        agent: Agent,
        prototype: DecisionOption,
        old_value: float,
        new_value: float,
        direction: AnticipatedDirection,
    ) -> Dict[Goal, float]:
        """Scale the prototype's influences by the relative consequent change."""
        ratio = 0.0 if old_value == 0 else abs(new_value - old_value) / abs(old_value)
        base = agent.anticipation_influence.get(prototype, {})
        influence: Dict[Goal, float] = {}
        for goal in agent.assigned_goals:
            value = base.get(goal, 0.0)
            difference = value * ratio
            grows = (direction is AnticipatedDirection.UP) == (value >= 0)
            influence[goal] = value + difference if grows else value - difference
        return influence
