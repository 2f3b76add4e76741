"""Goal prioritizing and goal selecting."""

from __future__ import annotations

from typing import Dict, List

import numpy as np

from .agents import Agent
from .models import AlgorithmError, Goal, GoalState, GoalTendency


class GoalPrioritizing:
    """
    Recompute ``adjusted_importance`` for an agent's goals.

    Important goals that lost confidence get their importance scaled up by a
    tendency-specific relative difference (never below 1.0); the confident
    goals' shares are then renormalized against the enlarged total. Archetypes
    that do not use importance adjusting keep ``adjusted_importance`` equal to
    ``importance``.
    """

    def prioritize(self, agent: Agent, goals: Dict[Goal, GoalState]) -> None:
        # A lone goal keeps its weight.
        if len(goals) <= 1:
            return
        unconfident = [
            (goal, state) for goal, state in goals.items() if state.importance > 0 and not state.confidence
        ]
        if unconfident and agent.archetype.use_importance_adjusting:
            confident = [(goal, state) for goal, state in goals.items() if state.confidence]
            proportions = [
                (state, state.importance * self.relative_difference(goal, state)) for goal, state in unconfident
            ]
            total = sum(state.importance for _, state in confident) + sum(value for _, value in proportions)
            for _, state in confident:
                state.adjusted_importance = state.adjusted_importance / total if total else 0.0
            for state, value in proportions:
                state.adjusted_importance = value
        else:
            for state in goals.values():
                state.adjusted_importance = state.importance

    @staticmethod
    def relative_difference(goal: Goal, state: GoalState) -> float:
        """Ratio of the focal gap now to the gap one period ago, floored at 1."""
        tendency = goal.tendency
        if tendency in (GoalTendency.MAXIMIZE, GoalTendency.EQUAL_TO_OR_ABOVE_FOCAL_VALUE):
            numerator = state.focal_value - state.value
            denominator = state.prior_focal_value - state.prior_value
        elif tendency is GoalTendency.MAINTAIN_AT_VALUE:
            numerator = abs(state.focal_value - state.value)
            denominator = abs(state.prior_focal_value - state.prior_value)
        elif tendency is GoalTendency.MINIMIZE:
            numerator = state.value - state.focal_value
            denominator = state.prior_value - state.prior_focal_value
        else:
            raise AlgorithmError(f"Unsupported goal tendency '{tendency}' for importance adjusting")
        if denominator == 0:
            return 1.0
        return max(1.0, numerator / denominator)


class GoalSelecting:
    """Importance-weighted random ranking of an agent's goals."""

    WEIGHT_SCALE = 100

    def sort_by_importance(self, agent: Agent, goals: Dict[Goal, GoalState], rng: np.random.Generator) -> List[Goal]:
        """
        Rank goals by drawing from a multiset of ``round(adjusted * 100)`` copies.

        Each draw removes every copy of the drawn goal. Drawing stops when the
        multiset is empty or every important goal has been drawn; the remaining
        goals follow, positive importance first and ranking-enabled before
        ranking-disabled among the rest.
        """
        if not goals:
            raise AlgorithmError(f"Agent '{agent.id}' has no goals to rank")
        if len(goals) == 1:
            return list(goals)

        weights = {goal: int(round(state.adjusted_importance * self.WEIGHT_SCALE)) for goal, state in goals.items()}
        pool: List[Goal] = [goal for goal, weight in weights.items() for _ in range(max(weight, 0))]
        important_count = sum(1 for state in goals.values() if state.importance > 0)

        ranked: List[Goal] = []
        while pool and len(ranked) < important_count:
            drawn = pool[int(rng.integers(len(pool)))]
            ranked.append(drawn)
            pool = [goal for goal in pool if goal != drawn]

        remaining = [goal for goal in goals if goal not in ranked]
        remaining.sort(key=lambda goal: (goals[goal].adjusted_importance <= 0, not goal.ranking_enabled))
        return ranked + remaining
