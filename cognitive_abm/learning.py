"""
Anticipatory learning and counterfactual thinking.

Both processes are *volatile*: their behaviour depends on the tendency of the
goal being processed. :class:`VolatileProcess` routes each call to one
handler per tendency; a handler the process does not override fails fast with
:class:`~cognitive_abm.models.AlgorithmError`.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, List

from .agents import Agent
from .models import (
    AgentState,
    AlgorithmError,
    AnticipatedDirection,
    DecisionOption,
    DecisionOptionLayer,
    Goal,
    GoalState,
    GoalTendency,
)
from .utils import extreme_group


class VolatileProcess:
    """Dispatch-by-goal-tendency template."""

    def specific_logic(self, tendency: GoalTendency, *args: Any) -> Any:
        handlers = {
            GoalTendency.EQUAL_TO_OR_ABOVE_FOCAL_VALUE: self.equal_to_or_above_focal_value,
            GoalTendency.MAXIMIZE: self.maximize,
            GoalTendency.MINIMIZE: self.minimize,
            GoalTendency.MAINTAIN_AT_VALUE: self.maintain_at_value,
        }
        handler = handlers.get(tendency)
        if handler is None:
            raise AlgorithmError(f"Unknown goal tendency '{tendency}'")
        return handler(*args)

    def _unsupported(self, tendency: GoalTendency) -> AlgorithmError:
        return AlgorithmError(f"{type(self).__name__} is not implemented for goal tendency '{tendency.value}'")

    def equal_to_or_above_focal_value(self, *args: Any) -> Any:
        raise self._unsupported(GoalTendency.EQUAL_TO_OR_ABOVE_FOCAL_VALUE)

    def maximize(self, *args: Any) -> Any:
        raise self._unsupported(GoalTendency.MAXIMIZE)

    def minimize(self, *args: Any) -> Any:
        raise self._unsupported(GoalTendency.MINIMIZE)

    def maintain_at_value(self, *args: Any) -> Any:
        raise self._unsupported(GoalTendency.MAINTAIN_AT_VALUE)


class AnticipatoryLearning(VolatileProcess):
    """
    Refresh goal states from the agent's variables and judge each trend.

    For every assigned goal the current, prior and twice-prior values and the
    derived differences are recomputed; the focal value is refreshed when it
    is variable-referenced or a percentage of the prior value. The goal's
    anticipated influence (level, or change for cumulative goals) is written
    back into every option the agent activated in the prior iteration.
    Finally the tendency rule sets ``anticipated_direction`` and
    ``confidence``.
    """

    def execute(self, agent: Agent, current_state: AgentState, prior_state: AgentState) -> None:
        activated = prior_state.activated_options()
        for goal in agent.assigned_goals:
            goal_state = current_state.goal_states[goal]
            previous = prior_state.goal_states[goal]

            goal_state.value = float(agent[goal.reference_variable])
            goal_state.prior_value = previous.value
            goal_state.twice_prior_value = previous.prior_value

            if goal.change_focal_value_on_previous:
                reduction = goal.reduction_percent if goal.reduction_percent > 0 else 1.0
                goal_state.focal_value = reduction * goal_state.prior_value
            if goal.focal_value_reference:
                goal_state.focal_value = float(agent[goal.focal_value_reference])
            goal_state.prior_focal_value = previous.focal_value

            goal_state.diff_current_and_focal = goal_state.value - goal_state.focal_value
            goal_state.diff_prior_and_focal = goal_state.prior_value - goal_state.focal_value
            goal_state.diff_current_and_prior = goal_state.value - goal_state.prior_value
            goal_state.diff_prior_and_twice_prior = goal_state.prior_value - goal_state.twice_prior_value

            influence = goal_state.diff_current_and_prior if goal.is_cumulative else goal_state.value
            goal_state.anticipated_influence_value = influence
            for option in activated:
                # Options evicted since their activation no longer carry influences.
                if option in agent.anticipation_influence:
                    agent.anticipation_influence[option][goal] = influence

            self.specific_logic(goal.tendency, goal_state)

    @staticmethod
    def _settle(goal_state: GoalState, confident: bool, direction_if_not: AnticipatedDirection) -> None:
        goal_state.confidence = confident
        goal_state.anticipated_direction = AnticipatedDirection.STAY if confident else direction_if_not

    def equal_to_or_above_focal_value(self, goal_state: GoalState) -> None:
        value, focal, prior = goal_state.value, goal_state.focal_value, goal_state.prior_value
        confident = value >= focal or (
            value > prior and goal_state.diff_current_and_prior >= goal_state.diff_prior_and_twice_prior
        )
        self._settle(goal_state, confident, AnticipatedDirection.UP)

    def maximize(self, goal_state: GoalState) -> None:
        confident = goal_state.value == goal_state.focal_value or (
            goal_state.value > goal_state.prior_value
            and goal_state.diff_current_and_prior >= goal_state.diff_prior_and_twice_prior
        )
        self._settle(goal_state, confident, AnticipatedDirection.UP)

    def minimize(self, goal_state: GoalState) -> None:
        value, prior, twice_prior = goal_state.value, goal_state.prior_value, goal_state.twice_prior_value
        confident = value == goal_state.focal_value or (value < prior and prior - value >= twice_prior - prior)
        self._settle(goal_state, confident, AnticipatedDirection.DOWN)

    def maintain_at_value(self, goal_state: GoalState) -> None:
        confident = goal_state.value == goal_state.focal_value or abs(
            goal_state.value - goal_state.focal_value
        ) < abs(goal_state.prior_value - goal_state.prior_focal_value)
        direction = AnticipatedDirection.DOWN if goal_state.diff_current_and_focal > 0 else AnticipatedDirection.UP
        self._settle(goal_state, confident, direction)


class CounterfactualThinking(VolatileProcess):
    """
    Check whether another option matched last period would have served better.

    Returns ``True`` (confidence regained) when the best matched option for
    the goal differs from the one that was activated in the layer. Fewer than
    two matched options leave nothing to compare and return ``False``.
    Only ``Maximize`` and ``EqualToOrAboveFocalValue`` goals are supported.
    """

    MIN_MATCHED = 2

    def execute(
        self,
        agent: Agent,
        prior_state: AgentState,
        goal: Goal,
        goal_state: GoalState,
        layer: DecisionOptionLayer,
        data_set: Hashable,
    ) -> bool:
        history = prior_state.decision_option_histories.get(data_set)
        if history is None:
            return False
        matched = [option for option in history.matched if option.layer is layer]
        if len(matched) < self.MIN_MATCHED:
            return False

        goal_state.confidence = False
        activated = next((option for option in history.activated if option.layer is layer), None)

        influences: Dict[DecisionOption, Dict[Goal, float]] = {
            option: dict(values) for option, values in prior_state.anticipated_influences.items()
        }
        for option, values in agent.anticipation_influence.items():
            influences[option] = dict(values)

        def influence_of(option: DecisionOption) -> float:
            return influences.get(option, {}).get(goal, 0.0)

        best = self.specific_logic(goal.tendency, goal_state, matched, influence_of)
        regained = any(option != activated for option in best)
        goal_state.confidence = regained
        return regained

    def maximize(self, goal_state: GoalState, matched: List[DecisionOption], influence_of) -> List[DecisionOption]:
        candidates = [option for option in matched if influence_of(option) >= 0]
        return extreme_group(candidates, influence_of, largest=True)

    def equal_to_or_above_focal_value(
        self, goal_state: GoalState, matched: List[DecisionOption], influence_of
    ) -> List[DecisionOption]:
        candidates = [
            option
            for option in matched
            if influence_of(option) >= 0 and influence_of(option) > goal_state.diff_current_and_focal
        ]
        return extreme_group(candidates, influence_of, largest=False)
