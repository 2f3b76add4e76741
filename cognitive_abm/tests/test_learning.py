"""Goal ranking, anticipatory learning and counterfactual thinking."""

from __future__ import annotations

import pytest

from cognitive_abm.agents import Agent, Archetype
from cognitive_abm.goals import GoalPrioritizing, GoalSelecting
from cognitive_abm.learning import AnticipatoryLearning, CounterfactualThinking
from cognitive_abm.models import (
    DEFAULT_DATA_SET,
    AlgorithmError,
    AnticipatedDirection,
    Goal,
    GoalState,
    GoalTendency,
)


def _two_goal_agent(use_importance_adjusting: bool = True):
    income = Goal("Income", "Maximize", "Income")
    stock = Goal("Stock", "Maximize", "Stock")
    archetype = Archetype("Household", goals=[income, stock], use_importance_adjusting=use_importance_adjusting)
    return Agent("HH1", archetype), income, stock


# -- goal prioritizing / selecting ------------------------------------------


def test_unconfident_goal_gains_importance() -> None:
    agent, income, stock = _two_goal_agent()
    lagging = GoalState(2.0, 10.0, 0.5, prior_value=6.0, confidence=False)
    steady = GoalState(8.0, 10.0, 0.5)
    GoalPrioritizing().prioritize(agent, {income: lagging, stock: steady})
    assert lagging.adjusted_importance == pytest.approx(1.0)
    assert steady.adjusted_importance == pytest.approx(0.5 / 1.5)


def test_importance_is_kept_without_adjusting() -> None:
    agent, income, stock = _two_goal_agent(use_importance_adjusting=False)
    lagging = GoalState(2.0, 10.0, 0.7, prior_value=6.0, adjusted_importance=0.1, confidence=False)
    GoalPrioritizing().prioritize(agent, {income: lagging, stock: GoalState(8.0, 10.0, 0.3)})
    assert lagging.adjusted_importance == 0.7


def test_single_goal_keeps_its_weight() -> None:
    income = Goal("Income", "Maximize", "Income")
    agent = Agent("HH1", Archetype("Household", goals=[income], use_importance_adjusting=True))
    lagging = GoalState(2.0, 10.0, 1.0, prior_value=6.0, confidence=False)
    GoalPrioritizing().prioritize(agent, {income: lagging})
    assert lagging.adjusted_importance == 1.0


def test_unimportant_unconfident_goal_is_left_alone() -> None:
    agent, income, stock = _two_goal_agent()
    leisure = Goal("Leisure", "Maximize", "Leisure")
    lagging = GoalState(2.0, 10.0, 0.5, prior_value=6.0, confidence=False)
    steady = GoalState(8.0, 10.0, 0.5)
    idle = GoalState(1.0, 10.0, 0.0, adjusted_importance=0.4, confidence=False)
    GoalPrioritizing().prioritize(agent, {income: lagging, stock: steady, leisure: idle})
    assert lagging.adjusted_importance == pytest.approx(1.0)
    assert steady.adjusted_importance == pytest.approx(0.5 / 1.5)
    assert idle.adjusted_importance == 0.4


def test_relative_difference_floors_at_one() -> None:
    goal = Goal("Income", "Maximize", "Income")
    assert GoalPrioritizing.relative_difference(goal, GoalState(8.0, 10.0, 1.0, prior_value=6.0)) == 1.0
    assert GoalPrioritizing.relative_difference(goal, GoalState(10.0, 10.0, 1.0)) == 1.0
    minimize = Goal("Cost", "Minimize", "Cost")
    assert GoalPrioritizing.relative_difference(minimize, GoalState(16.0, 10.0, 1.0, prior_value=13.0)) == 2.0


def test_goal_selection_puts_unimportant_goals_last(rng) -> None:
    agent, income, stock = _two_goal_agent()
    hidden = Goal("Hidden", "Maximize", "Hidden", ranking_enabled=False)
    agent.assigned_goals.append(hidden)
    goals = {
        hidden: GoalState(0.0, 0.0, 0.0),
        stock: GoalState(0.0, 0.0, 0.0),
        income: GoalState(0.0, 0.0, 1.0),
    }
    for _ in range(20):
        assert GoalSelecting().sort_by_importance(agent, goals, rng) == [income, stock, hidden]


def test_goal_selection_draws_every_important_goal(rng) -> None:
    agent, income, stock = _two_goal_agent()
    goals = {income: GoalState(0.0, 0.0, 0.5), stock: GoalState(0.0, 0.0, 0.5)}
    firsts = {GoalSelecting().sort_by_importance(agent, goals, rng)[0] for _ in range(50)}
    assert firsts == {income, stock}
    with pytest.raises(AlgorithmError):
        GoalSelecting().sort_by_importance(agent, {}, rng)


# -- anticipatory learning --------------------------------------------------


def _learn(world, make_state, current_value: float, prior_value: float = 4.0):
    prior = make_state(world, value=prior_value)
    prior.history_for(DEFAULT_DATA_SET).activated.append(world.high)
    current = prior.create_for_next_iteration()
    world.agent["Income"] = current_value
    AnticipatoryLearning().execute(world.agent, current, prior)
    return current.goal_states[world.goal]


def test_rising_maximize_goal_stays_confident(harvest_world, make_state) -> None:
    goal_state = _learn(harvest_world, make_state, 6.0)
    assert goal_state.confidence is True
    assert goal_state.anticipated_direction is AnticipatedDirection.STAY
    assert goal_state.diff_current_and_prior == 2.0
    assert harvest_world.agent.anticipation_influence[harvest_world.high][harvest_world.goal] == 6.0
    assert harvest_world.agent.anticipation_influence[harvest_world.low][harvest_world.goal] == 1.0


def test_falling_maximize_goal_loses_confidence(harvest_world, make_state) -> None:
    goal_state = _learn(harvest_world, make_state, 3.0)
    assert goal_state.confidence is False
    assert goal_state.anticipated_direction is AnticipatedDirection.UP


def test_cumulative_goal_learns_the_change(harvest_world, make_state) -> None:
    harvest_world.goal.is_cumulative = True
    _learn(harvest_world, make_state, 6.5)
    assert harvest_world.agent.anticipation_influence[harvest_world.high][harvest_world.goal] == 2.5


def test_goal_above_focal_value_is_confident(make_world, make_state) -> None:
    world = make_world(GoalTendency.EQUAL_TO_OR_ABOVE_FOCAL_VALUE)
    assert _learn(world, make_state, 12.0).confidence is True
    assert _learn(world, make_state, 3.0).anticipated_direction is AnticipatedDirection.UP


def test_rising_minimize_goal_wants_down(make_world, make_state) -> None:
    world = make_world(GoalTendency.MINIMIZE)
    goal_state = _learn(world, make_state, 6.0)
    assert goal_state.confidence is False
    assert goal_state.anticipated_direction is AnticipatedDirection.DOWN


def test_maintain_goal_judges_the_gap(make_world, make_state) -> None:
    world = make_world(GoalTendency.MAINTAIN_AT_VALUE)
    assert _learn(world, make_state, 8.0).confidence is True
    overshoot = _learn(world, make_state, 17.0)
    assert overshoot.confidence is False
    assert overshoot.anticipated_direction is AnticipatedDirection.DOWN


def test_focal_value_follows_its_reference(harvest_world, make_state) -> None:
    harvest_world.goal.focal_value_reference = "Target"
    harvest_world.agent["Target"] = 6.0
    goal_state = _learn(harvest_world, make_state, 6.0)
    assert goal_state.focal_value == 6.0
    assert goal_state.diff_current_and_focal == 0.0


# -- counterfactual thinking ------------------------------------------------


def _prior_with(world, make_state, activated, matched=None):
    prior = make_state(world)
    history = prior.history_for(DEFAULT_DATA_SET)
    history.matched.extend(matched if matched is not None else [world.low, world.high])
    history.activated.append(activated)
    return prior


def test_better_alternative_restores_confidence(harvest_world, make_state) -> None:
    prior = _prior_with(harvest_world, make_state, harvest_world.low)
    goal_state = GoalState(3.0, 10.0, 1.0, confidence=False)
    regained = CounterfactualThinking().execute(
        harvest_world.agent, prior, harvest_world.goal, goal_state, harvest_world.layer, DEFAULT_DATA_SET
    )
    assert regained is True
    assert goal_state.confidence is True


def test_best_option_already_chosen(harvest_world, make_state) -> None:
    prior = _prior_with(harvest_world, make_state, harvest_world.high)
    goal_state = GoalState(3.0, 10.0, 1.0, confidence=False)
    assert not CounterfactualThinking().execute(
        harvest_world.agent, prior, harvest_world.goal, goal_state, harvest_world.layer, DEFAULT_DATA_SET
    )
    assert goal_state.confidence is False


def test_single_matched_option_has_nothing_to_compare(harvest_world, make_state) -> None:
    prior = _prior_with(harvest_world, make_state, harvest_world.low, matched=[harvest_world.low])
    goal_state = GoalState(3.0, 10.0, 1.0, confidence=False)
    assert not CounterfactualThinking().execute(
        harvest_world.agent, prior, harvest_world.goal, goal_state, harvest_world.layer, DEFAULT_DATA_SET
    )


def test_focal_goal_prefers_the_smallest_sufficient_influence(make_world, make_state) -> None:
    world = make_world(GoalTendency.EQUAL_TO_OR_ABOVE_FOCAL_VALUE)
    thinking = CounterfactualThinking()

    below = GoalState(7.0, 10.0, 1.0, diff_current_and_focal=-3.0, confidence=False)
    prior = _prior_with(world, make_state, world.high)
    assert thinking.execute(world.agent, prior, world.goal, below, world.layer, DEFAULT_DATA_SET)

    close = GoalState(11.5, 10.0, 1.0, diff_current_and_focal=1.5, confidence=False)
    prior = _prior_with(world, make_state, world.high)
    assert not thinking.execute(world.agent, prior, world.goal, close, world.layer, DEFAULT_DATA_SET)


def test_minimize_goals_are_not_supported(make_world, make_state) -> None:
    world = make_world(GoalTendency.MINIMIZE)
    prior = _prior_with(world, make_state, world.low)
    with pytest.raises(AlgorithmError):
        CounterfactualThinking().execute(
            world.agent, prior, world.goal, GoalState(3.0, 10.0, 1.0), world.layer, DEFAULT_DATA_SET
        )
