"""Action taking: applying activated options to the agent's variables."""

from __future__ import annotations

from typing import Hashable, List

from .agents import Agent
from .models import AgentState, TakenAction


class ActionTaking:
    def execute(self, agent: Agent, state: AgentState, data_set: Hashable) -> List[TakenAction]:
        """Apply every option activated for ``data_set`` in mental-model, then layer, order."""
        actions: List[TakenAction] = []
        state.taken_actions[data_set] = actions
        history = state.decision_option_histories.get(data_set)
        if history is None:
            return actions
        ordered = sorted(
            history.activated,
            key=lambda option: (option.layer.mental_model.position_number, option.layer.position_number),
        )
        for option in ordered:
            actions.append(option.apply(agent))
        return actions
