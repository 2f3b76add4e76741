"""Social learning: copying neighbours' recently activated options."""

from __future__ import annotations

from typing import Dict

import numpy as np

from .agents import Agent
from .models import AgentState, DecisionOptionLayer
from .utils import shuffled


class SocialLearning:
    """Adopt options that connected agents activated in the prior iteration."""

    def execute(
        self,
        agent: Agent,
        prior_snapshot: Dict[Agent, AgentState],
        layer: DecisionOptionLayer,
        rng: np.random.Generator,
    ) -> int:
        adopted = 0
        for neighbor in shuffled(agent.connected_agents, rng):
            neighbor_state = prior_snapshot.get(neighbor)
            if neighbor_state is None:
                continue
            for option in neighbor_state.activated_options():
                if option.layer is not layer or option in agent.assigned_decision_options:
                    continue
                agent.assign_new_decision_option(option, neighbor.anticipation_influence.get(option, {}), rng)
                adopted += 1
        return adopted
