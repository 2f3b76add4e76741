"""Public API for the cognitive ABM package.

Agent-based simulation of bounded-rational agents that learn from
anticipated goal outcomes, reason counterfactually, innovate new decision
options, imitate their neighbours and coordinate collective actions.
"""

__version__ = "0.1.0"

from .actions import ActionTaking
from .agents import Agent, AgentList, Archetype
from .builder import build_model, load_model_definition, network_graph
from .cli import run_cli
from .config import (
    ProcessProfile,
    SimulationConfig,
    apply_process_profile,
    get_process_profile,
    list_process_profiles,
    load_config,
    load_process_profile,
)
from .demo import CommonPoolSimulation, create_demo_simulation, demo_model_definition
from .demographic import Demographic, DemographicConfig
from .goals import GoalPrioritizing, GoalSelecting
from .innovation import Innovation
from .learning import AnticipatoryLearning, CounterfactualThinking
from .models import (
    AgentState,
    AlgorithmError,
    AnticipatedDirection,
    DecisionOption,
    Goal,
    GoalState,
    GoalTendency,
    InputParameterError,
    UnknownVariableError,
)
from .probability import ExtendedProbabilityTable, Probabilities, ProbabilityTable
from .satisficing import Satisficing
from .simulation import Simulation
from .social import SocialLearning

__all__ = [
    "__version__",
    "ActionTaking",
    "Agent",
    "AgentList",
    "Archetype",
    "build_model",
    "load_model_definition",
    "network_graph",
    "run_cli",
    "ProcessProfile",
    "SimulationConfig",
    "apply_process_profile",
    "get_process_profile",
    "list_process_profiles",
    "load_config",
    "load_process_profile",
    "CommonPoolSimulation",
    "create_demo_simulation",
    "demo_model_definition",
    "Demographic",
    "DemographicConfig",
    "GoalPrioritizing",
    "GoalSelecting",
    "Innovation",
    "AnticipatoryLearning",
    "CounterfactualThinking",
    "AgentState",
    "AlgorithmError",
    "AnticipatedDirection",
    "DecisionOption",
    "Goal",
    "GoalState",
    "GoalTendency",
    "InputParameterError",
    "UnknownVariableError",
    "ExtendedProbabilityTable",
    "Probabilities",
    "ProbabilityTable",
    "Satisficing",
    "Simulation",
    "SocialLearning",
]
