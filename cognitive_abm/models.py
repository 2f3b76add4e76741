"""
Core data structures shared by the cognitive agent-based model.

This module defines the passive entities the decision processes operate on:
goals and their per-iteration states, decision options (antecedent plus
consequent), the layers and mental models that group them, decision-option
histories and the per-agent, per-iteration ``AgentState`` snapshot.

Key Concepts
------------
- **Goal tendency**: the shape of desired change for a goal's reference
  variable (reach or exceed a focal value, maximize, minimize, or hold at a
  value).

- **Decision option**: an antecedent (all predicates must match the agent's
  variables) plus a consequent (a single variable effect). Every option is
  owned by exactly one layer of one mental model.

- **Anticipated influence**: an agent's per-option, per-goal estimate of the
  effect an option has on a goal. It is refined every iteration by
  anticipatory learning and drives action selection.

- **Iteration snapshot**: ``AgentState`` objects hold everything that is
  specific to one agent in one iteration. A new state is derived from the
  prior one each iteration; histories always start empty.
"""

from __future__ import annotations

import enum
import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple


PREVIOUS_PREFIX = "Previous_"


class UnknownVariableError(KeyError):
    """Raised when a variable is found neither in private nor in common scope."""

    def __init__(self, name: str, owner: Optional[str] = None):
        self.name = name
        self.owner = owner
        where = f" of '{owner}'" if owner else ""
        super().__init__(f"Unknown variable '{name}'{where}")


class InputParameterError(ValueError):
    """Raised when a model definition is malformed."""


class AlgorithmError(RuntimeError):
    """Raised when a process is invoked for a case it does not implement."""


class GoalTendency(str, enum.Enum):
    EQUAL_TO_OR_ABOVE_FOCAL_VALUE = "EqualToOrAboveFocalValue"
    MAXIMIZE = "Maximize"
    MINIMIZE = "Minimize"
    MAINTAIN_AT_VALUE = "MaintainAtValue"

    @classmethod
    def parse(cls, value: Any) -> "GoalTendency":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InputParameterError(f"Unknown goal tendency '{value}'") from None


class AnticipatedDirection(str, enum.Enum):
    UP = "Up"
    DOWN = "Down"
    STAY = "Stay"


class ConsequentRelationship(str, enum.Enum):
    POSITIVE = "+"
    NEGATIVE = "-"

    @classmethod
    def parse(cls, sign: Any) -> "ConsequentRelationship":
        try:
            return cls(sign)
        except ValueError:
            raise InputParameterError(
                f"Unknown consequent relationship '{sign}'. Expected '+' or '-'."
            ) from None


def _hashable(value: Any) -> Any:
    """Convert list values coming from JSON definitions into tuples."""
    if isinstance(value, list):
        return tuple(_hashable(v) for v in value)
    return value


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Goal:
    """
    A goal an agent pursues through its reference variable.

    Goals are used as mapping keys throughout the model, so equality and
    hashing are by ``name`` only.

    Attributes
    ----------
    tendency : GoalTendency
        Desired shape of change of the reference variable.
    reference_variable : str
        Agent variable that measures progress on the goal.
    focal_value : float
        Target value. May be refreshed each iteration from
        ``focal_value_reference`` or, with ``change_focal_value_on_previous``,
        from a percentage of the prior value.
    is_cumulative : bool
        When true the anticipated influence is the change of the reference
        variable since the prior iteration instead of its level.
    """

    name: str
    tendency: GoalTendency
    reference_variable: str
    focal_value: float = 0.0
    change_focal_value_on_previous: bool = False
    reduction_percent: float = 0.0
    focal_value_reference: Optional[str] = None
    ranking_enabled: bool = True
    is_cumulative: bool = False
    min_goal_value_static: Optional[float] = None
    max_goal_value_static: Optional[float] = None
    min_goal_value_reference: Optional[str] = None
    max_goal_value_reference: Optional[str] = None

    def __post_init__(self) -> None:
        self.tendency = GoalTendency.parse(self.tendency)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Goal) and other.name == self.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"Goal({self.name!r}, {self.tendency.value})"


@dataclass
class GoalState:
    """Per-agent, per-iteration progress record for a single goal."""

    value: float
    focal_value: float
    importance: float
    prior_value: Optional[float] = None
    twice_prior_value: float = 0.0
    prior_focal_value: Optional[float] = None
    diff_current_and_focal: float = 0.0
    diff_prior_and_focal: float = 0.0
    diff_current_and_prior: float = 0.0
    diff_prior_and_twice_prior: float = 0.0
    anticipated_influence_value: float = 0.0
    adjusted_importance: Optional[float] = None
    confidence: bool = True
    anticipated_direction: AnticipatedDirection = AnticipatedDirection.STAY
    min_goal_value_static: Optional[float] = None
    max_goal_value_static: Optional[float] = None
    min_goal_value_reference: Optional[str] = None
    max_goal_value_reference: Optional[str] = None

    def __post_init__(self) -> None:
        if self.prior_value is None:
            self.prior_value = self.value
        if self.prior_focal_value is None:
            self.prior_focal_value = self.focal_value
        if self.adjusted_importance is None:
            self.adjusted_importance = self.importance

    def _bounds(self) -> Dict[str, Any]:
        return {
            "min_goal_value_static": self.min_goal_value_static,
            "max_goal_value_static": self.max_goal_value_static,
            "min_goal_value_reference": self.min_goal_value_reference,
            "max_goal_value_reference": self.max_goal_value_reference,
        }

    def create_copy(self) -> "GoalState":
        """Seed the next iteration: current value and focal become the prior baseline."""
        return GoalState(self.value, self.focal_value, self.importance, **self._bounds())

    def create_child_copy(self) -> "GoalState":
        return GoalState(0.0, self.focal_value, self.importance, **self._bounds())

    def clone(self) -> "GoalState":
        return GoalState(**{name: getattr(self, name) for name in self.__dataclass_fields__})


# ---------------------------------------------------------------------------
# Decision options
# ---------------------------------------------------------------------------


COMPARISON_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
}


@dataclass(frozen=True)
class AntecedentPart:
    """One ``(variable, sign, constant-or-reference)`` predicate of an antecedent."""

    param: str
    sign: str
    value: Any = None
    reference_variable: Optional[str] = None
    _compare: Callable[[Any, Any], bool] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        compare = COMPARISON_OPERATORS.get(self.sign)
        if compare is None:
            raise InputParameterError(
                f"Unknown comparison sign '{self.sign}' for antecedent on '{self.param}'"
            )
        object.__setattr__(self, "_compare", compare)
        object.__setattr__(self, "value", _hashable(self.value))

    def is_match(self, agent: Any) -> bool:
        expected = agent[self.reference_variable] if self.reference_variable else self.value
        return bool(self._compare(agent[self.param], expected))

    def renew(self, new_value: Any) -> "AntecedentPart":
        return AntecedentPart(self.param, self.sign, new_value, self.reference_variable)


@dataclass(frozen=True)
class Consequent:
    """The single variable effect of a decision option."""

    param: str
    value: Any = None
    variable_value: Optional[str] = None
    copy_to_common: bool = field(default=False, compare=False)
    save_previous: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _hashable(self.value))

    def resolve(self, agent: Any) -> Any:
        return agent[self.variable_value] if self.variable_value else self.value

    def renew(self, new_value: Any) -> "Consequent":
        return Consequent(
            self.param,
            new_value,
            None,
            copy_to_common=self.copy_to_common,
            save_previous=self.save_previous,
        )


@dataclass(frozen=True)
class TakenAction:
    decision_option_id: str
    variable: str
    value: Any


class DecisionOption:
    """
    An antecedent/consequent pair owned by exactly one layer.

    ``mental_model`` and ``layer_number`` are the configured coordinates used
    to build the archetype's mental-model prototype; ``layer`` is the layer
    object the option was added to, and ``position_number`` its position in
    that layer. Two options are equal when their antecedent, consequent and
    layer coordinates match, which is how duplicate innovations are detected.
    """

    def __init__(
        self,
        mental_model: int,
        layer_number: int,
        antecedent: Iterable[AntecedentPart],
        consequent: Consequent,
        is_modifiable: bool = False,
        is_collective_action: bool = False,
        scope: Optional[str] = None,
        required_participants: int = 1,
    ):
        self.mental_model = int(mental_model)
        self.layer_number = int(layer_number)
        self.antecedent: Tuple[AntecedentPart, ...] = tuple(antecedent)
        self.consequent = consequent
        self.is_modifiable = bool(is_modifiable)
        self.is_collective_action = bool(is_collective_action)
        self.scope = scope
        self.required_participants = max(1, int(required_participants))
        self.position_number = 0
        self.layer: Optional["DecisionOptionLayer"] = None

    @property
    def id(self) -> str:
        return f"MM{self.mental_model}-{self.layer_number}_DO{self.position_number}"

    def is_match(self, agent: Any) -> bool:
        return all(part.is_match(agent) for part in self.antecedent)

    def apply(self, agent: Any) -> TakenAction:
        """Write the consequent into the agent's variables."""
        consequent = self.consequent
        value = consequent.resolve(agent)
        if consequent.save_previous and agent.contains_variable(consequent.param):
            agent[f"{PREVIOUS_PREFIX}{consequent.param}"] = agent[consequent.param]
        agent[consequent.param] = value
        if consequent.copy_to_common:
            agent.set_to_common(f"{agent.id}_{consequent.param}", value)
        return TakenAction(self.id, consequent.param, value)

    def renew(
        self,
        antecedent: Iterable[AntecedentPart],
        consequent: Consequent,
    ) -> "DecisionOption":
        return DecisionOption(
            self.mental_model,
            self.layer_number,
            antecedent,
            consequent,
            is_modifiable=self.is_modifiable,
            is_collective_action=self.is_collective_action,
            scope=self.scope,
            required_participants=self.required_participants,
        )

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, DecisionOption):
            return NotImplemented
        if self.layer is not None and other.layer is not None and self.layer is not other.layer:
            return False
        return (
            self.mental_model == other.mental_model
            and self.layer_number == other.layer_number
            and self.antecedent == other.antecedent
            and self.consequent == other.consequent
        )

    def __hash__(self) -> int:
        return hash((self.mental_model, self.layer_number, self.antecedent, self.consequent))

    def __repr__(self) -> str:
        return f"DecisionOption({self.id}: {self.consequent.param}={self.consequent.value!r})"


@dataclass
class LayerConfiguration:
    """Capacity, modifiability and consequent bounds of a decision-option layer."""

    modifiable: bool = False
    max_number_of_decision_options: int = 10
    consequent_value_interval: Optional[Tuple[float, float]] = None
    consequent_precision_digits_after_decimal_point: int = 0
    consequent_relationship_sign: Dict[str, str] = field(default_factory=dict)
    min_consequent_reference: Optional[str] = None
    max_consequent_reference: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_number_of_decision_options < 1:
            raise InputParameterError("A layer must hold at least one decision option")
        if self.consequent_value_interval is not None:
            self.consequent_value_interval = tuple(float(v) for v in self.consequent_value_interval)

    def min_value(self, agent: Any) -> float:
        if self.min_consequent_reference:
            return float(agent[self.min_consequent_reference])
        if self.consequent_value_interval is None:
            raise InputParameterError("Layer has neither a consequent interval nor a min reference")
        return self.consequent_value_interval[0]

    def max_value(self, agent: Any) -> float:
        if self.max_consequent_reference:
            return float(agent[self.max_consequent_reference])
        if self.consequent_value_interval is None:
            raise InputParameterError("Layer has neither a consequent interval nor a max reference")
        return self.consequent_value_interval[1]

    def relationship_for(self, goal: Goal) -> ConsequentRelationship:
        if goal.name not in self.consequent_relationship_sign:
            raise InputParameterError(f"No consequent relationship sign configured for goal '{goal.name}'")
        return ConsequentRelationship.parse(self.consequent_relationship_sign[goal.name])


class DecisionOptionLayer:
    """Position-ordered slot within a mental model holding competing options."""

    def __init__(self, configuration: LayerConfiguration, decision_options: Iterable[DecisionOption] = ()):
        self.configuration = configuration
        self.position_number = 0
        self.mental_model: Optional["MentalModel"] = None
        self.decision_options: List[DecisionOption] = []
        self._indexer = 0
        for option in decision_options:
            self.add(option)

    def add(self, option: DecisionOption) -> None:
        self._indexer += 1
        option.position_number = self._indexer
        option.layer = self
        self.decision_options.append(option)

    def remove(self, option: DecisionOption) -> None:
        option.layer = None
        self.decision_options.remove(option)

    @property
    def is_modifiable(self) -> bool:
        return self.configuration.modifiable

    def __repr__(self) -> str:
        model = self.mental_model.position_number if self.mental_model else "?"
        return f"DecisionOptionLayer(MM{model}-{self.position_number})"


class MentalModel:
    """Ordered group of layers associated with the goals it can influence."""

    def __init__(self, position_number: int, associated_goals: Iterable[Goal], layers: Iterable[DecisionOptionLayer] = ()):
        self.position_number = int(position_number)
        self.associated_goals: List[Goal] = list(associated_goals)
        self.layers: List[DecisionOptionLayer] = []
        self._layer_indexer = 0
        for layer in layers:
            self.add(layer)

    def add(self, layer: DecisionOptionLayer) -> None:
        self._layer_indexer += 1
        layer.mental_model = self
        layer.position_number = self._layer_indexer
        self.layers.append(layer)

    def decision_options(self) -> List[DecisionOption]:
        return [option for layer in self.layers for option in layer.decision_options]


@dataclass
class MentalModelConfiguration:
    name: str
    associated_with: List[str] = field(default_factory=list)
    layer: Dict[str, LayerConfiguration] = field(default_factory=dict)


@dataclass
class DecisionOptionHistory:
    """Options matched, activated and blocked for one data set in one iteration."""

    matched: List[DecisionOption] = field(default_factory=list)
    activated: List[DecisionOption] = field(default_factory=list)
    blocked: List[DecisionOption] = field(default_factory=list)

    def copy(self) -> "DecisionOptionHistory":
        return DecisionOptionHistory(list(self.matched), list(self.activated), list(self.blocked))


# ---------------------------------------------------------------------------
# Data sets and agent state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DataSet:
    """A named site or context an agent may act on."""

    name: str


DEFAULT_DATA_SET = DataSet("default")


def _copy_influences(influences: Dict[DecisionOption, Dict[Goal, float]]) -> Dict[DecisionOption, Dict[Goal, float]]:
    return {option: dict(values) for option, values in influences.items()}


class AgentState:
    """Everything specific to one agent in one iteration."""

    def __init__(self, is_data_set_oriented: bool = False, goal_states: Optional[Dict[Goal, GoalState]] = None):
        self.is_data_set_oriented = is_data_set_oriented
        self.goal_states: Dict[Goal, GoalState] = dict(goal_states or {})
        self.decision_option_histories: Dict[Hashable, DecisionOptionHistory] = {}
        self.taken_actions: Dict[Hashable, List[TakenAction]] = {}
        self.ranked_goals: List[Goal] = []
        self._anticipated_influences: Dict[DecisionOption, Dict[Goal, float]] = {}

    @classmethod
    def create(cls, is_data_set_oriented: bool, goal_states: Dict[Goal, GoalState]) -> "AgentState":
        return cls(is_data_set_oriented, goal_states)

    @property
    def anticipated_influences(self) -> Dict[DecisionOption, Dict[Goal, float]]:
        return self._anticipated_influences

    @anticipated_influences.setter
    def anticipated_influences(self, influences: Dict[DecisionOption, Dict[Goal, float]]) -> None:
        self._anticipated_influences = _copy_influences(influences)

    def history_for(self, data_set: Hashable) -> DecisionOptionHistory:
        history = self.decision_option_histories.get(data_set)
        if history is None:
            history = DecisionOptionHistory()
            self.decision_option_histories[data_set] = history
        return history

    def activated_options(self) -> List[DecisionOption]:
        return [option for history in self.decision_option_histories.values() for option in history.activated]

    def create_for_next_iteration(self) -> "AgentState":
        """Carry goal states forward and start every known data set with an empty history."""
        state = AgentState(
            self.is_data_set_oriented,
            {goal: goal_state.create_copy() for goal, goal_state in self.goal_states.items()},
        )
        for data_set in self.decision_option_histories:
            state.decision_option_histories[data_set] = DecisionOptionHistory()
        return state

    def create_copy(self) -> "AgentState":
        state = AgentState(
            self.is_data_set_oriented,
            {goal: goal_state.clone() for goal, goal_state in self.goal_states.items()},
        )
        state.decision_option_histories = {
            data_set: history.copy() for data_set, history in self.decision_option_histories.items()
        }
        state.taken_actions = {data_set: list(actions) for data_set, actions in self.taken_actions.items()}
        state.ranked_goals = list(self.ranked_goals)
        state.anticipated_influences = self._anticipated_influences
        return state

    def create_copy_for_child(self) -> "AgentState":
        return AgentState(
            self.is_data_set_oriented,
            {goal: goal_state.create_child_copy() for goal, goal_state in self.goal_states.items()},
        )
