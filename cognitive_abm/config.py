"""
Simulation configuration dataclass and process profiles for the cognitive ABM.

The configuration captures everything a run needs apart from the model
definition itself (archetypes, agents and decision options, see
:mod:`cognitive_abm.builder`):

1. **Reproducibility**: every run stores a complete configuration snapshot,
   and a single seeded random source drives all stochastic steps.

2. **Process selection**: ``PROCESSES`` switches each cognitive process and
   scheduler feature on or off. Built-in profiles bundle common selections.

3. **Overrides**: ``copy_with_overrides`` accepts plain and dotted keys
   (``"PROCESSES.INNOVATION"``) so sweeps and the CLI can adjust single
   flags without restating whole dictionaries.

Usage
-----
    >>> config = SimulationConfig()
    >>> config = config.copy_with_overrides({"N_ITERATIONS": 50, "PROCESSES.INNOVATION": False})
    >>> config = apply_process_profile(config, get_process_profile("satisficing_only"))
"""

from __future__ import annotations

import copy
import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


DEFAULT_PROCESSES: Dict[str, bool] = {
    "ACTION_TAKING": True,
    "ANTICIPATORY_LEARNING": True,
    "DECISION_OPTION_SELECTION": True,
    "DECISION_OPTION_SELECTION_PART2": True,
    "SOCIAL_LEARNING": True,
    "COUNTERFACTUAL_THINKING": True,
    "INNOVATION": True,
    "REPRODUCTION": False,
    "AGENT_RANDOMIZATION": True,
    "AGENTS_DEACTIVATION": False,
    "ALGORITHM_STOP_IF_ALL_AGENTS_SELECT_DO_NOTHING": False,
    "USE_DEMOGRAPHIC_PROCESSES": False,
}

DEFAULT_DEMOGRAPHIC: Dict[str, Any] = {
    "maximum_age": 100,
    "death_probability": "Death",
    "birth_probability": "Birth",
    "pairing_probability": 0.1,
    "sexual_orientation_rate": 0.05,
    "homosexual_type_rate": 0.5,
    "pairing_age_min": 18,
    "pairing_age_max": 60,
    "years_between_births": 2,
    "minimum_age_for_household_head": 18,
}


@dataclass
class SimulationConfig:
    """Configuration for one simulation run."""

    # --- Timeline ---
    N_ITERATIONS: int = 20
    RANDOM_SEED: Optional[int] = 42

    # --- Process switches ---
    PROCESSES: Dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_PROCESSES))

    # --- Demographic process ---
    # Birth/death probabilities name entries of PROBABILITY_TABLES keyed by age.
    DEMOGRAPHIC: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_DEMOGRAPHIC))

    # --- Probability tables (name -> CSV path, value/probability columns) ---
    PROBABILITY_TABLES: Dict[str, str] = field(default_factory=dict)
    PROBABILITY_TABLES_WITH_HEADER: bool = True

    # --- Social network used when a model asks for a small-world wiring ---
    NETWORK_N_NEIGHBORS: int = 4
    NETWORK_REWIRING_PROB: float = 0.1

    # --- Output and logging ---
    buffer_flush_interval: int = 10
    round_log_interval: int = 1
    enable_round_logging: bool = True
    write_agent_details: bool = False
    ENABLE_DEBUG_LOGS: bool = False
    active_profile: Optional[str] = None

    def __post_init__(self) -> None:
        # Fill flags missing from partial dictionaries supplied by callers.
        self.PROCESSES = {**DEFAULT_PROCESSES, **self.PROCESSES}
        self.DEMOGRAPHIC = {**DEFAULT_DEMOGRAPHIC, **self.DEMOGRAPHIC}

    def is_enabled(self, process: str) -> bool:
        if process not in self.PROCESSES:
            raise KeyError(f"Unknown process flag '{process}'. Available: {', '.join(self.PROCESSES)}")
        return bool(self.PROCESSES[process])

    def snapshot(self) -> Dict[str, Any]:
        """Return a deep-copied, JSON-safe representation of the configuration."""
        return asdict(self)

    def copy_with_overrides(self, overrides: Optional[Dict[str, Any]] = None) -> "SimulationConfig":
        """Return a new config with the provided overrides merged in."""
        new_cfg = copy.deepcopy(self)
        if overrides:
            _apply_overrides(new_cfg, overrides)
        return new_cfg


def _apply_overrides(config: SimulationConfig, overrides: Dict[str, Any]) -> None:
    """Recursively merge ``overrides`` into ``config``.

    ``PROBABILITY_TABLES`` is replaced rather than merged so a profile can
    drop tables that the defaults register.
    """
    REPLACE_KEYS = {"PROBABILITY_TABLES"}

    for key, value in overrides.items():
        # Dotted notation for nested dict updates (e.g., "PROCESSES.INNOVATION")
        if "." in key:
            top, *rest = key.split(".")
            if not hasattr(config, top):
                raise KeyError(f"Unknown configuration attribute '{top}' in override.")
            current = getattr(config, top)
            if not isinstance(current, dict):
                raise KeyError(f"Attribute '{top}' is not a dictionary; cannot set '{key}'.")
            ref = current
            for part in rest[:-1]:
                if part not in ref or not isinstance(ref[part], dict):
                    ref[part] = {}
                ref = ref[part]
            ref[rest[-1]] = copy.deepcopy(value)
            setattr(config, top, current)
            continue
        if not hasattr(config, key):
            raise KeyError(f"Unknown configuration attribute '{key}' in override.")
        current = getattr(config, key)
        if key in REPLACE_KEYS:
            setattr(config, key, copy.deepcopy(value))
        elif isinstance(current, dict) and isinstance(value, dict):
            setattr(config, key, _deep_merge_dict(current, value))
        else:
            setattr(config, key, copy.deepcopy(value))


def _deep_merge_dict(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries without mutating the originals."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge_dict(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: str | os.PathLike[str], base: Optional[SimulationConfig] = None) -> SimulationConfig:
    """Load a JSON file of configuration overrides on top of ``base``."""
    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"Configuration file {file_path} must contain a JSON object.")
    tables = payload.get("PROBABILITY_TABLES")
    if isinstance(tables, dict):
        # Relative table paths are resolved against the configuration file.
        payload["PROBABILITY_TABLES"] = {
            name: str((file_path.parent / table).resolve()) if not Path(table).is_absolute() else table
            for name, table in tables.items()
        }
    return (base or SimulationConfig()).copy_with_overrides(payload)


@dataclass(frozen=True)
class ProcessProfile:
    """Reusable bundle of process switches and parameters."""

    name: str
    description: str
    overrides: Dict[str, Any] = field(default_factory=dict)
    source: str = "built-in"

    def to_metadata(self) -> Dict[str, Any]:
        """Return a serializable summary for run artefacts."""
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "overrides": copy.deepcopy(self.overrides),
        }


PROFILE_LIBRARY: Dict[str, ProcessProfile] = {
    "full_cognition": ProcessProfile(
        name="full_cognition",
        description="Every cognitive process enabled; no population dynamics.",
        overrides={"PROCESSES": {key: True for key in (
            "ACTION_TAKING",
            "ANTICIPATORY_LEARNING",
            "DECISION_OPTION_SELECTION",
            "DECISION_OPTION_SELECTION_PART2",
            "SOCIAL_LEARNING",
            "COUNTERFACTUAL_THINKING",
            "INNOVATION",
        )}},
    ),
    "satisficing_only": ProcessProfile(
        name="satisficing_only",
        description="Agents select and take actions from their initial options without learning.",
        overrides={"PROCESSES": {
            "ANTICIPATORY_LEARNING": False,
            "COUNTERFACTUAL_THINKING": False,
            "INNOVATION": False,
            "SOCIAL_LEARNING": False,
        }},
    ),
    "learning_without_innovation": ProcessProfile(
        name="learning_without_innovation",
        description="Anticipatory, counterfactual and social learning, but no new options.",
        overrides={"PROCESSES": {"INNOVATION": False}},
    ),
    "demographic": ProcessProfile(
        name="demographic",
        description="Full cognition plus births, pairing and deaths between iterations.",
        overrides={"PROCESSES": {"USE_DEMOGRAPHIC_PROCESSES": True}},
    ),
}


def apply_process_profile(config: SimulationConfig, profile: Optional[ProcessProfile]) -> SimulationConfig:
    """Return a config with the profile overrides applied."""
    if profile is None:
        return config
    updated = config.copy_with_overrides(profile.overrides)
    updated.active_profile = profile.name
    return updated


def list_process_profiles() -> List[ProcessProfile]:
    """Return the available built-in process profiles."""
    return list(PROFILE_LIBRARY.values())


def get_process_profile(name: str) -> ProcessProfile:
    """Fetch a built-in process profile by name (case-insensitive)."""
    normalized = name.strip().lower()
    for profile in PROFILE_LIBRARY.values():
        if profile.name.lower() == normalized:
            return profile
    raise KeyError(f"Unknown process profile '{name}'. Available: {', '.join(PROFILE_LIBRARY.keys())}")


def load_process_profile(path: str | os.PathLike[str]) -> ProcessProfile:
    """Load a process profile definition from disk."""
    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Profile file not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    overrides = payload.get("overrides") or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"Profile file {file_path} must define an 'overrides' dictionary.")
    name = payload.get("name") or file_path.stem
    description = payload.get("description", f"Custom profile loaded from {file_path.name}")
    return ProcessProfile(name=name, description=description, overrides=overrides, source=str(file_path))
