"""End-to-end runs of the scheduler, the demo model and the CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd

from cognitive_abm.builder import build_model
from cognitive_abm.cli import _coerce_value, _parse_overrides, run_cli
from cognitive_abm.config import SimulationConfig, apply_process_profile, get_process_profile
from cognitive_abm.demo import create_demo_simulation
from cognitive_abm.models import DEFAULT_DATA_SET
from cognitive_abm.simulation import Simulation


def _work_definition(agents, options):
    return {
        "archetypes": [
            {
                "name": "Household",
                "name_prefix": "HH",
                "goals": [{"name": "Income", "tendency": "Maximize", "reference_variable": "Income"}],
                "mental_model": {
                    "1": {
                        "name": "Work",
                        "associated_with": ["Income"],
                        "layer": {"1": {"consequent_relationship_sign": {"Income": "+"}}},
                    }
                },
                "decision_options": options,
            }
        ],
        "agents": agents,
        "network": {"group_by": ["Household"]},
    }


def _work_option(value, minimum_budget, **extra):
    return {
        "mental_model": 1,
        "layer": 1,
        "antecedent": [{"param": "Budget", "sign": ">=", "value": minimum_budget}],
        "consequent": {"param": "Harvest", "value": value},
        **extra,
    }


def _worker(agent_id, budget, influences):
    return {
        "id": agent_id,
        "archetype": "Household",
        "variables": {"Budget": budget, "Income": 0.0, "Harvest": 0, "Household": "H1"},
        "anticipated_influence": influences,
    }


def _profiled(profile: str, **overrides) -> SimulationConfig:
    return apply_process_profile(SimulationConfig(**overrides), get_process_profile(profile))


def test_strongest_anticipated_influence_is_activated(tmp_path: Path) -> None:
    definition = _work_definition(
        [_worker("HH1", 10, {"MM1-1_DO1": {"Income": 1.0}, "MM1-1_DO2": {"Income": 2.0}})],
        [_work_option(2, 0), _work_option(5, 0)],
    )
    agents = build_model(definition)
    config = SimulationConfig(N_ITERATIONS=1).copy_with_overrides(
        {"PROCESSES": {"COUNTERFACTUAL_THINKING": False, "INNOVATION": False, "SOCIAL_LEARNING": False}}
    )
    simulation = Simulation(config, agents, str(tmp_path), "single")
    simulation.run()

    agent = agents.get("HH1")
    activated = simulation.iterations[0][agent].history_for(DEFAULT_DATA_SET).activated
    assert [option.id for option in activated] == ["MM1-1_DO2"]
    assert agent["Harvest"] == 5


def test_collective_action_without_quorum_is_blocked(tmp_path: Path) -> None:
    influences = {"MM1-1_DO1": {"Income": 2.0}, "MM1-1_DO2": {"Income": 1.0}}
    definition = _work_definition(
        [_worker("HH1", 10, influences), _worker("HH2", 1, influences)],
        [
            _work_option(5, 5, is_collective_action=True, scope="Household", required_participants=2),
            _work_option(1, 0),
        ],
    )
    agents = build_model(definition)
    simulation = Simulation(_profiled("satisficing_only", N_ITERATIONS=2), agents, str(tmp_path), "quorum")
    simulation.run()

    keen = agents.get("HH1")
    collective = keen.archetype.get_decision_option("MM1-1_DO1")
    fallback = keen.archetype.get_decision_option("MM1-1_DO2")
    first = simulation.iterations[0][keen].history_for(DEFAULT_DATA_SET)
    second = simulation.iterations[1][keen].history_for(DEFAULT_DATA_SET)
    assert first.activated == [collective]
    assert second.blocked == [collective]
    assert second.activated == [fallback]
    assert keen["Harvest"] == 1


def test_quorum_pass_needs_option_selection(tmp_path: Path, monkeypatch) -> None:
    influences = {"MM1-1_DO1": {"Income": 2.0}, "MM1-1_DO2": {"Income": 1.0}}
    definition = _work_definition(
        [_worker("HH1", 10, influences), _worker("HH2", 10, influences)],
        [
            _work_option(5, 5, is_collective_action=True, scope="Household", required_participants=2),
            _work_option(1, 0),
        ],
    )
    agents = build_model(definition)
    config = _profiled("satisficing_only", N_ITERATIONS=3).copy_with_overrides(
        {"PROCESSES.DECISION_OPTION_SELECTION": False}
    )
    simulation = Simulation(config, agents, str(tmp_path), "no_selection")
    calls = []
    monkeypatch.setattr(simulation.satisficing, "execute_part_ii", lambda *args: calls.append(args))
    simulation.run()

    assert calls == []
    assert agents.get("HH1")["Harvest"] == 0


def test_run_stops_when_nobody_acts(tmp_path: Path) -> None:
    definition = _work_definition(
        [_worker("HH1", 1, {})],
        [_work_option(5, 100)],
    )
    config = _profiled("satisficing_only", N_ITERATIONS=5).copy_with_overrides(
        {"PROCESSES.ALGORITHM_STOP_IF_ALL_AGENTS_SELECT_DO_NOTHING": True}
    )
    result = Simulation(config, build_model(definition), str(tmp_path), "idle").run()
    assert result["stop_reason"] == "all_agents_do_nothing"
    assert result["iterations"] == 2
    lines = (tmp_path / "idle" / "run_log.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["iteration"] for line in lines] == [1, 2]


def test_demo_smoke_run(tmp_path: Path) -> None:
    config = SimulationConfig(N_ITERATIONS=5, ENABLE_DEBUG_LOGS=True, write_agent_details=True)
    simulation = create_demo_simulation(config, str(tmp_path), "smoke")
    result = simulation.run()

    run_dir = tmp_path / "smoke"
    assert result["run_dir"] == str(run_dir)
    assert result["iterations"] == 5
    assert (run_dir / "run_log.jsonl").exists(), "Round log missing"
    assert (run_dir / "final_agents.pkl").exists(), "Final agent snapshot missing"
    assert (run_dir / "network_edges.csv").exists(), "Network export missing"
    assert (run_dir / "agent_details.csv").exists()

    summary = pd.read_pickle(run_dir / "summary" / "batch_5.pkl")
    assert list(summary["iteration"]) == [1, 2, 3, 4, 5]
    actions = pd.read_pickle(run_dir / "actions" / "batch_5.pkl")
    assert set(actions["variable"]) <= {"Harvest", "Contribution"}
    final_agents = pd.read_pickle(run_dir / "final_agents.pkl")
    assert len(final_agents) == 12
    assert (final_agents["Age"] >= 25).all()

    pool = simulation.agent_list.get_archetype("Household")["Pool"]
    assert 0.0 <= pool <= 200.0


def test_demo_runs_are_reproducible(tmp_path: Path) -> None:
    config = SimulationConfig(N_ITERATIONS=4)
    logs = []
    for folder in ("first", "second"):
        create_demo_simulation(config, str(tmp_path / folder), "repeat").run()
        logs.append((tmp_path / folder / "repeat" / "run_log.jsonl").read_text(encoding="utf-8"))
    assert logs[0] == logs[1]


def test_demo_with_population_dynamics(tmp_path: Path) -> None:
    config = _profiled("demographic", N_ITERATIONS=6)
    result = create_demo_simulation(config, str(tmp_path), "families").run()
    assert result["iterations"] >= 1
    records = [json.loads(line) for line in (tmp_path / "families" / "run_log.jsonl").read_text().splitlines()]
    assert all({"births", "pairings", "deaths"} <= set(record) for record in records)


def test_cli_runs_the_demo(tmp_path: Path) -> None:
    result = run_cli(
        argv=[
            "--iterations",
            "3",
            "--profile",
            "learning_without_innovation",
            "--results-dir",
            str(tmp_path),
            "--run-id",
            "cli",
            "--set",
            "PROCESSES.SOCIAL_LEARNING=false",
        ]
    )
    assert result is not None
    assert result["iterations"] == 3
    snapshot = json.loads(Path(result["config_snapshot"]).read_text(encoding="utf-8"))
    assert snapshot["config"]["active_profile"] == "learning_without_innovation"
    assert snapshot["config"]["PROCESSES"]["SOCIAL_LEARNING"] is False
    assert snapshot["process_profiles"][0]["name"] == "learning_without_innovation"


def test_cli_reports_configuration_errors(tmp_path: Path, capsys) -> None:
    assert run_cli(argv=["--profile", "nonexistent", "--results-dir", str(tmp_path)]) is None
    assert "Configuration error" in capsys.readouterr().out
    assert run_cli(argv=["--list-profiles"]) is None
    assert "satisficing_only" in capsys.readouterr().out


def test_cli_reports_broken_model_definitions(tmp_path: Path, capsys) -> None:
    model = tmp_path / "model.json"
    definition = _work_definition([_worker("HH1", 10, {})], [_work_option(2, 0)])
    definition["agents"][0]["archetype"] = "Fisher"
    model.write_text(json.dumps(definition), encoding="utf-8")
    assert run_cli(argv=["--model", str(model), "--results-dir", str(tmp_path)]) is None
    out = capsys.readouterr().out
    assert "Configuration error" in out
    assert "Fisher" in out


def test_cli_value_coercion() -> None:
    assert _coerce_value("3") == 3
    assert _coerce_value("0.5") == 0.5
    assert _coerce_value("False") is False
    assert _coerce_value("Birth") == "Birth"
    assert _parse_overrides(["N_ITERATIONS=4", "DEMOGRAPHIC.maximum_age=90"]) == {
        "N_ITERATIONS": 4,
        "DEMOGRAPHIC.maximum_age": 90,
    }
