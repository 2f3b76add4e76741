"""Command-line launcher for cognitive ABM runs."""

from __future__ import annotations

import argparse
import copy
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .agents import AgentList
from .builder import build_model, load_model_definition
from .config import (
    ProcessProfile,
    SimulationConfig,
    apply_process_profile,
    get_process_profile,
    list_process_profiles,
    load_config,
    load_process_profile,
)
from .demo import create_demo_simulation
from .simulation import Simulation


def _print_profile_catalog() -> None:
    """Display the registered process profiles."""
    catalog: List[ProcessProfile] = sorted(list_process_profiles(), key=lambda profile: profile.name.lower())
    if not catalog:
        print("No built-in process profiles are registered.")
        return
    print("Available process profiles:")
    for profile in catalog:
        print(f"  - {profile.name}: {profile.description}")


def _persist_config_snapshot(
    run_directory: str,
    config: SimulationConfig,
    cli_args: Optional[Dict[str, Any]],
    profile_metadata: Optional[List[Dict[str, Any]]],
) -> Path:
    """Store configuration + profile metadata alongside simulation results."""
    payload = {
        "timestamp_utc": datetime.utcnow().isoformat(),
        "cli_args": cli_args or {},
        "process_profiles": profile_metadata or [],
        "config": config.snapshot(),
    }
    snapshot_path = Path(run_directory) / "config_snapshot.json"
    with snapshot_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True, default=str)
    return snapshot_path


def _coerce_value(value: str) -> Any:
    for cast in (int, float):
        try:
            return cast(value)
        except (ValueError, TypeError):
            continue
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    return value


def _parse_overrides(items: Optional[List[str]]) -> Dict[str, Any]:
    if not items:
        return {}
    overrides: Dict[str, Any] = {}
    for item in items:
        if "=" not in item:
            raise ValueError(f"Invalid override '{item}'. Expected KEY=VALUE.")
        key, raw = item.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid override '{item}'. Expected KEY=VALUE.")
        overrides[key] = _coerce_value(raw.strip())
    return overrides


def _parse_cli_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cognitive agent-based model launcher")
    parser.add_argument(
        "--config",
        help="JSON file of configuration overrides applied on top of the defaults.",
    )
    parser.add_argument(
        "--model",
        help="JSON model definition (archetypes, agents, network). Defaults to the common-pool demo.",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        help="Override the number of iterations to run.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        dest="random_seed",
        help="Override the base random seed.",
    )
    parser.add_argument(
        "--profile",
        help="Apply a built-in process profile (see --list-profiles).",
    )
    parser.add_argument(
        "--profile-file",
        help="Apply a process profile loaded from a JSON file.",
    )
    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="List the built-in process profiles and exit.",
    )
    parser.add_argument(
        "--results-dir",
        default="results",
        help="Directory that receives one sub-directory per run.",
    )
    parser.add_argument(
        "--run-id",
        help="Name of the run directory. Defaults to a timestamp.",
    )
    parser.add_argument(
        "--set",
        action="append",
        dest="overrides",
        metavar="KEY=VALUE",
        help="Configuration override, e.g. --set PROCESSES.INNOVATION=false. May be repeated.",
    )
    return parser.parse_args(args=list(argv) if argv is not None else None)


def run_cli(
    base_config: Optional[SimulationConfig] = None,
    argv: Optional[Iterable[str]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Parse CLI arguments, build the model and run one simulation.
    Returns the run result dictionary (if any), allowing programmatic reuse.
    """
    args = _parse_cli_args(argv)
    if args.list_profiles:
        _print_profile_catalog()
        return None

    base_cfg = copy.deepcopy(base_config or SimulationConfig())
    profile_metadata: List[Dict[str, Any]] = []
    agent_list: Optional[AgentList] = None
    try:
        if args.config:
            base_cfg = load_config(args.config, base_cfg)
        if args.profile:
            builtin_profile = get_process_profile(args.profile)
            base_cfg = apply_process_profile(base_cfg, builtin_profile)
            profile_metadata.append(builtin_profile.to_metadata())
        if args.profile_file:
            file_profile = load_process_profile(args.profile_file)
            base_cfg = apply_process_profile(base_cfg, file_profile)
            profile_metadata.append(file_profile.to_metadata())
        base_cfg = base_cfg.copy_with_overrides(_parse_overrides(args.overrides))
        if args.iterations is not None:
            base_cfg.N_ITERATIONS = max(1, args.iterations)
        if args.random_seed is not None:
            base_cfg.RANDOM_SEED = args.random_seed
        if args.model:
            agent_list = build_model(
                load_model_definition(args.model),
                seed=base_cfg.RANDOM_SEED,
                n_neighbors=base_cfg.NETWORK_N_NEIGHBORS,
                rewiring_prob=base_cfg.NETWORK_REWIRING_PROB,
            )
    except (FileNotFoundError, ValueError, KeyError) as exc:
        print(f"[CLI] Configuration error: {exc}")
        return None

    run_id = args.run_id or datetime.now().strftime("run_%Y%m%d_%H%M%S")
    print("[CLI] Cognitive ABM launcher starting")
    print(f"[CLI] Model: {args.model or 'common-pool demo'}")
    if profile_metadata:
        applied = ", ".join(meta["name"] for meta in profile_metadata)
        print(f"[CLI] Process profiles applied: {applied}")

    if agent_list is None:
        simulation: Simulation = create_demo_simulation(base_cfg, args.results_dir, run_id)
    else:
        simulation = Simulation(base_cfg, agent_list, args.results_dir, run_id)

    result = simulation.run()
    snapshot_path = _persist_config_snapshot(result["run_dir"], base_cfg, vars(args), profile_metadata)
    result["config_snapshot"] = str(snapshot_path)
    print(f"[CLI] Results written to {result['run_dir']}")
    return result


def main(argv: Optional[Iterable[str]] = None) -> None:  # pragma: no cover - thin wrapper
    run_cli(argv=argv)


if __name__ == "__main__":  # pragma: no cover
    main()
