import argparse
import asyncio
import json
import sys
from pathlib import Path

from core.candidates import CandidateDirectory, candidate_from_dashboard
from core.orchestrator import SyntheticRaceWorkflow
from core.schemas import RaceInfo, ScenarioInput, parse_candidates
from utils import telemetry
from utils.config import load_config
from utils.errors import SynthesisError, as_json, user_message
from utils.logging import configure as configure_logging
from utils.providers import available_providers

from . import get_version


def _read_json(path: str):
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        print(f"failed to read {path}: {exc}", file=sys.stderr)
        sys.exit(1)


def _load_candidates(data):
    if not isinstance(data, list):
        print("candidates JSON must be an array", file=sys.stderr)
        sys.exit(1)
    if all(isinstance(c, dict) and "kind" in c for c in data):
        return parse_candidates(data)
    return [candidate_from_dashboard(c) for c in data]


async def _run(workflow, scenario, race, candidates, save, user_id):
    preview = await workflow.generate(scenario, race, candidates)
    out = {"preview": preview.model_dump(mode="json")}
    if save:
        out["synthetic_race_id"] = await workflow.confirm(user_id)
    return out


def cmd_providers(cfg) -> int:
    for info in available_providers(cfg).values():
        print(json.dumps({"id": info.id, "name": info.name, "kind": info.kind, "model": info.model}))
    return 0


def cmd_search(args, cfg) -> int:
    for profile in CandidateDirectory.from_config(cfg).search(args.query):
        print(json.dumps(profile, ensure_ascii=False))
    return 0


def cmd_run(args, cfg) -> int:
    race = RaceInfo.model_validate(_read_json(args.race))
    scenario = ScenarioInput.model_validate(_read_json(args.scenario))
    if args.provider:
        scenario = scenario.model_copy(update={"model_provider_id": args.provider})
    candidates = _load_candidates(_read_json(args.candidates))
    workflow = SyntheticRaceWorkflow.from_config(cfg)
    try:
        out = asyncio.run(_run(workflow, scenario, race, candidates, args.save, args.user_id))
    except SynthesisError as exc:
        if args.error_json and workflow.failure is not None:
            print(as_json(workflow.failure).decode("utf-8"), file=sys.stderr)
        else:
            print(user_message(exc), file=sys.stderr)
            if workflow.failure is not None:
                print(f"support id: {workflow.failure.support_id}", file=sys.stderr)
        return 2 if exc.kind == "validation" else 1
    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="synthrace")
    parser.add_argument("--version", action="store_true", help="Print package version and exit")
    parser.add_argument("--config", help="Path to a YAML file merged over the shipped defaults")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("version", help="Print package version")
    sub.add_parser("providers", help="List AI providers available for the elections dashboard")

    run_p = sub.add_parser("run", help="Generate a synthetic scenario preview")
    run_p.add_argument("--race", required=True, help="Race JSON file")
    run_p.add_argument("--candidates", required=True, help="Candidates JSON file")
    run_p.add_argument("--scenario", required=True, help="Scenario JSON file")
    run_p.add_argument("--provider", help="Override the scenario's AI provider id")
    run_p.add_argument("--save", action="store_true", help="Persist the preview as a synthetic race")
    run_p.add_argument("--user-id", help="User id recorded on the saved race")
    run_p.add_argument("--error-json", action="store_true", help="Report failures as a JSON error record")

    search_p = sub.add_parser("search", help="Search candidate profiles by name")
    search_p.add_argument("query", help="Name or part of a name")

    args = parser.parse_args(argv)

    if args.version or args.cmd == "version":
        print(get_version())
        return 0
    if args.cmd in {"providers", "run", "search"}:
        cfg = load_config(args.config)
        telemetry.configure(cfg)
        configure_logging(cfg)
        if args.cmd == "providers":
            return cmd_providers(cfg)
        if args.cmd == "search":
            return cmd_search(args, cfg)
        return cmd_run(args, cfg)

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
