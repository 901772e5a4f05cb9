"""CLI entry point for nestegg."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from .schema import SchemaError, Snapshot
from .simulation import RunStore, SimulationRun, execute_run
from .templates import build_sample_snapshot
from .validate import validate_snapshot


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Month-by-month retirement projection")
    parser.add_argument("snapshot", help="Path to snapshot JSON file")
    parser.add_argument("-o", "--output", default="simulation.json", help="Output JSON path for the run record")
    parser.add_argument("--seed", type=int, help="Random seed for stochastic returns")
    parser.add_argument("--years", type=int, help="Override the number of projected years")
    parser.add_argument("--validate", action="store_true", help="Validate JSON only")
    parser.add_argument("--summary", action="store_true", help="Print text summary to stdout")
    parser.add_argument("--store", help="Directory of a run store to upsert the run into")
    parser.add_argument("--title", help="Display title for the stored run")
    parser.add_argument("--sample", action="store_true", help="Write a sample snapshot to SNAPSHOT and exit")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log progress (-vv for debug)")
    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def _print_validation(errors: list[str], warnings: list[str]) -> None:
    for warning in warnings:
        print(f"WARNING: {warning}")
    for error in errors:
        print(f"ERROR: {error}", file=sys.stderr)


def _load(path: str, years: int | None) -> Snapshot:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise SchemaError("snapshot: root must be a JSON object")
    if years is not None:
        scenario = raw.get("scenario")
        if not isinstance(scenario, dict):
            raise SchemaError("scenario: expected object")
        scenario["years"] = years
    return Snapshot.from_dict(raw)


def _print_summary(run: SimulationRun) -> None:
    result = run.result or {}
    timeline = result.get("timeline", [])
    summary = result.get("summary", {})
    print(f"Scenario: {run.scenario_id}")
    print(f"Years: {len(timeline)}")
    if timeline:
        print(f"Dates: {timeline[0]['date'][:7]} to {timeline[-1]['date'][:7]}")
        print(f"Total taxes: ${sum(point['taxes'] for point in timeline):,.0f}")
    print(f"Ending balance: ${summary.get('ending_balance', 0.0):,.0f}")
    print(f"Minimum balance: ${summary.get('min_balance', 0.0):,.0f}")
    print(f"Unmet spending: ${summary.get('unmet_spending', 0.0):,.0f}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.sample:
        Path(args.snapshot).write_text(json.dumps(build_sample_snapshot(), indent=2), encoding="utf-8")
        print(f"Wrote sample snapshot to {Path(args.snapshot)}")
        return 0

    try:
        snapshot = _load(args.snapshot, args.years)
    except (SchemaError, OSError, ValueError) as exc:
        print(f"Failed to load snapshot: {exc}", file=sys.stderr)
        return 2

    validation = validate_snapshot(snapshot)
    _print_validation(validation.errors, validation.warnings)
    if not validation.is_valid:
        return 1

    if args.validate:
        print("Snapshot is valid.")
        return 0

    store = RunStore(args.store) if args.store else None
    run = execute_run(snapshot, seed=args.seed, title=args.title, store=store)
    Path(args.output).write_text(json.dumps(run.to_dict(), indent=2), encoding="utf-8")
    if run.status == "error":
        print(f"Simulation failed: {run.error_message}", file=sys.stderr)
        return 1

    if args.summary:
        _print_summary(run)
    print(f"Wrote run {run.id} to {Path(args.output)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
