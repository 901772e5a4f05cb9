"""Simulation run records, persistence and background execution."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
import copy
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
import json
import logging
from pathlib import Path
import threading
from typing import Any, Callable
import uuid

from .engine import ModuleError, SimulationEngine
from .schema import InputError, SchemaError, Snapshot

logger = logging.getLogger(__name__)

RUN_STATUSES = {"pending", "success", "error"}


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(slots=True)
class SimulationRun:
    id: str
    scenario_id: str
    snapshot: dict[str, Any]
    status: str = "pending"
    error_message: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    title: str | None = None
    result: dict[str, Any] | None = None

    @classmethod
    def pending(cls, snapshot: Snapshot, *, run_id: str | None = None, title: str | None = None) -> "SimulationRun":
        return cls(
            id=run_id or uuid.uuid4().hex,
            scenario_id=snapshot.scenario.id,
            snapshot=copy.deepcopy(snapshot.raw),
            started_at=_now(),
            title=title,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimulationRun":
        status = data.get("status", "pending")
        if status not in RUN_STATUSES:
            raise SchemaError(f"run.status: '{status}' is not valid")
        return cls(
            id=data["id"],
            scenario_id=data["scenario_id"],
            snapshot=data.get("snapshot") or {},
            status=status,
            error_message=data.get("error_message"),
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
            title=data.get("title"),
            result=data.get("result"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def _finish(self, status: str) -> None:
        if self.status != "pending":
            raise ValueError(f"run {self.id} already finished with status {self.status}")
        self.status = status
        self.finished_at = _now()

    def succeed(self, result: dict[str, Any]) -> None:
        self._finish("success")
        self.result = result

    def fail(self, message: str) -> None:
        self._finish("error")
        self.error_message = message


class RunStore:
    """JSON files keyed by run id under one directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    def _path(self, run_id: str) -> Path:
        return self.root / f"{run_id}.json"

    def upsert(self, run: SimulationRun) -> None:
        with self._lock:
            self.root.mkdir(parents=True, exist_ok=True)
            self._path(run.id).write_text(json.dumps(run.to_dict(), indent=2), encoding="utf-8")

    def get(self, run_id: str) -> SimulationRun:
        path = self._path(run_id)
        if not path.exists():
            raise KeyError(run_id)
        return SimulationRun.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def list(self, scenario_id: str | None = None) -> list[SimulationRun]:
        if not self.root.exists():
            return []
        runs = [
            SimulationRun.from_dict(json.loads(path.read_text(encoding="utf-8")))
            for path in sorted(self.root.glob("*.json"))
        ]
        if scenario_id is not None:
            runs = [run for run in runs if run.scenario_id == scenario_id]
        return sorted(runs, key=lambda run: run.started_at or "")

    def update_title(self, run_id: str, title: str | None) -> SimulationRun:
        with self._lock:
            path = self._path(run_id)
            if not path.exists():
                raise KeyError(run_id)
            data = json.loads(path.read_text(encoding="utf-8"))
            data["title"] = title
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return SimulationRun.from_dict(data)


def execute_run(
    snapshot: Snapshot,
    *,
    seed: int | None = None,
    should_cancel: Callable[[], bool] | None = None,
    title: str | None = None,
    store: RunStore | None = None,
    run_id: str | None = None,
) -> SimulationRun:
    """Run the engine and return a finished run record.

    Input and module failures end as ``status="error"``; ``RunCancelled``
    propagates and nothing is stored.
    """
    run = SimulationRun.pending(snapshot, run_id=run_id, title=title)
    engine = SimulationEngine(snapshot, seed=seed, should_cancel=should_cancel)
    try:
        result = engine.run()
    except (SchemaError, InputError, ModuleError) as exc:
        logger.exception("run %s for scenario %s failed", run.id, run.scenario_id)
        run.fail(str(exc))
    else:
        run.succeed(result.to_dict())

    if store is not None:
        store.upsert(run)
    return run


def run_in_background(
    executor: ThreadPoolExecutor,
    snapshot: Snapshot,
    *,
    seed: int | None = None,
    cancel_event: threading.Event | None = None,
    title: str | None = None,
    store: RunStore | None = None,
) -> Future[SimulationRun]:
    """Submit ``execute_run`` to ``executor``; set ``cancel_event`` to stop it."""
    should_cancel = cancel_event.is_set if cancel_event is not None else None
    return executor.submit(
        execute_run,
        snapshot,
        seed=seed,
        should_cancel=should_cancel,
        title=title,
        store=store,
    )
