"""Run stores.

A store maps each concurrency group to its current run and keeps every run by
id. The controller only talks to the `RunStore` protocol; the in-memory store
suits tests and embedding, the JSON store (what the CLI and `create_app()`
wire up from settings) survives restarts, best-effort.

Both implementations serialise mutations behind a lock. `compare_and_swap` is
the single write path for new runs, which makes lookup-then-create atomic for
concurrent triggers of the same group.

With `retain_terminal` set, each new run prunes completed and cancelled runs
beyond the newest N, together with group slots that pointed at them. Active
runs are never pruned. Without it every run is kept, and the JSON file (which
is re-read and rewritten on every operation) grows without bound.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .state_machine import Run

logger = logging.getLogger(__name__)


class RunStore(Protocol):
    def get(self, run_id: str) -> Run | None: ...

    def current(self, group_key: str) -> Run | None: ...

    def list(self, group_key: str | None = None) -> list[Run]: ...

    def compare_and_swap(
        self,
        group_key: str,
        *,
        expected: Run | None,
        new: Run,
        superseded: Run | None = None,
    ) -> bool:
        """Install `new` as the group's current run if the slot still holds `expected`.

        `superseded` (the cancelled form of `expected`) is written in the same step.
        Returns False, writing nothing, when the slot changed in the meantime.
        """
        ...

    def replace(self, run: Run, *, expected: Run) -> bool:
        """Overwrite a run if its stored status still matches `expected`."""
        ...


def _check_retention(retain_terminal: int | None) -> None:
    # The run cancelled by a swap must survive the prune that follows it.
    if retain_terminal is not None and retain_terminal < 1:
        raise ValueError("retain_terminal must be at least 1")


def _same_state(a: Run | None, b: Run | None) -> bool:
    if a is None or b is None:
        return a is b
    return a.run_id == b.run_id and a.status == b.status


@dataclass
class _RunTable:
    runs: dict[str, Run] = field(default_factory=dict)
    slots: dict[str, str] = field(default_factory=dict)

    def current(self, group_key: str) -> Run | None:
        run_id = self.slots.get(group_key)
        return self.runs.get(run_id) if run_id is not None else None

    def list(self, group_key: str | None) -> list[Run]:
        runs = [r for r in self.runs.values() if group_key is None or r.group_key == group_key]
        return sorted(runs, key=lambda r: r.created_at)

    def compare_and_swap(
        self, group_key: str, *, expected: Run | None, new: Run, superseded: Run | None
    ) -> bool:
        if not _same_state(self.current(group_key), expected):
            return False
        if new.run_id in self.runs:
            raise ValueError(f"Run id already exists: {new.run_id}")
        if superseded is not None:
            self.runs[superseded.run_id] = superseded
        self.runs[new.run_id] = new
        self.slots[group_key] = new.run_id
        return True

    def replace(self, run: Run, *, expected: Run) -> bool:
        if not _same_state(self.runs.get(run.run_id), expected):
            return False
        self.runs[run.run_id] = run
        return True

    def prune_terminal(self, keep: int) -> list[str]:
        terminal = sorted(
            (r for r in self.runs.values() if r.status.is_terminal),
            key=lambda r: (r.updated_at, r.created_at),
        )
        dropped = [r.run_id for r in terminal[: max(len(terminal) - keep, 0)]]
        for run_id in dropped:
            del self.runs[run_id]
        if dropped:
            self.slots = {k: v for k, v in self.slots.items() if v in self.runs}
        return dropped

    def to_json(self) -> dict[str, object]:
        return {
            "groups": dict(self.slots),
            "runs": [r.to_json() for r in self.list(None)],
        }

    @staticmethod
    def from_json(raw: object) -> _RunTable:
        table = _RunTable()
        if not isinstance(raw, dict):
            return table
        runs_raw = raw.get("runs")
        groups_raw = raw.get("groups")
        if isinstance(runs_raw, list):
            for item in runs_raw:
                if not isinstance(item, dict):
                    continue
                try:
                    run = Run.from_json(item)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(
                        "Skipping unreadable run entry",
                        extra={"run_id": item.get("run_id"), "error": str(e)},
                    )
                    continue
                table.runs[run.run_id] = run
        if isinstance(groups_raw, dict):
            table.slots = {
                str(k): v for k, v in groups_raw.items() if isinstance(v, str) and v in table.runs
            }
        return table


class InMemoryRunStore:
    """Process-local store. Each instance is an isolated registry."""

    def __init__(self, *, retain_terminal: int | None = None) -> None:
        _check_retention(retain_terminal)
        self._lock = threading.Lock()
        self._table = _RunTable()
        self._retain_terminal = retain_terminal

    def get(self, run_id: str) -> Run | None:
        with self._lock:
            return self._table.runs.get(run_id)

    def current(self, group_key: str) -> Run | None:
        with self._lock:
            return self._table.current(group_key)

    def list(self, group_key: str | None = None) -> list[Run]:
        with self._lock:
            return self._table.list(group_key)

    def compare_and_swap(
        self,
        group_key: str,
        *,
        expected: Run | None,
        new: Run,
        superseded: Run | None = None,
    ) -> bool:
        with self._lock:
            if not self._table.compare_and_swap(
                group_key, expected=expected, new=new, superseded=superseded
            ):
                return False
            if self._retain_terminal is not None:
                self._table.prune_terminal(self._retain_terminal)
            return True

    def replace(self, run: Run, *, expected: Run) -> bool:
        with self._lock:
            return self._table.replace(run, expected=expected)


@dataclass
class JsonRunStore:
    """Store persisted to a single JSON file.

    The lock only serialises writers within one process. A missing or corrupt
    file reads as an empty store; unreadable run entries are skipped.
    """

    path: Path
    retain_terminal: int | None = None

    def __post_init__(self) -> None:
        _check_retention(self.retain_terminal)
        self._lock = threading.Lock()

    def _load_unlocked(self) -> _RunTable:
        if not self.path.exists():
            return _RunTable()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(
                "Run state file is not valid JSON; ignoring", extra={"path": str(self.path)}
            )
            return _RunTable()
        return _RunTable.from_json(raw)

    def _save_unlocked(self, table: _RunTable) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(table.to_json(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def get(self, run_id: str) -> Run | None:
        with self._lock:
            return self._load_unlocked().runs.get(run_id)

    def current(self, group_key: str) -> Run | None:
        with self._lock:
            return self._load_unlocked().current(group_key)

    def list(self, group_key: str | None = None) -> list[Run]:
        with self._lock:
            return self._load_unlocked().list(group_key)

    def compare_and_swap(
        self,
        group_key: str,
        *,
        expected: Run | None,
        new: Run,
        superseded: Run | None = None,
    ) -> bool:
        with self._lock:
            table = self._load_unlocked()
            if not table.compare_and_swap(
                group_key, expected=expected, new=new, superseded=superseded
            ):
                return False
            if self.retain_terminal is not None:
                table.prune_terminal(self.retain_terminal)
            self._save_unlocked(table)
            return True

    def replace(self, run: Run, *, expected: Run) -> bool:
        with self._lock:
            table = self._load_unlocked()
            if not table.replace(run, expected=expected):
                return False
            self._save_unlocked(table)
            return True
