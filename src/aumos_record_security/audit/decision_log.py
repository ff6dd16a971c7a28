"""Bounded in-memory log of permission decisions.

Each plugin instance owns one :class:`DecisionLog`.  Entries live in a
``collections.deque`` with a fixed capacity, so the oldest decision is
dropped once the log is full.  When a ``mirror_path`` is given every
entry is also appended to a JSONL file; mirror failures are logged and
never affect the decision being recorded.

Example
-------
>>> log = DecisionLog(capacity=2)
>>> for op in ("create", "update", "delete"):
...     _ = log.record(user_id="u1", object_name="accounts", operation=op, granted=True)
>>> [entry.operation for entry in log.get()]
['update', 'delete']
"""
from __future__ import annotations

import dataclasses
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY: int = 1000


@dataclass(frozen=True)
class AuditEntry:
    """One recorded permission decision."""

    timestamp: str
    user_id: str
    object_name: str
    operation: str
    granted: bool
    reason: str | None = None
    rule: str | None = None
    record_id: str | None = None
    field: str | None = None

    def to_dict(self) -> dict[str, object]:
        return dataclasses.asdict(self)


class DecisionLog:
    """Ring buffer of :class:`AuditEntry` with an optional JSONL mirror.

    Parameters
    ----------
    capacity:
        Maximum number of entries kept in memory.  Default 1000.
    mirror_path:
        Optional ``.jsonl`` file every entry is appended to.  Parent
        directories are created on first write.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, mirror_path: Path | None = None) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._entries: deque[AuditEntry] = deque(maxlen=capacity)
        self._mirror_path = mirror_path
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def record(
        self,
        *,
        user_id: str | None,
        object_name: str,
        operation: str,
        granted: bool,
        reason: str | None = None,
        rule: str | None = None,
        record_id: str | None = None,
        field: str | None = None,
    ) -> AuditEntry:
        """Append a decision and return the stored entry."""
        entry = AuditEntry(
            timestamp=datetime.now(tz=timezone.utc).isoformat(),
            user_id=user_id or "anonymous",
            object_name=object_name,
            operation=operation,
            granted=granted,
            reason=reason,
            rule=rule,
            record_id=record_id,
            field=field,
        )
        self._entries.append(entry)
        if self._mirror_path is not None:
            self._write_mirror(self._mirror_path, entry)
        return entry

    def clear(self) -> None:
        """Drop every in-memory entry.  The JSONL mirror is left untouched."""
        self._entries.clear()

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get(self, limit: int = 100) -> list[AuditEntry]:
        """Return up to ``limit`` most recent entries, oldest first."""
        if limit <= 0:
            return []
        entries = list(self._entries)
        return entries[-limit:]

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or DEFAULT_CAPACITY

    @property
    def mirror_path(self) -> Path | None:
        return self._mirror_path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _write_mirror(self, path: Path, entry: AuditEntry) -> None:
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as fh:
                    fh.write(json.dumps(entry.to_dict(), default=str) + "\n")
        except OSError:
            logger.warning("Could not append audit entry to %s", path, exc_info=True)
