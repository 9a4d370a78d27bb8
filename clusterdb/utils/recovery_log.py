"""
Recovery Log - durable list of writes that failed to reach a node

The log is one JSON document rewritten whole on every change. Each rewrite
goes to a temp file that replaces the log atomically, and all
read-modify-write cycles run under one lock so concurrent appends never
interleave. Entries are replayed per node in append order.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from clusterdb.utils.errors import ClusterError, RecoveryLogError
from clusterdb.utils.logger import log_event

logger = logging.getLogger(__name__)


def _json_param(value):
    """Scalars that JSON cannot hold natively are stored as strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


@dataclass
class RecoveryEntry:
    node: str
    query: str
    params: List[Any]
    timestamp: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecoveryEntry':
        return cls(
            node=data['node'],
            query=data['query'],
            params=list(data.get('params') or []),
            timestamp=data['timestamp'],
            id=data.get('id') or uuid.uuid4().hex,
        )

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReplayReport:
    node: str
    healthy: bool = True
    replayed: int = 0
    failed: int = 0
    remaining: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.healthy:
            return f"{self.node} is still offline. Cannot recover."
        return (f"Recovery complete for {self.node}: {self.replayed} replayed, "
                f"{self.failed} failed, {self.remaining} still pending")


class RecoveryLog:
    def __init__(self, path: str = 'failed_transactions.json'):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> List[RecoveryEntry]:
        if not self.path.exists():
            return []
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RecoveryLogError(f"Cannot read recovery log {self.path}: {e}") from e
        if not isinstance(data, list):
            raise RecoveryLogError(f"Recovery log {self.path} is not a list")
        return [RecoveryEntry.from_dict(item) for item in data]

    def _write(self, entries: List[RecoveryEntry]):
        directory = self.path.parent if str(self.path.parent) else Path('.')
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
            with os.fdopen(fd, 'w') as f:
                json.dump([entry.as_dict() for entry in entries], f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise RecoveryLogError(f"Cannot write recovery log {self.path}: {e}") from e

    def append(self, node: str, query: str, params: Optional[Sequence[Any]] = None) -> RecoveryEntry:
        """Durably record a write that `node` missed. Raises RecoveryLogError if it cannot be saved."""
        entry = RecoveryEntry(
            node=node,
            query=query,
            params=[_json_param(value) for value in (params or [])],
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            entries = self._read()
            entries.append(entry)
            self._write(entries)
        log_event(logger, 'recovery.logged', node=node, entry=entry.id, delta=1)
        return entry

    def drain(self, node: str) -> List[RecoveryEntry]:
        """Pending entries for `node` in append order. Does not modify the log."""
        with self._lock:
            return [entry for entry in self._read() if entry.node == node]

    def entries(self) -> List[RecoveryEntry]:
        with self._lock:
            return self._read()

    def remove(self, entry_id: str) -> bool:
        """Delete exactly one entry. Returns False if it was already gone."""
        with self._lock:
            entries = self._read()
            remaining = [entry for entry in entries if entry.id != entry_id]
            if len(remaining) == len(entries):
                return False
            self._write(remaining)
            return True

    def pending_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for entry in self.entries():
            counts[entry.node] = counts.get(entry.node, 0) + 1
        return counts

    async def replay(self, node: str, pool) -> ReplayReport:
        """
        Execute every pending entry for `node` against `pool`, oldest first.

        A replayed entry is removed; an entry that fails again stays in the log
        and replay moves on to the next one. Log file I/O runs in a worker thread
        so other tasks keep running while the log is rewritten.
        """
        report = ReplayReport(node=node)
        pending = await asyncio.to_thread(self.drain, node)
        if not pending:
            logger.info(f"No pending recovery entries for {node}")
            return report

        logger.info(f"Found {len(pending)} missed transactions for {node}. Replaying now...")
        for entry in pending:
            try:
                await pool.execute(entry.query, entry.params)
            except ClusterError as e:
                report.failed += 1
                report.errors.append(str(e))
                log_event(logger, 'recovery.entry_failed', logging.WARNING,
                          node=node, entry=entry.id, error=e)
                continue
            await asyncio.to_thread(self.remove, entry.id)
            report.replayed += 1
            log_event(logger, 'recovery.replayed', node=node, entry=entry.id, delta=-1)

        report.remaining = len(await asyncio.to_thread(self.drain, node))
        log_event(logger, 'recovery.complete', node=node, replayed=report.replayed,
                  failed=report.failed, remaining=report.remaining)
        return report
