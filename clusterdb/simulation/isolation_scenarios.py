"""
Isolation Simulation Harness

Each scenario starts two transactional actors at the same time, each on its
own dedicated connection. An actor sets the session isolation level, begins,
reads or writes, sleeps to hold the transaction open, then commits (or rolls
back on error). Every step is logged with a timestamp; the run returns the
steps in the order they happened.

    case1 / read-read    two readers of the same key on two nodes
    case2 / write-read   a writer holds the row lock while a reader reads it
    case3 / write-write  two writers update the same row
"""

import asyncio
import itertools
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from clusterdb.db.cluster import ClusterClient
from clusterdb.db.db_config import PRIMARY, SimulationTimings, get_simulation_timings, normalize_isolation_level
from clusterdb.db.node_pool import NodeConnection
from clusterdb.utils.errors import ClusterError
from clusterdb.utils.router import target_replica

logger = logging.getLogger(__name__)

SCENARIO_ALIASES = {
    'case1': 'case1',
    'read-read': 'case1',
    'case2': 'case2',
    'write-read': 'case2',
    'case3': 'case3',
    'write-write': 'case3',
}

SELECT_ROW = "SELECT * FROM user_profiles WHERE id = %s"


@dataclass
class SimulationEvent:
    timestamp: datetime
    seq: int
    actor: str
    node: str
    kind: str
    message: str
    data: Any = None

    def line(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S.%f')[:-3]}] {self.message}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'actor': self.actor,
            'node': self.node,
            'kind': self.kind,
            'message': self.message,
            'data': self.data,
        }


@dataclass
class SimulationRun:
    scenario: str
    isolation_level: str
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    duration: float = 0.0
    events: List[SimulationEvent] = field(default_factory=list)

    def __post_init__(self):
        self._seq = itertools.count()

    def log(self, actor: str, node: str, kind: str, message: str, data: Any = None) -> SimulationEvent:
        event = SimulationEvent(datetime.now(), next(self._seq), actor, node, kind, message, data)
        self.events.append(event)
        logger.debug(event.line())
        return event

    def ordered(self) -> List[SimulationEvent]:
        return sorted(self.events, key=lambda event: (event.timestamp, event.seq))

    def lines(self) -> List[str]:
        return [event.line() for event in self.ordered()]

    def events_for(self, actor: str, kind: Optional[str] = None) -> List[SimulationEvent]:
        return [event for event in self.ordered()
                if event.actor == actor and (kind is None or event.kind == kind)]

    def first(self, actor: str, kind: str) -> Optional[SimulationEvent]:
        matches = self.events_for(actor, kind)
        return matches[0] if matches else None


def _describe(row) -> str:
    return json.dumps(row, default=str) if row else 'Not Found'


class IsolationSimulation:
    def __init__(self, cluster: ClusterClient, timings: Optional[SimulationTimings] = None):
        self.cluster = cluster
        self.timings = timings or get_simulation_timings()

    async def run_scenario(self, scenario_id: str, isolation_level: Optional[str] = None) -> SimulationRun:
        """Run one scenario and return its ordered, timestamped narrative"""
        key = str(scenario_id).strip().lower()
        if key not in SCENARIO_ALIASES:
            raise ValueError(f"Unknown scenario: {scenario_id}. Choose one of {sorted(SCENARIO_ALIASES)}")
        scenario = SCENARIO_ALIASES[key]
        level = normalize_isolation_level(isolation_level)

        run = SimulationRun(scenario, level)
        run.log('SYSTEM', '-', 'info', f"--- START {scenario.upper()} (Isolation: {level}) ---")
        start = time.perf_counter()
        await getattr(self, f"_{scenario}")(run, level)
        run.duration = round(time.perf_counter() - start, 4)
        run.finished_at = datetime.now()
        run.log('SYSTEM', '-', 'info', f"--- END {scenario.upper()} ({run.duration}s) ---")
        return run

    async def _actor(self, run: SimulationRun, actor: str, node: str, level: str,
                     work: Callable[[NodeConnection], Awaitable[None]], delay: float = 0.0,
                     error_label: str = 'ERROR'):
        if delay:
            await asyncio.sleep(delay)
        try:
            async with self.cluster.pools[node].dedicated() as conn:
                run.log(actor, node, 'connect', f"{actor}: Connected to {node}")
                try:
                    await conn.set_isolation_level(level)
                    await conn.begin()
                    run.log(actor, node, 'begin', f"{actor}: Transaction started")
                    await work(conn)
                    await conn.commit()
                    run.log(actor, node, 'commit', f"{actor}: Committed.")
                except ClusterError as e:
                    run.log(actor, node, 'error', f"{actor}: {error_label} - {e}")
                    await conn.rollback()
                    run.log(actor, node, 'rollback', f"{actor}: Rolled back.")
        except ClusterError as e:
            run.log(actor, node, 'error', f"{actor}: {error_label} - {e}")

    async def _case1(self, run: SimulationRun, level: str):
        """Two readers of the same key, one on the primary and one on its replica"""
        key = self.timings.target_id

        def reader(actor, node):
            async def work(conn):
                run.log(actor, node, 'info', f"{actor}: Reading ID {key}...")
                row = await conn.query_one(SELECT_ROW, (key,))
                run.log(actor, node, 'read', f"{actor}: Read Data -> {_describe(row)}", row)
                run.log(actor, node, 'sleep', f"{actor}: Holding transaction for {self.timings.read_hold}s")
                await asyncio.sleep(self.timings.read_hold)
            return self._actor(run, actor, node, level, work)

        await asyncio.gather(
            reader('User A', PRIMARY),
            reader('User B', target_replica(key)),
        )

    async def _case2(self, run: SimulationRun, level: str):
        """Writer updates a row and holds it; reader reads the same row meanwhile"""
        key = self.timings.target_id
        marker = f"LOCKED@{run.started_at.strftime('%H%M%S')}"

        async def write(conn):
            run.log('WRITER', PRIMARY, 'info', f"WRITER: Updating ID {key} (setting country = '{marker}')...")
            await conn.execute("UPDATE user_profiles SET country = %s WHERE id = %s", (marker, key))
            run.log('WRITER', PRIMARY, 'write',
                    f"WRITER: Update sent. Sleeping {self.timings.writer_hold}s to hold lock...", marker)
            await asyncio.sleep(self.timings.writer_hold)

        async def read(conn):
            run.log('READER', PRIMARY, 'info', f"READER: Trying to read ID {key}...")
            row = await conn.query_one(SELECT_ROW, (key,))
            seen = row.get('country') if row else None
            run.log('READER', PRIMARY, 'read', f"READER: Success! Saw Data: {seen}", seen)

        await asyncio.gather(
            self._actor(run, 'WRITER', PRIMARY, level, write),
            self._actor(run, 'READER', PRIMARY, level, read, delay=self.timings.reader_delay),
        )

    async def _case3(self, run: SimulationRun, level: str):
        """Two writers update the same row, the second slightly later"""
        key = self.timings.target_id

        def writer(actor, delay):
            async def work(conn):
                run.log(actor, PRIMARY, 'info', f"{actor}: Attempting Update on ID {key}...")
                username = f"User_{actor.replace(' ', '_')}"
                await conn.execute("UPDATE user_profiles SET username = %s WHERE id = %s", (username, key))
                run.log(actor, PRIMARY, 'write',
                        f"{actor}: Update success! Holding lock for {self.timings.write_hold}s...", username)
                await asyncio.sleep(self.timings.write_hold)
            return self._actor(run, actor, PRIMARY, level, work, delay=delay, error_label='ERROR/BLOCKED')

        await asyncio.gather(
            writer('User A', 0),
            writer('User B', self.timings.second_writer_delay),
        )
