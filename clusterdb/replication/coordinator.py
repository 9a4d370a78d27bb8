"""
Replication Coordinator

A logical write goes to the primary and to the replica that owns the key.
The two attempts run as independent tasks: each has its own error handling,
neither aborts the other, and a failed side is recorded in the recovery log
for later replay. The write succeeds when at least one side committed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from clusterdb.db.cluster import ClusterClient
from clusterdb.db.db_config import PRIMARY, normalize_isolation_level
from clusterdb.utils.errors import ClusterUnavailableError, NodeConnectionError, QueryError
from clusterdb.utils.logger import log_event
from clusterdb.utils.router import target_replica

logger = logging.getLogger(__name__)


@dataclass
class NodeAttempt:
    node: str
    committed: bool
    rows_affected: int = 0
    error: Optional[str] = None
    latency_ms: float = 0.0
    recovery_entry: Optional[str] = None


@dataclass
class WriteOutcome:
    key: int
    replica: str
    isolation_level: str
    attempts: Dict[str, NodeAttempt] = field(default_factory=dict)

    @property
    def committed_nodes(self) -> List[str]:
        return [name for name, attempt in self.attempts.items() if attempt.committed]

    @property
    def failed_nodes(self) -> List[str]:
        return [name for name, attempt in self.attempts.items() if not attempt.committed]

    @property
    def success(self) -> bool:
        return bool(self.committed_nodes)

    @property
    def partial(self) -> bool:
        return self.success and bool(self.failed_nodes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'success': self.success,
            'partial': self.partial,
            'primary': self.attempts[PRIMARY].committed if PRIMARY in self.attempts else None,
            'replica': self.replica,
            'replica_committed': self.attempts[self.replica].committed if self.replica in self.attempts else None,
            'pending_recovery': self.failed_nodes,
        }


class ReplicationCoordinator:
    def __init__(self, cluster: ClusterClient):
        self.cluster = cluster

    async def _attempt(self, node: str, query: str, params: Sequence[Any], isolation_level: str) -> NodeAttempt:
        start = time.perf_counter()
        try:
            async with self.cluster.pools[node].transaction(isolation_level) as conn:
                rows = await conn.execute(query, params)
        except (NodeConnectionError, QueryError) as e:
            latency = round((time.perf_counter() - start) * 1000, 2)
            log_event(logger, 'write.node_failed', logging.WARNING,
                      node=node, latency_ms=latency, error=e)
            # file I/O runs off the loop; raises RecoveryLogError if the miss cannot be recorded
            entry = await asyncio.to_thread(self.cluster.recovery_log.append, node, query, params)
            return NodeAttempt(node, False, error=str(e), latency_ms=latency, recovery_entry=entry.id)

        latency = round((time.perf_counter() - start) * 1000, 2)
        log_event(logger, 'write.node_committed', node=node, rows=rows, latency_ms=latency)
        return NodeAttempt(node, True, rows_affected=rows, latency_ms=latency)

    async def write(self, key: int, query: str, params: Sequence[Any],
                    isolation_level: Optional[str] = None) -> WriteOutcome:
        """
        Apply one write to the primary and the owning replica concurrently.

        Returns the outcome when at least one node committed (outcome.partial
        tells whether a node still needs replay). Raises ClusterUnavailableError
        when both failed; both misses are in the recovery log by then.
        """
        level = normalize_isolation_level(isolation_level)
        replica = target_replica(key)
        outcome = WriteOutcome(key=key, replica=replica, isolation_level=level)
        params = list(params)

        nodes = [PRIMARY, replica]
        tasks = [asyncio.create_task(self._attempt(node, query, params, level)) for node in nodes]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for node, result in zip(nodes, results):
            if isinstance(result, BaseException):
                raise result
            outcome.attempts[node] = result

        if not outcome.success:
            log_event(logger, 'write.unavailable', logging.ERROR, key=key,
                      nodes=','.join(nodes), delta=len(nodes))
            raise ClusterUnavailableError(
                f"Write for key {key} failed on both {PRIMARY} and {replica}", outcome=outcome)

        if outcome.partial:
            log_event(logger, 'write.partial', logging.WARNING, key=key,
                      committed=','.join(outcome.committed_nodes),
                      pending=','.join(outcome.failed_nodes), delta=len(outcome.failed_nodes))
        return outcome
