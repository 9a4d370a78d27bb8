"""Read Path: read from the replica that owns the key, fail over to the primary."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from clusterdb.db.cluster import ClusterClient
from clusterdb.db.db_config import PRIMARY, normalize_isolation_level
from clusterdb.utils.errors import ClusterUnavailableError, NodeConnectionError, QueryError
from clusterdb.utils.logger import log_event
from clusterdb.utils.router import target_replica

logger = logging.getLogger(__name__)

SELECT_USER = "SELECT * FROM user_profiles WHERE id = %s"


@dataclass
class ReadResult:
    key: int
    record: Optional[Dict[str, Any]]
    node: str
    fell_back: bool = False
    replica_error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.record is not None


class ReadPath:
    def __init__(self, cluster: ClusterClient, query: str = SELECT_USER):
        self.cluster = cluster
        self.query = query

    async def _select(self, node: str, key: int, level: str) -> Optional[Dict[str, Any]]:
        async with self.cluster.pools[node].transaction(level) as conn:
            return await conn.query_one(self.query, (key,))

    async def read(self, key: int, isolation_level: Optional[str] = None) -> ReadResult:
        """
        Select the record from its replica. If the replica has no row or
        errors, retry once on the primary and return whatever it reports.
        """
        level = normalize_isolation_level(isolation_level)
        replica = target_replica(key)
        start = time.perf_counter()
        replica_error = None

        try:
            record = await self._select(replica, key, level)
        except (NodeConnectionError, QueryError) as e:
            record = None
            replica_error = str(e)

        if record is not None:
            log_event(logger, 'read.served', key=key, node=replica,
                      latency_ms=round((time.perf_counter() - start) * 1000, 2))
            return ReadResult(key, record, replica)

        log_event(logger, 'read.failover', logging.WARNING, key=key, node=replica,
                  reason=replica_error or 'not found')
        try:
            record = await self._select(PRIMARY, key, level)
        except (NodeConnectionError, QueryError) as e:
            log_event(logger, 'read.unavailable', logging.ERROR, key=key, error=e)
            raise ClusterUnavailableError(
                f"Read for key {key} failed on {replica} and {PRIMARY}: {e}") from e

        log_event(logger, 'read.served', key=key, node=PRIMARY, found=record is not None,
                  latency_ms=round((time.perf_counter() - start) * 1000, 2))
        return ReadResult(key, record, PRIMARY, fell_back=True, replica_error=replica_error)
