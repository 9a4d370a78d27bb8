"""
Recovery Trigger

Operator-invoked: replays the missed writes for one node once it answers
again. Nothing here runs on a schedule.
"""

import asyncio
import logging
from typing import Any, Dict

from clusterdb.db.cluster import ClusterClient
from clusterdb.utils.logger import log_event
from clusterdb.utils.recovery_log import ReplayReport

logger = logging.getLogger(__name__)


class RecoveryTrigger:
    def __init__(self, cluster: ClusterClient):
        self.cluster = cluster

    async def recover(self, name: str) -> ReplayReport:
        """
        Replay every pending entry for the named node.

        Raises InvalidTargetError for an unknown name. If the node still does
        not answer, nothing is replayed and the report says so.
        """
        node = self.cluster.resolve(name)
        logger.info(f"Manual recovery triggered for {node}")
        pool = self.cluster.pools[node]

        if not await pool.ping():
            pending = len(await asyncio.to_thread(self.cluster.recovery_log.drain, node))
            log_event(logger, 'recovery.skipped', logging.WARNING, node=node, pending=pending)
            return ReplayReport(node=node, healthy=False, remaining=pending)

        return await self.cluster.recovery_log.replay(node, pool)

    def pending_summary(self) -> Dict[str, Any]:
        """Pending entry counts per node"""
        counts = self.cluster.recovery_log.pending_counts()
        by_node = {name: counts.get(name, 0) for name in self.cluster.pools}
        return {
            'total_pending': sum(counts.values()),
            'by_node': by_node,
        }
