"""
ClusterClient - the explicitly constructed handle to every node

Holds one NodePool per node plus the shared RecoveryLog. Components receive
the client instead of reaching for module-level pools, so tests can build a
client around fake connections.
"""

import asyncio
import logging
from typing import Dict, Optional

from clusterdb.db import db_config
from clusterdb.db.db_config import PRIMARY, resolve_node_name
from clusterdb.db.node_pool import NodePool
from clusterdb.utils.errors import InvalidTargetError
from clusterdb.utils.recovery_log import RecoveryLog
from clusterdb.utils.router import target_replica

logger = logging.getLogger(__name__)


class ClusterClient:
    def __init__(self, pools: Dict[str, NodePool], recovery_log: RecoveryLog):
        self.pools = pools
        self.recovery_log = recovery_log

    @classmethod
    def from_config(cls, connect=None, recovery_log_path: Optional[str] = None) -> 'ClusterClient':
        """Build pools for all three nodes from db_config"""
        pools = {
            name: NodePool(
                name,
                db_config.NODE_ROLES[name],
                db_config.get_node_config(name),
                size=db_config.POOL_SIZE,
                acquire_timeout=db_config.POOL_ACQUIRE_TIMEOUT,
                connect=connect,
            )
            for name in db_config.NODE_CONFIGS
        }
        return cls(pools, RecoveryLog(recovery_log_path or db_config.RECOVERY_LOG_PATH))

    def resolve(self, name: str) -> str:
        node = resolve_node_name(name)
        if node not in self.pools:
            raise InvalidTargetError(name)
        return node

    def pool(self, name: str) -> NodePool:
        return self.pools[self.resolve(name)]

    @property
    def primary(self) -> NodePool:
        return self.pools[PRIMARY]

    def replica_for(self, key: int) -> NodePool:
        return self.pools[target_replica(key)]

    async def health(self) -> Dict[str, bool]:
        """Ping every node concurrently"""
        names = list(self.pools)
        results = await asyncio.gather(*(self.pools[name].ping() for name in names))
        return dict(zip(names, results))

    async def close(self):
        for pool in self.pools.values():
            await pool.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
