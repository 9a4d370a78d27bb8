"""
User Service - CRUD over user_profiles

Create, update and delete are replicated writes; get goes through the read
path. Partition routing is by user id parity.
"""

import logging
from datetime import datetime
from typing import Optional

from clusterdb.db.cluster import ClusterClient
from clusterdb.replication.coordinator import ReplicationCoordinator, WriteOutcome
from clusterdb.replication.read_path import SELECT_USER, ReadPath, ReadResult

logger = logging.getLogger(__name__)

INSERT_USER = """
    INSERT INTO user_profiles (id, username, country, created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s)
"""
DELETE_USER = "DELETE FROM user_profiles WHERE id = %s"

UPDATABLE_FIELDS = ('username', 'country')


def _now():
    return datetime.now().replace(microsecond=0)


class UserService:
    def __init__(self, cluster: ClusterClient):
        self.cluster = cluster
        self.coordinator = ReplicationCoordinator(cluster)
        self.read_path = ReadPath(cluster, SELECT_USER)

    async def create_user(self, user_id: int, username: str, country: str,
                          isolation_level: Optional[str] = None) -> WriteOutcome:
        now = _now()
        params = [user_id, username, country, now, now]
        return await self.coordinator.write(user_id, INSERT_USER, params, isolation_level)

    async def update_user(self, user_id: int, username: Optional[str] = None, country: Optional[str] = None,
                          isolation_level: Optional[str] = None) -> WriteOutcome:
        """Update only the fields that were given; updated_at is always bumped"""
        values = {'username': username, 'country': country}
        set_clauses = []
        params = []
        for column in UPDATABLE_FIELDS:
            if values[column] is not None:
                set_clauses.append(f"{column} = %s")
                params.append(values[column])
        if not set_clauses:
            raise ValueError("Nothing to update: give a username and/or a country")

        set_clauses.append("updated_at = %s")
        params.append(_now())
        params.append(user_id)
        query = f"UPDATE user_profiles SET {', '.join(set_clauses)} WHERE id = %s"
        return await self.coordinator.write(user_id, query, params, isolation_level)

    async def delete_user(self, user_id: int, isolation_level: Optional[str] = None) -> WriteOutcome:
        return await self.coordinator.write(user_id, DELETE_USER, [user_id], isolation_level)

    async def get_user(self, user_id: int, isolation_level: Optional[str] = None) -> ReadResult:
        return await self.read_path.read(user_id, isolation_level)
