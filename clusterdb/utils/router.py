"""Partition routing: odd ids live on replica-odd, even ids (and zero) on replica-even."""

from clusterdb.db.db_config import REPLICA_EVEN, REPLICA_ODD


def target_replica(key: int) -> str:
    """Return the replica node that owns the record with this key."""
    if int(key) % 2 == 1:
        return REPLICA_ODD
    return REPLICA_EVEN
