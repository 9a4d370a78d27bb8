import pytest

from clusterdb.db.cluster import ClusterClient
from clusterdb.db.db_config import NODE_ROLES, PRIMARY, REPLICA_EVEN, REPLICA_ODD
from clusterdb.db.node_pool import NodePool
from clusterdb.utils.recovery_log import RecoveryLog
from tests.fakes import FakeServer


@pytest.fixture
def servers():
    return {
        PRIMARY: FakeServer(PRIMARY),
        REPLICA_ODD: FakeServer(REPLICA_ODD),
        REPLICA_EVEN: FakeServer(REPLICA_EVEN),
    }


@pytest.fixture
def recovery_log(tmp_path):
    return RecoveryLog(str(tmp_path / 'failed_transactions.json'))


@pytest.fixture
def cluster(servers, recovery_log):
    pools = {
        name: NodePool(name, NODE_ROLES[name], {'host': name}, size=4,
                       acquire_timeout=1.0, connect=server.connect)
        for name, server in servers.items()
    }
    return ClusterClient(pools, recovery_log)

