import asyncio
import json
import time
from datetime import datetime

import pytest

from clusterdb.db.db_config import PRIMARY, REPLICA_EVEN, REPLICA_ODD
from clusterdb.replication.coordinator import ReplicationCoordinator
from clusterdb.utils.errors import ClusterUnavailableError, RecoveryLogError

UPDATE_COUNTRY = "UPDATE user_profiles SET country = %s WHERE id = %s"
INSERT = "INSERT INTO user_profiles (id, username, country) VALUES (%s, %s, %s)"


async def test_write_commits_on_primary_and_owning_replica(cluster, servers, recovery_log):
    outcome = await ReplicationCoordinator(cluster).write(101, INSERT, [101, 'Ana', 'PH'])

    assert outcome.success and not outcome.partial
    assert outcome.replica == REPLICA_ODD
    assert sorted(outcome.committed_nodes) == sorted([PRIMARY, REPLICA_ODD])
    assert servers[PRIMARY].rows[101]['username'] == 'Ana'
    assert servers[REPLICA_ODD].rows[101]['country'] == 'PH'
    assert 101 not in servers[REPLICA_EVEN].rows
    assert recovery_log.entries() == []


async def test_primary_down_is_a_partial_success_with_one_entry(cluster, servers, recovery_log):
    servers[PRIMARY].down = True

    outcome = await ReplicationCoordinator(cluster).write(3, UPDATE_COUNTRY, ['JP', 3])

    assert outcome.success
    assert outcome.partial
    assert outcome.committed_nodes == [REPLICA_ODD]
    assert outcome.failed_nodes == [PRIMARY]
    entries = recovery_log.entries()
    assert len(entries) == 1
    assert entries[0].node == PRIMARY
    assert entries[0].query == UPDATE_COUNTRY
    assert entries[0].params == ['JP', 3]
    assert outcome.attempts[PRIMARY].recovery_entry == entries[0].id


async def test_both_nodes_down_raises_and_logs_each_node(cluster, servers, recovery_log):
    servers[PRIMARY].down = True
    servers[REPLICA_EVEN].down = True

    with pytest.raises(ClusterUnavailableError) as excinfo:
        await ReplicationCoordinator(cluster).write(4, UPDATE_COUNTRY, ['JP', 4])

    assert excinfo.value.outcome is not None
    assert not excinfo.value.outcome.success
    assert sorted(entry.node for entry in recovery_log.entries()) == sorted([PRIMARY, REPLICA_EVEN])


async def test_rejected_statement_rolls_back_and_is_logged(cluster, servers, recovery_log):
    servers[REPLICA_EVEN].seed(8, country='PH')
    servers[PRIMARY].fail_when = lambda sql, params: sql.startswith('UPDATE')

    outcome = await ReplicationCoordinator(cluster).write(8, UPDATE_COUNTRY, ['US', 8])

    assert outcome.partial
    assert 'Statement rejected' in outcome.attempts[PRIMARY].error
    assert servers[PRIMARY].lock_owner == {}
    assert servers[REPLICA_EVEN].rows[8]['country'] == 'US'
    assert [entry.node for entry in recovery_log.entries()] == [PRIMARY]


async def test_slow_primary_does_not_hold_back_the_replica(cluster, servers):
    servers[PRIMARY].delay = 0.2
    write = asyncio.create_task(ReplicationCoordinator(cluster).write(5, INSERT, [5, 'Bo', 'PH']))

    await asyncio.sleep(0.1)
    assert 5 in servers[REPLICA_ODD].rows
    assert 5 not in servers[PRIMARY].rows

    outcome = await write
    assert not outcome.partial
    assert servers[REPLICA_ODD].commits[0] < servers[PRIMARY].commits[0]


async def test_unwritable_recovery_log_is_escalated(cluster, servers, recovery_log):
    recovery_log.path.write_text('{not json')
    servers[PRIMARY].down = True

    with pytest.raises(RecoveryLogError):
        await ReplicationCoordinator(cluster).write(7, UPDATE_COUNTRY, ['JP', 7])


async def test_connections_are_returned_after_failures(cluster, servers):
    servers[REPLICA_ODD].fail_when = lambda sql, params: sql.startswith('INSERT')
    coordinator = ReplicationCoordinator(cluster)

    for key in (1, 3, 5, 7, 9, 11):
        await coordinator.write(key, INSERT, [key, 'x', 'PH'])

    assert cluster.pools[REPLICA_ODD]._slots._value == cluster.pools[REPLICA_ODD].size
    assert cluster.pools[PRIMARY]._slots._value == cluster.pools[PRIMARY].size


async def test_outcome_as_dict_reports_pending_nodes(cluster, servers, recovery_log):
    servers[REPLICA_ODD].down = True
    outcome = await ReplicationCoordinator(cluster).write(9, INSERT, [9, 'Cy', 'PH'])

    summary = outcome.as_dict()
    assert summary['success'] and summary['partial']
    assert summary['primary'] is True
    assert summary['replica_committed'] is False
    assert summary['pending_recovery'] == [REPLICA_ODD]
    json.dumps(summary)


async def test_write_after_node_restart_commits_everywhere(cluster, servers, recovery_log):
    coordinator = ReplicationCoordinator(cluster)
    await coordinator.write(1, INSERT, [1, 'Ana', 'PH'])
    servers[PRIMARY].restart()
    servers[REPLICA_ODD].restart()

    outcome = await coordinator.write(3, INSERT, [3, 'Ben', 'JP'])

    assert not outcome.partial
    assert servers[PRIMARY].rows[3]['username'] == 'Ben'
    assert recovery_log.entries() == []


async def test_slow_recovery_log_does_not_hold_back_the_replica(cluster, servers, recovery_log, monkeypatch):
    write_log = recovery_log._write

    def slow_write(entries):
        time.sleep(0.3)
        write_log(entries)

    monkeypatch.setattr(recovery_log, '_write', slow_write)
    servers[PRIMARY].down = True
    servers[REPLICA_ODD].delay = 0.02
    started = datetime.now()

    outcome = await ReplicationCoordinator(cluster).write(5, INSERT, [5, 'Bo', 'PH'])

    assert outcome.partial
    assert (servers[REPLICA_ODD].commits[0] - started).total_seconds() < 0.2
    assert [entry.node for entry in recovery_log.entries()] == [PRIMARY]
