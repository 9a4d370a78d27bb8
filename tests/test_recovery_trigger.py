import pytest

from clusterdb.db.db_config import PRIMARY, REPLICA_EVEN, REPLICA_ODD
from clusterdb.replication.recovery import RecoveryTrigger
from clusterdb.services.user_service import UserService
from clusterdb.utils.errors import InvalidTargetError


async def test_unknown_node_is_rejected_without_touching_the_log(cluster, recovery_log):
    with pytest.raises(InvalidTargetError):
        await RecoveryTrigger(cluster).recover('node9')
    assert not recovery_log.path.exists()


async def test_node_still_down_replays_nothing(cluster, servers, recovery_log):
    servers[PRIMARY].down = True
    await UserService(cluster).create_user(11, 'Dee', 'PH')

    report = await RecoveryTrigger(cluster).recover('primary')

    assert not report.healthy
    assert report.replayed == 0
    assert report.remaining == 1
    assert 'still offline' in report.message
    assert len(recovery_log.drain(PRIMARY)) == 1


async def test_outage_then_recovery_brings_primary_up_to_date(cluster, servers, recovery_log):
    service = UserService(cluster)
    servers[PRIMARY].down = True
    await service.create_user(11, 'Dee', 'PH')
    await service.create_user(12, 'Eve', 'SG')
    assert 11 not in servers[PRIMARY].rows

    servers[PRIMARY].down = False
    report = await RecoveryTrigger(cluster).recover('node1')

    assert (report.replayed, report.failed, report.remaining) == (2, 0, 0)
    assert servers[PRIMARY].rows[11]['username'] == 'Dee'
    assert servers[PRIMARY].rows[12]['country'] == 'SG'
    assert recovery_log.entries() == []


async def test_recovering_one_node_leaves_other_entries(cluster, servers, recovery_log):
    service = UserService(cluster)
    servers[REPLICA_ODD].down = True
    servers[REPLICA_EVEN].down = True
    await service.create_user(1, 'Odd', 'PH')
    await service.create_user(2, 'Even', 'PH')

    servers[REPLICA_ODD].down = False
    servers[REPLICA_EVEN].down = False
    await RecoveryTrigger(cluster).recover('replica-odd')

    assert 1 in servers[REPLICA_ODD].rows
    assert 2 not in servers[REPLICA_EVEN].rows
    assert [entry.node for entry in recovery_log.entries()] == [REPLICA_EVEN]


async def test_pending_summary(cluster, servers):
    servers[PRIMARY].down = True
    await UserService(cluster).create_user(3, 'Fay', 'PH')

    summary = RecoveryTrigger(cluster).pending_summary()

    assert summary['total_pending'] == 1
    assert summary['by_node'] == {PRIMARY: 1, REPLICA_ODD: 0, REPLICA_EVEN: 0}


async def test_recover_after_restart_does_not_reuse_dead_connections(cluster, servers, recovery_log):
    assert await cluster.primary.ping()
    recovery_log.append(PRIMARY, "INSERT INTO user_profiles (id, username, country) VALUES (%s, %s, %s)",
                        [21, 'Eve', 'PH'])
    servers[PRIMARY].restart()

    report = await RecoveryTrigger(cluster).recover('primary')

    assert report.healthy
    assert report.replayed == 1
    assert report.remaining == 0
    assert servers[PRIMARY].rows[21]['username'] == 'Eve'
