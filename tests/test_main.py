import json

from clusterdb.db.db_config import PRIMARY
from clusterdb.main import build_parser, run_command


async def test_create_get_and_pending(cluster, servers, capsys):
    parser = build_parser()
    servers[PRIMARY].down = True

    assert await run_command(parser.parse_args(['create', '5', 'Jo', 'PH']), cluster) == 0
    created = json.loads(capsys.readouterr().out)
    assert created['partial'] and created['pending_recovery'] == [PRIMARY]

    assert await run_command(parser.parse_args(['get', '5', '--iso', 'read-committed']), cluster) == 0
    assert json.loads(capsys.readouterr().out)['record']['username'] == 'Jo'

    await run_command(parser.parse_args(['pending']), cluster)
    assert json.loads(capsys.readouterr().out)['by_node'][PRIMARY] == 1


async def test_health_and_recover(cluster, servers, capsys):
    parser = build_parser()
    servers[PRIMARY].down = True
    assert await run_command(parser.parse_args(['health']), cluster) == 1
    assert 'primary: FAIL' in capsys.readouterr().out

    servers[PRIMARY].down = False
    await run_command(parser.parse_args(['recover', 'node1']), cluster)
    assert 'Recovery complete for primary' in capsys.readouterr().out


async def test_get_missing_user(cluster, capsys):
    assert await run_command(build_parser().parse_args(['get', '77']), cluster) == 1
    assert 'not found' in capsys.readouterr().out
