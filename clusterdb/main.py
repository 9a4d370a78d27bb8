"""
Operator command line for the replication cluster

    clusterdb health
    clusterdb create 101 Ana PH --iso "READ COMMITTED"
    clusterdb get 101
    clusterdb recover primary
    clusterdb simulate case2 --iso SERIALIZABLE
    clusterdb suite
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from clusterdb.db import db_config
from clusterdb.db.cluster import ClusterClient
from clusterdb.replication.recovery import RecoveryTrigger
from clusterdb.services.user_service import UserService
from clusterdb.simulation.isolation_scenarios import SCENARIO_ALIASES, IsolationSimulation
from clusterdb.simulation.scenario_runner import ConcurrencyTestSuite
from clusterdb.utils.errors import ClusterError
from clusterdb.utils.logger import configure_logging

logger = logging.getLogger(__name__)


def _print_json(data):
    print(json.dumps(data, indent=2, default=str))


def build_parser():
    parser = argparse.ArgumentParser(prog='clusterdb', description='Partitioned replication cluster operator tool')
    parser.add_argument('--log-level', default=db_config.LOG_LEVEL)
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('health', help='Ping every node')

    create = sub.add_parser('create', help='Insert a user on the primary and its replica')
    create.add_argument('id', type=int)
    create.add_argument('username')
    create.add_argument('country')

    update = sub.add_parser('update', help='Update a user')
    update.add_argument('id', type=int)
    update.add_argument('--username')
    update.add_argument('--country')

    delete = sub.add_parser('delete', help='Delete a user')
    delete.add_argument('id', type=int)

    get = sub.add_parser('get', help='Read a user (replica first, then primary)')
    get.add_argument('id', type=int)

    for command in (create, update, delete, get):
        command.add_argument('--iso', default=None, help='Isolation level')

    recover = sub.add_parser('recover', help='Replay missed writes for a node')
    recover.add_argument('node')

    sub.add_parser('pending', help='Show pending recovery entries per node')

    simulate = sub.add_parser('simulate', help='Run one isolation scenario')
    simulate.add_argument('scenario', choices=sorted(SCENARIO_ALIASES))
    simulate.add_argument('--iso', default=None)

    suite = sub.add_parser('suite', help='Run every scenario under every isolation level')
    suite.add_argument('--log-dir', default=db_config.LOG_DIR)
    return parser


async def run_command(args, cluster: ClusterClient):
    service = UserService(cluster)
    trigger = RecoveryTrigger(cluster)

    if args.command == 'health':
        status = await cluster.health()
        for node, healthy in status.items():
            print(f"   {node}: {'PASS' if healthy else 'FAIL'}")
        return 0 if all(status.values()) else 1

    if args.command == 'create':
        outcome = await service.create_user(args.id, args.username, args.country, args.iso)
        _print_json(outcome.as_dict())
    elif args.command == 'update':
        outcome = await service.update_user(args.id, username=args.username, country=args.country,
                                            isolation_level=args.iso)
        _print_json(outcome.as_dict())
    elif args.command == 'delete':
        outcome = await service.delete_user(args.id, args.iso)
        _print_json(outcome.as_dict())
    elif args.command == 'get':
        result = await service.get_user(args.id, args.iso)
        if not result.found:
            print(f"User {args.id} not found (checked {result.node})")
            return 1
        _print_json({'node': result.node, 'fell_back': result.fell_back, 'record': result.record})
    elif args.command == 'recover':
        report = await trigger.recover(args.node)
        print(report.message)
        for error in report.errors:
            print(f"   {error}")
    elif args.command == 'pending':
        _print_json(trigger.pending_summary())
    elif args.command == 'simulate':
        run = await IsolationSimulation(cluster).run_scenario(args.scenario, args.iso)
        print("\n".join(run.lines()))
    elif args.command == 'suite':
        runs = await ConcurrencyTestSuite(cluster, log_dir=args.log_dir).run_all_tests()
        print(f"\n{len(runs)} simulation runs completed. Reports in {args.log_dir}/")
    return 0


async def _main(args):
    async with ClusterClient.from_config() as cluster:
        return await run_command(args, cluster)


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    if not Path('.env').exists():
        logger.warning(".env file not found; using environment variables and defaults")
    try:
        return asyncio.run(_main(args))
    except ClusterError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
