"""
Database Configuration Module - Multi-Node Support

This module holds the connection settings for the three cluster nodes:
the primary (all records) and the two partition replicas (odd and even ids).
Values are read from environment variables, loaded from a .env file when one
is present.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from clusterdb.utils.errors import InvalidTargetError

# Load environment variables from .env file
load_dotenv()


def _get_config_value(key, default=''):
    """
    Get configuration value from environment variables.

    Args:
        key (str): Configuration key name
        default: Default value if key not found

    Returns:
        Configuration value
    """
    return os.getenv(key, default)


PRIMARY = 'primary'
REPLICA_ODD = 'replica-odd'
REPLICA_EVEN = 'replica-even'

NODE_ROLES = {
    PRIMARY: 'primary',
    REPLICA_ODD: 'replica',
    REPLICA_EVEN: 'replica',
}

# Older names used by operators and scripts
NODE_ALIASES = {
    'node1': PRIMARY,
    'node2': REPLICA_ODD,
    'node3': REPLICA_EVEN,
    'master': PRIMARY,
    'slave1': REPLICA_ODD,
    'slave2': REPLICA_EVEN,
}

# Node 1 Configuration
CONFIG_NODE1 = {
    "host": _get_config_value('DB_HOST', 'localhost'),
    "port": int(_get_config_value('DB_PORT', '3306')),
    "user": _get_config_value('DB_USER', 'user'),
    "password": _get_config_value('DB_PASSWORD', ''),
    "database": _get_config_value('DB_NAME', 'users_db')
}

# Node 2 Configuration
CONFIG_NODE2 = {
    "host": _get_config_value('DB_HOST_NODE2', CONFIG_NODE1['host']),
    "port": int(_get_config_value('DB_PORT_NODE2', '3307')),
    "user": _get_config_value('DB_USER_NODE2', CONFIG_NODE1['user']),
    "password": _get_config_value('DB_PASSWORD_NODE2', CONFIG_NODE1['password']),
    "database": _get_config_value('DB_NAME_NODE2', CONFIG_NODE1['database'])
}

# Node 3 Configuration
CONFIG_NODE3 = {
    "host": _get_config_value('DB_HOST_NODE3', CONFIG_NODE1['host']),
    "port": int(_get_config_value('DB_PORT_NODE3', '3308')),
    "user": _get_config_value('DB_USER_NODE3', CONFIG_NODE1['user']),
    "password": _get_config_value('DB_PASSWORD_NODE3', CONFIG_NODE1['password']),
    "database": _get_config_value('DB_NAME_NODE3', CONFIG_NODE1['database'])
}

# Map logical node names to configurations
NODE_CONFIGS = {
    PRIMARY: CONFIG_NODE1,
    REPLICA_ODD: CONFIG_NODE2,
    REPLICA_EVEN: CONFIG_NODE3,
}

POOL_SIZE = int(_get_config_value('DB_POOL_SIZE', '10'))
POOL_ACQUIRE_TIMEOUT = float(_get_config_value('DB_POOL_TIMEOUT', '10'))
CONNECT_TIMEOUT = int(_get_config_value('DB_CONNECT_TIMEOUT', '10'))

RECOVERY_LOG_PATH = _get_config_value('RECOVERY_LOG_PATH', 'failed_transactions.json')
LOG_DIR = _get_config_value('LOG_DIR', 'logs')
LOG_LEVEL = _get_config_value('LOG_LEVEL', 'INFO')

ISOLATION_LEVELS = [
    'READ UNCOMMITTED',
    'READ COMMITTED',
    'REPEATABLE READ',
    'SERIALIZABLE'
]


def normalize_isolation_level(level=None):
    """
    Turn a user-supplied isolation level into its SQL spelling.

    Accepts 'READ COMMITTED', 'read_committed' or 'read-committed'.
    None gives the configured default.

    Raises:
        ValueError: If the level is not one of ISOLATION_LEVELS
    """
    if level is None or str(level).strip() == '':
        level = _get_config_value('DEFAULT_ISOLATION_LEVEL', 'READ UNCOMMITTED')
    normalized = ' '.join(str(level).replace('_', ' ').replace('-', ' ').upper().split())
    if normalized not in ISOLATION_LEVELS:
        raise ValueError(f"Invalid isolation level: {level}. Must be one of {ISOLATION_LEVELS}.")
    return normalized


DEFAULT_ISOLATION_LEVEL = normalize_isolation_level()


def resolve_node_name(name):
    """
    Map a logical node name or alias to its canonical name.

    Raises:
        InvalidTargetError: If the name does not match a known node
    """
    key = str(name).strip().lower() if name is not None else ''
    if key in NODE_CONFIGS:
        return key
    if key in NODE_ALIASES:
        return NODE_ALIASES[key]
    raise InvalidTargetError(name)


def get_node_config(node=PRIMARY):
    """
    Get the configuration for a specific node.

    Args:
        node (str): Node name (primary, replica-odd, replica-even) or alias

    Returns:
        dict: Configuration dictionary for the specified node

    Raises:
        InvalidTargetError: If node name is invalid
    """
    config = dict(NODE_CONFIGS[resolve_node_name(node)])
    config['connection_timeout'] = CONNECT_TIMEOUT
    return config


@dataclass(frozen=True)
class SimulationTimings:
    """Sleep intervals (seconds) that widen the interleaving window."""
    read_hold: float = 2.0
    writer_hold: float = 5.0
    reader_delay: float = 1.0
    write_hold: float = 3.0
    second_writer_delay: float = 0.5
    target_id: int = 1


def get_simulation_timings():
    return SimulationTimings(
        read_hold=float(_get_config_value('SIM_READ_HOLD', '2.0')),
        writer_hold=float(_get_config_value('SIM_WRITER_HOLD', '5.0')),
        reader_delay=float(_get_config_value('SIM_READER_DELAY', '1.0')),
        write_hold=float(_get_config_value('SIM_WRITE_HOLD', '3.0')),
        second_writer_delay=float(_get_config_value('SIM_SECOND_WRITER_DELAY', '0.5')),
        target_id=int(_get_config_value('SIM_TARGET_ID', '1')),
    )
