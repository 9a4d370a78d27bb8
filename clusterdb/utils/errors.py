"""
Error taxonomy for the replication cluster.

Driver errors never cross the node pool boundary; they are translated into
NodeConnectionError or QueryError there.
"""


class ClusterError(Exception):
    """Base class for every error raised by the cluster."""


class NodeError(ClusterError):
    def __init__(self, node: str, message: str):
        super().__init__(f"{node}: {message}")
        self.node = node
        self.message = message


class NodeConnectionError(NodeError):
    """Pool exhausted or node unreachable."""


class QueryError(NodeError):
    """Statement rejected by the store (constraint, lock wait, serialization)."""


class ClusterUnavailableError(ClusterError):
    """Every node that could serve the request failed."""

    def __init__(self, message: str, outcome=None):
        super().__init__(message)
        self.outcome = outcome


class InvalidTargetError(ClusterError):
    def __init__(self, name):
        super().__init__(f"Invalid node name: {name}")
        self.name = name


class RecoveryLogError(ClusterError):
    """The recovery log could not be read or written."""
