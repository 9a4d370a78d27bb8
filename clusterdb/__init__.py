"""Partitioned replication cluster: primary plus odd/even replicas with log-and-replay recovery."""

__version__ = "0.1.0"
