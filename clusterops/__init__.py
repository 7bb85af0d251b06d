"""Cluster topology, resource caching, security detection, etcd restore over SSH and health checks."""

__version__ = "0.1.0"