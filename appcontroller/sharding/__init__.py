"""Shard resolution and cluster filtering."""

from appcontroller.sharding.partitioner import (
    ClusterPartitioner,
    IDHashPartitioner,
    MD5Partitioner,
    create_partitioner,
)
from appcontroller.sharding.shard import (
    accepts,
    build_cluster_filter,
    get_cluster_filter,
    infer_shard,
    resolve_shard,
)

__all__ = [
    "ClusterPartitioner",
    "IDHashPartitioner",
    "MD5Partitioner",
    "create_partitioner",
    "accepts",
    "build_cluster_filter",
    "get_cluster_filter",
    "infer_shard",
    "resolve_shard",
]
