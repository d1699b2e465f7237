"""
Shard resolution and cluster filters.

A replica owns the clusters whose partition equals its shard index. The shard
index comes from configuration, or is inferred from the StatefulSet ordinal
at the end of the pod hostname.
"""

import socket
from typing import Callable, Optional

from appcontroller.cluster import Cluster
from appcontroller.sharding.partitioner import ClusterPartitioner, IDHashPartitioner
from appcontroller.utils.errors import ShardInferenceError
from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)

ClusterFilter = Callable[[Cluster], bool]


def infer_shard(hostname: Optional[str] = None) -> int:
    """
    Infer the shard index from the hostname ordinal.

    ``argocd-application-controller-2`` resolves to shard 2.

    Args:
        hostname: Hostname to parse; defaults to this host's name

    Returns:
        Shard index

    Raises:
        ShardInferenceError: If the hostname does not end with ``-<number>``
    """
    if hostname is None:
        try:
            hostname = socket.gethostname()
        except OSError as e:
            raise ShardInferenceError(f"failed to read hostname: {e}") from e

    _, sep, suffix = hostname.rpartition("-")
    if not sep or not suffix.isdigit():
        raise ShardInferenceError(
            f"hostname should end with shard number separated by '-' but got: {hostname}"
        )

    return int(suffix)


def resolve_shard(
    replicas: int,
    shard: int,
    infer: Callable[[], int] = infer_shard,
) -> int:
    """
    Resolve this replica's shard index.

    Only meaningful when sharding is enabled (replicas > 1). An explicit,
    non-negative shard is returned unchanged; otherwise it is inferred.

    Args:
        replicas: Configured replica count
        shard: Configured shard index, negative when unset
        infer: Inference source

    Returns:
        Resolved shard index

    Raises:
        ShardInferenceError: If inference fails
    """
    if shard >= 0:
        return shard

    resolved = infer()
    if resolved < 0:
        raise ShardInferenceError(f"inferred an invalid shard index: {resolved}")

    if resolved >= replicas:
        logger.warning(
            "Inferred shard is outside the replica range, no clusters will be processed",
            shard=resolved,
            replicas=replicas,
        )

    return resolved


def build_cluster_filter(
    replicas: int,
    shard: int,
    partitioner: Optional[ClusterPartitioner] = None,
) -> Optional[ClusterFilter]:
    """
    Build the predicate selecting the clusters this replica owns.

    Returns None when sharding is disabled: every cluster is processed and
    callers skip filtering entirely.

    Args:
        replicas: Replica count
        shard: Resolved shard index
        partitioner: Partition function, FNV-1a over cluster identity by default

    Returns:
        Cluster filter, or None to accept all clusters
    """
    if replicas <= 1:
        return None

    partitioner = partitioner or IDHashPartitioner()

    def cluster_filter(cluster: Cluster) -> bool:
        return partitioner.partition(cluster, replicas) == shard

    return cluster_filter


def get_cluster_filter(
    replicas: int,
    shard: int,
    infer: Callable[[], int] = infer_shard,
    partitioner: Optional[ClusterPartitioner] = None,
) -> Optional[ClusterFilter]:
    """
    Resolve the shard and build the cluster filter.

    Args:
        replicas: Configured replica count
        shard: Configured shard index, negative when unset
        infer: Inference source, only consulted when sharding is enabled
        partitioner: Partition function

    Returns:
        Cluster filter, or None to accept all clusters

    Raises:
        ShardInferenceError: If the shard must be inferred and cannot be
    """
    if replicas <= 1:
        logger.info("Processing all cluster shards")
        return None

    shard = resolve_shard(replicas, shard, infer)
    logger.info("Processing clusters from shard", shard=shard, replicas=replicas)
    return build_cluster_filter(replicas, shard, partitioner)


def accepts(cluster_filter: Optional[ClusterFilter], cluster: Cluster) -> bool:
    """Apply a cluster filter, treating None as accept-all."""
    return cluster_filter is None or cluster_filter(cluster)
