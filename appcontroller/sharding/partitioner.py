"""
Partitioners mapping a cluster to a shard.

Strategies:
- ID hash (default): FNV-1a of the cluster identity
- MD5: MD5 of the cluster identity

Both honour an explicit ``shard`` set on the cluster. Hashes must be stable
across processes, so Python's salted ``hash()`` is never used.
"""

import hashlib
from abc import ABC, abstractmethod

from appcontroller.cluster import Cluster
from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)

FNV32_OFFSET_BASIS = 0x811C9DC5
FNV32_PRIME = 0x01000193


def fnv1a_32(data: bytes) -> int:
    """32-bit FNV-1a hash."""
    value = FNV32_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV32_PRIME) & 0xFFFFFFFF
    return value


class ClusterPartitioner(ABC):
    """Abstract base class for cluster partitioners."""

    def partition_key(self, cluster: Cluster) -> int:
        """
        Stable partition key for a cluster.

        An explicit shard on the cluster wins; otherwise the identity is
        hashed. Clusters without identity map to key 0.

        Args:
            cluster: Cluster

        Returns:
            Non-negative partition key
        """
        if cluster.shard is not None:
            return cluster.shard
        if not cluster.id:
            return 0
        return self._hash(cluster.id.encode("utf-8"))

    @abstractmethod
    def _hash(self, identity: bytes) -> int:
        """Hash a cluster identity to a non-negative integer."""
        pass

    def partition(self, cluster: Cluster, replicas: int) -> int:
        """
        Choose shard for a cluster.

        Args:
            cluster: Cluster
            replicas: Number of controller replicas

        Returns:
            Shard number (0 to replicas-1)
        """
        if replicas <= 0:
            raise ValueError(f"Invalid replicas: {replicas}")

        return self.partition_key(cluster) % replicas


class IDHashPartitioner(ClusterPartitioner):
    """FNV-1a partitioner over the cluster identity."""

    def _hash(self, identity: bytes) -> int:
        return fnv1a_32(identity)


class MD5Partitioner(ClusterPartitioner):
    """MD5 partitioner over the cluster identity."""

    def _hash(self, identity: bytes) -> int:
        return int(hashlib.md5(identity).hexdigest(), 16)


def create_partitioner(partitioner_type: str = "fnv") -> ClusterPartitioner:
    """
    Factory method to create partitioner.

    Args:
        partitioner_type: Type of partitioner
            - "fnv": FNV-1a of the cluster identity
            - "md5": MD5 of the cluster identity

    Returns:
        Partitioner instance
    """
    partitioners = {
        "fnv": IDHashPartitioner,
        "md5": MD5Partitioner,
    }

    partitioner_class = partitioners.get(partitioner_type)

    if partitioner_class is None:
        raise ValueError(f"Unknown partitioner type: {partitioner_type}")

    return partitioner_class()
