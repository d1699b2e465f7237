"""
Managed cluster identity.

Clusters are declared as Kubernetes secrets labelled
``argocd.argoproj.io/secret-type=cluster``; this module only reads the fields
needed to decide which controller replica owns a cluster.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Dict, Optional

from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Cluster:
    """
    A managed cluster.

    Attributes:
        server: API server URL
        name: Display name
        id: Stable identity (the UID of the declaring secret)
        shard: Explicit partition key, overriding the hashed identity
    """
    server: str
    name: str = ""
    id: str = ""
    shard: Optional[int] = None

    @classmethod
    def from_secret(cls, secret: Any) -> "Cluster":
        """
        Build a cluster from a cluster secret.

        Accepts either a kubernetes ``V1Secret`` or its dict form. Data values
        are base64 encoded, as returned by the API server.

        Args:
            secret: Cluster secret

        Returns:
            Cluster

        Raises:
            ValueError: If the secret has no server
        """
        if isinstance(secret, dict):
            metadata = secret.get("metadata") or {}
            uid = metadata.get("uid") or ""
            data = secret.get("data") or {}
        else:
            uid = secret.metadata.uid or ""
            data = secret.data or {}

        fields = {key: _decode(value) for key, value in data.items()}

        server = fields.get("server", "")
        if not server:
            raise ValueError(f"cluster secret {uid or '<unknown>'} has no server")

        shard = None
        if raw_shard := fields.get("shard"):
            try:
                shard = int(raw_shard)
            except ValueError:
                logger.warning(
                    "Ignoring non-numeric cluster shard",
                    server=server,
                    shard=raw_shard,
                )
            else:
                if shard < 0:
                    logger.warning("Ignoring negative cluster shard", server=server, shard=shard)
                    shard = None

        return cls(
            server=server,
            name=fields.get("name", ""),
            id=uid,
            shard=shard,
        )


def _decode(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return base64.b64decode(value).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"invalid base64 secret data: {e}") from e


def clusters_from_secrets(secrets: Dict[str, Any]) -> Dict[str, Cluster]:
    """
    Parse cluster secrets keyed by server URL, skipping malformed ones.

    Args:
        secrets: Secret name -> secret

    Returns:
        Server URL -> cluster
    """
    clusters: Dict[str, Cluster] = {}
    for name, secret in secrets.items():
        try:
            cluster = Cluster.from_secret(secret)
        except ValueError as e:
            logger.warning("Skipping invalid cluster secret", secret=name, error=str(e))
            continue
        clusters[cluster.server] = cluster
    return clusters
