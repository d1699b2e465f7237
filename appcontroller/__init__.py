"""
appcontroller - bootstrap and sharding for a horizontally scaled application controller.

Each controller replica claims a disjoint, stable subset of the managed
clusters and assembles its collaborators before handing them to the
reconciliation engine:
- Shard resolution from configuration or the pod hostname
- Cluster filters built on deterministic partitioners
- TLS trust material for the repo server connection
- Two-level caching in front of the shared cache store
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
