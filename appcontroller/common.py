"""Well-known names, environment variables and defaults."""

import os
from dataclasses import dataclass

from appcontroller import __version__

CLI_NAME = "appcontroller"

# Environment variables
ENV_CONTROLLER_REPLICAS = "ARGOCD_CONTROLLER_REPLICAS"
ENV_CONTROLLER_SHARD = "ARGOCD_CONTROLLER_SHARD"
ENV_APP_CONFIG_PATH = "ARGOCD_APP_CONF_PATH"
ENV_RECONCILIATION_TIMEOUT = "ARGOCD_RECONCILIATION_TIMEOUT"
ENV_BUILD_DATE = "APPCONTROLLER_BUILD_DATE"

# Defaults
DEFAULT_APP_CONFIG_PATH = "/app/config"
DEFAULT_APP_RESYNC_PERIOD = 180
DEFAULT_REPO_SERVER_ADDR = "argocd-repo-server:8081"
DEFAULT_REPO_SERVER_TIMEOUT_SECONDS = 60
DEFAULT_PORT_METRICS = 8082
DEFAULT_SELF_HEAL_TIMEOUT_SECONDS = 5
DEFAULT_KUBECTL_PARALLELISM_LIMIT = 20
DEFAULT_REDIS_ADDR = ""
DEFAULT_CACHE_EXPIRATION = 24 * 60 * 60
IN_MEMORY_CACHE_EXPIRATION = 10 * 60
STATS_TICKER_INTERVAL = 10 * 60
HEAP_PROFILE_PATH = "memprofile"

# Kubernetes resources
ARGOCD_CONFIG_MAP_NAME = "argocd-cm"
ARGOCD_SECRET_NAME = "argocd-secret"
LABEL_KEY_SECRET_TYPE = "argocd.argoproj.io/secret-type"
LABEL_VALUE_SECRET_TYPE_CLUSTER = "cluster"
SERVICE_ACCOUNT_NAMESPACE_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


@dataclass(frozen=True)
class Version:
    """Build information reported at startup."""

    version: str
    build_date: str


def get_version() -> Version:
    """Return version information for this build."""
    return Version(
        version=__version__,
        build_date=os.getenv(ENV_BUILD_DATE, "unknown"),
    )
