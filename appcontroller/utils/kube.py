"""
Kubernetes client configuration.

Resolves the API client configuration and the working namespace, the same
way kubectl does: in-cluster service account when running in a pod without
an explicit kubeconfig, the kubeconfig file otherwise.
"""

import os
from dataclasses import dataclass
from typing import Optional

import yaml
from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.config.config_exception import ConfigException

from appcontroller.common import SERVICE_ACCOUNT_NAMESPACE_PATH
from appcontroller.utils.errors import ConfigurationError
from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_NAMESPACE = "default"


@dataclass(frozen=True)
class ClientConfig:
    """
    Resolved client configuration.

    Attributes:
        configuration: Kubernetes API client configuration
        namespace: Working namespace
        in_cluster: Whether the service account configuration is used
    """
    configuration: client.Configuration
    namespace: str
    in_cluster: bool = False


@dataclass(frozen=True)
class KubeClients:
    """
    API clients built from one configuration.

    Attributes:
        core: Core API (secrets, config maps)
        apps: Custom objects API (Application resources)
    """
    core: client.CoreV1Api
    apps: client.CustomObjectsApi


def _read_namespace_file(path: str) -> Optional[str]:
    try:
        with open(path, "r") as f:
            namespace = f.read().strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise ConfigurationError(f"failed to read namespace from {path}: {e}") from e
    return namespace or None


def load_client_config(
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
    namespace: Optional[str] = None,
    namespace_file: str = SERVICE_ACCOUNT_NAMESPACE_PATH,
) -> ClientConfig:
    """
    Resolve client configuration and namespace.

    Args:
        kubeconfig: Path to a kubeconfig file
        context: Kubeconfig context name
        namespace: Explicit namespace, wins over every other source
        namespace_file: Service account namespace file

    Returns:
        Client configuration

    Raises:
        ConfigurationError: If no usable configuration is found
    """
    configuration = client.Configuration()
    in_cluster = not kubeconfig and "KUBERNETES_SERVICE_HOST" in os.environ

    try:
        if in_cluster:
            kube_config.load_incluster_config(client_configuration=configuration)
            if not namespace:
                namespace = _read_namespace_file(namespace_file)
        else:
            kube_config.load_kube_config(
                config_file=kubeconfig,
                context=context,
                client_configuration=configuration,
            )
            if not namespace:
                contexts, active_context = kube_config.list_kube_config_contexts(
                    config_file=kubeconfig,
                )
                if context:
                    active_context = next(
                        (c for c in contexts if c.get("name") == context),
                        active_context,
                    )
                namespace = (active_context or {}).get("context", {}).get("namespace")
    except (ConfigException, OSError, yaml.YAMLError, KeyError, TypeError) as e:
        # malformed kubeconfig contents surface as YAML or lookup errors
        raise ConfigurationError(f"failed to load client configuration: {e}") from e

    namespace = namespace or DEFAULT_NAMESPACE

    logger.debug(
        "Resolved client configuration",
        host=configuration.host,
        namespace=namespace,
        in_cluster=in_cluster,
    )
    return ClientConfig(configuration=configuration, namespace=namespace, in_cluster=in_cluster)


def new_kube_clients(client_config: ClientConfig) -> KubeClients:
    """Build the core and application API clients."""
    api_client = client.ApiClient(configuration=client_config.configuration)
    return KubeClients(
        core=client.CoreV1Api(api_client),
        apps=client.CustomObjectsApi(api_client),
    )
