"""
Controller options.

All command-line and environment configuration is assembled once into an
immutable ControllerOptions value and passed explicitly to each component.
"""

import argparse
from dataclasses import dataclass
from typing import Optional

from appcontroller.common import (
    DEFAULT_APP_CONFIG_PATH,
    DEFAULT_APP_RESYNC_PERIOD,
    DEFAULT_CACHE_EXPIRATION,
    DEFAULT_KUBECTL_PARALLELISM_LIMIT,
    DEFAULT_PORT_METRICS,
    DEFAULT_REDIS_ADDR,
    DEFAULT_REPO_SERVER_ADDR,
    DEFAULT_REPO_SERVER_TIMEOUT_SECONDS,
    DEFAULT_SELF_HEAL_TIMEOUT_SECONDS,
    ENV_APP_CONFIG_PATH,
    ENV_CONTROLLER_REPLICAS,
    ENV_CONTROLLER_SHARD,
)
from appcontroller.utils.env import MAX_INT32, parse_num_from_env, string_from_env


@dataclass(frozen=True)
class ControllerOptions:
    """
    Application controller options.

    Durations are in seconds. A negative shard means "infer from hostname";
    replicas <= 1 disables sharding.
    """
    app_resync_period: int = DEFAULT_APP_RESYNC_PERIOD
    repo_server_address: str = DEFAULT_REPO_SERVER_ADDR
    repo_server_timeout_seconds: int = DEFAULT_REPO_SERVER_TIMEOUT_SECONDS
    repo_server_plaintext: bool = False
    repo_server_strict_tls: bool = False
    status_processors: int = 1
    operation_processors: int = 1
    log_format: str = "text"
    log_level: str = "info"
    metrics_port: int = DEFAULT_PORT_METRICS
    metrics_cache_expiration: float = 0
    self_heal_timeout_seconds: int = DEFAULT_SELF_HEAL_TIMEOUT_SECONDS
    kubectl_parallelism_limit: int = DEFAULT_KUBECTL_PARALLELISM_LIMIT
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    namespace: Optional[str] = None
    redis_address: str = DEFAULT_REDIS_ADDR
    redis_db: int = 0
    default_cache_expiration: float = DEFAULT_CACHE_EXPIRATION
    replicas: int = 0
    shard: int = -1
    app_config_path: str = DEFAULT_APP_CONFIG_PATH

    @property
    def resync_duration(self) -> float:
        return float(self.app_resync_period)

    @property
    def self_heal_timeout(self) -> float:
        return float(self.self_heal_timeout_seconds)

    @property
    def sharding_enabled(self) -> bool:
        return self.replicas > 1

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ControllerOptions":
        """
        Assemble options from parsed flags and the environment.

        Replica count, shard index and the config path are only read from the
        environment.

        Args:
            args: Parsed command-line arguments

        Returns:
            Controller options
        """
        return cls(
            app_resync_period=args.app_resync,
            repo_server_address=args.repo_server,
            repo_server_timeout_seconds=args.repo_server_timeout_seconds,
            repo_server_plaintext=args.repo_server_plaintext,
            repo_server_strict_tls=args.repo_server_strict_tls,
            status_processors=args.status_processors,
            operation_processors=args.operation_processors,
            log_format=args.logformat,
            log_level=args.loglevel,
            metrics_port=args.metrics_port,
            metrics_cache_expiration=args.metrics_cache_expiration,
            self_heal_timeout_seconds=args.self_heal_timeout_seconds,
            kubectl_parallelism_limit=args.kubectl_parallelism_limit,
            kubeconfig=args.kubeconfig,
            context=args.context,
            namespace=args.namespace,
            redis_address=args.redis,
            redis_db=args.redisdb,
            default_cache_expiration=args.default_cache_expiration,
            replicas=parse_num_from_env(ENV_CONTROLLER_REPLICAS, 0, 0, MAX_INT32),
            shard=parse_num_from_env(ENV_CONTROLLER_SHARD, -1, -MAX_INT32, MAX_INT32),
            app_config_path=string_from_env(ENV_APP_CONFIG_PATH, DEFAULT_APP_CONFIG_PATH),
        )
