"""
Controller bootstrap.

Assembles the application controller's collaborators in a fixed order, each
step failing fast, then runs the controller until shutdown is requested:

1. Client configuration and namespace
2. Resync duration and repo server TLS configuration
3. Repo server client
4. Root stop signal
5. Cache with an in-memory second tier
6. Settings manager
7. Cluster filter for this replica's shard
8. Application controller
9. Diagnostics (best-effort)
10. Controller run loop, awaiting shutdown
"""

import asyncio
from typing import Callable, Optional

from appcontroller.cache.appstate import AppStateCache, CacheSource, new_cache_source
from appcontroller.cache.twolevel import wrap_with_second_tier
from appcontroller.common import (
    HEAP_PROFILE_PATH,
    IN_MEMORY_CACHE_EXPIRATION,
    STATS_TICKER_INTERVAL,
    get_version,
)
from appcontroller.controller.diagnostics import Diagnostics, NoopDiagnostics
from appcontroller.controller.engine import ApplicationController
from appcontroller.controller.options import ControllerOptions
from appcontroller.reposerver.client import RepoServerClientset
from appcontroller.sharding.partitioner import ClusterPartitioner
from appcontroller.sharding.shard import ClusterFilter, get_cluster_filter, infer_shard
from appcontroller.utils.kube import (
    ClientConfig,
    KubeClients,
    load_client_config,
    new_kube_clients,
)
from appcontroller.utils.logging import get_logger
from appcontroller.utils.settings import SettingsManager
from appcontroller.utils.tls import CertPool, TLSConfiguration, load_x509_cert_pool, prepare_tls

logger = get_logger(__name__)


class Bootstrapper:
    """
    Application controller bootstrap sequence.

    Collaborators are injected so the sequence can run without a cluster,
    a Redis server or process-wide signal handlers.
    """

    def __init__(
        self,
        options: ControllerOptions,
        client_config_loader: Callable[..., ClientConfig] = load_client_config,
        kube_clients_factory: Callable[[ClientConfig], KubeClients] = new_kube_clients,
        cert_pool_loader: Callable[..., CertPool] = load_x509_cert_pool,
        cache_source: Optional[CacheSource] = None,
        engine_factory: Callable[..., ApplicationController] = ApplicationController,
        diagnostics: Optional[Diagnostics] = None,
        shard_inference: Callable[[], int] = infer_shard,
        partitioner: Optional[ClusterPartitioner] = None,
    ):
        """
        Initialize bootstrapper.

        Args:
            options: Controller options
            client_config_loader: Resolves client configuration and namespace
            kube_clients_factory: Builds Kubernetes API clients
            cert_pool_loader: Loads the strict TLS trust pool
            cache_source: Creates the cache, from options by default
            engine_factory: Builds the application controller
            diagnostics: Diagnostic hooks, none by default
            shard_inference: Infers the shard when sharding is enabled and unset
            partitioner: Cluster partition function
        """
        self.options = options
        self._client_config_loader = client_config_loader
        self._kube_clients_factory = kube_clients_factory
        self._cert_pool_loader = cert_pool_loader
        self._cache_source = cache_source or new_cache_source(
            options.redis_address,
            options.redis_db,
            options.default_cache_expiration,
        )
        self._engine_factory = engine_factory
        self.diagnostics = diagnostics or NoopDiagnostics()
        self._shard_inference = shard_inference
        self._partitioner = partitioner

        self.namespace: Optional[str] = None
        self.tls_config: Optional[TLSConfiguration] = None
        self.repo_clientset: Optional[RepoServerClientset] = None
        self.cache: Optional[AppStateCache] = None
        self.settings_manager: Optional[SettingsManager] = None
        self.cluster_filter: Optional[ClusterFilter] = None
        self.engine: Optional[ApplicationController] = None
        self._stop_event = asyncio.Event()

    def shutdown(self) -> None:
        """Request shutdown; run() returns once the controller has stopped."""
        logger.info("Shutdown requested")
        self._stop_event.set()

    async def run(self) -> None:
        """
        Bootstrap and run the application controller.

        Returns after shutdown() is called or the controller exits.

        Raises:
            ControllerError: If a bootstrap step fails
        """
        options = self.options

        client_config = self._client_config_loader(
            kubeconfig=options.kubeconfig,
            context=options.context,
            namespace=options.namespace,
        )
        kube_clients = self._kube_clients_factory(client_config)
        self.namespace = client_config.namespace

        resync_duration = options.resync_duration
        self.tls_config = prepare_tls(
            plaintext=options.repo_server_plaintext,
            strict=options.repo_server_strict_tls,
            config_path=options.app_config_path,
            loader=self._cert_pool_loader,
        )

        self.repo_clientset = RepoServerClientset(
            options.repo_server_address,
            options.repo_server_timeout_seconds,
            self.tls_config,
        )

        engine_task: Optional[asyncio.Task] = None
        try:
            self.cache = self._cache_source()
            self.cache.set_client(
                wrap_with_second_tier(self.cache.get_client(), IN_MEMORY_CACHE_EXPIRATION)
            )

            self.settings_manager = SettingsManager(
                kube_clients.core,
                self.namespace,
                self._stop_event,
            )

            self.cluster_filter = get_cluster_filter(
                options.replicas,
                options.shard,
                infer=self._shard_inference,
                partitioner=self._partitioner,
            )

            self.engine = self._engine_factory(
                self.namespace,
                self.settings_manager,
                kube_clients,
                self.repo_clientset,
                self.cache,
                resync_duration,
                options.self_heal_timeout,
                options.metrics_port,
                options.metrics_cache_expiration,
                options.kubectl_parallelism_limit,
                self.cluster_filter,
            )

            version = get_version()
            logger.info(
                "Application Controller starting",
                version=version.version,
                built=version.build_date,
                namespace=self.namespace,
            )
            self._register_diagnostics()

            engine_task = asyncio.create_task(
                self.engine.run(
                    self._stop_event,
                    options.status_processors,
                    options.operation_processors,
                )
            )
            stop_task = asyncio.create_task(self._stop_event.wait())
            done, _ = await asyncio.wait(
                {engine_task, stop_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            stop_task.cancel()
            if engine_task in done:
                # surfaces a crashed run loop
                engine_task.result()
                logger.warning("Application controller exited before shutdown")
        finally:
            self._stop_event.set()
            if engine_task is not None and not engine_task.done():
                await engine_task
            self.diagnostics.stop()
            await self.repo_clientset.close()
            logger.info("Application Controller stopped")

    def _register_diagnostics(self) -> None:
        try:
            self.diagnostics.register_stack_dumper()
            self.diagnostics.start_stats_ticker(STATS_TICKER_INTERVAL)
            self.diagnostics.register_heap_dumper(HEAP_PROFILE_PATH)
        except Exception as e:
            logger.warning("Failed to register diagnostics", error=str(e))
