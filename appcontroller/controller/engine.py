"""
Application controller run loop.

Periodically lists the managed clusters, keeps the ones this replica owns and
hands them to the status processors. Application operations requested through
request_operation() are handled by the operation processors.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Set

from appcontroller.cache.appstate import AppStateCache
from appcontroller.cluster import Cluster, clusters_from_secrets
from appcontroller.common import LABEL_KEY_SECRET_TYPE, LABEL_VALUE_SECRET_TYPE_CLUSTER
from appcontroller.reposerver.client import RepoServerClientset
from appcontroller.sharding.shard import ClusterFilter, accepts
from appcontroller.utils.kube import KubeClients
from appcontroller.utils.logging import get_logger
from appcontroller.utils.settings import SettingsManager

logger = get_logger(__name__)

CLUSTER_SECRET_SELECTOR = f"{LABEL_KEY_SECRET_TYPE}={LABEL_VALUE_SECRET_TYPE_CLUSTER}"


class ApplicationController:
    """
    Application controller.

    Responsibilities:
    - Cluster discovery, restricted to this replica's shard
    - Cluster status refresh through the status processors
    - Application operations through the operation processors
    """

    def __init__(
        self,
        namespace: str,
        settings_manager: SettingsManager,
        kube_clients: KubeClients,
        repo_clientset: RepoServerClientset,
        cache: AppStateCache,
        resync: float,
        self_heal_timeout: float,
        metrics_port: int,
        metrics_cache_expiration: float,
        kubectl_parallelism_limit: int,
        cluster_filter: Optional[ClusterFilter],
    ):
        """
        Initialize application controller.

        Args:
            namespace: Controller namespace
            settings_manager: Settings manager
            kube_clients: Kubernetes API clients
            repo_clientset: Repo server client
            cache: Application state cache
            resync: Resync period in seconds, <= 0 to list clusters once
            self_heal_timeout: Delay between self-heal attempts in seconds
            metrics_port: Metrics server port
            metrics_cache_expiration: Metrics cache expiration in seconds, 0 to disable
            kubectl_parallelism_limit: Concurrent kubectl executions, <= 0 for no limit
            cluster_filter: Owned-cluster predicate, None for all clusters
        """
        self.namespace = namespace
        self.settings_manager = settings_manager
        self.kube_clients = kube_clients
        self.repo_clientset = repo_clientset
        self.cache = cache
        self.resync = resync
        self.self_heal_timeout = self_heal_timeout
        self.metrics_port = metrics_port
        self.metrics_cache_expiration = metrics_cache_expiration
        self.cluster_filter = cluster_filter

        self._kubectl_semaphore: Optional[asyncio.Semaphore] = None
        if kubectl_parallelism_limit > 0:
            self._kubectl_semaphore = asyncio.Semaphore(kubectl_parallelism_limit)

        self.clusters: Dict[str, Cluster] = {}
        self._status_queue: "asyncio.Queue[Cluster]" = asyncio.Queue()
        self._pending_status: Set[str] = set()
        self._operation_queue: "asyncio.Queue[str]" = asyncio.Queue()

        logger.info(
            "ApplicationController initialized",
            namespace=namespace,
            resync_seconds=resync,
            sharded=cluster_filter is not None,
        )

    async def run(
        self,
        stop_event: asyncio.Event,
        status_processors: int,
        operation_processors: int,
    ) -> None:
        """
        Run until stop_event is set.

        Args:
            stop_event: Process stop signal
            status_processors: Number of status processors
            operation_processors: Number of operation processors
        """
        tasks = [asyncio.create_task(self._resync_loop(stop_event))]
        tasks += [
            asyncio.create_task(self._status_processor(i))
            for i in range(status_processors)
        ]
        tasks += [
            asyncio.create_task(self._operation_processor(i))
            for i in range(operation_processors)
        ]

        logger.info(
            "ApplicationController started",
            status_processors=status_processors,
            operation_processors=operation_processors,
        )

        try:
            await stop_event.wait()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("ApplicationController stopped")

    def request_operation(self, app_name: str) -> None:
        """Queue an operation for an application."""
        self._operation_queue.put_nowait(app_name)

    async def list_clusters(self) -> Dict[str, Cluster]:
        """List the managed clusters owned by this replica."""
        secrets = await asyncio.to_thread(
            self.kube_clients.core.list_namespaced_secret,
            self.namespace,
            label_selector=CLUSTER_SECRET_SELECTOR,
        )
        clusters = clusters_from_secrets(
            {secret.metadata.name: secret for secret in secrets.items}
        )
        return {
            server: cluster
            for server, cluster in clusters.items()
            if accepts(self.cluster_filter, cluster)
        }

    async def _resync_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                self.clusters = await self.list_clusters()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Failed to list clusters", error=str(e))
            else:
                logger.info("Resynced clusters", owned=len(self.clusters))
                for cluster in self.clusters.values():
                    self._queue_status(cluster)

            if self.resync <= 0:
                # periodic resync disabled
                await stop_event.wait()
                return

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.resync)
            except asyncio.TimeoutError:
                pass

    def _queue_status(self, cluster: Cluster) -> None:
        if cluster.server in self._pending_status:
            return
        self._pending_status.add(cluster.server)
        self._status_queue.put_nowait(cluster)

    async def _status_processor(self, index: int) -> None:
        while True:
            cluster = await self._status_queue.get()
            self._pending_status.discard(cluster.server)
            try:
                await self._refresh_cluster(cluster)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Failed to refresh cluster",
                    processor=index,
                    server=cluster.server,
                    error=str(e),
                )
            finally:
                self._status_queue.task_done()

    async def _refresh_cluster(self, cluster: Cluster) -> None:
        info: Dict[str, Any] = {
            "name": cluster.name,
            "server": cluster.server,
            "refreshed_at": int(time.time() * 1000),
        }
        if self._kubectl_semaphore is None:
            await asyncio.to_thread(self.cache.set_cluster_info, cluster.server, info)
        else:
            async with self._kubectl_semaphore:
                await asyncio.to_thread(self.cache.set_cluster_info, cluster.server, info)

        logger.debug("Refreshed cluster", server=cluster.server)

    async def _operation_processor(self, index: int) -> None:
        while True:
            app_name = await self._operation_queue.get()
            try:
                logger.info("Processing application operation", processor=index, app=app_name)
                await asyncio.to_thread(self.cache.delete_app_managed_resources, app_name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Failed to process operation",
                    processor=index,
                    app=app_name,
                    error=str(e),
                )
            finally:
                self._operation_queue.task_done()
