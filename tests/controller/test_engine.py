"""Tests for the application controller run loop."""

import asyncio
import base64
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes import client

from appcontroller.cache.appstate import AppStateCache
from appcontroller.cache.client import CacheMiss, InMemoryCache
from appcontroller.controller.engine import CLUSTER_SECRET_SELECTOR, ApplicationController
from appcontroller.sharding.shard import build_cluster_filter


def cluster_secret(name: str, server: str, shard: int) -> client.V1Secret:
    return client.V1Secret(
        metadata=client.V1ObjectMeta(name=name, uid=f"uid-{name}"),
        data={
            "server": base64.b64encode(server.encode()).decode(),
            "shard": base64.b64encode(str(shard).encode()).decode(),
        },
    )


@pytest.fixture
def core_api():
    """CoreV1Api stub listing three cluster secrets."""
    api = MagicMock()
    api.list_namespaced_secret.return_value = SimpleNamespace(items=[
        cluster_secret("a", "https://a", 1),
        cluster_secret("b", "https://b", 4),
        cluster_secret("c", "https://c", 2),
    ])
    return api


def make_controller(core_api, cluster_filter, kubectl_parallelism_limit=20, resync=180):
    return ApplicationController(
        namespace="argocd",
        settings_manager=MagicMock(),
        kube_clients=SimpleNamespace(core=core_api, apps=MagicMock()),
        repo_clientset=MagicMock(),
        cache=AppStateCache(InMemoryCache()),
        resync=resync,
        self_heal_timeout=5,
        metrics_port=8082,
        metrics_cache_expiration=0,
        kubectl_parallelism_limit=kubectl_parallelism_limit,
        cluster_filter=cluster_filter,
    )


async def wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
class TestApplicationController:
    """Test ApplicationController."""

    async def test_list_clusters_filters_shard(self, core_api):
        """Test only owned clusters are listed."""
        controller = make_controller(core_api, build_cluster_filter(3, 1))

        clusters = await controller.list_clusters()

        assert sorted(clusters) == ["https://a", "https://b"]
        core_api.list_namespaced_secret.assert_called_once_with(
            "argocd",
            label_selector=CLUSTER_SECRET_SELECTOR,
        )

    async def test_list_clusters_without_filter(self, core_api):
        """Test no filter lists every cluster."""
        controller = make_controller(core_api, None)

        clusters = await controller.list_clusters()

        assert len(clusters) == 3

    async def test_run_refreshes_owned_clusters(self, core_api):
        """Test run loop refreshes owned clusters until stopped."""
        controller = make_controller(core_api, build_cluster_filter(3, 1))
        stop_event = asyncio.Event()

        task = asyncio.create_task(controller.run(stop_event, 2, 1))

        def refreshed():
            try:
                controller.cache.get_cluster_info("https://a")
                controller.cache.get_cluster_info("https://b")
            except CacheMiss:
                return False
            return True

        await wait_for(refreshed)
        with pytest.raises(CacheMiss):
            controller.cache.get_cluster_info("https://c")

        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_unlimited_parallelism(self, core_api):
        """Test non-positive parallelism limit means no limit."""
        controller = make_controller(core_api, None, kubectl_parallelism_limit=0)
        stop_event = asyncio.Event()

        task = asyncio.create_task(controller.run(stop_event, 1, 1))

        def refreshed():
            try:
                controller.cache.get_cluster_info("https://c")
            except CacheMiss:
                return False
            return True

        await wait_for(refreshed)
        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_list_failure_is_logged(self, core_api):
        """Test a failing list does not stop the run loop."""
        core_api.list_namespaced_secret.side_effect = RuntimeError("unavailable")
        controller = make_controller(core_api, None)
        stop_event = asyncio.Event()

        task = asyncio.create_task(controller.run(stop_event, 1, 1))
        await wait_for(lambda: core_api.list_namespaced_secret.called)

        assert not task.done()
        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_operation_processor(self, core_api):
        """Test requested operations are processed."""
        controller = make_controller(core_api, None)
        controller.cache.set_app_managed_resources("guestbook", [{"kind": "Service"}])
        stop_event = asyncio.Event()

        task = asyncio.create_task(controller.run(stop_event, 1, 1))
        controller.request_operation("guestbook")

        def processed():
            try:
                controller.cache.get_app_managed_resources("guestbook")
            except CacheMiss:
                return True
            return False

        await wait_for(processed)
        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_zero_resync_lists_once(self, core_api):
        """Test a zero resync period lists clusters once and waits for stop."""
        controller = make_controller(core_api, None, resync=0)
        stop_event = asyncio.Event()

        task = asyncio.create_task(controller.run(stop_event, 1, 1))
        await wait_for(lambda: core_api.list_namespaced_secret.called)
        await asyncio.sleep(0.1)

        assert core_api.list_namespaced_secret.call_count == 1
        assert not task.done()

        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_pending_clusters_not_requeued(self, core_api):
        """Test a cluster already waiting for refresh is queued only once."""
        controller = make_controller(core_api, build_cluster_filter(3, 1), resync=0.01)
        stop_event = asyncio.Event()

        task = asyncio.create_task(controller.run(stop_event, 0, 1))
        await wait_for(lambda: core_api.list_namespaced_secret.call_count >= 3)

        assert controller._status_queue.qsize() == 2

        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_refreshed_cluster_requeued(self, core_api):
        """Test a cluster is queued again once it has been refreshed."""
        controller = make_controller(core_api, None, resync=0.01)
        stop_event = asyncio.Event()
        refreshed = []

        def record(server, info):
            refreshed.append(server)

        controller.cache = MagicMock()
        controller.cache.set_cluster_info.side_effect = record

        task = asyncio.create_task(controller.run(stop_event, 1, 1))
        await wait_for(lambda: refreshed.count("https://a") >= 2)

        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_cache_writes_off_event_loop(self, core_api):
        """Test cache round-trips run in worker threads."""
        controller = make_controller(core_api, None)
        stop_event = asyncio.Event()
        threads = []

        controller.cache = MagicMock()
        controller.cache.set_cluster_info.side_effect = (
            lambda server, info: threads.append(threading.get_ident())
        )
        controller.cache.delete_app_managed_resources.side_effect = (
            lambda app_name: threads.append(threading.get_ident())
        )

        task = asyncio.create_task(controller.run(stop_event, 1, 1))
        controller.request_operation("guestbook")
        await wait_for(lambda: len(threads) >= 4)

        assert threading.get_ident() not in threads

        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)
