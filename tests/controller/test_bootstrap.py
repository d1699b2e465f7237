"""Tests for the controller bootstrap sequence."""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes import client

from appcontroller.cache.appstate import AppStateCache
from appcontroller.cache.client import InMemoryCache
from appcontroller.cache.twolevel import TwoLevelClient
from appcontroller.cluster import Cluster
from appcontroller.controller.bootstrap import Bootstrapper
from appcontroller.controller.options import ControllerOptions
from appcontroller.sharding.shard import accepts
from appcontroller.utils.errors import (
    ConfigurationError,
    ShardInferenceError,
    TLSConfigurationError,
)
from appcontroller.utils.kube import ClientConfig
from appcontroller.utils.tls import CertPool, TLSMode


class Recorder:
    """Shared call log for collaborators."""

    def __init__(self):
        self.calls = []


class FakeEngine:
    """Application controller stand-in that runs until stopped."""

    def __init__(self, recorder, *args):
        self.recorder = recorder
        self.args = args
        self.started = asyncio.Event()
        self.run_args = None
        self.error = None

    @property
    def cluster_filter(self):
        return self.args[-1]

    async def run(self, stop_event, status_processors, operation_processors):
        self.recorder.calls.append("run")
        self.run_args = (status_processors, operation_processors)
        self.started.set()
        if self.error is not None:
            raise self.error
        await stop_event.wait()


class RecordingDiagnostics:
    """Diagnostics collaborator recording registrations."""

    def __init__(self, recorder, fail=False):
        self.recorder = recorder
        self.fail = fail
        self.stopped = False

    def register_stack_dumper(self):
        self.recorder.calls.append("diagnostics")
        if self.fail:
            raise RuntimeError("no signals here")

    def register_heap_dumper(self, path):
        pass

    def start_stats_ticker(self, interval):
        pass

    def stop(self):
        self.stopped = True


def make_bootstrapper(
    options,
    recorder,
    inferred_shard=0,
    config_error=None,
    diagnostics_fail=False,
    engine_error=None,
):
    engines = []

    def client_config_loader(**kwargs):
        recorder.calls.append("client_config")
        if config_error is not None:
            raise config_error
        return ClientConfig(configuration=client.Configuration(), namespace="argocd")

    def kube_clients_factory(client_config):
        recorder.calls.append("kube_clients")
        return SimpleNamespace(core=MagicMock(), apps=MagicMock())

    def cert_pool_loader(*paths):
        recorder.calls.append("tls")
        raise TLSConfigurationError(f"failed to read certificate {paths[0]}")

    def cache_source():
        recorder.calls.append("cache")
        return AppStateCache(InMemoryCache())

    def engine_factory(*args):
        recorder.calls.append("engine")
        engine = FakeEngine(recorder, *args)
        engine.error = engine_error
        engines.append(engine)
        return engine

    def shard_inference():
        recorder.calls.append("inference")
        if inferred_shard is None:
            raise ShardInferenceError("hostname should end with shard number")
        return inferred_shard

    bootstrapper = Bootstrapper(
        options,
        client_config_loader=client_config_loader,
        kube_clients_factory=kube_clients_factory,
        cert_pool_loader=cert_pool_loader,
        cache_source=cache_source,
        engine_factory=engine_factory,
        diagnostics=RecordingDiagnostics(recorder, fail=diagnostics_fail),
        shard_inference=shard_inference,
    )
    return bootstrapper, engines


async def start(bootstrapper, engines):
    task = asyncio.create_task(bootstrapper.run())
    for _ in range(200):
        if engines and engines[0].started.is_set():
            break
        if task.done():
            break
        await asyncio.sleep(0.01)
    return task


@pytest.fixture
def recorder():
    """Call recorder."""
    return Recorder()


@pytest.mark.asyncio
class TestBootstrapper:
    """Test Bootstrapper."""

    async def test_sharding_disabled(self, recorder):
        """Test replicas=0 and shard=-1 never infers and accepts all clusters."""
        options = ControllerOptions(repo_server_plaintext=True, replicas=0, shard=-1)
        bootstrapper, engines = make_bootstrapper(options, recorder)

        task = await start(bootstrapper, engines)

        assert "inference" not in recorder.calls
        assert bootstrapper.cluster_filter is None
        assert engines[0].cluster_filter is None
        assert accepts(bootstrapper.cluster_filter, Cluster(server="https://a", id="x"))

        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_sharded_filter(self, recorder):
        """Test replicas=3 and shard=1 accepts partitions 1 and 4 but not 2."""
        options = ControllerOptions(repo_server_plaintext=True, replicas=3, shard=1)
        bootstrapper, engines = make_bootstrapper(options, recorder)

        task = await start(bootstrapper, engines)

        assert "inference" not in recorder.calls
        cluster_filter = engines[0].cluster_filter
        base = dict(server="https://in-cluster", name="in-cluster", id="same")
        assert cluster_filter(Cluster(shard=1, **base))
        assert cluster_filter(Cluster(shard=4, **base))
        assert not cluster_filter(Cluster(shard=2, **base))

        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_inferred_shard(self, recorder):
        """Test unset shard is inferred when sharding is enabled."""
        options = ControllerOptions(repo_server_plaintext=True, replicas=3, shard=-1)
        bootstrapper, engines = make_bootstrapper(options, recorder, inferred_shard=2)

        task = await start(bootstrapper, engines)

        assert recorder.calls.count("inference") == 1
        assert engines[0].cluster_filter(Cluster(server="https://a", shard=5))

        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_step_order(self, recorder):
        """Test collaborators are built in bootstrap order."""
        options = ControllerOptions(repo_server_plaintext=True, replicas=2, shard=-1)
        bootstrapper, engines = make_bootstrapper(options, recorder, inferred_shard=1)

        task = await start(bootstrapper, engines)
        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)

        assert recorder.calls == [
            "client_config",
            "kube_clients",
            "cache",
            "inference",
            "engine",
            "diagnostics",
            "run",
        ]

    async def test_engine_receives_collaborators(self, recorder):
        """Test engine construction and run arguments."""
        options = ControllerOptions(
            repo_server_plaintext=True,
            app_resync_period=120,
            self_heal_timeout_seconds=7,
            status_processors=4,
            operation_processors=2,
            kubectl_parallelism_limit=0,
        )
        bootstrapper, engines = make_bootstrapper(options, recorder)

        task = await start(bootstrapper, engines)

        engine = engines[0]
        assert engine.args[0] == "argocd"
        assert engine.args[1] is bootstrapper.settings_manager
        assert engine.args[4] is bootstrapper.cache
        assert engine.args[5:10] == (120.0, 7.0, 8082, 0, 0)
        assert engine.run_args == (4, 2)
        assert bootstrapper.tls_config.mode is TLSMode.DISABLED

        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)
        assert bootstrapper.diagnostics.stopped

    async def test_cache_wrapped_with_second_tier(self, recorder):
        """Test the cache client gains an in-memory tier."""
        options = ControllerOptions(repo_server_plaintext=True)
        bootstrapper, engines = make_bootstrapper(options, recorder)

        task = await start(bootstrapper, engines)

        active = bootstrapper.cache.get_client()
        assert isinstance(active, TwoLevelClient)
        assert isinstance(active.external, InMemoryCache)

        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_configuration_failure(self, recorder):
        """Test client configuration failure stops the sequence."""
        options = ControllerOptions(repo_server_plaintext=True)
        bootstrapper, engines = make_bootstrapper(
            options, recorder, config_error=ConfigurationError("no kubeconfig"),
        )

        with pytest.raises(ConfigurationError):
            await bootstrapper.run()

        assert recorder.calls == ["client_config"]
        assert engines == []

    async def test_strict_tls_failure(self, recorder):
        """Test strict TLS load failure stops before the cache is built."""
        options = ControllerOptions(repo_server_strict_tls=True, app_config_path="/nonexistent")
        bootstrapper, engines = make_bootstrapper(options, recorder)

        with pytest.raises(TLSConfigurationError):
            await bootstrapper.run()

        assert recorder.calls == ["client_config", "kube_clients", "tls"]
        assert engines == []

    async def test_strict_tls_pool(self, recorder):
        """Test strict TLS passes the loaded pool to the repo server client."""
        options = ControllerOptions(repo_server_strict_tls=True)
        pool = CertPool(certificates=("-----BEGIN CERTIFICATE-----\nx\n-----END CERTIFICATE-----",))
        bootstrapper, engines = make_bootstrapper(options, recorder)
        bootstrapper._cert_pool_loader = lambda *paths: pool

        task = await start(bootstrapper, engines)

        assert bootstrapper.repo_clientset.tls_config.certificates is pool
        assert bootstrapper.repo_clientset.tls_config.mode is TLSMode.STRICT

        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_inference_failure(self, recorder):
        """Test shard inference failure stops before the engine is built."""
        options = ControllerOptions(repo_server_plaintext=True, replicas=3, shard=-1)
        bootstrapper, engines = make_bootstrapper(options, recorder, inferred_shard=None)

        with pytest.raises(ShardInferenceError):
            await bootstrapper.run()

        assert "engine" not in recorder.calls
        assert engines == []

    async def test_diagnostics_failure_not_fatal(self, recorder):
        """Test diagnostics failures do not stop startup."""
        options = ControllerOptions(repo_server_plaintext=True)
        bootstrapper, engines = make_bootstrapper(options, recorder, diagnostics_fail=True)

        task = await start(bootstrapper, engines)

        assert engines[0].started.is_set()
        assert not task.done()

        bootstrapper.shutdown()
        await asyncio.wait_for(task, timeout=2.0)

    async def test_engine_crash_propagates(self, recorder):
        """Test a crashed run loop is raised from run()."""
        options = ControllerOptions(repo_server_plaintext=True)
        bootstrapper, engines = make_bootstrapper(
            options, recorder, engine_error=RuntimeError("informer failed"),
        )

        with pytest.raises(RuntimeError, match="informer failed"):
            await asyncio.wait_for(bootstrapper.run(), timeout=2.0)

    async def test_shutdown_before_start(self, recorder):
        """Test a shutdown requested during startup ends run() promptly."""
        options = ControllerOptions(repo_server_plaintext=True)
        bootstrapper, engines = make_bootstrapper(options, recorder)

        bootstrapper.shutdown()
        await asyncio.wait_for(bootstrapper.run(), timeout=2.0)
