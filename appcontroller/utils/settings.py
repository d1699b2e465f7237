"""
Settings manager.

Reads controller settings from the ``argocd-cm`` ConfigMap and the
``argocd-secret`` Secret in the controller namespace, caching them until
invalidated.
"""

import asyncio
import base64
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from kubernetes.client.rest import ApiException

from appcontroller.common import ARGOCD_CONFIG_MAP_NAME, ARGOCD_SECRET_NAME
from appcontroller.utils.errors import ControllerError
from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)


class SettingsError(ControllerError):
    """Settings could not be read."""


@dataclass(frozen=True)
class Settings:
    """
    Controller settings.

    Attributes:
        config: ConfigMap data
        secrets: Decoded Secret data
    """
    config: Dict[str, str] = field(default_factory=dict)
    secrets: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.config.get(key, default)


class SettingsManager:
    """
    Settings manager bound to a namespace and the process stop signal.

    Reads go to the API server only on first use or after invalidate().
    """

    def __init__(self, core_api: Any, namespace: str, stop_event: asyncio.Event):
        """
        Initialize settings manager.

        Args:
            core_api: Kubernetes CoreV1Api
            namespace: Controller namespace
            stop_event: Process stop signal
        """
        self.namespace = namespace
        self._core_api = core_api
        self._stop_event = stop_event
        self._settings: Optional[Settings] = None
        self._lock = threading.Lock()

        logger.info("SettingsManager initialized", namespace=namespace)

    def get_settings(self) -> Settings:
        """
        Current settings.

        Raises:
            SettingsError: If the manager is stopped or the API call fails
        """
        if self._stop_event.is_set():
            raise SettingsError("settings manager is stopped")

        with self._lock:
            if self._settings is None:
                self._settings = self._load()
            return self._settings

    def invalidate(self) -> None:
        """Drop cached settings so the next read reloads them."""
        with self._lock:
            self._settings = None

    def _load(self) -> Settings:
        try:
            config_map = self._core_api.read_namespaced_config_map(
                ARGOCD_CONFIG_MAP_NAME,
                self.namespace,
            )
            config = dict(config_map.data or {})
        except ApiException as e:
            if e.status != 404:
                raise SettingsError(f"failed to read {ARGOCD_CONFIG_MAP_NAME}: {e.reason}") from e
            logger.warning("ConfigMap not found, using defaults", name=ARGOCD_CONFIG_MAP_NAME)
            config = {}

        try:
            secret = self._core_api.read_namespaced_secret(ARGOCD_SECRET_NAME, self.namespace)
            secrets = {
                key: base64.b64decode(value).decode("utf-8")
                for key, value in (secret.data or {}).items()
            }
        except ApiException as e:
            if e.status != 404:
                raise SettingsError(f"failed to read {ARGOCD_SECRET_NAME}: {e.reason}") from e
            logger.warning("Secret not found, using defaults", name=ARGOCD_SECRET_NAME)
            secrets = {}

        logger.debug("Loaded settings", keys=len(config), secret_keys=len(secrets))
        return Settings(config=config, secrets=secrets)
