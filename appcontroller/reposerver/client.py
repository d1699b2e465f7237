"""
Repo server client.

Manages the gRPC channel to the manifest rendering service, honouring the
TLS configuration prepared at startup.
"""

import asyncio
from typing import Optional

import grpc

from appcontroller.utils.logging import get_logger
from appcontroller.utils.tls import TLSConfiguration, TLSMode

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 100 * 1024 * 1024

CHANNEL_OPTIONS = [
    ("grpc.max_send_message_length", MAX_MESSAGE_LENGTH),
    ("grpc.max_receive_message_length", MAX_MESSAGE_LENGTH),
    ("grpc.keepalive_time_ms", 10000),
    ("grpc.keepalive_timeout_ms", 5000),
    ("grpc.http2.max_pings_without_data", 0),
    ("grpc.initial_reconnect_backoff_ms", 1000),
    ("grpc.max_reconnect_backoff_ms", 10000),
]


class RepoServerClientset:
    """
    Client factory for the repo server.

    Manages a single gRPC channel with:
    - Lazy creation on first use
    - Recreation when the channel has failed
    - A per-call timeout shared by all requests
    """

    def __init__(
        self,
        address: str,
        timeout_seconds: int,
        tls_config: TLSConfiguration,
    ):
        """
        Initialize clientset.

        Args:
            address: Repo server address (host:port)
            timeout_seconds: RPC call timeout, <= 0 for none
            tls_config: TLS configuration
        """
        self.address = address
        self.timeout_seconds = timeout_seconds
        self.tls_config = tls_config
        self._channel: Optional[grpc.aio.Channel] = None
        self._lock = asyncio.Lock()

        logger.info(
            "RepoServerClientset initialized",
            address=address,
            timeout_seconds=timeout_seconds,
            tls_mode=tls_config.mode.value,
        )

    @property
    def timeout(self) -> Optional[float]:
        """Per-call timeout in seconds, None for no timeout."""
        if self.timeout_seconds <= 0:
            return None
        return float(self.timeout_seconds)

    def _credentials(self) -> grpc.ChannelCredentials:
        if self.tls_config.mode is TLSMode.STRICT:
            return grpc.ssl_channel_credentials(
                root_certificates=self.tls_config.certificates.pem_bytes(),
            )
        return grpc.ssl_channel_credentials()

    def _create_channel(self) -> grpc.aio.Channel:
        if self.tls_config.disable_tls:
            return grpc.aio.insecure_channel(self.address, options=CHANNEL_OPTIONS)
        return grpc.aio.secure_channel(
            self.address,
            self._credentials(),
            options=CHANNEL_OPTIONS,
        )

    async def new_channel(self) -> grpc.aio.Channel:
        """
        Get or create the channel to the repo server.

        Returns:
            gRPC channel
        """
        async with self._lock:
            if self._channel is not None:
                state = self._channel.get_state(try_to_connect=False)
                if state != grpc.ChannelConnectivity.SHUTDOWN:
                    return self._channel

                logger.info("Repo server channel shut down, recreating", address=self.address)
                self._channel = None

            self._channel = self._create_channel()
            logger.info(
                "Created channel to repo server",
                address=self.address,
                tls_mode=self.tls_config.mode.value,
            )
            return self._channel

    async def close(self) -> None:
        """Close the channel."""
        async with self._lock:
            if self._channel is not None:
                await self._channel.close()
                self._channel = None
                logger.info("Closed repo server channel", address=self.address)
