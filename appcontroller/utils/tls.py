"""
TLS configuration for the repo server connection.

Three modes are supported:
- DISABLED: plaintext gRPC
- OPPORTUNISTIC: TLS against the system trust store
- STRICT: TLS against certificates loaded from the controller config path

Only strict mode reads certificate files, and any load failure is fatal.
"""

import os
import re
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from appcontroller.utils.errors import TLSConfigurationError
from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)

_PEM_CERTIFICATE = re.compile(
    r"-----BEGIN CERTIFICATE-----\s.+?\s-----END CERTIFICATE-----",
    re.DOTALL,
)


class TLSMode(str, Enum):
    """Repo server TLS modes."""

    DISABLED = "disabled"
    OPPORTUNISTIC = "opportunistic"
    STRICT = "strict"


@dataclass(frozen=True)
class CertPool:
    """
    Immutable pool of trusted certificates.

    Attributes:
        certificates: PEM encoded certificates
    """
    certificates: Tuple[str, ...]

    def __post_init__(self):
        if not self.certificates:
            raise TLSConfigurationError("certificate pool is empty")

    def __len__(self) -> int:
        return len(self.certificates)

    def pem_bytes(self) -> bytes:
        """Concatenated PEM bundle, as expected by gRPC root certificates."""
        return "\n".join(self.certificates).encode("ascii")


@dataclass(frozen=True)
class TLSConfiguration:
    """
    TLS settings handed to the repo server client.

    Attributes:
        disable_tls: Use plaintext
        strict_validation: Validate the server against `certificates`
        certificates: Trust pool for strict validation
    """
    disable_tls: bool = False
    strict_validation: bool = False
    certificates: Optional[CertPool] = None

    @property
    def mode(self) -> TLSMode:
        if self.disable_tls:
            return TLSMode.DISABLED
        if self.strict_validation:
            return TLSMode.STRICT
        return TLSMode.OPPORTUNISTIC


def load_x509_cert_pool(*paths: str) -> CertPool:
    """
    Load every certificate in the given PEM files into a pool.

    Args:
        *paths: PEM file paths

    Returns:
        Certificate pool

    Raises:
        TLSConfigurationError: If a file is unreadable, holds no certificate,
            or holds an unparsable certificate
    """
    certificates = []
    for path in paths:
        try:
            with open(path, "r", encoding="ascii") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise TLSConfigurationError(f"failed to read certificate {path}: {e}") from e

        blocks = _PEM_CERTIFICATE.findall(content)
        if not blocks:
            raise TLSConfigurationError(f"no certificate found in {path}")

        for block in blocks:
            try:
                ssl.PEM_cert_to_DER_cert(block)
                ssl.create_default_context(cadata=block)
            except (ValueError, ssl.SSLError) as e:
                raise TLSConfigurationError(f"invalid certificate in {path}: {e}") from e
            certificates.append(block)

    logger.debug("Loaded certificate pool", paths=list(paths), count=len(certificates))
    return CertPool(certificates=tuple(certificates))


def controller_tls_paths(config_path: str) -> Tuple[str, str]:
    """Certificate and CA paths below the controller config path."""
    tls_dir = os.path.join(config_path, "controller", "tls")
    return os.path.join(tls_dir, "tls.crt"), os.path.join(tls_dir, "ca.crt")


def prepare_tls(
    plaintext: bool,
    strict: bool,
    config_path: str,
    loader: Callable[..., CertPool] = load_x509_cert_pool,
) -> TLSConfiguration:
    """
    Build the TLS configuration for the repo server client.

    Args:
        plaintext: Disable TLS entirely
        strict: Validate the server against the controller trust pool
        config_path: Base directory holding ``controller/tls``
        loader: Certificate pool loader

    Returns:
        TLS configuration

    Raises:
        TLSConfigurationError: If strict mode cannot load its trust pool
    """
    if plaintext or not strict:
        config = TLSConfiguration(disable_tls=plaintext, strict_validation=strict)
        logger.info("Repo server TLS configured", mode=config.mode.value)
        return config

    cert_path, ca_path = controller_tls_paths(config_path)
    pool = loader(cert_path, ca_path)

    config = TLSConfiguration(
        disable_tls=False,
        strict_validation=True,
        certificates=pool,
    )
    logger.info(
        "Repo server TLS configured",
        mode=config.mode.value,
        certificates=len(pool),
    )
    return config
