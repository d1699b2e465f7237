"""
Controller error types and fatal-exit helpers.

Library code raises one of the ControllerError subclasses; only the process
entrypoint turns them into a logged line and a non-zero exit.
"""

from typing import NoReturn, Optional

from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)

ERROR_GENERIC = 1


class ControllerError(Exception):
    """Base class for controller startup failures."""


class ConfigurationError(ControllerError):
    """Client configuration or namespace could not be resolved."""


class TLSConfigurationError(ControllerError):
    """Trust material required for strict TLS could not be loaded."""


class ShardInferenceError(ControllerError):
    """Shard index was not configured and could not be inferred."""


def fatal(message: str, exit_code: int = ERROR_GENERIC, **context) -> NoReturn:
    """
    Log a single error line and terminate the process.

    Args:
        message: Error message
        exit_code: Process exit status
        **context: Structured context for the log line
    """
    logger.error(message, **context)
    raise SystemExit(exit_code)


def check_error(err: Optional[BaseException]) -> None:
    """Exit the process if err is set."""
    if err is not None:
        fatal(str(err), error_type=type(err).__name__)
