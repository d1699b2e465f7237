#!/usr/bin/env python3
"""
Main entry point for running the application controller.

Usage:
    # Single replica
    python -m appcontroller.controller.main --repo-server argocd-repo-server:8081

    # One of three sharded replicas
    ARGOCD_CONTROLLER_REPLICAS=3 ARGOCD_CONTROLLER_SHARD=1 \\
        python -m appcontroller.controller.main
"""

import argparse
import asyncio
import signal
from typing import List, Optional

from appcontroller.common import (
    CLI_NAME,
    DEFAULT_APP_RESYNC_PERIOD,
    DEFAULT_CACHE_EXPIRATION,
    DEFAULT_KUBECTL_PARALLELISM_LIMIT,
    DEFAULT_PORT_METRICS,
    DEFAULT_REDIS_ADDR,
    DEFAULT_REPO_SERVER_ADDR,
    DEFAULT_REPO_SERVER_TIMEOUT_SECONDS,
    DEFAULT_SELF_HEAL_TIMEOUT_SECONDS,
    ENV_RECONCILIATION_TIMEOUT,
)
from appcontroller.controller.bootstrap import Bootstrapper
from appcontroller.controller.diagnostics import ProcessDiagnostics
from appcontroller.controller.options import ControllerOptions
from appcontroller.utils.config import Config
from appcontroller.utils.env import MAX_INT32, parse_duration, parse_duration_from_env
from appcontroller.utils.errors import ControllerError, check_error, fatal
from appcontroller.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _pre_parse_config_file(argv: Optional[List[str]]) -> Config:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--config-file")
    known, _ = parser.parse_known_args(argv)
    return Config(known.config_file)


def build_parser(config: Config) -> argparse.ArgumentParser:
    """
    Build the command-line parser.

    Args:
        config: File configuration supplying flag defaults

    Returns:
        Argument parser
    """
    parser = argparse.ArgumentParser(
        prog=CLI_NAME,
        description=(
            "Application controller: a Kubernetes controller that continuously monitors "
            "running applications and compares their live state against the desired "
            "target state."
        ),
    )

    parser.add_argument(
        '--config-file',
        type=str,
        default=None,
        help='YAML file supplying flag defaults'
    )

    parser.add_argument(
        '--app-resync',
        type=int,
        default=config.get(
            "app_resync",
            int(parse_duration_from_env(
                ENV_RECONCILIATION_TIMEOUT, DEFAULT_APP_RESYNC_PERIOD, 0, MAX_INT32,
            )),
        ),
        help='Time period in seconds for application resync'
    )

    parser.add_argument(
        '--repo-server',
        type=str,
        default=config.get("repo_server.address", DEFAULT_REPO_SERVER_ADDR),
        help='Repo server address'
    )

    parser.add_argument(
        '--repo-server-timeout-seconds',
        type=int,
        default=config.get("repo_server.timeout_seconds", DEFAULT_REPO_SERVER_TIMEOUT_SECONDS),
        help='Repo server RPC call timeout seconds'
    )

    parser.add_argument(
        '--repo-server-plaintext',
        action='store_true',
        default=config.get("repo_server.plaintext", False),
        help='Disable TLS on connections to repo server'
    )

    parser.add_argument(
        '--repo-server-strict-tls',
        action='store_true',
        default=config.get("repo_server.strict_tls", False),
        help=(
            "Whether to use strict validation of the TLS cert presented by the repo server "
            "against the mounted CA. Without it the system trust roots are used, so a "
            "self-signed repo server certificate requires --repo-server-plaintext or this flag"
        )
    )

    parser.add_argument(
        '--status-processors',
        type=int,
        default=config.get("processors.status", 1),
        help='Number of application status processors'
    )

    parser.add_argument(
        '--operation-processors',
        type=int,
        default=config.get("processors.operation", 1),
        help='Number of application operation processors'
    )

    parser.add_argument(
        '--logformat',
        type=str,
        default=config.get("logging.format", "text"),
        choices=['text', 'json'],
        help='Set the logging format'
    )

    parser.add_argument(
        '--loglevel',
        type=str,
        default=config.get("logging.level", "info"),
        choices=['debug', 'info', 'warn', 'error'],
        help='Set the logging level'
    )

    parser.add_argument(
        '--metrics-port',
        type=int,
        default=config.get("metrics.port", DEFAULT_PORT_METRICS),
        help='Start metrics server on given port'
    )

    parser.add_argument(
        '--metrics-cache-expiration',
        type=parse_duration,
        default=config.get("metrics.cache_expiration", 0),
        help='Prometheus metrics cache expiration (disabled by default, e.g. 24h)'
    )

    parser.add_argument(
        '--self-heal-timeout-seconds',
        type=int,
        default=config.get("self_heal_timeout_seconds", DEFAULT_SELF_HEAL_TIMEOUT_SECONDS),
        help='Specifies timeout between application self heal attempts'
    )

    parser.add_argument(
        '--kubectl-parallelism-limit',
        type=int,
        default=config.get("kubectl_parallelism_limit", DEFAULT_KUBECTL_PARALLELISM_LIMIT),
        help='Number of allowed concurrent kubectl fork/execs. Any value less than 1 means no limit.'
    )

    parser.add_argument(
        '--kubeconfig',
        type=str,
        default=config.get("kube.kubeconfig"),
        help='Path to a kube config. Only required if out-of-cluster'
    )

    parser.add_argument(
        '--context',
        type=str,
        default=config.get("kube.context"),
        help='The name of the kubeconfig context to use'
    )

    parser.add_argument(
        '-n', '--namespace',
        type=str,
        default=config.get("kube.namespace"),
        help='If present, the namespace scope for this CLI request'
    )

    parser.add_argument(
        '--redis',
        type=str,
        default=config.get("cache.redis", DEFAULT_REDIS_ADDR),
        help='Redis server hostname and port (e.g. argocd-redis:6379); in-memory cache when empty'
    )

    parser.add_argument(
        '--redisdb',
        type=int,
        default=config.get("cache.redisdb", 0),
        help='Redis database'
    )

    parser.add_argument(
        '--default-cache-expiration',
        type=parse_duration,
        default=config.get("cache.default_expiration", DEFAULT_CACHE_EXPIRATION),
        help='Cache expiration default (e.g. 24h)'
    )

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    config = _pre_parse_config_file(argv)
    return build_parser(config).parse_args(argv)


async def run(bootstrapper: Bootstrapper) -> None:
    """Run the bootstrapper with SIGTERM/SIGINT wired to shutdown."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, bootstrapper.shutdown)

    await bootstrapper.run()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    try:
        args = parse_args(argv)
    except ControllerError as e:
        fatal(str(e))

    configure_logging(args.loglevel, args.logformat)

    options = ControllerOptions.from_args(args)
    bootstrapper = Bootstrapper(options, diagnostics=ProcessDiagnostics())

    try:
        asyncio.run(run(bootstrapper))
    except Exception as e:
        check_error(e)


if __name__ == '__main__':
    main()
