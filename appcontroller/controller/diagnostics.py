"""
Process diagnostics.

Stack dumps on SIGUSR1, heap snapshots on SIGUSR2 and a periodic stats log.
Allocation tracing starts on the first SIGUSR2; later signals write snapshots.
Registration is best-effort: failures are logged and never abort startup.
"""

import asyncio
import faulthandler
import gc
import resource
import signal
import sys
import tracemalloc
from typing import Optional, Protocol

from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)


class Diagnostics(Protocol):
    """Process-wide diagnostic hooks."""

    def register_stack_dumper(self) -> None: ...

    def register_heap_dumper(self, path: str) -> None: ...

    def start_stats_ticker(self, interval: float) -> None: ...

    def stop(self) -> None: ...


class NoopDiagnostics:
    """Diagnostics that install nothing."""

    def register_stack_dumper(self) -> None:
        pass

    def register_heap_dumper(self, path: str) -> None:
        pass

    def start_stats_ticker(self, interval: float) -> None:
        pass

    def stop(self) -> None:
        pass


class ProcessDiagnostics:
    """Signal-driven dumps and a periodic stats log for this process."""

    def __init__(self):
        self._ticker: Optional[asyncio.Task] = None

    def register_stack_dumper(self) -> None:
        """Dump all thread stacks to stderr on SIGUSR1."""
        try:
            faulthandler.register(signal.SIGUSR1, file=sys.stderr, all_threads=True)
        except (AttributeError, RuntimeError, ValueError, OSError) as e:
            logger.warning("Failed to register stack dumper", error=str(e))
            return
        logger.debug("Registered stack dumper", signal="SIGUSR1")

    def register_heap_dumper(self, path: str) -> None:
        """Start allocation tracing on SIGUSR2, then write snapshots to path."""

        def dump(signum, frame):
            if not tracemalloc.is_tracing():
                tracemalloc.start()
                logger.info("Started heap tracing", signal="SIGUSR2")
                return
            try:
                tracemalloc.take_snapshot().dump(path)
            except OSError as e:
                logger.warning("Failed to write heap profile", path=path, error=str(e))
                return
            logger.info("Wrote heap profile", path=path)

        try:
            signal.signal(signal.SIGUSR2, dump)
        except (AttributeError, RuntimeError, ValueError, OSError) as e:
            logger.warning("Failed to register heap dumper", error=str(e))
            return
        logger.debug("Registered heap dumper", signal="SIGUSR2", path=path)

    def start_stats_ticker(self, interval: float) -> None:
        """Log memory and GC statistics every interval seconds."""
        try:
            self._ticker = asyncio.get_running_loop().create_task(self._tick(interval))
        except RuntimeError as e:
            logger.warning("Failed to start stats ticker", error=str(e))

    async def _tick(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            usage = resource.getrusage(resource.RUSAGE_SELF)
            current, peak = tracemalloc.get_traced_memory()
            logger.info(
                "Process stats",
                max_rss_kb=usage.ru_maxrss,
                traced_bytes=current,
                traced_peak_bytes=peak,
                gc_counts=gc.get_count(),
                tasks=len(asyncio.all_tasks()),
            )

    def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
