"""Memory admission control for retrieval on small-memory hosts."""

import asyncio
import gc
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import psutil

from shared.helper.HelperConfig import HelperConfig


class ResourceGovernor:
    """Best-effort memory governor.

    Tracks the estimated cost of in-flight retrievals on top of the measured
    process RSS. A refused admission does not fail the caller: the governor
    pauses, asks the interpreter to collect garbage, pauses again and then
    lets the work proceed.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        memory_probe: Callable[[], float] | None = None,
        pause_before_gc: float | None = None,
        pause_after_gc: float | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._process = psutil.Process(os.getpid())
        self._memory_probe = memory_probe or self._probe_rss_mb
        self._reserved_mb = 0.0
        self.default_threshold_mb = helper_config.get_float_val("CONTEXT_MEMORY_THRESHOLD_MB", default=400)
        self._pause_before_gc = pause_before_gc if pause_before_gc is not None else helper_config.get_float_val("MEMORY_RELIEF_PAUSE_BEFORE", default=2.0)
        self._pause_after_gc = pause_after_gc if pause_after_gc is not None else helper_config.get_float_val("MEMORY_RELIEF_PAUSE_AFTER", default=1.0)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _probe_rss_mb(self) -> float:
        return self._process.memory_info().rss / (1024 * 1024)

    def get_memory_usage_mb(self) -> float:
        """Return the measured memory usage of this process in MB."""
        return float(self._memory_probe())

    def get_reserved_mb(self) -> float:
        return self._reserved_mb

    ##########################################
    ############## ADMISSION #################
    ##########################################

    def try_acquire(self, estimated_cost_mb: float, threshold_mb: float | None = None) -> bool:
        """Reserve ``estimated_cost_mb`` if it fits below the threshold.

        Args:
            estimated_cost_mb (float): Expected additional memory of the work.
            threshold_mb (float | None): Ceiling in MB; defaults to CONTEXT_MEMORY_THRESHOLD_MB.

        Returns:
            bool: True if the reservation was made, False if it would exceed the ceiling.
        """
        threshold = self.default_threshold_mb if threshold_mb is None else threshold_mb
        projected = self.get_memory_usage_mb() + self._reserved_mb + estimated_cost_mb
        if projected > threshold:
            return False
        self._reserved_mb += estimated_cost_mb
        return True

    def release(self, estimated_cost_mb: float) -> None:
        """Return a reservation made by try_acquire()."""
        self._reserved_mb = max(0.0, self._reserved_mb - estimated_cost_mb)

    async def relieve_pressure(self) -> None:
        """Pause, collect garbage, pause again."""
        await asyncio.sleep(self._pause_before_gc)
        collected = gc.collect()
        self.logging.debug("Garbage collection reclaimed %d objects.", collected)
        await asyncio.sleep(self._pause_after_gc)

    @asynccontextmanager
    async def admission(self, estimated_cost_mb: float, threshold_mb: float | None = None) -> AsyncIterator[bool]:
        """Hold a reservation for the duration of the block.

        Yields True when the work was admitted under the threshold and False when
        it proceeds over it after a relief attempt.
        """
        admitted = self.try_acquire(estimated_cost_mb, threshold_mb)
        if not admitted:
            self.logging.warning(
                "Memory usage high (%.1fMB used, %.1fMB reserved), waiting for memory relief...",
                self.get_memory_usage_mb(), self._reserved_mb,
            )
            await self.relieve_pressure()
            admitted = self.try_acquire(estimated_cost_mb, threshold_mb)
            if not admitted:
                self.logging.warning("Memory still above threshold after relief, proceeding anyway.")
                self._reserved_mb += estimated_cost_mb
        try:
            yield admitted
        finally:
            self.release(estimated_cost_mb)
