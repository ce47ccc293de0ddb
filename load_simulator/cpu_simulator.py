import logging
import multiprocessing
import random
import time
from concurrent.futures import Executor, Future, ProcessPoolExecutor
from typing import List, NamedTuple, Optional

import psutil

from load_simulator import workloads
from load_simulator.cancellation import Cancelled, CancellationToken
from load_simulator.config import CpuSettings

logger = logging.getLogger(__name__)

LOAD_PROBABILITY = 0.9
CORE_SHARE = 0.6
POOL_SHARE = 0.7
MIN_DURATION_MS = 5000
DURATION_SPREAD_MS = 2000

# Set in each pool process by _init_worker
_worker_token: Optional[CancellationToken] = None


class CpuLoadDescriptor(NamedTuple):
    duration_ms: int
    cores: int


def _init_worker(stop_event) -> None:
    global _worker_token
    _worker_token = CancellationToken(stop_event)


def _run_in_worker(duration_ms: int, profile: str, seed: int) -> int:
    token = _worker_token or CancellationToken()
    return run_load(duration_ms, profile, random.Random(seed), token)


def _past_checkpoint(token: CancellationToken, end_time: float) -> bool:
    """Raise if cancelled; True once the deadline has passed."""
    token.check()
    return time.monotonic() >= end_time


def _steady_iteration(rng: random.Random, token: CancellationToken, end_time: float) -> None:
    workloads.sort_random_array(30000, rng)
    token.sleep((10 + rng.randrange(15)) / 1000)

    if rng.random() < 0.3:
        workloads.multiply_matrices(200, rng)
    else:
        workloads.sieve_of_primes(80000)

    token.sleep((5 + rng.randrange(10)) / 1000)


# Sizes keep a single primitive call well under a second on CPython
def _medium_iteration(rng: random.Random, token: CancellationToken, end_time: float) -> None:
    workloads.sort_random_array(50000, rng)
    if _past_checkpoint(token, end_time):
        return
    workloads.sieve_of_primes(100000)
    token.check()


def _heavy_iteration(rng: random.Random, token: CancellationToken, end_time: float) -> None:
    workloads.multiply_matrices(140, rng)
    if _past_checkpoint(token, end_time):
        return
    workloads.string_churn(5000)
    token.check()


def _very_heavy_iteration(rng: random.Random, token: CancellationToken, end_time: float) -> None:
    workloads.fibonacci_recursive(27)
    if _past_checkpoint(token, end_time):
        return
    workloads.complex_math(100_000)
    if _past_checkpoint(token, end_time):
        return
    workloads.multiply_matrices(150, rng)
    token.check()


PROFILES = {
    "steady": _steady_iteration,
    "medium": _medium_iteration,
    "heavy": _heavy_iteration,
    "very_heavy": _very_heavy_iteration,
}


def run_load(duration_ms: int, profile: str, rng: random.Random, token: CancellationToken) -> int:
    """Burn CPU with the given profile until the deadline; returns the iteration count.

    Cancelled propagates to the caller as soon as a pacing sleep is interrupted
    or a check between primitives sees the token set.
    """
    iteration = PROFILES[profile]
    end_time = time.monotonic() + duration_ms / 1000
    iterations = 0
    while time.monotonic() < end_time:
        iteration(rng, token, end_time)
        iterations += 1
    return iterations


class CpuLoadSimulator:
    """Periodically launches bursts of CPU work across a bounded process pool."""

    def __init__(self, settings: Optional[CpuSettings] = None, rng: Optional[random.Random] = None,
                 executor: Optional[Executor] = None, stop_event=None,
                 available_cores: Optional[int] = None):
        self.settings = settings or CpuSettings()
        self.rng = rng or random.Random()
        self.available_cores = available_cores or psutil.cpu_count(logical=True) or 1
        self.pool_size = self.settings.workers or max(2, int(self.available_cores * POOL_SHARE))

        if executor is None:
            stop_event = stop_event if stop_event is not None else multiprocessing.Event()
            executor = ProcessPoolExecutor(
                max_workers=self.pool_size,
                initializer=_init_worker,
                initargs=(stop_event,),
            )
        self.token = CancellationToken(stop_event)
        self.executor = executor

    def plan_load(self) -> Optional[CpuLoadDescriptor]:
        """Decide this tick's load, or None for an idle tick."""
        if self.rng.random() >= LOAD_PROBABILITY:
            return None
        duration_ms = MIN_DURATION_MS + self.rng.randrange(DURATION_SPREAD_MS)
        cores = max(2, int(self.available_cores * CORE_SHARE))
        return CpuLoadDescriptor(duration_ms=duration_ms, cores=cores)

    def on_tick(self) -> List[Future]:
        if self.token.cancelled:
            return []

        descriptor = self.plan_load()
        if descriptor is None:
            logger.info("Skipping CPU load this tick (idle period)")
            return []

        logger.info(f"Generating CPU load: cores={descriptor.cores}, "
                    f"duration={descriptor.duration_ms}ms, profile={self.settings.profile}")

        futures = []
        try:
            for _ in range(descriptor.cores):
                future = self.executor.submit(
                    _run_in_worker, descriptor.duration_ms, self.settings.profile,
                    self.rng.randrange(2**32))
                future.add_done_callback(self._log_task_result)
                futures.append(future)
        except RuntimeError as e:
            # Pool already shut down
            logger.debug(f"CPU load not submitted: {e}")
        return futures

    @staticmethod
    def _log_task_result(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if isinstance(error, Cancelled):
            logger.debug("CPU load task cancelled")
        elif error is not None:
            logger.error(f"CPU load task failed: {error}")

    def schedule(self, scheduler) -> List[str]:
        scheduler.register("cpu-load", self.settings.interval_seconds, self.on_tick)
        return ["cpu-load"]

    def shutdown(self, wait: bool = False) -> None:
        self.token.cancel()
        self.executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("CPU load simulator stopped")
