import gc
import logging
import random
import threading
import time
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import psutil

from load_simulator.cancellation import Cancelled, CancellationToken
from load_simulator.config import MemorySettings
from load_simulator.registry import MemoryRetentionPools

logger = logging.getLogger(__name__)

LARGE_ALLOCATION_STEP_MB = 50
SPIKE_CHUNK_MB = 10
GRAPH_MAX_DEPTH = 5

_LETTERS = bytes(ord('a') + b % 26 for b in range(256))


class MemoryPattern(Enum):
    SPIKE = "spike"
    GROWTH = "growth"
    OBJECT_GRAPH = "object_graph"
    FRAGMENTATION = "fragmentation"
    DATA_PROCESSING = "data_processing"
    CLEANUP = "cleanup"


class MemoryUsageSimulator:
    """Cycles through memory allocation patterns under a retention cap.

    Sizes are expressed in MB-equivalents; ``settings.mb_bytes`` says how many
    real bytes one MB-equivalent allocates. Everything retained is tracked in
    ``pools`` with its nominal size, which is what the cap is checked against.
    Spikes are never retained, so they may temporarily exceed the cap.
    """

    def __init__(self, settings: Optional[MemorySettings] = None, rng: Optional[random.Random] = None,
                 token: Optional[CancellationToken] = None, executor: Optional[Executor] = None,
                 pools: Optional[MemoryRetentionPools] = None):
        self.settings = settings or MemorySettings()
        self.rng = rng or random.Random()
        self.token = token or CancellationToken()
        self.pools = pools or MemoryRetentionPools()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.workers, thread_name_prefix="memory-sim")
        self.cancelled = False
        self._lock = threading.Lock()
        self._reserved_mb = 0.0
        self._handlers = {
            MemoryPattern.SPIKE: self.simulate_massive_spike,
            MemoryPattern.GROWTH: self.simulate_aggressive_growth,
            MemoryPattern.OBJECT_GRAPH: self.simulate_complex_object_graph,
            MemoryPattern.FRAGMENTATION: self.simulate_memory_fragmentation,
            MemoryPattern.DATA_PROCESSING: self.simulate_data_processing_heap,
            MemoryPattern.CLEANUP: self.cleanup_most_memory,
        }

    @property
    def mb(self) -> int:
        return self.settings.mb_bytes

    @property
    def cap_mb(self) -> float:
        return self.settings.max_retention_mb

    def on_tick(self) -> Optional[Future]:
        if self.token.cancelled:
            return None
        try:
            pattern = self.choose_pattern()
            return self.executor.submit(self.run_pattern, pattern)
        except RuntimeError as e:
            logger.debug(f"Memory pattern not submitted: {e}")
        except Exception as e:
            logger.error(f"Unexpected error scheduling memory pattern: {e}")
        return None

    def choose_pattern(self) -> MemoryPattern:
        return self.rng.choice(list(MemoryPattern))

    def run_pattern(self, pattern: MemoryPattern) -> Any:
        """Run one pattern; never raises."""
        try:
            return self._handlers[pattern]()
        except Cancelled:
            self.cancelled = True
            logger.warning(f"Memory pattern {pattern.value} interrupted, abandoning remaining work")
        except Exception as e:
            logger.error(f"Memory pattern {pattern.value} failed: {e}")
        finally:
            self.log_memory_state()
        return None

    def estimate_mb(self) -> float:
        return self.pools.estimate_mb()

    def _reserve(self, requested_mb: float) -> float:
        """Claim up to ``requested_mb`` of headroom under the cap."""
        with self._lock:
            headroom = self.cap_mb - self.pools.estimate_mb() - self._reserved_mb
            granted = max(0.0, min(float(requested_mb), headroom))
            self._reserved_mb += granted
            return granted

    def _release(self, granted_mb: float) -> None:
        with self._lock:
            self._reserved_mb = max(0.0, self._reserved_mb - granted_mb)

    def _random_bytes(self, size: int) -> bytes:
        return self.rng.randbytes(size)

    def _random_text(self, length: int) -> str:
        return self.rng.randbytes(length).translate(_LETTERS).decode('ascii')

    def simulate_massive_spike(self) -> int:
        """Allocate a short-lived spike, hold it briefly, then drop it."""
        spike_mb = 100 + self.rng.randrange(200)
        logger.info(f"Generating memory spike of {spike_mb} MB")

        temporary = []
        try:
            for i in range(0, spike_mb, SPIKE_CHUNK_MB):
                chunk_mb = min(SPIKE_CHUNK_MB, spike_mb - i)
                size = chunk_mb * self.mb
                # Random content keeps the pages from being shared or compressed
                if self.rng.randrange(3) == 0:
                    temporary.append(self._random_bytes(size))
                else:
                    temporary.append(bytearray(size))
                self.token.sleep(0.02)

            logger.info(f"Memory spike peak reached at {spike_mb} MB, holding briefly...")
            self.token.sleep(2 + self.rng.randrange(3000) / 1000)
            logger.info("Releasing spike memory")
            return len(temporary)
        finally:
            temporary.clear()

    def simulate_aggressive_growth(self) -> float:
        """Grow the primary holder in large steps up to the retention cap."""
        target_mb = 50 + self.rng.randrange(150)
        current_mb = self.estimate_mb()
        granted_mb = self._reserve(target_mb)
        if granted_mb <= 0:
            logger.info(f"Memory retention limit reached ({self.cap_mb}MB), skipping growth")
            return 0.0

        logger.info(f"Growing memory by {granted_mb:.0f} MB (current: ~{current_mb:.0f} MB)")
        grown_mb = 0.0
        try:
            while grown_mb < granted_mb:
                chunk_mb = min(LARGE_ALLOCATION_STEP_MB, granted_mb - grown_mb)
                size = int(chunk_mb * self.mb)
                if self.rng.random() < 0.5:
                    self.pools.primary.add(self._random_bytes(size), chunk_mb)
                else:
                    self.pools.primary.add(self._random_text(size // 4), chunk_mb)
                grown_mb += chunk_mb
                self.token.sleep(0.1)
        finally:
            self._release(granted_mb)

        logger.info(f"Finished memory growth, now retaining approximately {self.estimate_mb():.0f} MB")
        return grown_mb

    def simulate_complex_object_graph(self) -> int:
        """Build nested trees of buffers and keep them in the long-lived cache."""
        graph_mb = self._reserve(40 + self.rng.randrange(60))
        if graph_mb <= 0:
            logger.info("No retention headroom left for an object graph, skipping")
            return 0

        root_objects = 10 + self.rng.randrange(20)
        bytes_per_root = int(graph_mb * self.mb) // root_objects
        stamp = int(time.time() * 1000)
        logger.info(f"Creating complex object graph of ~{graph_mb:.0f} MB across {root_objects} roots")

        created = 0
        try:
            for i in range(root_objects):
                root = self._build_graph_node(bytes_per_root, 0, GRAPH_MAX_DEPTH)
                self.pools.cache.add(root, graph_mb / root_objects, key=f"graph-root-{stamp}-{i}")
                created += 1
                self.token.sleep(0.05)
        finally:
            self._release(graph_mb)

        logger.info(f"Complex object graph created, estimated size: {graph_mb:.0f} MB")
        return created

    def _build_graph_node(self, total_bytes: int, depth: int, max_depth: int) -> Dict[str, Any]:
        node: Dict[str, Any] = {}
        min_node_bytes = max(1, self.mb // 100)

        if depth >= max_depth or total_bytes < min_node_bytes:
            node["data"] = self._random_bytes(max(0, total_bytes))
            return node

        this_node_bytes = total_bytes // 10
        node["nodeData"] = self._random_bytes(this_node_bytes)

        num_children = 3 + self.rng.randrange(7)
        bytes_per_child = (total_bytes - this_node_bytes) // num_children
        for i in range(num_children):
            if self.rng.random() < 0.7:
                node[f"child-{i}"] = self._build_graph_node(bytes_per_child, depth + 1, max_depth)
            else:
                node[f"child-{i}"] = self._random_bytes(bytes_per_child)
        return node

    def simulate_memory_fragmentation(self) -> Tuple[int, int]:
        """Fill volatile memory with small fragments, then free every other one.

        Returns (fragments created, fragments discarded).
        """
        total_mb = self._reserve(30 + self.rng.randrange(70))
        avg_fragment_bytes = max(1, self.mb // 16)
        num_fragments = int(total_mb * self.mb) // avg_fragment_bytes
        if num_fragments == 0:
            self._release(total_mb)
            logger.info("No retention headroom left for fragmentation, skipping")
            return 0, 0

        logger.info(f"Simulating memory fragmentation across {total_mb:.0f} MB "
                    f"with {num_fragments} fragments")
        fragments: List[Any] = []
        try:
            min_size = max(1, self.mb // 32)
            for i in range(num_fragments):
                size = min_size + self.rng.randrange(avg_fragment_bytes)
                if self.rng.randrange(5) == 0:
                    fragments.append(self._random_bytes(size))
                else:
                    fragments.append(bytearray(size))
                if i % 1000 == 0:
                    self.token.sleep(0.05)

            self.pools.volatile.add_all(fragments, total_mb / num_fragments)
        finally:
            self._release(total_mb)
        logger.info(f"Memory fragmentation complete: {len(fragments)} fragments created")

        self.token.sleep(5 + self.rng.randrange(5000) / 1000)

        to_discard = len(fragments) // 2
        logger.info(f"Discarding {to_discard} fragments to create fragmentation")
        discarded = self.pools.volatile.discard_alternating(to_discard)
        return len(fragments), discarded

    def simulate_data_processing_heap(self) -> int:
        """Build row tables plus id and timestamp indexes, then hold them."""
        batch_mb = self._reserve(80 + self.rng.randrange(120))
        if batch_mb <= 0:
            logger.info("No retention headroom left for data processing, skipping")
            return 0

        try:
            num_tables = 3 + self.rng.randrange(5)
            mb_per_table = batch_mb / num_tables
            logger.info(f"Creating {num_tables} data tables with ~{mb_per_table:.0f}MB each")

            tables = []
            for t in range(num_tables):
                row_size = 1024 + self.rng.randrange(2048)
                num_rows = int(mb_per_table * self.mb) // row_size
                tables.append(self._build_table(num_rows))
                logger.info(f"Created table {t} with {num_rows} rows")

            self.pools.primary.add_all(tables, mb_per_table)

            logger.info("Creating indexes and aggregations on data")
            for table in tables:
                id_index, time_index = self._index_table(table)
                # Indexes share the row objects, so they add no nominal size
                self.pools.primary.add(id_index, 0.0)
                self.pools.primary.add(time_index, 0.0)
        finally:
            self._release(batch_mb)

        logger.info("Data processing heap created and indexed")
        self.token.sleep(10 + self.rng.randrange(20000) / 1000)
        return len(tables)

    def _build_table(self, num_rows: int) -> List[Dict[str, Any]]:
        table = []
        for r in range(num_rows):
            table.append({
                "id": str(uuid.UUID(int=self.rng.getrandbits(128), version=4)),
                "timestamp": int(time.time() * 1000),
                "value": self.rng.random() * 1000,
                "data": self._random_bytes(512 + self.rng.randrange(1024)),
                "text": self._random_text(100 + self.rng.randrange(400)),
            })
            if r % 10000 == 0:
                self.token.sleep(0.01)
        return table

    @staticmethod
    def _index_table(table: List[Dict[str, Any]]) -> Tuple[Dict[str, Dict], Dict[int, List[Dict]]]:
        id_index = {}
        time_index: Dict[int, List[Dict]] = {}
        for row in table:
            id_index[row["id"]] = row
            time_index.setdefault(row["timestamp"], []).append(row)
        return id_index, time_index

    def cleanup_most_memory(self) -> Dict[str, int]:
        """Drop 70-95% of retained entries and all volatile fragments."""
        logger.info(f"Performing extensive memory cleanup. Current usage: ~{self.estimate_mb():.0f} MB")
        clear_percentage = 0.7 + self.rng.random() * 0.25

        primary_cleared = self.pools.primary.evict_oldest(int(len(self.pools.primary) * clear_percentage))
        cache_cleared = self.pools.cache.evict_oldest(int(len(self.pools.cache) * clear_percentage))
        volatile_cleared = self.pools.volatile.clear()

        logger.info(f"Memory cleanup complete. Cleared {primary_cleared} from main holder, "
                    f"{cache_cleared} from cache, and {volatile_cleared} from volatile")
        gc.collect()
        return {"primary": primary_cleared, "cache": cache_cleared, "volatile": volatile_cleared}

    def log_memory_state(self) -> None:
        try:
            info = psutil.Process().memory_info()
            logger.info(f"Memory State - RSS: {info.rss // (1024 * 1024)}MB, "
                        f"VMS: {info.vms // (1024 * 1024)}MB, "
                        f"Retained estimate: ~{self.estimate_mb():.0f}MB (cap {self.cap_mb:.0f}MB)")
        except (psutil.Error, OSError) as e:
            logger.warning(f"Could not read process memory info: {e}")
        counts = self.pools.counts()
        logger.info(f"Object counts - Main: {counts['primary']}, Cache: {counts['cache']}, "
                    f"Volatile: {counts['volatile']}")

    def schedule(self, scheduler) -> List[str]:
        scheduler.register("memory-usage", self.settings.interval_seconds, self.on_tick)
        return ["memory-usage"]

    def shutdown(self, wait: bool = False) -> None:
        self.token.cancel()
        self.executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Memory usage simulator stopped")
