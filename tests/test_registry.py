import unittest
import random
import threading
import sys
import pathlib

# Add the project root to the Python path
project_root = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from load_simulator.registry import MemoryRetentionPools, ResourceIdRegistry, RetentionPool


class TestResourceIdRegistry(unittest.TestCase):
    """Test cases for the bounded resource id registry."""

    def test_fifo_eviction(self):
        """Test that the oldest ids go first once capacity is exceeded."""
        registry = ResourceIdRegistry(capacity=100)

        evicted = []
        for i in range(150):
            evicted.extend(registry.add(f"id-{i}"))

        self.assertEqual(len(registry), 100)
        self.assertEqual(evicted, [f"id-{i}" for i in range(50)])
        self.assertEqual(registry.snapshot()[0], "id-50")
        self.assertEqual(registry.snapshot()[-1], "id-149")

    def test_duplicate_add_is_ignored(self):
        registry = ResourceIdRegistry(capacity=3)
        registry.add("a")
        registry.add("a")

        self.assertEqual(registry.snapshot(), ["a"])

    def test_remove(self):
        """Test removal affects only the given id."""
        registry = ResourceIdRegistry()
        for resource_id in ("a", "b", "c"):
            registry.add(resource_id)

        self.assertTrue(registry.remove("b"))
        self.assertFalse(registry.remove("b"))
        self.assertEqual(registry.snapshot(), ["a", "c"])

    def test_choice(self):
        registry = ResourceIdRegistry()
        rng = random.Random(5)

        self.assertIsNone(registry.choice(rng))

        registry.add("a")
        registry.add("b")
        seen = {registry.choice(rng) for _ in range(100)}
        self.assertEqual(seen, {"a", "b"})

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            ResourceIdRegistry(capacity=0)

    def test_concurrent_adds_respect_capacity(self):
        """Test the cap holds under concurrent writers."""
        registry = ResourceIdRegistry(capacity=100)

        def writer(prefix):
            for i in range(1000):
                registry.add(f"{prefix}-{i}")
                if i % 3 == 0:
                    registry.remove(f"{prefix}-{i - 1}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertLessEqual(len(registry), 100)
        self.assertEqual(len(set(registry.snapshot())), len(registry))


class TestRetentionPool(unittest.TestCase):
    """Test cases for the retention pools."""

    def _pool_with(self, count):
        pool = RetentionPool("test")
        for i in range(count):
            pool.add(i, 1.0)
        return pool

    def test_evict_oldest(self):
        pool = self._pool_with(10)

        self.assertEqual(pool.evict_oldest(4), 4)
        self.assertEqual(pool.snapshot(), [4, 5, 6, 7, 8, 9])
        self.assertEqual(pool.evict_oldest(100), 6)
        self.assertEqual(len(pool), 0)

    def test_discard_alternating(self):
        """Test that every other entry from the front is dropped."""
        pool = self._pool_with(10)

        self.assertEqual(pool.discard_alternating(5), 5)
        self.assertEqual(pool.snapshot(), [1, 3, 5, 7, 9])

    def test_discard_alternating_odd_length(self):
        pool = self._pool_with(7)

        pool.discard_alternating(7 // 2)

        self.assertEqual(len(pool), 7 - 7 // 2)
        self.assertEqual(pool.snapshot(), [1, 3, 5, 6])

    def test_discard_alternating_on_short_pool(self):
        pool = self._pool_with(3)

        self.assertEqual(pool.discard_alternating(5), 2)
        self.assertEqual(pool.snapshot(), [1])

    def test_keyed_entries(self):
        pool = RetentionPool("cache")
        pool.add({"x": 1}, 2.5, key="root-1")
        pool.add({"y": 2}, 1.5, key="root-2")

        self.assertEqual(pool.get("root-1"), {"x": 1})
        self.assertIsNone(pool.get("missing"))
        self.assertEqual(pool.keys(), ["root-1", "root-2"])
        self.assertAlmostEqual(pool.retained_mb(), 4.0)

    def test_clear(self):
        pool = self._pool_with(5)

        self.assertEqual(pool.clear(), 5)
        self.assertEqual(pool.retained_mb(), 0)

    def test_memory_retention_pools_estimate(self):
        pools = MemoryRetentionPools()
        pools.primary.add(b"a", 10)
        pools.cache.add(b"b", 5, key="k")
        pools.volatile.add_all([b"c", b"d"], 0.5)

        self.assertAlmostEqual(pools.estimate_mb(), 16.0)
        self.assertEqual(pools.counts(), {"primary": 1, "cache": 1, "volatile": 2})


if __name__ == '__main__':
    unittest.main()
