import unittest
import tempfile
import os
import yaml
import sys
import pathlib

# Add the project root to the Python path
project_root = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from load_simulator.config import SimulatorConfig, load_config, parse_config


class TestConfig(unittest.TestCase):
    """Test cases for configuration loading and validation."""

    def write_config(self, data):
        temp_config = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
        yaml.dump(data, temp_config)
        temp_config.close()
        self.addCleanup(os.unlink, temp_config.name)
        return temp_config.name

    def test_defaults(self):
        """Test the default cadences, pool sizes and cap."""
        config = parse_config({})

        self.assertEqual(config.log_level, "INFO")
        self.assertIsNone(config.seed)
        self.assertEqual(config.cpu.interval_seconds, 6)
        self.assertIsNone(config.cpu.workers)
        self.assertEqual(config.cpu.profile, "steady")
        self.assertEqual(config.memory.interval_seconds, 12)
        self.assertEqual(config.memory.max_retention_mb, 400)
        self.assertEqual(config.memory.mb_bytes, 1024 * 1024)
        self.assertEqual(config.traffic.interval_seconds, 2)
        self.assertEqual(config.traffic.pattern_interval_seconds, 60)
        self.assertEqual(config.traffic.workers, 10)
        self.assertEqual(config.traffic.max_tracked_ids, 100)
        self.assertTrue(config.cpu.enabled and config.memory.enabled and config.traffic.enabled)

    def test_load_from_yaml(self):
        path = self.write_config({
            'log_level': 'debug',
            'seed': 7,
            'cpu': {'enabled': False},
            'memory': {'max_retention_mb': 200},
            'traffic': {'base_url': 'http://demo:9090/api/demo/', 'workers': 4},
        })

        config = load_config(path)

        self.assertEqual(config.log_level, "DEBUG")
        self.assertEqual(config.seed, 7)
        self.assertFalse(config.cpu.enabled)
        self.assertEqual(config.memory.max_retention_mb, 200)
        self.assertEqual(config.traffic.base_url, "http://demo:9090/api/demo")
        self.assertEqual(config.traffic.workers, 4)

    def test_empty_sections(self):
        path = self.write_config({'cpu': None, 'memory': None})

        config = load_config(path)

        self.assertEqual(config.cpu.interval_seconds, 6)
        self.assertEqual(config.memory.workers, 2)

    def test_empty_file(self):
        path = self.write_config(None)

        self.assertIsInstance(load_config(path), SimulatorConfig)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config("/nonexistent/config.yaml")

    def test_invalid_values(self):
        """Test validation of out-of-range and unknown values."""
        invalid = [
            {'cpu': {'profile': 'extreme'}},
            {'cpu': {'interval_seconds': 0}},
            {'memory': {'max_retention_mb': -1}},
            {'traffic': {'base_url': 'localhost:8080'}},
            {'traffic': {'workers': 0}},
            {'log_level': 'LOUD'},
        ]
        for raw in invalid:
            with self.assertRaises(ValueError, msg=str(raw)):
                parse_config(raw)

    def test_non_mapping_root(self):
        with self.assertRaises(ValueError):
            parse_config(["not", "a", "mapping"])


if __name__ == '__main__':
    unittest.main()
