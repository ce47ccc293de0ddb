import unittest
import tempfile
import os
import yaml
from unittest.mock import patch, MagicMock
import sys
import pathlib

# Add the project root to the Python path
project_root = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from load_simulator.config import parse_config
from load_simulator.cpu_simulator import CpuLoadSimulator
from load_simulator.memory_simulator import MemoryUsageSimulator
from load_simulator.service import SimulatorService
from load_simulator.traffic_simulator import HttpTrafficSimulator


class TestSimulatorService(unittest.TestCase):
    """Test cases for the SimulatorService class."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_config = {
            'log_level': 'INFO',
            'seed': 1234,
            'cpu': {'enabled': False},
            'memory': {'enabled': True, 'mb_bytes': 1024},
            'traffic': {'enabled': True, 'base_url': 'http://localhost:8099/api/demo'},
        }

        # Create temporary config file
        self.temp_config = tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False)
        yaml.dump(self.test_config, self.temp_config)
        self.temp_config.close()

    def tearDown(self):
        """Clean up test fixtures."""
        os.unlink(self.temp_config.name)

    def make_service(self):
        service = SimulatorService(config_path=self.temp_config.name, install_signal_handlers=False)
        self.addCleanup(service.stop, 1.0)
        return service

    def test_config_loading(self):
        service = self.make_service()

        self.assertEqual(service.config.seed, 1234)
        self.assertFalse(service.config.cpu.enabled)
        self.assertEqual(service.config.memory.mb_bytes, 1024)

    def test_missing_config_exits(self):
        with self.assertRaises(SystemExit):
            SimulatorService(config_path="/nonexistent/config.yaml", install_signal_handlers=False)

    def test_invalid_config_exits(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump({'cpu': {'profile': 'nonsense'}}, f)
        self.addCleanup(os.unlink, f.name)

        with self.assertRaises(SystemExit):
            SimulatorService(config_path=f.name, install_signal_handlers=False)

    def test_only_enabled_simulators_are_built(self):
        service = self.make_service()

        kinds = [type(simulator) for simulator in service.simulators]
        self.assertEqual(kinds, [MemoryUsageSimulator, HttpTrafficSimulator])
        self.assertFalse(any(isinstance(s, CpuLoadSimulator) for s in service.simulators))

    def test_simulators_share_shutdown_token(self):
        service = self.make_service()

        for simulator in service.simulators:
            self.assertIs(simulator.token, service.token)
        self.assertIs(service.scheduler.token, service.token)

    def test_seed_makes_simulators_reproducible(self):
        first = self.make_service()
        second = self.make_service()

        for a, b in zip(first.simulators, second.simulators):
            self.assertEqual(a.rng.random(), b.rng.random())

    def test_start_registers_and_stop_deregisters(self):
        """Test every trigger is registered at start and removed at stop."""
        service = self.make_service()

        with patch.object(service.scheduler, 'start') as mock_start:
            service.start()
            mock_start.assert_called_once()

        self.assertEqual(
            sorted(service.scheduler.triggers()),
            ["memory-usage", "traffic-generation", "traffic-pattern"]
        )

        service.stop(timeout=1.0)

        self.assertEqual(service.scheduler.triggers(), [])
        self.assertTrue(service.token.cancelled)
        self.assertFalse(service.running)

    def test_stop_survives_failing_simulator(self):
        service = self.make_service()
        broken = MagicMock()
        broken.shutdown.side_effect = RuntimeError("already closed")
        service.simulators.append(broken)

        service.stop(timeout=1.0)

        broken.shutdown.assert_called_once()

    def test_signal_handling(self):
        """Test graceful shutdown signal handling."""
        service = self.make_service()

        service._signal_handler(15, None)  # SIGTERM

        self.assertFalse(service.running)

    def test_explicit_config_object(self):
        config = parse_config({'cpu': {'enabled': False}, 'memory': {'enabled': False},
                               'traffic': {'enabled': False}})

        service = SimulatorService(config=config, install_signal_handlers=False)

        self.assertEqual(service.simulators, [])


if __name__ == '__main__':
    unittest.main()
