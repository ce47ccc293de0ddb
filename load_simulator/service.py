import argparse
import logging
import random
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

from load_simulator.cancellation import CancellationToken
from load_simulator.config import SimulatorConfig, load_config
from load_simulator.cpu_simulator import CpuLoadSimulator
from load_simulator.memory_simulator import MemoryUsageSimulator
from load_simulator.scheduler import Scheduler
from load_simulator.traffic_simulator import HttpTrafficSimulator


class SimulatorService:
    """Builds the enabled simulators and drives them from one scheduler."""

    def __init__(self, config_path="config.yaml", config: Optional[SimulatorConfig] = None,
                 install_signal_handlers: bool = True):
        self.config = config or self._load_config(config_path)
        self._setup_logging()
        self.running = True
        self.token = CancellationToken()
        self.scheduler = Scheduler(self.token)
        self.simulators = self._build_simulators()
        self._triggers: List[str] = []

        if install_signal_handlers:
            # Setup signal handlers for graceful shutdown
            signal.signal(signal.SIGTERM, self._signal_handler)
            signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logging.info(f"Received signal {signum}, shutting down gracefully...")
        self.running = False

    def _load_config(self, path) -> SimulatorConfig:
        """Load configuration, exiting on a missing or invalid file."""
        try:
            return load_config(path)
        except Exception as e:
            print(f"Error loading configuration: {e}")
            sys.exit(1)

    def _setup_logging(self):
        """Setup logging with file and console output."""
        log_level = getattr(logging, self.config.log_level)
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

        log_dir = Path('logs')
        log_dir.mkdir(exist_ok=True)

        logging.basicConfig(
            level=log_level,
            format=log_format,
            handlers=[
                logging.FileHandler(log_dir / 'load_simulator.log'),
                logging.StreamHandler(sys.stdout)
            ]
        )

        self.logger = logging.getLogger(__name__)

    def _build_simulators(self) -> list:
        """Construct each enabled simulator with its own seeded randomness source."""
        seeds = random.Random(self.config.seed)
        simulators = []

        if self.config.cpu.enabled:
            simulators.append(CpuLoadSimulator(
                self.config.cpu, rng=random.Random(seeds.getrandbits(64))))
        if self.config.memory.enabled:
            simulators.append(MemoryUsageSimulator(
                self.config.memory, rng=random.Random(seeds.getrandbits(64)), token=self.token))
        if self.config.traffic.enabled:
            simulators.append(HttpTrafficSimulator(
                self.config.traffic, rng=random.Random(seeds.getrandbits(64)), token=self.token))

        if not simulators:
            self.logger.warning("All simulators are disabled, nothing to do")
        return simulators

    def start(self) -> None:
        for simulator in self.simulators:
            self._triggers.extend(simulator.schedule(self.scheduler))
        self.scheduler.start()
        self.logger.info(f"Started {len(self.simulators)} simulator(s): {', '.join(self._triggers)}")

    def stop(self, timeout: float = 10.0) -> None:
        """Cancel in-flight work, deregister every trigger and close the pools."""
        self.running = False
        self.scheduler.stop(timeout)
        for name in self._triggers:
            self.scheduler.unregister(name, timeout)
        self._triggers = []
        for simulator in self.simulators:
            try:
                simulator.shutdown(wait=False)
            except Exception as e:
                self.logger.error(f"Error shutting down {type(simulator).__name__}: {e}")

    def run_once(self) -> None:
        """Fire every enabled trigger once and wait for the work to finish."""
        for simulator in self.simulators:
            if isinstance(simulator, HttpTrafficSimulator):
                simulator.generate_traffic()
            else:
                simulator.on_tick()
        for simulator in self.simulators:
            simulator.executor.shutdown(wait=True)
        self.stop()

    def run(self) -> None:
        """Main loop; returns after a shutdown signal."""
        self.logger.info("Starting Load Simulator service...")
        self.start()

        while self.running:
            try:
                time.sleep(1)
            except KeyboardInterrupt:
                self.logger.info("Received keyboard interrupt, shutting down...")
                break

        self.stop()
        self.logger.info("Load Simulator service stopped.")


def main():
    """Entry point for the load simulator service."""
    parser = argparse.ArgumentParser(description='Synthetic CPU, memory and HTTP load simulator')
    parser.add_argument('--config', '-c', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--test', '-t', action='store_true',
                        help='Run a single tick of each enabled simulator and exit')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')

    args = parser.parse_args()

    try:
        service = SimulatorService(config_path=args.config)

        if args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        if args.test:
            print("Running a single tick of each simulator...")
            service.run_once()
            print("Test completed successfully!")
        else:
            service.run()

    except Exception as e:
        print(f"Failed to start load simulator: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
