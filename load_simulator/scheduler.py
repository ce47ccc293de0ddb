import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from load_simulator.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class Ticker:
    """Runs a callback at a fixed rate on its own daemon thread."""

    def __init__(self, name: str, interval_seconds: float, callback: Callable[[], None],
                 initial_delay: float = 0.0):
        if interval_seconds <= 0:
            raise ValueError(f"Ticker interval must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.initial_delay = initial_delay
        self.ticks = 0
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name=f"ticker-{self.name}", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        delay = self.initial_delay
        while not self._stopped.wait(delay):
            start_time = time.time()
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Unexpected error in {self.name} tick: {e}")
            self.ticks += 1

            elapsed_time = time.time() - start_time
            delay = max(0, self.interval_seconds - elapsed_time)
            if delay == 0:
                logger.warning(f"{self.name} tick took {elapsed_time:.2f}s, "
                               f"longer than interval of {self.interval_seconds}s")


class Scheduler:
    """Process-wide owner of every periodic trigger."""

    def __init__(self, token: Optional[CancellationToken] = None):
        self.token = token or CancellationToken()
        self._tickers: Dict[str, Ticker] = {}
        self._lock = threading.Lock()
        self._started = False

    def register(self, name: str, interval_seconds: float, callback: Callable[[], None],
                 initial_delay: float = 0.0) -> Ticker:
        with self._lock:
            if name in self._tickers:
                raise ValueError(f"Trigger already registered: {name}")
            ticker = Ticker(name, interval_seconds, callback, initial_delay)
            self._tickers[name] = ticker
            started = self._started
        logger.info(f"Registered trigger '{name}' every {interval_seconds}s")
        if started:
            ticker.start()
        return ticker

    def unregister(self, name: str, timeout: Optional[float] = None) -> bool:
        with self._lock:
            ticker = self._tickers.pop(name, None)
        if ticker is None:
            return False
        ticker.stop(timeout)
        logger.info(f"Unregistered trigger '{name}'")
        return True

    def triggers(self) -> List[str]:
        with self._lock:
            return list(self._tickers)

    def start(self) -> None:
        with self._lock:
            self._started = True
            tickers = list(self._tickers.values())
        for ticker in tickers:
            ticker.start()

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Cancel in-flight sleeps and stop every ticker."""
        self.token.cancel()
        with self._lock:
            self._started = False
            tickers = list(self._tickers.values())
        for ticker in tickers:
            ticker.stop(timeout)
