import logging
import random
import threading
import time
import uuid
from collections import Counter
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from load_simulator.api_client import DemoApiClient, DemoApiError, status_family
from load_simulator.cancellation import Cancelled, CancellationToken
from load_simulator.config import TrafficSettings
from load_simulator.registry import ResourceIdRegistry

logger = logging.getLogger(__name__)

GET_ENDPOINTS = ("/fast", "/slow", "/flaky")
THINK_TIME_PROBABILITY = 0.3


class TrafficPattern(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    BURST = "burst"


class HttpTrafficSimulator:
    """Generates a varying volume of CRUD traffic against the demo API."""

    def __init__(self, settings: Optional[TrafficSettings] = None, rng: Optional[random.Random] = None,
                 token: Optional[CancellationToken] = None, client: Optional[DemoApiClient] = None,
                 executor: Optional[Executor] = None, registry: Optional[ResourceIdRegistry] = None):
        self.settings = settings or TrafficSettings()
        self.rng = rng or random.Random()
        self.token = token or CancellationToken()
        self.client = client or DemoApiClient(self.settings.base_url, timeout=self.settings.timeout)
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.workers, thread_name_prefix="http-traffic")
        self.registry = registry or ResourceIdRegistry(self.settings.max_tracked_ids)
        self.pattern = TrafficPattern.MEDIUM
        self.outcomes: Counter = Counter()
        self._outcomes_lock = threading.Lock()

    def rotate_pattern(self) -> TrafficPattern:
        self.pattern = self.rng.choice(list(TrafficPattern))
        logger.info(f"Switching to {self.pattern.name} traffic pattern")
        return self.pattern

    def request_count(self, pattern: Optional[TrafficPattern] = None) -> int:
        pattern = pattern or self.pattern
        if pattern is TrafficPattern.LOW:
            return 1 + self.rng.randrange(3)
        if pattern is TrafficPattern.MEDIUM:
            return 5 + self.rng.randrange(10)
        if pattern is TrafficPattern.HIGH:
            return 15 + self.rng.randrange(20)
        if self.rng.random() < 0.3:
            return 50 + self.rng.randrange(50)
        return 3 + self.rng.randrange(7)

    def generate_traffic(self) -> List[Future]:
        if self.token.cancelled:
            return []

        request_count = self.request_count()
        logger.info(f"Generating {request_count} HTTP requests ({self.pattern.name})")

        futures = []
        try:
            for _ in range(request_count):
                futures.append(self.executor.submit(self.make_random_request))
        except RuntimeError as e:
            logger.debug(f"HTTP requests not submitted: {e}")
        return futures

    def choose_method(self) -> str:
        selector = self.rng.random()
        if selector < 0.6:
            return "GET"
        if selector < 0.8:
            return "POST"
        if selector < 0.9:
            return "PUT"
        return "DELETE"

    def make_random_request(self) -> Optional[str]:
        """One request task; errors never leave this method."""
        method = self.choose_method()
        try:
            if method == "GET":
                self._get()
            elif method == "POST":
                self._post()
            elif method == "PUT":
                method = self._put()
            else:
                method = self._delete()

            # Client-side think time
            if self.rng.random() < THINK_TIME_PROBABILITY:
                self.token.sleep((100 + self.rng.randrange(200)) / 1000)
        except Cancelled:
            logger.debug(f"{method} request task cancelled")
        except requests.RequestException as e:
            self._record(None)
            logger.error(f"Error making {method} request: {e}")
        except Exception as e:
            logger.error(f"Unexpected error making {method} request: {e}")
        return method

    def _record(self, status_code: Optional[int]) -> None:
        with self._outcomes_lock:
            self.outcomes[status_family(status_code)] += 1

    def _log_error(self, e: DemoApiError) -> None:
        family = status_family(e.status_code)
        self._record(e.status_code)
        message = e.body.get("message", "")
        logger.debug(f"{e.method} {e.path} - Error: {e.status_code} ({family}) {message}".rstrip())

    def _get(self) -> None:
        endpoint = self.rng.choice(GET_ENDPOINTS)
        try:
            self.client.get(endpoint)
            self._record(200)
        except DemoApiError as e:
            self._log_error(e)

    def _post(self) -> Optional[str]:
        try:
            body = self.client.create(self.generate_payload())
        except DemoApiError as e:
            self._log_error(e)
            return None

        self._record(201)
        resource_id = body.get("id")
        if isinstance(resource_id, str) and resource_id:
            evicted = self.registry.add(resource_id)
            if evicted:
                logger.debug(f"Stopped tracking {len(evicted)} oldest resource ids")
        return resource_id

    def _put(self) -> str:
        resource_id = self.registry.choice(self.rng)
        if resource_id is None:
            # Nothing to update yet, create something instead
            self._post()
            return "POST"

        try:
            self.client.update(resource_id, self.generate_payload())
            self._record(200)
        except DemoApiError as e:
            self._log_error(e)
            if e.not_found:
                self.registry.remove(resource_id)
        return "PUT"

    def _delete(self) -> str:
        resource_id = self.registry.choice(self.rng)
        if resource_id is None:
            self._post()
            return "POST"

        try:
            self.client.delete(resource_id)
            self._record(200)
            self.registry.remove(resource_id)
        except DemoApiError as e:
            self._log_error(e)
            if e.not_found:
                self.registry.remove(resource_id)
        return "DELETE"

    def generate_payload(self) -> Dict[str, Any]:
        field_count = 3 + self.rng.randrange(10)
        payload: Dict[str, Any] = {
            "timestamp": int(time.time() * 1000),
            "name": f"Test-{self._uuid()[:8]}",
            "value": self.rng.random() * 1000,
        }
        for i in range(field_count):
            kind = self.rng.randrange(4)
            if kind == 0:
                payload[f"field{i}"] = self.rng.randrange(1000)
            elif kind == 1:
                payload[f"field{i}"] = self.rng.random() * 1000
            elif kind == 2:
                payload[f"field{i}"] = self._uuid()
            else:
                payload[f"field{i}"] = self.rng.random() < 0.5
        return payload

    def _uuid(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def schedule(self, scheduler) -> List[str]:
        scheduler.register("traffic-pattern", self.settings.pattern_interval_seconds, self.rotate_pattern,
                           initial_delay=self.settings.pattern_interval_seconds)
        scheduler.register("traffic-generation", self.settings.interval_seconds, self.generate_traffic)
        return ["traffic-pattern", "traffic-generation"]

    def shutdown(self, wait: bool = False) -> None:
        self.token.cancel()
        self.executor.shutdown(wait=wait, cancel_futures=True)
        self.client.close()
        logger.info("HTTP traffic simulator stopped")
