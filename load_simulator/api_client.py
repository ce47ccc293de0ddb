import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class DemoApiError(Exception):
    """Non-2xx response from the demo API."""

    def __init__(self, method: str, path: str, status_code: int, body: Optional[Dict[str, Any]] = None):
        super().__init__(f"{method} {path} returned {status_code}")
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body or {}

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


def status_family(status_code: Optional[int]) -> str:
    """Map a status code onto the family used in logs."""
    if status_code is None:
        return "transport"
    if 200 <= status_code < 300:
        return "success"
    if 400 <= status_code < 500:
        return "client_error"
    if 500 <= status_code < 600:
        return "server_error"
    return "other"


class DemoApiClient:
    """Client for the demo REST API exercised by the traffic simulator."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            json=payload,
            timeout=self.timeout,
            headers={'Content-Type': 'application/json'}
        )
        body = self._decode(response)
        if not 200 <= response.status_code < 300:
            raise DemoApiError(method, path, response.status_code, body)

        logger.debug(f"{method} {path} - Status: {response.status_code}")
        return body

    @staticmethod
    def _decode(response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def get(self, endpoint: str) -> Dict[str, Any]:
        return self._request("GET", endpoint)

    def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/data", payload)

    def update(self, resource_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/data/{resource_id}", payload)

    def delete(self, resource_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/data/{resource_id}")

    def close(self) -> None:
        self.session.close()
