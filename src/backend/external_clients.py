"""Shared HTTP client pool and request deadlines for external APIs."""
from __future__ import annotations

import time
from typing import Optional

import httpx

from errors import DeadlineExceeded

_http_clients: dict[str, httpx.Client] = {}


def get_http_client(name: str, timeout: float = 30.0, headers: dict[str, str] | None = None) -> httpx.Client:
    """Return a shared Client keyed by name."""
    if name not in _http_clients:
        _http_clients[name] = httpx.Client(
            timeout=timeout,
            headers=headers or {},
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
    return _http_clients[name]


def shutdown_http_clients() -> None:
    """Close all shared HTTP clients on shutdown."""
    for client in _http_clients.values():
        client.close()
    _http_clients.clear()


class Deadline:
    """Wall-clock budget for one indexing request.

    Every external call asks for ``timeout()`` right before it starts, so a slow
    upstream early in the pipeline shrinks what later calls are allowed to use.
    """

    def __init__(self, budget_seconds: float, per_call_cap: Optional[float] = None):
        self._expires_at = time.monotonic() + budget_seconds
        self._per_call_cap = per_call_cap

    def remaining(self) -> float:
        return self._expires_at - time.monotonic()

    def check(self, what: str) -> None:
        if self.remaining() <= 0:
            raise DeadlineExceeded(f"Deadline exceeded before {what}")

    def timeout(self, what: str) -> float:
        """Seconds the next call may take; raises once the budget is spent."""
        self.check(what)
        remaining = self.remaining()
        if self._per_call_cap is not None:
            return min(remaining, self._per_call_cap)
        return remaining
