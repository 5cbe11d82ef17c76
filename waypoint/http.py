"""HTTP client with retry/backoff and per-run request budgeting."""
from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

REQUEST_KINDS = ("places", "routes")
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class BudgetExceededError(RuntimeError):
    pass


def _check_kind(kind: str) -> None:
    if kind not in REQUEST_KINDS:
        raise ValueError(f"Unknown request kind: {kind}")


@dataclass
class RequestMetrics:
    network_places: int = 0
    network_routes: int = 0
    cache_hits_places: int = 0
    cache_hits_routes: int = 0
    dedup_skips_places: int = 0
    dedup_skips_routes: int = 0
    failures_places: int = 0
    failures_routes: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def _inc(self, prefix: str, kind: str) -> None:
        _check_kind(kind)
        name = f"{prefix}_{kind}"
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def inc_network(self, kind: str) -> None:
        self._inc("network", kind)

    def inc_cache_hit(self, kind: str) -> None:
        self._inc("cache_hits", kind)

    def inc_dedup_skip(self, kind: str) -> None:
        self._inc("dedup_skips", kind)

    def inc_failure(self, kind: str) -> None:
        self._inc("failures", kind)

    def as_dict(self) -> Dict[str, int]:
        return {
            name: getattr(self, name)
            for name in (
                "network_places",
                "network_routes",
                "cache_hits_places",
                "cache_hits_routes",
                "dedup_skips_places",
                "dedup_skips_routes",
                "failures_places",
                "failures_routes",
            )
        }


class RequestBudget:
    """Caps billable requests per run; shared by worker threads."""

    def __init__(
        self,
        max_places: int,
        max_routes: int,
        on_consume: Optional[Callable[[str, int, int], None]] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.max_places = max_places
        self.max_routes = max_routes
        self.on_consume = on_consume
        self.metrics = metrics
        self._counts = {"places": 0, "routes": 0}
        self._lock = threading.Lock()

    @property
    def places_count(self) -> int:
        return self._counts["places"]

    @property
    def routes_count(self) -> int:
        return self._counts["routes"]

    def consume(self, kind: str) -> None:
        _check_kind(kind)
        limit = self.max_places if kind == "places" else self.max_routes
        with self._lock:
            used = self._counts[kind]
            if used >= limit:
                raise BudgetExceededError(
                    f"{kind.capitalize()} request budget exceeded: {used} >= {limit}"
                )
            self._counts[kind] = used + 1
        if self.metrics is not None:
            self.metrics.inc_network(kind)
        if self.on_consume:
            self.on_consume(kind, self.places_count, self.routes_count)


class HttpClient:
    def __init__(
        self,
        api_key: str,
        timeout: float = 10,
        retry_max: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 4.0,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry_max = retry_max
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = requests.Session()

    def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        field_mask: str,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        headers = {
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
            "Content-Type": "application/json",
        }
        if extra_headers:
            headers.update(extra_headers)

        payload = json.dumps(body)
        for attempt in range(1, self.retry_max + 1):
            try:
                resp = self.session.post(url, data=payload, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                logger.warning("Request to %s failed: %s (attempt %s)", url, exc, attempt)
                if attempt >= self.retry_max:
                    raise
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", url)
                    raise

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    resp.raise_for_status()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            resp.raise_for_status()

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
