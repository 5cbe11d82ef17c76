"""Routes API matrix client with caching and response parsing."""
from __future__ import annotations

import logging
import math
import threading
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from . import config
from .cache import Cache
from .http import BudgetExceededError, HttpClient, RequestBudget, RequestMetrics
from .models import Coordinate, TransportMode

logger = logging.getLogger(__name__)

UNREACHABLE = math.inf


class RouteMatrixClient:
    """Duration lookups from one origin to many destinations.

    The returned list is always index-aligned with ``destinations``; anything
    the API cannot route comes back as ``inf``. A chunk that fails, or the
    routes budget running out, leaves only that chunk's entries at ``inf``.
    """

    def __init__(
        self,
        http_client: HttpClient,
        cache: Cache,
        budget: RequestBudget,
        no_cache: bool = False,
        refresh_routes: bool = False,
        field_mask: str = config.ROUTE_MATRIX_FIELD_MASK,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.cache = cache
        self.budget = budget
        self.no_cache = no_cache
        self.refresh_routes = refresh_routes
        self.field_mask = field_mask
        self.metrics = metrics
        self._lock = threading.Lock()
        self._memory_cache: Dict[str, float] = {}

    def get_durations(
        self,
        origin: Coordinate,
        destinations: Sequence[Coordinate],
        mode: Union[TransportMode, str] = TransportMode.WALKING,
    ) -> List[float]:
        travel_mode = resolve_travel_mode(mode)
        durations: List[float] = [UNREACHABLE] * len(destinations)
        pending: List[int] = []
        for idx, dest in enumerate(destinations):
            cached = self._lookup(route_cache_key(origin, dest, travel_mode))
            if cached is not None:
                durations[idx] = cached
            else:
                pending.append(idx)

        chunk_size = max(1, config.ROUTE_MATRIX_MAX_DESTINATIONS)
        for start in range(0, len(pending), chunk_size):
            chunk = pending[start:start + chunk_size]
            try:
                self.budget.consume("routes")
            except BudgetExceededError as exc:
                # Chunks already fetched stay; the rest remain unreachable.
                self._record_failure()
                logger.warning("%s; %s destinations left unrouted", exc, len(pending) - start)
                break
            body = build_route_matrix_body(origin, [destinations[i] for i in chunk], travel_mode)
            try:
                response = self.http.post_json(config.ROUTE_MATRIX_URL, body, self.field_mask)
            except requests.RequestException as exc:
                self._record_failure()
                logger.warning("Route matrix chunk of %s failed: %s", len(chunk), exc)
                continue
            for local_idx, seconds in enumerate(parse_route_matrix_response(response, len(chunk))):
                idx = chunk[local_idx]
                durations[idx] = seconds
                if math.isfinite(seconds):
                    self._store(route_cache_key(origin, destinations[idx], travel_mode), travel_mode, seconds)
        return durations

    def _record_failure(self) -> None:
        if self.metrics is not None:
            self.metrics.inc_failure("routes")

    def _lookup(self, key: str) -> Optional[float]:
        with self._lock:
            if key in self._memory_cache:
                if self.metrics is not None:
                    self.metrics.inc_dedup_skip("routes")
                return self._memory_cache[key]
        if self.no_cache or self.refresh_routes:
            return None
        cached = self.cache.get_route_duration(key)
        if cached is not None:
            if self.metrics is not None:
                self.metrics.inc_cache_hit("routes")
            with self._lock:
                self._memory_cache[key] = cached
        return cached

    def _store(self, key: str, travel_mode: str, seconds: float) -> None:
        with self._lock:
            self._memory_cache[key] = seconds
        if not self.no_cache:
            self.cache.set_route_duration(key, travel_mode, seconds)


def resolve_travel_mode(mode: Union[TransportMode, str]) -> str:
    value = mode.value if isinstance(mode, TransportMode) else str(mode).lower()
    try:
        return config.TRAVEL_MODES[value]
    except KeyError:
        raise ValueError(f"Unknown transport mode: {mode}") from None


def route_cache_key(origin: Coordinate, destination: Coordinate, travel_mode: str) -> str:
    p = config.ROUTE_CACHE_COORD_PRECISION
    return (
        f"{origin.lat:.{p}f},{origin.lon:.{p}f}|"
        f"{destination.lat:.{p}f},{destination.lon:.{p}f}|{travel_mode}"
    )


def _waypoint(point: Coordinate) -> Dict[str, Any]:
    return {"waypoint": {"location": {"latLng": point.to_lat_lng()}}}


def build_route_matrix_body(
    origin: Coordinate,
    destinations: Sequence[Coordinate],
    travel_mode: str,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "origins": [_waypoint(origin)],
        "destinations": [_waypoint(d) for d in destinations],
        "travelMode": travel_mode,
    }
    if config.ROUTE_MATRIX_BODY_EXTRA:
        body.update(config.ROUTE_MATRIX_BODY_EXTRA)
    return body


def parse_duration_seconds(duration: Any) -> Optional[float]:
    if duration is None:
        return None
    if isinstance(duration, str):
        # Protobuf Duration JSON, like "123s" or "12.5s"
        if duration.endswith("s"):
            duration = duration[:-1]
        try:
            return float(duration)
        except ValueError:
            return None
    if isinstance(duration, (int, float)):
        return float(duration)
    return None


def parse_route_matrix_response(response: Any, n_destinations: int) -> List[float]:
    durations: List[float] = [UNREACHABLE] * n_destinations
    if isinstance(response, dict):
        # Some proxies wrap the streamed array
        response = response.get("elements") or []
    for element in response or []:
        if not isinstance(element, dict):
            continue
        # proto3 JSON omits zero-valued indexes
        try:
            idx = int(element.get("destinationIndex", 0))
        except (TypeError, ValueError):
            continue
        if not 0 <= idx < n_destinations:
            continue
        condition = element.get("condition")
        if condition is not None and condition != "ROUTE_EXISTS":
            continue
        status = element.get("status") or {}
        if status.get("code"):
            continue
        seconds = parse_duration_seconds(element.get("duration"))
        if seconds is None or not math.isfinite(seconds):
            continue
        durations[idx] = seconds
    return durations
