"""Wiring of the engine to the Google clients, cache and store."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import config
from .cache import Cache
from .config import WaypointConfig
from .engine import WaypointEngine, summarize
from .http import HttpClient, RequestBudget, RequestMetrics
from .models import Coordinate, Genre, Mood, TransportMode
from .places_client import PlacesClient
from .providers import PersistenceStore, PlaceSearchProvider, TimeMatrixProvider
from .routes_client import RouteMatrixClient
from .store import MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    genres: List[Genre]
    summary: Dict[str, Any] = field(default_factory=dict)


def build_http_client(api_key: str) -> HttpClient:
    return HttpClient(
        api_key,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        backoff_base=config.HTTP_BACKOFF_BASE,
        backoff_max=config.HTTP_BACKOFF_MAX,
    )


def _log_request(kind: str, places_count: int, routes_count: int) -> None:
    logger.debug("Billable %s request (places=%s, routes=%s)", kind, places_count, routes_count)


def run(
    api_key: Optional[str],
    origin: Coordinate,
    destination: Coordinate,
    mood: Mood,
    transport_mode: TransportMode,
    seed: Optional[str] = None,
    now: Optional[datetime] = None,
    timeout: Optional[float] = None,
    store: Optional[PersistenceStore] = None,
    cache_db_path: str = config.CACHE_DB_PATH,
    max_places: int = config.MAX_PLACES_REQUESTS_PER_RUN,
    max_routes: int = config.MAX_ROUTES_REQUESTS_PER_RUN,
    no_cache: bool = False,
    refresh_places: bool = False,
    places_client: Optional[PlaceSearchProvider] = None,
    matrix_client: Optional[TimeMatrixProvider] = None,
    cfg: Optional[WaypointConfig] = None,
    metrics: Optional[RequestMetrics] = None,
) -> PipelineResult:
    if metrics is None:
        metrics = RequestMetrics()
    if store is None:
        store = MemoryStore()

    cache: Optional[Cache] = None
    if places_client is None or matrix_client is None:
        if not api_key:
            raise ValueError("api_key is required when clients are not injected")
        cache = Cache(cache_db_path)
        budget = RequestBudget(
            max_places=max_places,
            max_routes=max_routes,
            on_consume=_log_request,
            metrics=metrics,
        )
        http_client = build_http_client(api_key)
        if places_client is None:
            places_client = PlacesClient(
                http_client,
                cache,
                budget,
                no_cache=no_cache,
                refresh_places=refresh_places,
                metrics=metrics,
            )
        if matrix_client is None:
            matrix_client = RouteMatrixClient(http_client, cache, budget, no_cache=no_cache, metrics=metrics)

    try:
        engine = WaypointEngine(places_client, matrix_client, store, cfg=cfg)
        genres = engine.suggest(
            origin,
            destination,
            mood,
            transport_mode,
            now=now,
            seed=seed,
            timeout=timeout,
        )
    finally:
        # Workers abandoned at the deadline may still call in; a closed
        # Cache answers misses and drops writes.
        if cache is not None:
            cache.close()

    summary = summarize(genres)
    summary["requests"] = metrics.as_dict()
    logger.info("Requests: %s", summary["requests"])
    return PipelineResult(genres=genres, summary=summary)
