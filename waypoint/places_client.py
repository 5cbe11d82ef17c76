"""Places API client with caching and response parsing."""
from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Optional

import requests

from . import config
from .cache import Cache, make_request_cache_key
from .http import BudgetExceededError, HttpClient, RequestBudget, RequestMetrics
from .models import Candidate, Category, Coordinate


class PlacesClient:
    def __init__(
        self,
        http_client: HttpClient,
        cache: Cache,
        budget: RequestBudget,
        no_cache: bool = False,
        refresh_places: bool = False,
        field_mask: str = config.PLACES_FIELD_MASK_MIN,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.cache = cache
        self.budget = budget
        self.no_cache = no_cache
        self.refresh_places = refresh_places
        self.field_mask = field_mask
        self.metrics = metrics
        self._lock = threading.Lock()
        self._memory_cache: Dict[str, Dict[str, Any]] = {}

    def search_nearby_raw(self, point: Coordinate, type_tag: str, radius_m: int) -> Dict[str, Any]:
        body = build_nearby_search_body(point, type_tag, radius_m)
        key = make_request_cache_key(config.PLACES_NEARBY_SEARCH_URL, self.field_mask, body)
        with self._lock:
            seen = self._memory_cache.get(key)
        if seen is not None:
            if self.metrics is not None:
                self.metrics.inc_dedup_skip("places")
            return seen
        if not self.no_cache and not self.refresh_places:
            cached = self.cache.get_search_cache(key)
            if cached is not None:
                if self.metrics is not None:
                    self.metrics.inc_cache_hit("places")
                with self._lock:
                    self._memory_cache[key] = cached
                return cached

        try:
            self.budget.consume("places")
            response = self.http.post_json(config.PLACES_NEARBY_SEARCH_URL, body, self.field_mask)
        except (BudgetExceededError, requests.RequestException, ValueError):
            if self.metrics is not None:
                self.metrics.inc_failure("places")
            raise
        with self._lock:
            self._memory_cache[key] = response
        if not self.no_cache:
            self.cache.set_search_cache(key, response)
        return response

    def search_nearby(self, point: Coordinate, type_tag: str, radius_m: int) -> List[Candidate]:
        return parse_places_response(self.search_nearby_raw(point, type_tag, radius_m), type_tag)


def build_nearby_search_body(point: Coordinate, type_tag: str, radius_m: int) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "includedTypes": [type_tag],
        "maxResultCount": config.PLACES_MAX_RESULT_COUNT,
        "locationRestriction": {
            "circle": {
                "center": point.to_lat_lng(),
                "radius": float(radius_m),
            }
        },
    }
    if config.PLACES_NEARBY_BODY_EXTRA:
        body.update(config.PLACES_NEARBY_BODY_EXTRA)
    return body


def classify_types(types: Iterable[str]) -> Category:
    if any(t in config.FOOD_TYPES for t in types):
        return Category.FOOD
    return Category.OTHER


# Adapter/mapper for Places response fields

def parse_places_response(
    response: Dict[str, Any], queried_type: Optional[str] = None
) -> List[Candidate]:
    places = response.get("places") or []
    parsed: List[Candidate] = []
    for p in places:
        place_id = p.get("id") or p.get("placeId") or p.get("place_id")
        if not place_id:
            continue
        location = p.get("location") or (p.get("geometry") or {}).get("location") or {}
        lat = location.get("latitude", location.get("lat"))
        lon = location.get("longitude", location.get("lng", location.get("lon")))
        if lat is None or lon is None:
            continue
        display = p.get("displayName")
        if isinstance(display, dict):
            name = display.get("text") or display.get("value")
        else:
            name = display or p.get("name")
        types = list(p.get("types") or [])
        type_tag = p.get("primaryType") or (types[0] if types else None) or queried_type or "establishment"
        rating = p.get("rating")
        review_count = p.get("userRatingCount", p.get("user_ratings_total"))
        parsed.append(
            Candidate(
                place_id=place_id,
                coordinate=Coordinate(float(lat), float(lon)),
                category=classify_types(types or [type_tag]),
                type_tag=type_tag,
                rating=float(rating) if rating is not None else None,
                review_count=int(review_count) if review_count is not None else None,
                name=name,
                address=p.get("formattedAddress") or p.get("vicinity"),
            )
        )
    return parsed
