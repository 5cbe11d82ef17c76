"""Project configuration.

Loads engine policy and lookup tables from waypoint_config.json when
available, falling back to sensible defaults. Keep API request shapes
centralized here.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

_REPO_ROOT = Path(__file__).resolve().parent.parent


class ConfigError(ValueError):
    pass


# --- API endpoints ---

PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
ROUTE_MATRIX_URL = "https://routes.googleapis.com/distanceMatrix/v2:computeRouteMatrix"

# --- Field masks ---

PLACES_FIELD_MASK_MIN = (
    "places.id,places.displayName,places.rating,places.userRatingCount,"
    "places.location,places.types,places.primaryType,places.formattedAddress"
)
ROUTE_MATRIX_FIELD_MASK = "originIndex,destinationIndex,duration,condition"

# --- Places API request shape ---

PLACES_MAX_RESULT_COUNT = 20
PLACES_NEARBY_BODY_EXTRA: Dict[str, Any] = {}

# --- Routes API request shape ---

# computeRouteMatrix allows 625 elements per request, 100 for TRANSIT.
# One origin per request, so 100 destinations fits every mode.
ROUTE_MATRIX_MAX_DESTINATIONS = 100
ROUTE_MATRIX_BODY_EXTRA: Dict[str, Any] = {}
ROUTE_CACHE_COORD_PRECISION = 5

TRAVEL_MODES: Dict[str, str] = {
    "walking": "WALK",
    "driving": "DRIVE",
    "transit": "TRANSIT",
    "cycling": "BICYCLE",
}

# --- Budgets ---

MAX_PLACES_REQUESTS_PER_RUN = 60
MAX_ROUTES_REQUESTS_PER_RUN = 20

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 10
HTTP_RETRY_MAX = 3
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 4.0

# --- Cache and outputs ---

CACHE_DB_PATH = "cache.db"
STORE_DB_PATH = "waypoints.db"
EXCLUDED_IDS_LIMIT = 100

# --- Taxonomy ---

FOOD_TYPES: Set[str] = {
    "restaurant", "food", "meal_takeaway", "meal_delivery", "cafe", "bar", "bakery",
}

_DEFAULT_MOOD_TYPES: Dict[str, List[str]] = {
    "indoor/jazzy": ["cafe", "bar", "museum", "art_gallery", "library"],
    "indoor/discovery": ["museum", "library", "book_store", "art_gallery", "aquarium"],
    "indoor/exciting": ["shopping_mall", "movie_theater", "amusement_center", "game_center"],
    "outdoor/jazzy": ["park", "garden", "scenic_viewpoint", "cafe", "tourist_attraction"],
    "outdoor/discovery": ["tourist_attraction", "park", "historical_site", "zoo", "botanical_garden"],
    "outdoor/exciting": ["amusement_park", "adventure_park", "sports_complex", "beach", "hiking_area"],
}

_DEFAULT_TYPE_DISPLAY_NAMES: Dict[str, str] = {
    "restaurant": "Restaurant",
    "cafe": "Cafe",
    "bar": "Bar",
    "meal_takeaway": "Takeaway",
    "bakery": "Bakery",
    "park": "Park",
    "museum": "Museum",
    "library": "Library",
    "book_store": "Bookstore",
    "shopping_mall": "Shopping mall",
    "movie_theater": "Cinema",
    "tourist_attraction": "Sightseeing spot",
    "place_of_worship": "Shrine or temple",
    "amusement_park": "Amusement park",
    "zoo": "Zoo",
}

FALLBACK_DISPLAY_NAMES: Dict[str, str] = {
    "food": "Food spot",
    "other": "Spot",
}

MOOD_TYPES: Dict[str, List[str]] = {k: list(v) for k, v in _DEFAULT_MOOD_TYPES.items()}
TYPE_DISPLAY_NAMES: Dict[str, str] = dict(_DEFAULT_TYPE_DISPLAY_NAMES)


@dataclass(frozen=True)
class WaypointConfig:
    max_additional_minutes: float = 30.0
    min_rating: float = 3.4
    min_reviews: int = 5
    base_corridor_radius_m: int = 600
    radius_increment_m: int = 200
    result_count: int = 3
    food_cap: int = 1
    other_cap: int = 2
    max_attempts: int = 2
    # With seconds in the seed only same-second calls reproduce.
    seed_includes_seconds: bool = True
    apply_exclusions: bool = True
    timeout_seconds: float = 15.0
    max_workers: int = 8

    def validate(self) -> "WaypointConfig":
        if self.max_additional_minutes < 0:
            raise ConfigError("max_additional_minutes must be >= 0")
        if not 0.0 <= self.min_rating <= 5.0:
            raise ConfigError("min_rating must be between 0 and 5")
        if self.min_reviews < 0:
            raise ConfigError("min_reviews must be >= 0")
        if self.base_corridor_radius_m <= 0:
            raise ConfigError("base_corridor_radius_m must be positive")
        if self.radius_increment_m < 0:
            raise ConfigError("radius_increment_m must be >= 0")
        if self.result_count <= 0:
            raise ConfigError("result_count must be positive")
        if self.food_cap < 0 or self.other_cap < 0:
            raise ConfigError("category caps must be >= 0")
        if self.food_cap + self.other_cap > self.result_count:
            raise ConfigError(
                f"food_cap + other_cap ({self.food_cap + self.other_cap}) "
                f"exceeds result_count ({self.result_count})"
            )
        if self.max_attempts <= 0:
            raise ConfigError("max_attempts must be positive")
        if self.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be positive")
        if self.max_workers <= 0:
            raise ConfigError("max_workers must be positive")
        return self

    def radius_for_attempt(self, attempt: int) -> int:
        return self.base_corridor_radius_m + attempt * self.radius_increment_m


WAYPOINT_CONFIG = WaypointConfig()


def _coerce_field(name: str, kind: str, value: Any) -> Any:
    # Field annotations are strings under postponed evaluation.
    if kind == "bool":
        if isinstance(value, bool):
            return value
        raise ConfigError(f"{name} must be true or false, got {value!r}")
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if kind == "int":
        if not number.is_integer():
            raise ConfigError(f"{name} must be a whole number, got {value!r}")
        return int(number)
    return number


def config_from_dict(data: Dict[str, Any], base: Optional[WaypointConfig] = None) -> WaypointConfig:
    """Build a validated WaypointConfig from a plain mapping.

    Unknown keys are rejected so that typos in config files surface early.
    Numeric strings such as "2" are accepted; other mistyped values raise
    ConfigError.
    """
    base = base or WaypointConfig()
    kinds = {f.name: str(f.type) for f in fields(WaypointConfig)}
    unknown = sorted(set(data) - set(kinds))
    if unknown:
        raise ConfigError(f"Unknown engine config keys: {', '.join(unknown)}")
    values = {name: _coerce_field(name, kinds[name], value) for name, value in data.items()}
    return replace(base, **values).validate()


def load_search_config(path: Optional[str] = None) -> bool:
    """Load engine configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "waypoint_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    globals_ref = globals()

    engine = data.get("engine", {})
    if not isinstance(engine, dict):
        raise ConfigError(f"'engine' in {config_path} must be a JSON object")
    if engine:
        globals_ref["WAYPOINT_CONFIG"] = config_from_dict(engine)

    moods = data.get("mood_types", {})
    if moods:
        merged = {k: list(v) for k, v in globals_ref["MOOD_TYPES"].items()}
        for key, types in moods.items():
            if not isinstance(types, list) or not all(isinstance(t, str) for t in types):
                raise ConfigError(f"mood_types[{key!r}] must be a list of strings")
            merged[key] = list(types)
        globals_ref["MOOD_TYPES"] = merged

    names = data.get("display_names", {})
    if names:
        merged_names = dict(globals_ref["TYPE_DISPLAY_NAMES"])
        merged_names.update({str(k): str(v) for k, v in names.items()})
        globals_ref["TYPE_DISPLAY_NAMES"] = merged_names

    return True
