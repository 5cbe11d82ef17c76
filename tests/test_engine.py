import math
import sqlite3
import threading
import time
from datetime import datetime, timezone

import requests

from waypoint import config
from waypoint.cache import Cache
from waypoint.config import WaypointConfig
from waypoint.engine import WaypointEngine
from waypoint.http import RequestBudget
from waypoint.models import (
    ActivityType,
    Candidate,
    Category,
    Coordinate,
    Genre,
    Mood,
    TransportMode,
    VibeType,
)
from waypoint.providers import StaticMoodTypeLookup
from waypoint.routes_client import RouteMatrixClient
from waypoint.store import MemoryStore

ORIGIN = Coordinate(35.0, 139.0)
DEST = Coordinate(35.1, 139.1)
MOOD = Mood(ActivityType.OUTDOOR, VibeType.DISCOVERY)
NOW = datetime(2026, 1, 26, 9, 0, tzinfo=timezone.utc)
TYPES = StaticMoodTypeLookup({MOOD.key: ["park", "cafe"]})


def make_candidate(pid, idx, type_tag="park", rating=4.5, reviews=100):
    category = Category.FOOD if type_tag in config.FOOD_TYPES else Category.OTHER
    return Candidate(
        place_id=pid,
        coordinate=Coordinate(35.05 + idx * 0.001, 139.05),
        category=category,
        type_tag=type_tag,
        rating=rating,
        review_count=reviews,
        name=f"Secret place {pid}",
        address=f"{idx} Hidden Street",
    )


class FakePlaces:
    def __init__(self, by_radius=None, default=None, fail_types=(), delay=0.0):
        self.by_radius = by_radius or {}
        self.default = default or []
        self.fail_types = set(fail_types)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def search_nearby(self, point, type_tag, radius_m):
        with self._lock:
            self.calls.append((point, type_tag, radius_m))
        if self.delay:
            time.sleep(self.delay)
        if type_tag in self.fail_types:
            raise requests.ConnectionError("places down")
        return list(self.by_radius.get(radius_m, self.default))


class FakeMatrix:
    def __init__(self, baseline=1800.0, legs=None):
        self.baseline = baseline
        self.legs = legs or {}
        self.calls = []
        self._lock = threading.Lock()

    def get_durations(self, origin, destinations, mode):
        with self._lock:
            self.calls.append((origin, list(destinations), mode))
        if list(destinations) == [DEST]:
            return [self.baseline]
        side = 0 if origin == ORIGIN else 1
        return [self.legs.get(d, (math.inf, math.inf))[side] for d in destinations]


def legs_for(candidates, to_candidate=600.0, to_destination=1200.0):
    return {c.coordinate: (to_candidate, to_destination) for c in candidates}


def make_engine(places, matrix, store=None, **cfg_overrides):
    cfg = WaypointConfig(**cfg_overrides)
    return WaypointEngine(places, matrix, store or MemoryStore(), mood_types=TYPES, cfg=cfg)


def suggest(engine, seed="test", now=NOW, timeout=5.0):
    return engine.suggest(ORIGIN, DEST, MOOD, TransportMode.WALKING, now=now, seed=seed, timeout=timeout)


def mixed_pool():
    return [
        make_candidate("food1", 0, "cafe"),
        make_candidate("food2", 1, "restaurant"),
        make_candidate("other1", 2, "park"),
        make_candidate("other2", 3, "museum"),
        make_candidate("other3", 4, "zoo"),
    ]


def test_stratifies_one_food_two_other():
    pool = mixed_pool()
    engine = make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool)))

    genres = suggest(engine)

    assert len(genres) == 3
    assert [g.category for g in genres].count(Category.FOOD) == 1
    assert [g.category for g in genres].count(Category.OTHER) == 2


def test_backfill_without_food_never_fabricates_food():
    pool = [make_candidate(f"o{i}", i, "park") for i in range(4)]
    engine = make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool)))

    genres = suggest(engine)

    assert len(genres) == 3
    assert all(g.category == Category.OTHER for g in genres)


def test_identical_inputs_give_identical_genres():
    pool = mixed_pool()
    first = suggest(make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool))))
    second = suggest(make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool))))

    assert first == second
    assert len({g.id for g in first}) == len(first)


def test_detour_exactly_at_limit_is_included_and_over_is_excluded():
    at_limit = make_candidate("edge", 0, "park")
    over = make_candidate("over", 1, "park")
    legs = {
        at_limit.coordinate: (600.0, 1500.0),  # (2100 - 1800) / 60 == 5.0
        over.coordinate: (600.0, 1501.0),
    }
    store = MemoryStore()
    engine = make_engine(
        FakePlaces(default=[at_limit, over]),
        FakeMatrix(baseline=1800.0, legs=legs),
        store=store,
        max_additional_minutes=5.0,
    )

    genres = suggest(engine)

    assert len(genres) == 1
    assert engine.reveal(genres[0].id).place_id == "edge"


def test_ten_minute_detour_is_excluded_with_five_minute_budget():
    c = make_candidate("far", 0, "park")
    engine = make_engine(
        FakePlaces(default=[c]),
        FakeMatrix(baseline=1800.0, legs={c.coordinate: (1200.0, 1200.0)}),
        max_additional_minutes=5.0,
    )

    assert suggest(engine) == []


def test_quality_bar_treats_missing_rating_and_reviews_as_zero():
    unrated = make_candidate("unrated", 0, "park", rating=None, reviews=None)
    few_reviews = make_candidate("few", 1, "park", rating=4.9, reviews=2)
    pool = [unrated, few_reviews]
    engine = make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool)))

    assert suggest(engine) == []


def test_unreachable_candidate_is_dropped():
    ok = make_candidate("ok", 0, "park")
    stranded = make_candidate("stranded", 1, "park")
    legs = {ok.coordinate: (600.0, 1200.0), stranded.coordinate: (600.0, math.inf)}
    engine = make_engine(FakePlaces(default=[ok, stranded]), FakeMatrix(legs=legs))

    genres = suggest(engine)

    assert [engine.reveal(g.id).place_id for g in genres] == ["ok"]


def test_second_attempt_uses_wider_radius():
    pool = mixed_pool()
    places = FakePlaces(by_radius={800: pool})
    engine = make_engine(places, FakeMatrix(legs=legs_for(pool)))

    genres = suggest(engine)

    assert len(genres) == 3
    assert sorted({radius for _, _, radius in places.calls}) == [600, 800]


def test_no_candidates_in_either_attempt_returns_empty():
    places = FakePlaces()
    matrix = FakeMatrix()
    engine = make_engine(places, matrix)

    assert suggest(engine) == []
    # 3 corridor points x 2 types x 2 attempts
    assert len(places.calls) == 12
    # Only the baseline lookup; empty candidate lists skip the matrix.
    assert len(matrix.calls) == 1


def test_unreachable_baseline_aborts_before_searching():
    places = FakePlaces(default=mixed_pool())
    engine = make_engine(places, FakeMatrix(baseline=math.inf))

    assert suggest(engine) == []
    assert places.calls == []


def test_failed_place_queries_degrade_to_partial_results():
    pool = [make_candidate("o1", 0, "park"), make_candidate("o2", 1, "park")]
    places = FakePlaces(default=pool, fail_types=["cafe"])
    engine = make_engine(places, FakeMatrix(legs=legs_for(pool)))

    genres = suggest(engine)

    assert len(genres) == 2


def test_collector_deduplicates_across_points_and_types():
    pool = mixed_pool()
    places = FakePlaces(default=pool)
    matrix = FakeMatrix(legs=legs_for(pool))
    engine = make_engine(places, matrix)

    suggest(engine)

    candidate_lists = [dests for origin, dests, _ in matrix.calls if dests != [DEST]]
    assert len(candidate_lists) == 2
    assert all(len(dests) == len(pool) for dests in candidate_lists)


def test_corridor_points_are_quarter_half_three_quarters():
    places = FakePlaces()
    engine = make_engine(places, FakeMatrix(), max_attempts=1)

    suggest(engine)

    points = sorted({point for point, _, _ in places.calls}, key=lambda p: p.lat)
    assert len(points) == 3
    assert math.isclose(points[0].lat, 35.025)
    assert math.isclose(points[1].lat, 35.05)
    assert math.isclose(points[2].lon, 139.075)


def test_genres_never_expose_place_identity():
    pool = mixed_pool()
    engine = make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool)))

    genres = suggest(engine)

    assert genres
    for genre in genres:
        assert isinstance(genre, Genre)
        payload = genre.to_dict()
        assert set(payload) == {"id", "name", "category", "type_tag"}
        text = repr(payload) + repr(genre)
        for c in pool:
            assert c.place_id not in genre.id
            assert "Secret place" not in text
            assert str(c.coordinate.lat) not in text


def test_publish_stores_mapping_and_excludes_winners():
    pool = mixed_pool()
    store = MemoryStore()
    engine = make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool)), store=store)

    genres = suggest(engine)

    revealed = [engine.reveal(g.id) for g in genres]
    assert all(c is not None for c in revealed)
    assert store.excluded_ids() == [c.place_id for c in revealed]
    for genre, candidate in zip(genres, revealed):
        assert genre.category == candidate.category
        assert genre.type_tag == candidate.type_tag


def test_previously_suggested_places_are_skipped():
    pool = mixed_pool()
    store = MemoryStore()
    for c in pool[:4]:
        store.exclude(c.place_id)
    engine = make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool)), store=store)

    genres = suggest(engine)

    assert [engine.reveal(g.id).place_id for g in genres] == ["other3"]


def test_exclusions_can_be_disabled():
    pool = mixed_pool()
    store = MemoryStore()
    for c in pool:
        store.exclude(c.place_id)
    engine = make_engine(
        FakePlaces(default=pool),
        FakeMatrix(legs=legs_for(pool)),
        store=store,
        apply_exclusions=False,
    )

    assert len(suggest(engine)) == 3


def test_display_names_come_from_type_table_with_category_fallback():
    pool = [make_candidate("food1", 0, "cafe"), make_candidate("other1", 1, "hiking_area")]
    engine = make_engine(FakePlaces(default=pool), FakeMatrix(legs=legs_for(pool)))

    genres = suggest(engine)

    assert sorted(g.name for g in genres) == ["Cafe", "Spot"]


def test_timeout_degrades_to_empty_result():
    places = FakePlaces(default=mixed_pool(), delay=2.0)
    engine = make_engine(places, FakeMatrix(legs=legs_for(mixed_pool())))

    started = time.monotonic()
    genres = suggest(engine, timeout=0.3)
    elapsed = time.monotonic() - started

    assert genres == []
    assert elapsed < 1.5


class LockedCachePlaces(FakePlaces):
    def search_nearby(self, point, type_tag, radius_m):
        if type_tag == "cafe":
            raise sqlite3.OperationalError("database is locked")
        return super().search_nearby(point, type_tag, radius_m)


def test_non_http_provider_errors_degrade_instead_of_raising():
    pool = [make_candidate("o1", 0, "park"), make_candidate("o2", 1, "park")]
    engine = make_engine(LockedCachePlaces(default=pool), FakeMatrix(legs=legs_for(pool)))

    genres = suggest(engine)

    assert sorted(engine.reveal(g.id).place_id for g in genres) == ["o1", "o2"]


class ShortDestinationMatrix(FakeMatrix):
    """Destination-side lookups cover only the first ``covered`` candidates."""

    def __init__(self, covered, **kwargs):
        super().__init__(**kwargs)
        self.covered = covered

    def get_durations(self, origin, destinations, mode):
        durations = super().get_durations(origin, destinations, mode)
        if origin == DEST:
            return durations[: self.covered]
        return durations


def test_short_matrix_side_leaves_uncovered_candidates_unreachable():
    pool = [make_candidate(f"p{i}", i, "park") for i in range(3)]
    engine = make_engine(FakePlaces(default=pool), ShortDestinationMatrix(2, legs=legs_for(pool)))

    genres = suggest(engine)

    assert sorted(engine.reveal(g.id).place_id for g in genres) == ["p0", "p1"]


class UniformMatrixHttp:
    def __init__(self, seconds):
        self.seconds = seconds
        self.calls = 0
        self._lock = threading.Lock()

    def post_json(self, url, body, field_mask, extra_headers=None):
        with self._lock:
            self.calls += 1
        return [
            {"originIndex": 0, "destinationIndex": i, "duration": f"{self.seconds}s", "condition": "ROUTE_EXISTS"}
            for i in range(len(body["destinations"]))
        ]


def test_dense_corridor_fits_default_routes_budget():
    pool = [make_candidate(f"dense{i}", i, "park") for i in range(300)]
    budget = RequestBudget(
        max_places=config.MAX_PLACES_REQUESTS_PER_RUN,
        max_routes=config.MAX_ROUTES_REQUESTS_PER_RUN,
    )
    cache = Cache(":memory:")
    http = UniformMatrixHttp(600)
    matrix = RouteMatrixClient(http, cache, budget, no_cache=True)
    engine = make_engine(FakePlaces(default=pool), matrix)

    try:
        genres = suggest(engine)
    finally:
        cache.close()

    assert len(genres) == 3
    # baseline + three 100-destination chunks per side
    assert budget.routes_count == 7
    assert http.calls == 7
