"""Waypoint suggestion engine.

Samples the origin->destination corridor, collects candidate places for the
traveler's mood, filters them by detour time and quality, and picks a
reproducible stratified set of winners. Only anonymized genres leave the
engine; the concrete places go to the injected store for the reveal on
arrival.

Provider variability (HTTP errors, exhausted budgets, timeouts) degrades to
fewer candidates. ``suggest`` returns an empty list when nothing qualifies and
never raises for that case.
"""
from __future__ import annotations

import logging
import math
import sqlite3
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import requests

from . import config
from .config import WaypointConfig
from .geo import corridor_points, haversine_km
from .http import BudgetExceededError
from .models import Candidate, Coordinate, Genre, Mood, ScoredCandidate, TransportMode
from .providers import (
    MoodTypeLookup,
    PersistenceStore,
    PlaceSearchProvider,
    StaticDisplayNameLookup,
    StaticMoodTypeLookup,
    TimeMatrixProvider,
    TypeDisplayNameLookup,
)
from .scoring import additional_minutes, composite_score, meets_quality_bar, within_time_budget
from .selection import GENRE_SALT_TAG, opaque_id, pick_deterministic_top, seed_input

logger = logging.getLogger(__name__)

# Anything a provider raises for one query degrades that query only.
PROVIDER_ERRORS = (
    requests.RequestException,
    BudgetExceededError,
    sqlite3.Error,
    ValueError,
    TypeError,
    KeyError,
    OSError,
)


class Deadline:
    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


class WaypointEngine:
    def __init__(
        self,
        places: PlaceSearchProvider,
        matrix: TimeMatrixProvider,
        store: PersistenceStore,
        mood_types: Optional[MoodTypeLookup] = None,
        display_names: Optional[TypeDisplayNameLookup] = None,
        cfg: Optional[WaypointConfig] = None,
    ) -> None:
        self.places = places
        self.matrix = matrix
        self.store = store
        self.mood_types = mood_types or StaticMoodTypeLookup()
        self.display_names = display_names or StaticDisplayNameLookup()
        self.cfg = (cfg or config.WAYPOINT_CONFIG).validate()

    def suggest(
        self,
        current_location: Coordinate,
        destination: Coordinate,
        mood: Mood,
        transport_mode: TransportMode,
        now: Optional[datetime] = None,
        seed: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[Genre]:
        deadline = Deadline(timeout if timeout is not None else self.cfg.timeout_seconds)
        executor = ThreadPoolExecutor(max_workers=self.cfg.max_workers, thread_name_prefix="waypoint")
        try:
            return self._suggest(
                current_location,
                destination,
                mood,
                transport_mode,
                now or datetime.now(timezone.utc),
                seed,
                executor,
                deadline,
            )
        finally:
            # Stragglers past the deadline are abandoned, not awaited. They can
            # outlive the caller's Cache, which ignores calls once closed.
            executor.shutdown(wait=False, cancel_futures=True)

    def reveal(self, genre_id: str) -> Optional[Candidate]:
        return self.store.get(genre_id)

    def _suggest(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mood: Mood,
        mode: TransportMode,
        now: datetime,
        seed: Optional[str],
        executor: ThreadPoolExecutor,
        deadline: Deadline,
    ) -> List[Genre]:
        logger.info(
            "Suggesting waypoint: mood=%s mode=%s corridor=%.2f km",
            mood.key,
            mode.value,
            haversine_km(origin.lat, origin.lon, destination.lat, destination.lon),
        )
        baseline = self.baseline_seconds(origin, destination, mode, executor, deadline)
        if not math.isfinite(baseline):
            logger.warning("No baseline route from origin to destination; no detour possible")
            return []

        types = self.mood_types.types_for(mood)
        if not types:
            logger.warning("No place types configured for mood %s", mood.key)
            return []

        excluded = set(self.store.excluded_ids()) if self.cfg.apply_exclusions else set()
        seed_value = seed_input(now, seed, include_seconds=self.cfg.seed_includes_seconds)
        points = corridor_points(origin, destination)

        for attempt in range(self.cfg.max_attempts):
            if deadline.expired:
                logger.warning("Suggestion deadline reached before attempt %s", attempt + 1)
                break
            radius = self.cfg.radius_for_attempt(attempt)
            logger.info("Attempt %s: collecting candidates (radius=%sm)", attempt + 1, radius)
            candidates = self.collect_candidates(points, types, radius, executor, deadline)
            if excluded:
                before = len(candidates)
                candidates = [c for c in candidates if c.place_id not in excluded]
                if before != len(candidates):
                    logger.info("Dropped %s previously suggested places", before - len(candidates))

            scored = self.apply_filters(candidates, origin, destination, baseline, mode, executor, deadline)
            logger.info("Attempt %s: %s candidates, %s qualifying", attempt + 1, len(candidates), len(scored))

            picked = pick_deterministic_top(scored, seed_value, self.cfg)
            if picked:
                return self.publish(picked, seed_value)

        logger.info("No qualifying waypoint found")
        return []

    def baseline_seconds(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: TransportMode,
        executor: ThreadPoolExecutor,
        deadline: Deadline,
    ) -> float:
        future = executor.submit(self.matrix.get_durations, origin, [destination], mode)
        durations = _durations_or_unreachable(_collect([future], deadline, "baseline")[0], 1)
        return durations[0]

    def collect_candidates(
        self,
        points: Sequence[Coordinate],
        types: Sequence[str],
        radius_m: int,
        executor: ThreadPoolExecutor,
        deadline: Deadline,
    ) -> List[Candidate]:
        futures = [
            executor.submit(self.places.search_nearby, point, type_tag, radius_m)
            for point in points
            for type_tag in types
        ]
        seen = set()
        unique: List[Candidate] = []
        # Submission order keeps first-occurrence dedup reproducible.
        for result in _collect(futures, deadline, "place search"):
            for candidate in result or []:
                if candidate.place_id in seen:
                    continue
                seen.add(candidate.place_id)
                unique.append(candidate)
        return unique

    def apply_filters(
        self,
        candidates: Sequence[Candidate],
        origin: Coordinate,
        destination: Coordinate,
        baseline: float,
        mode: TransportMode,
        executor: ThreadPoolExecutor,
        deadline: Deadline,
    ) -> List[ScoredCandidate]:
        if not candidates:
            return []
        coords = [c.coordinate for c in candidates]
        n = len(coords)
        to_candidate = executor.submit(self.matrix.get_durations, origin, coords, mode)
        # Destination->candidate stands in for candidate->destination.
        from_destination = executor.submit(self.matrix.get_durations, destination, coords, mode)
        first, second = _collect([to_candidate, from_destination], deadline, "duration matrix")
        d1 = _durations_or_unreachable(first, n)
        d2 = _durations_or_unreachable(second, n)

        out: List[ScoredCandidate] = []
        for idx, candidate in enumerate(candidates):
            if not (math.isfinite(d1[idx]) and math.isfinite(d2[idx])):
                continue
            minutes = additional_minutes(d1[idx], d2[idx], baseline)
            if not within_time_budget(minutes, self.cfg.max_additional_minutes):
                continue
            if not meets_quality_bar(candidate, self.cfg):
                continue
            out.append(
                ScoredCandidate(
                    candidate=candidate,
                    additional_minutes=minutes,
                    score=composite_score(candidate.rating, candidate.review_count, minutes),
                )
            )
        return out

    def publish(self, picked: Sequence[ScoredCandidate], seed_value: str) -> List[Genre]:
        genres: List[Genre] = []
        for sc in picked:
            candidate = sc.candidate
            genre = Genre(
                id=opaque_id(candidate.place_id, seed_value + GENRE_SALT_TAG),
                name=self.display_names.display_name_for(candidate.type_tag, candidate.category),
                category=candidate.category,
                type_tag=candidate.type_tag,
            )
            self.store.save(candidate, genre)
            self.store.exclude(candidate.place_id)
            genres.append(genre)
        logger.info("Published %s genres: %s", len(genres), ", ".join(g.name for g in genres))
        return genres


def _collect(futures: Sequence[Future], deadline: Deadline, label: str) -> List[Any]:
    """Wait for futures until the deadline; failed or late ones yield None."""
    done, _ = wait(futures, timeout=deadline.remaining())
    results: List[Any] = []
    for future in futures:
        if future not in done:
            future.cancel()
            logger.warning("%s timed out; treating as empty", label)
            results.append(None)
            continue
        try:
            results.append(future.result())
        except PROVIDER_ERRORS as exc:
            logger.warning("%s failed: %s", label, exc)
            results.append(None)
    return results


def _durations_or_unreachable(durations: Optional[Sequence[float]], n: int) -> List[float]:
    out = [math.inf] * n
    for idx, value in enumerate(list(durations or [])[:n]):
        try:
            out[idx] = float(value) if value is not None else math.inf
        except (TypeError, ValueError):
            out[idx] = math.inf
    return out


def summarize(genres: Sequence[Genre]) -> Dict[str, Any]:
    return {
        "count": len(genres),
        "genres": [g.to_dict() for g in genres],
    }
