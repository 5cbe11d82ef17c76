"""Detour cost and composite quality scoring."""
from __future__ import annotations

import math
from typing import Optional

from .config import WaypointConfig
from .models import Candidate

BOUNDARY_EPSILON = 1e-6
RATING_WEIGHT = 1.0
REVIEWS_WEIGHT = 0.3
DETOUR_WEIGHT = 0.2


def additional_minutes(origin_to_candidate: float, candidate_to_destination: float, baseline: float) -> float:
    return (origin_to_candidate + candidate_to_destination - baseline) / 60.0


def within_time_budget(minutes: float, max_additional_minutes: float) -> bool:
    return minutes <= max_additional_minutes + BOUNDARY_EPSILON


def meets_quality_bar(candidate: Candidate, cfg: WaypointConfig) -> bool:
    rating = candidate.rating or 0.0
    reviews = candidate.review_count or 0
    return rating >= cfg.min_rating and reviews >= cfg.min_reviews


def composite_score(rating: Optional[float], review_count: Optional[int], minutes: float) -> float:
    return (
        (rating or 0.0) * RATING_WEIGHT
        + math.log((review_count or 0) + 1) * REVIEWS_WEIGHT
        - minutes * DETOUR_WEIGHT
    )
