"""Reproducible stratified selection of winners."""
from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .config import WaypointConfig
from .models import Category, ScoredCandidate

FOOD_SALT_TAG = "R"
OTHER_SALT_TAG = "O"
BACKFILL_SALT_TAG = "A"
GENRE_SALT_TAG = "G"
DEFAULT_SEED = "default"


def seed_input(now: datetime, seed: Optional[str] = None, include_seconds: bool = True) -> str:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    day = now.astimezone(timezone.utc).strftime("%Y%m%d")
    semantic = seed or DEFAULT_SEED
    if include_seconds:
        return f"{day}#{int(now.timestamp())}#{semantic}"
    return f"{day}#{semantic}"


def _mac(identifier: str, salt: str) -> bytes:
    return hmac.new(salt.encode("utf-8"), identifier.encode("utf-8"), hashlib.sha256).digest()


def pseudo_random(identifier: str, salt: str) -> float:
    value = int.from_bytes(_mac(identifier, salt)[:8], "big")
    return (value % 1_000_000) / 1_000_000.0


def opaque_id(identifier: str, salt: str) -> str:
    return _mac(identifier, salt).hex()[:24]


def rank(items: Sequence[ScoredCandidate], salt: str) -> List[ScoredCandidate]:
    # sorted() is stable, so equal keys keep input order
    return sorted(items, key=lambda sc: sc.score + pseudo_random(sc.place_id, salt), reverse=True)


def pick_deterministic_top(
    scored: Sequence[ScoredCandidate],
    seed_value: str,
    cfg: Optional[WaypointConfig] = None,
) -> List[ScoredCandidate]:
    cfg = cfg or WaypointConfig()
    if not scored:
        return []

    food = [sc for sc in scored if sc.category == Category.FOOD]
    other = [sc for sc in scored if sc.category == Category.OTHER]

    picked: List[ScoredCandidate] = []
    picked.extend(rank(food, seed_value + FOOD_SALT_TAG)[: min(cfg.food_cap, len(food))])
    picked.extend(rank(other, seed_value + OTHER_SALT_TAG)[: min(cfg.other_cap, len(other))])

    if len(picked) < cfg.result_count:
        taken = {sc.place_id for sc in picked}
        for sc in rank(scored, seed_value + BACKFILL_SALT_TAG):
            if len(picked) >= cfg.result_count:
                break
            if sc.place_id in taken:
                continue
            picked.append(sc)
            taken.add(sc.place_id)

    return picked[: cfg.result_count]
