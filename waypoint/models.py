"""Domain types for corridor candidates and anonymized genres."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Category(str, Enum):
    FOOD = "food"
    OTHER = "other"


class ActivityType(str, Enum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"


class VibeType(str, Enum):
    JAZZY = "jazzy"
    DISCOVERY = "discovery"
    EXCITING = "exciting"


class TransportMode(str, Enum):
    WALKING = "walking"
    DRIVING = "driving"
    TRANSIT = "transit"
    CYCLING = "cycling"


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float

    @classmethod
    def parse(cls, text: str) -> "Coordinate":
        """Parse "lat,lon" as typed on the command line."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 2:
            raise ValueError(f"Expected LAT,LON but got {text!r}")
        lat, lon = float(parts[0]), float(parts[1])
        if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
            raise ValueError(f"Coordinate out of range: {text!r}")
        return cls(lat, lon)

    def to_lat_lng(self) -> Dict[str, float]:
        return {"latitude": self.lat, "longitude": self.lon}


@dataclass(frozen=True)
class Mood:
    activity: ActivityType
    vibe: VibeType

    @property
    def key(self) -> str:
        return f"{self.activity.value}/{self.vibe.value}"


@dataclass(frozen=True)
class Candidate:
    place_id: str
    coordinate: Coordinate
    category: Category
    type_tag: str
    rating: Optional[float] = None
    review_count: Optional[int] = None
    name: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place_id": self.place_id,
            "name": self.name,
            "address": self.address,
            "lat": self.coordinate.lat,
            "lon": self.coordinate.lon,
            "category": self.category.value,
            "type_tag": self.type_tag,
            "rating": self.rating,
            "review_count": self.review_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        return cls(
            place_id=data["place_id"],
            coordinate=Coordinate(float(data["lat"]), float(data["lon"])),
            category=Category(data["category"]),
            type_tag=data["type_tag"],
            rating=data.get("rating"),
            review_count=data.get("review_count"),
            name=data.get("name"),
            address=data.get("address"),
        )


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    additional_minutes: float
    score: float

    @property
    def place_id(self) -> str:
        return self.candidate.place_id

    @property
    def category(self) -> Category:
        return self.candidate.category


@dataclass(frozen=True)
class Genre:
    """User-facing stand-in for a place; carries no place identity."""

    id: str
    name: str
    category: Category
    type_tag: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "type_tag": self.type_tag,
        }
