"""Collaborator contracts consumed by the engine, plus the static lookups."""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence

from . import config
from .models import Candidate, Category, Coordinate, Genre, Mood, TransportMode


class PlaceSearchProvider(Protocol):
    def search_nearby(self, point: Coordinate, type_tag: str, radius_m: int) -> List[Candidate]:
        ...


class TimeMatrixProvider(Protocol):
    def get_durations(
        self,
        origin: Coordinate,
        destinations: Sequence[Coordinate],
        mode: TransportMode,
    ) -> List[float]:
        ...


class MoodTypeLookup(Protocol):
    def types_for(self, mood: Mood) -> List[str]:
        ...


class TypeDisplayNameLookup(Protocol):
    def display_name_for(self, type_tag: str, category: Category) -> str:
        ...


class PersistenceStore(Protocol):
    def save(self, candidate: Candidate, genre: Genre) -> None:
        ...

    def get(self, genre_id: str) -> Optional[Candidate]:
        ...

    def exclude(self, place_id: str) -> None:
        ...

    def excluded_ids(self) -> List[str]:
        ...


class StaticMoodTypeLookup:
    def __init__(self, table: Optional[Dict[str, List[str]]] = None) -> None:
        self.table = table

    def types_for(self, mood: Mood) -> List[str]:
        table = self.table if self.table is not None else config.MOOD_TYPES
        return list(table.get(mood.key, []))


class StaticDisplayNameLookup:
    def __init__(self, table: Optional[Dict[str, str]] = None) -> None:
        self.table = table

    def display_name_for(self, type_tag: str, category: Category) -> str:
        table = self.table if self.table is not None else config.TYPE_DISPLAY_NAMES
        name = table.get(type_tag)
        if name:
            return name
        return config.FALLBACK_DISPLAY_NAMES[category.value]
