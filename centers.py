"""Nearest drop-off center ranking."""

from __future__ import annotations

import math
from numbers import Real
from typing import List, Optional, Sequence

from database import RecordStore
from errors import InvalidInput
from geo import haversine_km
from schemas import Center, RankedCenter

DEFAULT_LIMIT = 5


def _coordinate(value, name: str, bound: float) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidInput("Latitude and longitude must be valid numbers")
    try:
        value = float(value)
    except OverflowError:
        raise InvalidInput("Latitude and longitude must be valid numbers") from None
    if not math.isfinite(value):
        raise InvalidInput("Latitude and longitude must be valid numbers")
    if not -bound <= value <= bound:
        raise InvalidInput(f"{name} must be between {-bound:g} and {bound:g}")
    return value


class CenterRanker:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def find_nearest(
        self,
        latitude: float,
        longitude: float,
        limit: int = DEFAULT_LIMIT,
        candidates: Optional[Sequence[Center]] = None,
    ) -> List[RankedCenter]:
        """Return up to ``limit`` centers closest to the point, nearest first.

        Candidates default to every center in the store. Equal distances keep
        the candidates' original order.
        """
        lat = _coordinate(latitude, "latitude", 90)
        lon = _coordinate(longitude, "longitude", 180)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidInput("limit must be a positive integer")

        if candidates is None:
            candidates = self.store.list_all_centers()

        measured = [
            (haversine_km(lat, lon, c.latitude, c.longitude), c) for c in candidates
        ]
        measured.sort(key=lambda pair: pair[0])

        return [
            RankedCenter(**c.model_dump(), distance_km=round(d, 2))
            for d, c in measured[:limit]
        ]
