"""
Rank stores with open, shift-compatible vacancies near a candidate.

Ordering rule: two stores whose distances differ by more than the tie
window (0.5 km by default) are ordered by distance; within the window the
store with more open slots comes first.
"""

import functools
import logging
import math
from dataclasses import dataclass
from typing import Optional

from recruit_engine.config import settings
from recruit_engine.schemas.catalog_schema import (
    GeoPoint,
    ShiftType,
    Store,
    StoreMatch,
    Vacancy,
)
from recruit_engine.tools.catalog import Catalog
from recruit_engine.tools.geolocation import distance_km, district_centroid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateLocation:
    """Where the candidate is: a shared GPS point, a typed district, or both."""

    district: Optional[str] = None
    point: Optional[GeoPoint] = None

    def resolve(self) -> Optional[GeoPoint]:
        """Direct GPS takes precedence over the district centroid."""
        if self.point is not None and self.point.lat and self.point.lng:
            return self.point
        return district_centroid(self.district)


def store_location(store: Store) -> Optional[GeoPoint]:
    """Direct lat/lng, then the explicit coordinates field, then the district centroid."""
    if store.lat and store.lng:
        return GeoPoint(lat=store.lat, lng=store.lng)
    if store.coordinates is not None:
        return store.coordinates
    return district_centroid(store.district)


def is_shift_compatible(vacancy: Vacancy, availability: ShiftType) -> bool:
    return (
        vacancy.shift_type == ShiftType.FLEXIBLE
        or availability == ShiftType.FLEXIBLE
        or vacancy.shift_type == availability
    )


def rank_matches(matches: list[StoreMatch], tie_km: float) -> list[StoreMatch]:
    """Sort by distance, preferring capacity among stores within ``tie_km`` of each other."""

    def compare(a: StoreMatch, b: StoreMatch) -> int:
        if abs(a.distance_km - b.distance_km) > tie_km:
            return -1 if a.distance_km < b.distance_km else 1
        if a.total_open_slots != b.total_open_slots:
            return b.total_open_slots - a.total_open_slots
        return (a.distance_km > b.distance_km) - (a.distance_km < b.distance_km)

    return sorted(matches, key=functools.cmp_to_key(compare))


class StoreMatcher:
    """Finds the closest stores with vacancies a candidate can take."""

    def __init__(
        self,
        catalog: Catalog,
        tie_km: float = settings.matching.distance_tie_km,
        max_results: int = settings.matching.max_results,
    ) -> None:
        self._catalog = catalog
        self._tie_km = tie_km
        self._max_results = max_results

    async def find_matches(
        self,
        candidate_location: CandidateLocation,
        shift_availability: ShiftType,
        tenant_id: str,
        max_distance_km: float = settings.matching.max_distance_km,
    ) -> list[StoreMatch]:
        """
        Return up to ``max_results`` ranked matches.

        Stores beyond ``max_distance_km``, stores whose coordinates cannot be
        resolved, and stores without a compatible open vacancy are dropped.
        An unresolvable candidate location yields an empty list.
        """
        origin = candidate_location.resolve()
        if origin is None:
            logger.warning("Could not resolve candidate location %r", candidate_location.district)
            return []

        matches: list[StoreMatch] = []
        for store in await self._catalog.list_stores(tenant_id):
            distance = distance_km(origin, store_location(store))
            if math.isinf(distance) or distance > max_distance_km:
                continue

            vacancies = [
                v
                for v in await self._catalog.list_vacancies(tenant_id, store.id)
                if v.is_open and is_shift_compatible(v, shift_availability)
            ]
            if not vacancies:
                continue

            matches.append(
                StoreMatch(
                    store=store,
                    vacancies=vacancies,
                    total_open_slots=sum(v.open_slots for v in vacancies),
                    distance_km=distance,
                )
            )

        ranked = rank_matches(matches, self._tie_km)[: self._max_results]
        logger.info(
            "Found %d matching stores within %.1f km for tenant %s",
            len(ranked), max_distance_km, tenant_id,
        )
        return ranked
