"""
Geodistance and district gazetteer.

Pure functions, no I/O. Distances use the haversine formula on a spherical
earth; district names resolve to static centroids for Lima and Callao.
"""

import logging
import math
import re
from typing import Optional

from recruit_engine.schemas.catalog_schema import GeoPoint
from recruit_engine.utils import strip_accents

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
# Shorter inputs are too ambiguous for reverse substring matching ("la", "sa")
MIN_PARTIAL_QUERY_LENGTH = 3

DISTRICT_CENTROIDS: dict[str, tuple[float, float]] = {
    # Lima Centro
    "lima": (-12.0464, -77.0428),
    "breña": (-12.0569, -77.0536),
    "jesús maría": (-12.0756, -77.0485),
    "lince": (-12.0874, -77.0396),
    "magdalena del mar": (-12.0945, -77.0680),
    "miraflores": (-12.1111, -77.0316),
    "pueblo libre": (-12.0784, -77.0628),
    "san borja": (-12.1023, -77.0019),
    "san isidro": (-12.0950, -77.0360),
    "san miguel": (-12.0838, -77.0792),
    "surquillo": (-12.1126, -77.0125),
    "barranco": (-12.1485, -77.0210),
    # Lima Norte
    "ancón": (-11.7766, -77.1720),
    "carabayllo": (-11.8767, -77.0279),
    "comas": (-11.9368, -77.0545),
    "independencia": (-11.9961, -77.0560),
    "los olivos": (-11.9772, -77.0700),
    "puente piedra": (-11.8683, -77.0743),
    "san martín de porres": (-12.0084, -77.0864),
    "santa rosa": (-11.8028, -77.1697),
    # Lima Sur
    "chorrillos": (-12.1906, -77.0069),
    "lurín": (-12.2741, -76.8711),
    "pachacámac": (-12.2281, -76.8617),
    "san juan de miraflores": (-12.1627, -76.9636),
    "santiago de surco": (-12.1337, -76.9863),
    "surco": (-12.1337, -76.9863),
    "villa el salvador": (-12.2197, -76.9272),
    "villa maría del triunfo": (-12.1611, -76.9298),
    # Lima Este
    "ate": (-12.0292, -76.9360),
    "cieneguilla": (-12.1121, -76.8189),
    "el agustino": (-12.0494, -77.0016),
    "la molina": (-12.0830, -76.9360),
    "rímac": (-12.0315, -77.0298),
    "san juan de lurigancho": (-11.9723, -77.0031),
    "santa anita": (-12.0433, -76.9632),
    # Callao
    "callao": (-12.0562, -77.1182),
    "bellavista": (-12.0620, -77.1009),
    "carmen de la legua": (-12.0436, -77.0945),
    "la perla": (-12.0664, -77.1126),
    "la punta": (-12.0729, -77.1643),
    "ventanilla": (-11.8797, -77.1264),
    "mi perú": (-11.8596, -77.1232),
}

_NORMALIZED_CENTROIDS: dict[str, tuple[float, float]] = {
    strip_accents(name): coords for name, coords in DISTRICT_CENTROIDS.items()
}
# Longest names first so "san juan de miraflores" wins over "miraflores"
_KEYS_BY_LENGTH = sorted(_NORMALIZED_CENTROIDS, key=len, reverse=True)


def _is_resolved(point: Optional[GeoPoint]) -> bool:
    return point is not None and bool(point.lat) and bool(point.lng)


def distance_km(a: Optional[GeoPoint], b: Optional[GeoPoint]) -> float:
    """
    Great-circle distance between two points, rounded to two decimals.

    Returns ``math.inf`` when either point is missing or has a zero-valued
    coordinate, so callers can filter unresolved pairs with a plain
    radius comparison.
    """
    if not _is_resolved(a) or not _is_resolved(b):
        return math.inf

    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return round(EARTH_RADIUS_KM * c, 2)


def district_centroid(name: Optional[str]) -> Optional[GeoPoint]:
    """
    Resolve a free-text district name to its centroid.

    Matching is case- and accent-insensitive: an exact name first, then the
    longest gazetteer name appearing as whole words in the text, then a
    gazetteer name that contains the text. Returns None on no match.
    """
    if not name:
        return None
    query = strip_accents(name)
    if not query:
        return None

    coords = _NORMALIZED_CENTROIDS.get(query)
    if coords is None:
        coords = next(
            (
                _NORMALIZED_CENTROIDS[key]
                for key in _KEYS_BY_LENGTH
                if re.search(rf"\b{re.escape(key)}\b", query)
            ),
            None,
        )
    if coords is None and len(query) >= MIN_PARTIAL_QUERY_LENGTH:
        coords = next(
            (_NORMALIZED_CENTROIDS[key] for key in _KEYS_BY_LENGTH if query in key), None
        )
    if coords is None:
        logger.debug("No district match for %r", name)
        return None
    return GeoPoint(lat=coords[0], lng=coords[1])
