# backend/agrisync/services/geo/calculator.py
"""
Polygon measurements from field-collected GPS points (EPSG:4326, spherical earth).

Area uses the longitude-weighted shoelace variant, perimeter sums haversine legs
and the center is the normalised mean of 3-D unit vectors. Good for field-sized
parcels; not antimeridian-aware for area and not exact for very large or
near-polar rings.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from math import radians, degrees, sin, cos, asin, atan2, sqrt
from typing import Any, Iterable, List, Optional, Sequence

from shapely.geometry import Polygon, mapping

from agrisync.errors import ErrorDetail, InvalidPolygon

EARTH_RADIUS_M = 6371000.0
SQM_PER_ACRE = 4046.86
SQM_PER_HECTARE = 10000.0
SQFT_PER_SQM = 10.7639
CLOSURE_TOLERANCE_M = 10.0
# degrees; about 1 cm. Only a repeat this close is a closing duplicate
COORD_EPSILON = 1e-7
MIN_VERTICES = 3


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class GeoMetrics:
    area_square_meters: float
    area_acres: float
    area_hectares: float
    perimeter_meters: float
    center: GeoPoint
    point_count: int

    def as_fields(self) -> dict:
        """Column values for a measurement row."""
        return {
            "area_square_meters": self.area_square_meters,
            "area_acres": self.area_acres,
            "area_hectares": self.area_hectares,
            "perimeter_meters": self.perimeter_meters,
            "center_latitude": self.center.latitude,
            "center_longitude": self.center.longitude,
            "point_count": self.point_count,
        }


def round_half_up(value: float, places: int) -> float:
    # decimal rounding of the shortest repr, ties away from zero
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def as_point(raw: Any) -> GeoPoint:
    if isinstance(raw, GeoPoint):
        return raw
    if isinstance(raw, dict):
        get = raw.get
    else:
        def get(key, default=None):
            return getattr(raw, key, default)
    return GeoPoint(
        latitude=float(get("latitude")),
        longitude=float(get("longitude")),
        altitude=get("altitude"),
        accuracy=get("accuracy"),
    )


def as_points(raw_points: Iterable[Any]) -> List[GeoPoint]:
    return [as_point(p) for p in raw_points]


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters (haversine)."""
    dlat = radians(b.latitude - a.latitude)
    dlon = radians(b.longitude - a.longitude)
    h = sin(dlat / 2) ** 2 + cos(radians(a.latitude)) * cos(radians(b.latitude)) * sin(dlon / 2) ** 2
    # clamp float noise for antipodal points
    return 2 * EARTH_RADIUS_M * asin(sqrt(min(1.0, h)))


def is_closed(points: Sequence[GeoPoint]) -> bool:
    """True when the last point lies within the closure tolerance of the first."""
    if len(points) < 2:
        return False
    return distance_m(points[0], points[-1]) <= CLOSURE_TOLERANCE_M


def _same_position(a: GeoPoint, b: GeoPoint) -> bool:
    return abs(a.latitude - b.latitude) < COORD_EPSILON and abs(a.longitude - b.longitude) < COORD_EPSILON


def vertices(points: Sequence[GeoPoint]) -> List[GeoPoint]:
    """Ring vertices without a trailing copy of the first point.

    A last point that is merely near the first (see is_closed) is a real corner
    of a small parcel and is kept.
    """
    pts = list(points)
    if len(pts) > 1 and _same_position(pts[0], pts[-1]):
        return pts[:-1]
    return pts


def validate(points: Sequence[GeoPoint]) -> None:
    details: List[ErrorDetail] = []
    for i, p in enumerate(points):
        if not -90.0 <= p.latitude <= 90.0:
            details.append(ErrorDetail(field=f"polygon.{i}.latitude", message="latitude must be within [-90, 90]", value=p.latitude))
        if not -180.0 <= p.longitude <= 180.0:
            details.append(ErrorDetail(field=f"polygon.{i}.longitude", message="longitude must be within [-180, 180]", value=p.longitude))
    if details:
        raise InvalidPolygon("polygon has coordinates out of range", details=details)
    if len(points) < MIN_VERTICES or len(vertices(points)) < MIN_VERTICES:
        raise InvalidPolygon(
            "polygon needs at least 3 distinct points",
            details=[ErrorDetail(field="polygon", message="at least 3 points are required", value=len(points))],
        )


def ring_area_m2(points: Sequence[GeoPoint]) -> float:
    # wraps last -> first; an open ring is closed implicitly by point[0]
    n = len(points)
    total = 0.0
    for i in range(n):
        p1 = points[i]
        p2 = points[(i + 1) % n]
        total += radians(p2.longitude - p1.longitude) * (2 + sin(radians(p1.latitude)) + sin(radians(p2.latitude)))
    return abs(total * EARTH_RADIUS_M * EARTH_RADIUS_M / 2)


def ring_perimeter_m(points: Sequence[GeoPoint]) -> float:
    n = len(points)
    return sum(distance_m(points[i], points[(i + 1) % n]) for i in range(n))


def path_length_m(points: Sequence[GeoPoint]) -> float:
    """Length of an open polyline (no wrap), e.g. a breadcrumb trail."""
    return sum(distance_m(a, b) for a, b in zip(points, points[1:]))


def centroid(points: Sequence[GeoPoint]) -> GeoPoint:
    x = y = z = 0.0
    for p in points:
        lat, lon = radians(p.latitude), radians(p.longitude)
        x += cos(lat) * cos(lon)
        y += cos(lat) * sin(lon)
        z += sin(lat)
    n = len(points)
    x, y, z = x / n, y / n, z / n
    lon = atan2(y, x)
    lat = atan2(z, sqrt(x * x + y * y))
    return GeoPoint(latitude=round_half_up(degrees(lat), 7), longitude=round_half_up(degrees(lon), 7))


def convert_square_meters(square_meters: float) -> dict:
    return {
        "square_meters": round_half_up(square_meters, 2),
        "acres": round_half_up(square_meters / SQM_PER_ACRE, 4),
        "hectares": round_half_up(square_meters / SQM_PER_HECTARE, 4),
        "square_feet": round_half_up(square_meters * SQFT_PER_SQM, 2),
    }


def compute(raw_points: Iterable[Any]) -> GeoMetrics:
    """Area, perimeter and center of a polygon; raises InvalidPolygon."""
    points = as_points(raw_points)
    validate(points)

    area = ring_area_m2(points)
    return GeoMetrics(
        area_square_meters=round_half_up(area, 2),
        area_acres=round_half_up(area / SQM_PER_ACRE, 4),
        area_hectares=round_half_up(area / SQM_PER_HECTARE, 4),
        perimeter_meters=round_half_up(ring_perimeter_m(points), 2),
        center=centroid(vertices(points)),
        point_count=len(points),
    )


def to_geojson(raw_points: Iterable[Any]) -> dict:
    """Closed GeoJSON Polygon (lon, lat order) of the ring vertices."""
    ring = vertices(as_points(raw_points))
    geom = mapping(Polygon([(p.longitude, p.latitude) for p in ring]))
    return {"type": geom["type"], "coordinates": [[list(c) for c in geom["coordinates"][0]]]}
