"""Geometry helpers for map objects.

Includes the representative point synthesis used for ski areas that have
no source outline: the point is placed near the members' centroid but
pulled onto the members when the centroid falls far from any of them
(for example between two valleys).
"""

from collections.abc import Iterable, Sequence
from typing import Any

import shapely
from pyproj import Geod
from shapely.geometry import MultiPolygon, Point, Polygon, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from skiarea_clustering.models.enums import RunDifficultyConvention

GEOD = Geod(ellps="WGS84")

# (min_lon, min_lat, max_lon, max_lat)
JAPAN_BOUNDS = (122.0, 20.0, 154.0, 46.0)
NORTH_AMERICA_BOUNDS = (-170.0, 7.0, -50.0, 84.0)


def is_polygonal(geometry: BaseGeometry | None) -> bool:
    return isinstance(geometry, Polygon | MultiPolygon)


def geometry_from_geojson(geojson: dict[str, Any]) -> BaseGeometry:
    """Build a 2D shapely geometry from a GeoJSON geometry, dropping elevation."""
    return shapely.force_2d(shape(geojson))


def to_geojson(geometry: BaseGeometry | None) -> dict[str, Any] | None:
    if geometry is None:
        return None
    return mapping(geometry)


def clean_geometry(geometry: BaseGeometry) -> BaseGeometry:
    """Force 2D and repair invalid geometry before it is stored."""
    flat = shapely.force_2d(geometry)
    if not flat.is_valid:
        flat = make_valid(flat)
    return flat


def _centroid_positions(geometry: BaseGeometry) -> list[tuple[float, float]]:
    # Ring closing vertices would double count the ring start.
    if isinstance(geometry, Polygon):
        rings = [geometry.exterior, *geometry.interiors]
        return [coord for ring in rings for coord in list(ring.coords)[:-1]]
    if hasattr(geometry, "geoms"):
        return [pos for part in geometry.geoms for pos in _centroid_positions(part)]
    return [tuple(coord) for coord in shapely.get_coordinates(geometry)]


def vertex_centroid(geometries: Iterable[BaseGeometry]) -> Point:
    """Mean of all vertices across the geometries.

    Raises:
        ValueError: If the geometries have no vertices
    """
    positions = [pos for geometry in geometries for pos in _centroid_positions(geometry)]
    if not positions:
        msg = "Cannot compute a centroid without vertices"
        raise ValueError(msg)

    lon = sum(pos[0] for pos in positions) / len(positions)
    lat = sum(pos[1] for pos in positions) / len(positions)
    return Point(lon, lat)


def geodesic_distance_m(a: Point, b: Point) -> float:
    _, _, distance = GEOD.inv(a.x, a.y, b.x, b.y)
    return distance


def ski_area_geometry(members: Sequence[Any], nudge_m: float = 100.0) -> Point:
    """Representative point for a ski area built from its members.

    Computes the vertex centroid of all member geometries and the member
    vertex nearest to it. When that vertex is more than ``nudge_m`` metres
    away, returns the point ``nudge_m`` metres from the vertex along the
    geodesic towards the centroid; otherwise returns the centroid.

    Args:
        members: Objects with a ``geometry`` attribute (runs, lifts, ski areas)
        nudge_m: Maximum distance of the result from the nearest member vertex

    Returns:
        Point in WGS84

    Raises:
        ValueError: If there are no members or none has geometry
    """
    geometries = [member.geometry for member in members if member.geometry is not None]
    if not geometries:
        msg = "No member objects to compute a ski area geometry from"
        raise ValueError(msg)

    centroid = vertex_centroid(geometries)

    vertices = [Point(coord) for g in geometries for coord in shapely.get_coordinates(g)]
    nearest = min(vertices, key=lambda vertex: geodesic_distance_m(vertex, centroid))

    azimuth, _, distance = GEOD.inv(nearest.x, nearest.y, centroid.x, centroid.y)
    if distance > nudge_m:
        lon, lat, _ = GEOD.fwd(nearest.x, nearest.y, azimuth, nudge_m)
        return Point(lon, lat)

    return centroid


def run_difficulty_convention(geometry: BaseGeometry) -> RunDifficultyConvention:
    """Regional difficulty colour convention for a location."""
    point = geometry if isinstance(geometry, Point) else geometry.representative_point()

    def inside(bounds: tuple[float, float, float, float]) -> bool:
        min_lon, min_lat, max_lon, max_lat = bounds
        return min_lon <= point.x <= max_lon and min_lat <= point.y <= max_lat

    if inside(JAPAN_BOUNDS):
        return RunDifficultyConvention.JAPAN
    if inside(NORTH_AMERICA_BOUNDS):
        return RunDifficultyConvention.NORTH_AMERICA
    return RunDifficultyConvention.EUROPE
