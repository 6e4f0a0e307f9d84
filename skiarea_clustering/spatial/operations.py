"""Metric spatial operations on WGS84 geometry.

Stored geometry is longitude/latitude. Distance and buffer predicates are
evaluated in metres by projecting into a local azimuthal equidistant CRS
centred on the query origin, which keeps distortion negligible at the
sub-kilometre scale the clustering heuristics work at.
"""

import geopandas as gpd
from pyproj import CRS
from shapely.geometry.base import BaseGeometry

from skiarea_clustering.config import CONSTANTS


def local_metric_crs(origin: BaseGeometry) -> CRS:
    """Azimuthal equidistant CRS centred on the origin's centroid.

    Args:
        origin: Non-empty geometry in WGS84

    Returns:
        Projected CRS with metre units
    """
    centre = origin.centroid
    return CRS.from_proj4(
        f"+proj=aeqd +lat_0={centre.y} +lon_0={centre.x} +datum=WGS84 +units=m +no_defs"
    )


def _project(
    candidates: list[BaseGeometry], origin: BaseGeometry
) -> tuple[gpd.GeoSeries, BaseGeometry]:
    crs = local_metric_crs(origin)
    projected_origin = gpd.GeoSeries([origin], crs=CONSTANTS.CRS_WGS84).to_crs(crs).iloc[0]
    projected = gpd.GeoSeries(candidates, crs=CONSTANTS.CRS_WGS84).to_crs(crs)
    return projected, projected_origin


def within_distance(
    candidates: list[BaseGeometry], origin: BaseGeometry, distance_m: float
) -> list[bool]:
    """Whether each candidate lies within ``distance_m`` of the origin.

    Args:
        candidates: Geometries in WGS84
        origin: Query geometry in WGS84
        distance_m: Maximum separation in metres

    Returns:
        One flag per candidate, in input order
    """
    if not candidates:
        return []

    projected, projected_origin = _project(candidates, origin)
    return (projected.distance(projected_origin) <= distance_m).tolist()


def covered_by_buffer(
    candidates: list[BaseGeometry], origin: BaseGeometry, distance_m: float
) -> list[bool]:
    """Whether each candidate is fully covered by the origin buffered by ``distance_m``."""
    if not candidates:
        return []

    projected, projected_origin = _project(candidates, origin)
    return projected.covered_by(projected_origin.buffer(distance_m)).tolist()


def buffer_union(geometries: list[BaseGeometry], distance_m: float) -> BaseGeometry | None:
    """Dissolve metric buffers of all geometries into one WGS84 geometry.

    Args:
        geometries: Geometries in WGS84
        distance_m: Buffer distance in metres

    Returns:
        Dissolved buffer, or None when there is nothing to buffer
    """
    if not geometries:
        return None

    series = gpd.GeoSeries(geometries, crs=CONSTANTS.CRS_WGS84)
    metric = series.to_crs(series.estimate_utm_crs())
    dissolved = metric.buffer(distance_m).union_all()
    return gpd.GeoSeries([dissolved], crs=metric.crs).to_crs(CONSTANTS.CRS_WGS84).iloc[0]
