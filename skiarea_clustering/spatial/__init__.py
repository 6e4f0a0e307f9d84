"""Spatial helpers for clustering."""

from skiarea_clustering.spatial.geometry import (
    clean_geometry,
    geometry_from_geojson,
    is_polygonal,
    ski_area_geometry,
    to_geojson,
)
from skiarea_clustering.spatial.operations import (
    buffer_union,
    covered_by_buffer,
    within_distance,
)

__all__ = [
    "buffer_union",
    "clean_geometry",
    "covered_by_buffer",
    "geometry_from_geojson",
    "is_polygonal",
    "ski_area_geometry",
    "to_geojson",
    "within_distance",
]
