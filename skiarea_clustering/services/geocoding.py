"""Narrow interfaces to the external geocoding and statistics collaborators."""

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

Place = dict[str, Any]

# Computes ski area statistics from its member runs and lifts
StatisticsFn = Callable[[Sequence[Any]], dict[str, Any]]


class Geocoder(Protocol):
    """Reverse geocoder for map object geometries."""

    def geocode_geometry(self, geometry: BaseGeometry) -> list[Place]:
        """Places a geometry passes through, in no particular order."""
        ...

    def geocode(self, point: Point) -> Place | None:
        """Place containing a point, or None if unknown."""
        ...


def place_key(place: Place) -> tuple:
    """Identity of a place for deduplication and ordering."""
    iso3166_1 = place.get("iso3166_1Alpha2") or ""
    iso3166_2 = place.get("iso3166_2") or ""
    localized = place.get("localized") or {}
    locality = (localized.get("en") or {}).get("locality") or ""
    return (iso3166_1, iso3166_2, locality)


def unique_sorted_places(places: Sequence[Place]) -> list[Place]:
    unique: dict[tuple, Place] = {}
    for place in places:
        unique.setdefault(place_key(place), place)
    return [unique[key] for key in sorted(unique)]
