"""Conversion between map objects and MapObjectRecord column values."""

from typing import Any

from geoalchemy2.elements import WKBElement
from geoalchemy2.shape import from_shape, to_shape
from shapely.geometry.base import BaseGeometry

from skiarea_clustering.config import CONSTANTS
from skiarea_clustering.models.db import MapObjectRecord
from skiarea_clustering.models.domain import (
    LiftObject,
    MapObjectUpdate,
    RunObject,
    SkiAreaAssignment,
    SkiAreaObject,
)
from skiarea_clustering.models.enums import (
    MapObjectType,
    SkiAreaActivity,
    SkiAreaAssignmentSource,
    SourceType,
)
from skiarea_clustering.repositories.protocols import AnyMapObject
from skiarea_clustering.spatial.geometry import clean_geometry


def geometry_element(geometry: BaseGeometry | None) -> WKBElement | None:
    if geometry is None:
        return None
    return from_shape(clean_geometry(geometry), srid=CONSTANTS.SRID_WGS84)


def assignment_to_json(assignment: SkiAreaAssignment) -> dict[str, str]:
    return {
        "skiAreaId": assignment.ski_area_id,
        "assignedFrom": assignment.assigned_from.value,
    }


def assignment_from_json(data: dict[str, str]) -> SkiAreaAssignment:
    return SkiAreaAssignment(
        ski_area_id=data["skiAreaId"],
        assigned_from=SkiAreaAssignmentSource(data["assignedFrom"]),
    )


def object_to_values(obj: AnyMapObject) -> dict[str, Any]:
    """Column values for inserting an object."""
    return {
        "key": obj.key,
        "type": obj.type,
        "source": obj.source.value if isinstance(obj, SkiAreaObject) else None,
        "geometry": geometry_element(obj.geometry),
        "geometry_with_elevations": getattr(obj, "geometry_with_elevations", None),
        "is_polygon": getattr(obj, "is_polygon", False),
        "activities": [activity.value for activity in obj.activities],
        "ski_areas": [assignment_to_json(a) for a in obj.ski_areas],
        "is_basis_for_new_ski_area": getattr(obj, "is_basis_for_new_ski_area", False),
        "is_in_ski_area_polygon": getattr(obj, "is_in_ski_area_polygon", False),
        "is_in_ski_area_site": getattr(obj, "is_in_ski_area_site", False),
        "lift_type": getattr(obj, "lift_type", None),
        "difficulty": getattr(obj, "difficulty", None),
        "viirs_pixels": getattr(obj, "viirs_pixels", []),
        "properties": obj.properties,
    }


def update_to_values(update: MapObjectUpdate) -> dict[str, Any]:
    """Column values for the fields set on a partial update."""
    values: dict[str, Any] = {}
    for name, value in update.changes().items():
        if name == "geometry":
            values[name] = geometry_element(value)
        elif name == "activities":
            values[name] = [activity.value for activity in value]
        elif name == "ski_areas":
            values[name] = [assignment_to_json(a) for a in value]
        else:
            values[name] = value
    return values


def record_to_object(record: MapObjectRecord) -> AnyMapObject:
    """Build the map object for a row.

    Raises:
        ValueError: If the row has an unknown type
    """
    geometry = to_shape(record.geometry) if record.geometry is not None else None
    common = {
        "key": record.key,
        "activities": [SkiAreaActivity(value) for value in record.activities or []],
        "ski_areas": [assignment_from_json(a) for a in record.ski_areas or []],
        "properties": record.properties or {},
    }

    if record.type is MapObjectType.RUN:
        return RunObject(
            **common,
            geometry=geometry,
            geometry_with_elevations=record.geometry_with_elevations,
            is_basis_for_new_ski_area=record.is_basis_for_new_ski_area,
            is_in_ski_area_polygon=record.is_in_ski_area_polygon,
            is_in_ski_area_site=record.is_in_ski_area_site,
            difficulty=record.difficulty,
            viirs_pixels=record.viirs_pixels or [],
        )
    elif record.type is MapObjectType.LIFT:
        return LiftObject(
            **common,
            geometry=geometry,
            geometry_with_elevations=record.geometry_with_elevations,
            lift_type=record.lift_type,
            is_in_ski_area_polygon=record.is_in_ski_area_polygon,
            is_in_ski_area_site=record.is_in_ski_area_site,
        )
    elif record.type is MapObjectType.SKI_AREA:
        return SkiAreaObject(
            **common,
            source=SourceType(record.source),
            is_polygon=record.is_polygon,
            geometry=geometry,
        )

    msg = f"Unknown map object type: {record.type}"
    raise ValueError(msg)
