"""Mapping from raw GeoJSON features to map objects ready for clustering.

Functions here are pure: they read one feature and return one object. They
decide which activities a run or lift contributes and whether a run may
seed a generated ski area.
"""

from collections.abc import Callable
from typing import Any

from shapely.geometry.base import BaseGeometry

from skiarea_clustering.config import DEFAULT_CONFIG, ClusteringConfig
from skiarea_clustering.errors import FeaturePreparationError
from skiarea_clustering.models.domain import (
    LiftObject,
    RunObject,
    SkiAreaAssignment,
    SkiAreaObject,
    sort_activities,
)
from skiarea_clustering.models.enums import (
    RunGrooming,
    RunUse,
    SkiAreaActivity,
    SkiAreaAssignmentSource,
    SourceType,
    Status,
)
from skiarea_clustering.spatial.geometry import geometry_from_geojson, is_polygonal

Feature = dict[str, Any]

# Returns the snow cover sample pixels covering a run geometry
PixelExtractor = Callable[[BaseGeometry], list[list[int]]]

USE_ACTIVITIES: dict[str, SkiAreaActivity] = {
    RunUse.DOWNHILL.value: SkiAreaActivity.DOWNHILL,
    RunUse.SNOW_PARK.value: SkiAreaActivity.DOWNHILL,
    RunUse.NORDIC.value: SkiAreaActivity.NORDIC,
}

SEED_USES = {RunUse.DOWNHILL.value, RunUse.NORDIC.value}


def _properties(feature: Feature) -> dict[str, Any]:
    properties = feature.get("properties")
    if not properties or not properties.get("id"):
        msg = "Feature has no properties.id"
        raise FeaturePreparationError(msg)
    return properties


def _geometry(feature: Feature) -> BaseGeometry:
    geojson = feature.get("geometry")
    if not geojson:
        msg = f"Feature {feature['properties']['id']} has no geometry"
        raise FeaturePreparationError(msg)
    try:
        return geometry_from_geojson(geojson)
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        msg = f"Feature {feature['properties']['id']} has an unsupported geometry: {e}"
        raise FeaturePreparationError(msg) from e


def _site_assignments(properties: dict[str, Any]) -> list[SkiAreaAssignment]:
    return [
        SkiAreaAssignment(
            ski_area_id=ski_area["properties"]["id"],
            assigned_from=SkiAreaAssignmentSource.SITE,
        )
        for ski_area in properties.get("skiAreas") or []
    ]


def prepare_ski_area(feature: Feature) -> SkiAreaObject:
    """Prepare a source ski area.

    Raises:
        FeaturePreparationError: If the ski area does not have exactly one source
    """
    properties = _properties(feature)
    sources = properties.get("sources") or []
    if len(sources) != 1:
        msg = (
            f"Ski area {properties['id']} has {len(sources)} sources, "
            "only ski areas with a single source can be clustered"
        )
        raise FeaturePreparationError(msg)

    geometry = _geometry(feature) if feature.get("geometry") else None
    known = {activity.value for activity in SkiAreaActivity}
    activities = [
        SkiAreaActivity(value) for value in properties.get("activities") or [] if value in known
    ]

    return SkiAreaObject(
        key=properties["id"],
        source=SourceType(sources[0]["type"]),
        geometry=geometry,
        is_polygon=is_polygonal(geometry),
        activities=sort_activities(activities),
        ski_areas=[],
        properties=dict(properties),
    )


def prepare_lift(feature: Feature) -> LiftObject:
    """Prepare a lift. Only operating lifts count as downhill infrastructure."""
    properties = _properties(feature)
    site_assignments = _site_assignments(properties)
    operating = properties.get("status") == Status.OPERATING.value

    return LiftObject(
        key=properties["id"],
        geometry=_geometry(feature),
        geometry_with_elevations=feature["geometry"],
        activities=[SkiAreaActivity.DOWNHILL] if operating else [],
        ski_areas=site_assignments,
        is_in_ski_area_site=bool(site_assignments),
        lift_type=properties.get("liftType"),
        properties={**properties, "places": []},
    )


def run_activities(properties: dict[str, Any], in_site: bool) -> list[SkiAreaActivity]:
    """Activities a run contributes to clustering.

    Unpatrolled backcountry runs outside a site relation contribute none.
    """
    if (
        not in_site
        and properties.get("grooming") == RunGrooming.BACKCOUNTRY.value
        and properties.get("patrolled") is not True
    ):
        return []

    uses = properties.get("uses") or []
    return sort_activities(USE_ACTIVITIES[use] for use in uses if use in USE_ACTIVITIES)


def prepare_run(
    feature: Feature,
    config: ClusteringConfig = DEFAULT_CONFIG,
    pixel_extractor: PixelExtractor | None = None,
) -> RunObject:
    """Prepare a run.

    Args:
        feature: Raw run feature
        config: Supplies the ski-relevant activity set
        pixel_extractor: Snow cover sampler; without one no pixels are attached

    Returns:
        Run object with activities and the generation seed flag decided
    """
    properties = _properties(feature)
    site_assignments = _site_assignments(properties)
    in_site = bool(site_assignments)
    geometry = _geometry(feature)

    activities = run_activities(properties, in_site)
    uses = set(properties.get("uses") or [])
    is_basis = (
        bool(uses & SEED_USES)
        and bool(config.activity_set.intersection(activities))
        and not site_assignments
    )

    return RunObject(
        key=properties["id"],
        geometry=geometry,
        geometry_with_elevations=feature["geometry"],
        activities=activities,
        ski_areas=site_assignments,
        is_basis_for_new_ski_area=is_basis,
        is_in_ski_area_site=in_site,
        difficulty=properties.get("difficulty"),
        viirs_pixels=pixel_extractor(geometry) if pixel_extractor is not None else [],
        properties={**properties, "places": []},
    )
