"""Core object model for clustered runs, lifts and ski areas.

These models are immutable value objects. Stages never mutate them in place;
they express changes as a MapObjectUpdate addressed by key, which the object
store applies.

The three object kinds form a tagged union on ``type``:
- RunObject: a ski run (piste or trail)
- LiftObject: an aerial or surface lift
- SkiAreaObject: a ski area, either source-provided or generated
"""

from collections.abc import Iterable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from shapely.geometry.base import BaseGeometry

from skiarea_clustering.models.enums import (
    MapObjectType,
    SkiAreaActivity,
    SkiAreaAssignmentSource,
    SourceType,
)

_ACTIVITY_ORDER = list(SkiAreaActivity)


def sort_activities(activities: Iterable[SkiAreaActivity]) -> list[SkiAreaActivity]:
    """Deduplicate activities and return them in declaration order."""
    return sorted(set(activities), key=_ACTIVITY_ORDER.index)


class SkiAreaAssignment(BaseModel):
    """Membership of an object in a ski area.

    Attributes:
        ski_area_id: Key of the ski area the object belongs to
        assigned_from: How the membership was established
    """

    model_config = ConfigDict(frozen=True)

    ski_area_id: str = Field(description="Ski area key")
    assigned_from: SkiAreaAssignmentSource = Field(description="Assignment provenance")


class _MapObjectBase(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: str = Field(description="Stable identifier, unique across all object kinds")
    activities: list[SkiAreaActivity] = Field(default_factory=list)
    ski_areas: list[SkiAreaAssignment] = Field(default_factory=list)
    properties: dict[str, Any] = Field(
        default_factory=dict, description="Feature properties carried through to export"
    )

    @property
    def ski_area_ids(self) -> list[str]:
        return [assignment.ski_area_id for assignment in self.ski_areas]

    def belongs_to(self, ski_area_id: str) -> bool:
        return any(a.ski_area_id == ski_area_id for a in self.ski_areas)


class RunObject(_MapObjectBase):
    """A run prepared for clustering.

    Attributes:
        geometry: 2D geometry used for all spatial predicates
        geometry_with_elevations: Raw GeoJSON geometry including elevation
        is_basis_for_new_ski_area: Eligible seed for ski area generation
        is_in_ski_area_polygon: Contained by a ski area polygon
        is_in_ski_area_site: Pre-assigned through a site relation
        difficulty: Difficulty rating from the source feature
        viirs_pixels: Snow cover sample pixels, empty when not computed
    """

    type: Literal[MapObjectType.RUN] = MapObjectType.RUN
    geometry: BaseGeometry
    geometry_with_elevations: dict[str, Any] | None = None
    is_basis_for_new_ski_area: bool = False
    is_in_ski_area_polygon: bool = False
    is_in_ski_area_site: bool = False
    difficulty: str | None = None
    viirs_pixels: list[list[int]] = Field(default_factory=list)


class LiftObject(_MapObjectBase):
    """A lift prepared for clustering."""

    type: Literal[MapObjectType.LIFT] = MapObjectType.LIFT
    geometry: BaseGeometry
    geometry_with_elevations: dict[str, Any] | None = None
    lift_type: str | None = None
    is_in_ski_area_polygon: bool = False
    is_in_ski_area_site: bool = False


class SkiAreaObject(_MapObjectBase):
    """A ski area, provided by a source or generated from orphan runs.

    Attributes:
        source: Which source described this ski area
        is_polygon: Geometry is a source-provided outline rather than a point
        geometry: None until a representative geometry is known
    """

    type: Literal[MapObjectType.SKI_AREA] = MapObjectType.SKI_AREA
    source: SourceType
    is_polygon: bool = False
    geometry: BaseGeometry | None = None

    @property
    def sources(self) -> list[dict[str, Any]]:
        return list(self.properties.get("sources", []))


MapObject = Annotated[RunObject | LiftObject | SkiAreaObject, Field(discriminator="type")]


class MapObjectUpdate(BaseModel):
    """Partial, key-addressed update to a stored object.

    Only fields explicitly set when constructing the update are applied;
    fields that do not exist on the target object kind are ignored.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    geometry: BaseGeometry | None = None
    activities: list[SkiAreaActivity] | None = None
    ski_areas: list[SkiAreaAssignment] | None = None
    properties: dict[str, Any] | None = None
    is_polygon: bool | None = None
    is_basis_for_new_ski_area: bool | None = None
    is_in_ski_area_polygon: bool | None = None
    is_in_ski_area_site: bool | None = None

    def changes(self) -> dict[str, Any]:
        """Fields set on this update, keeping model instances intact."""
        return {name: getattr(self, name) for name in self.model_fields_set}


def apply_update(obj: RunObject | LiftObject | SkiAreaObject, update: MapObjectUpdate):
    """Return a copy of ``obj`` with the update applied."""
    fields = type(obj).model_fields
    changes = {name: value for name, value in update.changes().items() if name in fields}
    return obj.model_copy(update=changes)
