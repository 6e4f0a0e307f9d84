"""Object store protocol definitions.

The clustering stages only talk to storage through ``ObjectStore``. Two
implementations exist: ``PostGISObjectStore`` for production runs and
``InMemoryObjectStore`` for tests and small local runs.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from shapely.geometry.base import BaseGeometry

from skiarea_clustering.models.domain import (
    LiftObject,
    MapObjectUpdate,
    RunObject,
    SkiAreaObject,
)
from skiarea_clustering.models.enums import (
    SearchType,
    SkiAreaActivity,
    SkiAreaAssignmentSource,
    SourceType,
)

T_co = TypeVar("T_co", covariant=True)

AnyMapObject = RunObject | LiftObject | SkiAreaObject


@dataclass
class SearchContext:
    """State shared by the queries of one ski area traversal.

    ``already_visited`` is shared by every query of a traversal and grows as
    objects are discovered, so each object is found at most once.

    Attributes:
        id: Key of the ski area being built (objects already in it are skipped)
        activities: Only objects sharing one of these activities are found
        search_type: CONTAINS (covered by the geometry) or INTERSECTS
        already_visited: Keys that must not be returned again
        exclude_objects_already_in_ski_area: Skip objects with any membership
        buffer_distance_km: Expand the query geometry by this distance
        is_fixed_search_area: Query once, do not expand from found objects
        search_polygon: Fixed search geometry (polygon assignment only)
    """

    id: str
    activities: list[SkiAreaActivity]
    search_type: SearchType = SearchType.INTERSECTS
    already_visited: set[str] = field(default_factory=set)
    exclude_objects_already_in_ski_area: bool = False
    buffer_distance_km: float | None = None
    is_fixed_search_area: bool = False
    search_polygon: BaseGeometry | None = None


class Cursor(Protocol[T_co]):
    """Batched enumeration over a query result."""

    def next_batch(self) -> list[T_co] | None:
        """Return the next batch, or None when exhausted."""
        ...

    def all(self) -> list[T_co]:
        """Drain the remaining batches into one list."""
        ...

    def batches(self) -> Iterator[list[T_co]]:
        ...

    def __iter__(self) -> Iterator[T_co]:
        ...


class ObjectStore(Protocol):
    """Spatial object store consumed by the clustering stages.

    Every write is key-addressed and idempotent. No operation spans more
    than one object transactionally except where noted.
    """

    def initialize(self, truncate: bool = True) -> None:
        """Prepare storage for a run, discarding previous content if requested."""
        ...

    def create_indexes(self) -> None:
        """Create lookup indexes once all objects are loaded."""
        ...

    def close(self) -> None:
        ...

    def save_object(self, obj: AnyMapObject) -> None:
        """Insert or overwrite an object by key."""
        ...

    def save_objects(self, objects: Iterable[AnyMapObject]) -> None:
        ...

    def update_object(self, key: str, update: MapObjectUpdate) -> None:
        """Apply a partial update. Unknown keys are ignored."""
        ...

    def update_objects(self, updates: Iterable[tuple[str, MapObjectUpdate]]) -> None:
        ...

    def remove_object(self, key: str) -> None:
        """Delete an object; removing a ski area also drops its memberships."""
        ...

    def get_object_by_id(self, key: str) -> AnyMapObject | None:
        ...

    def get_ski_areas(
        self,
        *,
        source: SourceType | None = None,
        only_polygons: bool = False,
        only_in_polygon: BaseGeometry | None = None,
        use_batching: bool = True,
    ) -> Cursor[SkiAreaObject]:
        """Ski areas matching the filters.

        With ``use_batching`` the cursor pages lazily through the table;
        without it the full result set is read before the cursor is returned.
        """
        ...

    def get_ski_areas_by_ids(
        self, ids: Iterable[str], use_batching: bool = True
    ) -> Cursor[SkiAreaObject]:
        ...

    def get_all_runs(self, use_batching: bool = True) -> Cursor[RunObject]:
        ...

    def get_all_lifts(self, use_batching: bool = True) -> Cursor[LiftObject]:
        ...

    def find_nearby_objects(
        self, geometry: BaseGeometry, context: SearchContext
    ) -> list[AnyMapObject]:
        """Runs and lifts matching ``geometry`` under the context's filters.

        Never returns ski areas, objects already in ``context.id``, or keys in
        ``context.already_visited``. Does not modify the context.
        """
        ...

    def get_objects_for_ski_area(self, ski_area_id: str) -> list[AnyMapObject]:
        """Current run and lift members of a ski area."""
        ...

    def mark_objects_as_part_of_ski_area(
        self,
        ski_area_id: str,
        keys: Iterable[str],
        assigned_from: SkiAreaAssignmentSource,
    ) -> None:
        """Add a membership to each object unless already present.

        Also clears ``is_basis_for_new_ski_area`` and sets
        ``is_in_ski_area_polygon`` for polygon assignments.
        """
        ...

    def get_next_unassigned_run(self) -> RunObject | None:
        """Lowest-keyed run still flagged as a generation seed."""
        ...

    def get_object_derived_ski_area_geometry(self, ski_area_id: str) -> BaseGeometry | None:
        """Union of member geometries.

        Falls back to the ski area's own geometry when it has no members, and
        returns None when neither is available.
        """
        ...

    def compute_ski_feature_buffer(self, meters: float) -> BaseGeometry | None:
        """Dissolved buffer around every stored geometry."""
        ...

    def stream_ski_areas(self) -> Iterator[SkiAreaObject]:
        """Read-only iteration over all ski areas for export."""
        ...
