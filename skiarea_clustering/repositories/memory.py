"""In-process object store backed by a dict of immutable map objects.

Spatial predicates are evaluated with shapely, and metric buffers through
the geopandas helpers in ``spatial.operations``. Suitable for tests and for
clustering small extracts without a database.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from threading import RLock

import shapely
from shapely.geometry.base import BaseGeometry

from skiarea_clustering.config import CONSTANTS
from skiarea_clustering.models.domain import (
    LiftObject,
    MapObjectUpdate,
    RunObject,
    SkiAreaAssignment,
    SkiAreaObject,
    apply_update,
)
from skiarea_clustering.models.enums import (
    MapObjectType,
    SearchType,
    SkiAreaAssignmentSource,
    SourceType,
)
from skiarea_clustering.repositories.cursors import MaterializedCursor, PagedCursor
from skiarea_clustering.repositories.protocols import AnyMapObject, SearchContext
from skiarea_clustering.spatial.geometry import clean_geometry, is_polygonal
from skiarea_clustering.spatial.operations import (
    buffer_union,
    covered_by_buffer,
    within_distance,
)

logger = logging.getLogger(__name__)


class InMemoryObjectStore:
    """Object store holding everything in a key-addressed dict.

    All reads and writes take a re-entrant lock, so the store can be shared
    by the worker threads of a clustering stage.

    Attributes:
        batch_size: Page size for lazily enumerated cursors
        indexes_created: Set once ``create_indexes`` has been called
    """

    def __init__(self, batch_size: int = 1000):
        self.batch_size = batch_size
        self.indexes_created = False
        self._objects: dict[str, AnyMapObject] = {}
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def initialize(self, truncate: bool = True) -> None:
        if truncate:
            with self._lock:
                self._objects.clear()
        self.indexes_created = False

    def create_indexes(self) -> None:
        self.indexes_created = True
        logger.info(f"In-memory store holds {len(self)} objects")

    def close(self) -> None:
        pass

    def save_object(self, obj: AnyMapObject) -> None:
        if obj.geometry is not None:
            obj = obj.model_copy(update={"geometry": clean_geometry(obj.geometry)})
        with self._lock:
            self._objects[obj.key] = obj

    def save_objects(self, objects: Iterable[AnyMapObject]) -> None:
        for obj in objects:
            self.save_object(obj)

    def update_object(self, key: str, update: MapObjectUpdate) -> None:
        with self._lock:
            obj = self._objects.get(key)
            if obj is None:
                return
            self._objects[key] = apply_update(obj, update)

    def update_objects(self, updates: Iterable[tuple[str, MapObjectUpdate]]) -> None:
        with self._lock:
            for key, update in updates:
                self.update_object(key, update)

    def remove_object(self, key: str) -> None:
        with self._lock:
            removed = self._objects.pop(key, None)
            if removed is None or removed.type is not MapObjectType.SKI_AREA:
                return

            for other_key, obj in list(self._objects.items()):
                if obj.belongs_to(key):
                    remaining = [a for a in obj.ski_areas if a.ski_area_id != key]
                    self._objects[other_key] = obj.model_copy(update={"ski_areas": remaining})

    def get_object_by_id(self, key: str) -> AnyMapObject | None:
        with self._lock:
            return self._objects.get(key)

    def _select(self, predicate: Callable[[AnyMapObject], bool]) -> list[AnyMapObject]:
        with self._lock:
            matches = [obj for obj in self._objects.values() if predicate(obj)]
        return sorted(matches, key=lambda obj: obj.key)

    def _cursor(self, predicate: Callable[[AnyMapObject], bool], use_batching: bool):
        if use_batching:
            return PagedCursor(
                lambda offset, limit: self._select(predicate)[offset : offset + limit],
                self.batch_size,
            )
        return MaterializedCursor(self._select(predicate), self.batch_size)

    def get_ski_areas(
        self,
        *,
        source: SourceType | None = None,
        only_polygons: bool = False,
        only_in_polygon: BaseGeometry | None = None,
        use_batching: bool = True,
    ):
        def predicate(obj: AnyMapObject) -> bool:
            if obj.type is not MapObjectType.SKI_AREA:
                return False
            if source is not None and obj.source is not source:
                return False
            if only_polygons and not is_polygonal(obj.geometry):
                return False
            if only_in_polygon is not None:
                return obj.geometry is not None and obj.geometry.covered_by(only_in_polygon)
            return True

        return self._cursor(predicate, use_batching)

    def get_ski_areas_by_ids(self, ids: Iterable[str], use_batching: bool = True):
        wanted = set(ids)
        return self._cursor(
            lambda obj: obj.type is MapObjectType.SKI_AREA and obj.key in wanted,
            use_batching,
        )

    def get_all_runs(self, use_batching: bool = True):
        return self._cursor(lambda obj: obj.type is MapObjectType.RUN, use_batching)

    def get_all_lifts(self, use_batching: bool = True):
        return self._cursor(lambda obj: obj.type is MapObjectType.LIFT, use_batching)

    def stream_ski_areas(self) -> Iterator[SkiAreaObject]:
        yield from self.get_ski_areas(use_batching=True)

    def find_nearby_objects(
        self, geometry: BaseGeometry, context: SearchContext
    ) -> list[AnyMapObject]:
        activities = set(context.activities)

        def is_candidate(obj: AnyMapObject) -> bool:
            if obj.type is MapObjectType.SKI_AREA or obj.geometry is None:
                return False
            if obj.key in context.already_visited or obj.belongs_to(context.id):
                return False
            if context.exclude_objects_already_in_ski_area and obj.ski_areas:
                return False
            return not activities or bool(activities.intersection(obj.activities))

        candidates = self._select(is_candidate)
        geometries = [obj.geometry for obj in candidates]

        if context.buffer_distance_km is not None:
            distance_m = context.buffer_distance_km * CONSTANTS.METRES_PER_KILOMETRE
            if context.search_type is SearchType.CONTAINS:
                hits = covered_by_buffer(geometries, geometry, distance_m)
            else:
                hits = within_distance(geometries, geometry, distance_m)
        elif context.search_type is SearchType.CONTAINS:
            hits = [candidate.covered_by(geometry) for candidate in geometries]
        else:
            hits = [candidate.intersects(geometry) for candidate in geometries]

        return [obj for obj, hit in zip(candidates, hits, strict=True) if hit]

    def get_objects_for_ski_area(self, ski_area_id: str) -> list[AnyMapObject]:
        return self._select(
            lambda obj: obj.type is not MapObjectType.SKI_AREA and obj.belongs_to(ski_area_id)
        )

    def mark_objects_as_part_of_ski_area(
        self,
        ski_area_id: str,
        keys: Iterable[str],
        assigned_from: SkiAreaAssignmentSource,
    ) -> None:
        assignment = SkiAreaAssignment(ski_area_id=ski_area_id, assigned_from=assigned_from)
        in_polygon = assigned_from is SkiAreaAssignmentSource.POLYGON

        with self._lock:
            for key in sorted(set(keys)):
                obj = self._objects.get(key)
                if obj is None:
                    continue

                fields: dict = {"is_basis_for_new_ski_area": False}
                if not obj.belongs_to(ski_area_id):
                    fields["ski_areas"] = [*obj.ski_areas, assignment]
                if isinstance(obj, RunObject | LiftObject):
                    fields["is_in_ski_area_polygon"] = obj.is_in_ski_area_polygon or in_polygon
                self._objects[key] = apply_update(obj, MapObjectUpdate(**fields))

    def get_next_unassigned_run(self) -> RunObject | None:
        runs = self._select(
            lambda obj: obj.type is MapObjectType.RUN and obj.is_basis_for_new_ski_area
        )
        return runs[0] if runs else None

    def get_object_derived_ski_area_geometry(self, ski_area_id: str) -> BaseGeometry | None:
        members = self.get_objects_for_ski_area(ski_area_id)
        if members:
            return shapely.union_all([clean_geometry(m.geometry) for m in members])

        ski_area = self.get_object_by_id(ski_area_id)
        return ski_area.geometry if ski_area is not None else None

    def compute_ski_feature_buffer(self, meters: float) -> BaseGeometry | None:
        geometries = [obj.geometry for obj in self._select(lambda o: o.geometry is not None)]
        return buffer_union(geometries, meters)
