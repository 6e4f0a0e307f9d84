"""Assignment of runs and lifts to ski areas.

Objects are grouped into a ski area either by containment in the ski area's
polygon or by a proximity flood-fill: starting from the ski area, repeatedly
search around each newly found object for further objects that share an
activity, until no unvisited candidates remain.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace

from shapely.geometry import Point

from skiarea_clustering.common.concurrency import run_bounded, worker_budget
from skiarea_clustering.config import DEFAULT_CONFIG, ClusteringConfig
from skiarea_clustering.errors import GeometryContractError
from skiarea_clustering.models.domain import (
    LiftObject,
    MapObjectUpdate,
    RunObject,
    SkiAreaObject,
    sort_activities,
)
from skiarea_clustering.models.enums import (
    SearchType,
    SkiAreaActivity,
    SkiAreaAssignmentSource,
    SourceType,
)
from skiarea_clustering.repositories.protocols import AnyMapObject, ObjectStore, SearchContext
from skiarea_clustering.spatial.geometry import is_polygonal, ski_area_geometry

logger = logging.getLogger(__name__)

SkiAreaGeometryFn = Callable[[Sequence[AnyMapObject]], Point]


def get_activities_based_on_runs_and_lifts(
    objects: Iterable[AnyMapObject], ski_area_activities: Iterable[SkiAreaActivity]
) -> list[SkiAreaActivity]:
    """Union of run and lift activities, restricted to the ski-relevant set."""
    relevant = set(ski_area_activities)
    return sort_activities(
        activity
        for obj in objects
        if isinstance(obj, RunObject | LiftObject)
        for activity in obj.activities
        if activity in relevant
    )


@dataclass(frozen=True)
class AssignObjectsOptions:
    """Selects which ski areas are scanned and how objects are searched for.

    Attributes:
        only_source: Scan ski areas from this source only
        only_in_polygon: Search inside each ski area's polygon instead of by proximity
        only_if_not_already_assigned: Skip objects that already belong to a ski area
        remove_if_no_objects_found: Delete ski areas that end up without runs or lifts
        remove_if_substantial_number_of_objects_in_ski_area_site: Delete ski areas
            whose runs and lifts mostly come from site relations
    """

    only_source: SourceType
    only_in_polygon: bool = False
    only_if_not_already_assigned: bool = False
    remove_if_no_objects_found: bool = False
    remove_if_substantial_number_of_objects_in_ski_area_site: bool = False


@dataclass
class AssignmentResult:
    """Outcome counts of an assignment pass."""

    ski_areas: int = 0
    assigned_objects: int = 0
    removed_ski_areas: int = 0


class SkiAreaAssignment:
    """Spatial assignment of map objects to ski areas.

    Attributes:
        store: Object store holding the clustering working set
        config: Clustering heuristics and worker budgets
        geometry_fn: Synthesizes a representative point from member objects
    """

    def __init__(
        self,
        store: ObjectStore,
        config: ClusteringConfig = DEFAULT_CONFIG,
        geometry_fn: SkiAreaGeometryFn | None = None,
    ):
        self.store = store
        self.config = config
        self.geometry_fn = geometry_fn or (
            lambda members: ski_area_geometry(members, config.geometry_nudge_m)
        )

    def assign_activities_and_geometry_from_members(self) -> int:
        """Derive activities and a point geometry for ski areas from their members.

        Applies to ski areas whose activities or geometry are still unknown,
        typically site relation ski areas whose members were pre-assigned.

        Returns:
            Number of ski areas updated
        """
        cursor = self.store.get_ski_areas(use_batching=True)
        budget = worker_budget(self.config.activity_batch_workers)
        updated = run_bounded(self._assign_batch_from_members, cursor.batches(), budget)
        return sum(updated)

    def _assign_batch_from_members(self, ski_areas: list[SkiAreaObject]) -> int:
        updated = 0
        for ski_area in ski_areas:
            if ski_area.activities and ski_area.geometry is not None:
                continue

            members = self.store.get_objects_for_ski_area(ski_area.key)
            if not members:
                continue

            if ski_area.activities:
                update = MapObjectUpdate(geometry=self.geometry_fn(members), is_polygon=False)
            else:
                activities = get_activities_based_on_runs_and_lifts(
                    members, self.config.activity_set
                )
                update = MapObjectUpdate(
                    activities=activities,
                    geometry=self.geometry_fn(members),
                    is_polygon=False,
                    properties={
                        **ski_area.properties,
                        "activities": [a.value for a in activities],
                    },
                )
            self.store.update_object(ski_area.key, update)
            updated += 1
        return updated

    def remove_ambiguous_duplicate_ski_areas(
        self,
        polygon_source: SourceType = SourceType.OPENSTREETMAP,
        contained_source: SourceType = SourceType.SKIMAP_ORG,
    ) -> int:
        """Delete polygon ski areas that contain more than one ski area of the other source.

        Such a polygon cannot be matched to a single one of the contained ski
        areas, so it is dropped and the contained ones are kept.

        Returns:
            Number of polygon ski areas removed

        Raises:
            GeometryContractError: If a scanned ski area is not a polygon
        """
        polygons = self.store.get_ski_areas(
            source=polygon_source, only_polygons=True, use_batching=False
        ).all()

        def process(ski_area: SkiAreaObject) -> bool:
            if not is_polygonal(ski_area.geometry):
                msg = f"Ski area {ski_area.key} was selected as a polygon but is not one"
                raise GeometryContractError(msg)

            contained = self.store.get_ski_areas(
                source=contained_source,
                only_in_polygon=ski_area.geometry,
                use_batching=False,
            ).all()
            if len(contained) <= 1:
                return False

            logger.info(
                f"Removing ski area {ski_area.key} as it contains {len(contained)} "
                f"{contained_source.value} ski areas and can't be merged correctly"
            )
            self.store.remove_object(ski_area.key)
            return True

        budget = worker_budget(self.config.duplicate_removal_workers)
        return sum(run_bounded(process, polygons, budget))

    def assign_objects_to_ski_areas(self, options: AssignObjectsOptions) -> AssignmentResult:
        """Find the member objects of every scanned ski area and record the memberships.

        The scanned ski areas are read in full first, since removal policies
        delete ski areas while the pass is running. When only unassigned
        objects may be claimed, ski areas are processed one at a time so an
        object goes to the first ski area that reaches it.
        """
        ski_areas = self.store.get_ski_areas(
            source=options.only_source,
            only_polygons=options.only_in_polygon,
            use_batching=False,
        ).all()

        def process(ski_area: SkiAreaObject) -> tuple[int, bool]:
            members = self._process_ski_area(ski_area, options)
            if members is None:
                return 0, True

            member_keys = [m.key for m in members if not isinstance(m, SkiAreaObject)]
            assigned_from = (
                SkiAreaAssignmentSource.POLYGON
                if options.only_in_polygon
                else SkiAreaAssignmentSource.PROXIMITY
            )
            self.store.mark_objects_as_part_of_ski_area(ski_area.key, member_keys, assigned_from)

            if not ski_area.activities:
                activities = get_activities_based_on_runs_and_lifts(
                    members, self.config.activity_set
                )
                self.store.update_object(
                    ski_area.key,
                    MapObjectUpdate(
                        activities=activities,
                        properties={
                            **ski_area.properties,
                            "activities": [a.value for a in activities],
                        },
                    ),
                )
            return len(member_keys), False

        if options.only_if_not_already_assigned:
            outcomes = [process(ski_area) for ski_area in ski_areas]
        else:
            budget = worker_budget(self.config.assignment_workers)
            outcomes = run_bounded(process, ski_areas, budget)

        return AssignmentResult(
            ski_areas=len(ski_areas),
            assigned_objects=sum(assigned for assigned, _ in outcomes),
            removed_ski_areas=sum(1 for _, removed in outcomes if removed),
        )

    def _process_ski_area(
        self, ski_area: SkiAreaObject, options: AssignObjectsOptions
    ) -> list[AnyMapObject] | None:
        """Search for a ski area's members and apply the removal policies.

        Returns:
            Members found (including the ski area itself), or None if the ski
            area was removed
        """
        activities = list(ski_area.activities) or list(self.config.ski_area_activities)

        if options.only_in_polygon:
            if not is_polygonal(ski_area.geometry):
                msg = f"Ski area {ski_area.key} geometry must be a polygon"
                raise GeometryContractError(msg)
            context = SearchContext(
                id=ski_area.key,
                activities=activities,
                search_type=SearchType.CONTAINS,
                search_polygon=ski_area.geometry,
                is_fixed_search_area=True,
                already_visited={ski_area.key},
                exclude_objects_already_in_ski_area=options.only_if_not_already_assigned,
            )
        else:
            context = SearchContext(
                id=ski_area.key,
                activities=activities,
                search_type=SearchType.INTERSECTS,
                already_visited={ski_area.key},
                exclude_objects_already_in_ski_area=options.only_if_not_already_assigned,
            )

        members = self.visit_object(context, ski_area)
        runs_and_lifts = [m for m in members if isinstance(m, RunObject | LiftObject)]

        if options.remove_if_no_objects_found and not runs_and_lifts:
            logger.info(
                f"Removing ski area {ski_area.key} ({ski_area.sources}) as no objects were found"
            )
            self.store.remove_object(ski_area.key)
            return None

        if options.remove_if_substantial_number_of_objects_in_ski_area_site and runs_and_lifts:
            in_site = sum(1 for m in runs_and_lifts if m.is_in_ski_area_site)
            if in_site / len(runs_and_lifts) > self.config.site_overlap_threshold:
                logger.info(
                    f"Removing ski area {ski_area.key} ({ski_area.sources}) as a substantial "
                    f"number of objects were in a site relation ({in_site} / {len(runs_and_lifts)})"
                )
                self.store.remove_object(ski_area.key)
                return None

        return members

    def visit_object(self, context: SearchContext, seed: AnyMapObject) -> list[AnyMapObject]:
        """Collect the seed and every object reachable from it.

        With a fixed search polygon, a single query against the polygon is
        made. Otherwise each found object becomes a new search origin, with
        the activity filter narrowed to the activities it shares with the
        current filter (kept unchanged if it shares none).

        ``context.already_visited`` is extended with every object found.

        Returns:
            Seed followed by the found objects in depth-first discovery order
        """
        found: list[AnyMapObject] = []
        pending: list[tuple[list[SkiAreaActivity], AnyMapObject]] = [(context.activities, seed)]

        while pending:
            activities, obj = pending.pop()
            found.append(obj)

            narrowed = [a for a in activities if a in obj.activities] or activities
            object_context = replace(context, activities=narrowed)

            if context.search_polygon is not None:
                nearby = self.store.find_nearby_objects(context.search_polygon, object_context)
                context.already_visited.update(n.key for n in nearby)
                found.extend(nearby)
                continue

            if isinstance(obj, SkiAreaObject):
                origin = self.store.get_object_derived_ski_area_geometry(obj.key)
            else:
                origin = obj.geometry
            if origin is None:
                continue

            nearby = self.store.find_nearby_objects(
                origin,
                replace(object_context, buffer_distance_km=self.config.max_search_distance_km),
            )
            context.already_visited.update(n.key for n in nearby)
            if context.is_fixed_search_area:
                found.extend(nearby)
                continue
            pending.extend((narrowed, n) for n in reversed(nearby))

        return found
