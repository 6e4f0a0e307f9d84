"""Generation of ski areas for runs that no ski area claimed."""

import logging
import uuid

from skiarea_clustering.config import DEFAULT_CONFIG, ClusteringConfig
from skiarea_clustering.errors import StoreContractError
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
    Status,
)
from skiarea_clustering.repositories.protocols import AnyMapObject, ObjectStore, SearchContext
from skiarea_clustering.services.assignment import SkiAreaAssignment, SkiAreaGeometryFn
from skiarea_clustering.spatial.geometry import run_difficulty_convention

logger = logging.getLogger(__name__)


class GeneratedSkiAreas:
    """Builds ski areas around orphan runs using the proximity flood-fill.

    Attributes:
        store: Object store holding the clustering working set
        config: Clustering heuristics
        assignment: Provides the flood-fill traversal and geometry synthesis
    """

    def __init__(
        self,
        store: ObjectStore,
        config: ClusteringConfig = DEFAULT_CONFIG,
        assignment: SkiAreaAssignment | None = None,
    ):
        self.store = store
        self.config = config
        self.assignment = assignment or SkiAreaAssignment(store, config)
        self._last_processed_run_key: str | None = None

    @property
    def geometry_fn(self) -> SkiAreaGeometryFn:
        return self.assignment.geometry_fn

    def generate_ski_areas_for_unassigned_objects(self) -> int:
        """Generate ski areas until no run is flagged as a seed.

        Returns:
            Number of ski areas generated

        Raises:
            StoreContractError: If a seed run has no activities
        """
        generated = 0
        while (run := self.store.get_next_unassigned_run()) is not None:
            if run.key == self._last_processed_run_key:
                logger.warning(
                    f"Run {run.key} selected again, clearing its seed flag to avoid looping"
                )
                self._clear_seed_flag(run.key)
                continue

            self._last_processed_run_key = run.key
            if self._generate_ski_area_for_run(run):
                generated += 1

        return generated

    def _clear_seed_flag(self, key: str) -> None:
        self.store.update_object(key, MapObjectUpdate(is_basis_for_new_ski_area=False))

    def _generate_ski_area_for_run(self, run: RunObject) -> bool:
        if not run.activities:
            msg = f"Run {run.key} is flagged as a generation seed but has no activities"
            raise StoreContractError(msg)

        ski_area_id = str(uuid.uuid4())
        activities = [a for a in run.activities if a in self.config.activity_set]

        context = SearchContext(
            id=ski_area_id,
            activities=activities,
            search_type=SearchType.INTERSECTS,
            already_visited={run.key},
        )
        members = self.assignment.visit_object(context, run)

        has_lift = any(isinstance(m, LiftObject) for m in members)
        if SkiAreaActivity.DOWNHILL in activities and not has_lift:
            # Downhill without any lift is not a ski area; keep other activities only
            activities = [a for a in activities if a is not SkiAreaActivity.DOWNHILL]
            members = [m for m in members if self._has_other_ski_activity(m)]

        if not activities or not members:
            self._clear_seed_flag(run.key)
            return False

        self._create_generated_ski_area(ski_area_id, activities, members)
        return True

    def _has_other_ski_activity(self, obj: AnyMapObject) -> bool:
        return any(
            a is not SkiAreaActivity.DOWNHILL and a in self.config.activity_set
            for a in obj.activities
        )

    def _create_generated_ski_area(
        self,
        ski_area_id: str,
        activities: list[SkiAreaActivity],
        members: list[AnyMapObject],
    ) -> None:
        geometry = self.geometry_fn(members)
        activities = sort_activities(activities)
        activity_values = [a.value for a in activities]

        ski_area = SkiAreaObject(
            key=ski_area_id,
            source=SourceType.OPENSTREETMAP,
            geometry=geometry,
            is_polygon=False,
            activities=activities,
            properties={
                "type": "skiArea",
                "id": ski_area_id,
                "name": None,
                "activities": activity_values,
                "status": Status.OPERATING.value,
                "sources": [],
                "runConvention": run_difficulty_convention(geometry).value,
                "websites": [],
                "wikidataID": None,
                "places": [],
            },
        )
        self.store.save_object(ski_area)
        self.store.mark_objects_as_part_of_ski_area(
            ski_area_id,
            [m.key for m in members if not isinstance(m, SkiAreaObject)],
            SkiAreaAssignmentSource.PROXIMITY,
        )
        logger.debug(
            f"Generated ski area {ski_area_id} with {len(members)} members ({activity_values})"
        )
