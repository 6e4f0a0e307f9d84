"""Post-clustering enrichment and cleanup of ski areas, runs and lifts.

Geocoding and statistics are provided by external collaborators. A failure
to geocode one object is logged and does not stop the pass.
"""

import logging

from skiarea_clustering.common.concurrency import run_bounded, worker_budget
from skiarea_clustering.config import DEFAULT_CONFIG, ClusteringConfig
from skiarea_clustering.models.domain import LiftObject, MapObjectUpdate, RunObject, SkiAreaObject
from skiarea_clustering.models.enums import SourceType
from skiarea_clustering.repositories.protocols import ObjectStore
from skiarea_clustering.services.geocoding import Geocoder, StatisticsFn, unique_sorted_places
from skiarea_clustering.spatial.geometry import run_difficulty_convention, vertex_centroid

logger = logging.getLogger(__name__)


class SkiAreaAugmentation:
    """Places, statistics and run conventions for the clustered ski areas."""

    def __init__(
        self,
        store: ObjectStore,
        config: ClusteringConfig = DEFAULT_CONFIG,
        geocoder: Geocoder | None = None,
        statistics_fn: StatisticsFn | None = None,
    ):
        self.store = store
        self.config = config
        self.geocoder = geocoder
        self.statistics_fn = statistics_fn

    def geocode_runs_and_lifts(self) -> int:
        """Store the places each run and lift passes through.

        Returns:
            Number of objects geocoded
        """
        if self.geocoder is None:
            logger.info("Skipping run/lift geocoding - no geocoder configured")
            return 0

        geocoded = 0
        for cursor in (self.store.get_all_runs(), self.store.get_all_lifts()):
            for batch in cursor.batches():
                geocoded += sum(self._geocode_object(obj) for obj in batch)
        return geocoded

    def _geocode_object(self, obj: RunObject | LiftObject) -> bool:
        try:
            places = self.geocoder.geocode_geometry(obj.geometry)
        except Exception as e:
            logger.warning(f"Failed geocoding {obj.type.value} {obj.key}: {e}")
            return False

        self.store.update_object(
            obj.key, MapObjectUpdate(properties={**obj.properties, "places": places})
        )
        return True

    def augment_ski_areas_based_on_assigned_lifts_and_runs(self) -> int:
        """Attach statistics, places and run convention to every ski area.

        OpenStreetMap ski areas left without runs or lifts and without a
        Skimap.org source are removed instead.

        Returns:
            Number of ski areas removed
        """
        ski_areas = self.store.get_ski_areas(use_batching=False).all()
        budget = worker_budget(self.config.duplicate_removal_workers)
        return sum(run_bounded(self._augment_ski_area, ski_areas, budget))

    def _augment_ski_area(self, ski_area: SkiAreaObject) -> bool:
        members = self.store.get_objects_for_ski_area(ski_area.key)
        has_skimap_source = any(
            source.get("type") == SourceType.SKIMAP_ORG.value for source in ski_area.sources
        )
        if not members and not has_skimap_source:
            logger.info(
                f"Removing OpenStreetMap ski area {ski_area.key} without associated runs/lifts"
            )
            self.store.remove_object(ski_area.key)
            return True

        properties = dict(ski_area.properties)
        if self.statistics_fn is not None:
            properties["statistics"] = self.statistics_fn(members)
        if ski_area.geometry is not None:
            properties["runConvention"] = run_difficulty_convention(ski_area.geometry).value

        member_places = [place for m in members for place in m.properties.get("places") or []]
        if member_places:
            properties["places"] = unique_sorted_places(member_places)
        elif self.geocoder is not None and ski_area.geometry is not None:
            centre = vertex_centroid([ski_area.geometry])
            try:
                place = self.geocoder.geocode(centre)
            except Exception as e:
                logger.warning(f"Failed geocoding ski area {ski_area.key} at {centre.wkt}: {e}")
            else:
                if place:
                    properties["places"] = [place]

        self.store.update_object(ski_area.key, MapObjectUpdate(properties=properties))
        return False

    def remove_ski_areas_without_geometry(self) -> int:
        """Delete ski areas that never received a geometry.

        Returns:
            Number of ski areas removed
        """
        ski_areas = self.store.get_ski_areas(use_batching=False).all()
        removed = 0
        for ski_area in ski_areas:
            if ski_area.geometry is None:
                logger.info(f"Removing ski area {ski_area.key} as it doesn't have a geometry")
                self.store.remove_object(ski_area.key)
                removed += 1
        return removed
