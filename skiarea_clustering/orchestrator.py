"""Ski area clustering pipeline - loads objects and runs the clustering stages in order."""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import asdict

from skiarea_clustering.common.log_utils import log_stage
from skiarea_clustering.config import DEFAULT_CONFIG, ClusteringConfig
from skiarea_clustering.models.enums import SourceType
from skiarea_clustering.repositories.protocols import ObjectStore
from skiarea_clustering.services.assignment import (
    AssignObjectsOptions,
    SkiAreaAssignment,
    SkiAreaGeometryFn,
)
from skiarea_clustering.services.augmentation import SkiAreaAugmentation
from skiarea_clustering.services.data_loader import DataLoader
from skiarea_clustering.services.feature_preparation import Feature, PixelExtractor
from skiarea_clustering.services.generation import GeneratedSkiAreas
from skiarea_clustering.services.geocoding import Geocoder, StatisticsFn
from skiarea_clustering.services.merging import MergeFn, SkiAreaMerging, merge_ski_area_objects

logger = logging.getLogger(__name__)

StageOutcome = dict[str, int]


class SkiAreaClusteringService:
    """Runs the clustering stages over an object store.

    Each stage completes before the next begins; later stages rely on what
    earlier ones established (for example merging assumes ambiguous
    duplicates were already removed).

    Attributes:
        store: Object store holding the clustering working set
        config: Clustering heuristics and worker budgets
    """

    def __init__(
        self,
        store: ObjectStore,
        config: ClusteringConfig = DEFAULT_CONFIG,
        *,
        geometry_fn: SkiAreaGeometryFn | None = None,
        merge_fn: MergeFn = merge_ski_area_objects,
        geocoder: Geocoder | None = None,
        statistics_fn: StatisticsFn | None = None,
        pixel_extractor: PixelExtractor | None = None,
    ):
        self.store = store
        self.config = config
        self.loader = DataLoader(store, config, pixel_extractor)
        self.assignment = SkiAreaAssignment(store, config, geometry_fn)
        self.merging = SkiAreaMerging(store, config, merge_fn)
        self.generation = GeneratedSkiAreas(store, config, self.assignment)
        self.augmentation = SkiAreaAugmentation(store, config, geocoder, statistics_fn)

    def cluster_ski_areas(
        self,
        ski_area_features: Iterable[Feature],
        lift_features: Iterable[Feature],
        run_features: Iterable[Feature],
    ) -> dict[str, StageOutcome]:
        """Load raw features and cluster them.

        Returns:
            Outcome counts per stage, in execution order
        """
        start = time.time()

        with log_stage("load_objects") as outcome:
            outcome.update(
                asdict(self.loader.load_graph_data(ski_area_features, lift_features, run_features))
            )
        outcomes = {"load_objects": dict(outcome)}
        outcomes.update(self.perform_clustering())

        logger.info(f"Clustering completed in {time.time() - start:.2f}s")
        return outcomes

    def stages(self) -> list[tuple[str, Callable[[], StageOutcome]]]:
        """Clustering stages in execution order."""
        remove_site_overlap = not self.config.keep_landuse_with_site_overlap

        return [
            (
                "assign_activities_and_geometry_from_members",
                lambda: {"updated": self.assignment.assign_activities_and_geometry_from_members()},
            ),
            (
                "remove_ambiguous_duplicate_ski_areas",
                lambda: {"removed": self.assignment.remove_ambiguous_duplicate_ski_areas()},
            ),
            (
                "assign_objects_in_openstreetmap_polygons",
                lambda: self._assign(
                    AssignObjectsOptions(
                        only_source=SourceType.OPENSTREETMAP,
                        only_in_polygon=True,
                        remove_if_no_objects_found=True,
                        remove_if_substantial_number_of_objects_in_ski_area_site=(
                            remove_site_overlap
                        ),
                    )
                ),
            ),
            (
                "assign_nearby_objects_to_openstreetmap_ski_areas",
                lambda: self._assign(
                    AssignObjectsOptions(
                        only_source=SourceType.OPENSTREETMAP,
                        only_if_not_already_assigned=True,
                    )
                ),
            ),
            (
                "merge_skimap_org_ski_areas",
                lambda: {"merged": self.merging.merge_skimap_org_with_openstreetmap_ski_areas()},
            ),
            (
                "assign_nearby_objects_to_skimap_org_ski_areas",
                lambda: self._assign(
                    AssignObjectsOptions(
                        only_source=SourceType.SKIMAP_ORG,
                        only_if_not_already_assigned=True,
                    )
                ),
            ),
            (
                "generate_ski_areas_for_unassigned_runs",
                lambda: {"generated": self.generation.generate_ski_areas_for_unassigned_objects()},
            ),
            (
                "geocode_runs_and_lifts",
                lambda: {"geocoded": self.augmentation.geocode_runs_and_lifts()},
            ),
            (
                "augment_ski_areas",
                lambda: {"removed": self._augment()},
            ),
            (
                "remove_ski_areas_without_geometry",
                lambda: {"removed": self.augmentation.remove_ski_areas_without_geometry()},
            ),
        ]

    def perform_clustering(self) -> dict[str, StageOutcome]:
        """Run every clustering stage over the already loaded objects."""
        outcomes: dict[str, StageOutcome] = {}
        for name, stage in self.stages():
            with log_stage(name) as outcome:
                outcome.update(stage())
            outcomes[name] = dict(outcome)
        return outcomes

    def _assign(self, options: AssignObjectsOptions) -> StageOutcome:
        return asdict(self.assignment.assign_objects_to_ski_areas(options))

    def _augment(self) -> int:
        return self.augmentation.augment_ski_areas_based_on_assigned_lifts_and_runs()
