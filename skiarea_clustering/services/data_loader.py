"""Loads prepared map objects into the object store."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from skiarea_clustering.common.concurrency import run_bounded
from skiarea_clustering.config import DEFAULT_CONFIG, ClusteringConfig
from skiarea_clustering.repositories.protocols import AnyMapObject, ObjectStore
from skiarea_clustering.services.feature_preparation import (
    Feature,
    PixelExtractor,
    prepare_lift,
    prepare_run,
    prepare_ski_area,
)

logger = logging.getLogger(__name__)


@dataclass
class LoadSummary:
    """Counts of features loaded and skipped."""

    loaded: int = 0
    skipped: int = 0

    def add(self, other: "LoadSummary") -> None:
        self.loaded += other.loaded
        self.skipped += other.skipped


class DataLoader:
    """Prepares raw features and saves them to the store.

    A feature that fails preparation or saving is logged and skipped; the
    rest of the input keeps loading.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: ClusteringConfig = DEFAULT_CONFIG,
        pixel_extractor: PixelExtractor | None = None,
    ):
        self.store = store
        self.config = config
        self.pixel_extractor = pixel_extractor

    def load_graph_data(
        self,
        ski_area_features: Iterable[Feature],
        lift_features: Iterable[Feature],
        run_features: Iterable[Feature],
    ) -> LoadSummary:
        """Load ski areas, lifts and runs, then create the store's indexes."""
        summary = LoadSummary()
        summary.add(self._load_features(ski_area_features, prepare_ski_area))
        summary.add(self._load_features(lift_features, prepare_lift))
        summary.add(
            self._load_features(
                run_features,
                lambda feature: prepare_run(feature, self.config, self.pixel_extractor),
            )
        )

        self.store.create_indexes()
        logger.info(f"Loaded {summary.loaded} objects, skipped {summary.skipped} features")
        return summary

    def _load_features(
        self,
        features: Iterable[Feature],
        prepare: Callable[[Feature], AnyMapObject],
    ) -> LoadSummary:
        def load_one(feature: Feature) -> bool:
            try:
                self.store.save_object(prepare(feature))
            except Exception as e:
                logger.error(f"Failed loading feature {_feature_id(feature)}: {e}")
                return False
            return True

        outcomes = run_bounded(load_one, features, self.config.loader_workers)
        loaded = sum(outcomes)
        return LoadSummary(loaded=loaded, skipped=len(outcomes) - loaded)


def _feature_id(feature: Any) -> str:
    try:
        return str(feature["properties"]["id"])
    except (KeyError, TypeError):
        return "<unknown>"
