"""Merging of ski areas described by both sources.

A registry (Skimap.org) ski area is merged into the OpenStreetMap ski areas
whose runs and lifts lie near it, and is then deleted.
"""

import json
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from skiarea_clustering.config import DEFAULT_CONFIG, ClusteringConfig
from skiarea_clustering.models.domain import MapObjectUpdate, SkiAreaObject, sort_activities
from skiarea_clustering.models.enums import SearchType, SkiAreaActivity, SourceType
from skiarea_clustering.repositories.protocols import ObjectStore, SearchContext
from skiarea_clustering.spatial.geometry import is_polygonal

logger = logging.getLogger(__name__)

MergeFn = Callable[[SkiAreaObject, Sequence[SkiAreaObject]], MapObjectUpdate]

FALLBACK_PROPERTIES = ("name", "wikidataID", "status")


def _unique(values: Iterable[Any], key: Callable[[Any], Any]) -> list[Any]:
    seen = set()
    unique = []
    for value in values:
        marker = key(value)
        if marker not in seen:
            seen.add(marker)
            unique.append(value)
    return unique


def merge_ski_area_objects(
    target: SkiAreaObject, others: Sequence[SkiAreaObject]
) -> MapObjectUpdate:
    """Partial update folding ``others`` into ``target``.

    Activities, provenance sources and websites are unioned. Name, Wikidata ID
    and status are taken from the others only where the target lacks them.
    A geometry is only adopted when the target has none.
    """
    activities = sort_activities(
        [*target.activities, *(a for other in others for a in other.activities)]
    )

    properties = dict(target.properties)
    properties["sources"] = _unique(
        [*target.sources, *(s for other in others for s in other.sources)],
        key=lambda source: (source.get("type"), str(source.get("id"))),
    )
    properties["websites"] = _unique(
        [
            *(target.properties.get("websites") or []),
            *(w for other in others for w in other.properties.get("websites") or []),
        ],
        key=lambda website: json.dumps(website, sort_keys=True),
    )
    for name in FALLBACK_PROPERTIES:
        if not properties.get(name):
            properties[name] = next(
                (other.properties[name] for other in others if other.properties.get(name)),
                properties.get(name),
            )
    properties["activities"] = [activity.value for activity in activities]

    fields: dict[str, Any] = {"activities": activities, "properties": properties}
    if target.geometry is None:
        geometry = next((o.geometry for o in others if o.geometry is not None), None)
        if geometry is not None:
            fields["geometry"] = geometry
            fields["is_polygon"] = is_polygonal(geometry)

    return MapObjectUpdate(**fields)


class SkiAreaMerging:
    """Merges registry ski areas into nearby ski areas from the other source.

    Attributes:
        store: Object store holding the clustering working set
        config: Clustering heuristics
        merge_fn: Builds the partial update applied to each merge target
    """

    def __init__(
        self,
        store: ObjectStore,
        config: ClusteringConfig = DEFAULT_CONFIG,
        merge_fn: MergeFn = merge_ski_area_objects,
    ):
        self.store = store
        self.config = config
        self.merge_fn = merge_fn

    def merge_skimap_org_with_openstreetmap_ski_areas(
        self, source: SourceType = SourceType.SKIMAP_ORG
    ) -> int:
        """Merge every ``source`` ski area into its counterparts and delete it.

        Once a ski area is merged, every registry ID recorded in its targets'
        provenance is marked processed, so a many-to-many match is resolved
        in one step rather than piecewise.

        Returns:
            Number of ski areas merged away
        """
        ski_areas = self.store.get_ski_areas(source=source, use_batching=False).all()
        processed: set[str] = set()
        merged = 0

        for ski_area in ski_areas:
            if self._is_processed(ski_area, source, processed):
                continue

            activities = list(ski_area.activities) or list(self.config.ski_area_activities)
            targets = self._get_ski_areas_to_merge_into(ski_area, activities)
            if not targets:
                continue

            processed.update(self._related_ids(ski_area, targets, source))
            self._merge_into_ski_areas(ski_area, targets)
            merged += 1

        return merged

    @staticmethod
    def _is_processed(ski_area: SkiAreaObject, source: SourceType, processed: set[str]) -> bool:
        if ski_area.key in processed:
            return True
        return any(
            str(s.get("id")) in processed for s in ski_area.sources if s.get("type") == source.value
        )

    def _get_ski_areas_to_merge_into(
        self, ski_area: SkiAreaObject, activities: list[SkiAreaActivity]
    ) -> list[SkiAreaObject]:
        if ski_area.geometry is None:
            return []

        context = SearchContext(
            id=ski_area.key,
            activities=activities,
            search_type=SearchType.INTERSECTS,
            is_fixed_search_area=True,
            buffer_distance_km=self.config.max_merge_distance_km,
        )
        nearby = self.store.find_nearby_objects(ski_area.geometry, context)
        other_ids = {a.ski_area_id for obj in nearby for a in obj.ski_areas}
        if not other_ids:
            return []

        candidates = self.store.get_ski_areas_by_ids(other_ids, use_batching=False).all()
        return [other for other in candidates if other.source is not ski_area.source]

    @staticmethod
    def _related_ids(
        ski_area: SkiAreaObject, targets: list[SkiAreaObject], source: SourceType
    ) -> set[str]:
        related = {ski_area.key}
        for target in targets:
            related.update(
                str(s.get("id")) for s in target.sources if s.get("type") == source.value
            )
        return related

    def _merge_into_ski_areas(self, ski_area: SkiAreaObject, targets: list[SkiAreaObject]) -> None:
        logger.info(
            f"Merging ski area {ski_area.key} ({ski_area.properties.get('name')}) into "
            + ", ".join(f"{t.key} ({t.properties.get('name')})" for t in targets)
        )
        self.store.update_objects([(t.key, self.merge_fn(t, [ski_area])) for t in targets])
        self.store.remove_object(ski_area.key)
