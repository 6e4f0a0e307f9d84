"""Reading and writing GeoJSON feature collections."""

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from skiarea_clustering.models.domain import SkiAreaObject, sort_activities
from skiarea_clustering.spatial.geometry import to_geojson

logger = logging.getLogger(__name__)


def iter_geojson_features(path: Path) -> Iterator[dict[str, Any]]:
    """Yield the features of a GeoJSON FeatureCollection file.

    Raises:
        ValueError: If the file is not a FeatureCollection
    """
    with open(path, encoding="utf-8") as f:
        collection = json.load(f)

    if collection.get("type") != "FeatureCollection":
        msg = f"{path} is not a GeoJSON FeatureCollection"
        raise ValueError(msg)

    features = collection.get("features") or []
    logger.info(f"Read {len(features)} features from {path}")
    yield from features


def ski_area_feature(ski_area: SkiAreaObject) -> dict[str, Any]:
    """GeoJSON feature for a clustered ski area."""
    properties = {
        **ski_area.properties,
        "id": ski_area.key,
        "activities": [a.value for a in sort_activities(ski_area.activities)],
    }
    return {
        "type": "Feature",
        "geometry": to_geojson(ski_area.geometry),
        "properties": properties,
    }


def write_ski_areas(path: Path, ski_areas: Iterable[SkiAreaObject]) -> int:
    """Write ski areas as a FeatureCollection and return how many were written."""
    features = [ski_area_feature(ski_area) for ski_area in ski_areas]
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"type": "FeatureCollection", "features": features}, f)

    logger.info(f"Wrote {len(features)} ski areas to {path}")
    return len(features)
