"""Object model for ski area clustering."""

from skiarea_clustering.models.domain import (
    LiftObject,
    MapObject,
    MapObjectUpdate,
    RunObject,
    SkiAreaAssignment,
    SkiAreaObject,
    apply_update,
    sort_activities,
)

__all__ = [
    "RunObject",
    "LiftObject",
    "SkiAreaObject",
    "MapObject",
    "MapObjectUpdate",
    "SkiAreaAssignment",
    "apply_update",
    "sort_activities",
]
