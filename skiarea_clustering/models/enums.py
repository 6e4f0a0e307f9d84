"""Enumerations shared by the object model, the store and the clustering stages.

Values match the strings used in the raw GeoJSON features so they can be
read from and written back to feature properties unchanged.
"""

from enum import Enum


class MapObjectType(Enum):
    """Discriminator for the three kinds of clustered objects."""

    RUN = "RUN"
    LIFT = "LIFT"
    SKI_AREA = "SKI_AREA"


class SkiAreaActivity(Enum):
    DOWNHILL = "downhill"
    NORDIC = "nordic"
    BACKCOUNTRY = "backcountry"


class SourceType(Enum):
    """Where a ski area description came from.

    OPENSTREETMAP ski areas are drawn from site relations and landuse outlines,
    SKIMAP_ORG ski areas come from the curated registry and are usually points.
    """

    OPENSTREETMAP = "openstreetmap"
    SKIMAP_ORG = "skimap.org"


class SkiAreaAssignmentSource(Enum):
    """How an object came to belong to a ski area."""

    POLYGON = "polygon"
    SITE = "site"
    PROXIMITY = "proximity"


class SearchType(Enum):
    """Spatial predicate used by nearby-object queries."""

    CONTAINS = "contains"
    INTERSECTS = "intersects"


class RunUse(Enum):
    DOWNHILL = "downhill"
    NORDIC = "nordic"
    SKITOUR = "skitour"
    SLED = "sled"
    HIKE = "hike"
    SLEIGH = "sleigh"
    ICE_SKATE = "ice_skate"
    SNOW_PARK = "snow_park"
    PLAYGROUND = "playground"
    FATBIKE = "fatbike"
    CONNECTION = "connection"
    OTHER = "other"


class RunGrooming(Enum):
    CLASSIC = "classic"
    SKATING = "skating"
    CLASSIC_AND_SKATING = "classic+skating"
    MOGULS = "mogul"
    SCOOTER = "scooter"
    BACKCOUNTRY = "backcountry"


class Status(Enum):
    OPERATING = "operating"
    DISUSED = "disused"
    ABANDONED = "abandoned"
    PROPOSED = "proposed"
    PLANNED = "planned"
    CONSTRUCTION = "construction"


class RunDifficultyConvention(Enum):
    """Regional colour conventions used to present run difficulty."""

    EUROPE = "europe"
    JAPAN = "japan"
    NORTH_AMERICA = "north_america"
