"""Configuration and constants for the ski area clustering pipeline.

This module defines the heuristic constants and runtime configuration
used by the assignment, merge and generation stages.

Includes configuration for:
- Clustering heuristics and worker budgets (ClusteringConfig with CLUSTER_ prefix)
- Database connection (DatabaseSettings with DB_ prefix)
- Input file locations for the production entry point (InputSettings with INPUT_ prefix)

Configuration can be overridden via:
1. Environment variables (e.g., CLUSTER_MAX_SEARCH_DISTANCE_KM=0.75, DB_HOST=db)
2. .env file in the current directory
3. Default values in code
"""

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from skiarea_clustering.models.enums import SkiAreaActivity


@dataclass(frozen=True)
class GeodesyConstants:
    """Fixed coordinate reference system and unit constants.

    These are NOT configurable. All stored geometry is WGS84 longitude/latitude.
    """

    CRS_WGS84: str = "EPSG:4326"
    SRID_WGS84: int = 4326
    METRES_PER_KILOMETRE: float = 1_000.0


# Module-level singleton for geodesy constants
CONSTANTS = GeodesyConstants()


class ClusteringConfig(BaseSettings):
    """Heuristics and worker budgets for the clustering stages.

    Can be overridden via environment variables with CLUSTER_ prefix:
    - CLUSTER_SKI_AREA_ACTIVITIES (JSON list, e.g. '["downhill"]')
    - CLUSTER_MAX_SEARCH_DISTANCE_KM
    - CLUSTER_MAX_MERGE_DISTANCE_KM
    - CLUSTER_GEOMETRY_NUDGE_M
    - CLUSTER_SITE_OVERLAP_THRESHOLD
    - CLUSTER_KEEP_LANDUSE_WITH_SITE_OVERLAP

    Attributes:
        ski_area_activities: Activities that make an object relevant to ski area clustering
        max_search_distance_km: Buffer used by the proximity flood-fill
        max_merge_distance_km: Buffer used when looking for merge targets
        geometry_nudge_m: Distance a synthesized point moves from the nearest member vertex
        site_overlap_threshold: Site-assigned member share above which a polygon is dropped
        keep_landuse_with_site_overlap: Disable the site overlap removal policy
        activity_batch_workers: Concurrent batches when deriving activities from members
        duplicate_removal_workers: Concurrent ski areas when removing ambiguous duplicates
        assignment_workers: Concurrent ski areas during polygon assignment
        loader_workers: Concurrent feature writes while loading
        batch_size: Page size for lazily enumerated cursors
    """

    model_config = SettingsConfigDict(
        env_prefix="CLUSTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ski_area_activities: list[SkiAreaActivity] = Field(
        default_factory=lambda: [SkiAreaActivity.DOWNHILL, SkiAreaActivity.NORDIC],
        description="Activities relevant to ski area clustering",
    )
    max_search_distance_km: float = Field(
        default=0.5, description="Proximity flood-fill search buffer (km)"
    )
    max_merge_distance_km: float = Field(
        default=0.25, description="Search buffer for ski areas to merge into (km)"
    )
    geometry_nudge_m: float = Field(
        default=100.0, description="Distance from nearest member vertex towards the centroid (m)"
    )
    site_overlap_threshold: float = Field(
        default=0.5, description="Share of site-assigned lifts and runs that removes a ski area"
    )
    keep_landuse_with_site_overlap: bool = Field(
        default=False, description="Keep polygon ski areas that overlap site relations"
    )

    activity_batch_workers: int = Field(default=4, ge=1)
    duplicate_removal_workers: int = Field(default=3, ge=1)
    assignment_workers: int = Field(default=3, ge=1)
    loader_workers: int = Field(default=10, ge=1)
    batch_size: int = Field(default=1000, ge=1)

    @field_validator("ski_area_activities")
    @classmethod
    def must_not_be_empty(cls, v: list[SkiAreaActivity]) -> list[SkiAreaActivity]:
        if not v:
            msg = "ski_area_activities must contain at least one activity"
            raise ValueError(msg)
        return v

    @property
    def activity_set(self) -> frozenset[SkiAreaActivity]:
        """Ski-relevant activities as a set for intersection checks."""
        return frozenset(self.ski_area_activities)

    @property
    def max_merge_distance_m(self) -> float:
        return self.max_merge_distance_km * CONSTANTS.METRES_PER_KILOMETRE


class DatabaseSettings(BaseSettings):
    """Database connection configuration for PostGIS.

    Environment variables:
    - DB_HOST: Database host (default: localhost)
    - DB_PORT: Database port (default: 5432)
    - DB_DATABASE: Database name (default: openskidata)
    - DB_USER: Database user (default: postgres)
    - DB_LOCAL_PASSWORD: Static password (default: empty)
    - DB_SCHEMA_NAME: Schema holding the clustering working table (default: clustering)
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="openskidata", description="Database name")
    user: str = Field(default="postgres", description="Database user")
    local_password: str = Field(default="", description="Static password")
    schema_name: str = Field(
        default="clustering", description="Schema for the clustering working table"
    )

    @property
    def connection_url(self) -> str:
        """Build connection URL from individual parameters.

        Password is not included - it's injected by the engine factory.
        """
        return f"postgresql://{self.user}@{self.host}:{self.port}/{self.database}"


class InputSettings(BaseSettings):
    """GeoJSON inputs consumed by the production entry point."""

    model_config = SettingsConfigDict(
        env_prefix="INPUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ski_areas_path: Path = Field(default=Path("data/ski_areas.geojson"))
    lifts_path: Path = Field(default=Path("data/lifts.geojson"))
    runs_path: Path = Field(default=Path("data/runs.geojson"))
    output_path: Path = Field(
        default=Path("data/clustered_ski_areas.geojson"),
        description="Where the clustered ski areas are written",
    )


# Default configuration instance
DEFAULT_CONFIG = ClusteringConfig()
