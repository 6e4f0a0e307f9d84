"""SQLAlchemy database model for the clustering working table.

All runs, lifts and ski areas live in a single table discriminated by
``type``. Membership, activities and feature properties are JSONB so that
membership lookups can use containment (``@>``) with a GIN index.

Geometry is stored 2D in SRID 4326. Ski areas without a known geometry
keep a NULL geometry until the cleanup stage removes them.
"""

from typing import Any

from geoalchemy2 import Geometry
from sqlalchemy import Boolean, Enum, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from skiarea_clustering.models.enums import MapObjectType

SCHEMA = "clustering"


class Base(DeclarativeBase):
    """Base class for all database models."""


class MapObjectRecord(Base):
    """Row form of a run, lift or ski area.

    Attributes:
        key: Object key (primary key)
        type: Object kind discriminator
        source: Ski area source (NULL for runs and lifts)
        geometry: PostGIS geometry (any type, SRID 4326)
        geometry_with_elevations: Raw GeoJSON geometry including elevation
        is_polygon: Ski area geometry is a source outline
        activities: JSONB array of activity strings
        ski_areas: JSONB array of {"skiAreaId", "assignedFrom"} objects
        is_basis_for_new_ski_area: Run may seed a generated ski area
        is_in_ski_area_polygon: Object is contained by a ski area polygon
        is_in_ski_area_site: Object was pre-assigned by a site relation
        lift_type: Lift type tag
        difficulty: Run difficulty
        viirs_pixels: Snow cover sample pixels
        properties: Feature properties
    """

    __tablename__ = "objects"
    __table_args__ = {"schema": SCHEMA}

    key: Mapped[str] = mapped_column(String, primary_key=True)
    type: Mapped[MapObjectType] = mapped_column(
        Enum(MapObjectType, name="map_object_type", schema=SCHEMA),
        nullable=False,
        index=True,
    )
    source: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    geometry: Mapped[Any] = mapped_column(
        Geometry(geometry_type="GEOMETRY", srid=4326, spatial_index=True),
        nullable=True,
    )
    geometry_with_elevations: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB, nullable=True
    )

    is_polygon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    activities: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    ski_areas: Mapped[list[dict[str, str]]] = mapped_column(
        JSONB, nullable=False, default=list
    )
    is_basis_for_new_ski_area: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_in_ski_area_polygon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_in_ski_area_site: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lift_type: Mapped[str | None] = mapped_column(String, nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String, nullable=True)
    viirs_pixels: Mapped[list[list[int]]] = mapped_column(JSONB, nullable=False, default=list)
    properties: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<MapObjectRecord(key={self.key}, type={self.type.value})>"
