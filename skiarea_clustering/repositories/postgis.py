"""PostGIS-backed object store.

Implements the ObjectStore protocol with SQLAlchemy 2.x query builder
patterns over a single ``objects`` table. Distances are evaluated on the
geography type so buffers are in metres regardless of latitude.
"""

import json
import logging
import random
import time
from collections.abc import Callable, Iterable, Iterator
from typing import TypeVar

import shapely
from shapely.geometry.base import BaseGeometry
from sqlalchemy import Select, delete, func, not_, or_, select, text
from sqlalchemy import update as sql_update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from skiarea_clustering.config import CONSTANTS
from skiarea_clustering.models.db import SCHEMA, Base, MapObjectRecord
from skiarea_clustering.models.domain import MapObjectUpdate, RunObject, SkiAreaObject
from skiarea_clustering.models.enums import (
    MapObjectType,
    SearchType,
    SkiAreaAssignmentSource,
    SourceType,
)
from skiarea_clustering.repositories.cursors import MaterializedCursor, PagedCursor
from skiarea_clustering.repositories.protocols import AnyMapObject, SearchContext
from skiarea_clustering.repositories.rows import (
    object_to_values,
    record_to_object,
    update_to_values,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEADLOCK_DETECTED = "40P01"
MAX_TRANSACTION_ATTEMPTS = 5
BULK_INSERT_SIZE = 5000

POLYGON_TYPES = ("ST_Polygon", "ST_MultiPolygon")


class PostGISObjectStore:
    """Object store over a PostGIS ``objects`` table.

    Each operation runs in its own short session, so one store instance can
    be shared by the worker threads of a clustering stage (the engine's
    connection pool is thread-safe).

    Attributes:
        engine: SQLAlchemy engine for database connections
        schema: Schema holding the objects table
        batch_size: Page size for lazily enumerated cursors
    """

    def __init__(self, engine: Engine, schema: str = SCHEMA, batch_size: int = 1000):
        self.engine = engine
        self.schema = schema
        self.batch_size = batch_size
        self._table = f"{schema}.{MapObjectRecord.__tablename__}"
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def session(self) -> Session:
        return self._session_factory()

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _in_transaction(self, work: Callable[[Session], T]) -> T:
        """Run ``work`` in a transaction, retrying when PostgreSQL reports a deadlock."""
        for attempt in range(1, MAX_TRANSACTION_ATTEMPTS + 1):
            try:
                with self.session() as session, session.begin():
                    return work(session)
            except OperationalError as e:
                pgcode = getattr(e.orig, "pgcode", None)
                if pgcode != DEADLOCK_DETECTED or attempt == MAX_TRANSACTION_ATTEMPTS:
                    raise
                delay = random.uniform(0.05, 0.2) * attempt
                logger.warning(
                    f"Deadlock detected, retrying in {delay:.2f}s "
                    f"(attempt {attempt}/{MAX_TRANSACTION_ATTEMPTS})"
                )
                time.sleep(delay)

        msg = "Transaction retries exhausted"
        raise RuntimeError(msg)

    def initialize(self, truncate: bool = True) -> None:
        """Create the PostGIS extension, schema and table, optionally emptying the table."""
        with self.engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
            conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {self.schema}"))

        Base.metadata.create_all(self.engine)

        if truncate:
            with self.engine.begin() as conn:
                conn.execute(text(f"TRUNCATE TABLE {self._table}"))
            logger.info(f"Truncated {self._table}")

    def create_indexes(self) -> None:
        """Create the secondary indexes used by clustering queries, then analyze."""
        statements = [
            f"CREATE INDEX IF NOT EXISTS objects_ski_areas_idx ON {self._table} "
            "USING GIN (ski_areas jsonb_path_ops)",
            f"CREATE INDEX IF NOT EXISTS objects_activities_idx ON {self._table} "
            "USING GIN (activities jsonb_path_ops)",
            f"CREATE INDEX IF NOT EXISTS objects_geography_idx ON {self._table} "
            "USING GIST ((geography(geometry)))",
            f"CREATE INDEX IF NOT EXISTS objects_unassigned_runs_idx ON {self._table} (key) "
            "WHERE type = 'RUN' AND is_basis_for_new_ski_area",
            f"ANALYZE {self._table}",
        ]
        start = time.time()
        with self.engine.begin() as conn:
            for statement in statements:
                conn.execute(text(statement))
        logger.info(f"Created indexes on {self._table} in {time.time() - start:.2f}s")

    def save_object(self, obj: AnyMapObject) -> None:
        self.save_objects([obj])

    def save_objects(self, objects: Iterable[AnyMapObject]) -> None:
        rows = [object_to_values(obj) for obj in objects]
        if not rows:
            return

        for start in range(0, len(rows), BULK_INSERT_SIZE):
            chunk = rows[start : start + BULK_INSERT_SIZE]
            stmt = insert(MapObjectRecord).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=[MapObjectRecord.key],
                set_={name: stmt.excluded[name] for name in chunk[0] if name != "key"},
            )
            self._in_transaction(lambda session, stmt=stmt: session.execute(stmt))

    def update_object(self, key: str, update: MapObjectUpdate) -> None:
        self.update_objects([(key, update)])

    def update_objects(self, updates: Iterable[tuple[str, MapObjectUpdate]]) -> None:
        statements = [
            sql_update(MapObjectRecord).where(MapObjectRecord.key == key).values(**values)
            for key, change in updates
            if (values := update_to_values(change))
        ]
        if not statements:
            return

        def work(session: Session) -> None:
            for stmt in statements:
                session.execute(stmt)

        self._in_transaction(work)

    def remove_object(self, key: str) -> None:
        def work(session: Session) -> None:
            object_type = session.scalar(
                select(MapObjectRecord.type).where(MapObjectRecord.key == key)
            )
            if object_type is MapObjectType.SKI_AREA:
                session.execute(
                    text(
                        f"UPDATE {self._table} SET ski_areas = COALESCE("
                        "  (SELECT jsonb_agg(elem) FROM jsonb_array_elements(ski_areas) elem"
                        "   WHERE elem->>'skiAreaId' <> :ski_area_id),"
                        "  '[]'::jsonb)"
                        " WHERE ski_areas @> CAST(:pattern AS jsonb)"
                    ),
                    {"ski_area_id": key, "pattern": json.dumps([{"skiAreaId": key}])},
                )
            session.execute(delete(MapObjectRecord).where(MapObjectRecord.key == key))

        self._in_transaction(work)

    def _fetch(self, stmt: Select) -> list[AnyMapObject]:
        with self.session() as session:
            return [record_to_object(record) for record in session.scalars(stmt)]

    def _cursor(self, stmt: Select, use_batching: bool):
        stmt = stmt.order_by(MapObjectRecord.key)
        if use_batching:
            return PagedCursor(
                lambda offset, limit: self._fetch(stmt.offset(offset).limit(limit)),
                self.batch_size,
            )
        return MaterializedCursor(self._fetch(stmt), self.batch_size)

    def get_object_by_id(self, key: str) -> AnyMapObject | None:
        objects = self._fetch(select(MapObjectRecord).where(MapObjectRecord.key == key))
        return objects[0] if objects else None

    def get_ski_areas(
        self,
        *,
        source: SourceType | None = None,
        only_polygons: bool = False,
        only_in_polygon: BaseGeometry | None = None,
        use_batching: bool = True,
    ):
        stmt = select(MapObjectRecord).where(MapObjectRecord.type == MapObjectType.SKI_AREA)
        if source is not None:
            stmt = stmt.where(MapObjectRecord.source == source.value)
        if only_polygons:
            stmt = stmt.where(func.ST_GeometryType(MapObjectRecord.geometry).in_(POLYGON_TYPES))
        if only_in_polygon is not None:
            stmt = stmt.where(
                func.ST_CoveredBy(MapObjectRecord.geometry, self._geometry_literal(only_in_polygon))
            )
        return self._cursor(stmt, use_batching)

    def get_ski_areas_by_ids(self, ids: Iterable[str], use_batching: bool = True):
        stmt = select(MapObjectRecord).where(
            MapObjectRecord.type == MapObjectType.SKI_AREA,
            MapObjectRecord.key.in_(sorted(set(ids))),
        )
        return self._cursor(stmt, use_batching)

    def get_all_runs(self, use_batching: bool = True):
        stmt = select(MapObjectRecord).where(MapObjectRecord.type == MapObjectType.RUN)
        return self._cursor(stmt, use_batching)

    def get_all_lifts(self, use_batching: bool = True):
        stmt = select(MapObjectRecord).where(MapObjectRecord.type == MapObjectType.LIFT)
        return self._cursor(stmt, use_batching)

    def stream_ski_areas(self) -> Iterator[SkiAreaObject]:
        yield from self.get_ski_areas(use_batching=True)

    @staticmethod
    def _geometry_literal(geometry: BaseGeometry):
        return func.ST_MakeValid(func.ST_GeomFromText(geometry.wkt, CONSTANTS.SRID_WGS84))

    @staticmethod
    def _member_of(ski_area_id: str):
        return MapObjectRecord.ski_areas.contains([{"skiAreaId": ski_area_id}])

    def find_nearby_objects(
        self, geometry: BaseGeometry, context: SearchContext
    ) -> list[AnyMapObject]:
        origin = self._geometry_literal(geometry)
        column = MapObjectRecord.geometry

        if context.buffer_distance_km is not None:
            meters = context.buffer_distance_km * CONSTANTS.METRES_PER_KILOMETRE
            if context.search_type is SearchType.CONTAINS:
                buffered = func.geometry(func.ST_Buffer(func.geography(origin), meters))
                predicate = func.ST_CoveredBy(column, buffered)
            else:
                predicate = func.ST_DWithin(func.geography(column), func.geography(origin), meters)
        elif context.search_type is SearchType.CONTAINS:
            predicate = func.ST_CoveredBy(column, origin)
        else:
            predicate = func.ST_Intersects(column, origin)

        stmt = select(MapObjectRecord).where(
            MapObjectRecord.type != MapObjectType.SKI_AREA,
            column.is_not(None),
            predicate,
            not_(self._member_of(context.id)),
        )
        if context.activities:
            stmt = stmt.where(
                or_(*[MapObjectRecord.activities.contains([a.value]) for a in context.activities])
            )
        if context.exclude_objects_already_in_ski_area:
            stmt = stmt.where(func.jsonb_array_length(MapObjectRecord.ski_areas) == 0)
        if context.already_visited:
            stmt = stmt.where(MapObjectRecord.key.not_in(sorted(context.already_visited)))

        return self._fetch(stmt.order_by(MapObjectRecord.key))

    def get_objects_for_ski_area(self, ski_area_id: str) -> list[AnyMapObject]:
        stmt = (
            select(MapObjectRecord)
            .where(MapObjectRecord.type != MapObjectType.SKI_AREA, self._member_of(ski_area_id))
            .order_by(MapObjectRecord.key)
        )
        return self._fetch(stmt)

    def mark_objects_as_part_of_ski_area(
        self,
        ski_area_id: str,
        keys: Iterable[str],
        assigned_from: SkiAreaAssignmentSource,
    ) -> None:
        # Sorted keys keep row lock order consistent between concurrent workers
        ordered_keys = sorted(set(keys))
        if not ordered_keys:
            return

        assignment = {"skiAreaId": ski_area_id, "assignedFrom": assigned_from.value}
        params = {
            "pattern": json.dumps([{"skiAreaId": ski_area_id}]),
            "assignment": json.dumps([assignment]),
            "in_polygon": assigned_from is SkiAreaAssignmentSource.POLYGON,
            "keys": ordered_keys,
        }
        stmt = text(
            f"UPDATE {self._table} SET"
            " ski_areas = CASE WHEN ski_areas @> CAST(:pattern AS jsonb) THEN ski_areas"
            "   ELSE ski_areas || CAST(:assignment AS jsonb) END,"
            " is_basis_for_new_ski_area = false,"
            " is_in_ski_area_polygon = is_in_ski_area_polygon OR :in_polygon"
            " WHERE key = ANY(:keys)"
        )
        self._in_transaction(lambda session: session.execute(stmt, params))

    def get_next_unassigned_run(self) -> RunObject | None:
        stmt = (
            select(MapObjectRecord)
            .where(
                MapObjectRecord.type == MapObjectType.RUN,
                MapObjectRecord.is_basis_for_new_ski_area.is_(True),
            )
            .order_by(MapObjectRecord.key)
            .limit(1)
        )
        runs = self._fetch(stmt)
        return runs[0] if runs else None

    def get_object_derived_ski_area_geometry(self, ski_area_id: str) -> BaseGeometry | None:
        stmt = select(
            func.ST_AsBinary(func.ST_Union(func.ST_MakeValid(MapObjectRecord.geometry)))
        ).where(MapObjectRecord.type != MapObjectType.SKI_AREA, self._member_of(ski_area_id))

        with self.session() as session:
            wkb = session.scalar(stmt)

        if wkb is not None:
            return shapely.from_wkb(bytes(wkb))

        ski_area = self.get_object_by_id(ski_area_id)
        return ski_area.geometry if ski_area is not None else None

    def compute_ski_feature_buffer(self, meters: float) -> BaseGeometry | None:
        buffered = func.geometry(func.ST_Buffer(func.geography(MapObjectRecord.geometry), meters))
        stmt = select(func.ST_AsBinary(func.ST_Union(buffered))).where(
            MapObjectRecord.geometry.is_not(None)
        )
        with self.session() as session:
            wkb = session.scalar(stmt)
        return shapely.from_wkb(bytes(wkb)) if wkb is not None else None
