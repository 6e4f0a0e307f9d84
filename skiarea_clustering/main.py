"""Production entry point: cluster GeoJSON inputs through PostGIS and export the ski areas."""

import json
import logging
import logging.config
import os
import sys
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from skiarea_clustering.config import ClusteringConfig, DatabaseSettings, InputSettings
from skiarea_clustering.orchestrator import SkiAreaClusteringService
from skiarea_clustering.repositories.engine import create_db_engine
from skiarea_clustering.repositories.postgis import PostGISObjectStore
from skiarea_clustering.services.geojson_io import iter_geojson_features, write_ski_areas


def configure_logging() -> None:
    """Configure logging based on environment.

    With LOG_FORMAT=json: uses logging.json with structured records.

    Otherwise: uses logging-dev.json with a simple text format for readability.
    """
    config_file = "logging.json" if os.environ.get("LOG_FORMAT") == "json" else "logging-dev.json"
    config_path = Path(__file__).parent.parent / config_file

    if config_path.exists():
        with open(config_path) as f:
            logging.config.dictConfig(json.load(f))
    else:
        # Fallback to basic config if file not found
        logging.basicConfig(
            level=logging.INFO,
            format=(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
                '"logger": "%(name)s", "message": "%(message)s"}'
            ),
            datefmt="%Y-%m-%dT%H:%M:%S",
        )


logger = logging.getLogger(__name__)


def check_database_connection(engine: Engine) -> bool:
    """Check if the database is accessible.

    Logs a warning on failure but does not raise.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection check: OK")
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


def main():
    """Cluster the configured inputs and write the clustered ski areas."""
    configure_logging()
    store = None

    try:
        config = ClusteringConfig()
        inputs = InputSettings()
        db_settings = DatabaseSettings()

        # Pool covers the widest concurrent stage
        engine = create_db_engine(
            db_settings, pool_size=max(config.loader_workers, config.activity_batch_workers)
        )
        check_database_connection(engine)

        store = PostGISObjectStore(
            engine, schema=db_settings.schema_name, batch_size=config.batch_size
        )
        store.initialize(truncate=True)

        service = SkiAreaClusteringService(store, config)
        service.cluster_ski_areas(
            iter_geojson_features(inputs.ski_areas_path),
            iter_geojson_features(inputs.lifts_path),
            iter_geojson_features(inputs.runs_path),
        )

        write_ski_areas(inputs.output_path, store.stream_ski_areas())

    except Exception as e:
        logger.exception(f"Clustering failed: {e}")
        sys.exit(1)

    finally:
        if store is not None:
            store.close()


if __name__ == "__main__":
    main()
