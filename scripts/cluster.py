#!/usr/bin/env python

"""Run ski area clustering over local GeoJSON files.

This script is for LOCAL DEVELOPMENT. By default it clusters into the
PostGIS database configured through DB_* environment variables; with
--in-memory it runs against the in-memory store, which is practical for
small extracts of a single region.

WARNING: The PostGIS mode truncates the clustering working table first.

Usage:
    uv run python scripts/cluster.py ski_areas.geojson lifts.geojson runs.geojson
    uv run python scripts/cluster.py ski_areas.geojson lifts.geojson runs.geojson \\
        --in-memory --output out/ski_areas.geojson
    uv run python scripts/cluster.py --help
"""

import logging
from pathlib import Path

import typer

from skiarea_clustering.config import ClusteringConfig, DatabaseSettings
from skiarea_clustering.main import configure_logging
from skiarea_clustering.orchestrator import SkiAreaClusteringService
from skiarea_clustering.repositories.engine import create_db_engine
from skiarea_clustering.repositories.memory import InMemoryObjectStore
from skiarea_clustering.repositories.postgis import PostGISObjectStore
from skiarea_clustering.services.geojson_io import iter_geojson_features, write_ski_areas

logger = logging.getLogger(__name__)

app = typer.Typer(help="Cluster runs, lifts and ski areas from GeoJSON files")


@app.command()
def cluster(
    ski_areas: Path = typer.Argument(..., help="Ski areas FeatureCollection", exists=True),
    lifts: Path = typer.Argument(..., help="Lifts FeatureCollection", exists=True),
    runs: Path = typer.Argument(..., help="Runs FeatureCollection", exists=True),
    output: Path = typer.Option(
        Path("output/clustered_ski_areas.geojson"),
        "--output",
        "-o",
        help="Where the clustered ski areas are written",
    ),
    in_memory: bool = typer.Option(
        False,
        "--in-memory",
        help="Use the in-memory store instead of PostGIS",
    ),
):
    """Cluster the given inputs and write the resulting ski areas."""
    configure_logging()
    config = ClusteringConfig()

    if in_memory:
        store = InMemoryObjectStore(batch_size=config.batch_size)
    else:
        db_settings = DatabaseSettings()
        engine = create_db_engine(db_settings, pool_size=config.loader_workers)
        store = PostGISObjectStore(
            engine, schema=db_settings.schema_name, batch_size=config.batch_size
        )
        typer.secho(
            f"Clustering into {db_settings.host}/{db_settings.database} "
            f"(schema {db_settings.schema_name}), existing objects will be deleted",
            fg=typer.colors.YELLOW,
        )

    with store:
        store.initialize(truncate=True)
        outcomes = SkiAreaClusteringService(store, config).cluster_ski_areas(
            iter_geojson_features(ski_areas),
            iter_geojson_features(lifts),
            iter_geojson_features(runs),
        )
        written = write_ski_areas(output, store.stream_ski_areas())

    for stage, counts in outcomes.items():
        summary = ", ".join(f"{key}={value}" for key, value in counts.items())
        typer.echo(f"  {stage}: {summary or '-'}")
    typer.secho(f"✓ Wrote {written} ski areas to {output}", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
