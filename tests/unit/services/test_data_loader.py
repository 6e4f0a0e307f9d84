"""Unit tests for the data loader."""

import logging

from skiarea_clustering.models.enums import MapObjectType
from skiarea_clustering.services.data_loader import DataLoader, LoadSummary
from tests.builders import lift_feature, run_feature, ski_area_feature, square_geojson


def test_load_graph_data(store, config):
    """Test that all feature kinds are prepared and saved."""
    loader = DataLoader(store, config)

    summary = loader.load_graph_data(
        [ski_area_feature("s1", geometry=square_geojson(0, 0, 0.01))],
        [lift_feature("l1")],
        [run_feature("r1"), run_feature("r2")],
    )

    assert summary == LoadSummary(loaded=4, skipped=0)
    assert store.get_object_by_id("s1").type is MapObjectType.SKI_AREA
    assert store.get_object_by_id("l1").type is MapObjectType.LIFT
    assert store.get_object_by_id("r2").type is MapObjectType.RUN
    assert store.indexes_created


def test_bad_features_are_skipped(store, config, caplog):
    """Test per-feature failures are logged and do not stop loading."""
    broken = run_feature("broken")
    broken["geometry"] = None
    multi_source = ski_area_feature("s2")
    multi_source["properties"]["sources"] = []

    with caplog.at_level(logging.ERROR):
        summary = DataLoader(store, config).load_graph_data(
            [multi_source], [], [broken, run_feature("r1")]
        )

    assert summary == LoadSummary(loaded=1, skipped=2)
    assert store.get_object_by_id("r1") is not None
    assert store.get_object_by_id("broken") is None
    assert any("broken" in r.getMessage() for r in caplog.records)


def test_pixel_extractor_passed_to_runs(store, config):
    """Test the loader forwards the snow cover extractor."""
    DataLoader(store, config, pixel_extractor=lambda g: [[5, 6]]).load_graph_data(
        [], [], [run_feature("r1")]
    )

    assert store.get_object_by_id("r1").viirs_pixels == [[5, 6]]
