"""Unit tests for ski area augmentation and cleanup."""

from unittest.mock import MagicMock

import pytest

from skiarea_clustering.models.domain import SkiAreaAssignment as Membership
from skiarea_clustering.models.enums import SkiAreaAssignmentSource, SourceType
from skiarea_clustering.services.augmentation import SkiAreaAugmentation
from skiarea_clustering.services.geocoding import unique_sorted_places
from tests.builders import make_lift, make_run, make_ski_area, point, square

ZERMATT = {
    "iso3166_1Alpha2": "CH",
    "iso3166_2": "CH-VS",
    "localized": {"en": {"locality": "Zermatt"}},
}
CHAMONIX = {
    "iso3166_1Alpha2": "FR",
    "iso3166_2": "FR-ARA",
    "localized": {"en": {"locality": "Chamonix"}},
}


def member_of(ski_area_id):
    return [Membership(ski_area_id=ski_area_id, assigned_from=SkiAreaAssignmentSource.PROXIMITY)]


@pytest.fixture
def geocoder():
    geocoder = MagicMock()
    geocoder.geocode_geometry.return_value = [ZERMATT]
    geocoder.geocode.return_value = CHAMONIX
    return geocoder


def test_unique_sorted_places():
    """Test place deduplication and ordering."""
    assert unique_sorted_places([ZERMATT, CHAMONIX, dict(ZERMATT)]) == [ZERMATT, CHAMONIX]


def test_geocoding_skipped_without_geocoder(store, config):
    """Test geocoding is optional."""
    store.save_object(make_run("R1"))

    assert SkiAreaAugmentation(store, config).geocode_runs_and_lifts() == 0


def test_geocode_runs_and_lifts(store, config, geocoder):
    """Test places are stored on runs and lifts."""
    store.save_objects([make_run("R1"), make_lift("L1")])

    geocoded = SkiAreaAugmentation(store, config, geocoder).geocode_runs_and_lifts()

    assert geocoded == 2
    assert store.get_object_by_id("R1").properties["places"] == [ZERMATT]
    assert store.get_object_by_id("L1").properties["places"] == [ZERMATT]


def test_geocoding_failure_skips_object(store, config, geocoder):
    """Test a failing geocoder call does not stop the pass."""
    store.save_objects([make_run("R1"), make_run("R2")])
    geocoder.geocode_geometry.side_effect = [RuntimeError("timeout"), [ZERMATT]]

    geocoded = SkiAreaAugmentation(store, config, geocoder).geocode_runs_and_lifts()

    assert geocoded == 1
    assert store.get_object_by_id("R1").properties["places"] == []
    assert store.get_object_by_id("R2").properties["places"] == [ZERMATT]


def test_memberless_openstreetmap_ski_area_removed(store, config):
    """Test removal of outlines without runs or lifts unless the registry knows them."""
    store.save_objects(
        [
            make_ski_area("osm", geometry=square(0, 0, 0.01)),
            make_ski_area("registry", geometry=point(1, 1), source=SourceType.SKIMAP_ORG),
        ]
    )

    augmentation = SkiAreaAugmentation(store, config)
    removed = augmentation.augment_ski_areas_based_on_assigned_lifts_and_runs()

    assert removed == 1
    assert store.get_object_by_id("osm") is None
    assert store.get_object_by_id("registry") is not None


def test_augment_with_member_places_and_statistics(store, config, geocoder):
    """Test statistics, run convention and places from members."""
    store.save_objects(
        [
            make_ski_area("S", geometry=point(0, 0)),
            make_run("R1", ski_areas=member_of("S"), properties={"id": "R1", "places": [ZERMATT]}),
            make_lift("L1", ski_areas=member_of("S"), properties={"id": "L1", "places": [ZERMATT]}),
        ]
    )
    statistics_fn = MagicMock(return_value={"runs": {"count": 1}})

    SkiAreaAugmentation(
        store, config, geocoder, statistics_fn
    ).augment_ski_areas_based_on_assigned_lifts_and_runs()

    properties = store.get_object_by_id("S").properties
    assert properties["statistics"] == {"runs": {"count": 1}}
    assert properties["runConvention"] == "europe"
    assert properties["places"] == [ZERMATT]
    assert [m.key for m in statistics_fn.call_args.args[0]] == ["L1", "R1"]
    geocoder.geocode.assert_not_called()


def test_augment_geocodes_ski_area_without_member_places(store, config, geocoder):
    """Test the ski area location is geocoded when members have no places."""
    store.save_objects(
        [make_ski_area("S", geometry=point(0, 0)), make_run("R1", ski_areas=member_of("S"))]
    )
    augmentation = SkiAreaAugmentation(store, config, geocoder)

    augmentation.augment_ski_areas_based_on_assigned_lifts_and_runs()

    assert store.get_object_by_id("S").properties["places"] == [CHAMONIX]


def test_remove_ski_areas_without_geometry(store, config):
    """Test final cleanup of geometry-less ski areas."""
    store.save_objects(
        [
            make_ski_area("no_geometry"),
            make_ski_area("located", geometry=point(0, 0)),
            make_run("R1", ski_areas=member_of("no_geometry")),
        ]
    )

    removed = SkiAreaAugmentation(store, config).remove_ski_areas_without_geometry()

    assert removed == 1
    assert store.get_object_by_id("no_geometry") is None
    assert store.get_object_by_id("R1").ski_areas == []
