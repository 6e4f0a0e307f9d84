"""Unit tests for the clustering pipeline."""

from unittest.mock import MagicMock

import pytest

from skiarea_clustering.models.enums import SkiAreaActivity, SourceType
from skiarea_clustering.orchestrator import SkiAreaClusteringService
from skiarea_clustering.services.assignment import AssignmentResult, AssignObjectsOptions
from tests.builders import lift_feature, line_geojson, run_feature, ski_area_feature, square_geojson

EXPECTED_STAGES = [
    "assign_activities_and_geometry_from_members",
    "remove_ambiguous_duplicate_ski_areas",
    "assign_objects_in_openstreetmap_polygons",
    "assign_nearby_objects_to_openstreetmap_ski_areas",
    "merge_skimap_org_ski_areas",
    "assign_nearby_objects_to_skimap_org_ski_areas",
    "generate_ski_areas_for_unassigned_runs",
    "geocode_runs_and_lifts",
    "augment_ski_areas",
    "remove_ski_areas_without_geometry",
]


@pytest.fixture
def mocked_service(store, config):
    """Service whose stage components record calls on one shared mock."""
    service = SkiAreaClusteringService(store, config)
    components = MagicMock()
    components.assignment.assign_activities_and_geometry_from_members.return_value = 1
    components.assignment.remove_ambiguous_duplicate_ski_areas.return_value = 2
    components.assignment.assign_objects_to_ski_areas.return_value = AssignmentResult()
    components.merging.merge_skimap_org_with_openstreetmap_ski_areas.return_value = 3
    components.generation.generate_ski_areas_for_unassigned_objects.return_value = 4
    components.augmentation.geocode_runs_and_lifts.return_value = 0
    components.augmentation.augment_ski_areas_based_on_assigned_lifts_and_runs.return_value = 0
    components.augmentation.remove_ski_areas_without_geometry.return_value = 5
    service.assignment = components.assignment
    service.merging = components.merging
    service.generation = components.generation
    service.augmentation = components.augmentation
    return service, components


def test_stage_order(store, config):
    """Test the fixed stage order."""
    service = SkiAreaClusteringService(store, config)

    assert [name for name, _ in service.stages()] == EXPECTED_STAGES


def test_perform_clustering_runs_stages_in_order(mocked_service):
    """Test stages are invoked sequentially and report their counts."""
    service, components = mocked_service

    outcomes = service.perform_clustering()

    assert list(outcomes) == EXPECTED_STAGES
    assert outcomes["remove_ambiguous_duplicate_ski_areas"] == {"removed": 2}
    assert outcomes["merge_skimap_org_ski_areas"] == {"merged": 3}
    assert outcomes["generate_ski_areas_for_unassigned_runs"] == {"generated": 4}
    assert outcomes["assign_objects_in_openstreetmap_polygons"] == {
        "ski_areas": 0,
        "assigned_objects": 0,
        "removed_ski_areas": 0,
    }
    called = [name for name, _, _ in components.mock_calls]
    assert called == [
        "assignment.assign_activities_and_geometry_from_members",
        "assignment.remove_ambiguous_duplicate_ski_areas",
        "assignment.assign_objects_to_ski_areas",
        "assignment.assign_objects_to_ski_areas",
        "merging.merge_skimap_org_with_openstreetmap_ski_areas",
        "assignment.assign_objects_to_ski_areas",
        "generation.generate_ski_areas_for_unassigned_objects",
        "augmentation.geocode_runs_and_lifts",
        "augmentation.augment_ski_areas_based_on_assigned_lifts_and_runs",
        "augmentation.remove_ski_areas_without_geometry",
    ]


def test_assignment_pass_options(mocked_service):
    """Test the options of the three assignment passes."""
    service, components = mocked_service

    service.perform_clustering()

    options = [
        c.args[0] for c in components.assignment.assign_objects_to_ski_areas.call_args_list
    ]
    assert options == [
        AssignObjectsOptions(
            only_source=SourceType.OPENSTREETMAP,
            only_in_polygon=True,
            remove_if_no_objects_found=True,
            remove_if_substantial_number_of_objects_in_ski_area_site=True,
        ),
        AssignObjectsOptions(
            only_source=SourceType.OPENSTREETMAP, only_if_not_already_assigned=True
        ),
        AssignObjectsOptions(only_source=SourceType.SKIMAP_ORG, only_if_not_already_assigned=True),
    ]


def test_keep_landuse_with_site_overlap(store, config):
    """Test the site overlap policy follows configuration."""
    keep = config.model_copy(update={"keep_landuse_with_site_overlap": True})
    service = SkiAreaClusteringService(store, keep)
    service.assignment = MagicMock()
    service.assignment.assign_objects_to_ski_areas.return_value = AssignmentResult()

    service.perform_clustering()

    polygon_pass = service.assignment.assign_objects_to_ski_areas.call_args_list[0].args[0]
    assert not polygon_pass.remove_if_substantial_number_of_objects_in_ski_area_site


def test_stage_failure_aborts_clustering(mocked_service):
    """Test fail-fast behaviour when a stage raises."""
    service, components = mocked_service
    components.generation.generate_ski_areas_for_unassigned_objects.side_effect = RuntimeError(
        "store failure"
    )

    with pytest.raises(RuntimeError, match="store failure"):
        service.perform_clustering()

    components.augmentation.remove_ski_areas_without_geometry.assert_not_called()


def test_cluster_ski_areas_end_to_end(store, config):
    """Test the full pipeline on a small region."""
    ski_areas = [
        ski_area_feature("osm-outline", geometry=square_geojson(0, 0, 0.01)),
        ski_area_feature(
            "skimap-1",
            geometry={"type": "Point", "coordinates": [7.0 - 0.0013, 46.001]},
            source="skimap.org",
            activities=["downhill"],
            websites=["https://ski.example"],
        ),
    ]
    lifts = [
        lift_feature("lift-in-outline", geometry=line_geojson(0.002, 0.002, 0.002, 0.004)),
        lift_feature("orphan-lift", geometry=line_geojson(0.05, 0.0005, 0.05, 0.0015)),
    ]
    runs = [
        run_feature("run-in-outline", geometry=line_geojson(0.001, 0.001, 0.002, 0.001)),
        run_feature("orphan-run", geometry=line_geojson(0.05, 0, 0.051, 0)),
        run_feature("lonely-run", geometry=line_geojson(-0.05, 0, -0.049, 0)),
        run_feature("broken-run"),
    ]
    runs[-1]["geometry"] = None

    outcomes = SkiAreaClusteringService(store, config).cluster_ski_areas(ski_areas, lifts, runs)

    assert outcomes["load_objects"] == {"loaded": 7, "skipped": 1}
    assert outcomes["merge_skimap_org_ski_areas"] == {"merged": 1}
    assert outcomes["generate_ski_areas_for_unassigned_runs"] == {"generated": 1}

    result = {s.key: s for s in store.get_ski_areas(use_batching=False)}
    assert "skimap-1" not in result
    assert len(result) == 2
    outline = result["osm-outline"]
    assert outline.activities == [SkiAreaActivity.DOWNHILL]
    assert {"type": "skimap.org", "id": "skimap-1"} in outline.sources
    assert outline.properties["websites"] == ["https://ski.example"]
    assert outline.properties["runConvention"] == "europe"

    [generated_key] = [key for key in result if key != "osm-outline"]
    assert store.get_object_by_id("orphan-run").ski_area_ids == [generated_key]
    assert store.get_object_by_id("orphan-lift").ski_area_ids == [generated_key]
    assert store.get_object_by_id("lonely-run").ski_areas == []
    assert all(s.geometry is not None for s in result.values())
