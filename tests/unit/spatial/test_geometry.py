"""Unit tests for geometry helpers and ski area point synthesis."""

import pytest
from shapely.geometry import LineString, MultiPolygon, Point, Polygon

from skiarea_clustering.models.enums import RunDifficultyConvention
from skiarea_clustering.spatial.geometry import (
    clean_geometry,
    geodesic_distance_m,
    geometry_from_geojson,
    is_polygonal,
    run_difficulty_convention,
    ski_area_geometry,
    to_geojson,
    vertex_centroid,
)
from tests.builders import BASE_LAT, BASE_LON, line, make_lift, make_run, make_ski_area, square


def test_geometry_from_geojson_drops_elevation():
    """Test that elevation is removed from parsed geometry."""
    geometry = geometry_from_geojson(
        {"type": "LineString", "coordinates": [[7.0, 46.0, 1800.0], [7.001, 46.0, 1750.0]]}
    )

    assert isinstance(geometry, LineString)
    assert not geometry.has_z


def test_to_geojson_handles_missing_geometry():
    """Test GeoJSON export of absent geometry."""
    assert to_geojson(None) is None
    assert to_geojson(Point(7.0, 46.0)) == {"type": "Point", "coordinates": (7.0, 46.0)}


def test_is_polygonal():
    """Test polygon detection for ski area outlines."""
    assert is_polygonal(square(0, 0, 0.01))
    assert is_polygonal(MultiPolygon([square(0, 0, 0.01), square(0.02, 0, 0.01)]))
    assert not is_polygonal(line(0, 0, 0.01, 0))
    assert not is_polygonal(None)


def test_clean_geometry_repairs_self_intersection():
    """Test that an invalid bow-tie polygon is made valid."""
    bow_tie = Polygon([(7.0, 46.0), (7.01, 46.01), (7.01, 46.0), (7.0, 46.01), (7.0, 46.0)])
    assert not bow_tie.is_valid

    cleaned = clean_geometry(bow_tie)

    assert cleaned.is_valid
    assert cleaned.area > 0


def test_vertex_centroid_ignores_closing_vertex():
    """Test that a ring's closing vertex is not double counted."""
    centroid = vertex_centroid([square(0, 0, 0.002)])

    assert centroid.x == pytest.approx(BASE_LON + 0.001)
    assert centroid.y == pytest.approx(BASE_LAT + 0.001)


def test_vertex_centroid_requires_vertices():
    """Test centroid of no geometry."""
    with pytest.raises(ValueError):
        vertex_centroid([])


def test_single_member_near_centroid_returns_centroid():
    """Test that a compact cluster uses the exact vertex centroid."""
    run = make_run("r1", geometry=line(0, 0, 0.0005, 0))

    result = ski_area_geometry([run])

    assert result.equals(vertex_centroid([run.geometry]))


def test_distant_centroid_is_nudged_from_nearest_vertex():
    """Test that a centroid far from every member is pulled towards the members."""
    members = [
        make_run("r1", geometry=line(0, 0, 0.001, 0)),
        make_lift("l1", geometry=line(0, 0.01, 0.001, 0.01)),
    ]
    centroid = vertex_centroid([m.geometry for m in members])
    vertices = [Point(c) for m in members for c in m.geometry.coords]
    nearest = min(vertices, key=lambda v: geodesic_distance_m(v, centroid))

    result = ski_area_geometry(members)

    assert geodesic_distance_m(nearest, result) == pytest.approx(100.0, abs=0.01)
    assert geodesic_distance_m(result, centroid) == pytest.approx(
        geodesic_distance_m(nearest, centroid) - 100.0, abs=0.01
    )


def test_nudge_distance_is_configurable():
    """Test a custom nudge distance."""
    members = [
        make_run("r1", geometry=line(0, 0, 0.001, 0)),
        make_run("r2", geometry=line(0, 0.01, 0.001, 0.01)),
    ]

    result = ski_area_geometry(members, nudge_m=250.0)

    nearest_distance = min(
        geodesic_distance_m(Point(c), result) for m in members for c in m.geometry.coords
    )
    assert nearest_distance == pytest.approx(250.0, abs=0.01)


def test_members_without_geometry_are_skipped():
    """Test that a geometry-less ski area member does not break synthesis."""
    run = make_run("r1", geometry=line(0, 0, 0.0005, 0))

    result = ski_area_geometry([make_ski_area("s1"), run])

    assert result.equals(vertex_centroid([run.geometry]))


def test_ski_area_geometry_requires_members():
    """Test synthesis without any member geometry."""
    with pytest.raises(ValueError):
        ski_area_geometry([make_ski_area("s1")])


@pytest.mark.parametrize(
    ("geometry", "expected"),
    [
        (Point(138.0, 36.5), RunDifficultyConvention.JAPAN),
        (Point(-106.8, 39.6), RunDifficultyConvention.NORTH_AMERICA),
        (Point(7.0, 46.0), RunDifficultyConvention.EUROPE),
    ],
)
def test_run_difficulty_convention(geometry, expected):
    """Test regional difficulty conventions."""
    assert run_difficulty_convention(geometry) is expected
