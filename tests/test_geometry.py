"""Geometry validator, bounding-box ring and point-in-polygon."""

import math

import pytest

from geosearch.core.errors import InvalidGeometry
from geosearch.services.geometry import (
    bbox_polygon,
    is_valid_path,
    is_valid_point,
    point_in_polygon,
    validate_path,
    validate_point,
)
from geosearch.utils.haversine import haversine, haversine_meters


def test_validate_point_accepts_goa() -> None:
    assert validate_point([73.8278, 15.4989]) == [73.8278, 15.4989]


@pytest.mark.parametrize("coords", [[200, 10], [-180.5, 0], [10, 90.01], [10, -91]])
def test_validate_point_rejects_out_of_range(coords) -> None:
    with pytest.raises(InvalidGeometry):
        validate_point(coords)


@pytest.mark.parametrize("coords", [[1.0], [1.0, 2.0, 3.0], "1,2", None, [True, 1.0], [math.nan, 1.0], [1.0, math.inf]])
def test_validate_point_rejects_malformed(coords) -> None:
    with pytest.raises(InvalidGeometry):
        validate_point(coords)


def test_validate_point_boundaries_are_inclusive() -> None:
    assert is_valid_point([180, 90])
    assert is_valid_point([-180, -90])


def test_validate_path_needs_two_vertices() -> None:
    with pytest.raises(InvalidGeometry):
        validate_path([[0, 0]])
    assert validate_path([[0, 0], [1, 1]]) == [[0.0, 0.0], [1.0, 1.0]]


def test_validate_path_rejects_bad_vertex() -> None:
    assert not is_valid_path([[0, 0], [0, 95]])


def test_bbox_polygon_is_closed_ring() -> None:
    ring = bbox_polygon(1, 2, 3, 4)
    assert len(ring) == 5
    assert ring[0] == ring[-1] == [1, 2]


def test_point_in_polygon_inside_outside_and_boundary() -> None:
    ring = bbox_polygon(0, 0, 10, 10)
    assert point_in_polygon([5, 5], ring)
    assert not point_in_polygon([11, 5], ring)
    # Edges and corners count as inside.
    assert point_in_polygon([0, 5], ring)
    assert point_in_polygon([10, 10], ring)


def test_haversine_one_degree_of_latitude() -> None:
    assert haversine(0, 0, 1, 0) == pytest.approx(111.195, abs=1e-3)
    assert haversine_meters(0, 0, 0, 1) == pytest.approx(111195, rel=1e-4)
