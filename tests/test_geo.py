import math

from waypoint.geo import corridor_points, haversine_km
from waypoint.models import Coordinate


def test_corridor_points_interpolate_linearly():
    points = corridor_points(Coordinate(0.0, 0.0), Coordinate(4.0, -8.0))
    assert points == [Coordinate(1.0, -2.0), Coordinate(2.0, -4.0), Coordinate(3.0, -6.0)]


def test_corridor_points_for_same_origin_and_destination():
    here = Coordinate(35.68, 139.76)
    assert corridor_points(here, here) == [here, here, here]


def test_haversine_known_distance():
    # Tokyo Station to Shinjuku Station is roughly 6 km
    d = haversine_km(35.6812, 139.7671, 35.6896, 139.7006)
    assert 5.5 < d < 6.5
    assert math.isclose(haversine_km(1.0, 1.0, 1.0, 1.0), 0.0)
