"""Unit tests for the haversine distance used by distance sorting."""

import pytest

from carpool.domain.distance import haversine_miles

AUSTIN = (30.2672, -97.7431)
DALLAS = (32.7767, -96.7970)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_miles(*AUSTIN, *AUSTIN) == 0.0

    def test_austin_to_dallas(self):
        assert haversine_miles(*AUSTIN, *DALLAS) == pytest.approx(182, abs=2)

    def test_symmetric(self):
        assert haversine_miles(*AUSTIN, *DALLAS) == pytest.approx(
            haversine_miles(*DALLAS, *AUSTIN)
        )

    def test_one_degree_of_latitude(self):
        # ~69 miles per degree along a meridian
        assert haversine_miles(0, 0, 1, 0) == pytest.approx(69.1, abs=0.1)
