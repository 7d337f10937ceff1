"""
Unit tests for location parsing.

Tests follow the Given/When/Then pattern for clarity.
"""

import math

import pytest

from scripts.lib.geo import ORIGIN, parse_location


class TestParseLocation:
    """Tests for parse_location."""

    def test_parses_latitude_and_longitude(self):
        """
        Given a well-formed "lat,lng" string
        When parsing it
        Then both numbers should be returned exactly
        """
        # When / Then
        assert parse_location("40.0,-3.0") == (40.0, -3.0)

    def test_trims_whitespace_around_numbers(self):
        # When / Then
        assert parse_location("  37.88 , -4.77 ") == (37.88, -4.77)

    @pytest.mark.parametrize("location", ["", "0,0", "40.5", "abc,def", "1,2,3", None])
    def test_degrades_to_origin(self, location):
        """
        Given an empty, single-token, non-numeric or over-long location
        When parsing it
        Then the origin should be returned
        """
        # When / Then
        assert parse_location(location) == ORIGIN

    def test_unparsable_half_becomes_zero(self):
        """
        Given a location with only one numeric half
        When parsing it
        Then the other half should become 0
        """
        # When / Then
        assert parse_location("40.0,north") == (40.0, 0.0)
        assert parse_location(",-3.5") == (0.0, -3.5)

    def test_never_returns_non_finite_values(self):
        """
        Given halves that float() accepts but are not finite
        When parsing
        Then they should become 0
        """
        # When
        lat, lng = parse_location("nan,inf")

        # Then
        assert (lat, lng) == (0.0, 0.0)
        assert not math.isnan(lat)
