"""
Unit tests for WindowClassifier.
"""

from datetime import timedelta

import pytest

from core.exceptions import InvalidRangeError
from services.window_classifier import WindowClassifier
from shared_types.availability import SlotRange, WindowClassification
from tests.fakes import utc

# Monday 09:00-12:00 Sydney as a single free range
MORNING = SlotRange(start_utc=utc(2025, 3, 2, 22), end_utc=utc(2025, 3, 3, 1))


class TestClassify:
    """Test Fits / Partial / Unavailable outcomes."""

    def test_candidate_inside_range_fits(self):
        result = WindowClassifier.classify([MORNING], utc(2025, 3, 2, 22, 30), utc(2025, 3, 2, 23, 30))
        assert result == WindowClassification.FITS

    def test_candidate_equal_to_range_fits(self):
        result = WindowClassifier.classify([MORNING], MORNING.start_utc, MORNING.end_utc)
        assert result == WindowClassification.FITS

    def test_candidate_crossing_range_end_is_partial(self):
        # 09:30-11:30 local against a range split by a 10:00-10:30 exception
        ranges = [
            SlotRange(start_utc=utc(2025, 3, 2, 22), end_utc=utc(2025, 3, 2, 23)),
            SlotRange(start_utc=utc(2025, 3, 2, 23, 30), end_utc=utc(2025, 3, 3, 1)),
        ]
        result = WindowClassifier.classify(ranges, utc(2025, 3, 2, 22, 30), utc(2025, 3, 3, 0, 30))
        assert result == WindowClassification.PARTIAL

    def test_candidate_touching_range_is_unavailable(self):
        result = WindowClassifier.classify([MORNING], utc(2025, 3, 3, 1), utc(2025, 3, 3, 2))
        assert result == WindowClassification.UNAVAILABLE

    def test_no_ranges_is_unavailable(self):
        assert WindowClassifier.classify([], utc(2025, 3, 3, 1), utc(2025, 3, 3, 2)) == WindowClassification.UNAVAILABLE

    def test_best_outcome_across_ranges(self):
        ranges = [
            SlotRange(start_utc=utc(2025, 3, 2, 21), end_utc=utc(2025, 3, 2, 22, 15)),
            MORNING,
        ]
        result = WindowClassifier.classify(ranges, utc(2025, 3, 2, 22), utc(2025, 3, 2, 22, 30))
        assert result == WindowClassification.FITS

    @pytest.mark.parametrize("start,end", [
        (utc(2025, 3, 3, 1), utc(2025, 3, 3, 1)),
        (utc(2025, 3, 3, 2), utc(2025, 3, 3, 1)),
    ])
    def test_empty_candidate_raises(self, start, end):
        with pytest.raises(InvalidRangeError):
            WindowClassifier.classify([MORNING], start, end)

    def test_shrinking_a_fitting_candidate_still_fits(self):
        start, end = utc(2025, 3, 2, 22), utc(2025, 3, 3, 1)
        for minutes in range(0, 90, 15):
            inner_start = start + timedelta(minutes=minutes)
            inner_end = end - timedelta(minutes=minutes)
            assert WindowClassifier.classify([MORNING], inner_start, inner_end) == WindowClassification.FITS

    def test_widening_a_candidate_never_makes_it_fit(self):
        start = utc(2025, 3, 3, 0, 30)
        previous = WindowClassifier.classify([MORNING], start, utc(2025, 3, 3, 1, 30))
        assert previous == WindowClassification.PARTIAL
        for minutes in (30, 60, 120, 240):
            widened = WindowClassifier.classify(
                [MORNING], start - timedelta(minutes=minutes), utc(2025, 3, 3, 1, 30) + timedelta(minutes=minutes)
            )
            assert widened.score <= previous.score
            previous = widened


class TestEarliestOpening:
    """Test the earliest start where a duration fits."""

    def test_earliest_start_inside_window(self):
        ranges = [
            SlotRange(start_utc=utc(2025, 3, 2, 22), end_utc=utc(2025, 3, 2, 22, 20)),
            SlotRange(start_utc=utc(2025, 3, 2, 23), end_utc=utc(2025, 3, 3, 1)),
        ]
        result = WindowClassifier.earliest_opening(ranges, utc(2025, 3, 2, 21), utc(2025, 3, 3, 2), 30)
        assert result == utc(2025, 3, 2, 23)

    def test_ranges_are_clipped_to_window(self):
        result = WindowClassifier.earliest_opening([MORNING], utc(2025, 3, 2, 23), utc(2025, 3, 3, 2), 60)
        assert result == utc(2025, 3, 2, 23)

    def test_nothing_long_enough_returns_none(self):
        result = WindowClassifier.earliest_opening([MORNING], utc(2025, 3, 3, 0, 30), utc(2025, 3, 3, 2), 60)
        assert result is None
