"""
Provider suggestion service for multi-provider booking.

Runs the availability pipeline for every active provider with the requested
skill and ranks them for a candidate window.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from core.config import SUGGESTION_MAX_RANGE_DAYS
from core.exceptions import InvalidRangeError, ScheduleNotFoundError
from services.availability_service import AvailabilityService
from services.availability_store import AvailabilityStore
from services.recurrence_expander import validate_range
from services.window_classifier import WindowClassifier
from shared_types.availability import ProviderSuggestion, SlotRange, WindowClassification
from utils.datetime_utils import minutes_between
from utils.intervals import clip_interval, total_minutes

logger = logging.getLogger(__name__)


class ProviderSuggester:
    """Ranks providers for a skill/duration/window query."""

    @staticmethod
    def _free_minutes_in_window(ranges: List[SlotRange], from_utc: datetime, to_utc: datetime) -> float:
        # Ranges of different chairs may run in parallel; count wall-clock time once
        clipped = (clip_interval(r, from_utc, to_utc) for r in ranges)
        return total_minutes(c for c in clipped if c is not None)

    @staticmethod
    def suggest_providers(
        store: AvailabilityStore,
        skill: str,
        from_utc: datetime,
        to_utc: datetime,
        duration_min: Optional[int] = None,
        only_fits: bool = False,
        allow_partial: bool = True,
        include_unavailable: bool = False,
    ) -> List[ProviderSuggestion]:
        """
        Suggest providers able to take a booking in [from_utc, to_utc).

        With `duration_min` equal to the window length (or omitted) the whole
        window must be free. With a shorter duration any opening of that length
        inside the window counts as a fit, and the earliest one is reported.

        Ordering: Fits before Partial before Unavailable, then more free
        minutes inside the window, then provider id.

        Args:
            store: Availability store
            skill: Skill/treatment identifier
            from_utc: Window start
            to_utc: Window end
            duration_min: Appointment length in minutes
            only_fits: Return Fits only
            allow_partial: Keep Partial results (ignored when only_fits)
            include_unavailable: Keep Unavailable results

        Returns:
            Ranked suggestions

        Raises:
            InvalidRangeError: If the window is empty, too long, or shorter than the duration
            TimezoneResolutionError: If a candidate provider has an invalid zone
        """
        from_utc, to_utc = validate_range(from_utc, to_utc)
        if to_utc - from_utc > timedelta(days=SUGGESTION_MAX_RANGE_DAYS):
            raise InvalidRangeError(f"Suggestion window cannot exceed {SUGGESTION_MAX_RANGE_DAYS} days")

        window_minutes = minutes_between(from_utc, to_utc)
        if duration_min is None:
            duration_min = int(window_minutes)
        if duration_min <= 0:
            raise InvalidRangeError("Duration must be positive")
        if duration_min > window_minutes:
            raise InvalidRangeError(
                f"Duration {duration_min} min does not fit in a {window_minutes:.0f} min window"
            )

        suggestions: List[ProviderSuggestion] = []
        for provider in store.list_providers(skill=skill, active_only=True):
            try:
                ranges = AvailabilityService.compute_availability(
                    store, provider.id, from_utc, to_utc, provider=provider
                )
            except ScheduleNotFoundError:
                logger.warning(f"Provider {provider.id} has no schedule in range; treating as unavailable")
                ranges = []

            earliest = WindowClassifier.earliest_opening(ranges, from_utc, to_utc, duration_min)
            if earliest is not None:
                classification = WindowClassification.FITS
            elif any(max(r.start_utc, from_utc) < min(r.end_utc, to_utc) for r in ranges):
                classification = WindowClassification.PARTIAL
            else:
                classification = WindowClassification.UNAVAILABLE

            suggestions.append(ProviderSuggestion(
                provider=provider,
                classification=classification,
                free_minutes=ProviderSuggester._free_minutes_in_window(ranges, from_utc, to_utc),
                score=classification.score,
                earliest_start=earliest,
            ))

        suggestions = [
            s for s in suggestions
            if ProviderSuggester._keep(s.classification, only_fits, allow_partial, include_unavailable)
        ]
        suggestions.sort(key=lambda s: (-s.score, -s.free_minutes, s.provider.id))

        logger.info(
            f"Suggested {len(suggestions)} providers for skill '{skill}' "
            f"{from_utc.isoformat()} - {to_utc.isoformat()}"
        )
        return suggestions

    @staticmethod
    def _keep(
        classification: WindowClassification,
        only_fits: bool,
        allow_partial: bool,
        include_unavailable: bool,
    ) -> bool:
        if classification == WindowClassification.FITS:
            return True
        if only_fits:
            return False
        if classification == WindowClassification.PARTIAL:
            return allow_partial
        return include_unavailable
