"""
Helpers shared by the trip routers: date parsing, day normalisation and
role resolution.
"""

import math
from datetime import datetime, timezone
from typing import Sequence

from app.core.errors import InvalidInput
from app.core.schemas import Trip, TripDay, TripDayInput, TripRole


def parse_iso_datetime(value: str | datetime) -> datetime:
    """
    Parse an ISO-8601 date or datetime string.

    Naive values are treated as UTC so that days always compare cleanly.

    Raises:
        InvalidInput: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = (value or "").strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInput("Invalid date")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_date(value: str | None) -> datetime | None:
    if not value:
        return None
    return parse_iso_datetime(value)


def normalize_days(days: Sequence[TripDayInput | TripDay]) -> list[TripDay]:
    """
    Convert incoming days into stored days.

    Days are sorted by date ascending (stable for equal dates) and dayIndex is
    reassigned to the sorted position, so indices are always 0..n-1.
    """
    parsed: list[TripDay] = []
    for day in days:
        parsed.append(
            TripDay(
                id=getattr(day, "id", None),
                day_index=0,
                date=parse_iso_datetime(day.date),
                items=[item.model_copy(deep=True) for item in day.items],
                route=day.route.model_copy() if day.route else None,
            )
        )

    parsed.sort(key=lambda d: d.date)
    for idx, day in enumerate(parsed):
        day.day_index = idx
    return parsed


def get_user_role(trip: Trip, user_id: str) -> TripRole | None:
    if trip.owner_user_id == user_id:
        return "owner"
    for collaborator in trip.collaborators:
        if collaborator.user_id == user_id:
            return collaborator.role
    return None


def can_edit(role: TripRole | None) -> bool:
    return role in ("owner", "editor")


def itinerary_day_count(trip: Trip) -> int:
    """Inclusive day span when both dates are set, else at least 3 days."""
    if trip.start_date and trip.end_date:
        start = parse_iso_datetime(trip.start_date)
        end = parse_iso_datetime(trip.end_date)
        span_days = (end - start).total_seconds() / 86400
        return max(1, math.ceil(span_days) + 1)
    return max(len(trip.days), 3)
