"""Day title formatting: "J3, mardi 15 juillet, Kérel, Bangor"."""

import datetime
from collections.abc import MutableSequence

from .records import DayEntryDraft

# Indexed by day of week with Sunday first, matching the journal's convention.
WEEKDAYS = (
    'dimanche',
    'lundi',
    'mardi',
    'mercredi',
    'jeudi',
    'vendredi',
    'samedi',
)
MONTHS = (
    'janvier',
    'février',
    'mars',
    'avril',
    'mai',
    'juin',
    'juillet',
    'août',
    'septembre',
    'octobre',
    'novembre',
    'décembre',
)


def format_day_title(
    day_index: int, date: datetime.date, location_name: str | None = None
) -> str:
    """Format the title of the ``day_index``-th day (1-based) of an album."""
    # date.weekday() counts from Monday; shift so that Sunday is 0.
    weekday = WEEKDAYS[(date.weekday() + 1) % 7]
    title = f'J{day_index}, {weekday} {date.day} {MONTHS[date.month - 1]}'
    if location_name:
        title = f'{title}, {location_name}'
    return title


def assign_titles(days: MutableSequence[DayEntryDraft]) -> None:
    """Title every day of an album in place, skipping locked titles.

    ``days`` must hold every day of the album in ascending date order, since
    the day index is the position in that list.
    """
    for index, day in enumerate(days, start=1):
        if day.title_locked:
            continue
        day.title = format_day_title(index, day.date, day.location_name)
