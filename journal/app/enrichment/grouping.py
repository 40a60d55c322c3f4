"""Partition an album's photos into calendar days."""

import datetime
import logging
from collections.abc import Iterable

from .records import DayGroup, PhotoRecord

logger = logging.getLogger(__name__)


def day_key(timestamp: datetime.datetime) -> datetime.date:
    """Return the calendar date of a timestamp.

    The timestamp is truncated as-is: an aware timestamp keeps its own offset
    and no conversion to UTC or to the server's zone takes place.
    """
    return timestamp.date()


def wall_clock(timestamp: datetime.datetime) -> datetime.datetime:
    """Return the timestamp's local wall-clock time, without its offset.

    Used for ordering and for time gaps, so that an album mixing aware and
    naive timestamps compares each one in its own frame, like ``day_key``.
    """
    return timestamp.replace(tzinfo=None)


def group_by_day(photos: Iterable[PhotoRecord]) -> list[DayGroup]:
    """Group timestamped photos by date, both levels sorted ascending.

    Photos without a timestamp are left out. Photos sharing a timestamp keep
    their input order.
    """
    by_day: dict[datetime.date, list[PhotoRecord]] = {}
    skipped = 0
    for photo in photos:
        if photo.timestamp is None:
            skipped += 1
            continue
        by_day.setdefault(day_key(photo.timestamp), []).append(photo)

    if skipped:
        logger.debug('Ignoring %d photos without a timestamp', skipped)

    groups: list[DayGroup] = []
    for date in sorted(by_day):
        day_photos = sorted(by_day[date], key=_timestamp)
        groups.append(DayGroup(date=date, photos=tuple(day_photos)))
    return groups


def _timestamp(photo: PhotoRecord) -> datetime.datetime:
    assert photo.timestamp is not None
    return wall_clock(photo.timestamp)
