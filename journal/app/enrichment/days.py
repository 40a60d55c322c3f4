"""Assemble day entries and enriched photos from the earlier stages."""

import datetime
from collections.abc import Mapping, Sequence

from .records import (
    CoordinatePlan,
    CoordinateSource,
    DayEntryDraft,
    DayGroup,
    EnrichedPhoto,
    ExistingDay,
    PlaceNames,
)


def aggregate_days(
    plan: CoordinatePlan,
    names: PlaceNames,
    existing: Mapping[datetime.date, ExistingDay],
) -> list[DayEntryDraft]:
    """Build one untitled draft per day, in date order.

    A day whose anchor could not be named keeps the name it already had, and
    a locked title is carried over untouched.
    """
    drafts: list[DayEntryDraft] = []
    for day in plan.days:
        previous = existing.get(day.date)
        location_name = names.days.get(day.date)
        if location_name is None and previous is not None:
            location_name = previous.location_name
        locked = previous is not None and previous.title_locked
        drafts.append(
            DayEntryDraft(
                date=day.date,
                latitude=day.coordinate.latitude,
                longitude=day.coordinate.longitude,
                cover_photo_id=day.cover_photo_id,
                location_name=location_name,
                title=previous.title if locked else None,
                title_locked=locked,
            )
        )
    return drafts


def enrich_photos(
    groups: Sequence[DayGroup],
    plan: CoordinatePlan,
    names: PlaceNames,
    days: Sequence[DayEntryDraft],
) -> list[EnrichedPhoto]:
    """Merge resolved coordinates, names and day titles into the photos."""
    titles = {day.date: day.title for day in days}
    enriched: list[EnrichedPhoto] = []
    for group in groups:
        for photo in group.photos:
            assert photo.timestamp is not None
            resolved = plan.photos[photo.id]
            enriched.append(
                EnrichedPhoto(
                    id=photo.id,
                    timestamp=photo.timestamp,
                    latitude=resolved.coordinate.latitude,
                    longitude=resolved.coordinate.longitude,
                    location_name=photo.location_name or names.photos.get(photo.id),
                    day_title=titles.get(group.date),
                    coordinate_inferred=resolved.source != CoordinateSource.NATIVE,
                )
            )
    return enriched
