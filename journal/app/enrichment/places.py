"""Attach place names to the album, its days and its photos.

Anchors (the album coordinate and every day coordinate) are looked up first.
Photos close to their day's anchor take its name for free; the rest are
looked up one at a time, within a per-day budget, each successful lookup
naming every other pending photo in its vicinity.
"""

import asyncio
import logging
from collections.abc import Sequence

from .config import EnrichmentSettings, ResolutionOrder
from .coordinates import haversine_km
from .geocoding import GeocodeCache, coordinate_key
from .records import (
    Coordinate,
    CoordinatePlan,
    CoordinateSource,
    DayCoordinate,
    DayGroup,
    PhotoRecord,
    PlaceNames,
)

logger = logging.getLogger(__name__)


class PlaceNameResolver:
    def __init__(self, cache: GeocodeCache, settings: EnrichmentSettings) -> None:
        self.cache = cache
        self.settings = settings

    async def resolve(
        self,
        groups: Sequence[DayGroup],
        plan: CoordinatePlan,
        names: PlaceNames,
    ) -> None:
        """Fill ``names`` for the album, each day and each photo.

        ``names`` is updated as results come in, so whatever was resolved
        before a cancellation is kept by the caller.
        """
        await self.resolve_anchors(plan, names)
        async with asyncio.TaskGroup() as tg:
            for group, day in zip(groups, plan.days, strict=True):
                tg.create_task(self.resolve_day(group, day, plan, names))

    async def resolve_anchors(self, plan: CoordinatePlan, names: PlaceNames) -> None:
        """Look up the album coordinate and every distinct day coordinate."""
        anchors: dict[str, Coordinate] = {coordinate_key(plan.album): plan.album}
        for day in plan.days:
            anchors.setdefault(coordinate_key(day.coordinate), day.coordinate)
        logger.info('Resolving %d anchor coordinates', len(anchors))

        async with asyncio.TaskGroup() as tg:
            for coordinate in anchors.values():
                tg.create_task(self.cache.resolve(coordinate))

        album = self.cache.peek(plan.album)
        if album is not None and album.name is not None:
            names.album = album.name
        for day in plan.days:
            result = self.cache.peek(day.coordinate)
            if result is not None and result.name is not None:
                names.days[day.date] = result.name

    def _candidates(
        self, group: DayGroup, plan: CoordinatePlan
    ) -> list[tuple[PhotoRecord, Coordinate]]:
        """Photos of the day that still need a name, with the coordinate to use."""
        candidates: list[tuple[PhotoRecord, Coordinate]] = []
        for photo in group.photos:
            if photo.location_name is not None:
                continue
            resolved = plan.photos[photo.id]
            if (
                self.settings.resolution_order == ResolutionOrder.BEFORE_BACKFILL
                and resolved.source != CoordinateSource.NATIVE
            ):
                continue
            candidates.append((photo, resolved.coordinate))
        return candidates

    def _is_near(self, a: Coordinate, b: Coordinate) -> bool:
        return haversine_km(a, b) < self.settings.proximity_km

    async def resolve_day(
        self,
        group: DayGroup,
        day: DayCoordinate,
        plan: CoordinatePlan,
        names: PlaceNames,
    ) -> None:
        """Name the photos of one day."""
        pending = self._candidates(group, plan)

        anchor_name = names.days.get(day.date)
        if anchor_name is not None:
            remaining: list[tuple[PhotoRecord, Coordinate]] = []
            for photo, coordinate in pending:
                if self._is_near(coordinate, day.coordinate):
                    names.photos[photo.id] = anchor_name
                else:
                    remaining.append((photo, coordinate))
            pending = remaining

        attempts = 0
        while pending and attempts < self.settings.max_lookups_per_day:
            photo, coordinate = pending.pop(0)
            # Cells already settled this run cost no attempt.
            result = self.cache.peek(coordinate)
            if result is None:
                attempts += 1
                result = await self.cache.resolve(coordinate)
            if result.name is None:
                # Not retried: the cache would give the same answer.
                continue
            names.photos[photo.id] = result.name
            remaining = []
            for other, other_coordinate in pending:
                if self._is_near(other_coordinate, coordinate):
                    names.photos[other.id] = result.name
                else:
                    remaining.append((other, other_coordinate))
            pending = remaining

        if pending:
            logger.info(
                '%s: lookup budget spent, %d photos left without a place name',
                day.date.isoformat(),
                len(pending),
            )

        if self.settings.resolution_order == ResolutionOrder.BEFORE_BACKFILL:
            self._copy_to_backfilled(group, plan, names)

    def _copy_to_backfilled(
        self, group: DayGroup, plan: CoordinatePlan, names: PlaceNames
    ) -> None:
        """Give backfilled photos the name of wherever their coordinate came from."""
        own_names = {p.id: p.location_name for p in group.photos}
        for photo in group.photos:
            if photo.location_name is not None:
                continue
            resolved = plan.photos[photo.id]
            name: str | None
            if resolved.source == CoordinateSource.NEAREST_PHOTO:
                assert resolved.source_photo_id is not None
                name = names.photos.get(resolved.source_photo_id) or own_names.get(
                    resolved.source_photo_id
                )
            elif resolved.source == CoordinateSource.DAY:
                name = names.days.get(group.date)
            else:
                continue
            if name is not None:
                names.photos[photo.id] = name
