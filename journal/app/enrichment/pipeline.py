"""Metadata enrichment pipeline for one album.

Stages run strictly in order: day grouping, coordinate resolution, place-name
resolution, day aggregation and titling. Only the place-name stage touches the
network; everything else is plain computation over the batch.
"""

import asyncio
import dataclasses
import logging

from . import coordinates, days, grouping, titles
from .config import EnrichmentSettings
from .geocoding import GeocodeCache
from .places import PlaceNameResolver
from .records import (
    Coordinate,
    CoordinatePlan,
    DayGroup,
    EnrichmentResult,
    InvalidBatchError,
    PhotoBatch,
    PlaceNames,
)

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class EnrichmentPlan:
    """Everything computed before the first network call."""

    batch: PhotoBatch
    groups: tuple[DayGroup, ...]
    coordinates: CoordinatePlan | None

    @property
    def album_id(self) -> int:
        assert self.batch.album_id is not None
        return self.batch.album_id

    @property
    def is_empty(self) -> bool:
        return not self.groups


class EnrichmentPipeline:
    """Runs the enrichment stages against one shared geocode cache."""

    def __init__(self, settings: EnrichmentSettings, cache: GeocodeCache) -> None:
        self.settings = settings
        self.cache = cache
        self.places = PlaceNameResolver(cache, settings)

    @property
    def default_coordinate(self) -> Coordinate:
        return Coordinate(
            self.settings.default_latitude, self.settings.default_longitude
        )

    def plan(self, batch: PhotoBatch) -> EnrichmentPlan:
        """Validate the batch, group it by day and resolve its coordinates.

        Raises:
            InvalidBatchError: the batch has no album id.
        """
        if batch.album_id is None:
            raise InvalidBatchError('album_id is required')
        groups = tuple(grouping.group_by_day(batch.photos))
        if not groups:
            logger.info('Album %s has no timestamped photos', batch.album_id)
            return EnrichmentPlan(batch=batch, groups=groups, coordinates=None)
        logger.info(
            'Album %s: %d photos over %d days',
            batch.album_id,
            sum(len(g.photos) for g in groups),
            len(groups),
        )
        plan = coordinates.resolve_coordinates(groups, self.default_coordinate)
        return EnrichmentPlan(batch=batch, groups=groups, coordinates=plan)

    async def resolve_names(self, plan: EnrichmentPlan, names: PlaceNames) -> None:
        """Run the place-name stage within the run's time budget.

        Running out of time is not an error: lookups still in flight are
        dropped and ``names`` is flagged partial. Cancellation propagates, with
        ``names`` keeping whatever was resolved before it.
        """
        if plan.coordinates is None:
            return
        try:
            async with asyncio.timeout(self.settings.run_timeout):
                await self.places.resolve(plan.groups, plan.coordinates, names)
        except TimeoutError:
            names.partial = True
            logger.warning(
                'Album %s: geocoding stopped after %.0fs, keeping partial results',
                plan.album_id,
                self.settings.run_timeout,
            )
        except asyncio.CancelledError:
            names.partial = True
            raise
        finally:
            await self.cache.abandon()

    def assemble(self, plan: EnrichmentPlan, names: PlaceNames) -> EnrichmentResult:
        """Build the titled day entries and the enriched photos."""
        if plan.coordinates is None:
            return EnrichmentResult(
                album_id=plan.album_id,
                album_coordinate=self.default_coordinate,
                album_location_name=None,
                days=(),
                photos=(),
            )
        drafts = days.aggregate_days(
            plan.coordinates, names, plan.batch.existing_days
        )
        titles.assign_titles(drafts)
        photos = days.enrich_photos(plan.groups, plan.coordinates, names, drafts)
        return EnrichmentResult(
            album_id=plan.album_id,
            album_coordinate=plan.coordinates.album,
            album_location_name=names.album,
            days=tuple(drafts),
            photos=tuple(photos),
            lookups=self.cache.requests,
            unresolved_lookups=self.cache.failures,
            partial=names.partial,
        )

    async def run(self, batch: PhotoBatch) -> EnrichmentResult:
        """Enrich a batch end to end without persisting anything."""
        plan = self.plan(batch)
        names = PlaceNames()
        await self.resolve_names(plan, names)
        return self.assemble(plan, names)
