"""Tunable parameters of the metadata enrichment pipeline."""

import enum
import os
from collections.abc import Mapping

import pydantic

# Nantes, France: used when no photo of an album carries GPS data.
DEFAULT_LATITUDE = 47.218371
DEFAULT_LONGITUDE = -1.553621


class ResolutionOrder(enum.StrEnum):
    """Which photo coordinates take part in place-name resolution."""

    # Every timestamped photo, using native or backfilled coordinates.
    AFTER_BACKFILL = 'after_backfill'
    # Only natively geolocated photos; backfilled photos copy a name afterwards.
    BEFORE_BACKFILL = 'before_backfill'


class EnrichmentSettings(pydantic.BaseModel):
    """Settings for one enrichment run.

    ``proximity_km`` is the distance under which a photo takes the place name
    of an already named neighbour or day anchor.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    default_latitude: float = pydantic.Field(DEFAULT_LATITUDE, ge=-90, le=90)
    default_longitude: float = pydantic.Field(DEFAULT_LONGITUDE, ge=-180, le=180)
    proximity_km: float = pydantic.Field(2.0, gt=0)
    resolution_order: ResolutionOrder = ResolutionOrder.AFTER_BACKFILL
    max_lookups_per_day: int = pydantic.Field(5, ge=0)

    geocode_url: str = 'https://nominatim.openstreetmap.org/reverse'
    geocode_zoom: int = pydantic.Field(14, ge=0, le=18)
    geocode_timeout: float = pydantic.Field(8.0, gt=0)
    geocode_concurrency: int = pydantic.Field(5, ge=1)
    geocode_min_interval: float = pydantic.Field(0.2, ge=0)
    user_agent: str = 'PhotoJournal/1.0'

    run_timeout: float = pydantic.Field(60.0, gt=0)
    extract_concurrency: int = pydantic.Field(5, ge=1)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> 'EnrichmentSettings':
        """Build settings from ``JOURNAL_*`` environment variables.

        Unset variables keep their defaults; malformed ones raise
        ``pydantic.ValidationError``.
        """
        if environ is None:
            environ = os.environ
        values: dict[str, str] = {}
        for name in cls.model_fields:
            raw = environ.get(f'JOURNAL_{name.upper()}')
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
