"""Data passed between the stages of the enrichment pipeline.

Stages never mutate their inputs: each one reads the records produced by the
stages before it and returns new ones.
"""

import dataclasses
import datetime
import enum


class InvalidBatchError(ValueError):
    """A photo batch that cannot be enriched at all (e.g. no album id)."""


@dataclasses.dataclass(frozen=True)
class Coordinate:
    """A decimal latitude/longitude pair."""

    latitude: float
    longitude: float


@dataclasses.dataclass(frozen=True)
class PhotoRecord:
    """Metadata of one uploaded photo relevant to enrichment."""

    id: int
    timestamp: datetime.datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None
    day_title: str | None = None

    @property
    def native_coordinate(self) -> Coordinate | None:
        """The coordinate read from the photo's own metadata, if any."""
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)


@dataclasses.dataclass(frozen=True)
class ExistingDay:
    """The persisted state of a day entry before this run."""

    date: datetime.date
    title: str | None = None
    location_name: str | None = None
    title_locked: bool = False


@dataclasses.dataclass(frozen=True)
class PhotoBatch:
    """All photos of one album, plus the day entries already persisted."""

    album_id: int | None
    photos: tuple[PhotoRecord, ...]
    existing_days: dict[datetime.date, ExistingDay] = dataclasses.field(
        default_factory=dict
    )


@dataclasses.dataclass(frozen=True)
class DayGroup:
    """Photos taken on one calendar date, in chronological order."""

    date: datetime.date
    photos: tuple[PhotoRecord, ...]


class CoordinateSource(enum.StrEnum):
    """Where a photo's resolved coordinate came from."""

    NATIVE = 'native'
    NEAREST_PHOTO = 'nearest_photo'
    DAY = 'day'


@dataclasses.dataclass(frozen=True)
class PhotoCoordinate:
    coordinate: Coordinate
    source: CoordinateSource
    source_photo_id: int | None = None


@dataclasses.dataclass(frozen=True)
class DayCoordinate:
    date: datetime.date
    coordinate: Coordinate
    cover_photo_id: int
    # None when the day had no native coordinate and fell back to the album's.
    source_photo_id: int | None = None


@dataclasses.dataclass(frozen=True)
class CoordinatePlan:
    """Output of the coordinate resolver for one album."""

    album: Coordinate
    album_source_photo_id: int | None
    days: tuple[DayCoordinate, ...]
    photos: dict[int, PhotoCoordinate]


@dataclasses.dataclass
class PlaceNames:
    """Place names resolved so far during a run.

    Filled in incrementally by the place-name resolver so that a run cut short
    by a timeout or a cancellation can still persist what it already has.
    """

    album: str | None = None
    days: dict[datetime.date, str] = dataclasses.field(default_factory=dict)
    photos: dict[int, str] = dataclasses.field(default_factory=dict)
    partial: bool = False


@dataclasses.dataclass
class DayEntryDraft:
    """A day entry ready to be upserted."""

    date: datetime.date
    latitude: float
    longitude: float
    cover_photo_id: int
    location_name: str | None = None
    title: str | None = None
    title_locked: bool = False


@dataclasses.dataclass(frozen=True)
class EnrichedPhoto:
    """A photo after enrichment; only fields that were empty on entry change."""

    id: int
    timestamp: datetime.datetime
    latitude: float
    longitude: float
    location_name: str | None
    day_title: str | None
    coordinate_inferred: bool


@dataclasses.dataclass(frozen=True)
class EnrichmentResult:
    album_id: int
    album_coordinate: Coordinate
    album_location_name: str | None
    days: tuple[DayEntryDraft, ...]
    photos: tuple[EnrichedPhoto, ...]
    lookups: int = 0
    unresolved_lookups: int = 0
    partial: bool = False
