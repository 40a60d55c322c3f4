"""Loading, enriching and saving album metadata."""

import asyncio
import datetime
import itertools
import logging
from collections.abc import Sequence
from datetime import UTC

import pydantic
import sqlalchemy.exc
from sqlmodel import Session, SQLModel, select

from ..enrichment import titles
from ..enrichment.exif import ExifData
from ..enrichment.pipeline import EnrichmentPipeline
from ..enrichment.records import (
    Coordinate,
    DayEntryDraft,
    EnrichedPhoto,
    EnrichmentResult,
    ExistingDay,
    InvalidBatchError,
    PhotoBatch,
    PhotoRecord,
    PlaceNames,
)
from .models import Album, DayEntry, GeocodeCacheEntry, Photo

logger = logging.getLogger(__name__)


class AlbumNotFoundError(InvalidBatchError):
    """The requested album does not exist."""


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class WriteFailure(pydantic.BaseModel):
    """One row that could not be saved."""

    kind: str
    item_id: int | str | None
    error: str


class WriteReport(pydantic.BaseModel):
    """Outcome of a batch of independent row writes."""

    photos_updated: int = 0
    days_updated: int = 0
    failures: list[WriteFailure] = pydantic.Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


class EnrichmentReport(pydantic.BaseModel):
    """What an enrichment run did, for the caller to summarise."""

    album_id: int
    photos_total: int
    days_total: int
    photos_updated: int
    days_updated: int
    failed_writes: int
    failures: list[WriteFailure]
    lookups: int
    unresolved_lookups: int
    partial: bool
    message: str

    @classmethod
    def from_result(
        cls, result: EnrichmentResult, writes: WriteReport
    ) -> 'EnrichmentReport':
        return cls(
            album_id=result.album_id,
            photos_total=len(result.photos),
            days_total=len(result.days),
            photos_updated=writes.photos_updated,
            days_updated=writes.days_updated,
            failed_writes=writes.failed,
            failures=writes.failures,
            lookups=result.lookups,
            unresolved_lookups=result.unresolved_lookups,
            partial=result.partial,
            message=(
                f'{writes.photos_updated} photos and '
                f'{writes.days_updated} days updated'
            ),
        )


def _commit(
    session: Session,
    row: SQLModel,
    report: WriteReport,
    kind: str,
    item_id: int | str | None,
) -> bool:
    """Commit one row on its own; a failure is recorded, rolled back and skipped."""
    try:
        session.add(row)
        session.commit()
    except sqlalchemy.exc.SQLAlchemyError as exc:
        session.rollback()
        logger.error('Failed to save %s %s: %s', kind, item_id, exc)
        report.failures.append(WriteFailure(kind=kind, item_id=item_id, error=str(exc)))
        return False
    return True


# ---------------------------------------------------------------------------
# Geocode cache persistence
# ---------------------------------------------------------------------------


class SqlGeocodeStore:
    """Keeps resolved place names across runs in the journal database."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str) -> str | None:
        try:
            entry = self.session.get(GeocodeCacheEntry, key)
        except sqlalchemy.exc.SQLAlchemyError as exc:
            # Treated as a miss: the cell is looked up over the network.
            self.session.rollback()
            logger.warning('Could not read geocode cache entry %s: %s', key, exc)
            return None
        return entry.name if entry else None

    def put(self, key: str, coordinate: Coordinate, name: str) -> None:
        entry = self.session.get(GeocodeCacheEntry, key)
        if entry is None:
            entry = GeocodeCacheEntry(
                key=key,
                latitude=coordinate.latitude,
                longitude=coordinate.longitude,
                name=name,
            )
        else:
            entry.name = name
            entry.fetched_at = datetime.datetime.now(UTC)
        try:
            self.session.add(entry)
            self.session.commit()
        except sqlalchemy.exc.SQLAlchemyError as exc:
            # The in-memory cache still has the name for this run.
            self.session.rollback()
            logger.warning('Could not persist geocode cache entry %s: %s', key, exc)


# ---------------------------------------------------------------------------
# Albums and photos
# ---------------------------------------------------------------------------


def create_album(
    session: Session, title: str, description: str | None = None
) -> Album:
    """Create a new album."""
    album = Album(title=title, description=description)
    session.add(album)
    session.commit()
    session.refresh(album)
    return album


def get_album(session: Session, album_id: int) -> Album:
    """Return an album or raise AlbumNotFoundError."""
    album = session.get(Album, album_id)
    if album is None:
        raise AlbumNotFoundError(f'Album {album_id} not found')
    return album


def get_album_photos(session: Session, album_id: int) -> list[Photo]:
    """Return the album's photos, oldest first, undated ones last."""
    statement = (
        select(Photo)
        .where(Photo.album_id == album_id)
        .order_by(
            Photo.taken_at.asc().nulls_last(),  # type: ignore[union-attr]
            Photo.id,  # type: ignore[arg-type]
        )
    )
    return list(session.exec(statement).all())


def get_day_entries(session: Session, album_id: int) -> list[DayEntry]:
    """Return the album's day entries in date order."""
    statement = (
        select(DayEntry)
        .where(DayEntry.album_id == album_id)
        .order_by(DayEntry.date)  # type: ignore[arg-type]
    )
    return list(session.exec(statement).all())


def register_photos(
    session: Session,
    album_id: int,
    uploads: Sequence[tuple[str, ExifData]],
) -> list[Photo]:
    """Record the metadata of freshly uploaded files."""
    get_album(session, album_id)
    photos = [
        Photo(
            album_id=album_id,
            filename=filename,
            taken_at=exif.timestamp,
            latitude=exif.latitude,
            longitude=exif.longitude,
        )
        for filename, exif in uploads
    ]
    session.add_all(photos)
    session.commit()
    for photo in photos:
        session.refresh(photo)
    return photos


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


def load_batch(session: Session, album_id: int | None) -> PhotoBatch:
    """Read an album's photos and existing day entries for the pipeline.

    Coordinates filled in by an earlier run are handed over as missing, so
    they are recomputed from the native ones instead of being mistaken for
    GPS data.
    """
    if album_id is None:
        raise InvalidBatchError('album_id is required')
    get_album(session, album_id)

    records: list[PhotoRecord] = []
    for photo in get_album_photos(session, album_id):
        assert photo.id is not None
        native = not photo.coordinate_inferred
        records.append(
            PhotoRecord(
                id=photo.id,
                timestamp=photo.taken_at,
                latitude=photo.latitude if native else None,
                longitude=photo.longitude if native else None,
                location_name=photo.location_name,
                day_title=photo.day_title,
            )
        )
    existing = {
        entry.date: ExistingDay(
            date=entry.date,
            title=entry.title,
            location_name=entry.location_name,
            title_locked=entry.title_locked,
        )
        for entry in get_day_entries(session, album_id)
    }
    return PhotoBatch(album_id=album_id, photos=tuple(records), existing_days=existing)


def _update_photo(photo: Photo, enriched: EnrichedPhoto) -> bool:
    """Copy enrichment onto a photo row; return whether anything changed."""
    changed = False
    if photo.latitude is None or photo.longitude is None or photo.coordinate_inferred:
        new = (enriched.latitude, enriched.longitude, enriched.coordinate_inferred)
        if (photo.latitude, photo.longitude, photo.coordinate_inferred) != new:
            photo.latitude, photo.longitude, photo.coordinate_inferred = new
            changed = True
    if photo.location_name is None and enriched.location_name is not None:
        photo.location_name = enriched.location_name
        changed = True
    if photo.day_title != enriched.day_title:
        photo.day_title = enriched.day_title
        changed = True
    return changed


def _update_day(entry: DayEntry, draft: DayEntryDraft) -> bool:
    """Copy the fields enrichment owns onto a day entry."""
    values: dict[str, object] = {
        'latitude': draft.latitude,
        'longitude': draft.longitude,
        'cover_photo_id': draft.cover_photo_id,
    }
    if draft.location_name is not None:
        values['location_name'] = draft.location_name
    if not entry.title_locked:
        values['title'] = draft.title
    changed = False
    for field, value in values.items():
        if getattr(entry, field) != value:
            setattr(entry, field, value)
            changed = True
    if changed:
        entry.updated_at = datetime.datetime.now(UTC)
    return changed


def apply_result(session: Session, result: EnrichmentResult) -> WriteReport:
    """Save an enrichment result, one row at a time.

    Photos that were not modified are not written. A row that fails to save
    does not stop the others.
    """
    report = WriteReport()
    photos = {p.id: p for p in get_album_photos(session, result.album_id)}
    for enriched in result.photos:
        photo = photos.get(enriched.id)
        if photo is None:
            report.failures.append(
                WriteFailure(kind='photo', item_id=enriched.id, error='not found')
            )
            continue
        if _update_photo(photo, enriched) and _commit(
            session, photo, report, 'photo', enriched.id
        ):
            report.photos_updated += 1

    entries = {e.date: e for e in get_day_entries(session, result.album_id)}
    for draft in result.days:
        entry = entries.get(draft.date)
        if entry is None:
            entry = DayEntry(
                album_id=result.album_id,
                date=draft.date,
                latitude=draft.latitude,
                longitude=draft.longitude,
            )
            _update_day(entry, draft)
        elif not _update_day(entry, draft):
            continue
        if _commit(session, entry, report, 'day', draft.date.isoformat()):
            report.days_updated += 1

    logger.info(
        'Album %s: %d photos and %d days saved, %d failures',
        result.album_id,
        report.photos_updated,
        report.days_updated,
        report.failed,
    )
    return report


async def enrich_album(
    session: Session, album_id: int | None, pipeline: EnrichmentPipeline
) -> EnrichmentReport:
    """Run the enrichment pipeline over a stored album and save the outcome.

    Raises:
        InvalidBatchError: ``album_id`` is missing.
        AlbumNotFoundError: no album has that id.
    """
    batch = load_batch(session, album_id)
    plan = pipeline.plan(batch)
    names = PlaceNames()
    try:
        await pipeline.resolve_names(plan, names)
    except asyncio.CancelledError:
        logger.warning('Album %s: run cancelled, saving partial results', album_id)
        apply_result(session, pipeline.assemble(plan, names))
        raise
    result = pipeline.assemble(plan, names)
    return EnrichmentReport.from_result(result, apply_result(session, result))


def recompute_day_titles(session: Session, album_id: int | None = None) -> WriteReport:
    """Regenerate day titles from the stored dates and place names.

    Covers every album unless ``album_id`` is given. Locked titles are left
    alone, but still count towards the numbering of the following days.
    """
    statement = select(DayEntry).order_by(
        DayEntry.album_id,  # type: ignore[arg-type]
        DayEntry.date,  # type: ignore[arg-type]
    )
    if album_id is not None:
        statement = statement.where(DayEntry.album_id == album_id)
    entries = list(session.exec(statement).all())

    changes: list[tuple[DayEntry, str]] = []
    for _, album_days in itertools.groupby(entries, key=lambda e: e.album_id):
        for index, entry in enumerate(album_days, start=1):
            if entry.title_locked:
                continue
            title = titles.format_day_title(index, entry.date, entry.location_name)
            if entry.title != title:
                changes.append((entry, title))

    report = WriteReport()
    for entry, title in changes:
        entry_id = entry.id
        entry.title = title
        entry.updated_at = datetime.datetime.now(UTC)
        if _commit(session, entry, report, 'day', entry_id):
            report.days_updated += 1
    logger.info(
        'Recomputed %d day titles over %d entries, %d failures',
        report.days_updated,
        len(entries),
        report.failed,
    )
    return report
