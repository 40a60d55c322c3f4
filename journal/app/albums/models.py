"""Database models for albums, photos and their day entries."""

import datetime
from datetime import UTC

import sqlalchemy
from sqlmodel import Field, Relationship, SQLModel


def _now() -> datetime.datetime:
    return datetime.datetime.now(UTC)


class Album(SQLModel, table=True):
    """A journal album: a trip or an event."""

    __tablename__ = 'journal_album'  # type: ignore[misc]

    id: int | None = Field(default=None, primary_key=True)
    title: str
    description: str | None = None
    created_date: datetime.datetime = Field(default_factory=_now)
    photos: list['Photo'] = Relationship(back_populates='album')


class Photo(SQLModel, table=True):
    """Metadata of an uploaded photo; the image itself lives in object storage."""

    __tablename__ = 'journal_photo'  # type: ignore[misc]

    id: int | None = Field(default=None, primary_key=True)
    album_id: int = Field(foreign_key='journal_album.id', index=True)
    album: Album | None = Relationship(back_populates='photos')
    filename: str
    taken_at: datetime.datetime | None = Field(default=None, index=True)
    latitude: float | None = None
    longitude: float | None = None
    # True when the coordinate was filled in by enrichment, not read from EXIF.
    coordinate_inferred: bool = False
    location_name: str | None = None
    day_title: str | None = None
    upload_date: datetime.datetime = Field(default_factory=_now)


class DayEntry(SQLModel, table=True):
    """One calendar day of an album.

    ``title_locked`` marks a title edited by hand; automatic titling never
    overwrites it. ``description`` is only ever written by users.
    """

    __tablename__ = 'journal_day_entry'  # type: ignore[misc]
    __table_args__ = (sqlalchemy.UniqueConstraint('album_id', 'date'),)

    id: int | None = Field(default=None, primary_key=True)
    album_id: int = Field(foreign_key='journal_album.id', index=True)
    date: datetime.date
    title: str | None = None
    title_locked: bool = False
    description: str | None = None
    latitude: float
    longitude: float
    location_name: str | None = None
    cover_photo_id: int | None = Field(default=None, foreign_key='journal_photo.id')
    updated_at: datetime.datetime = Field(default_factory=_now)


class GeocodeCacheEntry(SQLModel, table=True):
    """A reverse-geocoded place name, keyed by 4-decimal coordinate cell."""

    __tablename__ = 'journal_geocode_cache'  # type: ignore[misc]

    key: str = Field(primary_key=True, max_length=32)
    latitude: float
    longitude: float
    name: str
    fetched_at: datetime.datetime = Field(default_factory=_now)
