"""API routes for albums and their metadata enrichment."""

import dataclasses
import datetime
import typing
from collections.abc import AsyncGenerator

import fastapi
import httpx
import pydantic
import sqlmodel

from ..enrichment import exif
from ..enrichment.config import EnrichmentSettings
from ..enrichment.geocoding import GeocodeCache, NominatimClient, ReverseGeocoder
from ..enrichment.pipeline import EnrichmentPipeline
from ..enrichment.records import InvalidBatchError, PhotoBatch, PhotoRecord
from . import database, models, services

router = fastapi.APIRouter()


class AlbumCreate(pydantic.BaseModel):
    title: str = pydantic.Field(min_length=1)
    description: str | None = None


class EnrichRequest(pydantic.BaseModel):
    album_id: int | None = None


class RecomputeTitlesRequest(pydantic.BaseModel):
    album_id: int | None = None


class PhotoIn(pydantic.BaseModel):
    """Photo metadata as extracted at upload time."""

    id: int
    taken_at: datetime.datetime | None = None
    latitude: float | None = pydantic.Field(default=None, ge=-90, le=90)
    longitude: float | None = pydantic.Field(default=None, ge=-180, le=180)
    location_name: str | None = None

    @pydantic.model_validator(mode='after')
    def _coordinates_paired(self) -> 'PhotoIn':
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError('latitude and longitude must be given together')
        return self


class ProcessRequest(pydantic.BaseModel):
    album_id: int | None = None
    photos: list[PhotoIn]


# Dependencies
def get_settings() -> EnrichmentSettings:
    """Get enrichment settings from the environment."""
    return EnrichmentSettings.from_env()


async def get_geocoder(
    settings: EnrichmentSettings = fastapi.Depends(get_settings),
) -> AsyncGenerator[ReverseGeocoder, None]:
    """Get a Nominatim client scoped to the request."""
    async with httpx.AsyncClient() as client:
        yield NominatimClient(client, settings)


def get_pipeline(
    session: sqlmodel.Session = fastapi.Depends(database.get_session),
    geocoder: ReverseGeocoder = fastapi.Depends(get_geocoder),
    settings: EnrichmentSettings = fastapi.Depends(get_settings),
) -> EnrichmentPipeline:
    """Get a pipeline with a fresh run cache backed by the database."""
    cache = GeocodeCache(geocoder, services.SqlGeocodeStore(session))
    return EnrichmentPipeline(settings, cache)


def _batch_error(exc: InvalidBatchError) -> fastapi.HTTPException:
    if isinstance(exc, services.AlbumNotFoundError):
        return fastapi.HTTPException(status_code=404, detail=str(exc))
    return fastapi.HTTPException(status_code=400, detail=str(exc))


@router.post('/albums', response_model=models.Album)
async def create_album(
    data: AlbumCreate,
    session: sqlmodel.Session = fastapi.Depends(database.get_session),
) -> models.Album:
    """Create a new album."""
    return services.create_album(session, data.title, data.description)


@router.get('/albums/{album_id}/days')
async def get_album_days(
    album_id: int,
    session: sqlmodel.Session = fastapi.Depends(database.get_session),
) -> list[models.DayEntry]:
    """Get the day entries of an album in date order."""
    try:
        services.get_album(session, album_id)
    except InvalidBatchError as exc:
        raise _batch_error(exc) from None
    return services.get_day_entries(session, album_id)


@router.post('/albums/{album_id}/photos')
async def upload_photos(
    album_id: int,
    files: typing.Annotated[list[fastapi.UploadFile], fastapi.File(...)],
    session: sqlmodel.Session = fastapi.Depends(database.get_session),
    pipeline: EnrichmentPipeline = fastapi.Depends(get_pipeline),
    settings: EnrichmentSettings = fastapi.Depends(get_settings),
) -> dict[str, typing.Any]:
    """Register the metadata of uploaded photos, then enrich the album."""
    for file in files:
        if not file.content_type or not file.content_type.startswith('image/'):
            raise fastapi.HTTPException(
                status_code=400, detail=f'{file.filename} must be an image'
            )
    metadata = await exif.extract_many(
        [file.file for file in files], settings.extract_concurrency
    )
    uploads = [(file.filename or '', data) for file, data in zip(files, metadata)]
    try:
        photos = services.register_photos(session, album_id, uploads)
        report = await services.enrich_album(session, album_id, pipeline)
    except InvalidBatchError as exc:
        raise _batch_error(exc) from None
    return {
        'photos_registered': len(photos),
        'photo_ids': [photo.id for photo in photos],
        'report': report.model_dump(),
    }


@router.post('/enrich', response_model=services.EnrichmentReport)
async def enrich_album(
    data: EnrichRequest,
    session: sqlmodel.Session = fastapi.Depends(database.get_session),
    pipeline: EnrichmentPipeline = fastapi.Depends(get_pipeline),
) -> services.EnrichmentReport:
    """Recompute coordinates, place names and day entries of an album."""
    try:
        return await services.enrich_album(session, data.album_id, pipeline)
    except InvalidBatchError as exc:
        raise _batch_error(exc) from None


@router.post('/process')
async def process_photos(
    data: ProcessRequest,
    pipeline: EnrichmentPipeline = fastapi.Depends(get_pipeline),
) -> dict[str, typing.Any]:
    """Enrich a batch of photos that has not been saved yet."""
    batch = PhotoBatch(
        album_id=data.album_id,
        photos=tuple(
            PhotoRecord(
                id=photo.id,
                timestamp=photo.taken_at,
                latitude=photo.latitude,
                longitude=photo.longitude,
                location_name=photo.location_name,
            )
            for photo in data.photos
        ),
    )
    try:
        result = await pipeline.run(batch)
    except InvalidBatchError as exc:
        raise _batch_error(exc) from None
    return dataclasses.asdict(result)


@router.post('/day-titles/recompute')
async def recompute_day_titles(
    data: RecomputeTitlesRequest | None = None,
    session: sqlmodel.Session = fastapi.Depends(database.get_session),
) -> dict[str, typing.Any]:
    """Regenerate day titles, for one album or for all of them."""
    album_id = data.album_id if data else None
    report = services.recompute_day_titles(session, album_id)
    return {
        'message': f'{report.days_updated} day titles updated',
        'updated': report.days_updated,
        'failed': report.failed,
        'failures': [failure.model_dump() for failure in report.failures],
    }
