"""EXIF metadata extraction for uploaded photos."""

import asyncio
import dataclasses
import datetime
import logging
from collections.abc import Sequence
from typing import Any, BinaryIO

import exifread

logger = logging.getLogger(__name__)

EXIF_DATE_FORMAT = '%Y:%m:%d %H:%M:%S'
DATE_TAGS = ('EXIF DateTimeOriginal', 'EXIF DateTimeDigitized', 'Image DateTime')


@dataclasses.dataclass(frozen=True)
class ExifData:
    """The subset of EXIF metadata the journal cares about."""

    timestamp: datetime.datetime | None = None
    latitude: float | None = None
    longitude: float | None = None


def _convert_to_degrees(value: Any) -> float:
    """Convert GPS coordinates from DMS to decimal degrees."""
    degrees = float(value.values[0].num) / float(value.values[0].den)
    minutes = float(value.values[1].num) / float(value.values[1].den)
    seconds = float(value.values[2].num) / float(value.values[2].den)

    return degrees + (minutes / 60.0) + (seconds / 3600.0)


def _parse_timestamp(tags: dict[str, Any]) -> datetime.datetime | None:
    for tag in DATE_TAGS:
        if tag not in tags:
            continue
        try:
            return datetime.datetime.strptime(
                str(tags[tag]).strip(), EXIF_DATE_FORMAT
            )
        except ValueError:
            continue
    return None


def _parse_gps(tags: dict[str, Any]) -> tuple[float, float] | None:
    gps_latitude = tags.get('GPS GPSLatitude')
    gps_latitude_ref = tags.get('GPS GPSLatitudeRef')
    gps_longitude = tags.get('GPS GPSLongitude')
    gps_longitude_ref = tags.get('GPS GPSLongitudeRef')
    if not all([gps_latitude, gps_latitude_ref, gps_longitude, gps_longitude_ref]):
        return None

    try:
        lat = _convert_to_degrees(gps_latitude)
        lon = _convert_to_degrees(gps_longitude)
    except (AttributeError, IndexError, ZeroDivisionError):
        return None
    if str(gps_latitude_ref).strip() == 'S':
        lat = -lat
    if str(gps_longitude_ref).strip() == 'W':
        lon = -lon
    return lat, lon


def extract_exif(file: BinaryIO) -> ExifData:
    """Read the capture time and GPS position from an image file.

    Files without EXIF data, or with unreadable EXIF data, give an empty
    result rather than an error.
    """
    try:
        tags = exifread.process_file(file, details=False)
    except Exception:
        logger.warning('Could not read EXIF data', exc_info=True)
        return ExifData()

    gps = _parse_gps(tags)
    return ExifData(
        timestamp=_parse_timestamp(tags),
        latitude=gps[0] if gps else None,
        longitude=gps[1] if gps else None,
    )


async def extract_many(files: Sequence[BinaryIO], concurrency: int) -> list[ExifData]:
    """Extract EXIF data from several files on a bounded pool of threads.

    Results are returned in the order of ``files``.
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def extract(file: BinaryIO) -> ExifData:
        async with semaphore:
            return await asyncio.to_thread(extract_exif, file)

    return list(await asyncio.gather(*(extract(f) for f in files)))
