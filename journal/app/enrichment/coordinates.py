"""Fill in missing photo coordinates and pick one coordinate per day and album.

Only native coordinates (read from the photos' own metadata) are ever used as
a source. A coordinate produced by the backfill is never copied again, which
keeps the approximation error from compounding across photos.
"""

import logging
import math
from collections.abc import Sequence

from .grouping import wall_clock
from .records import (
    Coordinate,
    CoordinatePlan,
    CoordinateSource,
    DayCoordinate,
    DayGroup,
    PhotoCoordinate,
    PhotoRecord,
)

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates, in kilometres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push h just past 1 for antipodal points.
    h = min(h, 1.0)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def album_coordinate(
    groups: Sequence[DayGroup], default: Coordinate
) -> tuple[Coordinate, int | None]:
    """Pick the album's representative coordinate.

    Takes the first native coordinate found from the second day onwards. The
    first day is skipped: it is usually the travel day and its GPS fixes tend
    to point at an airport or a station rather than the destination. Falls
    back to ``default`` (with no source photo) when nothing qualifies.
    """
    for group in groups[1:]:
        for photo in group.photos:
            coordinate = photo.native_coordinate
            if coordinate is not None:
                return coordinate, photo.id
    return default, None


def day_coordinate(group: DayGroup, album: Coordinate) -> DayCoordinate:
    """Pick a day's coordinate and cover photo from its latest geolocated photo."""
    for photo in reversed(group.photos):
        coordinate = photo.native_coordinate
        if coordinate is not None:
            return DayCoordinate(
                date=group.date,
                coordinate=coordinate,
                cover_photo_id=photo.id,
                source_photo_id=photo.id,
            )
    return DayCoordinate(
        date=group.date,
        coordinate=album,
        cover_photo_id=group.photos[-1].id,
    )


def nearest_geolocated(
    photo: PhotoRecord, candidates: Sequence[PhotoRecord]
) -> PhotoRecord | None:
    """Return the candidate taken closest in time to ``photo``.

    Candidates must all carry a native coordinate and a timestamp. Ties go to
    the earliest candidate in the sequence.
    """
    assert photo.timestamp is not None
    taken = wall_clock(photo.timestamp)
    best: PhotoRecord | None = None
    best_gap: float | None = None
    for candidate in candidates:
        assert candidate.timestamp is not None
        gap = abs((taken - wall_clock(candidate.timestamp)).total_seconds())
        if best_gap is None or gap < best_gap:
            best, best_gap = candidate, gap
    return best


def backfill_photo(
    photo: PhotoRecord, geolocated: Sequence[PhotoRecord], day: DayCoordinate
) -> PhotoCoordinate:
    """Resolve one photo's coordinate within its day."""
    native = photo.native_coordinate
    if native is not None:
        return PhotoCoordinate(native, CoordinateSource.NATIVE, photo.id)
    nearest = nearest_geolocated(photo, geolocated)
    if nearest is not None:
        coordinate = nearest.native_coordinate
        assert coordinate is not None
        return PhotoCoordinate(coordinate, CoordinateSource.NEAREST_PHOTO, nearest.id)
    return PhotoCoordinate(day.coordinate, CoordinateSource.DAY)


def resolve_coordinates(
    groups: Sequence[DayGroup], default: Coordinate
) -> CoordinatePlan:
    """Give every photo and every day a coordinate.

    Never fails: an album without a single geolocated photo gets ``default``
    everywhere.
    """
    album, album_source = album_coordinate(groups, default)
    if album_source is None:
        logger.info(
            'No usable GPS data after the first day, using default %.4f,%.4f',
            default.latitude,
            default.longitude,
        )

    days: list[DayCoordinate] = []
    photos: dict[int, PhotoCoordinate] = {}
    for group in groups:
        day = day_coordinate(group, album)
        days.append(day)
        geolocated = [p for p in group.photos if p.native_coordinate is not None]
        for photo in group.photos:
            photos[photo.id] = backfill_photo(photo, geolocated, day)

    inferred = sum(1 for p in photos.values() if p.source != CoordinateSource.NATIVE)
    logger.debug('Backfilled coordinates for %d of %d photos', inferred, len(photos))
    return CoordinatePlan(
        album=album,
        album_source_photo_id=album_source,
        days=tuple(days),
        photos=photos,
    )
