"""Unit tests for pipeline.py."""

import asyncio
import datetime
import unittest

from journal.app.enrichment.config import EnrichmentSettings
from journal.app.enrichment.geocoding import (
    GeocodeCache,
    GeocodeResult,
    GeocodeStore,
    coordinate_key,
)
from journal.app.enrichment.pipeline import EnrichmentPipeline
from journal.app.enrichment.records import (
    Coordinate,
    ExistingDay,
    InvalidBatchError,
    PhotoBatch,
    PhotoRecord,
)

KEREL = Coordinate(47.3152, -3.1907)
LE_PALAIS = Coordinate(47.3468, -3.1531)
SAUZON = Coordinate(47.3721, -3.2170)

NAMES = {
    coordinate_key(KEREL): 'Kérel, Bangor',
    coordinate_key(LE_PALAIS): 'Le Palais, Morbihan',
    coordinate_key(SAUZON): 'Sauzon, Morbihan',
}


class TableGeocoder:
    def __init__(self, names: dict[str, str] | None = None) -> None:
        self.names = NAMES if names is None else names
        self.calls: list[str] = []

    async def reverse(self, coordinate: Coordinate) -> GeocodeResult:
        key = coordinate_key(coordinate)
        self.calls.append(key)
        name = self.names.get(key)
        if name is None:
            return GeocodeResult.unresolved('not found')
        return GeocodeResult(name=name)


class StuckGeocoder(TableGeocoder):
    """Never answers."""

    async def reverse(self, coordinate: Coordinate) -> GeocodeResult:
        await asyncio.Event().wait()
        return GeocodeResult(name='unreachable')


class BrokenStore:
    """Persistent store whose database is unavailable."""

    def get(self, key: str) -> str | None:
        raise OSError('database is locked')

    def put(self, key: str, coordinate: Coordinate, name: str) -> None:
        raise OSError('database is locked')


def _photo(
    photo_id: int,
    day: int,
    hour: int,
    coordinate: Coordinate | None = None,
    tzinfo: datetime.tzinfo | None = None,
) -> PhotoRecord:
    return PhotoRecord(
        id=photo_id,
        timestamp=datetime.datetime(2025, 7, day, hour, tzinfo=tzinfo),
        latitude=coordinate.latitude if coordinate else None,
        longitude=coordinate.longitude if coordinate else None,
    )


TRIP = (
    _photo(1, 14, 9, LE_PALAIS),
    _photo(2, 14, 12),
    _photo(3, 14, 18, KEREL),
    _photo(4, 15, 10, SAUZON),
    _photo(5, 15, 20, KEREL),
    _photo(6, 16, 11),
)


def _pipeline(
    geocoder: TableGeocoder | None = None,
    settings: EnrichmentSettings | None = None,
    store: GeocodeStore | None = None,
) -> tuple[EnrichmentPipeline, TableGeocoder]:
    geocoder = geocoder or TableGeocoder()
    settings = settings or EnrichmentSettings()
    return EnrichmentPipeline(settings, GeocodeCache(geocoder, store)), geocoder


class TestEnrichmentPipeline(unittest.TestCase):
    def test_missing_album_id(self) -> None:
        pipeline, _ = _pipeline()
        with self.assertRaises(InvalidBatchError):
            asyncio.run(pipeline.run(PhotoBatch(album_id=None, photos=TRIP)))

    def test_empty_album(self) -> None:
        """An album without timestamped photos makes no lookups and no days."""
        pipeline, geocoder = _pipeline()
        undated = PhotoRecord(id=1, latitude=47.3, longitude=-3.2)
        batch = PhotoBatch(album_id=1, photos=(undated,))
        result = asyncio.run(pipeline.run(batch))

        self.assertEqual(result.days, ())
        self.assertEqual(result.photos, ())
        self.assertEqual(result.album_coordinate, pipeline.default_coordinate)
        self.assertEqual(geocoder.calls, [])
        self.assertFalse(result.partial)

    def test_full_run(self) -> None:
        pipeline, _ = _pipeline()
        result = asyncio.run(pipeline.run(PhotoBatch(album_id=7, photos=TRIP)))

        self.assertEqual(result.album_id, 7)
        # First native coordinate from the second day onwards.
        self.assertEqual(result.album_coordinate, SAUZON)
        self.assertEqual(result.album_location_name, 'Sauzon, Morbihan')
        self.assertEqual(
            [day.title for day in result.days],
            [
                'J1, lundi 14 juillet, Kérel, Bangor',
                'J2, mardi 15 juillet, Kérel, Bangor',
                'J3, mercredi 16 juillet, Sauzon, Morbihan',
            ],
        )
        self.assertEqual([day.cover_photo_id for day in result.days], [3, 5, 6])

        photos = {photo.id: photo for photo in result.photos}
        self.assertEqual(photos[1].location_name, 'Le Palais, Morbihan')
        # Backfilled from photo 1, the nearest in time.
        self.assertEqual(
            (photos[2].latitude, photos[2].longitude),
            (LE_PALAIS.latitude, LE_PALAIS.longitude),
        )
        self.assertTrue(photos[2].coordinate_inferred)
        self.assertFalse(photos[1].coordinate_inferred)
        self.assertEqual(photos[4].location_name, 'Sauzon, Morbihan')
        self.assertEqual(photos[6].location_name, 'Sauzon, Morbihan')
        self.assertEqual(photos[5].day_title, 'J2, mardi 15 juillet, Kérel, Bangor')
        self.assertEqual(result.unresolved_lookups, 0)

    def test_cell_looked_up_once_per_run(self) -> None:
        """Kérel is the anchor of two days but costs a single request."""
        pipeline, geocoder = _pipeline()
        result = asyncio.run(pipeline.run(PhotoBatch(album_id=7, photos=TRIP)))

        self.assertEqual(len(geocoder.calls), len(set(geocoder.calls)))
        self.assertEqual(result.lookups, len(geocoder.calls))

    def test_runs_are_idempotent(self) -> None:
        first, _ = _pipeline()
        second, _ = _pipeline()
        batch = PhotoBatch(album_id=7, photos=TRIP)
        self.assertEqual(
            asyncio.run(first.run(batch)), asyncio.run(second.run(batch))
        )

    def test_unresolvable_places(self) -> None:
        """Titles drop the place suffix when nothing can be named."""
        pipeline, geocoder = _pipeline(TableGeocoder({}))
        result = asyncio.run(pipeline.run(PhotoBatch(album_id=7, photos=TRIP)))

        self.assertEqual(
            [day.title for day in result.days],
            [
                'J1, lundi 14 juillet',
                'J2, mardi 15 juillet',
                'J3, mercredi 16 juillet',
            ],
        )
        self.assertTrue(all(p.location_name is None for p in result.photos))
        self.assertEqual(result.unresolved_lookups, len(geocoder.calls))
        self.assertFalse(result.partial)

    def test_existing_days(self) -> None:
        """Locked titles survive and unnamed days keep their previous name."""
        pipeline, _ = _pipeline(TableGeocoder({coordinate_key(SAUZON): 'Sauzon'}))
        existing = {
            datetime.date(2025, 7, 14): ExistingDay(
                date=datetime.date(2025, 7, 14),
                title='Arrivée sur Belle-Île',
                title_locked=True,
            ),
            datetime.date(2025, 7, 15): ExistingDay(
                date=datetime.date(2025, 7, 15), location_name='Bangor'
            ),
        }
        batch = PhotoBatch(album_id=7, photos=TRIP, existing_days=existing)
        result = asyncio.run(pipeline.run(batch))

        self.assertEqual(
            [day.title for day in result.days],
            [
                'Arrivée sur Belle-Île',
                'J2, mardi 15 juillet, Bangor',
                'J3, mercredi 16 juillet, Sauzon',
            ],
        )
        self.assertTrue(result.days[0].title_locked)

    def test_mixed_aware_and_naive_timestamps(self) -> None:
        """Aware and naive timestamps are ordered by their wall-clock time."""
        photos = (
            _photo(1, 14, 9, LE_PALAIS, tzinfo=datetime.UTC),
            _photo(2, 14, 12),
            _photo(3, 14, 18, KEREL),
            _photo(4, 15, 10, SAUZON, tzinfo=datetime.UTC),
        )
        pipeline, _ = _pipeline()
        result = asyncio.run(pipeline.run(PhotoBatch(album_id=7, photos=photos)))

        self.assertEqual(
            [day.title for day in result.days],
            [
                'J1, lundi 14 juillet, Kérel, Bangor',
                'J2, mardi 15 juillet, Sauzon, Morbihan',
            ],
        )
        self.assertEqual([day.cover_photo_id for day in result.days], [3, 4])
        self.assertEqual([photo.id for photo in result.photos], [1, 2, 3, 4])
        photo = result.photos[1]
        self.assertEqual(
            (photo.latitude, photo.longitude),
            (LE_PALAIS.latitude, LE_PALAIS.longitude),
        )

    def test_broken_store_falls_back_to_network(self) -> None:
        """A store that cannot be read or written does not fail the run."""
        pipeline, geocoder = _pipeline(store=BrokenStore())
        with self.assertLogs('journal.app.enrichment.geocoding', level='WARNING'):
            result = asyncio.run(pipeline.run(PhotoBatch(album_id=7, photos=TRIP)))

        self.assertFalse(result.partial)
        self.assertEqual(result.album_location_name, 'Sauzon, Morbihan')
        self.assertEqual(result.days[0].title, 'J1, lundi 14 juillet, Kérel, Bangor')
        self.assertEqual(result.lookups, len(geocoder.calls))

    def test_timeout_gives_partial_result(self) -> None:
        settings = EnrichmentSettings(run_timeout=0.05)
        pipeline, _ = _pipeline(StuckGeocoder(), settings)
        result = asyncio.run(pipeline.run(PhotoBatch(album_id=7, photos=TRIP)))

        self.assertTrue(result.partial)
        self.assertEqual(len(result.days), 3)
        self.assertEqual(result.days[0].title, 'J1, lundi 14 juillet')
        self.assertTrue(all(p.location_name is None for p in result.photos))


if __name__ == '__main__':
    unittest.main()
