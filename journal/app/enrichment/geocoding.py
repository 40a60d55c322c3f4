"""Reverse geocoding through Nominatim, with a per-run coordinate cache."""

import asyncio
import dataclasses
import logging
import time
from typing import Any, Protocol

import httpx

from .config import EnrichmentSettings
from .records import Coordinate

logger = logging.getLogger(__name__)

# 4 decimal places is roughly 11 m of latitude.
KEY_PRECISION = 4


@dataclasses.dataclass(frozen=True)
class GeocodeResult:
    """Outcome of one reverse lookup: a place name, or the reason there is none."""

    name: str | None = None
    error: str | None = None

    @property
    def resolved(self) -> bool:
        return self.name is not None

    @classmethod
    def unresolved(cls, reason: str) -> 'GeocodeResult':
        return cls(name=None, error=reason)


class ReverseGeocoder(Protocol):
    async def reverse(self, coordinate: Coordinate) -> GeocodeResult: ...


class GeocodeStore(Protocol):
    """Persistent backing for the geocode cache, keyed like the cache itself."""

    def get(self, key: str) -> str | None: ...

    def put(self, key: str, coordinate: Coordinate, name: str) -> None: ...


def _format_degrees(value: float) -> str:
    text = f'{value:.{KEY_PRECISION}f}'
    # -0.00001 and 0.00001 belong to the same cell.
    return '0.0000' if text == '-0.0000' else text


def coordinate_key(coordinate: Coordinate) -> str:
    """Return the cache key of the cell containing ``coordinate``."""
    return (
        f'{_format_degrees(coordinate.latitude)},'
        f'{_format_degrees(coordinate.longitude)}'
    )


def key_coordinate(key: str) -> Coordinate:
    """Return the coordinate a cache key stands for."""
    latitude, longitude = key.split(',')
    return Coordinate(float(latitude), float(longitude))


def place_label(display_name: Any) -> str | None:
    """Shorten a Nominatim display name to its first two components.

    "Kérel, Bangor, Morbihan, Bretagne, France" becomes "Kérel, Bangor".
    """
    if not isinstance(display_name, str):
        return None
    parts = [part.strip() for part in display_name.split(',')]
    label = ', '.join(part for part in parts[:2] if part)
    return label or None


class NominatimClient:
    """Reverse geocoder for the Nominatim ``/reverse`` endpoint.

    Requests are bounded to ``geocode_concurrency`` in flight and their starts
    are spaced by at least ``geocode_min_interval`` seconds. Nothing raised by
    the transport escapes: timeouts, error statuses and malformed bodies all
    come back as unresolved results.
    """

    def __init__(self, client: httpx.AsyncClient, settings: EnrichmentSettings):
        self.client = client
        self.settings = settings
        self._semaphore = asyncio.Semaphore(settings.geocode_concurrency)
        self._throttle_lock = asyncio.Lock()
        self._last_start: float | None = None

    async def _throttle(self) -> None:
        interval = self.settings.geocode_min_interval
        if interval <= 0:
            return
        async with self._throttle_lock:
            now = time.monotonic()
            if self._last_start is not None:
                wait = self._last_start + interval - now
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_start = time.monotonic()

    async def reverse(self, coordinate: Coordinate) -> GeocodeResult:
        """Look up the place name at ``coordinate``."""
        async with self._semaphore:
            await self._throttle()
            try:
                response = await self.client.get(
                    self.settings.geocode_url,
                    params={
                        'format': 'json',
                        'lat': coordinate.latitude,
                        'lon': coordinate.longitude,
                        'zoom': self.settings.geocode_zoom,
                        'addressdetails': 1,
                    },
                    headers={'User-Agent': self.settings.user_agent},
                    timeout=self.settings.geocode_timeout,
                )
            except httpx.TimeoutException:
                return self._failed(coordinate, 'timeout')
            except httpx.HTTPError as exc:
                return self._failed(coordinate, f'transport error: {exc}')

        if not response.is_success:
            return self._failed(coordinate, f'HTTP {response.status_code}')
        try:
            payload = response.json()
        except ValueError:
            return self._failed(coordinate, 'malformed payload')
        if not isinstance(payload, dict):
            return self._failed(coordinate, 'malformed payload')

        label = place_label(payload.get('display_name'))
        if label is None:
            return self._failed(coordinate, 'no display name')
        return GeocodeResult(name=label)

    def _failed(self, coordinate: Coordinate, reason: str) -> GeocodeResult:
        logger.warning(
            'Reverse geocoding failed for %.4f,%.4f: %s',
            coordinate.latitude,
            coordinate.longitude,
            reason,
        )
        return GeocodeResult.unresolved(reason)


class GeocodeCache:
    """Run-scoped cache of reverse lookups keyed by quantized coordinate.

    ``resolve`` is the only entry point and is atomic per key: the first caller
    for a cell starts the lookup and every concurrent caller for the same cell
    waits on that same lookup, so a cell costs at most one request per run.
    Failed lookups are remembered for the rest of the run too, but only
    resolved names reach the optional persistent ``store``.

    Lookups are made with the cell's own coordinate, so every coordinate in a
    cell gets the same answer regardless of which one asked first.
    """

    def __init__(
        self, geocoder: ReverseGeocoder, store: GeocodeStore | None = None
    ) -> None:
        self.geocoder = geocoder
        self.store = store
        self._results: dict[str, GeocodeResult] = {}
        self._inflight: dict[str, asyncio.Task[GeocodeResult]] = {}
        self.requests = 0
        self.failures = 0

    def peek(self, coordinate: Coordinate) -> GeocodeResult | None:
        """Return the finished result for a coordinate's cell, if any."""
        return self._results.get(coordinate_key(coordinate))

    async def resolve(self, coordinate: Coordinate) -> GeocodeResult:
        """Return the place name of the coordinate's cell, looking it up once."""
        key = coordinate_key(coordinate)
        cached = self._results.get(key)
        if cached is not None:
            return cached
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._lookup(key))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        # Shielded so that one cancelled waiter does not cancel the lookup
        # for the others; abandon() takes care of leftovers.
        return await asyncio.shield(task)

    async def _lookup(self, key: str) -> GeocodeResult:
        coordinate = key_coordinate(key)
        stored = self._read_store(key)
        if stored is not None:
            result = GeocodeResult(name=stored)
            self._results[key] = result
            return result

        self.requests += 1
        result = await self.geocoder.reverse(coordinate)
        if not result.resolved:
            self.failures += 1
        elif self.store is not None:
            assert result.name is not None
            try:
                self.store.put(key, coordinate, result.name)
            except Exception:
                logger.warning('Geocode store write failed for %s', key, exc_info=True)
        self._results[key] = result
        return result

    def _read_store(self, key: str) -> str | None:
        if self.store is None:
            return None
        try:
            return self.store.get(key)
        except Exception:
            # A broken store only costs a network lookup.
            logger.warning('Geocode store read failed for %s', key, exc_info=True)
            return None

    async def abandon(self) -> None:
        """Cancel lookups still in flight and wait for them to unwind."""
        pending = list(self._inflight.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
