"""Photo journal application: albums, day entries and metadata enrichment."""

import contextlib
from collections.abc import AsyncGenerator

import fastapi

import common.app
from journal.app.albums import database, routes


@contextlib.asynccontextmanager
async def lifespan(app: fastapi.FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the database on startup."""
    database.create_db_and_tables()
    yield


app = common.app.create_app('Photo Journal', lifespan=lifespan)
app.include_router(routes.router, prefix='/api')
