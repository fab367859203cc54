"""MovieHub — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.errors import register_error_handlers
from app.api import admin, ads, auth, content, health, movies, search, series, upload

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup: create tables, probe integrations
    from app.database import engine, init_db
    from app.services.integration_probe import probe_all

    await init_db()
    app.state.integrations = await probe_all(settings)
    logger.info(f"{settings.app_name} started; integrations: {app.state.integrations}")
    yield
    # Shutdown: close DB pool
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Movie and series streaming catalog CMS",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

# CORS — allow frontend dev servers + production URL
app.add_middleware(
    CORSMiddleware,
    allow_origins=[*settings.cors_origins, settings.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# ── Mount routers ────────────────────────────────────────────────
app.include_router(health.router,   prefix="/api", tags=["system"])
app.include_router(auth.router,     prefix="/api", tags=["auth"])
app.include_router(movies.router,   prefix="/api", tags=["movies"])
app.include_router(series.router,   prefix="/api", tags=["series"])
app.include_router(content.router,  prefix="/api", tags=["content"])
app.include_router(search.router,   prefix="/api", tags=["search"])
app.include_router(ads.router,      prefix="/api", tags=["ads"])
app.include_router(upload.router,   prefix="/api", tags=["upload"])
app.include_router(admin.router,    prefix="/api", tags=["admin"])

# Locally stored uploads
Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.debug)
