"""Probe the database and configured integrations on startup and report status."""

import httpx
from sqlalchemy import text

from app.config import Settings
from app.database import engine


async def probe_all(settings: Settings) -> dict:
    """Check reachability of the database and external services. Returns status dict."""
    results = {"database": await _probe_database()}

    async with httpx.AsyncClient(timeout=5.0) as client:
        # TMDB
        if settings.has_tmdb:
            results["tmdb"] = await _probe(
                client,
                f"{settings.tmdb_base_url}/configuration",
                **_tmdb_auth(settings.tmdb_api_key),
            )
        else:
            results["tmdb"] = {"status": "not_configured"}

        # Cloudinary (uploads fall back to local disk without it)
        if settings.has_cloudinary:
            results["cloudinary"] = await _probe(
                client,
                f"https://api.cloudinary.com/v1_1/{settings.cloudinary_cloud_name}/resources/image",
                auth=(settings.cloudinary_api_key, settings.cloudinary_api_secret),
            )
        else:
            results["cloudinary"] = {"status": "not_configured"}

    return results


def _tmdb_auth(api_key: str) -> dict:
    if api_key.startswith("eyJ"):
        return {"headers": {"Authorization": f"Bearer {api_key}"}}
    return {"params": {"api_key": api_key}}


async def _probe_database() -> dict:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "detail": str(e)[:200]}


async def _probe(client: httpx.AsyncClient, url: str, **kwargs) -> dict:
    """Probe a single endpoint."""
    try:
        resp = await client.get(url, **kwargs)
        return {
            "status": "ok" if resp.status_code < 400 else "error",
            "code": resp.status_code,
        }
    except httpx.ConnectError:
        return {"status": "unreachable"}
    except Exception as e:
        return {"status": "error", "detail": str(e)[:200]}
