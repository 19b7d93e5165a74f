"""Probe the store and the title catalogs on startup and report status."""

import httpx

from favmatch.config import Settings
from favmatch.errors import StoreError
from favmatch.models.documents import QUOTAS
from favmatch.store.base import DataStore


async def probe_all(settings: Settings, store: DataStore) -> dict:
    """Check reachability of the store and configured catalogs. Returns status dict."""
    results = {"store": await _probe_store(store, settings.store_backend)}

    async with httpx.AsyncClient(timeout=5.0) as client:
        # Jikan (anime)
        results["jikan"] = await _probe(client, f"{settings.jikan_url.rstrip('/')}/anime/1")

        # TMDB (dramas)
        if settings.has_tmdb:
            results["tmdb"] = await _probe(
                client,
                f"https://api.themoviedb.org/3/configuration?api_key={settings.tmdb_api_key}",
            )
        else:
            results["tmdb"] = {"status": "not_configured"}

    return results


async def _probe_store(store: DataStore, backend: str) -> dict:
    try:
        await store.get_document(QUOTAS, "__probe__")
        return {"status": "ok", "backend": backend}
    except StoreError as e:
        return {"status": "error", "backend": backend, "detail": str(e)[:200]}


async def _probe(client: httpx.AsyncClient, url: str, headers: dict | None = None) -> dict:
    """Probe a single endpoint."""
    try:
        resp = await client.get(url, headers=headers)
        return {
            "status": "ok" if resp.status_code < 400 else "error",
            "code": resp.status_code,
        }
    except httpx.ConnectError:
        return {"status": "unreachable"}
    except httpx.HTTPError as e:
        return {"status": "error", "detail": str(e)[:200]}
