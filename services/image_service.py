# services/image_service.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Protocol, Sequence

import httpx

from config import settings
from logging_config import get_request_id
from models import Activity
from services.allocator import FALLBACK_TITLE_PREFIX

log = logging.getLogger("images")


class ImageLookup(Protocol):
    async def lookup(self, title: str) -> Optional[str]: ...


class WikipediaImageLookup:
    """
    Finds a representative picture for an activity through the MediaWiki
    search + pageimages API. No key needed.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        thumb_size: int = 640,
    ) -> None:
        self.base_url = (base_url or settings.IMAGE_SEARCH_BASE_URL).rstrip("/")
        self.thumb_size = thumb_size
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.IMAGE_LOOKUP_TIMEOUT_S,
            headers={"User-Agent": "playday-planner/1.0"},
        )

    async def lookup(self, title: str) -> Optional[str]:
        params = {
            "action": "query",
            "format": "json",
            "formatversion": "2",
            "generator": "search",
            "gsrsearch": f"{title} London",
            "gsrlimit": "1",
            "prop": "pageimages",
            "piprop": "thumbnail",
            "pithumbsize": str(self.thumb_size),
        }
        resp = await self._client.get(f"{self.base_url}/w/api.php", params=params)
        resp.raise_for_status()
        pages = (resp.json().get("query") or {}).get("pages") or []
        for page in pages:
            thumb = (page or {}).get("thumbnail") or {}
            if thumb.get("source"):
                return thumb["source"]
        return None

    async def aclose(self) -> None:
        await self._client.aclose()


def search_title(activity: Activity) -> str:
    title = activity.title
    if title.startswith(FALLBACK_TITLE_PREFIX):
        title = title[len(FALLBACK_TITLE_PREFIX):]
    return title.strip()


async def fetch_activity_images(
    activities: Sequence[Activity],
    lookup: ImageLookup,
    cache: Optional[Dict[str, str]] = None,
    *,
    concurrency: Optional[int] = None,
    placeholder: Optional[str] = None,
) -> Dict[str, str]:
    """
    Look up one image per activity concurrently and wait for all of them.
    Results are cached by activity id; a failed or empty lookup yields the
    placeholder for that activity only.
    """
    cache = {} if cache is None else cache
    placeholder = placeholder or settings.IMAGE_PLACEHOLDER_URL
    gate = asyncio.Semaphore(concurrency or settings.IMAGE_LOOKUP_CONCURRENCY)
    rid = get_request_id()

    async def one(act: Activity) -> None:
        if act.id in cache:
            return
        url: Optional[str] = None
        async with gate:
            try:
                url = await lookup.lookup(search_title(act))
            except Exception as e:
                log.warning("Image lookup failed", extra={
                    "request_id": rid, "activity_id": act.id, "title": act.title, "error": str(e),
                })
        cache[act.id] = url or placeholder

    await asyncio.gather(*(one(a) for a in activities))
    log.info("Activity images resolved", extra={
        "request_id": rid,
        "count": len(activities),
        "placeholders": sum(1 for a in activities if cache.get(a.id) == placeholder),
    })
    return {a.id: cache[a.id] for a in activities}
