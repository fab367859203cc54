"""TMDB client — raw metadata fetches for the catalog importer.

Handles: movie/series details with credits, videos and keywords, season
payloads, popular lists, search, and image/trailer URL helpers.
"""

from typing import Optional

import httpx


class TmdbClient:
    """The Movie Database API v3 client."""

    BASE_URL = "https://api.themoviedb.org/3"
    IMAGE_BASE = "https://image.tmdb.org/t/p"

    def __init__(
        self,
        api_key: str,
        language: str = "en-US",
        base_url: Optional[str] = None,
        image_base: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.language = language
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.image_base = (image_base or self.IMAGE_BASE).rstrip("/")
        self.timeout = timeout
        self._transport = transport
        # Detect auth mode: JWT (v4 bearer) vs plain key (v3 query param)
        self._is_bearer = api_key.startswith("eyJ")

    async def _get(self, path: str, params: dict | None = None) -> dict:
        """Make authenticated GET request to TMDB.

        Supports both v3 (api_key query param) and v4 (Bearer token header).
        Raises ``httpx.HTTPError`` on transport failures and non-2xx replies.
        """
        all_params = {"language": self.language, **(params or {})}
        headers = {}

        if self._is_bearer:
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            all_params["api_key"] = self.api_key

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(f"{self.base_url}{path}", params=all_params, headers=headers)
            resp.raise_for_status()
            return resp.json()

    # ── Details ──────────────────────────────────────────────────

    async def get_movie(self, tmdb_id: int) -> dict:
        """Movie details with credits, videos and keywords appended."""
        return await self._get(
            f"/movie/{tmdb_id}",
            {"append_to_response": "credits,videos,keywords"},
        )

    async def get_series(self, tmdb_id: int) -> dict:
        """TV series details with credits, videos, keywords and external ids."""
        return await self._get(
            f"/tv/{tmdb_id}",
            {"append_to_response": "credits,videos,keywords,external_ids"},
        )

    async def get_season(self, tmdb_id: int, season_number: int) -> dict:
        return await self._get(f"/tv/{tmdb_id}/season/{season_number}")

    # ── Lists ────────────────────────────────────────────────────

    async def get_popular(self, media_type: str = "movie", page: int = 1) -> list[dict]:
        """Popular movies (``movie``) or series (``tv``)."""
        data = await self._get(f"/{media_type}/popular", {"page": page})
        return data.get("results", [])

    async def search(self, media_type: str, query: str, page: int = 1) -> dict:
        """Search movies (``movie``) or series (``tv``); returns TMDB's paged payload."""
        return await self._get(
            f"/search/{media_type}",
            {"query": query, "page": page, "include_adult": "false"},
        )

    # ── Test connection ──────────────────────────────────────────

    async def test_connection(self) -> bool:
        """Test TMDB API key validity."""
        try:
            await self._get("/configuration")
            return True
        except httpx.HTTPError:
            return False

    # ── URL helpers ──────────────────────────────────────────────

    def image_url(self, path: Optional[str], size: str = "w500") -> str:
        """Full image URL for a TMDB file path, empty when there is none."""
        if not path:
            return ""
        return f"{self.image_base}/{size}{path}"

    @staticmethod
    def extract_trailer_key(videos: dict) -> Optional[str]:
        """YouTube key of the best trailer in a TMDB videos payload.

        Priority: official Trailer > Teaser > Clip > Featurette > any YouTube video.
        """
        results = (videos or {}).get("results", [])
        youtube = [v for v in results if v.get("site") == "YouTube"]

        for type_name in ("Trailer", "Teaser", "Clip", "Featurette"):
            for v in youtube:
                if v.get("type") == type_name and v.get("official", True):
                    return v["key"]

        if youtube:
            return youtube[0]["key"]

        return None

    @classmethod
    def trailer_url(cls, videos: dict) -> str:
        key = cls.extract_trailer_key(videos)
        return f"https://www.youtube.com/watch?v={key}" if key else ""
