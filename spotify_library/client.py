import logging
from typing import Any, Dict, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"


class SpotifyClient:
    """Thin async Spotify Web API client bound to one access token.

    Responses are handed back as-is: the caller owns the success/failure
    decision, and nothing is retried. Use as an async context manager, or
    pass in an ``httpx.AsyncClient`` you manage yourself.
    """

    def __init__(
        self,
        access_token: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    async def request(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{SPOTIFY_API_BASE_URL}{path}"
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}
        logger.debug("%s %s %s", method.upper(), path, {k: v for k, v in query.items() if k != "uris"})
        return await self._http.request(method.upper(), url, params=query, headers=self._headers())

    async def saved_tracks_page(self, *, limit: int = 50, offset: int = 0) -> httpx.Response:
        # Endpoint shape: {items: [{added_at, track: {...}}], total, limit, offset}
        return await self.request("GET", "/me/tracks", params={"limit": limit, "offset": offset})

    async def remove_from_library(self, uris: Sequence[str]) -> httpx.Response:
        return await self.request("DELETE", "/me/library", params={"uris": ",".join(uris)})
