from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from app.core.config import (
    SPOTIFY_ACCOUNTS_URL,
    SPOTIFY_API_URL,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_TIMEOUT_SECONDS,
)
from app.core.errors import MetadataResolutionFailure
from app.core.nearby_config import SPOTIFY_BATCH_SIZE, SPOTIFY_TOKEN_LEEWAY_SECONDS
from app.schemas.nearby import TrackMetadata


# Access tokens keyed by client id (simple in-memory cache)
_TOKEN_CACHE: Dict[str, Dict[str, Any]] = {}


# ---------------------------
# Payload mapping
# ---------------------------

def track_from_payload(payload: Dict[str, Any]) -> TrackMetadata:
    try:
        return TrackMetadata(
            id=payload["id"],
            title=payload["name"],
            album=payload["album"]["name"],
            artist=", ".join(a["name"] for a in payload.get("artists", [])),
            url=(payload.get("external_urls") or {}).get("spotify"),
        )
    except (KeyError, TypeError) as exc:
        raise MetadataResolutionFailure(f"Malformed track payload: missing {exc}") from exc


def _chunks(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _search_query(title: str, artist: Optional[str], album: Optional[str]) -> str:
    parts = [f"track:{title}"]
    if artist:
        parts.append(f"artist:{artist}")
    if album:
        parts.append(f"album:{album}")
    return " ".join(parts)


# ---------------------------
# Client
# ---------------------------

class SpotifyClient:
    """
    Track metadata lookups against the Spotify Web API.

    Implements the TrackResolver contract: resolve() keeps index
    correspondence with its input, echoing None for null ids and for ids
    Spotify does not know. Null ids are never sent over the wire.

    One instance owns one httpx.AsyncClient, opened on first use and closed by
    aclose() (or by leaving ``async with``). Concurrent calls on the same
    instance share the connection pool and a single token refresh.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id or SPOTIFY_CLIENT_ID
        self.client_secret = client_secret or SPOTIFY_CLIENT_SECRET
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._token_lock = asyncio.Lock()

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=SPOTIFY_TIMEOUT_SECONDS, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _cached_token(self) -> Optional[str]:
        cached = _TOKEN_CACHE.get(self.client_id)
        if cached and cached["expires_at"] > time.time():
            return cached["token"]
        return None

    def _discard_token(self, token: str) -> None:
        cached = _TOKEN_CACHE.get(self.client_id)
        if cached and cached["token"] == token:
            _TOKEN_CACHE.pop(self.client_id, None)

    async def _access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise MetadataResolutionFailure("SPOTIFY_CLIENT_ID or SPOTIFY_CLIENT_SECRET not set")

        token = self._cached_token()
        if token:
            return token

        async with self._token_lock:
            # another caller may have refreshed while we waited
            token = self._cached_token()
            if token:
                return token
            return await self._request_token()

    async def _request_token(self) -> str:
        resp = await self._http().post(
            SPOTIFY_ACCOUNTS_URL,
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        if resp.status_code >= 400:
            raise MetadataResolutionFailure(f"Spotify token request failed: HTTP {resp.status_code}")

        try:
            data = resp.json()
            token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
        except (ValueError, KeyError) as exc:
            raise MetadataResolutionFailure("Spotify returned an invalid token response") from exc

        _TOKEN_CACHE[self.client_id] = {
            "token": token,
            "expires_at": time.time() + expires_in - SPOTIFY_TOKEN_LEEWAY_SECONDS,
        }
        logger.debug(f"[spotify] new access token, expires_in={expires_in}")
        return token

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{SPOTIFY_API_URL}{path}"

        for attempt in (1, 2):
            token = await self._access_token()
            resp = await self._http().get(url, params=params, headers={"Authorization": f"Bearer {token}"})

            if resp.status_code == 401 and attempt == 1:
                # token revoked early; fetch a new one and retry once
                self._discard_token(token)
                continue

            if resp.status_code >= 400:
                raise MetadataResolutionFailure(f"Spotify error on {path}: HTTP {resp.status_code}")

            try:
                return resp.json()
            except ValueError as exc:
                raise MetadataResolutionFailure(f"Spotify returned non-JSON response on {path}") from exc

        raise MetadataResolutionFailure(f"Spotify rejected credentials on {path}")

    async def resolve(self, track_ids: Sequence[Optional[str]]) -> List[Optional[TrackMetadata]]:
        resolved: List[Optional[TrackMetadata]] = [None] * len(track_ids)

        # positions of the ids that actually go over the wire
        positions = [i for i, tid in enumerate(track_ids) if tid]
        if not positions:
            return resolved

        wanted = [track_ids[i] for i in positions]
        logger.debug(f"[spotify] resolving {len(wanted)} tracks ({len(track_ids) - len(wanted)} gaps)")

        try:
            payloads: List[Optional[Dict[str, Any]]] = []
            for chunk in _chunks(wanted, SPOTIFY_BATCH_SIZE):
                data = await self._get("/tracks", {"ids": ",".join(chunk)})
                tracks = data.get("tracks")
                if not isinstance(tracks, list) or len(tracks) != len(chunk):
                    raise MetadataResolutionFailure("Spotify returned a misaligned track batch")
                payloads.extend(tracks)
        except httpx.HTTPError as exc:
            raise MetadataResolutionFailure(f"Spotify request failed: {exc}") from exc

        for position, payload in zip(positions, payloads):
            if payload is not None:
                resolved[position] = track_from_payload(payload)

        return resolved

    async def identify_song(
        self,
        title: str,
        artist: Optional[str] = None,
        album: Optional[str] = None,
    ) -> TrackMetadata:
        query = _search_query(title, artist, album)

        try:
            data = await self._get("/search", {"q": query, "type": "track", "limit": 1})
        except httpx.HTTPError as exc:
            raise MetadataResolutionFailure(f"Spotify request failed: {exc}") from exc

        items = (data.get("tracks") or {}).get("items") or []
        if not items:
            raise MetadataResolutionFailure(f"Could not identify song: {query}")

        track = track_from_payload(items[0])
        logger.debug(f"[spotify] identified '{query}' as {track.id}")
        return track
