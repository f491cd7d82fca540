from __future__ import annotations

import json
import logging
from typing import Any, cast
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from playlist_bridge.services.playlist_ids import extract_spotify_playlist_id
from playlist_bridge.services.providers.base import (
    PlaylistSummary,
    ProviderAuthError,
    ProviderError,
    ProviderName,
    ProviderNotFoundError,
    ProviderPermissionDeniedError,
    ProviderRateLimitedError,
    SearchCandidate,
    SourceItem,
)

LOGGER = logging.getLogger("playlist_bridge.spotify")

DEFAULT_SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
_PLAYLIST_PAGE_SIZE = 100
_MAX_PAGES = 200
_SEARCH_LIMIT_MAX = 50


class SpotifyClient:
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_SPOTIFY_API_BASE_URL,
        http_timeout_seconds: float = 15.0,
        playlist_public: bool = False,
    ) -> None:
        self._base_url = base_url.strip().rstrip("/")
        self._http_timeout_seconds = max(1.0, http_timeout_seconds)
        self._playlist_public = playlist_public

    @property
    def name(self) -> ProviderName:
        return "spotify"

    @property
    def scopes_playlists_to_user(self) -> bool:
        return True

    def extract_playlist_id(self, raw_value: str) -> str:
        return extract_spotify_playlist_id(raw_value)

    def fetch_playlist_items(self, playlist_id: str, token: str) -> list[SourceItem]:
        url: str | None = self._url(
            f"/playlists/{quote(playlist_id, safe='')}/tracks",
            {"limit": str(_PLAYLIST_PAGE_SIZE)},
        )
        items: list[SourceItem] = []
        pages = 0
        while url is not None and pages < _MAX_PAGES:
            payload = self._call("GET", url, token=token)
            for raw_item in _as_list(payload.get("items")):
                items.append(_source_item_from_playlist_entry(_as_dict(raw_item)))
            url = _coerce_nonempty_string(payload.get("next"))
            pages += 1

        LOGGER.info(
            "spotify playlist fetched playlist_id=%s items=%s pages=%s",
            playlist_id,
            len(items),
            pages,
        )
        return items

    def search_catalog(self, query: str, token: str, max_results: int) -> list[SearchCandidate]:
        limit = max(1, min(_SEARCH_LIMIT_MAX, max_results))
        payload = self._call(
            "GET",
            self._url("/search", {"q": query, "type": "track", "limit": str(limit)}),
            token=token,
        )
        tracks = _as_dict(payload.get("tracks"))
        candidates: list[SearchCandidate] = []
        for raw_track in _as_list(tracks.get("items")):
            track = _as_dict(raw_track)
            uri = _coerce_nonempty_string(track.get("uri"))
            title = _coerce_nonempty_string(track.get("name"))
            if uri is None or title is None:
                continue
            artists = _artist_names(track)
            candidates.append(
                SearchCandidate(
                    candidate_id=uri,
                    title=title,
                    channel_name=artists[0] if artists else "",
                    rank=len(candidates),
                )
            )
        return candidates

    def create_playlist(
        self,
        name: str,
        description: str,
        token: str,
        *,
        owner_id: str | None = None,
    ) -> str:
        user_id = owner_id if owner_id is not None else self.resolve_user_id(token)
        payload = self._call(
            "POST",
            self._url(f"/users/{quote(user_id, safe='')}/playlists"),
            token=token,
            body={"name": name, "description": description, "public": self._playlist_public},
        )
        playlist_id = _coerce_nonempty_string(payload.get("id"))
        if playlist_id is None:
            raise ProviderError("Spotify create playlist response missing id.", provider=self.name)
        LOGGER.info("spotify playlist created playlist_id=%s", playlist_id)
        return playlist_id

    def append_item(self, playlist_id: str, candidate_id: str, token: str) -> None:
        self._call(
            "POST",
            self._url(f"/playlists/{quote(playlist_id, safe='')}/tracks"),
            token=token,
            body={"uris": [candidate_id]},
        )

    def resolve_user_id(self, token: str) -> str:
        payload = self._call("GET", self._url("/me"), token=token)
        user_id = _coerce_nonempty_string(payload.get("id"))
        if user_id is None:
            raise ProviderError("Spotify profile response missing id.", provider=self.name)
        return user_id

    def list_playlists(self, token: str) -> list[PlaylistSummary]:
        url: str | None = self._url("/me/playlists", {"limit": "50"})
        summaries: list[PlaylistSummary] = []
        pages = 0
        while url is not None and pages < _MAX_PAGES:
            payload = self._call("GET", url, token=token)
            for raw_playlist in _as_list(payload.get("items")):
                playlist = _as_dict(raw_playlist)
                playlist_id = _coerce_nonempty_string(playlist.get("id"))
                if playlist_id is None:
                    continue
                summaries.append(
                    PlaylistSummary(
                        playlist_id=playlist_id,
                        name=_coerce_nonempty_string(playlist.get("name")) or playlist_id,
                        item_count=_coerce_int(_as_dict(playlist.get("tracks")).get("total")),
                    )
                )
            url = _coerce_nonempty_string(payload.get("next"))
            pages += 1
        return summaries

    def _url(self, path: str, params: dict[str, str] | None = None) -> str:
        query = urlencode(params or {})
        base = f"{self._base_url}{path}"
        return f"{base}?{query}" if query else base

    def _call(
        self,
        method: str,
        url: str,
        *,
        token: str,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        status_code, payload, headers = _request_json(
            method,
            url,
            token=token,
            body=body,
            timeout_seconds=self._http_timeout_seconds,
        )
        _raise_for_status(status_code, payload, headers)
        return payload


def _request_json(
    method: str,
    url: str,
    *,
    token: str,
    body: dict[str, Any] | None,
    timeout_seconds: float,
) -> tuple[int, dict[str, Any], Any]:
    data = json.dumps(body).encode("utf-8") if body is not None else None
    headers = {
        "authorization": f"Bearer {token}",
        "accept": "application/json",
        "user-agent": "playlist-bridge/1.0",
    }
    if data is not None:
        headers["content-type"] = "application/json"
    request = Request(url, data=data, headers=headers, method=method)

    status_code = 0
    raw_body = ""
    response_headers: Any = None
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            status_code = int(response.getcode() or 0)
            raw_body = response.read().decode("utf-8", errors="replace")
            response_headers = response.headers
    except HTTPError as exc:
        status_code = int(exc.code)
        raw_body = exc.read().decode("utf-8", errors="replace")
        response_headers = exc.headers
    except (URLError, TimeoutError, OSError) as exc:
        raise ProviderError(f"Spotify request failed: {exc}", provider="spotify") from exc

    return status_code, _parse_json_dict(raw_body), response_headers


def _raise_for_status(status_code: int, payload: dict[str, Any], headers: Any) -> None:
    if 200 <= status_code < 300:
        return

    message = _extract_error_message(payload) or f"HTTP {status_code}"
    detail = f"Spotify API error ({status_code}): {message}"
    if status_code == 401:
        raise ProviderAuthError(detail, provider="spotify", status_code=status_code)
    if status_code == 403:
        raise ProviderPermissionDeniedError(detail, provider="spotify", status_code=status_code)
    if status_code == 404:
        raise ProviderNotFoundError(detail, provider="spotify", status_code=status_code)
    if status_code == 429:
        raise ProviderRateLimitedError(
            detail,
            provider="spotify",
            retry_after_seconds=_retry_after_seconds(headers),
        )
    raise ProviderError(detail, provider="spotify", status_code=status_code or None)


def _source_item_from_playlist_entry(entry: dict[str, Any]) -> SourceItem:
    track = _as_dict(entry.get("track"))
    title = _coerce_nonempty_string(track.get("name"))
    artists = _artist_names(track)
    return SourceItem(
        title=title,
        primary_artist=artists[0] if artists else None,
        artists=artists,
        kind="track",
        source_id=_coerce_nonempty_string(track.get("uri")),
        payload=entry,
    )


def _artist_names(track: dict[str, Any]) -> tuple[str, ...]:
    names: list[str] = []
    for raw_artist in _as_list(track.get("artists")):
        name = _coerce_nonempty_string(_as_dict(raw_artist).get("name"))
        if name is not None:
            names.append(name)
    return tuple(names)


def _extract_error_message(payload: dict[str, Any]) -> str | None:
    error = payload.get("error")
    if isinstance(error, str):
        return _coerce_nonempty_string(payload.get("error_description")) or error
    return _coerce_nonempty_string(_as_dict(error).get("message"))


def _retry_after_seconds(headers: Any) -> float | None:
    if headers is None or not hasattr(headers, "get"):
        return None
    raw_value = headers.get("Retry-After") or headers.get("retry-after")
    if not isinstance(raw_value, str):
        return None
    try:
        return max(0.0, float(raw_value.strip()))
    except ValueError:
        return None


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    return _as_dict(parsed)


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value
    return None


def _coerce_int(raw_value: object) -> int | None:
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, int):
        return raw_value
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        return {key: item for key, item in raw_dict.items() if isinstance(key, str)}
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(cast(list[Any], value))
    return []
