from __future__ import annotations

import html
import json
import logging
import re
from dataclasses import dataclass
from importlib import import_module
from typing import Any, Literal, cast

from playlist_bridge.services.playlist_ids import extract_youtube_playlist_id
from playlist_bridge.services.providers.base import (
    PlaylistSummary,
    ProviderAuthError,
    ProviderError,
    ProviderName,
    ProviderNotFoundError,
    ProviderPermissionDeniedError,
    ProviderQuotaExceededError,
    ProviderRateLimitedError,
    SearchCandidate,
    SourceItem,
)

LOGGER = logging.getLogger("playlist_bridge.youtube")

YOUTUBE_MUSIC_CATEGORY_ID = "10"
PlaylistPrivacy = Literal["private", "unlisted", "public"]
QuotaProbeStatus = Literal["available", "quota_exceeded", "access_denied"]

_PAGE_SIZE = 50
_MAX_PAGES = 100
_UNAVAILABLE_VIDEO_TITLES: frozenset[str] = frozenset({"deleted video", "private video"})
_TITLE_ARTIST_SEPARATOR_RE = re.compile(r"\s+[-–—]\s+")
_CHANNEL_SUFFIX_RE = re.compile(r"(?:\s+-\s+topic|vevo)$", re.IGNORECASE)
_QUOTA_MARKERS = ("quotaexceeded", "dailylimitexceeded", "quota exceeded", "exceeded your quota")
_RATE_LIMIT_MARKERS = (
    "ratelimitexceeded",
    "userratelimitexceeded",
    "rate limit exceeded",
    "too many requests",
)


@dataclass(frozen=True)
class QuotaProbe:
    status: QuotaProbeStatus
    message: str
    estimated_units: int = 1


class YouTubeClient:
    def __init__(
        self,
        *,
        playlist_privacy: PlaylistPrivacy = "private",
        search_category_id: str | None = YOUTUBE_MUSIC_CATEGORY_ID,
    ) -> None:
        self._playlist_privacy = playlist_privacy
        self._search_category_id = search_category_id

    @property
    def name(self) -> ProviderName:
        return "youtube"

    @property
    def scopes_playlists_to_user(self) -> bool:
        return False

    def extract_playlist_id(self, raw_value: str) -> str:
        return extract_youtube_playlist_id(raw_value)

    def fetch_playlist_items(self, playlist_id: str, token: str) -> list[SourceItem]:
        client = _build_youtube_client(token)
        items: list[SourceItem] = []
        page_token: str | None = None
        pages = 0
        while pages < _MAX_PAGES:
            query_kwargs: dict[str, object] = {
                "part": "snippet",
                "playlistId": playlist_id,
                "maxResults": _PAGE_SIZE,
            }
            if page_token is not None:
                query_kwargs["pageToken"] = page_token
            response = _execute(client.playlistItems().list(**query_kwargs))
            for raw_item in _as_list(response.get("items")):
                items.append(_source_item_from_playlist_entry(_as_dict(raw_item)))
            pages += 1
            page_token = _coerce_nonempty_string(response.get("nextPageToken"))
            if page_token is None:
                break

        LOGGER.info(
            "youtube playlist fetched playlist_id=%s items=%s pages=%s",
            playlist_id,
            len(items),
            pages,
        )
        return items

    def search_catalog(self, query: str, token: str, max_results: int) -> list[SearchCandidate]:
        client = _build_youtube_client(token)
        query_kwargs: dict[str, object] = {
            "part": "snippet",
            "type": "video",
            "maxResults": max(1, min(_PAGE_SIZE, max_results)),
            "q": query,
            "order": "relevance",
        }
        if self._search_category_id:
            query_kwargs["videoCategoryId"] = self._search_category_id
        response = _execute(client.search().list(**query_kwargs))

        candidates: list[SearchCandidate] = []
        for raw_item in _as_list(response.get("items")):
            item = _as_dict(raw_item)
            video_id = _coerce_nonempty_string(_as_dict(item.get("id")).get("videoId"))
            if video_id is None:
                continue
            snippet = _as_dict(item.get("snippet"))
            candidates.append(
                SearchCandidate(
                    candidate_id=video_id,
                    title=html.unescape(_coerce_nonempty_string(snippet.get("title")) or ""),
                    channel_name=html.unescape(
                        _coerce_nonempty_string(snippet.get("channelTitle")) or ""
                    ),
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
        _ = owner_id
        client = _build_youtube_client(token)
        response = _execute(
            client.playlists().insert(
                part="snippet,status",
                body={
                    "snippet": {"title": name, "description": description},
                    "status": {"privacyStatus": self._playlist_privacy},
                },
            )
        )
        playlist_id = _coerce_nonempty_string(response.get("id"))
        if playlist_id is None:
            raise ProviderError("YouTube create playlist response missing id.", provider=self.name)
        LOGGER.info("youtube playlist created playlist_id=%s", playlist_id)
        return playlist_id

    def append_item(self, playlist_id: str, candidate_id: str, token: str) -> None:
        client = _build_youtube_client(token)
        _execute(
            client.playlistItems().insert(
                part="snippet",
                body={
                    "snippet": {
                        "playlistId": playlist_id,
                        "resourceId": {"kind": "youtube#video", "videoId": candidate_id},
                    }
                },
            )
        )

    def resolve_user_id(self, token: str) -> str:
        client = _build_youtube_client(token)
        response = _execute(client.channels().list(part="id", mine=True, maxResults=1))
        items = _as_list(response.get("items"))
        channel_id = _coerce_nonempty_string(_as_dict(items[0]).get("id")) if items else None
        if channel_id is None:
            raise ProviderNotFoundError(
                "No YouTube channel is associated with this account.",
                provider=self.name,
            )
        return channel_id

    def list_playlists(self, token: str) -> list[PlaylistSummary]:
        client = _build_youtube_client(token)
        summaries: list[PlaylistSummary] = []
        page_token: str | None = None
        for _ in range(_MAX_PAGES):
            query_kwargs: dict[str, object] = {
                "part": "snippet,contentDetails",
                "mine": True,
                "maxResults": _PAGE_SIZE,
            }
            if page_token is not None:
                query_kwargs["pageToken"] = page_token
            response = _execute(client.playlists().list(**query_kwargs))
            for raw_item in _as_list(response.get("items")):
                item = _as_dict(raw_item)
                playlist_id = _coerce_nonempty_string(item.get("id"))
                if playlist_id is None:
                    continue
                title = _coerce_nonempty_string(_as_dict(item.get("snippet")).get("title"))
                item_count = _as_dict(item.get("contentDetails")).get("itemCount")
                summaries.append(
                    PlaylistSummary(
                        playlist_id=playlist_id,
                        name=html.unescape(title) if title is not None else playlist_id,
                        item_count=item_count if isinstance(item_count, int) else None,
                    )
                )
            page_token = _coerce_nonempty_string(response.get("nextPageToken"))
            if page_token is None:
                break
        return summaries

    def probe_quota(self, token: str) -> QuotaProbe:
        """Spends one unit on ``channels.list`` to learn whether the quota is open."""
        client = _build_youtube_client(token)
        try:
            _execute(client.channels().list(part="snippet", mine=True, maxResults=1))
        except ProviderQuotaExceededError as exc:
            return QuotaProbe(status="quota_exceeded", message=str(exc))
        except ProviderPermissionDeniedError as exc:
            return QuotaProbe(status="access_denied", message=str(exc))
        return QuotaProbe(status="available", message="YouTube API requests are accepted.")


def _build_youtube_client(token: str) -> Any:
    try:
        credentials_module = import_module("google.oauth2.credentials")
        discovery_module = import_module("googleapiclient.discovery")
    except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
        raise ProviderError(
            "YouTube access requires google-api-python-client and google-auth dependencies",
            provider="youtube",
        ) from exc

    credentials_cls: Any = credentials_module.Credentials
    build_fn: Any = discovery_module.build
    credentials = credentials_cls(token=token)
    return build_fn("youtube", "v3", credentials=credentials, cache_discovery=False)


def _execute(request: Any) -> dict[str, Any]:
    try:
        response = request.execute()
    except Exception as exc:
        raise _translate_youtube_error(exc) from exc
    return _as_dict(response)


def _translate_youtube_error(exc: Exception) -> ProviderError:
    status_code = _extract_status_code(exc)
    reason = _extract_error_reason(exc)
    message = _summarize_exception_message(exc)
    haystack = f"{reason or ''} {message}".lower()
    detail = f"YouTube API error ({status_code or 'n/a'}): {message}"

    if status_code == 401:
        return ProviderAuthError(detail, provider="youtube", status_code=status_code)
    if any(marker in haystack for marker in _QUOTA_MARKERS):
        return ProviderQuotaExceededError(detail, provider="youtube", status_code=status_code)
    if status_code == 429 or any(marker in haystack for marker in _RATE_LIMIT_MARKERS):
        return ProviderRateLimitedError(
            detail,
            provider="youtube",
            retry_after_seconds=_extract_retry_after_seconds(exc),
            status_code=status_code,
        )
    if status_code == 403:
        return ProviderPermissionDeniedError(detail, provider="youtube", status_code=status_code)
    if status_code == 404:
        return ProviderNotFoundError(detail, provider="youtube", status_code=status_code)
    return ProviderError(detail, provider="youtube", status_code=status_code)


def _extract_status_code(exc: Exception) -> int | None:
    response = getattr(exc, "resp", None)
    raw_status = getattr(response, "status", None)
    if raw_status is None:
        raw_status = getattr(exc, "status_code", None)
    try:
        return int(raw_status) if raw_status is not None else None
    except (TypeError, ValueError):
        return None


def _extract_error_reason(exc: Exception) -> str | None:
    raw_content = getattr(exc, "content", None)
    if isinstance(raw_content, bytes):
        raw_content = raw_content.decode("utf-8", errors="replace")
    if not isinstance(raw_content, str) or not raw_content.strip():
        return None
    try:
        parsed = json.loads(raw_content)
    except json.JSONDecodeError:
        return None
    error = _as_dict(_as_dict(parsed).get("error"))
    for raw_detail in _as_list(error.get("errors")):
        reason = _coerce_nonempty_string(_as_dict(raw_detail).get("reason"))
        if reason is not None:
            return reason
    return _coerce_nonempty_string(error.get("message"))


def _extract_retry_after_seconds(exc: Exception) -> float | None:
    response = getattr(exc, "resp", None)
    headers = getattr(response, "headers", None) if response is not None else None
    if headers is None:
        headers = response
    if headers is None or not hasattr(headers, "get"):
        return None
    raw_value = headers.get("Retry-After") or headers.get("retry-after")
    if not isinstance(raw_value, str):
        return None
    try:
        return max(0.0, float(raw_value.strip()))
    except ValueError:
        return None


def _source_item_from_playlist_entry(entry: dict[str, Any]) -> SourceItem:
    snippet = _as_dict(entry.get("snippet"))
    video_id = _coerce_nonempty_string(_as_dict(snippet.get("resourceId")).get("videoId"))
    raw_title = _coerce_nonempty_string(snippet.get("title"))
    owner_channel = _coerce_nonempty_string(snippet.get("videoOwnerChannelTitle"))

    title = html.unescape(raw_title).strip() if raw_title is not None else None
    if title is None or title.lower() in _UNAVAILABLE_VIDEO_TITLES:
        return SourceItem(title=None, kind="video", source_id=video_id, payload=entry)

    artist: str | None = None
    split_title = _TITLE_ARTIST_SEPARATOR_RE.split(title, maxsplit=1)
    if len(split_title) == 2 and split_title[0].strip() and split_title[1].strip():
        artist, title = split_title[0].strip(), split_title[1].strip()
    elif owner_channel is not None:
        artist = _CHANNEL_SUFFIX_RE.sub("", html.unescape(owner_channel)).strip() or None

    return SourceItem(
        title=title,
        primary_artist=artist,
        artists=(artist,) if artist is not None else (),
        kind="video",
        source_id=video_id,
        payload=entry,
    )


def _summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
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
