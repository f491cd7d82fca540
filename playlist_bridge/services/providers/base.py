from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

ProviderName = Literal["spotify", "youtube"]
SourceItemKind = Literal["track", "video"]


def _empty_payload() -> Mapping[str, Any]:
    return {}


@dataclass(frozen=True)
class SourceItem:
    """One entry of a source playlist, in source order.

    ``title`` and ``primary_artist`` are ``None`` when the provider returned
    an entry without usable metadata (removed tracks, private videos). Such
    items still count toward the source total.
    """

    title: str | None
    primary_artist: str | None = None
    artists: tuple[str, ...] = ()
    kind: SourceItemKind = "track"
    source_id: str | None = None
    payload: Mapping[str, Any] = field(default_factory=_empty_payload, compare=False)


@dataclass(frozen=True)
class SearchCandidate:
    candidate_id: str
    title: str
    channel_name: str
    rank: int


@dataclass(frozen=True)
class PlaylistSummary:
    playlist_id: str
    name: str
    item_count: int | None = None


class ProviderError(Exception):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider=provider, status_code=status_code)
        # Filled in by the pipeline when the failure happens mid-run.
        self.partial_report: Any | None = None


class ProviderNotFoundError(ProviderError):
    pass


class ProviderQuotaExceededError(ProviderError):
    pass


class ProviderPermissionDeniedError(ProviderError):
    pass


class ProviderRateLimitedError(ProviderError):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        retry_after_seconds: float | None = None,
        status_code: int | None = 429,
    ) -> None:
        super().__init__(message, provider=provider, status_code=status_code)
        self.retry_after_seconds = retry_after_seconds


class ProviderClient(Protocol):
    """Capabilities the conversion engine consumes from a catalog."""

    @property
    def name(self) -> ProviderName:
        ...

    @property
    def scopes_playlists_to_user(self) -> bool:
        ...

    def extract_playlist_id(self, raw_value: str) -> str:
        ...

    def fetch_playlist_items(self, playlist_id: str, token: str) -> list[SourceItem]:
        ...

    def create_playlist(
        self,
        name: str,
        description: str,
        token: str,
        *,
        owner_id: str | None = None,
    ) -> str:
        ...

    def search_catalog(
        self,
        query: str,
        token: str,
        max_results: int,
    ) -> Sequence[SearchCandidate]:
        ...

    def append_item(self, playlist_id: str, candidate_id: str, token: str) -> None:
        ...

    def resolve_user_id(self, token: str) -> str:
        ...

    def list_playlists(self, token: str) -> list[PlaylistSummary]:
        ...
