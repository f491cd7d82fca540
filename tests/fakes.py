"""In-memory provider fakes shared by the pipeline, API and CLI tests."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence

from playlist_bridge.services.playlist_ids import (
    extract_spotify_playlist_id,
    extract_youtube_playlist_id,
)
from playlist_bridge.services.providers.base import (
    PlaylistSummary,
    ProviderError,
    ProviderName,
    SearchCandidate,
    SourceItem,
)


def track(title: str | None, artist: str | None = None, *more_artists: str) -> SourceItem:
    artists = tuple(name for name in (artist, *more_artists) if name is not None)
    return SourceItem(title=title, primary_artist=artist, artists=artists)


class FakeProvider:
    """In-memory catalog that records every call made against it."""

    def __init__(
        self,
        *,
        name: ProviderName,
        playlists: Mapping[str, Sequence[SourceItem]] | None = None,
        search_results: Mapping[str, Sequence[SearchCandidate]] | None = None,
        scopes_playlists_to_user: bool = False,
    ) -> None:
        self._name: ProviderName = name
        self._scopes_playlists_to_user = scopes_playlists_to_user
        self.playlists: dict[str, list[SourceItem]] = {
            playlist_id: list(items) for playlist_id, items in (playlists or {}).items()
        }
        self.search_results: dict[str, list[SearchCandidate]] = {
            query: list(results) for query, results in (search_results or {}).items()
        }
        self.fetch_error: ProviderError | None = None
        self.create_error: ProviderError | None = None
        self.search_errors: dict[str, ProviderError] = {}
        self.append_errors: dict[str, ProviderError] = {}
        self.on_search: Callable[[str], None] | None = None
        self.calls: list[tuple[str, str]] = []
        self.searches: list[tuple[str, int]] = []
        self.created: list[dict[str, str | None]] = []
        self.appended: list[tuple[str, str]] = []

    @property
    def name(self) -> ProviderName:
        return self._name

    @property
    def scopes_playlists_to_user(self) -> bool:
        return self._scopes_playlists_to_user

    def extract_playlist_id(self, raw_value: str) -> str:
        if self._name == "spotify":
            return extract_spotify_playlist_id(raw_value)
        return extract_youtube_playlist_id(raw_value)

    def fetch_playlist_items(self, playlist_id: str, token: str) -> list[SourceItem]:
        self.calls.append(("fetch", playlist_id))
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.playlists.get(playlist_id, []))

    def create_playlist(
        self,
        name: str,
        description: str,
        token: str,
        *,
        owner_id: str | None = None,
    ) -> str:
        self.calls.append(("create", name))
        if self.create_error is not None:
            raise self.create_error
        self.created.append({"name": name, "description": description, "owner_id": owner_id})
        return f"{self._name}-playlist-{len(self.created)}"

    def search_catalog(self, query: str, token: str, max_results: int) -> list[SearchCandidate]:
        self.calls.append(("search", query))
        self.searches.append((query, max_results))
        if self.on_search is not None:
            self.on_search(query)
        error = self.search_errors.get(query)
        if error is not None:
            raise error
        if query in self.search_results:
            return list(self.search_results[query])[:max_results]
        return [
            SearchCandidate(
                candidate_id=f"match-{len(self.searches)}",
                title=query,
                channel_name="Uploader",
                rank=0,
            )
        ]

    def append_item(self, playlist_id: str, candidate_id: str, token: str) -> None:
        self.calls.append(("append", candidate_id))
        error = self.append_errors.get(candidate_id)
        if error is not None:
            raise error
        self.appended.append((playlist_id, candidate_id))

    def resolve_user_id(self, token: str) -> str:
        self.calls.append(("resolve_user_id", token))
        return "user-1"

    def list_playlists(self, token: str) -> list[PlaylistSummary]:
        self.calls.append(("list_playlists", token))
        return [
            PlaylistSummary(playlist_id=playlist_id, name=playlist_id, item_count=len(items))
            for playlist_id, items in self.playlists.items()
        ]
