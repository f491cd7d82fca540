from __future__ import annotations

from collections.abc import Sequence

from playlist_bridge.services.providers.base import SearchCandidate, SourceItem

DEFAULT_LABEL_MARKERS: tuple[str, ...] = ("records", "music")
DEFAULT_TITLE_MARKERS: tuple[str, ...] = ("official", "audio")


class CandidateRanker:
    """Picks one search result for a source item.

    In precise mode the first result in provider order that looks like an
    authoritative upload wins: the owner name contains the source artist or a
    label marker, or the title carries an "official"/"audio" marker. When no
    result qualifies the provider's top result is kept.
    """

    def __init__(
        self,
        *,
        label_markers: Sequence[str] = DEFAULT_LABEL_MARKERS,
        title_markers: Sequence[str] = DEFAULT_TITLE_MARKERS,
    ) -> None:
        self._label_markers = tuple(marker.casefold() for marker in label_markers if marker)
        self._title_markers = tuple(marker.casefold() for marker in title_markers if marker)

    def select(
        self,
        item: SourceItem,
        candidates: Sequence[SearchCandidate],
        *,
        precise: bool,
    ) -> SearchCandidate | None:
        if not candidates:
            return None
        if not precise:
            return candidates[0]

        artist = _artist_key(item)
        for candidate in candidates:
            if self._qualifies(candidate, artist):
                return candidate
        return candidates[0]

    def _qualifies(self, candidate: SearchCandidate, artist: str | None) -> bool:
        channel = candidate.channel_name.casefold()
        title = candidate.title.casefold()
        if artist and artist in channel:
            return True
        if any(marker in channel for marker in self._label_markers):
            return True
        return any(marker in title for marker in self._title_markers)


def _artist_key(item: SourceItem) -> str | None:
    raw_artist = item.primary_artist
    if raw_artist is None and item.artists:
        raw_artist = item.artists[0]
    if raw_artist is None:
        return None
    normalized = raw_artist.strip().casefold()
    return normalized or None
