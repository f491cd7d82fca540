from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Literal

from playlist_bridge.services.providers.base import SourceItem

QueryStrategy = Literal["precise", "broad"]

DEFAULT_BROAD_QUALIFIER = "official audio"

_FEATURE_MARKER = r"(?:\bfeat\.|\bft\.|\bfeat\b|\bft\b|\bfeaturing\b|\bwith\s)"
_QUALIFIED_SEGMENT_RE = re.compile(
    r"[\(\[][^\(\)\[\]]*?(?:" + _FEATURE_MARKER + r"|remix|\blive\b)[^\(\)\[\]]*[\)\]]",
    re.IGNORECASE,
)
_TRAILING_FEATURE_RE = re.compile(r"\s+(?:feat\.|featuring|ft\.)\s+.*$", re.IGNORECASE)
_BRACKETED_RE = re.compile(r"\[[^\]]*\]")
_PARENTHESISED_RE = re.compile(r"\([^\)]*\)")
_ARTIST_SEPARATOR_RE = re.compile(
    r"\s*(?:&|;|\s(?:feat\.|featuring|ft\.)\s).*$",
    re.IGNORECASE,
)
_MAX_CLEAN_PASSES = 5
_VIDEO_NOISE_RE = re.compile(
    r"\b(?:official\s+music\s+video|official\s+video|official\s+audio|"
    r"lyrics?\s+video|lyrics|visuali[sz]er)\b",
    re.IGNORECASE,
)
_EDGE_PUNCTUATION = " -–—|:~/"
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizedQuery:
    text: str
    strategy: QueryStrategy
    title: str
    artist: str

    def __str__(self) -> str:
        return self.text


class QueryNormalizer:
    """Builds catalog search strings from source playlist entries.

    Titles lose feature/remix/live qualifiers and every bracketed segment;
    artists keep only the first name of a joined credit. Video titles are
    additionally stripped of upload noise such as "official music video".
    """

    def __init__(self, *, broad_qualifier: str = DEFAULT_BROAD_QUALIFIER) -> None:
        self._broad_qualifier = _collapse(broad_qualifier)

    def normalize(
        self,
        item: SourceItem,
        *,
        strategy: QueryStrategy = "precise",
    ) -> NormalizedQuery | None:
        if item.title is None:
            return None
        title = clean_title(item.title, video=item.kind == "video")
        artist = clean_artist(_primary_artist(item))
        if not title or not artist:
            return None

        if strategy == "precise":
            text = f'"{title}" "{artist}"'
        else:
            text = _collapse(f"{title} {artist} {self._broad_qualifier}")
        return NormalizedQuery(text=text, strategy=strategy, title=title, artist=artist)


def clean_title(raw_title: str, *, video: bool = False) -> str:
    text = _collapse(unicodedata.normalize("NFKC", raw_title))
    # Stripping can expose a new noise phrase; repeat until stable.
    for _ in range(_MAX_CLEAN_PASSES):
        cleaned = _clean_title_once(text, video=video)
        if cleaned == text:
            break
        text = cleaned
    return text


def _clean_title_once(text: str, *, video: bool) -> str:
    text = _QUALIFIED_SEGMENT_RE.sub(" ", text)
    text = _BRACKETED_RE.sub(" ", text)
    text = _TRAILING_FEATURE_RE.sub("", text)
    if video:
        text = _PARENTHESISED_RE.sub(" ", text)
        text = _VIDEO_NOISE_RE.sub(" ", text)
    return _collapse(text).strip(_EDGE_PUNCTUATION)


def clean_artist(raw_artist: str | None) -> str:
    if raw_artist is None:
        return ""
    text = _collapse(unicodedata.normalize("NFKC", raw_artist))
    text = _ARTIST_SEPARATOR_RE.sub("", text)
    return _collapse(text).strip(_EDGE_PUNCTUATION)


def _primary_artist(item: SourceItem) -> str | None:
    if item.primary_artist is not None and item.primary_artist.strip():
        return item.primary_artist
    for artist in item.artists:
        if artist.strip():
            return artist
    return None


def _collapse(value: str) -> str:
    return _WS_RE.sub(" ", value).strip()
