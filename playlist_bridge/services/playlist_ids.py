from __future__ import annotations

import re


class PreconditionError(ValueError):
    pass


class InvalidIdentifierError(PreconditionError):
    pass


_SPOTIFY_URL_PATTERN = re.compile(r"playlist[/:]([A-Za-z0-9]+)")
_SPOTIFY_BARE_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
_YOUTUBE_URL_PATTERN = re.compile(r"[?&]list=([A-Za-z0-9_-]+)")
_YOUTUBE_BARE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def extract_spotify_playlist_id(raw_value: str | None) -> str:
    """Accept a bare id, an open.spotify.com URL or a ``spotify:playlist:`` URI."""
    return _extract(
        raw_value,
        url_pattern=_SPOTIFY_URL_PATTERN,
        bare_pattern=_SPOTIFY_BARE_PATTERN,
        provider_label="Spotify",
    )


def extract_youtube_playlist_id(raw_value: str | None) -> str:
    """Accept a bare id or any YouTube URL carrying a ``list=`` parameter."""
    return _extract(
        raw_value,
        url_pattern=_YOUTUBE_URL_PATTERN,
        bare_pattern=_YOUTUBE_BARE_PATTERN,
        provider_label="YouTube",
    )


def _extract(
    raw_value: str | None,
    *,
    url_pattern: re.Pattern[str],
    bare_pattern: re.Pattern[str],
    provider_label: str,
) -> str:
    normalized = raw_value.strip() if isinstance(raw_value, str) else ""
    if not normalized:
        raise InvalidIdentifierError(f"Missing {provider_label} playlist ID or URL.")

    url_match = url_pattern.search(normalized)
    if url_match is not None:
        return url_match.group(1)
    if bare_pattern.match(normalized):
        return normalized

    raise InvalidIdentifierError(f"Invalid {provider_label} playlist ID or URL: {normalized}")
