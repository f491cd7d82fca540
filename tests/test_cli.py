from __future__ import annotations

import pytest
from click.testing import CliRunner
from fakes import FakeProvider, track

from playlist_bridge.cli import main
from playlist_bridge.services.conversion_pipeline import ConversionPipeline
from playlist_bridge.services.providers.base import ProviderAuthError
from playlist_bridge.services.providers.youtube_client import QuotaProbe
from playlist_bridge.services.quota_ledger import QuotaPolicy

YOUTUBE_COSTS = {"playlist.create": 50, "catalog.search": 100, "playlist.append": 50}


def _install_pipeline(
    monkeypatch: pytest.MonkeyPatch,
    source: FakeProvider,
    destination: FakeProvider,
) -> list[str]:
    directions: list[str] = []

    def _build(direction: str) -> ConversionPipeline:
        directions.append(direction)
        return ConversionPipeline(
            source=source,
            destination=destination,
            quota_policy=QuotaPolicy(budget=10_000, cost_table=YOUTUBE_COSTS),
            item_delay_seconds=0,
        )

    monkeypatch.setattr("playlist_bridge.cli.build_pipeline", _build)
    return directions


def test_convert_spotify_to_youtube_prints_report(monkeypatch: pytest.MonkeyPatch) -> None:
    source = FakeProvider(
        name="spotify",
        playlists={"src1": [track("Song A", "Artist A"), track("Song B", "Artist B")]},
    )
    destination = FakeProvider(name="youtube")
    directions = _install_pipeline(monkeypatch, source, destination)

    result = CliRunner().invoke(
        main,
        [
            "convert",
            "spotify-to-youtube",
            "https://open.spotify.com/playlist/src1",
            "Road Trip",
            "--spotify-token",
            "sp",
            "--youtube-token",
            "yt",
            "--show-items",
        ],
    )

    assert result.exit_code == 0, result.output
    assert directions == ["spotify-to-youtube"]
    assert "Conversion report" in result.output
    assert "youtube-playlist-1" in result.output
    assert "completed" in result.output
    assert "Song A" in result.output
    assert len(destination.appended) == 2


def test_convert_reads_tokens_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    source = FakeProvider(name="youtube", playlists={"PL1": [track("Song A", "Artist A")]})
    destination = FakeProvider(name="spotify", scopes_playlists_to_user=True)
    directions = _install_pipeline(monkeypatch, source, destination)
    monkeypatch.setenv("PLAYLIST_BRIDGE_SPOTIFY_TOKEN", "sp")
    monkeypatch.setenv("PLAYLIST_BRIDGE_YOUTUBE_TOKEN", "yt")

    result = CliRunner().invoke(main, ["convert", "youtube-to-spotify", "PL1", "Mirror", "--broad"])

    assert result.exit_code == 0, result.output
    assert directions == ["youtube-to-spotify"]
    assert source.calls[0] == ("fetch", "PL1")
    assert destination.searches[0][0] == "Song A Artist A official audio"


def test_convert_requires_tokens(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PLAYLIST_BRIDGE_SPOTIFY_TOKEN", raising=False)
    monkeypatch.delenv("PLAYLIST_BRIDGE_YOUTUBE_TOKEN", raising=False)

    result = CliRunner().invoke(main, ["convert", "spotify-to-youtube", "src1", "Mix"])

    assert result.exit_code == 2
    assert "Missing option" in result.output


def test_convert_reports_precondition_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_pipeline(monkeypatch, FakeProvider(name="spotify"), FakeProvider(name="youtube"))

    result = CliRunner().invoke(
        main,
        [
            "convert",
            "spotify-to-youtube",
            "not a playlist!",
            "Mix",
            "--spotify-token",
            "sp",
            "--youtube-token",
            "yt",
        ],
    )

    assert result.exit_code == 1
    assert "Invalid Spotify playlist" in result.output


def test_convert_prints_partial_report_on_auth_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    source = FakeProvider(
        name="spotify",
        playlists={"src1": [track("Song A", "Artist A"), track("Song B", "Artist B")]},
    )
    destination = FakeProvider(name="youtube")
    destination.search_errors['"Song B" "Artist B"'] = ProviderAuthError(
        "token expired",
        provider="youtube",
        status_code=401,
    )
    _install_pipeline(monkeypatch, source, destination)

    result = CliRunner().invoke(
        main,
        [
            "convert",
            "spotify-to-youtube",
            "src1",
            "Mix",
            "--spotify-token",
            "sp",
            "--youtube-token",
            "yt",
        ],
    )

    assert result.exit_code == 1
    assert "Conversion report" in result.output
    assert "Authorization failed" in result.output


class _FakeProbeClient:
    def __init__(self, probe: QuotaProbe) -> None:
        self._probe = probe

    def probe_quota(self, token: str) -> QuotaProbe:
        _ = token
        return self._probe


@pytest.mark.parametrize(
    ("status", "expected_exit_code"),
    [("available", 0), ("quota_exceeded", 1), ("access_denied", 1)],
)
def test_quota_command_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    status: str,
    expected_exit_code: int,
) -> None:
    probe = QuotaProbe(status=status, message="probe message")  # type: ignore[arg-type]
    monkeypatch.setattr("playlist_bridge.cli.get_youtube_client", lambda: _FakeProbeClient(probe))

    result = CliRunner().invoke(main, ["quota", "--youtube-token", "yt"])

    assert result.exit_code == expected_exit_code
    assert status in result.output
    assert "probe message" in result.output
