from __future__ import annotations

from typing import Any

import pytest
from fakes import FakeProvider, track
from fastapi.testclient import TestClient

from playlist_bridge.dependencies import get_spotify_client, get_youtube_client
from playlist_bridge.services.conversion_pipeline import ConversionPipeline
from playlist_bridge.services.providers.base import (
    ProviderAuthError,
    ProviderError,
    ProviderNotFoundError,
    ProviderQuotaExceededError,
)
from playlist_bridge.services.providers.youtube_client import QuotaProbe
from playlist_bridge.services.quota_ledger import QuotaPolicy

YOUTUBE_COSTS = {"playlist.create": 50, "catalog.search": 100, "playlist.append": 50}


def _install_pipeline(
    monkeypatch: pytest.MonkeyPatch,
    source: FakeProvider,
    destination: FakeProvider,
    *,
    budget: int = 10_000,
) -> list[str]:
    directions: list[str] = []

    def _build(direction: str) -> ConversionPipeline:
        directions.append(direction)
        return ConversionPipeline(
            source=source,
            destination=destination,
            quota_policy=QuotaPolicy(budget=budget, cost_table=YOUTUBE_COSTS),
            item_delay_seconds=0,
        )

    monkeypatch.setattr("playlist_bridge.api.routes.build_pipeline", _build)
    return directions


def _spotify_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "spotify_token": "sp-token",
        "youtube_token": "yt-token",
        "spotify_playlist_id": "https://open.spotify.com/playlist/src1",
        "new_playlist_name": "Converted",
    }
    body.update(overrides)
    return body


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


def test_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"


def test_spotify_to_youtube_returns_report(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    source = FakeProvider(
        name="spotify",
        playlists={"src1": [track("Song A", "Artist A"), track(None), track("Song C", "Artist C")]},
    )
    destination = FakeProvider(name="youtube")
    directions = _install_pipeline(monkeypatch, source, destination)

    response = client.post("/convert/spotify-to-youtube", json=_spotify_body())

    assert response.status_code == 200
    payload = response.json()
    assert directions == ["spotify-to-youtube"]
    assert payload["playlist_id"] == "youtube-playlist-1"
    assert payload["stats"] == {
        "total_source": 3,
        "processed": 3,
        "added": 2,
        "skipped": 1,
        "quota_used": 50 + 2 * 150,
        "estimated_max_items": (10_000 - 350) // 150 + 2,
    }
    assert payload["truncated"] is False
    assert payload["stop_reason"] == "completed"
    assert payload["warning"] is None
    assert [outcome["status"] for outcome in payload["outcomes"]] == ["added", "skipped", "added"]
    assert payload["outcomes"][1]["skip_reason"] == "no_results"


def test_spotify_to_youtube_applies_default_batch_limit(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    items = [track(f"Song {index}", f"Artist {index}") for index in range(12)]
    source = FakeProvider(name="spotify", playlists={"src1": items})
    _install_pipeline(monkeypatch, source, FakeProvider(name="youtube"))

    response = client.post("/convert/spotify-to-youtube", json=_spotify_body())

    payload = response.json()
    assert payload["stats"]["processed"] == 10
    assert payload["truncated"] is True
    assert payload["stop_reason"] == "batch_limit"
    assert payload["warning"] == "Batch limit reached; 2 source items were not processed."


def test_quota_truncation_is_still_a_success(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    source = FakeProvider(
        name="spotify",
        playlists={"src1": [track("Song A", "Artist A"), track("Song B", "Artist B")]},
    )
    destination = FakeProvider(name="youtube")
    destination.search_errors['"Song B" "Artist B"'] = ProviderQuotaExceededError(
        "quotaExceeded",
        provider="youtube",
        status_code=403,
    )
    _install_pipeline(monkeypatch, source, destination)

    response = client.post("/convert/spotify-to-youtube", json=_spotify_body(batch_size=5))

    assert response.status_code == 200
    payload = response.json()
    assert payload["stop_reason"] == "provider_quota_denied"
    assert payload["warning"].startswith("Quota exhausted")


def test_youtube_to_spotify_direction(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    source = FakeProvider(name="youtube", playlists={"PL1": [track("Song A", "Artist A")]})
    destination = FakeProvider(name="spotify", scopes_playlists_to_user=True)
    directions = _install_pipeline(monkeypatch, source, destination)

    response = client.post(
        "/convert/youtube-to-spotify",
        json={
            "youtube_token": "yt-token",
            "spotify_token": "sp-token",
            "youtube_playlist_id": "https://www.youtube.com/playlist?list=PL1",
            "new_playlist_name": "Back Again",
            "optimize_quota": False,
        },
    )

    assert response.status_code == 200
    assert directions == ["youtube-to-spotify"]
    assert response.json()["stats"]["added"] == 1
    assert destination.created[0]["owner_id"] == "user-1"


def test_missing_field_maps_to_400(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    source = FakeProvider(name="spotify")
    _install_pipeline(monkeypatch, source, FakeProvider(name="youtube"))

    response = client.post("/convert/spotify-to-youtube", json=_spotify_body(spotify_token=""))

    assert response.status_code == 400
    assert source.calls == []


def test_invalid_identifier_maps_to_400(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _install_pipeline(monkeypatch, FakeProvider(name="spotify"), FakeProvider(name="youtube"))

    response = client.post(
        "/convert/spotify-to-youtube",
        json=_spotify_body(spotify_playlist_id="https://example.com/nothing here"),
    )

    assert response.status_code == 400
    assert "Invalid Spotify playlist" in response.json()["detail"]


def test_unknown_body_fields_are_rejected(client: TestClient) -> None:
    response = client.post("/convert/spotify-to-youtube", json=_spotify_body(extra_field=True))

    assert response.status_code == 422


@pytest.mark.parametrize(
    ("error", "expected_status"),
    [
        (ProviderAuthError("expired", provider="spotify", status_code=401), 401),
        (ProviderNotFoundError("gone", provider="spotify", status_code=404), 404),
        (ProviderQuotaExceededError("quota", provider="spotify", status_code=403), 403),
        (ProviderError("upstream", provider="spotify", status_code=500), 502),
    ],
)
def test_setup_failures_map_to_status_codes(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    error: ProviderError,
    expected_status: int,
) -> None:
    source = FakeProvider(name="spotify", playlists={"src1": [track("Song A", "Artist A")]})
    source.fetch_error = error
    _install_pipeline(monkeypatch, source, FakeProvider(name="youtube"))

    response = client.post("/convert/spotify-to-youtube", json=_spotify_body())

    assert response.status_code == expected_status


def test_auth_failure_mid_run_returns_partial_report(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
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

    response = client.post("/convert/spotify-to-youtube", json=_spotify_body())

    assert response.status_code == 401
    detail = response.json()["detail"]
    assert detail["provider"] == "youtube"
    assert detail["partial_report"]["stats"]["added"] == 1


def test_list_spotify_playlists_requires_bearer_token(client: TestClient) -> None:
    assert client.get("/spotify/playlists").status_code == 401
    assert (
        client.get("/spotify/playlists", headers={"Authorization": "Basic abc"}).status_code
        == 401
    )


def test_list_playlists_uses_bearer_token(client: TestClient) -> None:
    spotify = FakeProvider(name="spotify", playlists={"p1": [track("Song A", "Artist A")]})
    youtube = FakeProvider(name="youtube", playlists={"PL1": []})
    app: Any = client.app
    app.dependency_overrides[get_spotify_client] = lambda: spotify
    app.dependency_overrides[get_youtube_client] = lambda: youtube

    spotify_response = client.get(
        "/spotify/playlists",
        headers={"Authorization": "Bearer sp-token"},
    )
    youtube_response = client.get(
        "/youtube/playlists",
        headers={"Authorization": "Bearer yt-token"},
    )

    assert spotify_response.status_code == 200
    assert spotify_response.json() == {
        "provider": "spotify",
        "playlists": [{"playlist_id": "p1", "name": "p1", "item_count": 1}],
    }
    assert youtube_response.json()["provider"] == "youtube"
    assert spotify.calls == [("list_playlists", "sp-token")]
    assert youtube.calls == [("list_playlists", "yt-token")]


class _FakeProbeClient:
    def __init__(self, probe: QuotaProbe | None = None, error: ProviderError | None = None) -> None:
        self._probe = probe
        self._error = error
        self.tokens: list[str] = []

    def probe_quota(self, token: str) -> QuotaProbe:
        self.tokens.append(token)
        if self._error is not None:
            raise self._error
        assert self._probe is not None
        return self._probe


def test_youtube_quota_usage_reports_probe(client: TestClient) -> None:
    probe_client = _FakeProbeClient(QuotaProbe(status="quota_exceeded", message="quota"))
    app: Any = client.app
    app.dependency_overrides[get_youtube_client] = lambda: probe_client

    response = client.get("/youtube/quota-usage", headers={"Authorization": "Bearer yt"})

    assert response.status_code == 200
    assert response.json() == {
        "status": "quota_exceeded",
        "message": "quota",
        "estimated_units": 1,
    }
    assert probe_client.tokens == ["yt"]


def test_youtube_quota_usage_maps_auth_failure(client: TestClient) -> None:
    probe_client = _FakeProbeClient(
        error=ProviderAuthError("expired", provider="youtube", status_code=401)
    )
    app: Any = client.app
    app.dependency_overrides[get_youtube_client] = lambda: probe_client

    response = client.get("/youtube/quota-usage", headers={"Authorization": "Bearer yt"})

    assert response.status_code == 401
