from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from playlist_bridge.dependencies import reset_cached_dependencies
from playlist_bridge.main import create_app


@pytest.fixture(autouse=True)
def _isolated_runtime(  # pyright: ignore[reportUnusedFunction]
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Iterator[None]:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PLAYLIST_BRIDGE_DATA_DIR", str(tmp_path / "runtime-data"))
    reset_cached_dependencies()
    yield
    reset_cached_dependencies()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setenv("PLAYLIST_BRIDGE_YOUTUBE_ITEM_DELAY_SECONDS", "0")
    monkeypatch.setenv("PLAYLIST_BRIDGE_SPOTIFY_ITEM_DELAY_SECONDS", "0")
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
