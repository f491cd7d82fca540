from __future__ import annotations

import logging
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Depends, Header, HTTPException

from playlist_bridge.config import AppSettings
from playlist_bridge.dependencies import (
    ConversionDirection,
    build_pipeline,
    get_settings,
    get_spotify_client,
    get_youtube_client,
)
from playlist_bridge.models.conversion_contracts import (
    ConversionResponse,
    PlaylistListResponse,
    PlaylistSummaryModel,
    QuotaProbeResponse,
    SpotifyToYouTubeRequest,
    YouTubeToSpotifyRequest,
)
from playlist_bridge.services.conversion_pipeline import ConversionRequest
from playlist_bridge.services.playlist_ids import PreconditionError
from playlist_bridge.services.providers.base import (
    ProviderAuthError,
    ProviderClient,
    ProviderError,
    ProviderNotFoundError,
    ProviderPermissionDeniedError,
    ProviderQuotaExceededError,
)
from playlist_bridge.services.providers.spotify_client import SpotifyClient
from playlist_bridge.services.providers.youtube_client import YouTubeClient

LOGGER = logging.getLogger("playlist_bridge.api")

router = APIRouter()


def _bearer_token(authorization: str | None) -> str:
    if authorization is None:
        raise HTTPException(status_code=401, detail="Missing Authorization header.")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=401,
            detail="Authorization header must use the Bearer scheme.",
        )
    return token.strip()


def _raise_http_error(exc: Exception) -> NoReturn:
    if isinstance(exc, PreconditionError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, ProviderAuthError):
        detail: dict[str, Any] = {"message": str(exc), "provider": exc.provider}
        if exc.partial_report is not None:
            detail["partial_report"] = ConversionResponse.from_report(
                exc.partial_report
            ).model_dump(mode="json")
        raise HTTPException(status_code=401, detail=detail) from exc
    if isinstance(exc, ProviderNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, (ProviderQuotaExceededError, ProviderPermissionDeniedError)):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    if isinstance(exc, ProviderError):
        LOGGER.warning("provider failure provider=%s error=%s", exc.provider, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    raise exc


def _run_conversion(
    request: ConversionRequest,
    *,
    direction: ConversionDirection,
) -> ConversionResponse:
    settings = get_settings()
    pipeline = build_pipeline(direction)
    try:
        report = pipeline.run(request, deadline_seconds=settings.run_deadline_seconds)
    except (PreconditionError, ProviderError) as exc:
        _raise_http_error(exc)
    return ConversionResponse.from_report(report)


@router.post(
    "/convert/spotify-to-youtube",
    response_model=ConversionResponse,
    tags=["conversion"],
    operation_id="convert_spotify_to_youtube",
)
def convert_spotify_to_youtube(
    request: SpotifyToYouTubeRequest,
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> ConversionResponse:
    batch_limit = (
        request.batch_size if request.batch_size is not None else settings.default_batch_limit
    )
    return _run_conversion(
        ConversionRequest(
            source_token=request.spotify_token,
            destination_token=request.youtube_token,
            source_playlist=request.spotify_playlist_id,
            playlist_name=request.new_playlist_name,
            precise=request.optimize_quota,
            batch_limit=batch_limit,
        ),
        direction="spotify-to-youtube",
    )


@router.post(
    "/convert/youtube-to-spotify",
    response_model=ConversionResponse,
    tags=["conversion"],
    operation_id="convert_youtube_to_spotify",
)
def convert_youtube_to_spotify(request: YouTubeToSpotifyRequest) -> ConversionResponse:
    return _run_conversion(
        ConversionRequest(
            source_token=request.youtube_token,
            destination_token=request.spotify_token,
            source_playlist=request.youtube_playlist_id,
            playlist_name=request.new_playlist_name,
            precise=request.optimize_quota,
            batch_limit=request.batch_size,
        ),
        direction="youtube-to-spotify",
    )


def _list_playlists(client: ProviderClient, authorization: str | None) -> PlaylistListResponse:
    token = _bearer_token(authorization)
    try:
        summaries = client.list_playlists(token)
    except ProviderError as exc:
        _raise_http_error(exc)
    return PlaylistListResponse(
        provider=client.name,
        playlists=[PlaylistSummaryModel.from_summary(summary) for summary in summaries],
    )


@router.get(
    "/spotify/playlists",
    response_model=PlaylistListResponse,
    tags=["playlists"],
    operation_id="list_spotify_playlists",
)
def list_spotify_playlists(
    client: Annotated[SpotifyClient, Depends(get_spotify_client)],
    authorization: Annotated[str | None, Header()] = None,
) -> PlaylistListResponse:
    return _list_playlists(client, authorization)


@router.get(
    "/youtube/playlists",
    response_model=PlaylistListResponse,
    tags=["playlists"],
    operation_id="list_youtube_playlists",
)
def list_youtube_playlists(
    client: Annotated[YouTubeClient, Depends(get_youtube_client)],
    authorization: Annotated[str | None, Header()] = None,
) -> PlaylistListResponse:
    return _list_playlists(client, authorization)


@router.get(
    "/youtube/quota-usage",
    response_model=QuotaProbeResponse,
    tags=["quota"],
    operation_id="youtube_quota_usage",
)
def youtube_quota_usage(
    client: Annotated[YouTubeClient, Depends(get_youtube_client)],
    authorization: Annotated[str | None, Header()] = None,
) -> QuotaProbeResponse:
    token = _bearer_token(authorization)
    try:
        probe = client.probe_quota(token)
    except ProviderError as exc:
        _raise_http_error(exc)
    return QuotaProbeResponse(
        status=probe.status,
        message=probe.message,
        estimated_units=probe.estimated_units,
    )
