from __future__ import annotations

from functools import lru_cache
from typing import Literal

from playlist_bridge.config import AppSettings, load_settings
from playlist_bridge.services.candidate_ranker import CandidateRanker
from playlist_bridge.services.conversion_pipeline import ConversionPipeline
from playlist_bridge.services.providers.base import ProviderName
from playlist_bridge.services.providers.spotify_client import SpotifyClient
from playlist_bridge.services.providers.youtube_client import YouTubeClient
from playlist_bridge.services.query_normalizer import QueryNormalizer
from playlist_bridge.services.quota_ledger import QuotaPolicy
from playlist_bridge.services.rate_limiter import SlidingWindowRateLimiter
from playlist_bridge.telemetry import TelemetryClient, build_telemetry_client

ConversionDirection = Literal["spotify-to-youtube", "youtube-to-spotify"]


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_spotify_client() -> SpotifyClient:
    settings = get_settings()
    return SpotifyClient(
        base_url=settings.spotify_api_base_url,
        http_timeout_seconds=settings.spotify_http_timeout_seconds,
        playlist_public=settings.spotify_playlist_public,
    )


@lru_cache(maxsize=1)
def get_youtube_client() -> YouTubeClient:
    settings = get_settings()
    return YouTubeClient(
        playlist_privacy=settings.youtube_playlist_privacy,
        search_category_id=settings.youtube_search_category_id,
    )


@lru_cache(maxsize=2)
def get_rate_limiter(provider: ProviderName) -> SlidingWindowRateLimiter:
    settings = get_settings()
    if provider == "youtube":
        return SlidingWindowRateLimiter(
            max_requests=settings.youtube_rate_limit_max_requests,
            window_seconds=settings.youtube_rate_limit_window_seconds,
        )
    return SlidingWindowRateLimiter(
        max_requests=settings.spotify_rate_limit_max_requests,
        window_seconds=settings.spotify_rate_limit_window_seconds,
    )


def quota_policy_for(settings: AppSettings, provider: ProviderName) -> QuotaPolicy:
    if provider == "youtube":
        return QuotaPolicy(
            budget=settings.youtube_daily_quota_limit,
            cost_table={
                "playlist.create": settings.youtube_playlist_create_cost,
                "catalog.search": settings.youtube_search_cost,
                "playlist.append": settings.youtube_playlist_append_cost,
            },
            safety_margin=settings.youtube_quota_safety_margin,
        )
    return QuotaPolicy(
        budget=settings.spotify_request_budget,
        cost_table={
            "playlist.create": 1,
            "catalog.search": 1,
            "playlist.append": 1,
        },
        safety_margin=settings.spotify_quota_safety_margin,
    )


def build_pipeline(direction: ConversionDirection) -> ConversionPipeline:
    settings = get_settings()
    spotify = get_spotify_client()
    youtube = get_youtube_client()
    normalizer = QueryNormalizer(broad_qualifier=settings.broad_query_qualifier)

    if direction == "spotify-to-youtube":
        return ConversionPipeline(
            source=spotify,
            destination=youtube,
            quota_policy=quota_policy_for(settings, "youtube"),
            normalizer=normalizer,
            ranker=CandidateRanker(),
            precise_max_results=settings.precise_max_results,
            broad_max_results=settings.broad_max_results,
            broad_fallback=settings.broad_fallback_enabled,
            item_delay_seconds=settings.youtube_item_delay_seconds,
            broad_item_delay_seconds=settings.youtube_item_delay_broad_seconds,
            rate_limiter=get_rate_limiter("youtube"),
            telemetry=get_telemetry(),
        )
    return ConversionPipeline(
        source=youtube,
        destination=spotify,
        quota_policy=quota_policy_for(settings, "spotify"),
        normalizer=normalizer,
        ranker=CandidateRanker(),
        precise_max_results=settings.precise_max_results,
        broad_max_results=settings.broad_max_results,
        broad_fallback=settings.broad_fallback_enabled,
        item_delay_seconds=settings.spotify_item_delay_seconds,
        rate_limiter=get_rate_limiter("spotify"),
        telemetry=get_telemetry(),
    )


def reset_cached_dependencies() -> None:
    get_rate_limiter.cache_clear()
    get_youtube_client.cache_clear()
    get_spotify_client.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
