from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from playlist_bridge.services.conversion_pipeline import (
    Accepted,
    ConversionReport,
    ItemOutcome,
    SkipReason,
    StopReason,
)
from playlist_bridge.services.providers.base import PlaylistSummary
from playlist_bridge.services.providers.youtube_client import QuotaProbeStatus


class SpotifyToYouTubeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    spotify_token: str
    youtube_token: str
    spotify_playlist_id: str = Field(description="Spotify playlist URL, URI or bare id.")
    new_playlist_name: str
    batch_size: int | None = Field(
        default=None,
        description="Maximum source tracks to convert. Falls back to the configured default.",
    )
    optimize_quota: bool = Field(
        default=True,
        description="Precise matching: quoted queries and up to three ranked candidates.",
    )


class YouTubeToSpotifyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    youtube_token: str
    spotify_token: str
    youtube_playlist_id: str = Field(description="YouTube playlist URL or bare id.")
    new_playlist_name: str
    batch_size: int | None = None
    optimize_quota: bool = True


class ConversionStats(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_source: int
    processed: int
    added: int
    skipped: int
    quota_used: int
    estimated_max_items: int


class ItemOutcomeModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    index: int
    query: str | None = None
    status: Literal["added", "skipped"]
    candidate_id: str | None = None
    candidate_title: str | None = None
    skip_reason: SkipReason | None = None
    detail: str | None = None

    @classmethod
    def from_outcome(cls, outcome: ItemOutcome) -> ItemOutcomeModel:
        decision = outcome.decision
        if isinstance(decision, Accepted):
            return cls(
                index=outcome.index,
                query=outcome.query,
                status="added",
                candidate_id=decision.candidate_id,
                candidate_title=decision.candidate_title,
            )
        return cls(
            index=outcome.index,
            query=outcome.query,
            status="skipped",
            skip_reason=decision.reason,
            detail=decision.detail,
        )


class ConversionResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str
    playlist_id: str
    stats: ConversionStats
    truncated: bool
    stop_reason: StopReason
    warning: str | None = None
    outcomes: list[ItemOutcomeModel] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ConversionReport) -> ConversionResponse:
        return cls(
            message=(
                f"Playlist converted: {report.added} of {report.total_source} items added."
            ),
            playlist_id=report.destination_playlist_id,
            stats=ConversionStats(
                total_source=report.total_source,
                processed=report.processed,
                added=report.added,
                skipped=report.skipped,
                quota_used=report.quota_used,
                estimated_max_items=report.estimated_max_items,
            ),
            truncated=report.truncated,
            stop_reason=report.stop_reason,
            warning=_warning_for(report),
            outcomes=[ItemOutcomeModel.from_outcome(outcome) for outcome in report.outcomes],
        )


def _warning_for(report: ConversionReport) -> str | None:
    if not report.truncated:
        return None
    remaining = report.total_source - report.processed
    if report.stop_reason == "batch_limit":
        return f"Batch limit reached; {remaining} source items were not processed."
    if report.stop_reason in ("quota_exhausted", "provider_quota_denied"):
        return f"Quota exhausted; {remaining} source items were not processed."
    if report.stop_reason == "deadline_exceeded":
        return f"Run deadline exceeded; {remaining} source items were not processed."
    return f"Run cancelled; {remaining} source items were not processed."


class PlaylistSummaryModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    playlist_id: str
    name: str
    item_count: int | None = None

    @classmethod
    def from_summary(cls, summary: PlaylistSummary) -> PlaylistSummaryModel:
        return cls(
            playlist_id=summary.playlist_id,
            name=summary.name,
            item_count=summary.item_count,
        )


class PlaylistListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    provider: Literal["spotify", "youtube"]
    playlists: list[PlaylistSummaryModel] = Field(default_factory=list)


class QuotaProbeResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: QuotaProbeStatus
    message: str
    estimated_units: int
