from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from time import monotonic
from typing import Literal
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from playlist_bridge.services.candidate_ranker import CandidateRanker
from playlist_bridge.services.playlist_ids import PreconditionError
from playlist_bridge.services.providers.base import (
    ProviderAuthError,
    ProviderClient,
    ProviderError,
    ProviderPermissionDeniedError,
    ProviderQuotaExceededError,
    SearchCandidate,
    SourceItem,
)
from playlist_bridge.services.query_normalizer import (
    NormalizedQuery,
    QueryNormalizer,
    QueryStrategy,
)
from playlist_bridge.services.quota_ledger import QuotaExceededError, QuotaLedger, QuotaPolicy
from playlist_bridge.services.rate_limiter import SlidingWindowRateLimiter
from playlist_bridge.telemetry import TelemetryClient

LOGGER = logging.getLogger("playlist_bridge.conversion")

SkipReason = Literal[
    "no_results",
    "no_qualifying_candidate",
    "provider_error",
    "quota_exhausted",
]
StopReason = Literal[
    "completed",
    "batch_limit",
    "quota_exhausted",
    "provider_quota_denied",
    "cancelled",
    "deadline_exceeded",
]

_PROVIDER_LABELS = {"spotify": "Spotify", "youtube": "YouTube"}
_SOURCE_NOUNS = {"spotify": "tracks", "youtube": "videos"}


@dataclass(frozen=True)
class Accepted:
    candidate_id: str
    candidate_title: str | None = None


@dataclass(frozen=True)
class Skipped:
    reason: SkipReason
    detail: str | None = None


MatchDecision = Accepted | Skipped


@dataclass(frozen=True)
class ItemOutcome:
    index: int
    query: str | None
    decision: MatchDecision


@dataclass(frozen=True)
class ConversionRequest:
    source_token: str
    destination_token: str
    source_playlist: str
    playlist_name: str
    precise: bool = True
    batch_limit: int | None = None
    description: str | None = None


@dataclass(frozen=True)
class ConversionReport:
    total_source: int
    processed: int
    added: int
    skipped: int
    quota_used: int
    destination_playlist_id: str
    truncated: bool
    stop_reason: StopReason = "completed"
    estimated_max_items: int = 0
    outcomes: tuple[ItemOutcome, ...] = ()


def _empty_outcomes() -> list[ItemOutcome]:
    return []


@dataclass
class _RunContext:
    run_id: str
    request: ConversionRequest
    ledger: QuotaLedger
    cancel_event: threading.Event
    deadline_at: float | None
    total_source: int = 0
    working_items: Sequence[SourceItem] = ()
    destination_playlist_id: str = ""
    added: int = 0
    skipped: int = 0
    truncated: bool = False
    stop_reason: StopReason | None = None
    outcomes: list[ItemOutcome] = field(default_factory=_empty_outcomes)

    @property
    def processed(self) -> int:
        return self.added + self.skipped

    @property
    def stopped(self) -> bool:
        return self.stop_reason is not None

    def stop(self, reason: StopReason) -> None:
        self.stop_reason = reason
        self.truncated = True

    def record(self, index: int, query: NormalizedQuery | None, decision: MatchDecision) -> None:
        if isinstance(decision, Accepted):
            self.added += 1
        else:
            self.skipped += 1
        self.outcomes.append(
            ItemOutcome(
                index=index,
                query=query.text if query is not None else None,
                decision=decision,
            )
        )

    def to_report(self) -> ConversionReport:
        stop_reason: StopReason = self.stop_reason or (
            "batch_limit" if self.truncated else "completed"
        )
        return ConversionReport(
            total_source=self.total_source,
            processed=self.processed,
            added=self.added,
            skipped=self.skipped,
            quota_used=self.ledger.spent,
            destination_playlist_id=self.destination_playlist_id,
            truncated=self.truncated,
            stop_reason=stop_reason,
            estimated_max_items=(
                self.ledger.affordable_count("catalog.search", "playlist.append") + self.added
            ),
            outcomes=tuple(self.outcomes),
        )


@dataclass(frozen=True)
class _SearchResults:
    candidates: Sequence[SearchCandidate]


@dataclass(frozen=True)
class _SearchSkipped:
    detail: str


class ConversionPipeline:
    """Copies one source playlist into a new destination playlist.

    A pipeline holds configuration and collaborators only. Every call to
    :meth:`run` owns a fresh ledger and counters, so a single instance can
    serve concurrent runs for different users.
    """

    def __init__(
        self,
        *,
        source: ProviderClient,
        destination: ProviderClient,
        quota_policy: QuotaPolicy,
        normalizer: QueryNormalizer | None = None,
        ranker: CandidateRanker | None = None,
        precise_max_results: int = 3,
        broad_max_results: int = 1,
        broad_fallback: bool = False,
        item_delay_seconds: float = 0.5,
        broad_item_delay_seconds: float | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        telemetry: TelemetryClient | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._source = source
        self._destination = destination
        self._quota_policy = quota_policy
        self._normalizer = normalizer if normalizer is not None else QueryNormalizer()
        self._ranker = ranker if ranker is not None else CandidateRanker()
        self._precise_max_results = max(1, precise_max_results)
        self._broad_max_results = max(1, broad_max_results)
        self._broad_fallback = broad_fallback
        self._item_delay_seconds = max(0.0, item_delay_seconds)
        self._broad_item_delay_seconds = (
            max(0.0, broad_item_delay_seconds)
            if broad_item_delay_seconds is not None
            else self._item_delay_seconds
        )
        self._rate_limiter = rate_limiter
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._clock = clock

    @property
    def direction(self) -> str:
        return f"{self._source.name}-to-{self._destination.name}"

    def run(
        self,
        request: ConversionRequest,
        *,
        cancel_event: threading.Event | None = None,
        deadline_seconds: float | None = None,
    ) -> ConversionReport:
        source_playlist_id = self._validate(request)
        context = _RunContext(
            run_id=str(uuid4()),
            request=request,
            ledger=QuotaLedger(self._quota_policy),
            cancel_event=cancel_event if cancel_event is not None else threading.Event(),
            deadline_at=(
                self._clock() + max(0.0, deadline_seconds)
                if deadline_seconds is not None
                else None
            ),
        )
        context_tokens = bind_contextvars(
            conversion_run_id=context.run_id,
            conversion_direction=self.direction,
        )
        try:
            with self._telemetry.span(
                "conversion.run",
                run_id=context.run_id,
                direction=self.direction,
                precise=request.precise,
                batch_limit=request.batch_limit,
            ) as span:
                self._create_destination(context, source_playlist_id)
                if context.stopped:
                    LOGGER.warning("conversion cancelled before destination playlist was created")
                else:
                    self._iterate(context)
                report = context.to_report()
                LOGGER.info(
                    (
                        "conversion finished total=%s processed=%s added=%s skipped=%s "
                        "quota_used=%s truncated=%s stop_reason=%s"
                    ),
                    report.total_source,
                    report.processed,
                    report.added,
                    report.skipped,
                    report.quota_used,
                    report.truncated,
                    report.stop_reason,
                )
                span.update(
                    total_source=report.total_source,
                    processed=report.processed,
                    added=report.added,
                    skipped=report.skipped,
                    quota_used=report.quota_used,
                    truncated=report.truncated,
                    stop_reason=report.stop_reason,
                )
            return report
        finally:
            reset_contextvars(**context_tokens)

    def _validate(self, request: ConversionRequest) -> str:
        missing = [
            field_name
            for field_name, value in (
                ("source_token", request.source_token),
                ("destination_token", request.destination_token),
                ("source_playlist", request.source_playlist),
                ("playlist_name", request.playlist_name),
            )
            if not isinstance(value, str) or not value.strip()
        ]
        if missing:
            raise PreconditionError(f"Missing required fields: {', '.join(missing)}")
        if request.batch_limit is not None and request.batch_limit < 1:
            raise PreconditionError("batch_limit must be at least 1 when provided.")
        if self._quota_policy.cost_of("playlist.create") > self._quota_policy.ceiling:
            raise PreconditionError("Quota budget cannot cover destination playlist creation.")

        return self._source.extract_playlist_id(request.source_playlist)

    def _create_destination(self, context: _RunContext, source_playlist_id: str) -> None:
        request = context.request
        LOGGER.info("conversion fetching source playlist id=%s", source_playlist_id)
        items = list(self._source.fetch_playlist_items(source_playlist_id, request.source_token))
        context.total_source = len(items)
        if request.batch_limit is not None and len(items) > request.batch_limit:
            context.working_items = items[: request.batch_limit]
            context.truncated = True
        else:
            context.working_items = items
        LOGGER.info(
            "conversion source loaded total=%s working=%s batch_limit=%s",
            context.total_source,
            len(context.working_items),
            request.batch_limit,
        )

        description = request.description or self._default_description(
            working=len(context.working_items),
            total=context.total_source,
        )
        owner_id: str | None = None
        if self._destination.scopes_playlists_to_user:
            if not self._throttle(context):
                context.stop("cancelled")
                return
            owner_id = self._destination.resolve_user_id(request.destination_token)

        if not self._throttle(context):
            context.stop("cancelled")
            return
        context.ledger.charge("playlist.create")
        context.destination_playlist_id = self._destination.create_playlist(
            request.playlist_name.strip(),
            description,
            request.destination_token,
            owner_id=owner_id,
        )
        LOGGER.info(
            "conversion destination created playlist_id=%s spent=%s",
            context.destination_playlist_id,
            context.ledger.spent,
        )

    def _default_description(self, *, working: int, total: int) -> str:
        label = _PROVIDER_LABELS.get(self._source.name, self._source.name)
        noun = _SOURCE_NOUNS.get(self._source.name, "items")
        return f"Converted from {label} ({working}/{total} {noun})"

    def _iterate(self, context: _RunContext) -> None:
        items = context.working_items
        try:
            for index, item in enumerate(items):
                interrupt = self._interrupt_reason(context)
                if interrupt is not None:
                    LOGGER.warning("conversion interrupted reason=%s index=%s", interrupt, index)
                    context.stop(interrupt)
                    break

                called_provider = self._process_item(context, index, item)
                if context.stopped:
                    break

                is_last = index == len(items) - 1
                if is_last:
                    break
                if context.ledger.would_exceed("catalog.search"):
                    LOGGER.warning(
                        "conversion stopping before quota ceiling spent=%s remaining=%s",
                        context.ledger.spent,
                        context.ledger.remaining_budget(),
                    )
                    context.stop("quota_exhausted")
                    break
                if called_provider:
                    self._pause(context)
        except ProviderAuthError as exc:
            exc.partial_report = context.to_report()
            LOGGER.warning(
                "conversion aborted by authorization failure provider=%s processed=%s",
                exc.provider,
                context.processed,
            )
            raise

    def _interrupt_reason(self, context: _RunContext) -> StopReason | None:
        if context.cancel_event.is_set():
            return "cancelled"
        if context.deadline_at is not None and self._clock() >= context.deadline_at:
            return "deadline_exceeded"
        return None

    def _pause(self, context: _RunContext) -> None:
        delay = (
            self._item_delay_seconds
            if context.request.precise
            else self._broad_item_delay_seconds
        )
        if delay > 0:
            context.cancel_event.wait(delay)

    def _throttle(self, context: _RunContext) -> bool:
        if self._rate_limiter is None:
            return True
        return self._rate_limiter.acquire(self._destination.name, context.cancel_event)

    def _process_item(self, context: _RunContext, index: int, item: SourceItem) -> bool:
        """Runs one source item to a decision. Returns whether a provider was called."""
        precise = context.request.precise
        strategy: QueryStrategy = "precise" if precise else "broad"
        query = self._normalizer.normalize(item, strategy=strategy)
        if query is None:
            LOGGER.info("conversion item_skipped index=%s reason=no_query", index)
            context.record(index, None, Skipped(reason="no_results", detail="missing metadata"))
            return False

        max_results = self._precise_max_results if precise else self._broad_max_results
        search = self._search(context, query, max_results)
        if search is None:
            return True
        if isinstance(search, _SearchSkipped):
            context.record(index, query, Skipped(reason="provider_error", detail=search.detail))
            return True

        candidates = search.candidates
        if not candidates and precise and self._broad_fallback:
            broad_query = self._normalizer.normalize(item, strategy="broad")
            if broad_query is not None and not context.ledger.would_exceed("catalog.search"):
                LOGGER.info("conversion broad_fallback index=%s query=%s", index, broad_query)
                fallback = self._search(context, broad_query, self._broad_max_results)
                if fallback is None:
                    return True
                if isinstance(fallback, _SearchResults):
                    query = broad_query
                    candidates = fallback.candidates

        candidate = self._ranker.select(item, candidates, precise=precise)
        if candidate is None:
            LOGGER.info("conversion item_skipped index=%s reason=no_results query=%s", index, query)
            context.record(index, query, Skipped(reason="no_results"))
            return True

        try:
            context.ledger.charge("playlist.append")
        except QuotaExceededError:
            LOGGER.warning(
                "conversion append_not_admitted index=%s spent=%s",
                index,
                context.ledger.spent,
            )
            context.record(index, query, Skipped(reason="quota_exhausted"))
            context.stop("quota_exhausted")
            return True

        if not self._throttle(context):
            context.stop("cancelled")
            return True
        try:
            self._destination.append_item(
                context.destination_playlist_id,
                candidate.candidate_id,
                context.request.destination_token,
            )
        except ProviderAuthError:
            raise
        except (ProviderQuotaExceededError, ProviderPermissionDeniedError) as exc:
            LOGGER.warning(
                "conversion provider denied append index=%s spent=%s error=%s",
                index,
                context.ledger.spent,
                exc,
            )
            context.stop("provider_quota_denied")
            return True
        except ProviderError as exc:
            LOGGER.warning("conversion append_failed index=%s error=%s", index, exc)
            context.record(index, query, Skipped(reason="provider_error", detail=str(exc)))
            return True

        LOGGER.info(
            "conversion item_added index=%s query=%s candidate=%s spent=%s",
            index,
            query,
            candidate.candidate_id,
            context.ledger.spent,
        )
        context.record(
            index,
            query,
            Accepted(candidate_id=candidate.candidate_id, candidate_title=candidate.title),
        )
        return True

    def _search(
        self,
        context: _RunContext,
        query: NormalizedQuery,
        max_results: int,
    ) -> _SearchResults | _SearchSkipped | None:
        """Returns ``None`` when the run must stop."""
        try:
            context.ledger.charge("catalog.search")
        except QuotaExceededError:
            LOGGER.warning(
                "conversion search_not_admitted spent=%s remaining=%s",
                context.ledger.spent,
                context.ledger.remaining_budget(),
            )
            context.stop("quota_exhausted")
            return None

        if not self._throttle(context):
            context.stop("cancelled")
            return None
        try:
            candidates = self._destination.search_catalog(
                query.text,
                context.request.destination_token,
                max_results,
            )
        except ProviderAuthError:
            raise
        except (ProviderQuotaExceededError, ProviderPermissionDeniedError) as exc:
            LOGGER.warning(
                "conversion provider denied search spent=%s error=%s",
                context.ledger.spent,
                exc,
            )
            context.stop("provider_quota_denied")
            return None
        except ProviderError as exc:
            LOGGER.warning("conversion search_failed query=%s error=%s", query, exc)
            return _SearchSkipped(detail=str(exc))
        return _SearchResults(candidates=list(candidates))
