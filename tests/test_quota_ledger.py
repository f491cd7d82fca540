from __future__ import annotations

import pytest

from playlist_bridge.services.quota_ledger import (
    OPERATION_KINDS,
    QuotaExceededError,
    QuotaLedger,
    QuotaPolicy,
)

YOUTUBE_COSTS = {"playlist.create": 50, "catalog.search": 100, "playlist.append": 50}


def test_default_safety_margin_reserves_one_worst_case_operation() -> None:
    policy = QuotaPolicy(budget=10_000, cost_table=YOUTUBE_COSTS)

    assert policy.effective_safety_margin == 100
    assert policy.ceiling == 9_900


def test_charge_accumulates_costs() -> None:
    ledger = QuotaLedger(QuotaPolicy(budget=10_000, cost_table=YOUTUBE_COSTS))
    expected = 0

    for kind in ("playlist.create", "catalog.search", "playlist.append", "catalog.search"):
        expected += YOUTUBE_COSTS[kind]
        assert ledger.charge(kind) == expected
        assert ledger.spent == expected


def test_failed_charge_leaves_spent_unchanged() -> None:
    ledger = QuotaLedger(QuotaPolicy(budget=200, cost_table=YOUTUBE_COSTS, safety_margin=50))
    ledger.charge("playlist.create")
    ledger.charge("catalog.search")

    assert ledger.would_exceed("playlist.append") is True
    with pytest.raises(QuotaExceededError) as exc_info:
        ledger.charge("playlist.append")

    assert ledger.spent == 150
    assert exc_info.value.kind == "playlist.append"
    assert exc_info.value.ceiling == 150


def test_charge_never_passes_ceiling() -> None:
    ledger = QuotaLedger(QuotaPolicy(budget=1_000, cost_table=YOUTUBE_COSTS))
    ceiling = ledger.policy.ceiling

    for _ in range(50):
        for kind in OPERATION_KINDS:
            try:
                ledger.charge(kind)
            except QuotaExceededError:
                pass
            assert ledger.spent <= ceiling

    assert ledger.remaining_budget() == ceiling - ledger.spent


def test_exact_ceiling_is_admitted() -> None:
    ledger = QuotaLedger(QuotaPolicy(budget=150, cost_table=YOUTUBE_COSTS, safety_margin=0))

    ledger.charge("playlist.create")
    ledger.charge("catalog.search")

    assert ledger.spent == 150
    assert ledger.remaining_budget() == 0
    assert ledger.would_exceed("playlist.append") is True


def test_unknown_kind_is_free() -> None:
    ledger = QuotaLedger(QuotaPolicy(budget=10, cost_table={"catalog.search": 1}))

    assert ledger.charge("playlist.append") == 0


def test_affordable_count_uses_full_budget() -> None:
    ledger = QuotaLedger(QuotaPolicy(budget=10_000, cost_table=YOUTUBE_COSTS))
    ledger.charge("playlist.create")

    assert ledger.affordable_count("catalog.search", "playlist.append") == 66
    assert ledger.affordable_count() == 0


@pytest.mark.parametrize(
    ("budget", "cost_table", "safety_margin"),
    [
        (0, YOUTUBE_COSTS, None),
        (100, {"catalog.search": -1}, None),
        (100, YOUTUBE_COSTS, -5),
    ],
)
def test_invalid_policies_are_rejected(
    budget: int,
    cost_table: dict[str, int],
    safety_margin: int | None,
) -> None:
    with pytest.raises(ValueError):
        QuotaPolicy(
            budget=budget,
            cost_table=cost_table,  # type: ignore[arg-type]
            safety_margin=safety_margin,
        )
