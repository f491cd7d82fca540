from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

OperationKind = Literal["playlist.create", "catalog.search", "playlist.append"]

OPERATION_KINDS: tuple[OperationKind, ...] = (
    "playlist.create",
    "catalog.search",
    "playlist.append",
)


class QuotaExceededError(Exception):
    def __init__(self, *, kind: OperationKind, spent: int, cost: int, ceiling: int) -> None:
        super().__init__(
            f"Quota admission failed for {kind}: spent={spent} cost={cost} ceiling={ceiling}"
        )
        self.kind = kind
        self.spent = spent
        self.cost = cost
        self.ceiling = ceiling


def _default_cost_table() -> dict[OperationKind, int]:
    return {}


@dataclass(frozen=True)
class QuotaPolicy:
    """Provider cost budget for a single conversion run.

    ``safety_margin`` of ``None`` reserves headroom for one more worst-case
    operation from the cost table.
    """

    budget: int
    cost_table: Mapping[OperationKind, int] = field(default_factory=_default_cost_table)
    safety_margin: int | None = None

    def __post_init__(self) -> None:
        if self.budget <= 0:
            raise ValueError("Quota budget must be positive.")
        for kind, cost in self.cost_table.items():
            if cost < 0:
                raise ValueError(f"Quota cost for {kind} must not be negative.")
        if self.safety_margin is not None and self.safety_margin < 0:
            raise ValueError("Quota safety margin must not be negative.")

    @property
    def effective_safety_margin(self) -> int:
        if self.safety_margin is not None:
            return self.safety_margin
        return max(self.cost_table.values(), default=0)

    @property
    def ceiling(self) -> int:
        return self.budget - self.effective_safety_margin

    def cost_of(self, kind: OperationKind) -> int:
        return self.cost_table.get(kind, 0)


class QuotaLedger:
    """Monotonic spend counter owned by exactly one conversion run."""

    def __init__(self, policy: QuotaPolicy) -> None:
        self._policy = policy
        self._spent = 0

    @property
    def policy(self) -> QuotaPolicy:
        return self._policy

    @property
    def spent(self) -> int:
        return self._spent

    def would_exceed(self, kind: OperationKind) -> bool:
        return self._spent + self._policy.cost_of(kind) > self._policy.ceiling

    def charge(self, kind: OperationKind) -> int:
        cost = self._policy.cost_of(kind)
        if self._spent + cost > self._policy.ceiling:
            raise QuotaExceededError(
                kind=kind,
                spent=self._spent,
                cost=cost,
                ceiling=self._policy.ceiling,
            )
        self._spent += cost
        return self._spent

    def remaining_budget(self) -> int:
        return max(0, self._policy.ceiling - self._spent)

    def affordable_count(self, *kinds: OperationKind) -> int:
        """How many more times the given operation bundle fits in the budget."""
        bundle_cost = sum(self._policy.cost_of(kind) for kind in kinds)
        if bundle_cost <= 0:
            return 0
        return max(0, self._policy.budget - self._spent) // bundle_cost
