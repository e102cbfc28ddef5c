from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from gateway.pricing import estimate_cost_usd
from gateway.provider import Provider


class RoutingStrategy(str, Enum):
    FIXED_ORDER = "fixed_order"
    COST_THEN_FAILOVER = "cost_then_failover"

    @classmethod
    def parse(cls, value: str | None) -> "RoutingStrategy":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.COST_THEN_FAILOVER


@dataclass(frozen=True)
class RoutedProvider:
    name: str
    provider: Provider
    # USD per 1000 tokens, only used to order candidates
    cost_per_1k: float = 0.0

    def estimate_cost_usd(self, tokens: int) -> float:
        return estimate_cost_usd(tokens, self.cost_per_1k)


def rank_providers(
    candidates: Sequence[RoutedProvider],
    est_tokens: int,
    strategy: RoutingStrategy = RoutingStrategy.COST_THEN_FAILOVER,
) -> list[RoutedProvider]:
    if strategy == RoutingStrategy.FIXED_ORDER:
        return list(candidates)
    # sorted() is stable, so equal costs keep registration order
    return sorted(candidates, key=lambda c: c.estimate_cost_usd(est_tokens))
