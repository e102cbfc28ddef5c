from fakes import ScriptedProvider
from gateway.routing import RoutedProvider, RoutingStrategy, rank_providers


def _providers(*costs):
    return [RoutedProvider(f"p{i}", ScriptedProvider(f"p{i}"), cost) for i, cost in enumerate(costs)]


def test_cost_strategy_orders_cheapest_first():
    candidates = _providers(0.0002, 0.0001, 0.00025)

    ranked = rank_providers(candidates, 500, RoutingStrategy.COST_THEN_FAILOVER)

    assert [p.name for p in ranked] == ["p1", "p0", "p2"]


def test_cost_ties_keep_registration_order():
    candidates = _providers(0.0001, 0.0001, 0.0)

    ranked = rank_providers(candidates, 500)

    assert [p.name for p in ranked] == ["p2", "p0", "p1"]


def test_fixed_order_is_identity():
    candidates = _providers(0.0002, 0.0001)

    ranked = rank_providers(candidates, 500, RoutingStrategy.FIXED_ORDER)

    assert [p.name for p in ranked] == ["p0", "p1"]
    assert ranked is not candidates


def test_ranking_does_not_mutate_input():
    candidates = _providers(0.0003, 0.0001)

    rank_providers(candidates, 500)

    assert [p.name for p in candidates] == ["p0", "p1"]


def test_strategy_parse_defaults_to_cost():
    assert RoutingStrategy.parse("FIXED_ORDER") == RoutingStrategy.FIXED_ORDER
    assert RoutingStrategy.parse("round_robin") == RoutingStrategy.COST_THEN_FAILOVER
    assert RoutingStrategy.parse(None) == RoutingStrategy.COST_THEN_FAILOVER
