import httpx
import pytest

from gateway.config import load_settings, parse_enabled
from gateway.registry import build_providers
from gateway.routing import RoutingStrategy


def test_defaults(monkeypatch):
    for name in ("AI_PROVIDERS_ENABLED", "AI_PROVIDER_STRATEGY", "AI_LOCAL_QUOTA_MAX", "AI_RL_COOLDOWN_MS"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.enabled_providers == ("claude",)
    assert settings.router.strategy == RoutingStrategy.COST_THEN_FAILOVER
    assert settings.router.quota_max == 5
    assert settings.router.rate_limit_cooldown_s == 60
    assert settings.router.auth_disable_s == 86400


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("AI_PROVIDERS_ENABLED", "OpenAI, deepseek,openai")
    monkeypatch.setenv("AI_PROVIDER_STRATEGY", "fixed_order")
    monkeypatch.setenv("AI_ERR_COOLDOWN_MS", "2500")
    monkeypatch.setenv("DEEPSEEK_COST_PER_1K", "0.5")

    settings = load_settings()

    assert settings.enabled_providers == ("openai", "deepseek")
    assert settings.router.strategy == RoutingStrategy.FIXED_ORDER
    assert settings.router.error_cooldown_s == 2.5
    assert settings.deepseek.cost_per_1k == 0.5


def test_invalid_number_fails_fast(monkeypatch):
    monkeypatch.setenv("AI_LOCAL_QUOTA_MAX", "lots")

    with pytest.raises(ValueError, match="AI_LOCAL_QUOTA_MAX"):
        load_settings()


def test_parse_enabled_drops_blanks():
    assert parse_enabled(" claude, ,mock ") == ("claude", "mock")


def test_build_providers_uses_registry(monkeypatch):
    monkeypatch.setenv("AI_PROVIDERS_ENABLED", "deepseek,claude,mock")
    monkeypatch.setenv("CLAUDE_COST_PER_1K", "0.00025")

    providers = build_providers(load_settings())

    assert [p.name for p in providers] == ["deepseek", "claude", "mock"]
    assert providers[0].cost_per_1k == 0.0001
    assert providers[1].cost_per_1k == 0.00025


def test_build_providers_rejects_unknown(monkeypatch):
    monkeypatch.setenv("AI_PROVIDERS_ENABLED", "claude,gemini")

    with pytest.raises(ValueError, match="gemini"):
        build_providers(load_settings())


def test_max_tokens_only_read_for_claude(monkeypatch):
    monkeypatch.setenv("CLAUDE_MAX_TOKENS", "1200")
    monkeypatch.setenv("OPENAI_MAX_TOKENS", "not-used")

    settings = load_settings()

    assert settings.claude.max_tokens == 1200
    assert settings.openai.max_tokens == 800


def test_build_providers_passes_transport(monkeypatch):
    monkeypatch.setenv("AI_PROVIDERS_ENABLED", "openai,mock")
    transport = httpx.MockTransport(lambda request: httpx.Response(200))

    providers = build_providers(load_settings(), transport=transport)

    assert providers[0].provider._transport is transport
