from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from gateway.log import log_event
from gateway.pricing import DEFAULT_COST_PER_1K
from gateway.prompts import DEFAULT_SYSTEM_PROMPT
from gateway.routing import RoutingStrategy


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_ms(name: str, default_ms: int) -> float:
    return _env_int(name, default_ms) / 1000


@dataclass(frozen=True)
class RouterSettings:
    strategy: RoutingStrategy = RoutingStrategy.COST_THEN_FAILOVER
    rate_limit_cooldown_s: float = 60.0
    error_cooldown_s: float = 15.0
    auth_disable_s: float = 24 * 60 * 60
    payment_disable_s: float = 24 * 60 * 60
    quota_max: int = 5
    quota_window_s: float = 60.0
    call_timeout_s: float = 30.0


@dataclass(frozen=True)
class ProviderSettings:
    api_key: str = ""
    model: str = ""
    base_url: str = ""
    timeout_s: float = 30.0
    cost_per_1k: float = 0.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = 800
    api_version: str = ""


@dataclass(frozen=True)
class MockSettings:
    delay_ms: int = 200
    fail_rate: float = 0.0
    fail_status: int | None = None
    cost_per_1k: float = 0.0


@dataclass(frozen=True)
class TracingSettings:
    enabled: bool = False
    service_name: str = "analysis-gateway"
    endpoint: str = "http://localhost:4318"


@dataclass(frozen=True)
class Settings:
    enabled_providers: tuple[str, ...] = ("claude",)
    router: RouterSettings = field(default_factory=RouterSettings)
    claude: ProviderSettings = field(default_factory=ProviderSettings)
    openai: ProviderSettings = field(default_factory=ProviderSettings)
    deepseek: ProviderSettings = field(default_factory=ProviderSettings)
    mock: MockSettings = field(default_factory=MockSettings)
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_s: int = 3600
    job_result_ttl_s: int = 86400
    job_max_attempts: int = 3
    job_backoff_ms: int = 1000
    job_concurrency: int = 2
    webhook_timeout_s: float = 5.0
    rate_limit_requests: int = 100
    rate_limit_window_s: int = 900
    tracing: TracingSettings = field(default_factory=TracingSettings)


def parse_enabled(raw: str) -> tuple[str, ...]:
    names = [part.strip().lower() for part in raw.split(",")]
    return tuple(dict.fromkeys(name for name in names if name))


def load_router_settings() -> RouterSettings:
    raw_strategy = _env_str("AI_PROVIDER_STRATEGY", RoutingStrategy.COST_THEN_FAILOVER.value)
    strategy = RoutingStrategy.parse(raw_strategy)
    if strategy.value != raw_strategy.strip().lower():
        log_event(logging.WARNING, "unknown_routing_strategy", value=raw_strategy, using=strategy.value)
    return RouterSettings(
        strategy=strategy,
        rate_limit_cooldown_s=_env_ms("AI_RL_COOLDOWN_MS", 60_000),
        error_cooldown_s=_env_ms("AI_ERR_COOLDOWN_MS", 15_000),
        auth_disable_s=_env_ms("AI_AUTH_DISABLE_MS", 24 * 60 * 60 * 1000),
        payment_disable_s=_env_ms("AI_PAYMENT_DISABLE_MS", 24 * 60 * 60 * 1000),
        quota_max=_env_int("AI_LOCAL_QUOTA_MAX", 5),
        quota_window_s=_env_ms("AI_LOCAL_QUOTA_WINDOW_MS", 60_000),
        call_timeout_s=_env_ms("AI_PROVIDER_TIMEOUT_MS", 30_000),
    )


def _load_vendor(prefix: str, name: str, model: str, base_url: str) -> ProviderSettings:
    return ProviderSettings(
        api_key=_env_str(f"{prefix}_API_KEY", ""),
        model=_env_str(f"{prefix}_MODEL", model),
        base_url=_env_str(f"{prefix}_BASE_URL", base_url),
        timeout_s=_env_ms(f"{prefix}_TIMEOUT", 30_000),
        cost_per_1k=_env_float(f"{prefix}_COST_PER_1K", DEFAULT_COST_PER_1K[name]),
        system_prompt=_env_str(f"{prefix}_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        max_tokens=_env_int(f"{prefix}_MAX_TOKENS", 800) if prefix == "CLAUDE" else 800,
        api_version=_env_str(f"{prefix}_ANTHROPIC_VERSION", "2023-06-01") if prefix == "CLAUDE" else "",
    )


def load_settings() -> Settings:
    return Settings(
        enabled_providers=parse_enabled(_env_str("AI_PROVIDERS_ENABLED", "claude")),
        router=load_router_settings(),
        claude=_load_vendor("CLAUDE", "claude", "claude-3-haiku-20240307", "https://api.anthropic.com"),
        openai=_load_vendor("OPENAI", "openai", "gpt-4o-mini", "https://api.openai.com/v1"),
        deepseek=_load_vendor("DEEPSEEK", "deepseek", "deepseek-chat", "https://api.deepseek.com"),
        mock=MockSettings(
            delay_ms=_env_int("MOCK_DELAY_MS", 200),
            fail_rate=_env_float("MOCK_FAIL_RATE", 0.0),
            fail_status=_env_int("MOCK_FAIL_STATUS", 0) or None,
            cost_per_1k=_env_float("MOCK_COST_PER_1K", DEFAULT_COST_PER_1K["mock"]),
        ),
        redis_url=_env_str("REDIS_URL", "redis://localhost:6379/0"),
        cache_ttl_s=_env_int("CACHE_TTL_SECONDS", 3600),
        job_result_ttl_s=_env_int("JOB_RESULT_TTL_SECONDS", 86400),
        job_max_attempts=_env_int("JOB_MAX_ATTEMPTS", 3),
        job_backoff_ms=_env_int("JOB_BACKOFF_MS", 1000),
        job_concurrency=_env_int("JOB_CONCURRENCY", 2),
        webhook_timeout_s=_env_ms("WEBHOOK_TIMEOUT_MS", 5000),
        rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", 100),
        rate_limit_window_s=_env_int("RATE_LIMIT_WINDOW_SECONDS", 900),
        tracing=TracingSettings(
            enabled=_env_str("OTEL_ENABLED", "false").lower() == "true",
            service_name=_env_str("OTEL_SERVICE_NAME", "analysis-gateway"),
            endpoint=_env_str("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318"),
        ),
    )
