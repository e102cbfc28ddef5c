from __future__ import annotations

from typing import Callable

import httpx

from gateway.claude_provider import ClaudeProvider
from gateway.config import Settings
from gateway.deepseek_provider import DeepSeekProvider
from gateway.mock_provider import MockProvider
from gateway.openai_provider import OpenAIProvider
from gateway.provider import Provider
from gateway.routing import RoutedProvider

ProviderFactory = Callable[[Settings, httpx.AsyncBaseTransport | None], Provider]


def _claude(settings: Settings, transport) -> Provider:
    return ClaudeProvider(settings.claude, transport=transport)


def _openai(settings: Settings, transport) -> Provider:
    return OpenAIProvider(settings.openai, transport=transport)


def _deepseek(settings: Settings, transport) -> Provider:
    return DeepSeekProvider(settings.deepseek, transport=transport)


def _mock(settings: Settings, transport) -> Provider:
    return MockProvider(
        delay_ms=settings.mock.delay_ms,
        fail_rate=settings.mock.fail_rate,
        fail_status=settings.mock.fail_status,
    )


PROVIDER_FACTORIES: dict[str, ProviderFactory] = {
    "claude": _claude,
    "openai": _openai,
    "deepseek": _deepseek,
    "mock": _mock,
}


def provider_cost(settings: Settings, name: str) -> float:
    if name == "mock":
        return settings.mock.cost_per_1k
    return getattr(settings, name).cost_per_1k


def build_providers(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[RoutedProvider]:
    unknown = [name for name in settings.enabled_providers if name not in PROVIDER_FACTORIES]
    if unknown:
        raise ValueError(f"unknown providers in AI_PROVIDERS_ENABLED: {', '.join(unknown)}")
    return [
        RoutedProvider(
            name=name,
            provider=PROVIDER_FACTORIES[name](settings, transport),
            cost_per_1k=provider_cost(settings, name),
        )
        for name in settings.enabled_providers
    ]
