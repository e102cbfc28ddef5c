from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from gateway.config import RouterSettings
from gateway.errors import (
    AllProvidersFailedError,
    ErrorKind,
    ProviderError,
    RequestCancelledError,
    classify_error,
)
from gateway.log import log_event
from gateway.metrics import (
    PROVIDER_ATTEMPTS_TOTAL,
    PROVIDER_LATENCY,
    PROVIDER_SKIPS_TOTAL,
    PROVIDER_STATE_CHANGES_TOTAL,
    ROUTING_FAILURES_TOTAL,
)
from gateway.otel import get_tracer
from gateway.prompts import build_analysis_prompt
from gateway.provider import Provider, ProviderResult
from gateway.reliability import LocalQuota, ProviderHealth
from gateway.routing import RoutedProvider, rank_providers
from gateway.tokens import estimate_tokens

CancelCheck = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class RequestContext:
    structured_data: dict[str, Any]
    notes: list[str]
    request_id: str


class ProviderRouter(Provider):
    """Sequential failover over interchangeable providers.

    Candidates are ranked per request, then tried one at a time: ineligible
    ones are skipped, the first success wins, and each failure is folded into
    the provider's health before moving on. Each provider is called at most
    once per request.
    """

    def __init__(
        self,
        providers: Sequence[RoutedProvider],
        settings: RouterSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not providers:
            raise ValueError("ProviderRouter requires at least one provider")
        names = [p.name for p in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate provider names: {names}")

        self.providers = list(providers)
        self.settings = settings or RouterSettings()
        self.health = ProviderHealth(names, clock=clock)
        self.quota = LocalQuota(
            names,
            max_requests=self.settings.quota_max,
            window_s=self.settings.quota_window_s,
            clock=clock,
        )

    async def analyze(self, structured_data, notes, request_id) -> ProviderResult:
        return await self.route(RequestContext(structured_data, list(notes), request_id))

    def ranked(self, context: RequestContext) -> tuple[list[RoutedProvider], int]:
        prompt = build_analysis_prompt(context.structured_data, context.notes)
        est_tokens = estimate_tokens(prompt)
        return rank_providers(self.providers, est_tokens, self.settings.strategy), est_tokens

    async def route(self, context: RequestContext, is_cancelled: CancelCheck | None = None) -> ProviderResult:
        candidates, est_tokens = self.ranked(context)
        attempted: list[str] = []
        last_error: ProviderError | None = None

        for candidate in candidates:
            name = candidate.name
            if is_cancelled is not None and await is_cancelled():
                log_event(logging.INFO, "routing_cancelled", request_id=context.request_id, attempted=attempted)
                raise RequestCancelledError(f"request {context.request_id} cancelled")

            skip_reason = self._skip_reason(name)
            if skip_reason is not None:
                PROVIDER_SKIPS_TOTAL.labels(name, skip_reason).inc()
                log_event(logging.INFO, "provider_skipped", request_id=context.request_id, provider=name, reason=skip_reason)
                continue

            if not self.quota.try_consume(name):
                PROVIDER_SKIPS_TOTAL.labels(name, "local_quota").inc()
                log_event(
                    logging.WARNING,
                    "local_quota_exceeded",
                    request_id=context.request_id,
                    provider=name,
                    quota=self.quota.usage(name),
                )
                self._cooldown(name, self.settings.rate_limit_cooldown_s, "local_quota", context.request_id)
                continue

            log_event(
                logging.INFO,
                "provider_routed",
                request_id=context.request_id,
                provider=name,
                quota=self.quota.usage(name),
                est_tokens=est_tokens,
                est_cost_usd=candidate.estimate_cost_usd(est_tokens),
            )
            attempted.append(name)
            try:
                result = await self._invoke(candidate, context)
            except Exception as exc:
                error = classify_error(name, exc)
                last_error = error
                self.health.mark_failure(name, error)
                PROVIDER_ATTEMPTS_TOTAL.labels(name, error.kind.value).inc()
                log_event(
                    logging.WARNING,
                    "provider_failed",
                    request_id=context.request_id,
                    provider=name,
                    status=error.status,
                    retryable=error.retryable,
                    kind=error.kind.value,
                    error=error.message,
                )
                if not self._apply_failure(name, error, context.request_id):
                    ROUTING_FAILURES_TOTAL.labels(ErrorKind.NON_RETRYABLE.value).inc()
                    log_event(
                        logging.ERROR,
                        "provider_request_aborted",
                        request_id=context.request_id,
                        provider=name,
                        status=error.status,
                        error=error.message,
                    )
                    raise error from (exc if exc is not error else None)
                continue

            self.health.mark_success(name)
            PROVIDER_ATTEMPTS_TOTAL.labels(name, "success").inc()
            return dataclasses.replace(result, provider=name)

        ROUTING_FAILURES_TOTAL.labels(ErrorKind.ALL_PROVIDERS_EXHAUSTED.value).inc()
        log_event(
            logging.ERROR,
            "all_providers_failed",
            request_id=context.request_id,
            attempted=attempted,
            last_error=last_error.to_dict() if last_error else None,
        )
        raise AllProvidersFailedError(attempted, last_error)

    def health_snapshot(self) -> dict[str, dict]:
        snapshot = self.health.snapshot()
        for candidate in self.providers:
            snapshot[candidate.name]["quota"] = self.quota.usage(candidate.name)
            snapshot[candidate.name]["cost_per_1k"] = candidate.cost_per_1k
        return snapshot

    def reset(self) -> None:
        self.health.reset()
        self.quota.reset()

    async def _invoke(self, candidate: RoutedProvider, context: RequestContext) -> ProviderResult:
        tracer = get_tracer()
        start = time.perf_counter()
        with tracer.start_as_current_span("provider.analyze") as span:
            span.set_attribute("provider.name", candidate.name)
            span.set_attribute("request.id", context.request_id)
            try:
                return await asyncio.wait_for(
                    candidate.provider.analyze(context.structured_data, context.notes, context.request_id),
                    timeout=self.settings.call_timeout_s,
                )
            finally:
                PROVIDER_LATENCY.labels(candidate.name).observe(time.perf_counter() - start)

    def _skip_reason(self, name: str) -> str | None:
        if self.health.is_disabled(name):
            return "disabled"
        if self.health.is_cooling(name):
            return "cooldown"
        return None

    def _apply_failure(self, name: str, error: ProviderError, request_id: str) -> bool:
        """Fold a classified failure into health; False means stop failing over."""
        if error.status in (401, 403):
            self._disable(name, self.settings.auth_disable_s, "auth", request_id)
        elif error.status == 402:
            self._disable(name, self.settings.payment_disable_s, "payment", request_id)
        elif error.status == 429:
            self._cooldown(name, self.settings.rate_limit_cooldown_s, "rate_limit", request_id)
        elif error.retryable:
            self._cooldown(name, self.settings.error_cooldown_s, error.kind.value, request_id)
        else:
            return False
        return True

    def _cooldown(self, name: str, seconds: float, reason: str, request_id: str) -> None:
        self.health.cooldown(name, seconds)
        PROVIDER_STATE_CHANGES_TOTAL.labels(name, "cooldown").inc()
        log_event(
            logging.WARNING,
            "provider_cooldown",
            request_id=request_id,
            provider=name,
            reason=reason,
            cooldown_s=seconds,
        )

    def _disable(self, name: str, seconds: float, reason: str, request_id: str) -> None:
        self.health.disable(name, seconds)
        PROVIDER_STATE_CHANGES_TOTAL.labels(name, "disabled").inc()
        log_event(
            logging.ERROR,
            "provider_disabled",
            request_id=request_id,
            provider=name,
            reason=reason,
            disabled_s=seconds,
        )
