from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from gateway.cache import RedisCache, generate_cache_key
from gateway.errors import AllProvidersFailedError, ProviderError
from gateway.log import log_event
from gateway.metrics import ANALYSIS_FALLBACK_TOTAL, CACHE_LOOKUPS_TOTAL
from gateway.router import CancelCheck, ProviderRouter, RequestContext
from gateway.schemas import AnalysisMetadata, AnalysisResponse, JobData

FALLBACK_MODEL = "fallback-v1"


def fallback_response(structured_data: dict[str, Any], notes: list[str], request_id: str) -> AnalysisResponse:
    return AnalysisResponse(
        summary=f"Analysis of {len(structured_data)} data fields and {len(notes)} notes.",
        key_insights=[
            "System generated basic analysis due to service limitations",
            "Please try again later for AI-powered insights",
        ],
        next_actions=["Retry analysis in a few moments", "Contact support if issue persists"],
        metadata=AnalysisMetadata(
            confidence_score=0.3,
            model_version=FALLBACK_MODEL,
            processing_time_ms=100,
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            fallback=True,
        ),
    )


class AnalysisService:
    def __init__(self, router: ProviderRouter, cache: RedisCache, cache_ttl_s: int = 3600) -> None:
        self.router = router
        self.cache = cache
        self.cache_ttl_s = cache_ttl_s

    async def process_analysis(
        self,
        structured_data: dict[str, Any],
        notes: str | list[str],
        request_id: str,
        is_cancelled: CancelCheck | None = None,
    ) -> AnalysisResponse:
        notes_list = [notes] if isinstance(notes, str) else list(notes)
        start = time.perf_counter()
        context = RequestContext(structured_data=structured_data, notes=notes_list, request_id=request_id)
        try:
            result = await self.router.route(context, is_cancelled=is_cancelled)
        except (ProviderError, AllProvidersFailedError) as exc:
            ANALYSIS_FALLBACK_TOTAL.inc()
            log_event(
                logging.ERROR,
                "analysis_failed",
                request_id=request_id,
                error=str(exc),
                processing_ms=int((time.perf_counter() - start) * 1000),
            )
            return fallback_response(structured_data, notes_list, request_id)

        metadata = result.response.metadata.model_copy(
            update={
                "processing_time_ms": int((time.perf_counter() - start) * 1000),
                "request_id": request_id,
                "provider": result.provider,
            }
        )
        return result.response.model_copy(update={"metadata": metadata})

    async def analyze_cached(
        self,
        structured_data: dict[str, Any],
        notes: list[str],
        request_id: str,
        cache_key: str | None = None,
        is_cancelled: CancelCheck | None = None,
    ) -> AnalysisResponse:
        key = cache_key or generate_cache_key(structured_data, notes)
        cached = await self.cache.get(key)
        if cached is not None:
            CACHE_LOOKUPS_TOTAL.labels("hit").inc()
            log_event(logging.INFO, "cache_hit", request_id=request_id, cache_key=key)
            response = AnalysisResponse.model_validate(cached)
            metadata = response.metadata.model_copy(
                update={"cached": True, "request_id": request_id, "cache_key": key}
            )
            return response.model_copy(update={"metadata": metadata})

        CACHE_LOOKUPS_TOTAL.labels("miss").inc()
        response = await self.process_analysis(structured_data, notes, request_id, is_cancelled=is_cancelled)
        if not response.metadata.fallback:
            await self.cache.set(key, response.model_dump(mode="json"), self.cache_ttl_s)
        metadata = response.metadata.model_copy(update={"cached": False, "cache_key": key})
        return response.model_copy(update={"metadata": metadata})

    async def run_job(self, job: JobData) -> AnalysisResponse:
        return await self.process_analysis(job.structured_data, job.notes, job.job_id)
