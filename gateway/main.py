import logging
import time
import uuid
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from gateway.cache import RedisCache
from gateway.config import load_settings
from gateway.errors import RequestCancelledError
from gateway.jobs import JobQueue
from gateway.log import log_event
from gateway.metrics import RATE_LIMITED_TOTAL, REQUEST_LATENCY, REQUESTS_TOTAL
from gateway.otel import setup_tracing
from gateway.registry import build_providers
from gateway.reliability import RetryConfig
from gateway.router import ProviderRouter
from gateway.schemas import (
    AnalysisRequest,
    AnalyzeEnvelope,
    ErrorResponse,
    JobAccepted,
    JobAcceptedEnvelope,
    JobData,
    JobStatusEnvelope,
    ValidationErrorDetail,
)
from gateway.service import AnalysisService

UNLIMITED_PATHS = {"/health", "/metrics"}
STARTED_AT = time.monotonic()

settings = load_settings()
router = ProviderRouter(build_providers(settings), settings.router)
cache = RedisCache(settings.redis_url)
service = AnalysisService(router, cache, cache_ttl_s=settings.cache_ttl_s)
job_queue = JobQueue(
    cache,
    service.run_job,
    retry=RetryConfig(max_attempts=settings.job_max_attempts, base_delay_ms=settings.job_backoff_ms),
    concurrency=settings.job_concurrency,
    result_ttl_s=settings.job_result_ttl_s,
    webhook_timeout_s=settings.webhook_timeout_s,
)

app = FastAPI(title="analysis-gateway", docs_url="/api/docs", openapi_url="/swagger.json")
setup_tracing(app, settings.tracing)


@app.on_event("startup")
async def connect_redis():
    await cache.connect()
    log_event(
        logging.INFO,
        "startup",
        providers=[p.name for p in router.providers],
        strategy=router.settings.strategy.value,
    )


@app.on_event("shutdown")
async def close_redis():
    await job_queue.shutdown()
    await cache.close()


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    details = [
        ValidationErrorDetail(
            field=".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            message=err.get("msg", "invalid value"),
        )
        for err in exc.errors()
    ]
    log_event(logging.WARNING, "validation_failed", path=request.url.path, errors=[d.model_dump() for d in details])
    body = ErrorResponse(error="Validation Error", details=details)
    return JSONResponse(status_code=400, content=body.model_dump())


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "redis": await cache.health_check(),
        "uptime_s": round(time.monotonic() - STARTED_AT, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/api/analyze", response_model=AnalyzeEnvelope)
async def analyze(payload: AnalysisRequest, request: Request):
    request_id = str(uuid.uuid4())
    log_event(
        logging.INFO,
        "analysis_request_received",
        request_id=request_id,
        structured_data_keys=list(payload.structured_data),
    )
    try:
        result = await service.analyze_cached(
            payload.structured_data,
            payload.notes,
            request_id,
            cache_key=payload.cache_key,
            is_cancelled=request.is_disconnected,
        )
    except RequestCancelledError:
        return JSONResponse(status_code=499, content={"success": False, "error": "Client Closed Request"})
    return AnalyzeEnvelope(data=result)


@app.post("/api/analyze/async", response_model=JobAcceptedEnvelope, status_code=202)
async def analyze_async(payload: AnalysisRequest):
    job_id = str(uuid.uuid4())
    log_event(logging.INFO, "async_analysis_requested", job_id=job_id)
    await job_queue.submit(
        JobData(
            job_id=job_id,
            structured_data=payload.structured_data,
            notes=payload.notes,
            webhook_url=str(payload.webhook_url) if payload.webhook_url else None,
        )
    )
    return JobAcceptedEnvelope(data=JobAccepted(job_id=job_id, status_url=f"/api/analyze/status/{job_id}"))


@app.get("/api/analyze/status/{job_id}", response_model=JobStatusEnvelope)
async def job_status(job_id: str):
    return JobStatusEnvelope(data=await job_queue.get_status(job_id))


@app.get("/api/providers/health")
async def providers_health():
    return {"strategy": router.settings.strategy.value, "providers": router.health_snapshot()}


@app.post("/api/providers/health/reset")
async def reset_providers_health():
    router.reset()
    log_event(logging.WARNING, "provider_health_reset")
    return {"status": "ok"}


@app.middleware("http")
async def rate_limit_requests(request: Request, call_next):
    if request.url.path in UNLIMITED_PATHS or not request.url.path.startswith("/api/"):
        return await call_next(request)

    window = settings.rate_limit_window_s
    client = request.client.host if request.client else "unknown"
    bucket = int(time.time() // window)
    count = await cache.incr_window(f"rl:req:{client}:{bucket}", window)
    if count is None:
        log_event(logging.WARNING, "rate_limit_unavailable", path=request.url.path)
        return await call_next(request)

    if count > settings.rate_limit_requests:
        retry_after = window - int(time.time() % window)
        RATE_LIMITED_TOTAL.labels("requests_per_window").inc()
        return JSONResponse(
            status_code=429,
            headers={"Retry-After": str(retry_after)},
            content={"success": False, "error": "Too Many Requests"},
        )

    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
    finally:
        elapsed_seconds = time.perf_counter() - start
        log_event(
            logging.INFO,
            "request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=getattr(response, "status_code", None),
            duration_ms=round(elapsed_seconds * 1000, 2),
        )

    response.headers["X-Request-Id"] = request_id
    status_code = str(response.status_code)
    REQUESTS_TOTAL.labels(request.method, request.url.path, status_code).inc()
    REQUEST_LATENCY.labels(request.method, request.url.path).observe(elapsed_seconds)
    return response
