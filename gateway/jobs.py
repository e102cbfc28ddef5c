from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

from gateway.cache import RedisCache
from gateway.log import log_event
from gateway.metrics import JOBS_TOTAL
from gateway.reliability import RetryConfig, backoff_delay
from gateway.schemas import AnalysisResponse, JobData, JobStatus

JobHandler = Callable[[JobData], Awaitable[AnalysisResponse]]


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def deliver_webhook(
    url: str,
    payload: dict[str, Any],
    timeout_s: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        log_event(logging.ERROR, "webhook_failed", url=url, error=str(exc))
        return False
    log_event(logging.INFO, "webhook_sent", url=url)
    return True


class JobQueue:
    """Runs analysis jobs as background tasks and keeps their state in Redis.

    A job moves waiting -> active -> completed | failed. Handler errors are
    retried with exponential backoff up to ``retry.max_attempts``. Jobs that
    are still running when the process stops are lost.
    """

    def __init__(
        self,
        cache: RedisCache,
        handler: JobHandler,
        retry: RetryConfig | None = None,
        concurrency: int = 2,
        result_ttl_s: int = 86400,
        webhook_timeout_s: float = 5.0,
        webhook_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self._handler = handler
        self._retry = retry or RetryConfig()
        self._semaphore = asyncio.Semaphore(concurrency)
        self._result_ttl_s = result_ttl_s
        self._webhook_timeout_s = webhook_timeout_s
        self._webhook_transport = webhook_transport
        self._tasks: set[asyncio.Task] = set()

    async def submit(self, job: JobData) -> JobStatus:
        status = JobStatus(job_id=job.job_id, status="waiting", created_at=_now())
        await self._save(status)
        task = asyncio.create_task(self._run(job, status))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        log_event(logging.INFO, "job_queued", job_id=job.job_id)
        return status

    async def get_status(self, job_id: str) -> JobStatus:
        record = await self.cache.get(job_key(job_id))
        if record is None:
            return JobStatus(job_id=job_id, status="not_found")
        return JobStatus.model_validate(record)

    async def join(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.join()

    async def _run(self, job: JobData, status: JobStatus) -> None:
        async with self._semaphore:
            status = status.model_copy(update={"status": "active", "processed_on": _now()})
            for attempt in range(1, self._retry.max_attempts + 1):
                status.attempts_made = attempt
                await self._save(status)
                try:
                    result = await self._handler(job)
                except Exception as exc:
                    log_event(
                        logging.ERROR,
                        "job_attempt_failed",
                        job_id=job.job_id,
                        attempt=attempt,
                        error=str(exc),
                    )
                    if attempt >= self._retry.max_attempts:
                        status = status.model_copy(update={"status": "failed", "error": str(exc)})
                        await self._save(status)
                        JOBS_TOTAL.labels("failed").inc()
                        return
                    await asyncio.sleep(backoff_delay(self._retry, attempt))
                    continue

                status = status.model_copy(
                    update={"status": "completed", "result": result, "completed_at": _now()}
                )
                await self._save(status)
                JOBS_TOTAL.labels("completed").inc()
                log_event(logging.INFO, "job_completed", job_id=job.job_id, attempts=attempt)
                if job.webhook_url:
                    await deliver_webhook(
                        job.webhook_url,
                        result.model_dump(mode="json"),
                        timeout_s=self._webhook_timeout_s,
                        transport=self._webhook_transport,
                    )
                return

    async def _save(self, status: JobStatus) -> None:
        await self.cache.set(job_key(status.job_id), status.model_dump(mode="json"), self._result_ttl_s)
