import asyncio
import json
import random

from gateway.errors import ProviderError
from gateway.parsing import parse_analysis_response
from gateway.provider import RAW_RESPONSE_LIMIT, Provider, ProviderResult


class MockProvider(Provider):
    """Local stand-in for a vendor, for development and failover drills."""

    def __init__(
        self,
        name: str = "mock",
        delay_ms: int = 200,
        fail_rate: float = 0.0,
        fail_status: int | None = None,
    ) -> None:
        self.name = name
        self.delay_ms = delay_ms
        self.fail_rate = fail_rate
        self.fail_status = fail_status
        self.calls = 0

    async def analyze(self, structured_data, notes, request_id) -> ProviderResult:
        self.calls += 1
        if self.fail_status is not None:
            raise ProviderError(
                self.name,
                f"mock provider failure ({self.fail_status})",
                status=self.fail_status,
                retryable=self.fail_status == 429 or self.fail_status >= 500,
            )
        if self.fail_rate > 0 and random.random() < self.fail_rate:
            raise RuntimeError("mock provider failure")
        await asyncio.sleep(self.delay_ms / 1000)

        content = json.dumps(
            {
                "summary": f"Mock analysis of {len(structured_data)} data fields and {len(notes)} notes.",
                "key_insights": [f"Field '{key}' present" for key in list(structured_data)[:3]] or ["No data fields"],
                "next_actions": ["Review the mock output"],
                "confidence_score": 0.5,
            }
        )
        model = "mock-1"
        response = parse_analysis_response(self.name, model, content)
        return ProviderResult(
            response=response,
            model_version=model,
            raw_response=content[:RAW_RESPONSE_LIMIT],
            prompt_tokens=1,
            completion_tokens=1,
        )
