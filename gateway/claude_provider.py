import logging
import time

import httpx

from gateway.config import ProviderSettings
from gateway.errors import ProviderError, provider_error_from_httpx
from gateway.log import log_event
from gateway.parsing import parse_analysis_response
from gateway.prompts import build_analysis_prompt
from gateway.provider import RAW_RESPONSE_LIMIT, Provider, ProviderResult


class ClaudeProvider(Provider):
    name = "claude"

    def __init__(self, settings: ProviderSettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self._transport = transport

    async def analyze(self, structured_data, notes, request_id) -> ProviderResult:
        if not self.settings.api_key:
            raise ProviderError(self.name, "CLAUDE_API_KEY is missing", retryable=False)

        payload = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "system": self.settings.system_prompt,
            "messages": [{"role": "user", "content": build_analysis_prompt(structured_data, notes)}],
            "temperature": 0.2,
        }
        headers = {
            "x-api-key": self.settings.api_key,
            "anthropic-version": self.settings.api_version or "2023-06-01",
        }

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout_s, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/v1/messages", json=payload, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            raise provider_error_from_httpx(self.name, "Claude", exc) from exc

        content = _text_content(data.get("content") or [])
        model = data.get("model") or self.settings.model
        usage = data.get("usage") or {}
        log_event(
            logging.INFO,
            "provider_call_succeeded",
            provider=self.name,
            request_id=request_id,
            model=model,
            duration_ms=int((time.perf_counter() - start) * 1000),
            usage=usage,
        )

        return ProviderResult(
            response=parse_analysis_response(self.name, model, content),
            model_version=model,
            raw_response=content[:RAW_RESPONSE_LIMIT],
            prompt_tokens=int(usage.get("input_tokens") or 0),
            completion_tokens=int(usage.get("output_tokens") or 0),
        )


def _text_content(blocks: list[dict]) -> str:
    for block in blocks:
        if block.get("type") == "text" and block.get("text"):
            return block["text"]
    if blocks:
        return blocks[0].get("text") or ""
    return ""
