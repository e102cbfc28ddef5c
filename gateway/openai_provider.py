import logging
import time

import httpx

from gateway.config import ProviderSettings
from gateway.errors import ProviderError, provider_error_from_httpx
from gateway.log import log_event
from gateway.parsing import parse_analysis_response
from gateway.prompts import build_analysis_prompt
from gateway.provider import RAW_RESPONSE_LIMIT, Provider, ProviderResult


class OpenAIProvider(Provider):
    name = "openai"
    label = "OpenAI"
    completions_path = "/chat/completions"

    def __init__(self, settings: ProviderSettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self._transport = transport

    async def analyze(self, structured_data, notes, request_id) -> ProviderResult:
        if not self.settings.api_key:
            raise ProviderError(self.name, f"{self.name.upper()}_API_KEY is missing", retryable=False)

        prompt = build_analysis_prompt(structured_data, notes)
        payload = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": self.settings.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.2,
        }
        headers = {"Authorization": f"Bearer {self.settings.api_key}"}

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout_s, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}{self.completions_path}", json=payload, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            raise provider_error_from_httpx(self.name, self.label, exc) from exc

        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
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
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
        )
