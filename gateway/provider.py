from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from gateway.schemas import AnalysisResponse

RAW_RESPONSE_LIMIT = 500


@dataclass(frozen=True)
class ProviderResult:
    response: AnalysisResponse
    model_version: str
    raw_response: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    provider: str | None = None


class Provider(ABC):
    @abstractmethod
    async def analyze(
        self,
        structured_data: dict[str, Any],
        notes: list[str],
        request_id: str,
    ) -> ProviderResult:
        raise NotImplementedError
