from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from gateway.log import log_event
from gateway.schemas import AnalysisMetadata, AnalysisResponse

JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
REQUIRED_FIELDS = ("summary", "key_insights", "next_actions")
DEFAULT_CONFIDENCE = 0.8


class ResponseParseError(ValueError):
    pass


def parse_analysis_response(provider: str, model: str, content: str) -> AnalysisResponse:
    """Pull the analysis JSON out of a model reply.

    Replies that cannot be parsed still produce a valid (low confidence)
    response so one chatty model does not fail the whole request.
    """
    try:
        parsed = _extract(content)
    except ResponseParseError as exc:
        log_event(
            logging.ERROR,
            "response_parse_failed",
            provider=provider,
            error=str(exc),
            content=content[:200],
        )
        return AnalysisResponse(
            summary="Unable to parse AI response. Please try again.",
            key_insights=["Response parsing failed"],
            next_actions=["Retry the analysis"],
            metadata=AnalysisMetadata(
                confidence_score=0.1,
                fallback=True,
                model_version=model,
                timestamp=_now(),
            ),
        )

    confidence = parsed.get("confidence_score", DEFAULT_CONFIDENCE)
    try:
        confidence = min(1.0, max(0.0, float(confidence)))
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE

    return AnalysisResponse(
        summary=str(parsed["summary"]),
        key_insights=_as_list(parsed["key_insights"]),
        next_actions=_as_list(parsed["next_actions"]),
        metadata=AnalysisMetadata(
            confidence_score=confidence,
            model_version=str(parsed.get("model_version") or model),
            timestamp=_now(),
        ),
    )


def _extract(content: str) -> dict:
    match = JSON_OBJECT.search(content or "")
    if match is None:
        raise ResponseParseError("No JSON found in response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ResponseParseError("Response JSON is not an object")
    missing = [field for field in REQUIRED_FIELDS if not parsed.get(field)]
    if missing:
        raise ResponseParseError(f"Missing required fields: {', '.join(missing)}")
    return parsed


def _as_list(value) -> list[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    return [str(value)]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
