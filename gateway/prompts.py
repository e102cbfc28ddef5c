import json
from typing import Any

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for an operations team. "
    "Always respond with valid JSON in the specified format."
)

ANALYSIS_TEMPLATE = """ROLE: You are an expert operations analyst.

TASK: Analyze the provided structured data and free-text notes to generate:
1. A CONCISE SUMMARY (2-3 sentences maximum)
2. KEY INSIGHTS (3-5 bullet points, focus on operational impact)
3. RECOMMENDED NEXT ACTIONS (2-3 actionable items with owners if possible)

STRUCTURED DATA:
{structured_data}

FREE-TEXT NOTES:
{notes}

ANALYSIS GUIDELINES:
- Focus on operational efficiency, customer satisfaction, and risk mitigation
- Identify patterns, anomalies, and opportunities
- Be specific, actionable, and practical

OUTPUT FORMAT (STRICT JSON ONLY):
{{
  "summary": "string (2-3 sentences)",
  "key_insights": ["string", "string", "string"],
  "next_actions": ["string", "string", "string"],
  "confidence_score": number (0.0-1.0, estimate of analysis quality)
}}

IMPORTANT: Respond ONLY with valid JSON. No additional text."""


def build_analysis_prompt(structured_data: dict[str, Any], notes: list[str]) -> str:
    data_text = json.dumps(structured_data, indent=2, default=str)
    notes_text = "\n".join(f"{i}. {note}" for i, note in enumerate(notes, start=1))
    return ANALYSIS_TEMPLATE.format(structured_data=data_text, notes=notes_text)
