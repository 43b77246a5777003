"""Structured output extraction with text-JSON fallback.

Extracts per-criterion scores from LLM judge responses, trying
tool_call arguments first and falling back to text-based JSON extraction.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from anvil.adapters.base import AdapterTurnResult, ToolCallResult


def _clamp_scores(scores: dict) -> dict:
    for val in scores.values():
        if isinstance(val, dict) and "score" in val:
            score = val["score"]
            if isinstance(score, (int, float)):
                val["score"] = max(0.0, min(1.0, float(score)))
    return scores


def extract_scores_from_tool_call(tool_calls: list[ToolCallResult]) -> dict | None:
    """Extract per-criterion scores from a 'score_criteria' tool call.

    Scores are clamped to [0.0, 1.0]. Returns None if no matching
    tool call is found.
    """
    for tc in tool_calls:
        if tc.name == "score_criteria" and isinstance(tc.arguments, dict):
            return _clamp_scores(tc.arguments)
    return None


def extract_json_from_text(text: str) -> dict | None:
    """Fallback: extract JSON from text response.

    Tries three strategies in order:
    1. Direct json.loads on the full text
    2. Brace extraction (first '{' to last '}')
    3. Markdown code block (```json...```)
    """
    if not text:
        return None

    try:
        result = json.loads(text)
        if isinstance(result, dict):
            return result
    except ValueError:
        pass

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        try:
            result = json.loads(text[first_brace : last_brace + 1])
            if isinstance(result, dict):
                return result
        except ValueError:
            pass

    match = re.search(r"```json\s*\n(.*?)\n\s*```", text, re.DOTALL)
    if match:
        try:
            result = json.loads(match.group(1))
            if isinstance(result, dict):
                return result
        except ValueError:
            pass

    return None


def extract_scores(result: AdapterTurnResult, criteria: list[dict]) -> dict | None:
    """Extract per-criterion scores from a judge response.

    Tries tool_call extraction first, then text-JSON fallback. The
    result must name at least one expected criterion.

    Returns:
        Dict mapping criterion names to {score, reasoning}, or None.
    """
    criterion_names = {c["name"] for c in criteria}

    if result.tool_calls:
        scores = extract_scores_from_tool_call(result.tool_calls)
        if scores is not None and any(name in scores for name in criterion_names):
            return scores

    if result.content:
        scores = extract_json_from_text(result.content)
        if scores is not None and any(name in scores for name in criterion_names):
            return _clamp_scores(scores)

    return None
