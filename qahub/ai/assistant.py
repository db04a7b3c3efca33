"""
Release Quality Hub
QA Assistant — the per-tenant AI provider handed out by AIProviderFactory.

    explain_rcs(score, breakdown) → {summary, risks, strengths}
    triage_bug(title, description) → {suggested_severity, suggested_priority,
                                      duplicate_candidates, root_cause_hypothesis}
"""

import json
import logging
import re

from qahub.ai.prompts import explain_rcs_messages, triage_bug_messages
from qahub.core.exceptions import AIProviderError

logger = logging.getLogger(__name__)

_SEVERITIES = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
_PRIORITIES = ("P0", "P1", "P2", "P3")


def parse_json_object(content: str) -> dict | None:
    """Parse the first JSON object in an LLM reply; None if there is none."""
    cleaned = (content or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)

    try:
        parsed = json.loads(cleaned)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    start = cleaned.find("{")
    if start < 0:
        return None
    depth = 0
    for i, ch in enumerate(cleaned[start:], start):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(cleaned[start:i + 1])
                except json.JSONDecodeError:
                    return None
                return parsed if isinstance(parsed, dict) else None
    return None


def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v]


class QAAssistant:
    """AI helper bound to one tenant's provider/model choice."""

    def __init__(self, gateway, *, provider: str, model: str | None = None, tenant_id: int | None = None):
        self.gateway = gateway
        self.provider = provider
        self.model = model
        self.tenant_id = tenant_id

    def _chat(self, messages: list, purpose: str) -> str:
        result = self.gateway.chat(
            messages,
            self.model,
            provider=self.provider,
            purpose=purpose,
            tenant_id=self.tenant_id,
        )
        return result.get("content") or ""

    def explain_rcs(self, score: float, breakdown: dict) -> dict:
        content = self._chat(explain_rcs_messages(score, breakdown), "rcs_explanation")
        parsed = parse_json_object(content)
        if parsed is None:
            logger.warning("RCS explanation was not JSON; using fallback summary",
                           extra={"tenant_id": self.tenant_id})
            return {
                "summary": f"Release score is {round(score)}/100.",
                "risks": [],
                "strengths": [],
            }
        return {
            "summary": str(parsed.get("summary") or f"Release score is {round(score)}/100."),
            "risks": _str_list(parsed.get("risks")),
            "strengths": _str_list(parsed.get("strengths")),
        }

    def triage_bug(self, title: str, description: str, related_requirements: str = "") -> dict:
        content = self._chat(triage_bug_messages(title, description, related_requirements), "bug_triage")
        parsed = parse_json_object(content)
        if parsed is None:
            raise AIProviderError("Bug triage response was not valid JSON")

        severity = str(parsed.get("suggestedSeverity", "")).upper()
        priority = str(parsed.get("suggestedPriority", "")).upper()
        return {
            "suggested_severity": severity if severity in _SEVERITIES else None,
            "suggested_priority": priority if priority in _PRIORITIES else None,
            "duplicate_candidates": _str_list(parsed.get("duplicateCandidates")),
            "root_cause_hypothesis": str(parsed.get("rootCauseHypothesis") or ""),
        }
