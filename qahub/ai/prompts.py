"""
Release Quality Hub
Prompt templates for the QA assistant.

Each builder returns chat messages ready for ``LLMGateway.chat``.
"""

import json

SYSTEM_JSON_ONLY = "Respond with a single JSON object and nothing else."


def explain_rcs_messages(score: float, breakdown: dict) -> list[dict]:
    user = (
        "You are a Release Manager. Explain this Release Confidence Score (RCS).\n\n"
        f"Total Score: {round(score)}/100\n"
        f"Breakdown: {json.dumps(breakdown, default=str)}\n\n"
        "Pillars: RP = requirements readiness, QT = test pass rate, "
        "B = open bug penalty, SO = security & ops.\n\n"
        "Output strictly valid JSON:\n"
        '{"summary": "string", "risks": ["string"], "strengths": ["string"]}'
    )
    return [
        {"role": "system", "content": SYSTEM_JSON_ONLY},
        {"role": "user", "content": user},
    ]


def triage_bug_messages(title: str, description: str, related_requirements: str = "") -> list[dict]:
    user = (
        "You are an AI Triage Assistant. Analyze this bug report.\n\n"
        f'Bug: "{title}"\n'
        f'Description: "{description}"\n\n'
        f"Related Requirements:\n{related_requirements or 'none'}\n\n"
        "Output strictly valid JSON:\n"
        '{"suggestedSeverity": "CRITICAL" | "HIGH" | "MEDIUM" | "LOW", '
        '"suggestedPriority": "P0" | "P1" | "P2" | "P3", '
        '"rootCauseHypothesis": "string", "duplicateCandidates": ["string"]}'
    )
    return [
        {"role": "system", "content": SYSTEM_JSON_ONLY},
        {"role": "user", "content": user},
    ]
