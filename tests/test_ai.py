"""
AI layer: gateway fallback and retry, JSON parsing, provider factory,
best-effort RCS explanation and the AI triage endpoint.
"""

from unittest.mock import patch

import pytest

from qahub.ai.assistant import QAAssistant, parse_json_object
from qahub.ai.gateway import LLMGateway, LLMProvider
from qahub.ai.provider_factory import AIProviderFactory
from qahub.core.exceptions import AIProviderError
from qahub.models import db
from qahub.models.release import Release
from qahub.models.tenant import Tenant
from qahub.services import bug_service, rcs_service, release_service


class _FailingProvider(LLMProvider):
    default_model = "broken"

    def __init__(self):
        self.calls = 0

    def chat(self, messages, model, **kwargs):
        self.calls += 1
        raise ConnectionError("upstream reset")


class _CannedProvider(LLMProvider):
    default_model = "canned"

    def __init__(self, content):
        self.content = content

    def chat(self, messages, model, **kwargs):
        return {"content": self.content, "prompt_tokens": 1, "completion_tokens": 1, "model": model}


@pytest.fixture()
def gateway(monkeypatch):
    for env_key in LLMGateway.API_KEY_ENV.values():
        monkeypatch.delenv(env_key, raising=False)
    return LLMGateway(max_retries=1)


def _set_provider(tenant, provider):
    tenant.settings = {"ai_config": {"provider": provider}} if provider else {}
    db.session.commit()


# ── Gateway ──────────────────────────────────────────────────────────────


class TestGateway:
    def test_only_local_without_keys(self, gateway):
        assert gateway.available_providers() == ["local"]

    def test_unknown_provider_falls_back_to_stub(self, gateway):
        result = gateway.chat([{"role": "user", "content": "hello"}], "gpt-4o", provider="openai")
        assert result["provider"] == "local"
        assert result["model"] == "local-stub"
        assert "latency_ms" in result

    def test_exhausted_retries_raise_runtime_error(self, gateway):
        failing = _FailingProvider()
        gateway.register_provider("flaky", failing)
        with pytest.raises(RuntimeError, match="failed after 1 attempts"):
            gateway.chat([{"role": "user", "content": "x"}], provider="flaky")
        assert failing.calls == 1


class TestParseJson:
    @pytest.mark.parametrize("content,expected", [
        ('{"a": 1}', {"a": 1}),
        ('```json\n{"a": 1}\n```', {"a": 1}),
        ('Sure! Here it is: {"a": {"b": 2}} hope that helps', {"a": {"b": 2}}),
        ("[1, 2]", None),
        ("no json here", None),
        ("", None),
    ])
    def test_parse(self, content, expected):
        assert parse_json_object(content) == expected


class TestAssistant:
    def test_explain_falls_back_on_prose(self, gateway):
        gateway.register_provider("canned", _CannedProvider("The release looks fine."))
        assistant = QAAssistant(gateway, provider="canned")
        assert assistant.explain_rcs(81.6, {}) == {
            "summary": "Release score is 82/100.",
            "risks": [],
            "strengths": [],
        }

    def test_triage_normalises_values(self, gateway):
        gateway.register_provider("canned", _CannedProvider(
            '{"suggestedSeverity": "high", "suggestedPriority": "P9", '
            '"rootCauseHypothesis": "race", "duplicateCandidates": ["BUG-1", ""]}'
        ))
        suggestion = QAAssistant(gateway, provider="canned").triage_bug("t", "d")
        assert suggestion == {
            "suggested_severity": "HIGH",
            "suggested_priority": None,
            "duplicate_candidates": ["BUG-1"],
            "root_cause_hypothesis": "race",
        }

    def test_triage_rejects_non_json(self, gateway):
        gateway.register_provider("canned", _CannedProvider("I think it is bad"))
        with pytest.raises(AIProviderError):
            QAAssistant(gateway, provider="canned").triage_bug("t", "d")


# ── Provider factory ─────────────────────────────────────────────────────


class TestProviderFactory:
    def test_returns_assistant_for_configured_tenant(self, tenant, gateway):
        assistant = AIProviderFactory(gateway).get_provider(tenant.id)
        assert assistant.provider == "local"
        assert assistant.tenant_id == tenant.id

    def test_missing_provider_raises(self, tenant, gateway):
        _set_provider(tenant, None)
        with pytest.raises(AIProviderError, match="No AI provider configured"):
            AIProviderFactory(gateway).get_provider(tenant.id)

    def test_unsupported_provider_raises(self, tenant, gateway):
        _set_provider(tenant, "cohere")
        with pytest.raises(AIProviderError, match="Unsupported AI provider"):
            AIProviderFactory(gateway).get_provider(tenant.id)

    def test_unknown_tenant_raises(self, gateway):
        with pytest.raises(AIProviderError):
            AIProviderFactory(gateway).get_provider(4242)


# ── RCS explanation ──────────────────────────────────────────────────────


class TestExplanation:
    def _release(self, tenant_id):
        rel = release_service.create_release(tenant_id=tenant_id, data={"version": "1.0.0"})
        db.session.commit()
        return rel

    def test_explanation_stored_after_scoring(self, tenant):
        rel = self._release(tenant.id)
        result = rcs_service.calculate_rcs(rel.id, tenant_id=tenant.id)
        explanation = db.session.get(Release, rel.id).rcs_explanation
        assert explanation["summary"] == f"Release score is {result['score']}/100."

    def test_provider_failure_never_affects_score(self, tenant):
        rel = self._release(tenant.id)
        with patch("qahub.services.rcs_service.AIProviderFactory") as factory:
            factory.return_value.get_provider.side_effect = RuntimeError("provider exploded")
            result = rcs_service.calculate_rcs(rel.id, tenant_id=tenant.id)
        assert isinstance(result["score"], int)
        stored = db.session.get(Release, rel.id)
        assert stored.rcs_evaluated_at is not None
        assert stored.rcs_explanation is None

    def test_unconfigured_tenant_still_gets_a_score(self, tenant):
        _set_provider(tenant, None)
        rel = self._release(tenant.id)
        evaluation = rcs_service.evaluate_release_gates(rel.id, tenant_id=tenant.id)
        assert "rcs_score" in evaluation
        assert db.session.get(Release, rel.id).rcs_explanation is None

    def test_generate_explanation_returns_none_on_failure(self, tenant):
        assert rcs_service.generate_explanation(999, tenant_id=tenant.id, score=50, breakdown={}) is None


# ── AI triage ────────────────────────────────────────────────────────────


class TestAiTriage:
    def _bug(self, tenant_id, title="App crash on login"):
        bug = bug_service.create_bug(tenant_id=tenant_id, data={"title": title, "description": "NPE"})
        db.session.commit()
        return bug

    def test_endpoint_returns_suggestion(self, client, tenant, auth_headers):
        bug = self._bug(tenant.id)
        res = client.post(f"/api/v1/bugs/{bug.id}/ai-triage", headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["bug_id"] == bug.id
        assert body["suggested_severity"] == "CRITICAL"
        assert body["suggested_priority"] == "P0"

    def test_suggestion_is_not_persisted(self, client, tenant, auth_headers):
        bug = self._bug(tenant.id)
        client.post(f"/api/v1/bugs/{bug.id}/ai-triage", headers=auth_headers)
        assert db.session.get(type(bug), bug.id).severity is None

    def test_endpoint_503_without_provider(self, client, tenant, auth_headers):
        _set_provider(tenant, None)
        bug = self._bug(tenant.id)
        res = client.post(f"/api/v1/bugs/{bug.id}/ai-triage", headers=auth_headers)
        assert res.status_code == 503
        assert res.get_json()["code"] == "ERR_AI_UNAVAILABLE"

    def test_provider_runtime_error_becomes_ai_error(self, tenant, gateway):
        bug = self._bug(tenant.id)
        gateway.register_provider("local", _FailingProvider())
        with pytest.raises(AIProviderError, match="failed after"):
            bug_service.suggest_triage(bug.id, tenant_id=tenant.id, factory=AIProviderFactory(gateway))

    def test_foreign_bug_is_404(self, client, tenant, other_auth_headers):
        bug = self._bug(tenant.id)
        res = client.post(f"/api/v1/bugs/{bug.id}/ai-triage", headers=other_auth_headers)
        assert res.status_code == 404


def test_tenant_ai_config_defaults_to_empty():
    assert Tenant(name="x", slug="x").ai_config == {}
