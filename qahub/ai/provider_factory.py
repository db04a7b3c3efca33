"""
Release Quality Hub
AI provider factory — resolves a tenant's configured provider.

The tenant chooses a provider in ``Tenant.settings["ai_config"]``:
    {"provider": "gemini", "model": "gemini-2.5-flash"}
A tenant without a configured provider gets AIProviderError.
"""

import logging

from flask import current_app

from qahub.ai.assistant import QAAssistant
from qahub.ai.gateway import LLMGateway
from qahub.core.exceptions import AIProviderError
from qahub.models import db
from qahub.models.tenant import Tenant

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("gemini", "anthropic", "openai", "local")


def get_gateway() -> LLMGateway:
    """One gateway per app instance."""
    app = current_app._get_current_object()
    if not hasattr(app, "_ai_gateway"):
        app._ai_gateway = LLMGateway(max_retries=app.config.get("LLM_MAX_RETRIES", 3))
    return app._ai_gateway


class AIProviderFactory:
    """Hands out a QAAssistant configured for one tenant."""

    def __init__(self, gateway: LLMGateway | None = None):
        self._gateway = gateway

    @property
    def gateway(self) -> LLMGateway:
        return self._gateway or get_gateway()

    def get_provider(self, tenant_id: int) -> QAAssistant:
        tenant = db.session.get(Tenant, tenant_id)
        ai_config = tenant.ai_config if tenant else {}
        provider = (ai_config.get("provider") or "").lower()
        if not provider:
            raise AIProviderError(
                "No AI provider configured. Please configure an AI provider in Settings."
            )
        if provider not in SUPPORTED_PROVIDERS:
            raise AIProviderError(f"Unsupported AI provider '{provider}'")

        logger.debug("Selecting AI provider %s for tenant %s", provider, tenant_id)
        return QAAssistant(
            self.gateway,
            provider=provider,
            model=ai_config.get("model"),
            tenant_id=tenant_id,
        )
