"""
Release Quality Hub
LLM Gateway.

One entry point for every model call the hub makes (RCS explanations, bug
triage suggestions):
    - vendor providers (Anthropic, OpenAI, Gemini) whose SDKs load on first use
    - retry with capped exponential backoff
    - token and latency logging tagged with purpose and tenant
    - deterministic local stub for providers without an API key

Usage:
    from qahub.ai.gateway import LLMGateway
    gw = LLMGateway()
    result = gw.chat(messages, provider="gemini", purpose="rcs_explanation", tenant_id=3)
"""

import json
import logging
import os
import re
import threading
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.3


def split_system(messages: list) -> tuple[str, list]:
    """Pull system prompts out of a chat transcript (Anthropic and Gemini take them separately)."""
    system = [m["content"] for m in messages if m["role"] == "system"]
    rest = [m for m in messages if m["role"] != "system"]
    return "\n\n".join(system), rest


# ── Provider base classes ─────────────────────────────────────────────────────

class LLMProvider(ABC):
    """A chat-completion backend.

    ``chat`` returns ``{content, prompt_tokens, completion_tokens, model}``.
    """

    default_model = ""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        ...


class SDKProvider(LLMProvider):
    """Vendor provider whose client is built from an API key on first call."""

    api_key_env = ""
    package_hint = ""

    def __init__(self):
        self.api_key = os.getenv(self.api_key_env, "")
        self._client = None

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = self._build_client()
            except ImportError:
                raise RuntimeError(
                    f"{self.package_hint} is not installed (pip install 'qahub[ai]')"
                ) from None
        return self._client

    @abstractmethod
    def _build_client(self):
        ...

    @abstractmethod
    def _complete(self, messages: list, model: str, max_tokens: int, temperature: float) -> tuple[str, int, int]:
        """Return (text, prompt_tokens, completion_tokens)."""

    def chat(self, messages: list, model: str | None = None, **kwargs) -> dict:
        model = model or self.default_model
        text, prompt_tokens, completion_tokens = self._complete(
            messages,
            model,
            kwargs.get("max_tokens", DEFAULT_MAX_TOKENS),
            kwargs.get("temperature", DEFAULT_TEMPERATURE),
        )
        return {
            "content": text or "",
            "prompt_tokens": prompt_tokens or 0,
            "completion_tokens": completion_tokens or 0,
            "model": model,
        }


# ── Vendors ───────────────────────────────────────────────────────────────────

class AnthropicProvider(SDKProvider):
    default_model = "claude-3-5-haiku-20241022"
    api_key_env = "ANTHROPIC_API_KEY"
    package_hint = "anthropic"

    def _build_client(self):
        import anthropic

        return anthropic.Anthropic(api_key=self.api_key)

    def _complete(self, messages, model, max_tokens, temperature):
        system, turns = split_system(messages)
        params = {"model": model, "messages": turns, "max_tokens": max_tokens, "temperature": temperature}
        if system:
            params["system"] = system
        response = self.client.messages.create(**params)
        return response.content[0].text, response.usage.input_tokens, response.usage.output_tokens


class OpenAIProvider(SDKProvider):
    default_model = "gpt-4o-mini"
    api_key_env = "OPENAI_API_KEY"
    package_hint = "openai"

    def _build_client(self):
        import openai

        return openai.OpenAI(api_key=self.api_key)

    def _complete(self, messages, model, max_tokens, temperature):
        response = self.client.chat.completions.create(
            model=model, messages=messages, max_tokens=max_tokens, temperature=temperature,
        )
        usage = response.usage
        return response.choices[0].message.content, usage.prompt_tokens, usage.completion_tokens


class GeminiProvider(SDKProvider):
    """Google Gemini; key from https://aistudio.google.com/apikey"""

    default_model = "gemini-2.5-flash"
    api_key_env = "GEMINI_API_KEY"
    package_hint = "google-genai"

    def _build_client(self):
        from google import genai

        return genai.Client(api_key=self.api_key)

    def _complete(self, messages, model, max_tokens, temperature):
        from google.genai import types

        system, turns = split_system(messages)
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in turns
        ]
        config = types.GenerateContentConfig(temperature=temperature, max_output_tokens=max_tokens)
        if system:
            config.system_instruction = system
        response = self.client.models.generate_content(model=model, contents=contents, config=config)
        usage = response.usage_metadata
        return (
            response.text,
            getattr(usage, "prompt_token_count", 0),
            getattr(usage, "candidates_token_count", 0),
        )


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

class LocalStubProvider(LLMProvider):
    """
    Local stub that returns deterministic JSON for dev/testing.
    No API key required.
    """

    default_model = "local-stub"

    def chat(self, messages: list, model: str | None = None, **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = self._generate_stub_response(user_msg)
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _generate_stub_response(user_msg: str) -> str:
        lower = user_msg.lower()

        if "release confidence score" in lower:
            match = re.search(r"total score:\s*(\d+)", lower)
            score = int(match.group(1)) if match else 0
            risks = [] if score >= 75 else ["Confidence is below the release threshold of 75"]
            strengths = ["Score calculated from current test, bug and planning data"]
            return json.dumps({
                "summary": f"Release score is {score}/100.",
                "risks": risks,
                "strengths": strengths,
            })

        if "triage" in lower:
            critical = any(w in lower for w in ("crash", "data loss", "security", "outage"))
            return json.dumps({
                "suggestedSeverity": "CRITICAL" if critical else "MEDIUM",
                "suggestedPriority": "P0" if critical else "P2",
                "rootCauseHypothesis": "Insufficient input validation in the affected flow.",
                "duplicateCandidates": [],
            })

        return json.dumps({"response": "Analysis complete.", "confidence": 0.5})


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Providers with an API key in the environment are registered at
    construction; anything else resolves to the local stub.
    """

    PROVIDER_CLASSES = {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
        "gemini": GeminiProvider,
    }

    API_KEY_ENV = {name: cls.api_key_env for name, cls in PROVIDER_CLASSES.items()}

    def __init__(self, max_retries: int = 3):
        self.max_retries = max_retries
        self._providers: dict[str, LLMProvider] = {}
        self._init_providers()

    def _init_providers(self):
        """Initialize available providers based on environment."""
        self._providers["local"] = LocalStubProvider()
        for name, env_key in self.API_KEY_ENV.items():
            if os.getenv(env_key):
                self._providers[name] = self.PROVIDER_CLASSES[name]()

    def register_provider(self, name: str, provider: LLMProvider) -> None:
        self._providers[name] = provider

    def available_providers(self) -> list[str]:
        return sorted(self._providers)

    def _get_provider(self, provider_name: str) -> tuple[LLMProvider, str]:
        """Resolve a provider name, falling back to the local stub if it is not registered."""
        if provider_name in self._providers:
            return self._providers[provider_name], provider_name
        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub.",
            provider_name,
        )
        return self._providers["local"], "local"

    def chat(
        self,
        messages: list,
        model: str | None = None,
        *,
        provider: str = "local",
        purpose: str = "",
        tenant_id: int | None = None,
        max_retries: int | None = None,
        **kwargs,
    ) -> dict:
        """
        Send a chat completion request with retry.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, provider, latency_ms}

        Raises:
            RuntimeError: when every attempt failed.
        """
        llm, provider_name = self._get_provider(provider)
        if provider_name != provider:
            model = None  # a model id for another vendor means nothing to the stub
        attempts = max_retries or self.max_retries
        last_error = None

        for attempt in range(1, attempts + 1):
            start_time = time.time()
            try:
                result = llm.chat(messages, model or llm.default_model, **kwargs)
                latency_ms = int((time.time() - start_time) * 1000)
                result["provider"] = provider_name
                result["latency_ms"] = latency_ms
                logger.info(
                    "LLM call ok: provider=%s model=%s purpose=%s tokens=%d+%d",
                    provider_name, result.get("model"), purpose,
                    result.get("prompt_tokens", 0), result.get("completion_tokens", 0),
                    extra={"tenant_id": tenant_id, "duration_ms": latency_ms},
                )
                return result
            except Exception as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed: %s", attempt, attempts, e,
                               extra={"tenant_id": tenant_id})
                if attempt < attempts:
                    backoff = min(2 ** (attempt - 1), 4)
                    threading.Event().wait(backoff)

        raise RuntimeError(f"LLM call failed after {attempts} attempts: {last_error}")
