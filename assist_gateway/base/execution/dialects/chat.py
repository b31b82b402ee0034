"""Chat completion wire dialects.

``openai`` covers every OpenAI-compatible ``/chat/completions`` endpoint
(OpenAI, OpenRouter, Groq, DeepSeek). ``gemini`` targets the Generative
Language ``generateContent`` API, ``ollama`` a local Ollama daemon, and
``proxy`` the companion proxy's ``/v1/ai/chat`` route.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ...errors import Classification
from ...models import OperationDescriptor, Provider, Service
from .base import RequestSpec, WireDialect, drop_none, join_url

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "gpt-4o-mini",
    "openrouter": "deepseek/deepseek-chat",
    "groq": "llama-3.1-8b-instant",
    "deepseek": "deepseek-chat",
    "gemini": "gemini-1.5-flash",
    "ollama": "llama3.2",
    "proxy": "auto",
}


def resolve_model(provider: Optional[Provider], descriptor: OperationDescriptor, dialect: str = "") -> str:
    """Caller-supplied model, else the provider's default, else the dialect's."""
    model = descriptor.args.get("model")
    if model:
        return model
    if provider is not None:
        return DEFAULT_MODELS.get(provider.name) or DEFAULT_MODELS.get(provider.dialect, "auto")
    return DEFAULT_MODELS.get(dialect, "auto")


def _messages(descriptor: OperationDescriptor) -> List[Dict[str, str]]:
    messages = []
    if descriptor.args.get("system"):
        messages.append({"role": "system", "content": descriptor.args["system"]})
    messages.append({"role": "user", "content": descriptor.args["prompt"]})
    return messages


def _bearer(provider: Provider) -> Dict[str, str]:
    return {"Authorization": f"Bearer {provider.credential}"} if provider.credential else {}


def build_openai(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    body = drop_none(
        {
            "model": resolve_model(provider, descriptor),
            "messages": _messages(descriptor),
            "max_tokens": descriptor.args.get("max_tokens"),
            "temperature": descriptor.args.get("temperature"),
        }
    )
    return RequestSpec("POST", join_url(provider.base_endpoint, "chat/completions"), json=body, headers=_bearer(provider))


def build_gemini(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    model = resolve_model(provider, descriptor)
    body: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": descriptor.args["prompt"]}]}]}
    if descriptor.args.get("system"):
        body["systemInstruction"] = {"parts": [{"text": descriptor.args["system"]}]}
    generation = drop_none(
        {
            "temperature": descriptor.args.get("temperature"),
            "maxOutputTokens": descriptor.args.get("max_tokens"),
        }
    )
    if generation:
        body["generationConfig"] = generation
    headers = {"x-goog-api-key": provider.credential} if provider.credential else {}
    return RequestSpec("POST", join_url(provider.base_endpoint, f"models/{model}:generateContent"), json=body, headers=headers)


def refine_gemini(status: int, body: Any, classification: Classification) -> Classification:
    """Gemini answers an invalid key with HTTP 400 and ``API_KEY_INVALID``."""
    if status == 400 and isinstance(body, dict):
        error = body.get("error") or {}
        reasons = {d.get("reason") for d in error.get("details") or [] if isinstance(d, dict)}
        if "API_KEY_INVALID" in reasons or "API key not valid" in str(error.get("message", "")):
            return Classification.PROVIDER_AUTH_FAILURE
    return classification


def build_ollama(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    options = drop_none(
        {
            "temperature": descriptor.args.get("temperature"),
            "num_predict": descriptor.args.get("max_tokens"),
        }
    )
    body: Dict[str, Any] = {
        "model": resolve_model(provider, descriptor),
        "messages": _messages(descriptor),
        "stream": False,
    }
    if options:
        body["options"] = options
    return RequestSpec("POST", join_url(provider.base_endpoint, "api/chat"), json=body)


def build_proxy(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    body = drop_none(
        {
            "prompt": descriptor.args["prompt"],
            "model": descriptor.args.get("model", "auto"),
            "max_tokens": descriptor.args.get("max_tokens"),
            "temperature": descriptor.args.get("temperature"),
        }
    )
    return RequestSpec("POST", join_url(provider.base_endpoint, "v1/ai/chat"), json=body, headers=_bearer(provider))


CHAT_DIALECTS = (
    WireDialect(Service.CHAT, "openai", build_openai),
    WireDialect(Service.CHAT, "gemini", build_gemini, refine_gemini),
    WireDialect(Service.CHAT, "ollama", build_ollama),
    WireDialect(Service.CHAT, "proxy", build_proxy),
)

__all__ = ["CHAT_DIALECTS", "DEFAULT_MODELS", "resolve_model", "refine_gemini"]
