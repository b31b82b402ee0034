"""Chat response mappers (one per dialect) into :class:`ChatResult`."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..errors import MalformedResponseError
from ..models import ChatResult, OperationDescriptor, Provider
from ..execution.dialects.chat import resolve_model


def _int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _finish(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return "unknown"


def _require_text(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise MalformedResponseError(f"chat response has no text at {where}")
    return value


def from_openai(body: Dict[str, Any], provider: Optional[Provider], descriptor: OperationDescriptor) -> ChatResult:
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise MalformedResponseError("chat response has no choices")
    choice = choices[0]
    message = _dict(choice.get("message"))
    text = message.get("content")
    if text is None:
        text = choice.get("text")
    usage = _dict(body.get("usage"))
    return ChatResult(
        text=_require_text(text, "choices[0].message.content"),
        model_used=body.get("model") or resolve_model(provider, descriptor),
        tokens_in=_int(usage.get("prompt_tokens")),
        tokens_out=_int(usage.get("completion_tokens")),
        finish_reason=_finish(choice.get("finish_reason")),
    )


def from_gemini(body: Dict[str, Any], provider: Optional[Provider], descriptor: OperationDescriptor) -> ChatResult:
    candidates = body.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        raise MalformedResponseError("gemini response has no candidates")
    candidate = candidates[0]
    parts = _dict(candidate.get("content")).get("parts")
    if not isinstance(parts, list):
        parts = []
    texts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    if not texts:
        raise MalformedResponseError("gemini response has no text parts")
    usage = _dict(body.get("usageMetadata"))
    return ChatResult(
        text="".join(texts),
        model_used=body.get("modelVersion") or resolve_model(provider, descriptor),
        tokens_in=_int(usage.get("promptTokenCount")),
        tokens_out=_int(usage.get("candidatesTokenCount")),
        finish_reason=_finish(candidate.get("finishReason")),
    )


def from_ollama(body: Dict[str, Any], provider: Optional[Provider], descriptor: OperationDescriptor) -> ChatResult:
    message = body.get("message")
    text = message.get("content") if isinstance(message, dict) else body.get("response")
    return ChatResult(
        text=_require_text(text, "message.content"),
        model_used=body.get("model") or resolve_model(provider, descriptor),
        tokens_in=_int(body.get("prompt_eval_count")),
        tokens_out=_int(body.get("eval_count")),
        finish_reason=_finish(body.get("done_reason")),
    )


def from_proxy(body: Dict[str, Any], provider: Optional[Provider], descriptor: OperationDescriptor) -> ChatResult:
    usage = _dict(body.get("usage"))
    return ChatResult(
        text=_require_text(body.get("response"), "response"),
        model_used=body.get("model_used") or resolve_model(provider, descriptor),
        tokens_in=_int(usage.get("prompt_tokens")),
        tokens_out=_int(usage.get("completion_tokens")),
        finish_reason=_finish(body.get("finish_reason")),
    )


CHAT_MAPPERS = {
    "openai": from_openai,
    "gemini": from_gemini,
    "ollama": from_ollama,
    "proxy": from_proxy,
}

__all__ = ["CHAT_MAPPERS", "from_openai", "from_gemini", "from_ollama", "from_proxy"]
