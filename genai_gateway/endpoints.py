from __future__ import annotations

from collections.abc import Sequence

from genai_gateway.settings import OPENAI_API_BASE

OPENAI_V1_BASE = f"{OPENAI_API_BASE}/v1"
DEFAULT_PROVIDER_SUFFIXES = ("/openai",)

CHAT_COMPLETIONS_PATH = "/chat/completions"
MODELS_PATH = "/models"


def normalize_base_url(base_url: str) -> str:
    normalized = base_url.rstrip("/")
    if normalized == OPENAI_API_BASE:
        normalized = OPENAI_V1_BASE
    return normalized


def _build_endpoint(
    base_url: str,
    path: str,
    provider_suffixes: Sequence[str],
) -> str:
    base = base_url.rstrip("/")
    if base == OPENAI_V1_BASE:
        return f"{base}{path}"
    if base.endswith(path):
        return base
    if any(base.endswith(suffix) for suffix in provider_suffixes):
        return f"{base}/v1{path}"
    return f"{base}/openai/v1{path}"


def build_chat_endpoint(
    base_url: str,
    provider_suffixes: Sequence[str] = DEFAULT_PROVIDER_SUFFIXES,
) -> str:
    return _build_endpoint(base_url, CHAT_COMPLETIONS_PATH, provider_suffixes)


def build_models_endpoint(
    base_url: str,
    provider_suffixes: Sequence[str] = DEFAULT_PROVIDER_SUFFIXES,
) -> str:
    return _build_endpoint(base_url, MODELS_PATH, provider_suffixes)


def models_endpoint_candidates(
    base_url: str,
    provider_suffixes: Sequence[str] = DEFAULT_PROVIDER_SUFFIXES,
) -> list[str]:
    primary = build_models_endpoint(base_url, provider_suffixes)
    alternate = f"{base_url.rstrip('/')}/v1{MODELS_PATH}"
    if alternate == primary:
        return [primary]
    return [primary, alternate]
