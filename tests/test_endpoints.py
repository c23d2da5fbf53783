from __future__ import annotations

import pytest

from genai_gateway.endpoints import (
    build_chat_endpoint,
    build_models_endpoint,
    models_endpoint_candidates,
    normalize_base_url,
)


def test_normalize_base_url_strips_all_trailing_slashes() -> None:
    assert normalize_base_url("https://genai.example/openai///") == (
        "https://genai.example/openai"
    )


def test_normalize_base_url_appends_v1_only_for_bare_openai_host() -> None:
    assert normalize_base_url("https://api.openai.com/") == "https://api.openai.com/v1"
    assert normalize_base_url("https://api.openai.com/v1") == "https://api.openai.com/v1"
    assert normalize_base_url("https://api.openai.com/custom") == (
        "https://api.openai.com/custom"
    )


def test_normalize_base_url_is_idempotent() -> None:
    once = normalize_base_url("https://api.openai.com//")
    assert normalize_base_url(once) == once == "https://api.openai.com/v1"


@pytest.mark.parametrize(
    ("base_url", "expected"),
    [
        ("https://api.openai.com/v1", "https://api.openai.com/v1/chat/completions"),
        (
            "https://proxy.example/v1/chat/completions",
            "https://proxy.example/v1/chat/completions",
        ),
        (
            "https://genai.example/tanzu-all-models/openai",
            "https://genai.example/tanzu-all-models/openai/v1/chat/completions",
        ),
        (
            "https://genai.example/legacy-plan",
            "https://genai.example/legacy-plan/openai/v1/chat/completions",
        ),
        (
            "https://genai.example/legacy-plan/",
            "https://genai.example/legacy-plan/openai/v1/chat/completions",
        ),
    ],
)
def test_build_chat_endpoint_rules(base_url: str, expected: str) -> None:
    endpoint = build_chat_endpoint(base_url)
    assert endpoint == expected
    assert build_chat_endpoint(endpoint) == endpoint


def test_build_chat_endpoint_honours_custom_provider_suffixes() -> None:
    assert build_chat_endpoint("https://genai.example/azure", ["/azure"]) == (
        "https://genai.example/azure/v1/chat/completions"
    )


def test_build_models_endpoint_mirrors_chat_rules() -> None:
    assert build_models_endpoint("https://api.openai.com/v1") == (
        "https://api.openai.com/v1/models"
    )
    assert build_models_endpoint("https://genai.example/x/openai") == (
        "https://genai.example/x/openai/v1/models"
    )
    assert build_models_endpoint("https://genai.example/x") == (
        "https://genai.example/x/openai/v1/models"
    )


def test_models_endpoint_candidates_add_v1_alternate_once() -> None:
    assert models_endpoint_candidates("https://genai.example/x") == [
        "https://genai.example/x/openai/v1/models",
        "https://genai.example/x/v1/models",
    ]
    assert models_endpoint_candidates("https://genai.example/x/openai") == [
        "https://genai.example/x/openai/v1/models",
    ]
