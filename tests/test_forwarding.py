from __future__ import annotations

import asyncio
from typing import Any

import httpx

from genai_gateway.catalog import build_model, mark_default
from genai_gateway.forwarding import (
    ChatForwarder,
    build_upstream_payload,
    chunk_text,
    select_target,
)
from genai_gateway.resolver import resolve_config
from genai_gateway.schemas import ChatRequest, ResolvedConfig, Service
from tests.client_test_utils import completion_body, make_settings, mock_client


def _service(service_id: str, api_key: str | None, models: tuple[str, ...]) -> Service:
    return Service(
        id=service_id,
        name=service_id,
        type="genai",
        base_url=f"https://{service_id}.example/openai",
        models=mark_default(
            [
                build_model(service_id=service_id, service_name=service_id, original_name=item)
                for item in models
            ]
        ),
        has_api_key=bool(api_key),
        api_key=api_key,
    )


def _request(**fields: Any) -> ChatRequest:
    return ChatRequest.model_validate(
        {"messages": [{"role": "user", "content": "hi"}], **fields}
    )


SERVICES = [
    _service("svc-default", "key-default", ("base-model", "shared")),
    _service("svcA", "key-a", ("gpt-x",)),
    _service("svc-nokey", None, ("keyless",)),
]


def _default_config() -> ResolvedConfig:
    return resolve_config(SERVICES, make_settings())


def test_select_target_switches_to_composite_service() -> None:
    config, model = select_target(
        _request(model="svcA|gpt-x"), SERVICES, make_settings(), _default_config()
    )
    assert model == "gpt-x"
    assert config.service_id == "svcA"
    assert config.api_key == "key-a"
    assert config.base_url == "https://svcA.example/openai"


def test_select_target_ignores_composite_for_unknown_model() -> None:
    config, model = select_target(
        _request(model="svcA|unknown"), SERVICES, make_settings(), _default_config()
    )
    assert config.service_id == "svc-default"
    assert model == "base-model"


def test_select_target_ignores_composite_for_service_without_key() -> None:
    config, model = select_target(
        _request(model="svc-nokey|keyless"), SERVICES, make_settings(), _default_config()
    )
    assert config.service_id == "svc-default"
    assert model == "base-model"


def test_select_target_uses_original_name_listed_by_default_service() -> None:
    config, model = select_target(
        _request(model="missing-svc|shared"), SERVICES, make_settings(), _default_config()
    )
    assert config.service_id == "svc-default"
    assert model == "shared"

    _, plain = select_target(
        _request(model="shared"), SERVICES, make_settings(), _default_config()
    )
    assert plain == "shared"


def test_select_target_defaults_when_model_missing() -> None:
    _, model = select_target(_request(), SERVICES, make_settings(), _default_config())
    assert model == "base-model"


def test_build_upstream_payload_keeps_only_supported_fields() -> None:
    request = ChatRequest.model_validate(
        {
            "model": "svcA|gpt-x",
            "messages": [
                {"role": "system", "content": "be brief"},
                {"role": "user", "content": "hi"},
            ],
            "stream": True,
            "top_p": 0.2,
            "serviceId": "svcA",
        }
    )
    payload = build_upstream_payload(request, "gpt-x", make_settings())
    assert payload == {
        "model": "gpt-x",
        "messages": [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ],
        "max_tokens": 1024,
        "temperature": 0.5,
    }


def test_build_upstream_payload_preserves_explicit_zero_temperature() -> None:
    request = _request(maxTokens=64, temperature=0)
    payload = build_upstream_payload(request, "m", make_settings())
    assert payload["max_tokens"] == 64
    assert payload["temperature"] == 0


def test_chunk_text_splits_in_order() -> None:
    assert chunk_text("hello world this is a test", 20) == [
        "hello world this is ",
        "a test",
    ]
    assert chunk_text("", 20) == []


def test_emulated_stream_emits_chunks_then_done() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=completion_body("abcdefghij"))

    async def _run() -> list[bytes]:
        forwarder = ChatForwarder(mock_client(handler))
        try:
            config = resolve_config(SERVICES, make_settings())
            settings = make_settings(stream_chunk_size=4)
            return [
                chunk
                async for chunk in forwarder._emulated_stream(
                    config, {"model": "base-model", "messages": []}, settings
                )
            ]
        finally:
            await forwarder.close()

    events = asyncio.run(_run())
    assert len(events) == 4
    assert b'"content":"abcd"' in events[0]
    assert b'"content":"efgh"' in events[1]
    assert b'"content":"ij"' in events[2]
    assert events[-1] == b"data: [DONE]\n\n"
