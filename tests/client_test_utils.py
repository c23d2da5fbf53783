from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import httpx
from fastapi.testclient import TestClient

from genai_gateway.main import app
from genai_gateway.settings import Settings

GATEWAY_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "VCAP_SERVICES",
    "SERVICE_BINDINGS_PATH",
    "DEFAULT_MODEL",
    "UPSTREAM_VERIFY_SSL",
    "UPSTREAM_TIMEOUT_SECONDS",
    "STREAM_CHUNK_SIZE",
    "STREAM_CHUNK_DELAY_SECONDS",
    "PROVIDER_PATH_SUFFIXES",
    "FRONTEND_DIST_PATH",
)

Handler = Callable[[httpx.Request], httpx.Response]


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "openai_api_key": None,
        "openai_base_url": None,
        "vcap_services": None,
        "service_bindings_path": None,
        "stream_chunk_delay_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def mock_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def vcap(**groups: list[dict[str, Any]]) -> str:
    return json.dumps({key.replace("_", "-"): value for key, value in groups.items()})


def legacy_binding(
    guid: str,
    *,
    name: str | None = None,
    api_key: str | None = "legacy-key",
    api_base: str = "https://legacy.example",
    model_name: str | None = "gpt-x",
    model_aliases: list[Any] | None = None,
) -> dict[str, Any]:
    credentials: dict[str, Any] = {"api_base": api_base}
    if api_key is not None:
        credentials["api_key"] = api_key
    if model_name is not None:
        credentials["model_name"] = model_name
    if model_aliases is not None:
        credentials["model_aliases"] = model_aliases
    return {
        "instance_guid": guid,
        "instance_name": name,
        "name": name,
        "plan": "legacy",
        "credentials": credentials,
    }


def multi_plan_binding(
    guid: str,
    *,
    name: str | None = None,
    api_key: str | None = "multi-key",
    api_base: str = "https://genai.example/tanzu-all-models/openai",
    config_url: str | None = "https://genai.example/tanzu-all-models/config/v1/endpoint",
) -> dict[str, Any]:
    endpoint: dict[str, Any] = {"api_base": api_base}
    if api_key is not None:
        endpoint["api_key"] = api_key
    if config_url is not None:
        endpoint["config_url"] = config_url
    return {
        "instance_guid": guid,
        "instance_name": name,
        "name": name,
        "plan": "multi-model",
        "credentials": {"endpoint": endpoint},
    }


def completion_body(content: str, model: str = "gpt-x") -> dict[str, Any]:
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def set_default_test_env(monkeypatch: Any) -> None:
    for key in GATEWAY_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("STREAM_CHUNK_DELAY_SECONDS", "0")


@contextmanager
def build_test_client(
    monkeypatch: Any,
    handler: Handler | None = None,
    **env: Any,
) -> Iterator[TestClient]:
    set_default_test_env(monkeypatch)
    for key, value in env.items():
        monkeypatch.setenv(key, str(value))
    with TestClient(app) as client:
        if handler is not None:
            client.portal.call(app.state.forwarder.close)
            app.state.forwarder.client = mock_client(handler)
        yield client
