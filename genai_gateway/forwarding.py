from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from typing import Any, AsyncIterator
from uuid import uuid4

import httpx
from fastapi import status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from genai_gateway.catalog import split_composite_model_name
from genai_gateway.endpoints import (
    build_chat_endpoint,
    build_models_endpoint,
    models_endpoint_candidates,
)
from genai_gateway.errors import (
    API_ERROR,
    MISSING_API_KEY_MESSAGE,
    PROXY_ERROR,
    error_body,
    error_response,
    extract_upstream_error_message,
    missing_api_key_response,
)
from genai_gateway.resolver import resolve_service_config
from genai_gateway.schemas import ChatRequest, ResolvedConfig, Service
from genai_gateway.settings import Settings

SSE_DONE = b"data: [DONE]\n\n"

logger = logging.getLogger("uvicorn.error")


class UpstreamError(Exception):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_type: str = API_ERROR,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    if not settings.upstream_verify_ssl:
        logger.warning("upstream_tls_verification_disabled")
    return httpx.AsyncClient(
        verify=settings.upstream_verify_ssl,
        timeout=httpx.Timeout(settings.upstream_timeout_seconds),
    )


def _auth_headers(api_key: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _sse_event(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n".encode("utf-8")


def _chat_completion_chunk(
    completion_id: str,
    created: int,
    model: str,
    content: str,
) -> bytes:
    return _sse_event(
        {
            "id": completion_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": model,
            "choices": [
                {
                    "index": 0,
                    "delta": {"content": content},
                    "finish_reason": None,
                }
            ],
        }
    )


def _first_choice_content(completion: Any) -> str:
    choices = completion.get("choices") if isinstance(completion, dict) else None
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
    raise UpstreamError("Invalid response format from API", error_type=PROXY_ERROR)


def chunk_text(text: str, size: int) -> list[str]:
    size = max(1, size)
    return [text[index : index + size] for index in range(0, len(text), size)]


def build_upstream_payload(
    request: ChatRequest, model: str, settings: Settings
) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [message.model_dump() for message in request.messages],
        "max_tokens": (
            request.max_tokens
            if request.max_tokens is not None
            else settings.default_max_tokens
        ),
        "temperature": (
            request.temperature
            if request.temperature is not None
            else settings.default_temperature
        ),
    }


def select_target(
    request: ChatRequest,
    services: Sequence[Service],
    settings: Settings,
    default_config: ResolvedConfig,
) -> tuple[ResolvedConfig, str]:
    """Pick the backend config and upstream model name for a chat request.

    A composite ``"<serviceId>|<model>"`` name switches to that service only
    when the service exists, lists the model and resolves to a usable key;
    anything else is served by ``default_config``.
    """
    requested = request.model or default_config.default_model
    requested_service_id, original_name = split_composite_model_name(requested)

    if requested_service_id is not None:
        service = next(
            (item for item in services if item.id == requested_service_id), None
        )
        if service is not None and service.has_original_model(original_name):
            candidate = resolve_service_config(service, settings)
            if candidate.api_key and original_name in candidate.available_models:
                logger.info(
                    "composite_model_selected service_id=%s model=%s",
                    service.id,
                    original_name,
                )
                return candidate, original_name
        logger.info(
            "composite_model_unavailable requested_model=%s", requested
        )

    if original_name in default_config.available_models:
        return default_config, original_name

    logger.info(
        "model_replaced requested_model=%s selected_model=%s",
        requested,
        default_config.default_model,
    )
    return default_config, default_config.default_model


class ChatForwarder:
    """Forwards chat and model-listing calls to the resolved backend.

    Owns only the HTTP client; backend configuration is passed per call.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def close(self) -> None:
        await self.client.aclose()

    async def _post_chat(
        self,
        config: ResolvedConfig,
        payload: dict[str, Any],
        settings: Settings,
    ) -> httpx.Response:
        endpoint = build_chat_endpoint(
            config.base_url, settings.provider_path_suffixes_list
        )
        logger.info(
            "proxy_upstream_request service_id=%s endpoint=%s model=%s",
            config.service_id,
            endpoint,
            payload.get("model"),
        )
        return await self.client.post(
            endpoint, json=payload, headers=_auth_headers(config.api_key)
        )

    async def _complete(
        self,
        config: ResolvedConfig,
        payload: dict[str, Any],
        settings: Settings,
    ) -> dict[str, Any]:
        try:
            upstream = await self._post_chat(config, payload, settings)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            raise UpstreamError(str(exc) or exc.__class__.__name__) from exc
        body = _json_or_none(upstream)
        if not upstream.is_success:
            raise UpstreamError(
                extract_upstream_error_message(body, "Error processing request"),
                status_code=upstream.status_code,
            )
        if not isinstance(body, dict):
            raise UpstreamError(
                "Invalid response format from API", error_type=PROXY_ERROR
            )
        return body

    async def forward(
        self,
        request: ChatRequest,
        config: ResolvedConfig,
        model: str,
        settings: Settings,
    ) -> Response:
        if not config.api_key:
            logger.warning("chat_rejected reason=%s", MISSING_API_KEY_MESSAGE)
            return missing_api_key_response()

        payload = build_upstream_payload(request, model, settings)
        if request.stream:
            return StreamingResponse(
                content=self._emulated_stream(config, payload, settings),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        try:
            upstream = await self._post_chat(config, payload, settings)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            logger.warning(
                "proxy_request_error service_id=%s error_type=%s error=%s",
                config.service_id,
                exc.__class__.__name__,
                exc,
            )
            return error_response(str(exc) or exc.__class__.__name__, API_ERROR)

        body = _json_or_none(upstream)
        if upstream.is_success:
            if body is None:
                return error_response("Invalid response format from API", PROXY_ERROR)
            return JSONResponse(status_code=upstream.status_code, content=body)

        message = extract_upstream_error_message(body, "Error processing request")
        logger.warning(
            "proxy_upstream_error service_id=%s status=%d message=%s",
            config.service_id,
            upstream.status_code,
            message,
        )
        return error_response(message, API_ERROR, upstream.status_code)

    async def _emulated_stream(
        self,
        config: ResolvedConfig,
        payload: dict[str, Any],
        settings: Settings,
    ) -> AsyncIterator[bytes]:
        # One non-streaming upstream call, re-emitted as SSE chunks.
        try:
            completion = await self._complete(config, payload, settings)
            content = _first_choice_content(completion)
        except UpstreamError as exc:
            logger.warning(
                "emulated_stream_error service_id=%s status=%s message=%s",
                config.service_id,
                exc.status_code,
                exc.message,
            )
            yield _sse_event(
                error_body(f"Error processing request: {exc.message}", exc.error_type)
            )
            yield SSE_DONE
            return
        except Exception as exc:
            logger.exception("emulated_stream_failed service_id=%s", config.service_id)
            yield _sse_event(
                error_body(f"Error processing request: {exc}", PROXY_ERROR)
            )
            yield SSE_DONE
            return

        completion_id = completion.get("id") or f"chatcmpl-{uuid4().hex}"
        created = completion.get("created") or int(time.time())
        model = completion.get("model") or payload["model"]
        chunks = chunk_text(content, settings.stream_chunk_size)
        logger.info(
            "emulated_stream_start service_id=%s chars=%d chunks=%d",
            config.service_id,
            len(content),
            len(chunks),
        )
        for chunk in chunks:
            yield _chat_completion_chunk(completion_id, created, model, chunk)
            if settings.stream_chunk_delay_seconds > 0:
                await asyncio.sleep(settings.stream_chunk_delay_seconds)
        yield SSE_DONE

    async def list_upstream_models(
        self, config: ResolvedConfig, settings: Settings
    ) -> Response:
        if not config.api_key:
            return missing_api_key_response()

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        message = "Failed to fetch models"
        for endpoint in models_endpoint_candidates(
            config.base_url, settings.provider_path_suffixes_list
        ):
            try:
                upstream = await self.client.get(
                    endpoint, headers=_auth_headers(config.api_key)
                )
            except (httpx.RequestError, httpx.InvalidURL) as exc:
                status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
                message = str(exc) or exc.__class__.__name__
                logger.warning(
                    "models_endpoint_failed endpoint=%s error=%s", endpoint, message
                )
                continue

            body = _json_or_none(upstream)
            if upstream.is_success and body is not None:
                return JSONResponse(status_code=upstream.status_code, content=body)
            status_code = (
                upstream.status_code
                if not upstream.is_success
                else status.HTTP_500_INTERNAL_SERVER_ERROR
            )
            message = extract_upstream_error_message(body, "Failed to fetch models")
            logger.warning(
                "models_endpoint_failed endpoint=%s status=%d", endpoint, upstream.status_code
            )

        return error_response(message, PROXY_ERROR, status_code)

    async def probe(self, config: ResolvedConfig, settings: Settings) -> JSONResponse:
        if not config.api_key:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "message": MISSING_API_KEY_MESSAGE},
            )

        endpoint = build_models_endpoint(
            config.base_url, settings.provider_path_suffixes_list
        )
        try:
            upstream = await self.client.get(
                endpoint, headers=_auth_headers(config.api_key)
            )
            upstream.raise_for_status()
            body = upstream.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            upstream_status = (
                exc.response.status_code
                if isinstance(exc, httpx.HTTPStatusError)
                else None
            )
            logger.warning(
                "connectivity_probe_failed endpoint=%s status=%s error=%s",
                endpoint,
                upstream_status,
                exc,
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "message": f"OpenAI API test failed: {str(exc) or 'Unknown error'}",
                    "url_used": config.base_url,
                    "status": upstream_status,
                },
            )

        data = body.get("data") if isinstance(body, dict) else None
        return JSONResponse(
            content={
                "success": True,
                "message": "OpenAI API is working",
                "models_count": len(data) if isinstance(data, list) else 0,
                "default_model": config.default_model,
                "available_models": config.available_models,
            }
        )
