from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import (
    FileResponse,
    JSONResponse,
    PlainTextResponse,
    Response,
)
from pydantic import ValidationError

from genai_gateway.directory import ServiceDirectory
from genai_gateway.errors import (
    INVALID_REQUEST_ERROR,
    PROXY_ERROR,
    SERVER_ERROR,
    error_response,
)
from genai_gateway.forwarding import ChatForwarder, build_http_client, select_target
from genai_gateway.resolver import resolve_config
from genai_gateway.schemas import ChatRequest, Model, Service
from genai_gateway.settings import Settings, get_settings

app = FastAPI(
    title="GenAI Chat Gateway",
    description="Stable chat API in front of OpenAI-compatible GenAI service bindings.",
    version="0.1.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger("uvicorn.error")


async def _list_services(settings: Settings) -> list[Service]:
    forwarder: ChatForwarder = app.state.forwarder
    directory = ServiceDirectory(settings=settings, client=forwarder.client)
    return await directory.list_services()


def _service_for_model(
    services: list[Service], requested_model: str | None
) -> tuple[Service | None, Model | None]:
    if requested_model:
        for service in services:
            model = service.find_model(requested_model)
            if model is not None:
                return service, model
    if not services:
        return None, None
    return services[0], None


@app.on_event("startup")
async def startup() -> None:
    settings = get_settings()
    app.state.forwarder = ChatForwarder(build_http_client(settings))
    logger.info(
        (
            "startup complete environment=%s binding_snapshot=%s "
            "direct_api_key_configured=%s verify_ssl=%s"
        ),
        settings.app_env,
        settings.has_binding_snapshot,
        bool(settings.openai_api_key),
        settings.upstream_verify_ssl,
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    forwarder: ChatForwarder | None = getattr(app.state, "forwarder", None)
    if forwarder is not None:
        await forwarder.close()
    logger.info("shutdown complete")


@app.get("/api/models-config")
async def models_config() -> dict[str, Any]:
    services = await _list_services(get_settings())
    return {"services": [service.model_dump() for service in services]}


@app.get("/api/config")
async def config_status(model: str | None = None) -> dict[str, Any]:
    settings = get_settings()
    services = await _list_services(settings)
    service, selected_model = _service_for_model(services, model)
    if selected_model is None and service is not None:
        selected_model = service.default_model

    config = resolve_config(services, settings, service.id if service else None)
    return {
        "configured": config.configured,
        "baseUrl": config.base_url,
        "serviceType": (
            "cloud-foundry" if settings.has_binding_snapshot else "standalone"
        ),
        "service": (
            {"id": service.id, "name": service.name, "type": service.type}
            if service is not None
            else None
        ),
        "model": (
            {
                "name": selected_model.name,
                "display_name": selected_model.display_name,
            }
            if selected_model is not None
            else None
        ),
    }


@app.get("/api/test-openai")
async def connectivity_probe() -> Response:
    settings = get_settings()
    services = await _list_services(settings)
    config = resolve_config(services, settings)
    forwarder: ChatForwarder = app.state.forwarder
    return await forwarder.probe(config, settings)


@app.get("/health")
async def health(model: str | None = None) -> dict[str, Any]:
    settings = get_settings()
    services = await _list_services(settings)
    service, _ = _service_for_model(services, model)
    config = resolve_config(services, settings, service.id if service else None)
    return {
        "status": "ok",
        "api_configured": config.configured,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/v1/chat/completions")
async def chat_completions(request: Request) -> Response:
    try:
        payload = await request.json()
    except ValueError as exc:
        return error_response(
            f"Expected JSON body: {exc}",
            INVALID_REQUEST_ERROR,
            status.HTTP_400_BAD_REQUEST,
        )
    try:
        chat_request = ChatRequest.model_validate(payload)
    except ValidationError as exc:
        return error_response(
            f"Invalid chat request: {exc.errors(include_url=False)}",
            INVALID_REQUEST_ERROR,
            status.HTTP_400_BAD_REQUEST,
        )

    settings = get_settings()
    forwarder: ChatForwarder = app.state.forwarder
    try:
        services = await _list_services(settings)
        default_config = resolve_config(services, settings, chat_request.service_id)
        config, model = select_target(chat_request, services, settings, default_config)
        logger.info(
            "chat_request service_id=%s requested_model=%s model=%s stream=%s messages=%d",
            config.service_id,
            chat_request.model,
            model,
            chat_request.stream,
            len(chat_request.messages),
        )
        return await forwarder.forward(chat_request, config, model, settings)
    except Exception as exc:
        logger.exception("proxy_unexpected_error")
        return error_response(str(exc) or "An unexpected error occurred", PROXY_ERROR)


@app.get("/v1/models")
async def models() -> Response:
    settings = get_settings()
    services = await _list_services(settings)
    config = resolve_config(services, settings)
    forwarder: ChatForwarder = app.state.forwarder
    return await forwarder.list_upstream_models(config, settings)


@app.get("/{full_path:path}", include_in_schema=False)
async def frontend(full_path: str) -> Response:
    if full_path.startswith(("api/", "v1/")):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "API endpoint not found"},
        )

    dist_path = get_settings().frontend_dist_path
    dist = Path(dist_path).resolve() if dist_path else None
    if dist is None or not dist.is_dir():
        if full_path:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "Not found"},
            )
        return PlainTextResponse(
            "GenAI Chat Gateway - API is running. "
            "Frontend is served separately in development."
        )

    candidate = (dist / full_path).resolve()
    if full_path and candidate.is_file() and candidate.is_relative_to(dist):
        return FileResponse(candidate)
    return FileResponse(dist / "index.html")


@app.exception_handler(Exception)
async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.error("server_error error_type=%s error=%s", exc.__class__.__name__, exc)
    return error_response("An internal server error occurred", SERVER_ERROR)


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "genai_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    run()
