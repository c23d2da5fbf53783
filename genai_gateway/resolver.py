"""Request-scoped resolution of backend credentials and endpoint.

Sources are tried as an ordered chain of strategies; the first one that
returns a config wins:

1. the service explicitly selected by the caller,
2. the first discovered service,
3. direct environment configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from genai_gateway.endpoints import normalize_base_url
from genai_gateway.schemas import ResolvedConfig, Service
from genai_gateway.settings import OPENAI_API_BASE, Settings

logger = logging.getLogger("uvicorn.error")

ConfigStrategy = Callable[[Sequence[Service], Settings, str | None], ResolvedConfig | None]


def _first_non_empty(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def config_from_service(service: Service, settings: Settings) -> ResolvedConfig:
    available_models = [model.original_name for model in service.models]
    default = service.default_model
    if default is None:
        available_models = [settings.default_model]
        default_model = settings.default_model
    else:
        default_model = default.original_name
    return ResolvedConfig(
        api_key=_first_non_empty(service.api_key, settings.openai_api_key),
        base_url=_first_non_empty(
            service.base_url, settings.openai_base_url, OPENAI_API_BASE
        )
        or OPENAI_API_BASE,
        available_models=available_models,
        default_model=default_model,
        service_id=service.id,
        service_name=service.name,
    )


def find_service(services: Sequence[Service], selector: str) -> Service | None:
    for service in services:
        if service.matches(selector):
            return service
    return None


def _requested_service(
    services: Sequence[Service], settings: Settings, service_id: str | None
) -> ResolvedConfig | None:
    if not service_id:
        return None
    service = find_service(services, service_id)
    if service is None:
        logger.info("requested_service_not_found service_id=%s", service_id)
        return None
    return config_from_service(service, settings)


def _first_service(
    services: Sequence[Service], settings: Settings, service_id: str | None
) -> ResolvedConfig | None:
    if not services:
        return None
    return config_from_service(services[0], settings)


def _environment(
    services: Sequence[Service], settings: Settings, service_id: str | None
) -> ResolvedConfig | None:
    return ResolvedConfig(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url or OPENAI_API_BASE,
        available_models=[settings.default_model],
        default_model=settings.default_model,
    )


RESOLUTION_CHAIN: tuple[ConfigStrategy, ...] = (
    _requested_service,
    _first_service,
    _environment,
)


def _finalize(config: ResolvedConfig) -> ResolvedConfig:
    config.base_url = normalize_base_url(config.base_url)
    if not config.api_key:
        logger.warning(
            "api_key_missing service_id=%s base_url=%s",
            config.service_id,
            config.base_url,
        )
    else:
        logger.debug(
            "config_resolved service_id=%s base_url=%s models=%d",
            config.service_id,
            config.base_url,
            len(config.available_models),
        )
    return config


def resolve_config(
    services: Sequence[Service],
    settings: Settings,
    service_id: str | None = None,
) -> ResolvedConfig:
    for strategy in RESOLUTION_CHAIN:
        config = strategy(services, settings, service_id)
        if config is not None:
            return _finalize(config)
    raise RuntimeError("No configuration strategy produced a result.")


def resolve_service_config(service: Service, settings: Settings) -> ResolvedConfig:
    return _finalize(config_from_service(service, settings))
