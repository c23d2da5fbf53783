from __future__ import annotations

import asyncio
import logging

import httpx

from genai_gateway.bindings import (
    BindingInstance,
    BindingsError,
    LegacyCredentials,
    MultiPlanCredentials,
    read_bindings,
)
from genai_gateway.catalog import (
    MODEL_NAME_SEPARATOR,
    build_model,
    fetch_models,
    mark_default,
)
from genai_gateway.schemas import Model, Service
from genai_gateway.settings import OPENAI_API_BASE, Settings

LOCAL_SERVICE_ID = "local-openai"
LOCAL_SERVICE_MODELS = (
    ("gpt-4", "GPT-4"),
    ("gpt-3.5-turbo", "GPT-3.5 Turbo"),
)
LOCAL_MODEL_CAPABILITIES = ["chat"]

logger = logging.getLogger("uvicorn.error")


class ServiceDirectory:
    """Builds the list of backend services from the current configuration.

    Nothing is cached; each call reflects the settings it was created with.
    """

    def __init__(self, *, settings: Settings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = client

    async def list_services(self) -> list[Service]:
        try:
            instances = read_bindings(self._settings)
        except BindingsError as exc:
            logger.error("service_bindings_parse_failed error=%s", exc)
            instances = []

        services = await asyncio.gather(
            *(self._build_service(instance) for instance in instances)
        )
        services = _dedupe_service_ids(list(services))

        if not services and self._settings.openai_api_key:
            services = [self._local_service()]
        return services

    async def _build_service(self, instance: BindingInstance) -> Service:
        credentials = instance.credentials
        service_id = _safe_service_id(instance.instance_guid or instance.fallback_id)
        service_name = instance.display_name

        if isinstance(credentials, MultiPlanCredentials):
            models: list[Model] = []
            if credentials.config_url:
                models = await fetch_models(
                    self._client,
                    config_url=credentials.config_url,
                    api_key=credentials.api_key,
                    service_id=service_id,
                    service_name=service_name,
                )
            else:
                logger.warning("model_catalog_url_missing service_id=%s", service_id)
        else:
            models = _legacy_models(credentials, service_id, service_name)

        return Service(
            id=service_id,
            name=service_name,
            type=instance.group,
            plan=instance.plan or "unknown",
            base_url=credentials.api_base,
            models=mark_default(models),
            has_api_key=bool(credentials.api_key),
            api_key=credentials.api_key,
            binding_name=instance.name,
            instance_name=instance.instance_name,
        )

    def _local_service(self) -> Service:
        models = [
            build_model(
                service_id=LOCAL_SERVICE_ID,
                service_name="OpenAI API",
                original_name=name,
                display_name=display_name,
                capabilities=LOCAL_MODEL_CAPABILITIES,
            )
            for name, display_name in LOCAL_SERVICE_MODELS
        ]
        return Service(
            id=LOCAL_SERVICE_ID,
            name="OpenAI API",
            type="environment",
            plan="default",
            base_url=self._settings.openai_base_url or OPENAI_API_BASE,
            models=mark_default(models),
            has_api_key=True,
            api_key=self._settings.openai_api_key,
        )


def _safe_service_id(service_id: str) -> str:
    # Ids never contain the composite model name separator.
    return service_id.replace(MODEL_NAME_SEPARATOR, "-")


def _legacy_models(
    credentials: LegacyCredentials, service_id: str, service_name: str
) -> list[Model]:
    names: list[str] = []
    if credentials.model_name:
        names.append(credentials.model_name)
    for alias in credentials.model_aliases:
        if alias not in names:
            names.append(alias)
    return [
        build_model(
            service_id=service_id,
            service_name=service_name,
            original_name=name,
        )
        for name in names
    ]


def _dedupe_service_ids(services: list[Service]) -> list[Service]:
    original_ids = {service.id for service in services}
    taken: set[str] = set()
    for service in services:
        unique_id = service.id
        suffix = 1
        while unique_id in taken or (unique_id != service.id and unique_id in original_ids):
            suffix += 1
            unique_id = f"{service.id}-{suffix}"
        taken.add(unique_id)
        if unique_id == service.id:
            continue
        logger.warning(
            "service_id_collision service_id=%s renamed_to=%s", service.id, unique_id
        )
        service.id = unique_id
        service.models = [
            build_model(
                service_id=unique_id,
                service_name=service.name,
                original_name=model.original_name,
                display_name=model.display_name,
                description=model.description,
                capabilities=model.capabilities,
                is_default=model.is_default,
            )
            for model in service.models
        ]
    return services
