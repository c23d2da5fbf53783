from __future__ import annotations

import logging
from typing import Any

import httpx

from genai_gateway.schemas import Model

MODEL_NAME_SEPARATOR = "|"

logger = logging.getLogger("uvicorn.error")


def composite_model_name(service_id: str, original_name: str) -> str:
    return f"{service_id}{MODEL_NAME_SEPARATOR}{original_name}"


def split_composite_model_name(name: str) -> tuple[str | None, str]:
    service_id, sep, original_name = name.partition(MODEL_NAME_SEPARATOR)
    if not sep or not service_id or not original_name:
        return None, name
    return service_id, original_name


def build_model(
    *,
    service_id: str,
    service_name: str,
    original_name: str,
    display_name: str | None = None,
    description: str | None = None,
    capabilities: list[str] | None = None,
    is_default: bool = False,
) -> Model:
    name = composite_model_name(service_id, original_name)
    return Model(
        id=name,
        name=name,
        original_name=original_name,
        display_name=display_name or original_name,
        description=description,
        is_default=is_default,
        capabilities=list(capabilities or []),
        service_id=service_id,
        service_name=service_name,
    )


def mark_default(models: list[Model]) -> list[Model]:
    for index, model in enumerate(models):
        model.is_default = index == 0
    return models


def _coerce_capabilities(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def parse_advertised_models(
    body: Any,
    *,
    service_id: str,
    service_name: str,
) -> list[Model]:
    if not isinstance(body, dict):
        raise ValueError("Invalid model catalog response: expected top-level object.")
    advertised = body.get("advertisedModels")
    if not isinstance(advertised, list):
        raise ValueError("Invalid model catalog response: missing 'advertisedModels' list.")

    models: list[Model] = []
    seen: set[str] = set()
    for entry in advertised:
        if not isinstance(entry, dict):
            continue
        raw_name = entry.get("name")
        if not isinstance(raw_name, str) or not raw_name.strip():
            continue
        original_name = raw_name.strip()
        if original_name in seen:
            continue
        seen.add(original_name)
        description = entry.get("description")
        models.append(
            build_model(
                service_id=service_id,
                service_name=service_name,
                original_name=original_name,
                description=description if isinstance(description, str) else None,
                capabilities=_coerce_capabilities(entry.get("capabilities")),
            )
        )
    return models


async def fetch_models(
    client: httpx.AsyncClient,
    *,
    config_url: str,
    api_key: str | None,
    service_id: str,
    service_name: str,
) -> list[Model]:
    """Fetch the advertised model catalog of a multi-plan service.

    Never raises: a failed fetch leaves the service without models instead of
    failing discovery for every other service.
    """
    headers = {"Accept": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    try:
        response = await client.get(config_url, headers=headers)
        response.raise_for_status()
        models = parse_advertised_models(
            response.json(),
            service_id=service_id,
            service_name=service_name,
        )
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        logger.warning(
            "model_catalog_fetch_failed service_id=%s url=%s error_type=%s error=%s",
            service_id,
            config_url,
            exc.__class__.__name__,
            exc,
        )
        return []
    logger.info(
        "model_catalog_fetched service_id=%s models=%d",
        service_id,
        len(models),
    )
    return models
