"""Parsing of the platform service-binding snapshot.

The snapshot has the shape of Cloud Foundry's ``VCAP_SERVICES``: a mapping of
service group names to lists of bound instances. Each instance carries a
``credentials`` object whose layout depends on the plan, parsed once here into
either :class:`LegacyCredentials` or :class:`MultiPlanCredentials`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from genai_gateway.settings import Settings

SERVICE_GROUPS = ("genai", "genai-service", "generative-ai")

_GROUP_LABELS = {
    "genai": "GenAI Tile",
    "genai-service": "GenAI Service",
    "generative-ai": "Generative AI",
}


class BindingsError(ValueError):
    pass


class LegacyCredentials(BaseModel):
    kind: Literal["legacy"] = "legacy"
    api_key: str | None = None
    api_base: str | None = None
    model_name: str | None = None
    model_aliases: list[str] = Field(default_factory=list)

    @field_validator("model_aliases", mode="before")
    @classmethod
    def _coerce_aliases(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str) and item]


class MultiPlanCredentials(BaseModel):
    kind: Literal["multi_plan"] = "multi_plan"
    api_key: str | None = None
    api_base: str | None = None
    config_url: str | None = None


BindingCredentials = Union[LegacyCredentials, MultiPlanCredentials]


@dataclass(frozen=True, slots=True)
class BindingInstance:
    group: str
    index: int
    group_size: int
    instance_guid: str | None
    instance_name: str | None
    name: str | None
    plan: str | None
    credentials: BindingCredentials

    @property
    def fallback_id(self) -> str:
        return f"{self.group}-{self.index}"

    @property
    def display_name(self) -> str:
        name = self.instance_name or self.name
        if name:
            return name
        label = _GROUP_LABELS.get(self.group) or self.group[:1].upper() + self.group[1:]
        if self.group_size > 1:
            label += f" #{self.index + 1}"
        return label


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_credentials(raw: dict[str, Any]) -> BindingCredentials:
    endpoint = raw.get("endpoint")
    if isinstance(endpoint, dict):
        return MultiPlanCredentials(
            api_key=_optional_str(endpoint.get("api_key")),
            api_base=_optional_str(endpoint.get("api_base")),
            config_url=_optional_str(endpoint.get("config_url")),
        )
    return LegacyCredentials(
        api_key=_optional_str(raw.get("api_key")),
        api_base=_optional_str(raw.get("api_base")) or _optional_str(raw.get("base_url")),
        model_name=_optional_str(raw.get("model_name")),
        model_aliases=raw.get("model_aliases"),
    )


def load_snapshot(settings: Settings) -> dict[str, Any] | None:
    """Return the raw binding snapshot, or ``None`` when none is configured."""
    if settings.vcap_services:
        try:
            payload = json.loads(settings.vcap_services)
        except ValueError as exc:
            raise BindingsError(f"VCAP_SERVICES is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise BindingsError("VCAP_SERVICES must be a JSON object.")
        return payload

    if settings.service_bindings_path:
        return _load_snapshot_file(Path(settings.service_bindings_path))
    return None


def _load_snapshot_file(path: Path) -> dict[str, Any]:
    # YAML is a superset of JSON, so both formats load here.
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise BindingsError(f"Could not load service bindings: {exc}") from exc
    if not isinstance(payload, dict):
        raise BindingsError(f"Expected service bindings object in '{path}'.")
    return payload


def parse_bindings(snapshot: dict[str, Any]) -> list[BindingInstance]:
    instances: list[BindingInstance] = []
    for group in SERVICE_GROUPS:
        entries = snapshot.get(group)
        if not isinstance(entries, list):
            continue
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                continue
            credentials = entry.get("credentials")
            if not isinstance(credentials, dict):
                continue
            instances.append(
                BindingInstance(
                    group=group,
                    index=index,
                    group_size=len(entries),
                    instance_guid=_optional_str(entry.get("instance_guid")),
                    instance_name=_optional_str(entry.get("instance_name")),
                    name=_optional_str(entry.get("name")),
                    plan=_optional_str(entry.get("plan")),
                    credentials=parse_credentials(credentials),
                )
            )
    return instances


def read_bindings(settings: Settings) -> list[BindingInstance]:
    snapshot = load_snapshot(settings)
    if snapshot is None:
        return []
    return parse_bindings(snapshot)
