from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Model(BaseModel):
    id: str
    name: str
    original_name: str
    display_name: str
    description: str | None = None
    is_default: bool = False
    capabilities: list[str] = Field(default_factory=list)
    service_id: str
    service_name: str


class Service(BaseModel):
    id: str
    name: str
    type: str
    plan: str = "unknown"
    base_url: str | None = None
    models: list[Model] = Field(default_factory=list)
    has_api_key: bool = False

    # Kept server-side only; used for credential and selector resolution.
    api_key: str | None = Field(default=None, exclude=True, repr=False)
    binding_name: str | None = Field(default=None, exclude=True)
    instance_name: str | None = Field(default=None, exclude=True)

    def matches(self, selector: str) -> bool:
        return selector in {
            self.id,
            self.name,
            self.binding_name,
            self.instance_name,
        }

    def find_model(self, name: str) -> Model | None:
        for model in self.models:
            if model.name == name:
                return model
        return None

    def has_original_model(self, original_name: str) -> bool:
        return any(model.original_name == original_name for model in self.models)

    @property
    def default_model(self) -> Model | None:
        for model in self.models:
            if model.is_default:
                return model
        return self.models[0] if self.models else None


class ResolvedConfig(BaseModel):
    api_key: str | None = Field(default=None, repr=False)
    base_url: str
    available_models: list[str] = Field(default_factory=list)
    default_model: str
    service_id: str | None = None
    service_name: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    model: str | None = None
    messages: list[ChatMessage]
    max_tokens: int | None = Field(
        default=None, validation_alias=AliasChoices("max_tokens", "maxTokens")
    )
    temperature: float | None = None
    stream: bool = True
    service_id: str | None = Field(
        default=None, validation_alias=AliasChoices("service_id", "serviceId")
    )
