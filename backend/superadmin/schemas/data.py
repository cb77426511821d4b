from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

WritableEntity = Literal["users", "geofences"]


class DataCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entity: WritableEntity
    data: dict[str, Any] = Field(default_factory=dict)


class DataUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entity: WritableEntity
    id: str = Field(min_length=1, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)


class DataListResponse(BaseModel):
    data: list[dict[str, Any]]
    count: int


class DataCreateResponse(BaseModel):
    success: bool = True
    id: str


class DataMutationResponse(BaseModel):
    success: bool = True
