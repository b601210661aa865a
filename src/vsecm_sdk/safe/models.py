"""
vsecm_sdk.safe.models

Wire shapes for the VSecM Safe workload API.

Responsibilities:
- Decode fetch / store responses.
- Encode store requests (the value travels as `data` on the wire).
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SecretFetchResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str = Field(default="", repr=False)
    created: str = ""
    updated: str = ""
    err: str | None = None


class SecretStoreRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    value: str = Field(
        repr=False,
        validation_alias=AliasChoices("data", "value"),
        serialization_alias="data",
    )
    err: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class SecretStoreResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    err: str | None = None


# --- Module Notes -----------------------------------------------------------
# Unknown response fields are ignored so newer Safe versions stay compatible.
