"""Pydantic schemas for API keys.

APIKey is the metadata every read returns. NewAPIKey adds the plaintext
``key`` and is only ever produced by ``create``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class APIKeyCreate(BaseModel):
    name: str = Field(min_length=1)


class APIKey(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    name: str
    last_used: datetime
    created_at: datetime


class NewAPIKey(APIKey):
    key: str
