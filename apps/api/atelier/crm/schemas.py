from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


ContactStatus = Literal["lead", "prospect", "client", "inactive"]


class ContactCreate(BaseModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    company: str | None = Field(default=None, max_length=255)
    status: ContactStatus = "lead"
    source: str | None = Field(default=None, max_length=100)
    tags: list[str] | None = None
    notes: str | None = None
    custom_fields: dict[str, Any] | None = None


class ContactUpdate(BaseModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    company: str | None = Field(default=None, max_length=255)
    status: ContactStatus | None = None
    source: str | None = Field(default=None, max_length=100)
    tags: list[str] | None = None
    notes: str | None = None
    custom_fields: dict[str, Any] | None = None


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    first_name: str | None
    last_name: str | None
    email: str | None
    phone: str | None
    company: str | None
    status: ContactStatus | str
    source: str | None
    tags: list[str] | None
    notes: str | None
    custom_fields: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class ContactStats(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
