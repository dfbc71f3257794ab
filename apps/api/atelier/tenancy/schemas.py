from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


BusinessType = Literal[
    "photographer",
    "musician",
    "artist",
    "content_creator",
    "real_estate_agent",
    "designer",
    "writer",
    "consultant",
    "other",
]
SubscriptionTier = Literal["free", "starter", "professional", "enterprise"]
SubscriptionStatus = Literal["active", "trial", "cancelled", "past_due"]
TenantRole = Literal["owner", "admin", "member"]
ModuleType = Literal[
    "crm",
    "scheduling",
    "invoicing",
    "website_builder",
    "marketing",
    "analytics",
    "ai_assistant",
    "project_management",
    "file_storage",
    "email_campaigns",
]


class TenantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    business_type: BusinessType
    subscription_tier: SubscriptionTier | None = None


class TenantCreated(BaseModel):
    tenant_id: UUID
    slug: str


class TenantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    owner_id: str
    business_type: BusinessType | str
    subscription_tier: SubscriptionTier | str
    subscription_status: SubscriptionStatus | str
    trial_ends_at: datetime | None
    custom_domain: str | None
    settings: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class TenantModuleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    module_type: ModuleType | str
    enabled: bool
    config: dict[str, Any] = Field(default_factory=dict)


class TenantWithModulesRead(BaseModel):
    tenant: TenantRead
    modules: list[TenantModuleRead] = Field(default_factory=list)
    user_role: TenantRole | str


class SubscriptionUpdateRequest(BaseModel):
    tier: SubscriptionTier
    status: SubscriptionStatus


class ModuleToggleRequest(BaseModel):
    enabled: bool


class SuccessResponse(BaseModel):
    success: bool = True
