"""Typed views over Stripe webhook payloads.

Only the fields the billing and referral flows need are extracted. Shape
differences between Stripe API versions (expanded vs. id-only customers,
period bounds on the subscription vs. on its items) are absorbed here so the
rest of the code sees one stable type.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

USER_ID_METADATA_KEYS = ("user_id", "userId")


def metadata_user_id(metadata: dict[str, Any] | None) -> str | None:
    """Extract our user id from a Stripe metadata dict."""
    if not metadata:
        return None
    for key in USER_ID_METADATA_KEYS:
        value = metadata.get(key)
        if value:
            return str(value)
    return None


def _ref_id(value: Any) -> str | None:
    """Id of a reference that may be a bare id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return None


class CustomerSnapshot(BaseModel):
    """Stripe customer fields used for ownership resolution."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None
    name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    deleted: bool = False

    @property
    def user_id(self) -> str | None:
        return metadata_user_id(self.metadata)


class SubscriptionSnapshot(BaseModel):
    """Stripe subscription fields mirrored into the local table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    customer_id: str
    customer: CustomerSnapshot | None = None
    status: str | None = None
    price_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "customer_id" in data:
            return data

        raw_customer = data.get("customer")
        customer = raw_customer if isinstance(raw_customer, dict) and "id" in raw_customer else None

        items = (data.get("items") or {}).get("data") or []
        first_item = items[0] if items else {}
        price = first_item.get("price") or {}

        # 2025+ API versions moved the period bounds onto subscription items
        period_start = data.get("current_period_start") or first_item.get("current_period_start")
        period_end = data.get("current_period_end") or first_item.get("current_period_end")

        return {
            "id": data.get("id"),
            "customer_id": _ref_id(raw_customer),
            "customer": customer,
            "status": data.get("status"),
            "price_id": _ref_id(price),
            "current_period_start": period_start,
            "current_period_end": period_end,
            "cancel_at_period_end": bool(data.get("cancel_at_period_end")),
            "metadata": data.get("metadata") or {},
        }

    @property
    def user_id(self) -> str | None:
        return metadata_user_id(self.metadata)


class CheckoutSessionSnapshot(BaseModel):
    """Completed Checkout Session."""

    model_config = ConfigDict(extra="ignore")

    id: str
    mode: str | None = None
    subscription_id: str | None = None
    customer_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "subscription_id" in data:
            return data
        return {
            "id": data.get("id"),
            "mode": data.get("mode"),
            "subscription_id": _ref_id(data.get("subscription")),
            "customer_id": _ref_id(data.get("customer")),
            "metadata": data.get("metadata") or {},
        }


class EventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: dict[str, Any]


class StripeEvent(BaseModel):
    """Webhook envelope."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    api_version: str | None = None
    data: EventData

    @property
    def object(self) -> dict[str, Any]:
        return self.data.object
