"""Pydantic models for Mercado Libre notification payloads."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MarketplaceNotification(BaseModel):
    """Notification posted by Mercado Libre to the webhook URL.

    Example payload:
    {
        "_id": "f9f08571-1f65-4c46-9e0a-c0f43faas1557e",
        "resource": "/questions/5036111111",
        "user_id": 123456789,
        "topic": "questions",
        "application_id": 2069392825111111,
        "attempts": 1,
        "sent": "2024-01-01T12:00:00.000Z",
        "received": "2024-01-01T12:00:00.000Z"
    }
    """

    model_config = ConfigDict(populate_by_name=True)

    topic: str
    resource: str
    notification_id: Optional[str] = Field(default=None, alias="_id")
    user_id: Optional[int] = None
    application_id: Optional[int] = None
    attempts: Optional[int] = None

    @property
    def resource_id(self) -> str:
        """Entity id: the last segment of the resource path."""
        return self.resource.rstrip("/").split("/")[-1]

    @property
    def is_question(self) -> bool:
        return self.topic == "questions"

    @property
    def is_order(self) -> bool:
        return self.topic == "orders_v2"
