"""Notification Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from recruitdesk.models.notification import (
    NotificationCategory,
    NotificationPriority,
    NotificationType,
)


class NotificationContent(BaseModel):
    """Fields shared by single and bulk creation."""
    title: str = Field(..., max_length=200)
    message: str = Field(..., max_length=1000)
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.MEDIUM
    category: NotificationCategory = NotificationCategory.GENERAL
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    expires_at: Optional[datetime] = None

    def content(self) -> Dict[str, Any]:
        """Column values shared by every recipient, enums flattened to strings."""
        record = self.model_dump(mode="python", include=set(NotificationContent.model_fields))
        record.update(
            type=self.type.value,
            priority=self.priority.value,
            category=self.category.value,
        )
        return record

    def to_record(self, user_id: int) -> Dict[str, Any]:
        return {**self.content(), "user_id": user_id}


class NotificationCreate(NotificationContent):
    user_id: int


class NotificationBulkCreate(NotificationContent):
    user_ids: List[int]


class NotificationTestCreate(BaseModel):
    target_user_id: Optional[int] = None


class MarkMultipleRead(BaseModel):
    notificationIds: List[str]
