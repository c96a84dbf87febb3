from pydantic import BaseModel, ConfigDict, Field

from expense_api.models.notification import NotificationType


class NotificationCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(min_length=1)
    type: NotificationType
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=2000)
    related_expense_id: str | None = None


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    is_read: bool
    related_expense_id: str | None = None
    created_at: str


class NotificationReadResponse(BaseModel):
    success: bool
