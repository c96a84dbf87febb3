from pydantic import BaseModel, Field

from expense_api.models.budget import DEFAULT_ALERT_THRESHOLD
from expense_api.models.expense import ExpenseCategory


class BudgetCreateRequest(BaseModel):
    category: ExpenseCategory
    monthly_limit: float = Field(gt=0)
    alert_threshold: int = Field(default=DEFAULT_ALERT_THRESHOLD, ge=0, le=100)


class BudgetUpdateRequest(BaseModel):
    monthly_limit: float | None = Field(default=None, gt=0)
    alert_threshold: int | None = Field(default=None, ge=0, le=100)
    is_active: bool | None = None


class BudgetResponse(BaseModel):
    id: str
    user_id: str
    category: str
    monthly_limit: float
    current_spent: float
    alert_threshold: int
    is_active: bool
    created_at: str
    updated_at: str
