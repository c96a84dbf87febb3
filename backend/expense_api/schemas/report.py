from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from expense_api.models.expense import ExpenseCategory
from expense_api.models.report import ReportType


class ReportGenerateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: ReportType
    title: str = Field(min_length=1, max_length=200)
    date_from: date
    date_to: date
    categories: list[ExpenseCategory] | None = None
    include_team_expenses: bool = False


class ReportResponse(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    filters: dict[str, Any]
    generated_at: str
    file_url: str | None = None
    expires_at: str | None = None
