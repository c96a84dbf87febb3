from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from expense_api.models.expense import (
    ExpenseCategory,
    RecurringFrequency,
)


class ExpenseCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    team_id: str | None = None
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    amount: float = Field(gt=0)
    category: ExpenseCategory
    receipt_url: str | None = Field(default=None, max_length=2048)
    expense_date: date
    is_recurring: bool = False
    recurring_frequency: RecurringFrequency | None = None
    tags: list[str] | None = None


class ExpenseUpdateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    amount: float | None = Field(default=None, gt=0)
    category: ExpenseCategory | None = None
    receipt_url: str | None = Field(default=None, max_length=2048)
    expense_date: date | None = None
    is_recurring: bool | None = None
    recurring_frequency: RecurringFrequency | None = None
    tags: list[str] | None = None


class ExpenseApprovalRequest(BaseModel):
    status: Literal["APPROVED", "REJECTED"]


class ExpenseItem(BaseModel):
    id: str
    user_id: str
    team_id: str | None = None
    title: str
    description: str | None = None
    amount: float
    category: str
    receipt_url: str | None = None
    status: str
    approved_by: str | None = None
    approved_at: str | None = None
    expense_date: str
    is_recurring: bool = False
    recurring_frequency: str | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class PaginatedExpensesResponse(BaseModel):
    expenses: list[ExpenseItem]
    total: int
    page: int
    limit: int
    total_pages: int


class ExpenseDeleteResponse(BaseModel):
    success: bool
    expense_id: str
    message: str


class ReceiptUploadResponse(BaseModel):
    success: bool
    file_url: str
    message: str


class DashboardCategoryPoint(BaseModel):
    category: str
    amount: float
    count: int


class DashboardTrendPoint(BaseModel):
    date: str
    amount: float


class DashboardBudgetAlert(BaseModel):
    category: str
    current: float
    limit: float
    percentage: float


class DashboardResponse(BaseModel):
    period_month: str
    total_expenses: int
    monthly_spending: float
    budget_utilization: float
    category_breakdown: list[DashboardCategoryPoint]
    spending_trends: list[DashboardTrendPoint]
    recent_expenses: list[ExpenseItem]
    budget_alerts: list[DashboardBudgetAlert]


class CategorySpendPoint(BaseModel):
    category: str
    amount: float
    percentage: float


class BudgetPerformancePoint(BaseModel):
    category: str
    budgeted: float
    spent: float
    remaining: float


class TopExpensePoint(BaseModel):
    id: str
    title: str
    amount: float
    date: str
    category: str


class ProjectedOverspend(BaseModel):
    category: str
    projected_overspend: float


class SpendingPrediction(BaseModel):
    next_month_spending: float
    budget_alerts: list[ProjectedOverspend]


class ExpenseAnalyticsResponse(BaseModel):
    period: str
    start_date: str
    end_date: str
    spending_by_category: list[CategorySpendPoint]
    spending_trends: list[DashboardTrendPoint]
    budget_performance: list[BudgetPerformancePoint]
    top_expenses: list[TopExpensePoint]
    predictions: SpendingPrediction
