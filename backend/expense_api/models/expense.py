from datetime import UTC, date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def utc_now_naive() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class ExpenseStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ExpenseCategory(str, Enum):
    FOOD_DINING = "FOOD_DINING"
    TRANSPORTATION = "TRANSPORTATION"
    SHOPPING = "SHOPPING"
    ENTERTAINMENT = "ENTERTAINMENT"
    BILLS_UTILITIES = "BILLS_UTILITIES"
    HEALTHCARE = "HEALTHCARE"
    EDUCATION = "EDUCATION"
    TRAVEL = "TRAVEL"
    BUSINESS = "BUSINESS"
    OTHERS = "OTHERS"


class RecurringFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Expense(SQLModel, table=True):
    __tablename__ = "expenses"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    user_id: UUID = Field(foreign_key="users.id", nullable=False, index=True)
    team_id: UUID | None = Field(default=None, foreign_key="teams.id", index=True)
    title: str = Field(nullable=False, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    amount: float = Field(nullable=False)
    category: ExpenseCategory = Field(nullable=False, index=True)
    receipt_url: str | None = Field(default=None, max_length=2048)
    status: ExpenseStatus = Field(default=ExpenseStatus.PENDING, nullable=False, index=True)
    approved_by: UUID | None = Field(default=None, foreign_key="users.id")
    approved_at: datetime | None = Field(default=None)
    expense_date: date = Field(nullable=False, index=True)
    is_recurring: bool = Field(default=False, nullable=False)
    recurring_frequency: RecurringFrequency | None = Field(default=None)
    tags: list[str] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
