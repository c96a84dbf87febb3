from collections import defaultdict
from datetime import UTC, date, datetime
from math import ceil
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.api.deps import (
    get_current_approver,
    get_current_user,
    parse_uuid,
)
from expense_api.core.config import get_settings
from expense_api.core.db import get_session
from expense_api.core.logging_config import get_logger
from expense_api.models.budget import Budget
from expense_api.models.expense import Expense, ExpenseCategory, ExpenseStatus
from expense_api.models.notification import Notification
from expense_api.models.team import Team
from expense_api.models.user import User, UserRole
from expense_api.schemas.expense import (
    DashboardBudgetAlert,
    DashboardCategoryPoint,
    DashboardResponse,
    DashboardTrendPoint,
    ExpenseAnalyticsResponse,
    ExpenseApprovalRequest,
    ExpenseCreateRequest,
    ExpenseDeleteResponse,
    ExpenseItem,
    ExpenseUpdateRequest,
    PaginatedExpensesResponse,
    ReceiptUploadResponse,
)
from expense_api.services import analytics_service
from expense_api.services.budget_service import ExpenseFootprint, apply_expense_change
from expense_api.services.notification_service import (
    notify_budget_alert,
    notify_expense_decision,
)
from expense_api.services.periods import month_bounds, shift_months
from expense_api.services.receipt_service import (
    EmptyReceiptError,
    ReceiptTooLargeError,
    UnsupportedReceiptTypeError,
    build_receipt_url,
    validate_receipt,
)
from expense_api.services.team_service import get_team, is_team_member

router = APIRouter(prefix="/expenses", tags=["expenses"])
settings = get_settings()
logger = get_logger(__name__)

REQUIRED_UPDATE_FIELDS = ("title", "amount", "category", "expense_date", "is_recurring")
RECENT_EXPENSES_LIMIT = 5
TREND_MONTHS = 12


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _today() -> date:
    return datetime.now(UTC).date()


def _enum_value(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


def _clean_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _clean_tags(tags: list[str] | None) -> list[str] | None:
    if tags is None:
        return None
    cleaned: list[str] = []
    for tag in tags:
        value = " ".join(tag.strip().split())
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


def to_expense_item(expense: Expense) -> ExpenseItem:
    return ExpenseItem(
        id=str(expense.id),
        user_id=str(expense.user_id),
        team_id=str(expense.team_id) if expense.team_id else None,
        title=expense.title,
        description=expense.description,
        amount=round(float(expense.amount), 2),
        category=_enum_value(expense.category),
        receipt_url=expense.receipt_url,
        status=_enum_value(expense.status),
        approved_by=str(expense.approved_by) if expense.approved_by else None,
        approved_at=expense.approved_at.isoformat() if expense.approved_at else None,
        expense_date=str(expense.expense_date),
        is_recurring=expense.is_recurring,
        recurring_frequency=(
            _enum_value(expense.recurring_frequency) if expense.recurring_frequency else None
        ),
        tags=list(expense.tags or []),
        created_at=expense.created_at.isoformat(),
        updated_at=expense.updated_at.isoformat(),
    )


async def _get_owned_expense(
    session: AsyncSession,
    *,
    expense_id: str,
    user: User,
) -> Expense:
    expense_uuid = parse_uuid(expense_id, "expense_id")
    result = await session.execute(
        select(Expense).where(
            Expense.id == expense_uuid,
            Expense.user_id == user.id,
        )
    )
    expense = result.scalar_one_or_none()
    if not expense:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Expense not found",
        )
    return expense


def _raise_budget_alerts(session: AsyncSession, changes, related_expense_id: UUID) -> None:
    for change in changes:
        if change.crossed_alert_threshold:
            notify_budget_alert(session, change.budget, related_expense_id=related_expense_id)
            logger.info(
                "budget.alert_raised",
                budget_id=str(change.budget.id),
                current_spent=round(change.budget.current_spent, 2),
                monthly_limit=change.budget.monthly_limit,
            )


@router.post("", response_model=ExpenseItem, status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ExpenseItem:
    team_id: UUID | None = None
    if payload.team_id:
        team_id = parse_uuid(payload.team_id, "team_id")
        team = await get_team(session, team_id)
        if not team:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Team not found",
            )
        if team.manager_id != user.id and not await is_team_member(
            session, team_id=team.id, user_id=user.id
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only file expenses to teams you belong to.",
            )

    now = _current_time()
    expense = Expense(
        user_id=user.id,
        team_id=team_id,
        title=payload.title.strip(),
        description=_clean_optional_text(payload.description),
        amount=round(payload.amount, 2),
        category=payload.category,
        receipt_url=_clean_optional_text(payload.receipt_url),
        status=ExpenseStatus.PENDING,
        expense_date=payload.expense_date,
        is_recurring=payload.is_recurring,
        recurring_frequency=payload.recurring_frequency,
        tags=_clean_tags(payload.tags),
        created_at=now,
        updated_at=now,
    )
    session.add(expense)
    await session.commit()
    await session.refresh(expense)

    logger.info(
        "expense.created",
        expense_id=str(expense.id),
        user_id=str(user.id),
        team_id=str(team_id) if team_id else None,
        amount=expense.amount,
    )
    return to_expense_item(expense)


@router.get("", response_model=PaginatedExpensesResponse)
async def list_expenses(
    category: ExpenseCategory | None = Query(default=None),
    status_filter: ExpenseStatus | None = Query(default=None, alias="status"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    search: str | None = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> PaginatedExpensesResponse:
    filters = [Expense.user_id == user.id]
    if category:
        filters.append(Expense.category == category)
    if status_filter:
        filters.append(Expense.status == status_filter)
    if date_from:
        filters.append(Expense.expense_date >= date_from)
    if date_to:
        filters.append(Expense.expense_date <= date_to)
    if search and search.strip():
        filters.append(Expense.title.icontains(search.strip(), autoescape=True))

    list_result = await session.execute(
        select(Expense)
        .where(*filters)
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    expenses = list_result.scalars().all()

    total_result = await session.execute(
        select(func.count()).select_from(Expense).where(*filters)
    )
    total = int(total_result.scalar_one() or 0)

    return PaginatedExpensesResponse(
        expenses=[to_expense_item(expense) for expense in expenses],
        total=total,
        page=page,
        limit=limit,
        total_pages=ceil(total / limit),
    )


@router.get("/search", response_model=list[ExpenseItem])
async def search_expenses(
    search_term: str = Query(default="", max_length=200),
    category: ExpenseCategory | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    min_amount: float | None = Query(default=None, ge=0),
    max_amount: float | None = Query(default=None, ge=0),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[ExpenseItem]:
    filters = [Expense.user_id == user.id]
    term = search_term.strip()
    if term:
        filters.append(
            or_(
                Expense.title.icontains(term, autoescape=True),
                Expense.description.icontains(term, autoescape=True),
            )
        )
    if category:
        filters.append(Expense.category == category)
    if date_from:
        filters.append(Expense.expense_date >= date_from)
    if date_to:
        filters.append(Expense.expense_date <= date_to)
    if min_amount is not None:
        filters.append(Expense.amount >= min_amount)
    if max_amount is not None:
        filters.append(Expense.amount <= max_amount)

    result = await session.execute(
        select(Expense)
        .where(*filters)
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
    )
    return [to_expense_item(expense) for expense in result.scalars().all()]


@router.get("/pending-approvals", response_model=list[ExpenseItem])
async def get_pending_approvals(
    approver: User = Depends(get_current_approver),
    session: AsyncSession = Depends(get_session),
) -> list[ExpenseItem]:
    result = await session.execute(
        select(Expense)
        .join(Team, Team.id == Expense.team_id)
        .where(
            Expense.status == ExpenseStatus.PENDING,
            Team.manager_id == approver.id,
        )
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
    )
    return [to_expense_item(expense) for expense in result.scalars().all()]


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=2020, le=9999),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> DashboardResponse:
    today = _today()
    period_start, period_end = month_bounds(year or today.year, month or today.month)

    count_result = await session.execute(
        select(func.count()).select_from(Expense).where(Expense.user_id == user.id)
    )
    total_expenses = int(count_result.scalar_one() or 0)

    trend_start = shift_months(period_start, -(TREND_MONTHS - 1))
    trend_result = await session.execute(
        select(Expense).where(
            Expense.user_id == user.id,
            Expense.status != ExpenseStatus.REJECTED,
            Expense.expense_date >= trend_start,
            Expense.expense_date <= period_end,
        )
    )
    trend_expenses = trend_result.scalars().all()
    period_expenses = [
        expense for expense in trend_expenses if expense.expense_date >= period_start
    ]

    budgets_result = await session.execute(
        select(Budget).where(
            Budget.user_id == user.id,
            Budget.is_active.is_(True),
        )
    )
    budgets = budgets_result.scalars().all()

    recent_result = await session.execute(
        select(Expense)
        .where(Expense.user_id == user.id)
        .order_by(Expense.created_at.desc())
        .limit(RECENT_EXPENSES_LIMIT)
    )
    recent_expenses = recent_result.scalars().all()

    monthly_spending = 0.0
    category_totals: dict[str, float] = defaultdict(float)
    category_counts: dict[str, int] = defaultdict(int)
    for expense in period_expenses:
        amount = float(expense.amount)
        monthly_spending += amount
        category = _enum_value(expense.category)
        category_totals[category] += amount
        category_counts[category] += 1

    monthly_totals: dict[str, float] = defaultdict(float)
    for expense in trend_expenses:
        monthly_totals[expense.expense_date.strftime("%Y-%m")] += float(expense.amount)

    total_limit = sum(float(budget.monthly_limit) for budget in budgets)
    budget_utilization = monthly_spending / total_limit * 100 if total_limit > 0 else 0.0

    budget_alerts: list[DashboardBudgetAlert] = []
    for budget in budgets:
        limit = float(budget.monthly_limit)
        current = category_totals.get(_enum_value(budget.category), 0.0)
        percentage = current / limit * 100 if limit > 0 else 0.0
        if percentage >= budget.alert_threshold:
            budget_alerts.append(
                DashboardBudgetAlert(
                    category=_enum_value(budget.category),
                    current=round(current, 2),
                    limit=round(limit, 2),
                    percentage=round(percentage, 2),
                )
            )

    return DashboardResponse(
        period_month=period_start.strftime("%Y-%m"),
        total_expenses=total_expenses,
        monthly_spending=round(monthly_spending, 2),
        budget_utilization=round(budget_utilization, 2),
        category_breakdown=[
            DashboardCategoryPoint(
                category=category,
                amount=round(total, 2),
                count=category_counts[category],
            )
            for category, total in sorted(
                category_totals.items(),
                key=lambda item: item[1],
                reverse=True,
            )
        ],
        spending_trends=[
            DashboardTrendPoint(date=month_key, amount=round(total, 2))
            for month_key, total in sorted(monthly_totals.items())
        ],
        recent_expenses=[to_expense_item(expense) for expense in recent_expenses],
        budget_alerts=sorted(budget_alerts, key=lambda alert: alert.percentage, reverse=True),
    )


@router.get("/analytics", response_model=ExpenseAnalyticsResponse)
async def get_expense_analytics(
    period: Literal["month", "year", "custom"] = Query(default="month"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ExpenseAnalyticsResponse:
    today = _today()
    try:
        range_start, range_end = analytics_service.resolve_period(
            period,
            today,
            start_date=start_date,
            end_date=end_date,
        )
    except analytics_service.InvalidPeriodError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc

    expenses_result = await session.execute(
        select(Expense).where(
            Expense.user_id == user.id,
            Expense.status != ExpenseStatus.REJECTED,
            Expense.expense_date >= range_start,
            Expense.expense_date <= range_end,
        )
    )
    expenses = expenses_result.scalars().all()

    window_start, window_end = analytics_service.projection_window(today)
    recent_result = await session.execute(
        select(Expense).where(
            Expense.user_id == user.id,
            Expense.status != ExpenseStatus.REJECTED,
            Expense.expense_date >= window_start,
            Expense.expense_date <= window_end,
        )
    )
    recent_expenses = recent_result.scalars().all()

    budgets_result = await session.execute(select(Budget).where(Budget.user_id == user.id))
    budgets = budgets_result.scalars().all()

    return ExpenseAnalyticsResponse(
        period=period,
        start_date=str(range_start),
        end_date=str(range_end),
        spending_by_category=analytics_service.spending_by_category(expenses),
        spending_trends=analytics_service.spending_trends(
            expenses,
            "month" if period == "year" else "day",
        ),
        budget_performance=analytics_service.budget_performance(
            budgets,
            expenses,
            analytics_service.budget_months(period, range_start, range_end),
        ),
        top_expenses=analytics_service.top_expenses(expenses),
        predictions=analytics_service.predict_spending(recent_expenses, budgets, today),
    )


@router.post("/receipts", response_model=ReceiptUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_receipt(
    file: UploadFile = File(...),
    expense_id: str | None = Form(default=None),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ReceiptUploadResponse:
    content = await file.read()
    try:
        extension = validate_receipt(
            content_type=file.content_type,
            filename=file.filename,
            size=len(content),
            max_upload_mb=settings.receipt_max_upload_mb,
        )
    except UnsupportedReceiptTypeError as exc:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=str(exc),
        ) from exc
    except EmptyReceiptError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except ReceiptTooLargeError as exc:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=str(exc),
        ) from exc

    expense: Expense | None = None
    if expense_id and expense_id.strip():
        expense = await _get_owned_expense(session, expense_id=expense_id, user=user)

    now = _current_time()
    file_url = build_receipt_url(
        settings.public_storage_url,
        user_id=user.id,
        extension=extension,
        uploaded_at=now,
    )

    if expense is not None:
        expense.receipt_url = file_url
        expense.updated_at = now
        session.add(expense)
        await session.commit()

    logger.info(
        "receipt.accepted",
        user_id=str(user.id),
        size=len(content),
        file_url=file_url,
        expense_id=str(expense.id) if expense else None,
    )
    return ReceiptUploadResponse(
        success=True,
        file_url=file_url,
        message="Receipt uploaded successfully",
    )


@router.get("/{expense_id}", response_model=ExpenseItem)
async def get_expense(
    expense_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ExpenseItem:
    expense_uuid = parse_uuid(expense_id, "expense_id")
    result = await session.execute(select(Expense).where(Expense.id == expense_uuid))
    expense = result.scalar_one_or_none()

    visible = False
    if expense:
        if expense.user_id == user.id or user.role == UserRole.ADMIN:
            visible = True
        elif expense.team_id:
            team = await get_team(session, expense.team_id)
            visible = bool(team and team.manager_id == user.id)

    if not expense or not visible:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Expense not found",
        )
    return to_expense_item(expense)


@router.patch("/{expense_id}", response_model=ExpenseItem)
async def update_expense(
    expense_id: str,
    payload: ExpenseUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ExpenseItem:
    expense = await _get_owned_expense(session, expense_id=expense_id, user=user)
    if expense.status == ExpenseStatus.REJECTED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Rejected expenses cannot be edited.",
        )

    updates = payload.model_dump(exclude_unset=True)
    for field_name in REQUIRED_UPDATE_FIELDS:
        if field_name in updates and updates[field_name] is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"{field_name} cannot be null",
            )

    before = ExpenseFootprint.of(expense)

    if "title" in updates:
        expense.title = updates["title"].strip()
    if "description" in updates:
        expense.description = _clean_optional_text(updates["description"])
    if "amount" in updates:
        expense.amount = round(updates["amount"], 2)
    if "category" in updates:
        expense.category = updates["category"]
    if "receipt_url" in updates:
        expense.receipt_url = _clean_optional_text(updates["receipt_url"])
    if "expense_date" in updates:
        expense.expense_date = updates["expense_date"]
    if "is_recurring" in updates:
        expense.is_recurring = updates["is_recurring"]
    if "recurring_frequency" in updates:
        expense.recurring_frequency = updates["recurring_frequency"]
    if "tags" in updates:
        expense.tags = _clean_tags(updates["tags"])

    expense.updated_at = _current_time()
    session.add(expense)
    changes = await apply_expense_change(
        session,
        user_id=expense.user_id,
        before=before,
        after=ExpenseFootprint.of(expense),
    )
    _raise_budget_alerts(session, changes, expense.id)
    await session.commit()
    await session.refresh(expense)

    return to_expense_item(expense)


@router.delete("/{expense_id}", response_model=ExpenseDeleteResponse)
async def delete_expense(
    expense_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ExpenseDeleteResponse:
    expense = await _get_owned_expense(session, expense_id=expense_id, user=user)
    deleted_id = expense.id
    footprint = ExpenseFootprint.of(expense)

    await session.execute(
        update(Notification)
        .where(Notification.related_expense_id == deleted_id)
        .values(related_expense_id=None)
        .execution_options(synchronize_session=False)
    )
    await apply_expense_change(session, user_id=user.id, before=footprint, after=None)
    await session.delete(expense)
    await session.commit()

    logger.info("expense.deleted", expense_id=str(deleted_id), user_id=str(user.id))
    return ExpenseDeleteResponse(
        success=True,
        expense_id=str(deleted_id),
        message="Expense deleted successfully",
    )


@router.post("/{expense_id}/approval", response_model=ExpenseItem)
async def approve_expense(
    expense_id: str,
    payload: ExpenseApprovalRequest,
    approver: User = Depends(get_current_approver),
    session: AsyncSession = Depends(get_session),
) -> ExpenseItem:
    expense_uuid = parse_uuid(expense_id, "expense_id")
    result = await session.execute(select(Expense).where(Expense.id == expense_uuid))
    expense = result.scalar_one_or_none()
    if not expense:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Expense not found",
        )

    if expense.team_id and approver.role != UserRole.ADMIN:
        team = await get_team(session, expense.team_id)
        if not team or team.manager_id != approver.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the team manager or an admin can decide this expense.",
            )

    if expense.status != ExpenseStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Expense is not in pending status",
        )

    before = ExpenseFootprint.of(expense)
    now = _current_time()
    expense.status = ExpenseStatus(payload.status)
    expense.approved_by = approver.id
    expense.approved_at = now if expense.status == ExpenseStatus.APPROVED else None
    expense.updated_at = now
    session.add(expense)

    changes = await apply_expense_change(
        session,
        user_id=expense.user_id,
        before=before,
        after=ExpenseFootprint.of(expense),
    )
    notify_expense_decision(session, expense)
    _raise_budget_alerts(session, changes, expense.id)
    await session.commit()
    await session.refresh(expense)

    logger.info(
        "expense.decided",
        expense_id=str(expense.id),
        approver_id=str(approver.id),
        status=expense.status.value,
    )
    return to_expense_item(expense)
