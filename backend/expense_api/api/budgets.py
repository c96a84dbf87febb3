from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.api.deps import get_current_user, parse_uuid
from expense_api.core.db import get_session
from expense_api.core.logging_config import get_logger
from expense_api.models.budget import Budget
from expense_api.models.user import User
from expense_api.schemas.budget import BudgetCreateRequest, BudgetResponse, BudgetUpdateRequest
from expense_api.services.budget_service import calculate_month_spent, reconcile_budget

router = APIRouter(prefix="/budgets", tags=["budgets"])
logger = get_logger(__name__)


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def to_budget_response(budget: Budget) -> BudgetResponse:
    return BudgetResponse(
        id=str(budget.id),
        user_id=str(budget.user_id),
        category=budget.category.value if hasattr(budget.category, "value") else str(budget.category),
        monthly_limit=round(float(budget.monthly_limit), 2),
        current_spent=round(float(budget.current_spent), 2),
        alert_threshold=budget.alert_threshold,
        is_active=budget.is_active,
        created_at=budget.created_at.isoformat(),
        updated_at=budget.updated_at.isoformat(),
    )


@router.post("", response_model=BudgetResponse, status_code=status.HTTP_201_CREATED)
async def create_budget(
    payload: BudgetCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> BudgetResponse:
    existing = await session.execute(
        select(Budget).where(
            Budget.user_id == user.id,
            Budget.category == payload.category,
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Budget already exists for this category",
        )

    budget = Budget(
        user_id=user.id,
        category=payload.category,
        monthly_limit=round(payload.monthly_limit, 2),
        current_spent=await calculate_month_spent(
            session,
            user_id=user.id,
            category=payload.category,
        ),
        alert_threshold=payload.alert_threshold,
    )
    session.add(budget)
    await session.commit()
    await session.refresh(budget)

    logger.info(
        "budget.created",
        budget_id=str(budget.id),
        user_id=str(user.id),
        category=payload.category.value,
    )
    return to_budget_response(budget)


@router.get("", response_model=list[BudgetResponse])
async def list_budgets(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[BudgetResponse]:
    result = await session.execute(
        select(Budget).where(Budget.user_id == user.id).order_by(Budget.category)
    )
    budgets = result.scalars().all()

    drifted = False
    for budget in budgets:
        if await reconcile_budget(session, budget):
            drifted = True
    if drifted:
        await session.commit()
        logger.info("budget.reconciled", user_id=str(user.id))

    return [to_budget_response(budget) for budget in budgets]


@router.patch("/{budget_id}", response_model=BudgetResponse)
async def update_budget(
    budget_id: str,
    payload: BudgetUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> BudgetResponse:
    budget_uuid = parse_uuid(budget_id, "budget_id")
    result = await session.execute(
        select(Budget).where(
            Budget.id == budget_uuid,
            Budget.user_id == user.id,
        )
    )
    budget = result.scalar_one_or_none()
    if not budget:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Budget not found",
        )

    reactivated = payload.is_active is True and not budget.is_active
    if payload.monthly_limit is not None:
        budget.monthly_limit = round(payload.monthly_limit, 2)
    if payload.alert_threshold is not None:
        budget.alert_threshold = payload.alert_threshold
    if payload.is_active is not None:
        budget.is_active = payload.is_active

    # Inactive budgets are not adjusted by expense writes, so catch up now.
    if reactivated:
        await reconcile_budget(session, budget)

    budget.updated_at = _current_time()
    session.add(budget)
    await session.commit()
    await session.refresh(budget)
    return to_budget_response(budget)
