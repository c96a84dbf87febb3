from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.api.deps import get_current_user
from expense_api.core.config import get_settings
from expense_api.core.db import get_session
from expense_api.core.logging_config import get_logger
from expense_api.models.expense import Expense
from expense_api.models.report import Report
from expense_api.models.user import User
from expense_api.schemas.report import ReportGenerateRequest, ReportResponse
from expense_api.services.report_service import (
    build_report_file_url,
    report_expires_at,
    summarize_expenses,
)
from expense_api.services.team_service import list_user_team_ids

router = APIRouter(prefix="/reports", tags=["reports"])
settings = get_settings()
logger = get_logger(__name__)


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def to_report_response(report: Report) -> ReportResponse:
    return ReportResponse(
        id=str(report.id),
        user_id=str(report.user_id),
        type=report.type.value if hasattr(report.type, "value") else str(report.type),
        title=report.title,
        filters=dict(report.filters or {}),
        generated_at=report.generated_at.isoformat(),
        file_url=report.file_url,
        expires_at=report.expires_at.isoformat() if report.expires_at else None,
    )


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def generate_report(
    payload: ReportGenerateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ReportResponse:
    if payload.date_from > payload.date_to:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid date range: date_from must be on or before date_to",
        )

    owner_filter = Expense.user_id == user.id
    if payload.include_team_expenses:
        team_ids = await list_user_team_ids(session, user.id)
        if team_ids:
            owner_filter = or_(owner_filter, Expense.team_id.in_(list(team_ids)))

    filters = [
        owner_filter,
        Expense.expense_date >= payload.date_from,
        Expense.expense_date <= payload.date_to,
    ]
    if payload.categories:
        filters.append(Expense.category.in_(payload.categories))

    expenses_result = await session.execute(select(Expense).where(*filters))
    expenses = expenses_result.scalars().all()

    now = _current_time()
    report = Report(
        user_id=user.id,
        type=payload.type,
        title=payload.title.strip(),
        filters=summarize_expenses(
            expenses,
            date_from=payload.date_from,
            date_to=payload.date_to,
            categories=payload.categories,
            include_team_expenses=payload.include_team_expenses,
        ),
        generated_at=now,
        file_url=build_report_file_url(
            settings.public_storage_url,
            user_id=user.id,
            report_type=payload.type,
            generated_at=now,
        ),
        expires_at=report_expires_at(payload.type, now),
    )
    session.add(report)
    await session.commit()
    await session.refresh(report)

    logger.info(
        "report.generated",
        report_id=str(report.id),
        user_id=str(user.id),
        type=payload.type.value,
        total_expenses=report.filters["total_expenses"],
    )
    return to_report_response(report)


@router.get("", response_model=list[ReportResponse])
async def list_reports(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[ReportResponse]:
    result = await session.execute(
        select(Report)
        .where(
            Report.user_id == user.id,
            or_(Report.expires_at.is_(None), Report.expires_at > _current_time()),
        )
        .order_by(Report.generated_at.desc())
    )
    return [to_report_response(report) for report in result.scalars().all()]
