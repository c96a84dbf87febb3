from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.api.deps import get_current_user, parse_uuid
from expense_api.api.expenses import to_expense_item
from expense_api.core.db import get_session
from expense_api.core.logging_config import get_logger
from expense_api.models.expense import Expense
from expense_api.models.team import Team, TeamMember
from expense_api.models.user import APPROVER_ROLES, User, UserRole
from expense_api.schemas.expense import ExpenseItem
from expense_api.schemas.team import (
    TeamCreateRequest,
    TeamMemberAddRequest,
    TeamMemberResponse,
    TeamResponse,
)
from expense_api.services.team_service import get_team, is_team_member, list_user_teams

router = APIRouter(prefix="/teams", tags=["teams"])
logger = get_logger(__name__)


def to_team_response(team: Team) -> TeamResponse:
    return TeamResponse(
        id=str(team.id),
        name=team.name,
        description=team.description,
        manager_id=str(team.manager_id),
        created_at=team.created_at.isoformat(),
        updated_at=team.updated_at.isoformat(),
    )


def to_team_member_response(member: TeamMember) -> TeamMemberResponse:
    return TeamMemberResponse(
        id=str(member.id),
        team_id=str(member.team_id),
        user_id=str(member.user_id),
        joined_at=member.joined_at.isoformat(),
    )


async def _get_team_or_404(session: AsyncSession, team_id: str) -> Team:
    team = await get_team(session, parse_uuid(team_id, "team_id"))
    if not team:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Team not found",
        )
    return team


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    payload: TeamCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TeamResponse:
    manager = user
    if payload.manager_id:
        manager_id = parse_uuid(payload.manager_id, "manager_id")
        if manager_id != user.id:
            if user.role != UserRole.ADMIN:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only admins can assign another user as manager.",
                )
            manager_result = await session.execute(select(User).where(User.id == manager_id))
            manager = manager_result.scalar_one_or_none()
            if not manager:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Manager not found",
                )

    if not manager.is_active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Manager account is not active",
        )
    if manager.role not in APPROVER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User does not have manager privileges",
        )

    team = Team(
        name=payload.name.strip(),
        description=(payload.description or "").strip() or None,
        manager_id=manager.id,
    )
    session.add(team)
    await session.flush()
    session.add(TeamMember(team_id=team.id, user_id=manager.id))
    await session.commit()
    await session.refresh(team)

    logger.info("team.created", team_id=str(team.id), manager_id=str(manager.id))
    return to_team_response(team)


@router.get("", response_model=list[TeamResponse])
async def list_teams(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[TeamResponse]:
    teams = await list_user_teams(session, user.id)
    return [to_team_response(team) for team in teams]


@router.post(
    "/{team_id}/members",
    response_model=TeamMemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_team_member(
    team_id: str,
    payload: TeamMemberAddRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TeamMemberResponse:
    team = await _get_team_or_404(session, team_id)
    if team.manager_id != user.id and user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the team manager or an admin can add members.",
        )

    member_id = parse_uuid(payload.user_id, "user_id")
    member_result = await session.execute(select(User).where(User.id == member_id))
    if not member_result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    if await is_team_member(session, team_id=team.id, user_id=member_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already a member of this team",
        )

    member = TeamMember(team_id=team.id, user_id=member_id)
    session.add(member)
    await session.commit()
    await session.refresh(member)

    logger.info("team.member_added", team_id=str(team.id), user_id=str(member_id))
    return to_team_member_response(member)


@router.get("/{team_id}/expenses", response_model=list[ExpenseItem])
async def list_team_expenses(
    team_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[ExpenseItem]:
    team = await _get_team_or_404(session, team_id)
    if team.manager_id != user.id and user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: You are not the manager of this team",
        )

    result = await session.execute(
        select(Expense)
        .where(Expense.team_id == team.id)
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
    )
    return [to_expense_item(expense) for expense in result.scalars().all()]
