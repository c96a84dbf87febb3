from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.models.team import Team, TeamMember


async def get_team(session: AsyncSession, team_id: UUID) -> Team | None:
    result = await session.execute(select(Team).where(Team.id == team_id))
    return result.scalar_one_or_none()


async def is_team_member(session: AsyncSession, *, team_id: UUID, user_id: UUID) -> bool:
    result = await session.execute(
        select(TeamMember.id).where(
            TeamMember.team_id == team_id,
            TeamMember.user_id == user_id,
        )
    )
    return result.first() is not None


async def list_user_teams(session: AsyncSession, user_id: UUID) -> list[Team]:
    """Teams the user manages or belongs to, oldest first, without duplicates."""
    managed_result = await session.execute(select(Team).where(Team.manager_id == user_id))
    member_result = await session.execute(
        select(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
    )

    teams: dict[UUID, Team] = {}
    for team in [*managed_result.scalars().all(), *member_result.scalars().all()]:
        teams.setdefault(team.id, team)
    return sorted(teams.values(), key=lambda team: team.created_at)


async def list_user_team_ids(session: AsyncSession, user_id: UUID) -> set[UUID]:
    return {team.id for team in await list_user_teams(session, user_id)}
