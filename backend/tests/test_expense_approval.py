from datetime import UTC, datetime
from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlmodel import select

from expense_api.models.budget import Budget
from expense_api.models.expense import ExpenseCategory
from expense_api.services.periods import shift_months


def today() -> str:
    return str(datetime.now(UTC).date())


async def register_user(client: AsyncClient, username: str, role: str = "USER") -> tuple[str, str]:
    response = await client.post(
        "/auth/register",
        json={
            "email": f"{username}@example.com",
            "username": username,
            "password": "testpass123",
            "first_name": username.title(),
            "last_name": "Tester",
            "role": role,
        },
    )
    assert response.status_code == 201
    body = response.json()
    return body["token"]["access_token"], body["user"]["id"]


async def setup_team(client: AsyncClient) -> dict:
    manager_token, manager_id = await register_user(client, "manager", role="MANAGER")
    member_token, member_id = await register_user(client, "member")

    team_res = await client.post(
        "/teams",
        json={"name": "Sales", "description": "Field sales"},
        headers={"Authorization": f"Bearer {manager_token}"},
    )
    assert team_res.status_code == 201
    team_id = team_res.json()["id"]

    add_res = await client.post(
        f"/teams/{team_id}/members",
        json={"user_id": member_id},
        headers={"Authorization": f"Bearer {manager_token}"},
    )
    assert add_res.status_code == 201

    return {
        "manager_token": manager_token,
        "manager_id": manager_id,
        "member_token": member_token,
        "member_id": member_id,
        "team_id": team_id,
    }


async def file_expense(client: AsyncClient, token: str, team_id: str, **overrides) -> dict:
    response = await client.post(
        "/expenses",
        json={
            "team_id": team_id,
            "title": "Client dinner",
            "amount": 50,
            "category": "FOOD_DINING",
            "expense_date": today(),
            **overrides,
        },
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 201
    return response.json()


async def decide(client: AsyncClient, token: str, expense_id: str, decision: str):
    return await client.post(
        f"/expenses/{expense_id}/approval",
        json={"status": decision},
        headers={"Authorization": f"Bearer {token}"},
    )


async def stored_spent(session_maker, user_id: str, category: str = "FOOD_DINING") -> float:
    # Read the row directly; GET /budgets would recompute it.
    async with session_maker() as session:
        result = await session.execute(
            select(Budget).where(
                Budget.user_id == UUID(user_id),
                Budget.category == ExpenseCategory(category),
            )
        )
        return result.scalar_one().current_spent


async def list_notifications(client: AsyncClient, token: str) -> list[dict]:
    response = await client.get("/notifications", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_approval_updates_budget_and_notifies_owner(
    client: AsyncClient,
    session_maker,
) -> None:
    ctx = await setup_team(client)
    member_headers = {"Authorization": f"Bearer {ctx['member_token']}"}

    budget_res = await client.post(
        "/budgets",
        json={"category": "FOOD_DINING", "monthly_limit": 100, "alert_threshold": 80},
        headers=member_headers,
    )
    assert budget_res.status_code == 201

    first = await file_expense(client, ctx["member_token"], ctx["team_id"])
    assert await stored_spent(session_maker, ctx["member_id"]) == 0

    pending_res = await client.get(
        "/expenses/pending-approvals",
        headers={"Authorization": f"Bearer {ctx['manager_token']}"},
    )
    assert pending_res.status_code == 200
    assert [item["id"] for item in pending_res.json()] == [first["id"]]

    approve_res = await decide(client, ctx["manager_token"], first["id"], "APPROVED")
    assert approve_res.status_code == 200
    approved = approve_res.json()
    assert approved["status"] == "APPROVED"
    assert approved["approved_by"] == ctx["manager_id"]
    assert approved["approved_at"] is not None
    assert await stored_spent(session_maker, ctx["member_id"]) == 50

    notifications = await list_notifications(client, ctx["member_token"])
    assert [item["type"] for item in notifications] == ["EXPENSE_APPROVAL"]
    assert notifications[0]["related_expense_id"] == first["id"]

    second = await file_expense(client, ctx["member_token"], ctx["team_id"], amount=35)
    await decide(client, ctx["manager_token"], second["id"], "APPROVED")
    assert await stored_spent(session_maker, ctx["member_id"]) == 85

    types = sorted(item["type"] for item in await list_notifications(client, ctx["member_token"]))
    assert types == ["BUDGET_ALERT", "EXPENSE_APPROVAL", "EXPENSE_APPROVAL"]

    pending_after = await client.get(
        "/expenses/pending-approvals",
        headers={"Authorization": f"Bearer {ctx['manager_token']}"},
    )
    assert pending_after.json() == []


@pytest.mark.asyncio
async def test_rejection_leaves_budget_untouched(
    client: AsyncClient,
    session_maker,
) -> None:
    ctx = await setup_team(client)
    member_headers = {"Authorization": f"Bearer {ctx['member_token']}"}
    await client.post(
        "/budgets",
        json={"category": "FOOD_DINING", "monthly_limit": 200},
        headers=member_headers,
    )

    expense = await file_expense(client, ctx["member_token"], ctx["team_id"])
    reject_res = await decide(client, ctx["manager_token"], expense["id"], "REJECTED")
    assert reject_res.status_code == 200
    assert reject_res.json()["status"] == "REJECTED"
    assert reject_res.json()["approved_at"] is None
    assert await stored_spent(session_maker, ctx["member_id"]) == 0

    again = await decide(client, ctx["manager_token"], expense["id"], "APPROVED")
    assert again.status_code == 409
    assert again.json()["detail"] == "Expense is not in pending status"

    edit = await client.patch(
        f"/expenses/{expense['id']}",
        json={"amount": 10},
        headers=member_headers,
    )
    assert edit.status_code == 409

    notifications = await list_notifications(client, ctx["member_token"])
    assert len(notifications) == 1
    assert notifications[0]["title"] == "Expense rejected"


@pytest.mark.asyncio
async def test_only_authorized_approvers_can_decide(client: AsyncClient) -> None:
    ctx = await setup_team(client)
    other_manager_token, _ = await register_user(client, "othermanager", role="MANAGER")
    admin_token, _ = await register_user(client, "admin", role="ADMIN")

    expense = await file_expense(client, ctx["member_token"], ctx["team_id"])

    by_owner = await decide(client, ctx["member_token"], expense["id"], "APPROVED")
    assert by_owner.status_code == 403
    assert by_owner.json()["detail"] == "Insufficient permissions to approve expenses"

    by_other_manager = await decide(client, other_manager_token, expense["id"], "APPROVED")
    assert by_other_manager.status_code == 403

    invalid_status = await decide(client, ctx["manager_token"], expense["id"], "PENDING")
    assert invalid_status.status_code == 422

    by_admin = await decide(client, admin_token, expense["id"], "APPROVED")
    assert by_admin.status_code == 200

    user_pending = await client.get(
        "/expenses/pending-approvals",
        headers={"Authorization": f"Bearer {ctx['member_token']}"},
    )
    assert user_pending.status_code == 403


@pytest.mark.asyncio
async def test_editing_and_deleting_approved_expense_moves_budget(
    client: AsyncClient,
    session_maker,
) -> None:
    ctx = await setup_team(client)
    member_headers = {"Authorization": f"Bearer {ctx['member_token']}"}
    for category in ("FOOD_DINING", "TRAVEL"):
        await client.post(
            "/budgets",
            json={"category": category, "monthly_limit": 500},
            headers=member_headers,
        )

    expense = await file_expense(client, ctx["member_token"], ctx["team_id"], amount=120)
    await decide(client, ctx["manager_token"], expense["id"], "APPROVED")
    assert await stored_spent(session_maker, ctx["member_id"]) == 120

    await client.patch(
        f"/expenses/{expense['id']}",
        json={"amount": 80},
        headers=member_headers,
    )
    assert await stored_spent(session_maker, ctx["member_id"]) == 80

    await client.patch(
        f"/expenses/{expense['id']}",
        json={"category": "TRAVEL"},
        headers=member_headers,
    )
    assert await stored_spent(session_maker, ctx["member_id"]) == 0
    assert await stored_spent(session_maker, ctx["member_id"], "TRAVEL") == 80

    last_month = shift_months(datetime.now(UTC).date(), -1)
    await client.patch(
        f"/expenses/{expense['id']}",
        json={"expense_date": str(last_month)},
        headers=member_headers,
    )
    assert await stored_spent(session_maker, ctx["member_id"], "TRAVEL") == 0

    await client.patch(
        f"/expenses/{expense['id']}",
        json={"expense_date": today()},
        headers=member_headers,
    )
    assert await stored_spent(session_maker, ctx["member_id"], "TRAVEL") == 80

    delete_res = await client.delete(f"/expenses/{expense['id']}", headers=member_headers)
    assert delete_res.status_code == 200
    assert await stored_spent(session_maker, ctx["member_id"], "TRAVEL") == 0

    budgets = {
        item["category"]: item
        for item in (await client.get("/budgets", headers=member_headers)).json()
    }
    assert budgets["FOOD_DINING"]["current_spent"] == 0
    assert budgets["TRAVEL"]["current_spent"] == 0

    # The approval notification survives with its expense link cleared.
    notifications = await list_notifications(client, ctx["member_token"])
    assert notifications
    assert all(item["related_expense_id"] is None for item in notifications)
