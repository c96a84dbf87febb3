from datetime import UTC, datetime
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from expense_api.models.budget import Budget


async def register_user(client: AsyncClient, username: str, role: str = "USER") -> str:
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
    return response.json()["token"]["access_token"]


async def approved_expense(
    client: AsyncClient,
    owner_token: str,
    approver_token: str,
    *,
    amount: float,
    category: str,
) -> dict:
    created = await client.post(
        "/expenses",
        json={
            "title": f"{category.lower()} purchase",
            "amount": amount,
            "category": category,
            "expense_date": str(datetime.now(UTC).date()),
        },
        headers={"Authorization": f"Bearer {owner_token}"},
    )
    assert created.status_code == 201
    decided = await client.post(
        f"/expenses/{created.json()['id']}/approval",
        json={"status": "APPROVED"},
        headers={"Authorization": f"Bearer {approver_token}"},
    )
    assert decided.status_code == 200
    return decided.json()


@pytest.mark.asyncio
async def test_create_budget_defaults_and_duplicates(client: AsyncClient) -> None:
    token = await register_user(client, "alice")
    headers = {"Authorization": f"Bearer {token}"}

    response = await client.post(
        "/budgets",
        json={"category": "TRAVEL", "monthly_limit": 1000},
        headers=headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["category"] == "TRAVEL"
    assert body["monthly_limit"] == 1000
    assert body["current_spent"] == 0
    assert body["alert_threshold"] == 80
    assert body["is_active"] is True

    duplicate = await client.post(
        "/budgets",
        json={"category": "TRAVEL", "monthly_limit": 500},
        headers=headers,
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Budget already exists for this category"


@pytest.mark.asyncio
async def test_create_budget_validation(client: AsyncClient) -> None:
    token = await register_user(client, "bob")
    headers = {"Authorization": f"Bearer {token}"}

    zero_limit = await client.post(
        "/budgets",
        json={"category": "FOOD_DINING", "monthly_limit": 0},
        headers=headers,
    )
    assert zero_limit.status_code == 422

    bad_threshold = await client.post(
        "/budgets",
        json={"category": "FOOD_DINING", "monthly_limit": 10, "alert_threshold": 120},
        headers=headers,
    )
    assert bad_threshold.status_code == 422


@pytest.mark.asyncio
async def test_new_budget_counts_already_approved_spending(client: AsyncClient) -> None:
    token = await register_user(client, "carol")
    approver = await register_user(client, "boss", role="MANAGER")
    await approved_expense(client, token, approver, amount=25, category="BUSINESS")
    await approved_expense(client, token, approver, amount=15.5, category="BUSINESS")
    await approved_expense(client, token, approver, amount=99, category="FOOD_DINING")

    response = await client.post(
        "/budgets",
        json={"category": "BUSINESS", "monthly_limit": 100},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 201
    assert response.json()["current_spent"] == 40.5


@pytest.mark.asyncio
async def test_list_budgets_is_per_user_and_repairs_drift(
    client: AsyncClient,
    session_maker,
) -> None:
    token = await register_user(client, "dave")
    other = await register_user(client, "erin")
    approver = await register_user(client, "boss", role="ADMIN")
    headers = {"Authorization": f"Bearer {token}"}

    await client.post("/budgets", json={"category": "FOOD_DINING", "monthly_limit": 300}, headers=headers)
    await client.post(
        "/budgets",
        json={"category": "SHOPPING", "monthly_limit": 300},
        headers={"Authorization": f"Bearer {other}"},
    )
    await approved_expense(client, token, approver, amount=30, category="FOOD_DINING")

    async with session_maker() as session:
        await session.execute(update(Budget).values(current_spent=999))
        await session.commit()

    response = await client.get("/budgets", headers=headers)
    assert response.status_code == 200
    budgets = response.json()
    assert [item["category"] for item in budgets] == ["FOOD_DINING"]
    assert budgets[0]["current_spent"] == 30


@pytest.mark.asyncio
async def test_update_budget(client: AsyncClient) -> None:
    token = await register_user(client, "frank")
    approver = await register_user(client, "boss", role="MANAGER")
    headers = {"Authorization": f"Bearer {token}"}

    created = await client.post(
        "/budgets",
        json={"category": "ENTERTAINMENT", "monthly_limit": 200},
        headers=headers,
    )
    budget_id = created.json()["id"]

    updated = await client.patch(
        f"/budgets/{budget_id}",
        json={"monthly_limit": 250, "alert_threshold": 90, "is_active": False},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["monthly_limit"] == 250
    assert updated.json()["alert_threshold"] == 90
    assert updated.json()["is_active"] is False

    # Inactive budgets are skipped while expenses move, then caught up on re-activation.
    await approved_expense(client, token, approver, amount=60, category="ENTERTAINMENT")
    reactivated = await client.patch(
        f"/budgets/{budget_id}",
        json={"is_active": True},
        headers=headers,
    )
    assert reactivated.status_code == 200
    assert reactivated.json()["current_spent"] == 60


@pytest.mark.asyncio
async def test_update_budget_not_found_for_other_users(client: AsyncClient) -> None:
    owner = await register_user(client, "gina")
    intruder = await register_user(client, "hank")

    created = await client.post(
        "/budgets",
        json={"category": "OTHERS", "monthly_limit": 50},
        headers={"Authorization": f"Bearer {owner}"},
    )
    budget_id = created.json()["id"]

    foreign = await client.patch(
        f"/budgets/{budget_id}",
        json={"monthly_limit": 1},
        headers={"Authorization": f"Bearer {intruder}"},
    )
    assert foreign.status_code == 404
    assert foreign.json()["detail"] == "Budget not found"

    missing = await client.patch(
        f"/budgets/{uuid4()}",
        json={"monthly_limit": 1},
        headers={"Authorization": f"Bearer {owner}"},
    )
    assert missing.status_code == 404
