from datetime import UTC, datetime
from uuid import UUID

import pytest
from httpx import AsyncClient

from expense_api.services.receipt_service import (
    EmptyReceiptError,
    ReceiptTooLargeError,
    UnsupportedReceiptTypeError,
    build_receipt_url,
    validate_receipt,
)


async def register_user(client: AsyncClient, username: str) -> str:
    response = await client.post(
        "/auth/register",
        json={
            "email": f"{username}@example.com",
            "username": username,
            "password": "testpass123",
            "first_name": username.title(),
            "last_name": "Tester",
        },
    )
    assert response.status_code == 201
    return response.json()["token"]["access_token"]


def test_validate_receipt() -> None:
    assert validate_receipt(content_type="image/png", filename="r.png", size=10, max_upload_mb=5) == "png"
    assert validate_receipt(
        content_type="application/pdf; charset=binary",
        filename="r",
        size=10,
        max_upload_mb=5,
    ) == "pdf"
    assert validate_receipt(
        content_type="application/octet-stream",
        filename="scan.JPEG",
        size=10,
        max_upload_mb=5,
    ) == "jpg"

    with pytest.raises(UnsupportedReceiptTypeError):
        validate_receipt(content_type="text/plain", filename="r.png", size=10, max_upload_mb=5)
    with pytest.raises(EmptyReceiptError):
        validate_receipt(content_type="image/gif", filename="r.gif", size=0, max_upload_mb=5)
    with pytest.raises(ReceiptTooLargeError):
        validate_receipt(
            content_type="image/webp",
            filename="r.webp",
            size=5 * 1024 * 1024 + 1,
            max_upload_mb=5,
        )



def test_receipt_url_uses_utc_milliseconds() -> None:
    user_id = UUID("12345678-1234-5678-1234-567812345678")

    url = build_receipt_url(
        "https://files.example.com",
        user_id=user_id,
        extension="png",
        uploaded_at=datetime(2025, 1, 1, 0, 0, 0),
    )

    assert url.startswith(f"https://files.example.com/receipts/receipt_{user_id.hex}_1735689600000_")
    assert url.endswith(".png")

@pytest.mark.asyncio
async def test_upload_receipt_attaches_to_expense(client: AsyncClient) -> None:
    token = await register_user(client, "alice")
    headers = {"Authorization": f"Bearer {token}"}
    created = await client.post(
        "/expenses",
        json={
            "title": "Taxi",
            "amount": 18,
            "category": "TRANSPORTATION",
            "expense_date": str(datetime.now(UTC).date()),
        },
        headers=headers,
    )
    expense_id = created.json()["id"]

    response = await client.post(
        "/expenses/receipts",
        files={"file": ("taxi.png", b"\x89PNG fake image bytes", "image/png")},
        data={"expense_id": expense_id},
        headers=headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["file_url"].startswith("https://storage.example.com/receipts/receipt_")
    assert body["file_url"].endswith(".png")

    expense = await client.get(f"/expenses/{expense_id}", headers=headers)
    assert expense.json()["receipt_url"] == body["file_url"]


@pytest.mark.asyncio
async def test_upload_receipt_without_expense(client: AsyncClient) -> None:
    token = await register_user(client, "bob")

    response = await client.post(
        "/expenses/receipts",
        files={"file": ("invoice.pdf", b"%PDF-1.4 body", "application/pdf")},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 201
    assert response.json()["file_url"].endswith(".pdf")


@pytest.mark.asyncio
async def test_upload_receipt_rejections(client: AsyncClient) -> None:
    token = await register_user(client, "carol")
    other_token = await register_user(client, "dave")
    headers = {"Authorization": f"Bearer {token}"}

    wrong_type = await client.post(
        "/expenses/receipts",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert wrong_type.status_code == 415

    empty = await client.post(
        "/expenses/receipts",
        files={"file": ("empty.png", b"", "image/png")},
        headers=headers,
    )
    assert empty.status_code == 422

    too_large = await client.post(
        "/expenses/receipts",
        files={"file": ("big.jpg", b"0" * (5 * 1024 * 1024 + 1), "image/jpeg")},
        headers=headers,
    )
    assert too_large.status_code == 413

    created = await client.post(
        "/expenses",
        json={
            "title": "Private",
            "amount": 5,
            "category": "OTHERS",
            "expense_date": str(datetime.now(UTC).date()),
        },
        headers={"Authorization": f"Bearer {other_token}"},
    )
    foreign = await client.post(
        "/expenses/receipts",
        files={"file": ("r.png", b"png", "image/png")},
        data={"expense_id": created.json()["id"]},
        headers=headers,
    )
    assert foreign.status_code == 404
