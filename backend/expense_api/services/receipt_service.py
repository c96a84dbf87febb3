import secrets
from datetime import UTC, datetime
from uuid import UUID

RECEIPT_CONTENT_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "application/pdf": "pdf",
}

RECEIPT_EXTENSION_TO_CONTENT_TYPE = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "pdf": "application/pdf",
}


class ReceiptValidationError(ValueError):
    pass


class EmptyReceiptError(ReceiptValidationError):
    pass


class ReceiptTooLargeError(ReceiptValidationError):
    pass


class UnsupportedReceiptTypeError(ReceiptValidationError):
    pass


def _normalize_content_type(value: str | None) -> str:
    if not value:
        return ""
    return value.split(";")[0].strip().lower()


def _extension_from_filename(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].strip().lower()


def validate_receipt(
    *,
    content_type: str | None,
    filename: str | None,
    size: int,
    max_upload_mb: int,
) -> str:
    """Return the storage extension for an acceptable receipt file."""
    normalized = _normalize_content_type(content_type)
    if normalized not in RECEIPT_CONTENT_TYPES:
        fallback = RECEIPT_EXTENSION_TO_CONTENT_TYPE.get(_extension_from_filename(filename))
        if normalized not in ("", "application/octet-stream") or fallback is None:
            raise UnsupportedReceiptTypeError(
                "Invalid file type. Allowed types: " + ", ".join(RECEIPT_CONTENT_TYPES)
            )
        normalized = fallback

    if size == 0:
        raise EmptyReceiptError("File is empty")

    max_bytes = max(0, max_upload_mb) * 1024 * 1024
    if size > max_bytes:
        raise ReceiptTooLargeError(
            f"File size too large. Maximum size allowed: {max_upload_mb}MB"
        )

    return RECEIPT_CONTENT_TYPES[normalized]


def build_receipt_url(
    base_url: str,
    *,
    user_id: UUID,
    extension: str,
    uploaded_at: datetime,
) -> str:
    stamp = int(uploaded_at.replace(tzinfo=UTC).timestamp() * 1000)
    return f"{base_url}/receipts/receipt_{user_id.hex}_{stamp}_{secrets.token_hex(6)}.{extension}"
