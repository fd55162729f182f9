"""Loan transfer payload.

A student's loan request travels to staff as flat JSON (rendered as a QR
code by the front end). Decoding rejects anything partial or malformed.
"""

import json

from pydantic import ValidationError as PydanticValidationError

from ..db.schemas import LoanRequest
from ..errors import ValidationError

PAYLOAD_FIELDS = (
    "id",
    "bookId",
    "studentId",
    "studentName",
    "studentMatricula",
    "bookTitle",
    "pickupDate",
    "returnDate",
    "status",
)

# Without these a payload cannot be matched to a loan
REFERENCE_FIELDS = ("id", "studentMatricula", "bookTitle")


def encode_loan(loan: LoanRequest) -> str:
    """Serialize a loan to its transfer text.

    Dates are written as ``YYYY-MM-DD``.
    """
    data = loan.model_dump(mode="json", by_alias=True)
    return json.dumps({key: data[key] for key in PAYLOAD_FIELDS}, ensure_ascii=False)


def decode_loan(text: str) -> LoanRequest:
    """Parse transfer text back into a loan.

    Args:
        text: JSON produced by ``encode_loan``

    Returns:
        The decoded loan

    Raises:
        ValidationError: If the text is not a JSON object with every payload
            field, non-empty reference fields, valid dates and a known status
    """
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValidationError("Loan payload is not valid JSON") from e

    if not isinstance(data, dict):
        raise ValidationError("Loan payload must be a JSON object")

    empty = [
        key
        for key in REFERENCE_FIELDS
        if not isinstance(data.get(key), str) or not data[key].strip()
    ]
    if empty:
        raise ValidationError(f"Loan payload missing required fields: {', '.join(empty)}")

    missing = [key for key in PAYLOAD_FIELDS if key not in data]
    if missing:
        raise ValidationError(f"Loan payload missing fields: {', '.join(missing)}")

    try:
        return LoanRequest.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e) from e
