"""
schemas/errors.py — Structured error response model

Shared by the HTTPException, RequestValidationError and catch-all handlers
in main.py. Validation failures carry ``detail`` as a list of
{field, message} entries.
"""

from pydantic import BaseModel


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    status_code: int
    request_id: str = ""
    detail: list | None = None
    retryable: bool = False
