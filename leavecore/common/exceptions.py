"""Domain exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://leavecore.dev/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all leave-core exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ForbiddenException(AppException):
    """403 — actor may not perform this action."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


# ── Ledger ──────────────────────────────────────────────────────────

class InsufficientBalance(AppException):
    """422 — the operation would take ``available`` below zero."""

    def __init__(self, available: Decimal, requested: Decimal, leave_type: str) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=(
                f"Insufficient {leave_type} balance. "
                f"Available: {available}, Requested: {requested}."
            ),
            errors={"balance": [f"Available: {available}, Requested: {requested}."]},
        )


class LedgerIntegrityError(AppException):
    """500 — a commit/release asked for more than is pending."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=500,
            error_type="ledger-integrity",
            title="Ledger Integrity Error",
            detail=detail,
        )


class ConcurrentModification(AppException):
    """409 — the record changed underneath us and retries ran out."""

    def __init__(self, key: str) -> None:
        super().__init__(
            status_code=409,
            error_type="concurrent-modification",
            title="Concurrent Modification",
            detail=f"Record '{key}' was modified concurrently. Please retry.",
        )


# ── Configuration (surfaced to HR/admin) ────────────────────────────

class InvalidWorkingPattern(AppException):
    """422 — working days per week outside (0, 7]."""

    def __init__(self, user_id: str, working_days_per_week: Any) -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-working-pattern",
            title="Invalid Working Pattern",
            detail=(
                f"User '{user_id}' has {working_days_per_week} working days per "
                "week; expected more than 0 and at most 7."
            ),
        )


class UnknownLeaveType(AppException):
    """422 — leave type missing or inactive."""

    def __init__(self, code: str) -> None:
        super().__init__(
            status_code=422,
            error_type="unknown-leave-type",
            title="Unknown Leave Type",
            detail=f"Leave type '{code}' does not exist or is inactive.",
        )


# ── Workflow ────────────────────────────────────────────────────────

class InvalidTransition(AppException):
    """409 — transition not legal from the request's current state."""

    def __init__(self, request_id: Any, status: str, action: str) -> None:
        self.status = status
        self.action = action
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=f"Cannot {action} leave request '{request_id}' in state {status}.",
        )


class DocumentVerificationPending(AppException):
    """409 — final approval waits for HR document verification."""

    def __init__(self, request_id: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="document-verification-pending",
            title="Document Verification Pending",
            detail=(
                f"Leave request '{request_id}' requires HR document "
                "verification before final approval."
            ),
        )


class ConflictBlocked(AppException):
    """409 — hard scheduling conflict detected at submission."""

    def __init__(self, reason: str, dates: Iterable[date]) -> None:
        self.dates = sorted(set(dates))
        listed = ", ".join(d.isoformat() for d in self.dates)
        super().__init__(
            status_code=409,
            error_type="conflict-blocked",
            title="Scheduling Conflict",
            detail=f"{reason}: {listed}",
            errors={"dates": [d.isoformat() for d in self.dates]},
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
