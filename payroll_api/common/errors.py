# payroll_api/common/errors.py
from flask import current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from payroll_api.common.http import fail


class APIError(Exception):
    """Custom API Error class."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


class DuplicatePeriod(APIError):
    """A non-cancelled payroll run already exists for (month, year)."""
    def __init__(self, month: int, year: int):
        super().__init__(
            "DUPLICATE_PERIOD",
            f"Payroll for {month:02d}/{year} was already processed",
            status_code=409,
            payload={"month": month, "year": year},
        )


class InvalidTransition(APIError):
    def __init__(self, obj_id, current: str, action: str, allowed, entity: str = "Run"):
        super().__init__(
            "INVALID_TRANSITION",
            f"{entity} in status '{current}' cannot {action} (allowed from: {', '.join(allowed)})",
            status_code=409,
            payload={"id": obj_id, "status": current, "action": action},
        )


class PeriodLocked(APIError):
    def __init__(self, month: int, year: int, status: str):
        super().__init__(
            "PERIOD_LOCKED",
            f"Period {month:02d}/{year} belongs to a {status} payroll run and cannot be changed",
            status_code=409,
            payload={"month": month, "year": year, "status": status},
        )


class FrozenRecord(APIError):
    def __init__(self, detail_id, fields):
        super().__init__(
            "FROZEN_RECORD",
            "Payroll detail is frozen once its run is finalized",
            status_code=409,
            payload={"detail_id": detail_id, "fields": sorted(fields)},
        )


class ValidationFailed(APIError):
    def __init__(self, errors, message="Validation failed"):
        super().__init__("VALIDATION_ERROR", message, status_code=422, payload=errors)
        self.errors = errors


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        if isinstance(e, ValidationFailed):
            return fail(message=e.message, status=e.status_code, code=e.code, errors=e.errors)
        return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _integrity(e: IntegrityError):
        # 409 for unique/FK violations
        return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                    detail=str(e.orig) if getattr(e, "orig", None) else str(e))

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        current_app.logger.exception(e)
        return fail("Internal server error", status=500)
