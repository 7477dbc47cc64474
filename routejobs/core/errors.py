"""
Domain errors raised by the dispatch services.

Every error carries a short machine code, a human message and a context dict
(current state, conflicting entity ids) so a rejected operation can explain
*why* it was rejected. The FastAPI app renders them through one handler.
"""
from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    code = "dispatch_error"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.context}


class ValidationError(DispatchError):
    code = "validation_error"
    status_code = 400


class NotFoundError(DispatchError):
    code = "not_found"
    status_code = 404


class InvalidStateError(DispatchError):
    code = "invalid_state"
    status_code = 409


class DuplicateBidError(DispatchError):
    code = "duplicate_bid"
    status_code = 409


class ConcurrencyConflictError(DispatchError):
    code = "concurrency_conflict"
    status_code = 409


class ExternalProviderError(DispatchError):
    code = "external_provider_error"
    status_code = 502


class PlanningStartError(ExternalProviderError):
    code = "planning_start_failed"
