"""
commissions/errors.py

Error taxonomy of the commission engine.

Every business failure is one of these exceptions. None of them is fatal:
the surrounding application catches them and renders them for the actor
(see register_error_handlers in the app factory).

- ValidationError (400): bad input shape/range, carries every field-level
  violation at once. Subtypes InvalidAmount and InvalidDateOrder.
- MissingRequiredField (422): a transition was requested without the data
  it must attach (rejection reason, payment reference, ...).
- Forbidden (403): the actor may not perform the action.
- InvalidTransition (409): the current status does not allow the action.
- Conflict (409): a concurrent writer changed the record first.
- NotFound (404)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class FieldError:
    """One violation of one input field."""

    field: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class CommissionError(Exception):
    """Base class of all expected business errors."""

    code = "error"
    status_code = 400

    def __init__(self, message: str = "", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(CommissionError):
    code = "validation_error"
    status_code = 400

    def __init__(self, errors: Iterable[FieldError] | FieldError, message: str = ""):
        if isinstance(errors, FieldError):
            errors = [errors]
        self.errors: List[FieldError] = list(errors)
        if not message:
            message = "; ".join(e.message for e in self.errors) or "Invalid input."
        super().__init__(message)

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = [e.to_dict() for e in self.errors]
        return payload

    @classmethod
    def from_errors(cls, errors: List[FieldError]) -> "ValidationError":
        """
        Build the most specific error class for a batch of violations.

        A batch made only of date-order errors is InvalidDateOrder, one made
        only of amount errors is InvalidAmount; anything mixed stays generic.
        """
        codes = {e.code for e in errors}
        if codes == {InvalidDateOrder.code}:
            return InvalidDateOrder(errors)
        if codes and codes <= {InvalidAmount.code}:
            return InvalidAmount(errors)
        return cls(errors)


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class InvalidDateOrder(ValidationError):
    code = "invalid_date_order"


class MissingRequiredField(CommissionError):
    code = "missing_required_field"
    status_code = 422

    def __init__(self, fields: Iterable[str], message: str = ""):
        self.fields = list(fields)
        super().__init__(
            message or f"Missing required field(s): {', '.join(self.fields)}.",
            details={"fields": self.fields},
        )


class Forbidden(CommissionError):
    code = "forbidden"
    status_code = 403


class InvalidTransition(CommissionError):
    code = "invalid_transition"
    status_code = 409


class Conflict(CommissionError):
    code = "conflict"
    status_code = 409


class NotFound(CommissionError):
    code = "not_found"
    status_code = 404
