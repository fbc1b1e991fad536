"""Input validation for pattern operations, run before any write."""
from typing import Any, Dict, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from recurring_planner.errors import ValidationError
from recurring_planner.schemas.pattern import PatternCreate, PatternUpdate
from recurring_planner.schemas.recurrence import AfterCompletionRule, EndsOnDate

MAX_USER_ID_LENGTH = 128

M = TypeVar("M", bound=BaseModel)


def validate_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id is required", details={"field": "user_id"})
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise ValidationError("user_id is invalid", details={"field": "user_id"})
    return user_id


def coerce(model: Type[M], data: Union[M, Dict[str, Any]]) -> M:
    """Parse raw input into `model`, reporting failures as ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__} input",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def check_rule(recurrence, end_condition, start_date) -> None:
    """Cross-field checks the schemas cannot express on their own."""
    if isinstance(recurrence, AfterCompletionRule) and not recurrence.days_after_completion:
        raise ValidationError(
            "days_after_completion is required for after_completion patterns",
            details={"field": "recurrence.days_after_completion"},
        )
    if isinstance(end_condition, EndsOnDate) and end_condition.end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"field": "end_condition.end_date"},
        )


def validate_create(user_id: str, data: Union[PatternCreate, Dict[str, Any]]) -> PatternCreate:
    validate_user_id(user_id)
    payload = coerce(PatternCreate, data)
    check_rule(payload.recurrence, payload.end_condition, payload.start_date)
    return payload


def validate_update(user_id: str, data: Union[PatternUpdate, Dict[str, Any]]) -> PatternUpdate:
    validate_user_id(user_id)
    return coerce(PatternUpdate, data)
