from datetime import date
from typing import Any, Callable, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from ledger_api.core.config import settings
from ledger_api.core.errors import ValidationFailed

Kind = Literal["income", "expense"]
WindowName = Literal["today", "this_month", "custom"]
SortOrder = Literal["asc", "desc"]

OptionsT = TypeVar("OptionsT", bound=BaseModel)
Check = Callable[[dict[str, Any], dict[str, list[str]]], None]


class PageOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    search: str | None = Field(default=None, max_length=255)
    sort_order: SortOrder | None = None
    per_page: int = Field(default=settings.default_per_page, ge=1, le=settings.max_per_page)
    page: int = Field(default=1, ge=1)


class ListFilters(PageOptions):
    """Options for the transaction list and trash views."""

    kind: Kind | None = None
    sort_by: Literal["id", "amount"] | None = None


class UserListFilters(PageOptions):
    sort_by: Literal["id", "name"] | None = None


def _end_not_before_start(value: date | None, info: ValidationInfo) -> date | None:
    start = info.data.get("start_date")
    if value is not None and start is not None and value < start:
        raise ValueError("end_date must be a date after or equal to start_date")
    return value


class WindowOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    window: WindowName
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("end_date")
    @classmethod
    def check_end_date(cls, value: date | None, info: ValidationInfo) -> date | None:
        return _end_not_before_start(value, info)


class HighestOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Kind
    window: WindowName | None = None
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("end_date")
    @classmethod
    def check_end_date(cls, value: date | None, info: ValidationInfo) -> date | None:
        return _end_not_before_start(value, info)


def _add_error(errors: dict[str, list[str]], field: str, message: str) -> None:
    messages = errors.setdefault(field, [])
    if message not in messages:
        messages.append(message)


def require_together(*fields: str) -> Check:
    """Either every field in ``fields`` is present or none of them is."""

    def check(params: dict[str, Any], errors: dict[str, list[str]]) -> None:
        present = [f for f in fields if f in params]
        if not present or len(present) == len(fields):
            return
        for field in fields:
            if field not in params:
                others = ", ".join(f for f in fields if f != field)
                _add_error(errors, field, f"The {field} field is required when {others} is present.")

    return check


def require_dates_for_custom(window_field: str = "window") -> Check:
    def check(params: dict[str, Any], errors: dict[str, list[str]]) -> None:
        if params.get(window_field) != "custom":
            return
        for field in ("start_date", "end_date"):
            if field not in params:
                _add_error(errors, field, f"The {field} field is required when {window_field} is custom.")

    return check


def build_options(model: type[OptionsT], params: dict[str, Any], *checks: Check) -> OptionsT:
    """Validate raw request parameters into ``model``.

    Blank values count as absent. Type errors and cross-field rules are
    collected together so a single ``ValidationFailed`` reports every bad
    field.
    """
    cleaned = {
        key: value.strip() if isinstance(value, str) else value
        for key, value in params.items()
        if value is not None and not (isinstance(value, str) and not value.strip())
    }
    errors: dict[str, list[str]] = {}
    options = None
    try:
        options = model.model_validate(cleaned)
    except ValidationError as exc:
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"]) or "__all__"
            _add_error(errors, field, err["msg"])
    for check in checks:
        check(cleaned, errors)
    if errors:
        raise ValidationFailed(errors)
    return options


def parse_list_filters(**params: Any) -> ListFilters:
    return build_options(ListFilters, params, require_together("sort_by", "sort_order"))


def parse_user_filters(**params: Any) -> UserListFilters:
    return build_options(UserListFilters, params, require_together("sort_by", "sort_order"))


def parse_window(**params: Any) -> WindowOptions:
    return build_options(WindowOptions, params, require_dates_for_custom())


def parse_highest(**params: Any) -> HighestOptions:
    return build_options(HighestOptions, params, require_dates_for_custom())
