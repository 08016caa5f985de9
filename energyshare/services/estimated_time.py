"""
Validation guards for editing the estimated end time of a usage session.

Each guard inspects one condition and returns a :class:`GuardFailure` or
None. They are evaluated in a fixed order and the first failure wins:

1. caller signed in, then caller is a member
2. form carries a device id and a date string
3. date string converts with the client timezone offset
4. date is in the future (minute granularity)
5. device has an open session, then the session belongs to the caller
6. date differs from the stored estimate (minute granularity)
7. date is at most 8 hours after the session start

Guards 1-4 need no database and make up :func:`precheck_estimated_time`.
The full chain, including persistence, is run by
``energyshare.services.actions.update_estimated_time_action``.

CHANGELOG:
- 2026-10-05: Require control_devices permission (STORY-108)
- 2026-10-01: Initial creation (STORY-105)

TODO:
- None
"""

from dataclasses import dataclass
from datetime import datetime

from energyshare.auth.permissions import Permission, has_permission
from energyshare.auth.session import SessionUser
from energyshare.db.models import ActiveDevice
from energyshare.errors import ErrorTag
from energyshare.services.time_utils import (
    are_dates_equal_to_minute,
    convert_datetime_local_to_utc,
    is_date_in_future,
    is_within_eight_hours_from_date,
)

SUCCESS_MESSAGE = "Date updated successfully"
SERVER_ERROR_MESSAGE = "Server error updating date"


@dataclass(frozen=True)
class GuardFailure:
    """A failed guard: error tag plus user-facing message."""

    error: ErrorTag
    message: str

    def as_result(self) -> dict:
        return {"message": self.message, "error": self.error.value}


@dataclass(frozen=True)
class EstimatedTimeForm:
    """Submitted estimated-time form.

    Attributes:
        device_id: Device whose session is edited.
        estimated_datetime_local: Browser datetime-local value.
        timezone_offset: Browser ``getTimezoneOffset()`` in minutes.
    """

    device_id: str | None
    estimated_datetime_local: str | None
    timezone_offset: str | int | None


def check_signed_in(user: SessionUser | None) -> GuardFailure | None:
    if user is None or not user.email:
        return GuardFailure(ErrorTag.UNAUTHORIZED, "You must be logged in")
    return None


def check_member(user: SessionUser) -> GuardFailure | None:
    if not has_permission(user.role, Permission.CONTROL_DEVICES):
        return GuardFailure(
            ErrorTag.UNAUTHORIZED, "You must be a member to update usage times",
        )
    return None


def check_form(form: EstimatedTimeForm) -> GuardFailure | None:
    if not (form.device_id or "").strip() or not (form.estimated_datetime_local or "").strip():
        return GuardFailure(ErrorTag.VALIDATION, "Invalid form data")
    return None


def check_in_future(value: datetime, now: datetime | None = None) -> GuardFailure | None:
    if not is_date_in_future(value, now):
        return GuardFailure(ErrorTag.VALIDATION, "Date must be in the future")
    return None


def check_session_owner(
    active: ActiveDevice | None,
    user: SessionUser,
) -> GuardFailure | None:
    if active is None or active.usage is None:
        return GuardFailure(ErrorTag.NOT_FOUND, "Device is not currently in use")
    if active.usage.user_email.strip().lower() != user.email.strip().lower():
        return GuardFailure(
            ErrorTag.FORBIDDEN, "You can only update times for your own devices",
        )
    return None


def check_changed(value: datetime, current: datetime | None) -> GuardFailure | None:
    if current is not None and are_dates_equal_to_minute(current, value):
        return GuardFailure(ErrorTag.VALIDATION, "No change made to the date")
    return None


def check_within_session_window(value: datetime, start: datetime) -> GuardFailure | None:
    if not is_within_eight_hours_from_date(value, start):
        return GuardFailure(
            ErrorTag.VALIDATION, "Date must be within 8 hours of the start date",
        )
    return None


def precheck_estimated_time(
    user: SessionUser | None,
    form: EstimatedTimeForm,
    now: datetime | None = None,
) -> GuardFailure | datetime:
    """Run the guards that need no database.

    Args:
        user: Caller, or None when not signed in.
        form: Submitted form.
        now: Reference instant; defaults to the current time.

    Returns:
        GuardFailure for the first failing guard, otherwise the requested
        estimated time converted to UTC.
    """
    failure = check_signed_in(user) or check_member(user) or check_form(form)
    if failure is not None:
        return failure

    estimated = convert_datetime_local_to_utc(
        form.estimated_datetime_local, form.timezone_offset,
    )
    if estimated is None:
        return GuardFailure(ErrorTag.VALIDATION, "Invalid date format")

    failure = check_in_future(estimated, now)
    if failure is not None:
        return failure
    return estimated
