# outbreakwatch/analytics/exceptions.py

class AnalyticsError(Exception):
    """Base class for errors raised by the analytics engines."""


class PreconditionError(AnalyticsError, ValueError):
    """A required argument is missing or outside its accepted range."""


def require_text(value, name: str) -> str:
    """Returns the stripped value, raising PreconditionError when it is blank."""
    if value is None or not str(value).strip():
        raise PreconditionError(f"'{name}' is required")
    return str(value).strip()


def require_choice(enum_type, value, name: str):
    """Coerces `value` into a member of `enum_type`, raising PreconditionError for unknown values."""
    try:
        return enum_type(value)
    except ValueError as e:
        choices = ", ".join(str(m.value) for m in enum_type)
        raise PreconditionError(f"'{name}' must be one of: {choices}; got {value!r}") from e
