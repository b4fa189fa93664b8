"""Optional inclusive bounds for range and length rules."""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Unbounded:
    """No limit on this side of the interval."""

    def __repr__(self) -> str:
        return "Unbounded()"


@dataclass(frozen=True)
class Inclusive:
    """Limit that the value itself still satisfies."""

    value: int | float


Bound = Union[Unbounded, Inclusive]

UNBOUNDED = Unbounded()


def to_bound(value: "int | float | Bound | None") -> Bound:
    """Convert a plain config value (None = no limit) to a Bound."""
    if isinstance(value, (Unbounded, Inclusive)):
        return value
    if value is None:
        return UNBOUNDED
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Bound must be numeric or None, got: {value!r}")
    return Inclusive(value)


def below_sql(bound: Bound, expression: str) -> str:
    """SQL predicate that is true when ``expression`` is below a lower bound."""
    if isinstance(bound, Unbounded):
        return "false"
    if isinstance(bound, Inclusive):
        return f"{expression} < {bound.value!r}"
    raise TypeError(f"Unknown bound: {bound!r}")


def above_sql(bound: Bound, expression: str) -> str:
    """SQL predicate that is true when ``expression`` is above an upper bound."""
    if isinstance(bound, Unbounded):
        return "false"
    if isinstance(bound, Inclusive):
        return f"{expression} > {bound.value!r}"
    raise TypeError(f"Unknown bound: {bound!r}")


def literal_sql(bound: Bound) -> str:
    """The bound's value as a SQL literal (null when unbounded)."""
    if isinstance(bound, Unbounded):
        return "null"
    if isinstance(bound, Inclusive):
        return repr(bound.value)
    raise TypeError(f"Unknown bound: {bound!r}")


def describe(lower: Bound, upper: Bound) -> str:
    """Interval in mathematical notation, e.g. ``[0, 24]`` or ``[0, inf)``."""
    left = "(-inf" if isinstance(lower, Unbounded) else f"[{lower.value}"
    right = "inf)" if isinstance(upper, Unbounded) else f"{upper.value}]"
    return f"{left}, {right}"
