from __future__ import annotations

from datetime import date
from typing import Annotated, Literal

from pydantic import BeforeValidator, StringConstraints


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _blank_to_none(v):
    if isinstance(v, str):
        return v.strip() or None
    return v


# Closed set of roles. Every authorization predicate covers each of them.
RoleCode = Literal["manager", "supervisor", "sales"]
Role = Annotated[RoleCode, BeforeValidator(_to_lower_str)]

ProductStatus = Annotated[Literal["active", "inactive"], BeforeValidator(_to_lower_str)]

# Optional free text: surrounding whitespace is dropped and blanks become NULL.
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]
OptionalDate = Annotated[date | None, BeforeValidator(_blank_to_none)]

Email = Annotated[
    str,
    BeforeValidator(_to_lower_str),
    StringConstraints(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"),
]
Password = Annotated[str, StringConstraints(min_length=8, max_length=128)]
FullName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]
