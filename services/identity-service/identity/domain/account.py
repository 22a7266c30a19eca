from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RoleType(str, Enum):
    """Closed set of role labels; declaration order is the display precedence."""

    CLIENT = "CLIENT"
    ADMIN = "ADMIN"

    @classmethod
    def precedence(cls, role: "RoleType") -> int:
        return list(cls).index(role)


@dataclass(slots=True)
class Person:
    """Client profile owned by an account; carries its own display-level active flag."""

    person_id: int
    first_name: str
    last_name: str
    phone: str
    document_id: str | None = None
    active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(slots=True)
class Account:
    """Aggregate root for a login identity."""

    account_id: int
    email: str
    password_hash: str
    enabled: bool = True
    roles: frozenset[RoleType] = field(default_factory=frozenset)
    person_id: int | None = None


@dataclass(slots=True)
class Appointment:
    """Scheduled slot belonging to a person; ``available=False`` means booked."""

    appointment_id: int
    person_id: int
    available: bool = True
    starts_at: datetime | None = None


@dataclass(slots=True)
class AccountView:
    """An account together with its linked person, if any."""

    account: Account
    person: Person | None = None
