"""Domain-level request contracts and the store ports the services depend on."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Protocol

from .account import Account, AccountView, Appointment, Person, RoleType


@dataclass(slots=True)
class ClientRegistration:
    """Validated inputs required to register a new client."""

    first_name: str
    last_name: str
    email: str
    password: str
    phone: str


@dataclass(slots=True)
class ClientEdit:
    """Mutable profile fields an operator may overwrite."""

    first_name: str
    last_name: str
    document_id: str | None
    email: str


@dataclass(slots=True)
class NewPerson:
    first_name: str
    last_name: str
    phone: str
    document_id: str | None = None
    active: bool = True


@dataclass(slots=True)
class NewAccount:
    email: str
    password_hash: str
    person_id: int | None
    enabled: bool = True
    roles: frozenset[RoleType] = field(default_factory=frozenset)


@dataclass(slots=True)
class IdentityClaims:
    """Subject identity bound into an issued token."""

    subject: str
    account_id: int
    roles: frozenset[RoleType]


class StoreSession(Protocol):
    """Operations that run inside a single unit of work."""

    def email_exists(self, email: str) -> bool:
        ...

    def find_role(self, role: RoleType) -> RoleType | None:
        ...

    def get_person(self, person_id: int) -> Person | None:
        ...

    def list_appointments(self, person_id: int) -> list[Appointment]:
        ...

    def find_account_by_person(self, person_id: int) -> Account | None:
        ...

    def insert_person(self, person: NewPerson) -> Person:
        ...

    def insert_account(self, account: NewAccount) -> Account:
        ...

    def save_person(self, person: Person) -> None:
        ...

    def save_account(self, account: Account) -> None:
        ...


class CredentialStore(Protocol):
    """Persistence for accounts, persons, roles and appointments."""

    def find_password_hash(self, email: str) -> str | None:
        ...

    def find_account_by_email(self, email: str) -> AccountView | None:
        ...

    def list_client_accounts(self) -> list[AccountView]:
        ...

    def unit_of_work(self) -> AbstractContextManager[StoreSession]:
        ...


class PasswordHasher(Protocol):
    def hash(self, plaintext: str) -> str:
        ...

    def verify(self, plaintext: str, hashed: str) -> bool:
        ...


def normalize_email(email: str) -> str:
    """Return the canonical form used for storage and lookups."""
    return email.strip().lower()
