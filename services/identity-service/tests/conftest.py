from __future__ import annotations

import copy
from contextlib import contextmanager
from dataclasses import replace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from identity.api import routes
from identity.api.handlers import install_error_handlers
from identity.config import Settings
from identity.domain.account import Account, AccountView, Appointment, Person, RoleType
from identity.domain.contracts import IdentityClaims, NewAccount, NewPerson
from identity.domain.errors import DuplicateEmail
from identity.domain.service import AuthenticationGateway, ClientLifecycleManager
from identity.security.passwords import BcryptPasswordHasher
from identity.security.throttle import SlidingWindowThrottle, ThrottlePolicy, ThrottleScope
from identity.security.tokens import TokenIssuer, TokenValidator


class InMemoryStore:
    """In-memory store mimicking the Postgres repository, including rollback and unique emails."""

    def __init__(self) -> None:
        self.roles: set[RoleType] = {RoleType.CLIENT, RoleType.ADMIN}
        self.persons: dict[int, Person] = {}
        self.accounts: dict[int, Account] = {}
        self.appointments: dict[int, Appointment] = {}
        self._sequences = {"person": 0, "account": 0, "appointment": 0}
        # When False, email_exists always answers False, like a concurrent insert that has
        # not committed yet; only the unique constraint can catch the duplicate then.
        self.precheck_sees_rows = True
        self.rollbacks = 0
        # Raised by save_account after the write lands, so only a rollback can undo it.
        self.fail_after_save_account: Exception | None = None

    def _next_id(self, kind: str) -> int:
        self._sequences[kind] += 1
        return self._sequences[kind]

    @contextmanager
    def unit_of_work(self):
        snapshot = copy.deepcopy((self.persons, self.accounts, self.appointments, self._sequences))
        try:
            yield FakeSession(self)
        except Exception:
            self.persons, self.accounts, self.appointments, self._sequences = snapshot
            self.rollbacks += 1
            raise

    def find_password_hash(self, email: str) -> str | None:
        account = self._account_by_email(email)
        return account.password_hash if account else None

    def find_account_by_email(self, email: str) -> AccountView | None:
        account = self._account_by_email(email)
        if account is None:
            return None
        person = self.persons.get(account.person_id) if account.person_id else None
        return AccountView(account=replace(account), person=replace(person) if person else None)

    def list_client_accounts(self) -> list[AccountView]:
        views = []
        for account in self.accounts.values():
            if RoleType.CLIENT in account.roles:
                person = self.persons.get(account.person_id) if account.person_id else None
                views.append(AccountView(account=replace(account), person=replace(person) if person else None))
        return views

    def _account_by_email(self, email: str) -> Account | None:
        return next((a for a in self.accounts.values() if a.email == email), None)

    # seeding helpers

    def add_person(self, first_name: str = "Ana", last_name: str = "Diaz", phone: str = "111") -> Person:
        person = Person(
            person_id=self._next_id("person"),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )
        self.persons[person.person_id] = person
        return person

    def add_account(
        self,
        email: str,
        password_hash: str,
        *,
        roles: frozenset[RoleType] = frozenset({RoleType.CLIENT}),
        person_id: int | None = None,
        enabled: bool = True,
    ) -> Account:
        account = Account(
            account_id=self._next_id("account"),
            email=email,
            password_hash=password_hash,
            enabled=enabled,
            roles=roles,
            person_id=person_id,
        )
        self.accounts[account.account_id] = account
        return account

    def add_appointment(self, person_id: int, available: bool) -> Appointment:
        appointment = Appointment(
            appointment_id=self._next_id("appointment"),
            person_id=person_id,
            available=available,
        )
        self.appointments[appointment.appointment_id] = appointment
        return appointment

    def account_for(self, person_id: int) -> Account:
        return next(a for a in self.accounts.values() if a.person_id == person_id)


class FakeSession:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def email_exists(self, email: str) -> bool:
        if not self._store.precheck_sees_rows:
            return False
        return self._store._account_by_email(email) is not None

    def find_role(self, role: RoleType) -> RoleType | None:
        return role if role in self._store.roles else None

    def get_person(self, person_id: int) -> Person | None:
        person = self._store.persons.get(person_id)
        return replace(person) if person else None

    def list_appointments(self, person_id: int) -> list[Appointment]:
        return [replace(a) for a in self._store.appointments.values() if a.person_id == person_id]

    def find_account_by_person(self, person_id: int) -> Account | None:
        account = next((a for a in self._store.accounts.values() if a.person_id == person_id), None)
        return replace(account) if account else None

    def insert_person(self, person: NewPerson) -> Person:
        created = Person(
            person_id=self._store._next_id("person"),
            first_name=person.first_name,
            last_name=person.last_name,
            phone=person.phone,
            document_id=person.document_id,
            active=person.active,
        )
        self._store.persons[created.person_id] = created
        return replace(created)

    def insert_account(self, account: NewAccount) -> Account:
        if self._store._account_by_email(account.email) is not None:
            raise DuplicateEmail()
        created = Account(
            account_id=self._store._next_id("account"),
            email=account.email,
            password_hash=account.password_hash,
            enabled=account.enabled,
            roles=account.roles,
            person_id=account.person_id,
        )
        self._store.accounts[created.account_id] = created
        return replace(created)

    def save_person(self, person: Person) -> None:
        self._store.persons[person.person_id] = replace(person)

    def save_account(self, account: Account) -> None:
        clash = self._store._account_by_email(account.email)
        if clash is not None and clash.account_id != account.account_id:
            raise DuplicateEmail()
        self._store.accounts[account.account_id] = replace(account)
        if self._store.fail_after_save_account is not None:
            raise self._store.fail_after_save_account


@pytest.fixture(scope="session")
def hasher() -> BcryptPasswordHasher:
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-secret-with-at-least-thirty-two-bytes",
        jwt_issuer="turnos.test",
        jwt_ttl_seconds=600,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def gateway(store, hasher, settings) -> AuthenticationGateway:
    return AuthenticationGateway(store, hasher, TokenIssuer(settings))


@pytest.fixture
def lifecycle(store, hasher) -> ClientLifecycleManager:
    return ClientLifecycleManager(store, hasher)


@pytest.fixture
def issue_token(settings):
    """Mint a bearer token for an arbitrary role set."""
    issuer = TokenIssuer(settings)

    def _issue(*roles: RoleType, subject: str = "someone@x.com", account_id: int = 99) -> str:
        claims = IdentityClaims(subject=subject, account_id=account_id, roles=frozenset(roles))
        return issuer.issue(claims).value

    return _issue


@pytest.fixture
def api_client(store, gateway, lifecycle, settings):
    """Provide a FastAPI test client wired to the in-memory store."""
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(routes.router)
    app.state.authentication_gateway = gateway
    app.state.client_lifecycle = lifecycle
    app.state.token_validator = TokenValidator(settings)

    original_throttle = routes.throttle
    routes.throttle = SlidingWindowThrottle(
        {ThrottleScope.LOGIN: ThrottlePolicy(100, 60), ThrottleScope.REGISTER: ThrottlePolicy(100, 60)}
    )

    with TestClient(app) as client:
        yield client

    routes.throttle = original_throttle
