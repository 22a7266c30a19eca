"""Identity workflows: login orchestration and the client account lifecycle."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from turnos_schemas import ClientAdminView, ClientRoster

from .account import Account, Person, RoleType
from .contracts import (
    ClientEdit,
    ClientRegistration,
    CredentialStore,
    IdentityClaims,
    NewAccount,
    NewPerson,
    PasswordHasher,
    StoreSession,
    normalize_email,
)
from .errors import (
    AccountDisabled,
    AccountNotFound,
    BusinessRuleViolation,
    DuplicateEmail,
    IdentityError,
    InvalidCredentials,
    LinkedAccountNotFound,
    PersonNotFound,
    RoleNotConfigured,
)
from .roles import RoleResolver
from ..metrics import LIFECYCLE_TRANSITIONS, LOGIN_ATTEMPTS, REGISTRATIONS
from ..security.tokens import TokenIssuer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LoginResult:
    """Everything the client needs after a successful login."""

    token: str
    email: str
    role: str
    display_id: int
    display_name: str


@dataclass(slots=True)
class RegisteredClient:
    email: str
    person_id: int
    account_id: int
    registered_at: datetime


class AuthenticationGateway:
    """Verify credentials and issue a token for an enabled account.

    Login is read-only: no outcome, successful or not, mutates stored state.
    """

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        role_resolver: RoleResolver | None = None,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._issuer = issuer
        self._role_resolver = role_resolver or RoleResolver()
        # Verified when the email is unknown so timing does not reveal whether it exists.
        self._dummy_hash = hasher.hash(secrets.token_urlsafe(16))

    def authenticate(self, email: str, password: str) -> LoginResult:
        """Run the login flow for an email/password pair.

        Raises
        ------
        InvalidCredentials
            The pair does not verify; unknown emails are indistinguishable from bad passwords.
        AccountNotFound
            Credentials verified but no account record backs them.
        AccountDisabled
            Credentials verified but the account is not login-eligible.
        """
        normalized = normalize_email(email)
        try:
            result = self._authenticate(normalized, password)
        except IdentityError as exc:
            LOGIN_ATTEMPTS.labels(outcome=exc.kind.value).inc()
            raise
        LOGIN_ATTEMPTS.labels(outcome="success").inc()
        logger.info("login succeeded for account %s", result.email)
        return result

    def _authenticate(self, email: str, password: str) -> LoginResult:
        if not self._verify_credentials(email, password):
            logger.warning("login rejected: invalid credentials")
            raise InvalidCredentials()

        view = self._store.find_account_by_email(email)
        if view is None:
            logger.error("credentials verified for %s but no account record exists", email)
            raise AccountNotFound()

        account, person = view.account, view.person
        if not account.enabled:
            logger.warning("login rejected: account %s is disabled", account.account_id)
            raise AccountDisabled()

        role = self._role_resolver.resolve(account.roles)
        if person is not None:
            display_id, display_name = person.person_id, person.full_name
        else:
            display_id, display_name = account.account_id, account.email

        token = self._issuer.issue(
            IdentityClaims(subject=account.email, account_id=account.account_id, roles=account.roles)
        )
        return LoginResult(
            token=token.value,
            email=account.email,
            role=role,
            display_id=display_id,
            display_name=display_name,
        )

    def _verify_credentials(self, email: str, password: str) -> bool:
        stored_hash = self._store.find_password_hash(email)
        if stored_hash is None:
            self._hasher.verify(password, self._dummy_hash)
            return False
        return self._hasher.verify(password, stored_hash)


class ClientLifecycleManager:
    """Registration and the Active/Disabled state machine of client accounts.

    Every operation runs inside one store unit of work, so a failure at any
    step rolls back the writes made before it.
    """

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def register(self, registration: ClientRegistration) -> RegisteredClient:
        """Create a linked Person and Account for a new client.

        The pre-check only avoids needless work; the store's unique email
        constraint is what rejects a concurrent duplicate, surfacing as the
        same ``DuplicateEmail``.
        """
        email = normalize_email(registration.email)
        try:
            # hashed before the unit of work so no connection is held for the bcrypt cost
            password_hash = self._hasher.hash(registration.password)
            with self._store.unit_of_work() as session:
                if session.email_exists(email):
                    raise DuplicateEmail()
                role = session.find_role(RoleType.CLIENT)
                if role is None:
                    logger.critical("role %s missing from reference data", RoleType.CLIENT.value)
                    raise RoleNotConfigured()

                person = session.insert_person(
                    NewPerson(
                        first_name=registration.first_name.strip(),
                        last_name=registration.last_name.strip(),
                        phone=registration.phone.strip(),
                    )
                )
                account = session.insert_account(
                    NewAccount(
                        email=email,
                        password_hash=password_hash,
                        person_id=person.person_id,
                        roles=frozenset({role}),
                    )
                )
        except IdentityError as exc:
            REGISTRATIONS.labels(outcome=exc.kind.value).inc()
            logger.warning("registration refused for %s: %s", email, exc.message)
            raise

        REGISTRATIONS.labels(outcome="success").inc()
        logger.info("registered client %s (account %s)", person.person_id, account.account_id)
        return RegisteredClient(
            email=account.email,
            person_id=person.person_id,
            account_id=account.account_id,
            registered_at=self._clock(),
        )

    def deactivate(self, person_id: int) -> None:
        """Disable login for the client; blocked while any appointment is booked."""
        self._transition(person_id, enabled=False, guard=self._ensure_no_booked_appointments)

    def activate(self, person_id: int) -> None:
        """Re-enable login for the client."""
        self._transition(person_id, enabled=True)

    def edit(self, person_id: int, changes: ClientEdit) -> ClientAdminView:
        """Overwrite the client's profile fields and the linked account's email."""
        with self._store.unit_of_work() as session:
            person = self._require_person(session, person_id)
            account = self._require_linked_account(session, person_id)

            person.first_name = changes.first_name.strip()
            person.last_name = changes.last_name.strip()
            person.document_id = changes.document_id
            account.email = normalize_email(changes.email)

            session.save_person(person)
            session.save_account(account)

        logger.info("edited client %s", person_id)
        return client_view(account, person)

    def list_clients(self) -> ClientRoster:
        """Return every client split into login-enabled and logically removed."""
        roster = ClientRoster()
        for view in self._store.list_client_accounts():
            if view.person is None:
                continue
            entry = client_view(view.account, view.person)
            if view.account.enabled:
                roster.activos.append(entry)
            else:
                roster.baja_logica.append(entry)
        return roster

    def _transition(
        self,
        person_id: int,
        *,
        enabled: bool,
        guard: Callable[[StoreSession, int], None] | None = None,
    ) -> None:
        transition = "activate" if enabled else "deactivate"
        try:
            with self._store.unit_of_work() as session:
                self._require_person(session, person_id)
                if guard is not None:
                    guard(session, person_id)
                account = self._require_linked_account(session, person_id)
                account.enabled = enabled
                session.save_account(account)
        except IdentityError as exc:
            LIFECYCLE_TRANSITIONS.labels(transition=transition, outcome=exc.kind.value).inc()
            logger.warning("%s refused for client %s: %s", transition, person_id, exc.message)
            raise
        LIFECYCLE_TRANSITIONS.labels(transition=transition, outcome="success").inc()
        logger.info("%s applied to client %s", transition, person_id)

    @staticmethod
    def _ensure_no_booked_appointments(session: StoreSession, person_id: int) -> None:
        if any(not appointment.available for appointment in session.list_appointments(person_id)):
            raise BusinessRuleViolation()

    @staticmethod
    def _require_person(session: StoreSession, person_id: int) -> Person:
        person = session.get_person(person_id)
        if person is None:
            raise PersonNotFound()
        return person

    @staticmethod
    def _require_linked_account(session: StoreSession, person_id: int) -> Account:
        account = session.find_account_by_person(person_id)
        if account is None:
            raise LinkedAccountNotFound()
        return account


def client_view(account: Account, person: Person) -> ClientAdminView:
    return ClientAdminView(
        id=person.person_id,
        nombre=person.first_name,
        apellido=person.last_name,
        email=account.email,
        dni=person.document_id,
        telefono=person.phone,
        cliente_activo=account.enabled,
        persona_activa=person.active,
    )
