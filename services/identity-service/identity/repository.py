"""Database repository for accounts, client profiles, roles and appointments."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from psycopg import Connection
from psycopg.errors import UniqueViolation
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, AccountView, Appointment, Person, RoleType
from .domain.contracts import NewAccount, NewPerson
from .domain.errors import DuplicateEmail

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = "a.account_id, a.email, a.password_hash, a.enabled, a.person_id"
_PERSON_COLUMNS = "p.person_id, p.first_name, p.last_name, p.phone, p.document_id, p.active"


def _map_account(row: tuple, roles: frozenset[RoleType]) -> Account:
    """Convert a raw ``accounts`` tuple into the domain ``Account`` dataclass."""
    return Account(
        account_id=row[0],
        email=row[1],
        password_hash=row[2],
        enabled=row[3],
        person_id=row[4],
        roles=roles,
    )


def _map_person(row: tuple) -> Person:
    return Person(
        person_id=row[0],
        first_name=row[1],
        last_name=row[2],
        phone=row[3],
        document_id=row[4],
        active=row[5],
    )


def _load_roles(conn: Connection, account_id: int) -> frozenset[RoleType]:
    with conn.cursor(row_factory=tuple_row) as cur:
        cur.execute(
            """
            SELECT r.type
            FROM account_roles ar
            JOIN roles r ON r.role_id = ar.role_id
            WHERE ar.account_id = %s
            """,
            (account_id,),
        )
        return frozenset(RoleType(row[0]) for row in cur.fetchall())


class PostgresSession:
    """Store operations bound to one connection inside an open transaction."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def email_exists(self, email: str) -> bool:
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute("SELECT 1 FROM accounts WHERE email = %s", (email,))
            return cur.fetchone() is not None

    def find_role(self, role: RoleType) -> RoleType | None:
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute("SELECT type FROM roles WHERE type = %s", (role.value,))
            row = cur.fetchone()
        return RoleType(row[0]) if row else None

    def get_person(self, person_id: int) -> Person | None:
        """Fetch and lock the person row for the rest of the transaction."""
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(
                f"SELECT {_PERSON_COLUMNS} FROM persons p WHERE p.person_id = %s FOR UPDATE",
                (person_id,),
            )
            row = cur.fetchone()
        return _map_person(row) if row else None

    def list_appointments(self, person_id: int) -> list[Appointment]:
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(
                """
                SELECT appointment_id, person_id, available, starts_at
                FROM appointments
                WHERE person_id = %s
                ORDER BY appointment_id
                """,
                (person_id,),
            )
            return [
                Appointment(appointment_id=row[0], person_id=row[1], available=row[2], starts_at=row[3])
                for row in cur.fetchall()
            ]

    def find_account_by_person(self, person_id: int) -> Account | None:
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts a WHERE a.person_id = %s FOR UPDATE",
                (person_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return _map_account(row, _load_roles(self._conn, row[0]))

    def insert_person(self, person: NewPerson) -> Person:
        with self._conn.cursor(row_factory=tuple_row) as cur:
            cur.execute(
                f"""
                INSERT INTO persons AS p (first_name, last_name, phone, document_id, active)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_PERSON_COLUMNS}
                """,
                (person.first_name, person.last_name, person.phone, person.document_id, person.active),
            )
            return _map_person(cur.fetchone())

    def insert_account(self, account: NewAccount) -> Account:
        """Insert the account and its role links; a taken email raises ``DuplicateEmail``."""
        try:
            with self._conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO accounts AS a (email, password_hash, enabled, person_id)
                    VALUES (%s, %s, %s, %s)
                    RETURNING {_ACCOUNT_COLUMNS}
                    """,
                    (account.email, account.password_hash, account.enabled, account.person_id),
                )
                row = cur.fetchone()
                for role in account.roles:
                    cur.execute(
                        """
                        INSERT INTO account_roles (account_id, role_id)
                        SELECT %s, role_id FROM roles WHERE type = %s
                        """,
                        (row[0], role.value),
                    )
        except UniqueViolation as exc:
            logger.info("unique constraint rejected account insert: %s", exc.diag.constraint_name)
            raise DuplicateEmail() from exc
        return _map_account(row, account.roles)

    def save_person(self, person: Person) -> None:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                UPDATE persons
                SET first_name = %s, last_name = %s, phone = %s, document_id = %s, active = %s
                WHERE person_id = %s
                """,
                (
                    person.first_name,
                    person.last_name,
                    person.phone,
                    person.document_id,
                    person.active,
                    person.person_id,
                ),
            )

    def save_account(self, account: Account) -> None:
        try:
            with self._conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET email = %s, password_hash = %s, enabled = %s, updated_at = NOW()
                    WHERE account_id = %s
                    """,
                    (account.email, account.password_hash, account.enabled, account.account_id),
                )
        except UniqueViolation as exc:
            raise DuplicateEmail() from exc


class AccountRepository:
    """Postgres-backed credential store."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    @contextmanager
    def unit_of_work(self) -> Iterator[PostgresSession]:
        """Yield a session whose writes commit together or roll back together."""
        with self._pool.connection() as conn:
            with conn.transaction():
                yield PostgresSession(conn)

    def find_password_hash(self, email: str) -> str | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT password_hash FROM accounts WHERE email = %s", (email,))
                row = cur.fetchone()
        return row[0] if row else None

    def find_account_by_email(self, email: str) -> AccountView | None:
        """Fetch an account and its linked person, or ``None``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_ACCOUNT_COLUMNS}, {_PERSON_COLUMNS}
                    FROM accounts a
                    LEFT JOIN persons p ON p.person_id = a.person_id
                    WHERE a.email = %s
                    """,
                    (email,),
                )
                row = cur.fetchone()
            if not row:
                return None
            roles = _load_roles(conn, row[0])
        person = _map_person(row[5:]) if row[5] is not None else None
        return AccountView(account=_map_account(row[:5], roles), person=person)

    def list_client_accounts(self) -> list[AccountView]:
        """Return every account holding the client role, including disabled ones."""
        views: list[AccountView] = []
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_ACCOUNT_COLUMNS}, {_PERSON_COLUMNS}
                    FROM accounts a
                    JOIN account_roles ar ON ar.account_id = a.account_id
                    JOIN roles r ON r.role_id = ar.role_id AND r.type = %s
                    LEFT JOIN persons p ON p.person_id = a.person_id
                    ORDER BY a.account_id
                    """,
                    (RoleType.CLIENT.value,),
                )
                rows = cur.fetchall()
            for row in rows:
                person = _map_person(row[5:]) if row[5] is not None else None
                views.append(
                    AccountView(account=_map_account(row[:5], _load_roles(conn, row[0])), person=person)
                )
        return views
