"""Error taxonomy raised by the identity workflows."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DISABLED = "account_disabled"
    ACCOUNT_NOT_FOUND = "account_not_found"
    PERSON_NOT_FOUND = "person_not_found"
    LINKED_ACCOUNT_NOT_FOUND = "linked_account_not_found"
    DUPLICATE_EMAIL = "duplicate_email"
    BUSINESS_RULE_VIOLATION = "business_rule_violation"
    ROLE_NOT_CONFIGURED = "role_not_configured"
    INVALID_TOKEN = "invalid_token"
    UNACCEPTABLE_PASSWORD = "unacceptable_password"
    RATE_LIMITED = "rate_limited"


class IdentityError(Exception):
    """Base class for domain faults; each subclass carries exactly one ``ErrorKind``."""

    kind: ErrorKind
    default_message = "identity error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(IdentityError):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "invalid credentials"


class AccountDisabled(IdentityError):
    kind = ErrorKind.ACCOUNT_DISABLED
    default_message = "account is disabled"


class AccountNotFound(IdentityError):
    kind = ErrorKind.ACCOUNT_NOT_FOUND
    default_message = "account not found"


class PersonNotFound(IdentityError):
    kind = ErrorKind.PERSON_NOT_FOUND
    default_message = "client not found"


class LinkedAccountNotFound(IdentityError):
    kind = ErrorKind.LINKED_ACCOUNT_NOT_FOUND
    default_message = "no account is linked to this client"


class DuplicateEmail(IdentityError):
    kind = ErrorKind.DUPLICATE_EMAIL
    default_message = "email is already registered"


class BusinessRuleViolation(IdentityError):
    kind = ErrorKind.BUSINESS_RULE_VIOLATION
    default_message = "cannot deactivate a person with active appointments"


class RoleNotConfigured(IdentityError):
    """Deployment fault: reference role data is missing."""

    kind = ErrorKind.ROLE_NOT_CONFIGURED
    default_message = "default client role is not configured"


class InvalidToken(IdentityError):
    kind = ErrorKind.INVALID_TOKEN
    default_message = "token is invalid or expired"


class UnacceptablePassword(IdentityError):
    """The plaintext cannot be hashed; bcrypt reads at most 72 UTF-8 bytes."""

    kind = ErrorKind.UNACCEPTABLE_PASSWORD
    default_message = "password must be at most 72 bytes"


class RequestThrottled(IdentityError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "too many attempts, try again later"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)
