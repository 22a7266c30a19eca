"""Utilities for issuing and validating application JWTs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import jwt

from ..config import Settings
from ..domain.account import RoleType
from ..domain.contracts import IdentityClaims
from ..domain.errors import InvalidToken

_ALGORITHM = "HS256"


@dataclass(slots=True)
class IssuedToken:
    """Encoded bearer token and its lifetime in seconds."""

    value: str
    expires_in: int


class TokenIssuer:
    """Signs time-bounded tokens binding an authenticated identity."""

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt_secret
        self._issuer = settings.jwt_issuer
        self._ttl_seconds = settings.jwt_ttl_seconds

    def issue(self, claims: IdentityClaims) -> IssuedToken:
        """Create a signed JWT representing an authenticated account.

        Parameters
        ----------
        claims:
            Identity to embed; ``subject`` becomes the ``sub`` claim and the
            full role set is carried so authorization can use it later.

        Returns
        -------
        IssuedToken
            The encoded JWT string and its TTL (in seconds). Expiry is enforced
            by :class:`TokenValidator`, never here.
        """

        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": claims.subject,
            "account_id": claims.account_id,
            "roles": sorted(role.value for role in claims.roles),
            "iat": now,
            "exp": now + self._ttl_seconds,
        }
        token = jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        return IssuedToken(value=token, expires_in=self._ttl_seconds)


class TokenValidator:
    """Verifies tokens produced by a :class:`TokenIssuer` sharing the same secret."""

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt_secret
        self._issuer = settings.jwt_issuer

    def validate(self, token: str) -> IdentityClaims:
        """Decode and verify a JWT returning the identity it carries.

        Raises
        ------
        InvalidToken
            When the signature, issuer or expiry checks fail, or the payload is malformed.
        """

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
            roles = frozenset(RoleType(value) for value in payload.get("roles", []))
            return IdentityClaims(
                subject=payload["sub"],
                account_id=int(payload["account_id"]),
                roles=roles,
            )
        except (jwt.PyJWTError, KeyError, TypeError, ValueError) as exc:
            raise InvalidToken() from exc
