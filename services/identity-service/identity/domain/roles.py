from __future__ import annotations

from collections.abc import Iterable

from .account import RoleType


class RoleResolver:
    """Pick the single role label shown to the user after login.

    This is display logic only. Authorization decisions use the full role set
    carried in the token.
    """

    default_role = RoleType.CLIENT

    def resolve(self, roles: Iterable[RoleType]) -> str:
        ordered = sorted(roles, key=RoleType.precedence)
        if not ordered:
            return self.default_role.value
        return ordered[0].value
