"""Prometheus instruments for the identity workflows."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "identity_login_attempts_total",
    "Login attempts grouped by outcome.",
    ["outcome"],
)

REGISTRATIONS = Counter(
    "identity_registrations_total",
    "Client registrations grouped by outcome.",
    ["outcome"],
)

LIFECYCLE_TRANSITIONS = Counter(
    "identity_account_transitions_total",
    "Account activation state changes grouped by transition and outcome.",
    ["transition", "outcome"],
)
