"""Shared schema exports."""

from .account import LoginResponse, RegistrationReceipt
from .client import ClientAdminView, ClientRoster

__all__ = [
    "ClientAdminView",
    "ClientRoster",
    "LoginResponse",
    "RegistrationReceipt",
]
