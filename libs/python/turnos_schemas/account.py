"""Account-related DTOs shared with the web client and other services."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, EmailStr


class LoginResponse(BaseModel):
    token: str
    email: EmailStr
    role: str
    id: int
    name: str


class RegistrationReceipt(BaseModel):
    mensaje: str
    email: EmailStr
    timestamp: datetime
