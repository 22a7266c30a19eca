"""Client views exposed to administrators."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ClientAdminView(BaseModel):
    id: int
    nombre: str
    apellido: str
    email: str
    dni: str | None = None
    telefono: str
    # login eligibility (Account.enabled)
    cliente_activo: bool
    # display flag on the profile itself
    persona_activa: bool = True


class ClientRoster(BaseModel):
    activos: list[ClientAdminView] = Field(default_factory=list)
    baja_logica: list[ClientAdminView] = Field(default_factory=list)
