"""
Erreurs métier typées.

Chaque erreur porte un `code` stable, un status HTTP et des champs
structurés (`extra`) exposés tels quels dans la réponse JSON.

    LedgerError
    +-- ValidationError        400  VALIDATION_ERROR
    +-- NotFound               404  NOT_FOUND
    +-- Conflict               409  CONFLICT
    +-- InsufficientStock      400  INSUFFICIENT_STOCK
    +-- AuthorizationDenied    403  AUTHORIZATION_DENIED
    +-- InternalError          500  INTERNAL_ERROR
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, **self.extra}


class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(LedgerError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(LedgerError):
    code = "CONFLICT"
    status_code = 409


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, current: int, requested: int):
        super().__init__("Stock insuficiente", stockActual=current, solicitado=requested)
        self.current = current
        self.requested = requested


class AuthorizationDenied(LedgerError):
    code = "AUTHORIZATION_DENIED"
    status_code = 403

    def __init__(self, message: str, *, permission: str | None = None, role: str | None = None):
        extra: dict[str, Any] = {}
        if permission is not None:
            extra["permission"] = permission
        if role is not None:
            extra["role"] = role
        super().__init__(message, **extra)
        self.permission = permission
        self.role = role


class InternalError(LedgerError):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "Error interno del servidor"):
        super().__init__(message)
