"""
Authorization gate.

La table rôle -> permissions est chargée une seule fois au démarrage
(`load_policy`) puis injectée ; elle n'est jamais modifiée à l'exécution.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Union

from stockledger.app.core.errors import AuthorizationDenied
from stockledger.app.core.logging import get_logger

logger = get_logger("authz")


DEFAULT_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "admin": (
        "articulos:read", "articulos:create", "articulos:update", "articulos:delete",
        "stock:read",
        "movimientos:read", "movimientos:create",
        "proveedores:read", "proveedores:create", "proveedores:update", "proveedores:delete",
        "compras:read", "compras:create", "compras:update", "compras:delete",
        "usuarios:read", "usuarios:create", "usuarios:update", "usuarios:delete",
        "reportes:read",
        "configuracion:read", "configuracion:update",
        "solicitudes:read", "solicitudes:create", "solicitudes:update",
    ),
    "encargado": (
        "articulos:read", "articulos:create", "articulos:update",
        "stock:read",
        "movimientos:read", "movimientos:create",
        "proveedores:read",
        "compras:read", "compras:create", "compras:update",
        "reportes:read",
        "solicitudes:read", "solicitudes:update",
    ),
    "operador": (
        "articulos:read",
        "stock:read",
        "movimientos:read", "movimientos:create",
        "proveedores:read",
        "compras:read",
        "solicitudes:read", "solicitudes:update",
    ),
    "solicitante": (
        "articulos:read",
        "solicitudes:read", "solicitudes:create",
    ),
}


@dataclass(frozen=True)
class Allow:
    role: str
    permission: str

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    role: str
    permission: str

    def __bool__(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return f"Acceso denegado. Se requiere el permiso: {self.permission}"


Decision = Union[Allow, Deny]


class PermissionPolicy:
    """Mapping immuable rôle -> frozenset de permissions."""

    __slots__ = ("_table",)

    def __init__(self, table: Mapping[str, object]):
        frozen = {str(role): frozenset(str(p) for p in perms) for role, perms in table.items()}
        object.__setattr__(self, "_table", MappingProxyType(frozen))

    def __setattr__(self, name, value):
        raise AttributeError("PermissionPolicy is immutable")

    @property
    def roles(self) -> frozenset[str]:
        return frozenset(self._table)

    def permissions_for(self, role: str) -> frozenset[str]:
        return self._table.get(role, frozenset())

    def authorize(self, role: str | None, permission: str) -> Decision:
        role = "" if role is None else str(getattr(role, "value", role))
        if permission in self.permissions_for(role):
            return Allow(role=role, permission=permission)
        return Deny(role=role, permission=permission)

    def require(self, role: str | None, permission: str) -> Allow:
        decision = self.authorize(role, permission)
        if isinstance(decision, Deny):
            logger.warning(
                "permission denied",
                extra={"role": decision.role, "permission": decision.permission},
            )
            raise AuthorizationDenied(decision.message, permission=decision.permission, role=decision.role)
        return decision


def load_policy(path: str | None = None) -> PermissionPolicy:
    """
    Table par défaut, ou fichier JSON {"role": ["perm", ...], ...}
    si `path` est fourni (PERMISSIONS_FILE).
    """
    if not path:
        return PermissionPolicy(DEFAULT_PERMISSIONS)

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict) or not all(isinstance(v, list) for v in raw.values()):
        raise ValueError(f"Invalid permissions file {path}: expected an object of role -> list")

    logger.info("permission table loaded", extra={"path": path, "roles": sorted(raw)})
    return PermissionPolicy(raw)
