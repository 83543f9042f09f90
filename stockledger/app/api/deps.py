from __future__ import annotations

from typing import Callable, Generator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from stockledger.app.core.config import Settings, get_settings
from stockledger.app.db.models.models_v1 import User
from stockledger.app.db.session import SessionLocal
from stockledger.services.authz import PermissionPolicy


def get_db() -> Generator:
    # close() annule toute transaction non commitée (erreur, timeout, déconnexion)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_policy(request: Request) -> PermissionPolicy:
    return request.app.state.policy


def get_app_settings() -> Settings:
    return get_settings()


def get_current_user(
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> User:
    """
    Utilisateur authentifié, posé en header par l'authentificateur amont.
    Jamais lu depuis le body.
    """
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=401, detail="No autenticado")

    user = db.get(User, int(x_user_id.strip()))
    if not user or not user.active:
        raise HTTPException(status_code=401, detail="Usuario no encontrado o inactivo")
    return user


def require_permission(permission: str) -> Callable[..., User]:
    def _dependency(
        user: User = Depends(get_current_user),
        policy: PermissionPolicy = Depends(get_policy),
    ) -> User:
        policy.require(user.role, permission)
        return user

    return _dependency
