from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, require_permission
from stockledger.app.core.errors import AuthorizationDenied, NotFound, ValidationError
from stockledger.app.core.logging import get_logger
from stockledger.app.db.models.core_types import Role
from stockledger.app.db.models.models_v1 import User
from stockledger.app.db.session import atomic

router = APIRouter(prefix="/users")
logger = get_logger("users")


class UserUpdate(BaseModel):
    role: Role | None = None
    active: bool | None = None


def _user_out(u: User) -> dict:
    return {"id": u.id, "name": u.name, "email": u.email, "role": u.role, "active": u.active}


def check_self_protection(acting: User, target: User, payload: UserUpdate) -> None:
    """Un utilisateur ne peut ni se retirer le rôle admin ni se désactiver."""
    if acting.id != target.id:
        return
    if payload.active is False:
        raise AuthorizationDenied("No puedes desactivar tu propia cuenta", role=acting.role.value)
    if target.role is Role.admin and payload.role is not None and payload.role is not Role.admin:
        raise AuthorizationDenied("No puedes quitarte el rol de administrador", role=acting.role.value)


@router.get("")
def list_users(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("usuarios:read")),
):
    rows = db.execute(select(User).order_by(User.name)).scalars().all()
    return [_user_out(u) for u in rows]


@router.patch("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    acting: User = Depends(require_permission("usuarios:update")),
):
    if payload.role is None and payload.active is None:
        raise ValidationError("No hay campos para actualizar")

    with atomic(db):
        target = db.get(User, user_id)
        if not target:
            raise NotFound("Usuario no encontrado", usuario_id=user_id)

        check_self_protection(acting, target, payload)

        if payload.role is not None:
            target.role = payload.role
        if payload.active is not None:
            target.active = payload.active

    logger.info(
        "user updated",
        extra={"user_id": user_id, "acting_user_id": acting.id, "fields": sorted(payload.model_fields_set)},
    )
    return _user_out(target)
