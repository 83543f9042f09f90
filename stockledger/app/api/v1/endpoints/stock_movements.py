from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_app_settings, get_db, require_permission
from stockledger.app.core.config import Settings
from stockledger.app.db.models.core_types import MovementType
from stockledger.app.db.models.models_v1 import User
from stockledger.app.schemas.stock_movement import (
    MovementCreate,
    MovementCreated,
    MovementRead,
    MovementStats,
)
from stockledger.services.inventory import (
    get_movement,
    list_movements,
    movement_stats,
    record_movement,
)

router = APIRouter(prefix="/stock-movements")


@router.get("", response_model=list[MovementRead])
def list_stock_movements(
    movement_type: MovementType | None = Query(default=None, alias="tipo"),
    article_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("movimientos:read")),
):
    return list_movements(db, movement_type=movement_type, article_id=article_id, limit=limit)


@router.get("/stats", response_model=MovementStats)
def get_movement_stats(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("movimientos:read")),
):
    # déclarée avant /{movement_id}
    return movement_stats(db)


@router.get("/{movement_id}", response_model=MovementRead)
def get_stock_movement(
    movement_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("movimientos:read")),
):
    return get_movement(db, movement_id)


@router.post("", response_model=MovementCreated, status_code=201)
def create_stock_movement(
    payload: MovementCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("movimientos:create")),
    settings: Settings = Depends(get_app_settings),
):
    result = record_movement(
        db,
        article_id=payload.article_id,
        movement_type=payload.movement_type,
        quantity=payload.quantity,
        user_id=user.id,
        reason=payload.reason,
        notes=payload.notes,
        allow_negative=settings.allow_negative_stock,
    )
    return {
        "message": "Movimiento registrado exitosamente",
        "movement": get_movement(db, result.movement.id),
        "stock_anterior": result.previous_quantity,
        "stock_nuevo": result.new_quantity,
    }
