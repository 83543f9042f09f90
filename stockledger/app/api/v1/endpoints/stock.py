from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, require_permission
from stockledger.app.db.models.core_types import StockStatus
from stockledger.app.db.models.models_v1 import User
from stockledger.app.db.update_builder import StockLevelFields
from stockledger.app.schemas.stock_level import (
    StockLevelRead,
    StockLevelUpdate,
    StockRead,
    StockSummary,
)
from stockledger.services.inventory import (
    list_alerts,
    list_stock,
    stock_summary,
    update_stock_levels,
)

router = APIRouter(prefix="/stock")


@router.get("", response_model=list[StockRead])
def get_stock(
    status: StockStatus | None = Query(default=None, alias="estado"),
    category: str | None = Query(default=None, alias="categoria"),
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("stock:read")),
):
    """
    Stock (READ ONLY)
    - status est dérivé des seuils, jamais stocké
    - tri par nom d'article
    """
    return list_stock(db, status=status, category=category)


@router.get("/alerts", response_model=list[StockRead])
def get_alerts(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("stock:read")),
):
    return list_alerts(db, limit=limit)


@router.get("/summary", response_model=StockSummary)
def get_summary(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("stock:read")),
):
    return stock_summary(db)


@router.put("/{article_id}", response_model=StockLevelRead)
def put_stock_levels(
    article_id: int,
    payload: StockLevelUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("articulos:update")),
):
    fields = StockLevelFields.from_mapping(payload.model_dump(include=payload.model_fields_set))
    return update_stock_levels(db, article_id, fields)
