from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_app_settings, get_db, require_permission
from stockledger.app.core.config import Settings
from stockledger.app.db.models.core_types import POStatus
from stockledger.app.db.models.models_v1 import User
from stockledger.app.schemas.purchase_order import (
    POCreate,
    PORead,
    POStatusUpdate,
    POSummaryRead,
)
from stockledger.services.procurement import (
    OrderLineInput,
    create_purchase_order,
    get_purchase_order,
    list_purchase_orders,
    transition_purchase_order,
)

router = APIRouter(prefix="/purchase-orders")


@router.get("", response_model=list[POSummaryRead])
def list_pos(
    status: POStatus | None = None,
    supplier_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("compras:read")),
):
    return list_purchase_orders(db, status=status, supplier_id=supplier_id, limit=limit)


@router.get("/{po_id}", response_model=PORead)
def get_po(
    po_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("compras:read")),
):
    return get_purchase_order(db, po_id)


@router.post("", response_model=PORead, status_code=201)
def create_po(
    payload: POCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("compras:create")),
):
    po = create_purchase_order(
        db,
        supplier_id=payload.supplier_id,
        order_number=payload.order_number,
        lines=[OrderLineInput(article_id=ln.article_id, quantity=ln.quantity) for ln in payload.lines],
        user_id=user.id,
        notes=payload.notes,
    )
    return get_purchase_order(db, po.id)


@router.patch("/{po_id}/status")
def update_po_status(
    po_id: int,
    payload: POStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("compras:update")),
    settings: Settings = Depends(get_app_settings),
):
    po = transition_purchase_order(
        db,
        order_id=po_id,
        target=payload.status,
        user_id=user.id,
        allow_negative=settings.allow_negative_stock,
    )
    return {
        "message": f"Compra marcada como {po.status.value}",
        "id": po.id,
        "status": po.status,
        "received_at": po.received_at,
    }
