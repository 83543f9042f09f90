"""
Procurement service.

Cycle de vie des commandes fournisseur :

    pendiente -> recibida   (terminal, alimente le ledger)
    pendiente -> cancelada  (terminal, aucun mouvement)

Ce module ne contient AUCUNE logique de calcul de stock : la réception
appelle `apply_movement` une fois par ligne, dans la même transaction que
le changement de statut.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from stockledger.app.core.errors import Conflict, NotFound, ValidationError
from stockledger.app.core.logging import get_logger
from stockledger.app.db.models.core_types import MovementType, POStatus
from stockledger.app.db.models.models_v1 import (
    PurchaseOrder,
    PurchaseOrderLine,
    Supplier,
    utcnow,
)
from stockledger.app.db.session import atomic
from stockledger.services.inventory import apply_movement, get_active_article

logger = get_logger("procurement")

ALLOWED_TRANSITIONS: dict[POStatus, frozenset[POStatus]] = {
    POStatus.pendiente: frozenset({POStatus.recibida, POStatus.cancelada}),
    POStatus.recibida: frozenset(),
    POStatus.cancelada: frozenset(),
}


@dataclass(frozen=True)
class OrderLineInput:
    article_id: int
    quantity: int


def receipt_reason(order_number: str) -> str:
    return f"Recepción orden #{order_number}"


def _merge_lines(lines: list[OrderLineInput]) -> dict[int, int]:
    if not lines:
        raise ValidationError("La orden debe incluir al menos un artículo")

    merged: dict[int, int] = {}
    for ln in lines:
        if isinstance(ln.quantity, bool) or not isinstance(ln.quantity, int) or ln.quantity <= 0:
            raise ValidationError("La cantidad de cada línea debe ser mayor a 0", articulo_id=ln.article_id)
        merged[ln.article_id] = merged.get(ln.article_id, 0) + ln.quantity
    return merged


def create_purchase_order(
    db: Session,
    *,
    supplier_id: int,
    order_number: str,
    lines: list[OrderLineInput],
    user_id: int,
    notes: str | None = None,
) -> PurchaseOrder:
    order_number = (order_number or "").strip()
    if not order_number:
        raise ValidationError("El número de orden es requerido")
    merged = _merge_lines(lines)

    with atomic(db):
        supplier = db.get(Supplier, supplier_id)
        if not supplier or not supplier.active:
            raise NotFound("Proveedor no encontrado", proveedor_id=supplier_id)

        exists = db.execute(
            select(PurchaseOrder.id).where(PurchaseOrder.order_number == order_number)
        ).scalar_one_or_none()
        if exists:
            raise Conflict("El número de orden ya existe", numero_orden=order_number)

        for article_id in merged:
            get_active_article(db, article_id)

        po = PurchaseOrder(
            order_number=order_number,
            supplier_id=supplier_id,
            created_by=user_id,
            status=POStatus.pendiente,
            notes=notes,
        )
        db.add(po)
        db.flush()  # get po.id ; IntegrityError -> Conflict si course sur le numéro

        for article_id, quantity in sorted(merged.items()):
            db.add(PurchaseOrderLine(order_id=po.id, article_id=article_id, quantity=quantity))
        db.flush()

    logger.info(
        "purchase order created",
        extra={"order_id": po.id, "order_number": order_number, "lines": len(merged), "user_id": user_id},
    )
    return po


def locked_order_stmt(order_id: int):
    return (
        select(PurchaseOrder)
        .where(PurchaseOrder.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _lock_order(db: Session, order_id: int) -> PurchaseOrder:
    po = db.execute(locked_order_stmt(order_id)).scalar_one_or_none()
    if not po:
        raise NotFound("Compra no encontrada", compra_id=order_id)
    return po


def transition_purchase_order(
    db: Session,
    *,
    order_id: int,
    target: POStatus | str,
    user_id: int,
    allow_negative: bool = False,
) -> PurchaseOrder:
    try:
        target = POStatus(target)
    except ValueError:
        raise ValidationError("Estado inválido", estado=str(target)) from None

    with atomic(db):
        po = _lock_order(db, order_id)

        if target not in ALLOWED_TRANSITIONS[po.status]:
            if po.status is POStatus.recibida:
                message = "No se puede modificar una compra ya recibida"
            else:
                message = f"Transición inválida: {po.status.value} -> {target.value}"
            raise Conflict(message, estado_actual=po.status.value, estado_solicitado=target.value)

        if target is POStatus.recibida:
            lines = (
                db.execute(
                    select(PurchaseOrderLine)
                    .where(PurchaseOrderLine.order_id == po.id)
                    .order_by(PurchaseOrderLine.article_id.asc())
                )
                .scalars()
                .all()
            )
            # verrous stock pris dans l'ordre des article_id
            for ln in lines:
                apply_movement(
                    db,
                    article_id=ln.article_id,
                    movement_type=MovementType.entrada,
                    quantity=ln.quantity,
                    user_id=user_id,
                    reason=receipt_reason(po.order_number),
                    allow_negative=allow_negative,
                )
            po.received_at = utcnow()

        po.status = target
        db.flush()

    logger.info(
        "purchase order transitioned",
        extra={"order_id": order_id, "status": target.value, "user_id": user_id},
    )
    return po


# ---------- Queries ----------
def list_purchase_orders(
    db: Session,
    *,
    status: POStatus | None = None,
    supplier_id: int | None = None,
    limit: int = 50,
) -> list[dict]:
    stmt = (
        select(
            PurchaseOrder,
            Supplier.name,
            func.count(PurchaseOrderLine.article_id),
            func.coalesce(func.sum(PurchaseOrderLine.quantity), 0),
        )
        .join(Supplier, Supplier.id == PurchaseOrder.supplier_id)
        .outerjoin(PurchaseOrderLine, PurchaseOrderLine.order_id == PurchaseOrder.id)
        .group_by(PurchaseOrder.id, Supplier.name)
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .limit(limit)
    )
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)

    return [
        {
            "id": po.id,
            "order_number": po.order_number,
            "supplier_id": po.supplier_id,
            "supplier_name": supplier_name,
            "status": po.status,
            "notes": po.notes,
            "created_at": po.created_at,
            "received_at": po.received_at,
            "total_items": int(total_items),
            "total_units": int(total_units),
        }
        for po, supplier_name, total_items, total_units in db.execute(stmt).all()
    ]


def get_purchase_order(db: Session, order_id: int) -> PurchaseOrder:
    po = (
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == order_id)
            .options(selectinload(PurchaseOrder.lines), selectinload(PurchaseOrder.supplier))
        )
        .scalar_one_or_none()
    )
    if not po:
        raise NotFound("Compra no encontrada", compra_id=order_id)
    return po
