"""
Ledger de stock.

Toute variation de quantité passe par `apply_movement` / `record_movement` :
- lecture verrouillée (FOR UPDATE) de la ligne stock_levels
- calcul de la nouvelle quantité
- insertion du mouvement (quantité telle que fournie, jamais le total)
- mise à jour de la ligne stock

`apply_movement` ne commit pas : l'appelant possède la transaction
(cf. réception de commande). `record_movement` l'enveloppe dans `atomic`.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from stockledger.app.core.errors import InsufficientStock, NotFound, ValidationError
from stockledger.app.core.logging import get_logger
from stockledger.app.db.models.core_types import MovementType, StockStatus
from stockledger.app.db.models.models_v1 import (
    Article,
    StockLevel,
    StockMovement,
    Supplier,
    User,
    utcnow,
)
from stockledger.app.db.session import atomic
from stockledger.app.db.update_builder import StockLevelFields, build_update
from stockledger.services.classifier import classify_stock

logger = get_logger("inventory")


@dataclass(frozen=True)
class MovementResult:
    movement: StockMovement
    previous_quantity: int
    new_quantity: int


# ---------- Validation ----------
def validate_movement(movement_type: MovementType | str, quantity: Any) -> MovementType:
    """Préconditions vérifiées avant toute ouverture de transaction."""
    try:
        mtype = MovementType(movement_type)
    except ValueError:
        raise ValidationError("Tipo de movimiento inválido", tipo=str(movement_type)) from None

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("La cantidad debe ser un número entero")

    if mtype is MovementType.ajuste:
        # ajuste = valeur absolue ; 0 autorisé, négatif refusé
        if quantity < 0:
            raise ValidationError("La cantidad de un ajuste no puede ser negativa")
    elif quantity <= 0:
        raise ValidationError("La cantidad debe ser mayor a 0")

    return mtype


def compute_new_quantity(
    current: int,
    movement_type: MovementType,
    quantity: int,
    *,
    allow_negative: bool = False,
) -> int:
    if movement_type is MovementType.entrada:
        return current + quantity
    if movement_type is MovementType.salida:
        if current < quantity and not allow_negative:
            raise InsufficientStock(current=current, requested=quantity)
        return current - quantity
    if movement_type is MovementType.ajuste:
        return quantity
    raise ValidationError("Tipo de movimiento inválido")


# ---------- Helpers ----------
def get_active_article(db: Session, article_id: int) -> Article:
    article = db.get(Article, article_id)
    if not article or not article.active:
        raise NotFound("Artículo no encontrado", articulo_id=article_id)
    return article


def locked_stock_level_stmt(article_id: int):
    return (
        select(StockLevel)
        .where(StockLevel.article_id == article_id)
        .with_for_update()
        # relit la ligne verrouillée même si déjà présente dans la session
        .execution_options(populate_existing=True)
    )


_DIALECT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def insert_missing_stock_level_stmt(dialect_name: str, article_id: int):
    """INSERT ... ON CONFLICT DO NOTHING : un créateur concurrent attend puis ne fait rien."""
    insert = _DIALECT_INSERTS.get(dialect_name)
    if insert is None:
        return None
    return (
        insert(StockLevel)
        .values(article_id=article_id, quantity=0)
        .on_conflict_do_nothing(index_elements=[StockLevel.article_id])
    )


def get_or_create_stock_level(db: Session, article_id: int) -> StockLevel:
    sl = db.execute(locked_stock_level_stmt(article_id)).scalar_one_or_none()
    if sl:
        return sl

    stmt = insert_missing_stock_level_stmt(db.get_bind().dialect.name, article_id)
    if stmt is None:
        # autres dialectes : course -> IntegrityError -> Conflict
        db.add(StockLevel(article_id=article_id, quantity=0))
        db.flush()
    else:
        db.execute(stmt)

    return db.execute(locked_stock_level_stmt(article_id)).scalar_one()


def validate_stock_levels(min_stock: int | None, max_stock: int | None) -> None:
    if (min_stock is not None and min_stock < 0) or (max_stock is not None and max_stock < 0):
        raise ValidationError("Los niveles de stock no pueden ser negativos")
    if min_stock and max_stock and min_stock > max_stock:
        raise ValidationError(
            "El stock mínimo no puede superar al máximo",
            stock_minimo=min_stock,
            stock_maximo=max_stock,
        )


# ---------- Ledger engine ----------
def apply_movement(
    db: Session,
    *,
    article_id: int,
    movement_type: MovementType | str,
    quantity: int,
    user_id: int,
    reason: str | None = None,
    notes: str | None = None,
    allow_negative: bool = False,
) -> MovementResult:
    mtype = validate_movement(movement_type, quantity)
    get_active_article(db, article_id)

    sl = get_or_create_stock_level(db, article_id)
    previous = sl.quantity
    new_quantity = compute_new_quantity(previous, mtype, quantity, allow_negative=allow_negative)

    mv = StockMovement(
        article_id=article_id,
        user_id=user_id,
        movement_type=mtype,
        quantity=quantity,
        reason=reason,
        notes=notes,
    )
    db.add(mv)
    sl.quantity = new_quantity
    db.flush()

    return MovementResult(movement=mv, previous_quantity=previous, new_quantity=new_quantity)


def record_movement(
    db: Session,
    *,
    article_id: int,
    movement_type: MovementType | str,
    quantity: int,
    user_id: int,
    reason: str | None = None,
    notes: str | None = None,
    allow_negative: bool = False,
) -> MovementResult:
    mtype = validate_movement(movement_type, quantity)

    try:
        with atomic(db):
            result = apply_movement(
                db,
                article_id=article_id,
                movement_type=mtype,
                quantity=quantity,
                user_id=user_id,
                reason=reason,
                notes=notes,
                allow_negative=allow_negative,
            )
    except InsufficientStock as e:
        logger.warning(
            "salida rejected, insufficient stock",
            extra={"article_id": article_id, "current": e.current, "requested": e.requested, "user_id": user_id},
        )
        raise

    logger.info(
        "movement recorded",
        extra={
            "movement_id": result.movement.id,
            "article_id": article_id,
            "movement_type": mtype.value,
            "quantity": quantity,
            "previous_quantity": result.previous_quantity,
            "new_quantity": result.new_quantity,
            "user_id": user_id,
        },
    )
    return result


# ---------- Movement queries ----------
def _movement_row(mv: StockMovement, article: Article, user: User) -> dict:
    return {
        "id": mv.id,
        "article_id": mv.article_id,
        "article_code": article.code,
        "article_name": article.name,
        "user_id": mv.user_id,
        "user_name": user.name,
        "movement_type": mv.movement_type,
        "quantity": mv.quantity,
        "reason": mv.reason,
        "notes": mv.notes,
        "happened_at": mv.happened_at,
    }


def list_movements(
    db: Session,
    *,
    movement_type: MovementType | None = None,
    article_id: int | None = None,
    limit: int = 50,
) -> list[dict]:
    stmt = (
        select(StockMovement, Article, User)
        .join(Article, Article.id == StockMovement.article_id)
        .join(User, User.id == StockMovement.user_id)
        .order_by(StockMovement.happened_at.desc(), StockMovement.id.desc())
        .limit(limit)
    )
    if movement_type is not None:
        stmt = stmt.where(StockMovement.movement_type == movement_type)
    if article_id is not None:
        stmt = stmt.where(StockMovement.article_id == article_id)

    return [_movement_row(mv, a, u) for mv, a, u in db.execute(stmt).all()]


def get_movement(db: Session, movement_id: int) -> dict:
    row = db.execute(
        select(StockMovement, Article, User)
        .join(Article, Article.id == StockMovement.article_id)
        .join(User, User.id == StockMovement.user_id)
        .where(StockMovement.id == movement_id)
    ).first()
    if not row:
        raise NotFound("Movimiento no encontrado", movimiento_id=movement_id)
    return _movement_row(*row)


def movement_stats(db: Session, *, now: datetime | None = None, top: int = 10) -> dict:
    """
    Tableau de bord des mouvements :
    - nombre de mouvements depuis minuit (UTC)
    - par type sur les 7 derniers jours (nombre + unités)
    - articles les plus mouvementés sur 30 jours
    """
    now = now or utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    today = db.execute(
        select(func.count(StockMovement.id)).where(StockMovement.happened_at >= start_of_day)
    ).scalar_one()

    by_type = db.execute(
        select(
            StockMovement.movement_type,
            func.count(StockMovement.id),
            func.coalesce(func.sum(StockMovement.quantity), 0),
        )
        .where(StockMovement.happened_at >= week_ago)
        .group_by(StockMovement.movement_type)
        .order_by(StockMovement.movement_type)
    ).all()

    total_movements = func.count(StockMovement.id).label("total_movements")
    top_articles = db.execute(
        select(
            Article.id,
            Article.code,
            Article.name,
            total_movements,
            func.coalesce(
                func.sum(case((StockMovement.movement_type == MovementType.entrada, StockMovement.quantity), else_=0)),
                0,
            ),
            func.coalesce(
                func.sum(case((StockMovement.movement_type == MovementType.salida, StockMovement.quantity), else_=0)),
                0,
            ),
        )
        .join(StockMovement, StockMovement.article_id == Article.id)
        .where(StockMovement.happened_at >= month_ago)
        .group_by(Article.id, Article.code, Article.name)
        .order_by(total_movements.desc(), Article.id.asc())
        .limit(top)
    ).all()

    return {
        "today": int(today),
        "by_type": [
            {"movement_type": mtype, "total": int(n), "total_quantity": int(units)}
            for mtype, n, units in by_type
        ],
        "top_articles": [
            {
                "article_id": aid,
                "article_code": code,
                "article_name": name,
                "total_movements": int(n),
                "total_entradas": int(entradas),
                "total_salidas": int(salidas),
            }
            for aid, code, name, n, entradas, salidas in top_articles
        ],
    }


# ---------- Stock queries ----------
def list_stock(
    db: Session,
    *,
    status: StockStatus | None = None,
    category: str | None = None,
) -> list[dict]:
    """
    Articles actifs + stock + fournisseur, triés par nom.
    Un article sans ligne stock compte pour une quantité 0.
    Le filtre de statut réutilise classify_stock pour rester aligné
    avec le statut affiché.
    """
    stmt = (
        select(Article, StockLevel, Supplier.name)
        .outerjoin(StockLevel, StockLevel.article_id == Article.id)
        .outerjoin(Supplier, Supplier.id == Article.supplier_id)
        .where(Article.active.is_(True))
        .order_by(Article.name.asc(), Article.id.asc())
    )
    if category:
        stmt = stmt.where(Article.category == category)

    rows = []
    for article, sl, supplier_name in db.execute(stmt).all():
        quantity = sl.quantity if sl else 0
        min_stock = sl.min_stock if sl else None
        max_stock = sl.max_stock if sl else None
        row_status = classify_stock(quantity, min_stock, max_stock)
        if status is not None and row_status != status:
            continue
        rows.append(
            {
                "article_id": article.id,
                "code": article.code,
                "name": article.name,
                "category": article.category,
                "expiry_date": article.expiry_date,
                "supplier_name": supplier_name,
                "quantity": quantity,
                "min_stock": min_stock,
                "max_stock": max_stock,
                "location": sl.location if sl else None,
                "updated_at": sl.updated_at if sl else None,
                "has_stock_record": sl is not None,
                "status": row_status,
            }
        )
    return rows


def list_alerts(db: Session, *, limit: int = 50) -> list[dict]:
    """Articles avec un minimum défini et une quantité <= minimum."""
    alerts = [
        r
        for r in list_stock(db)
        if r["has_stock_record"]
        and r["min_stock"] is not None
        and r["min_stock"] > 0
        and r["quantity"] <= r["min_stock"]
    ]
    alerts.sort(key=lambda r: (r["quantity"], r["name"]))
    return alerts[:limit]


def stock_summary(db: Session) -> dict:
    rows = list_stock(db)
    counts = Counter(r["status"] for r in rows)
    return {
        "total_articles": len(rows),
        "total_units": sum(r["quantity"] for r in rows),
        "by_status": {s.value: counts.get(s, 0) for s in StockStatus},
    }


def update_stock_levels(db: Session, article_id: int, fields: StockLevelFields) -> StockLevel:
    if fields.is_empty():
        raise ValidationError("No hay campos para actualizar")

    with atomic(db):
        get_active_article(db, article_id)
        sl = get_or_create_stock_level(db, article_id)

        values = fields.values()
        validate_stock_levels(
            values.get("min_stock", sl.min_stock),
            values.get("max_stock", sl.max_stock),
        )

        stmt = build_update(StockLevel, fields, StockLevel.article_id == article_id)
        db.execute(stmt)
        db.flush()

    db.refresh(sl)
    logger.info("stock levels updated", extra={"article_id": article_id, "fields": sorted(values)})
    return sl
