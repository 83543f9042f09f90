from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_app_settings, get_db, require_permission
from stockledger.app.core.config import Settings
from stockledger.app.core.errors import Conflict, NotFound, ValidationError
from stockledger.app.db.models.core_types import MovementType
from stockledger.app.db.models.models_v1 import Article, StockLevel, Supplier, User
from stockledger.app.db.session import atomic
from stockledger.app.db.update_builder import ArticleFields, build_update
from stockledger.services.inventory import apply_movement, validate_stock_levels

router = APIRouter(prefix="/articles")


class ArticleCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    category: str = Field(min_length=1, max_length=100)
    description: str | None = None
    supplier_id: int | None = None
    expiry_date: date | None = None

    # niveau initial : entrada "Stock inicial" si initial_stock > 0
    initial_stock: int = Field(default=0, ge=0)
    min_stock: int | None = Field(default=None, ge=0)
    max_stock: int | None = Field(default=None, ge=0)
    location: str | None = Field(default=None, max_length=100)


class ArticleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    supplier_id: int | None = None
    expiry_date: date | None = None


def _article_out(a: Article) -> dict:
    return {
        "id": a.id,
        "code": a.code,
        "name": a.name,
        "category": a.category,
        "description": a.description,
        "supplier_id": a.supplier_id,
        "expiry_date": a.expiry_date,
        "active": a.active,
    }


def _check_supplier(db: Session, supplier_id: int | None) -> None:
    if supplier_id is None:
        return
    s = db.get(Supplier, supplier_id)
    if not s or not s.active:
        raise NotFound("Proveedor no encontrado o inactivo", proveedor_id=supplier_id)


def _get_active(db: Session, article_id: int) -> Article:
    a = db.get(Article, article_id)
    if not a or not a.active:
        raise NotFound("Artículo no encontrado", articulo_id=article_id)
    return a


@router.get("")
def list_articles(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("articulos:read")),
):
    rows = db.execute(select(Article).where(Article.active.is_(True)).order_by(Article.name)).scalars().all()
    return [_article_out(a) for a in rows]


@router.post("", status_code=201)
def create_article(
    payload: ArticleCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("articulos:create")),
    settings: Settings = Depends(get_app_settings),
):
    validate_stock_levels(payload.min_stock, payload.max_stock)

    with atomic(db):
        exists = db.execute(select(Article.id).where(Article.code == payload.code)).scalar_one_or_none()
        if exists:
            raise Conflict("El código del artículo ya existe", codigo=payload.code)
        _check_supplier(db, payload.supplier_id)

        a = Article(
            code=payload.code,
            name=payload.name,
            category=payload.category,
            description=payload.description,
            supplier_id=payload.supplier_id,
            expiry_date=payload.expiry_date,
        )
        db.add(a)
        db.flush()

        # article + ligne stock + mouvement initial dans la même transaction
        sl = StockLevel(
            article_id=a.id,
            quantity=0,
            min_stock=payload.min_stock,
            max_stock=payload.max_stock,
            location=payload.location,
        )
        db.add(sl)
        db.flush()

        if payload.initial_stock > 0:
            apply_movement(
                db,
                article_id=a.id,
                movement_type=MovementType.entrada,
                quantity=payload.initial_stock,
                user_id=user.id,
                reason="Stock inicial",
                allow_negative=settings.allow_negative_stock,
            )

    db.refresh(sl)
    return {
        **_article_out(a),
        "quantity": sl.quantity,
        "min_stock": sl.min_stock,
        "max_stock": sl.max_stock,
        "location": sl.location,
    }


@router.patch("/{article_id}")
def update_article(
    article_id: int,
    payload: ArticleUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("articulos:update")),
):
    fields = ArticleFields.from_mapping(payload.model_dump(include=payload.model_fields_set))
    values = fields.values()
    if not values:
        raise ValidationError("No hay campos para actualizar")
    if ("name" in values and values["name"] is None) or ("category" in values and values["category"] is None):
        raise ValidationError("Nombre y categoría no pueden ser nulos")

    with atomic(db):
        a = _get_active(db, article_id)
        _check_supplier(db, values.get("supplier_id"))
        db.execute(build_update(Article, fields, Article.id == article_id))

    db.refresh(a)
    return _article_out(a)


@router.delete("/{article_id}")
def delete_article(
    article_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("articulos:delete")),
):
    # soft delete : les mouvements gardent leur référence
    with atomic(db):
        a = _get_active(db, article_id)
        a.active = False

    return {"message": "Artículo eliminado exitosamente", "id": article_id}
