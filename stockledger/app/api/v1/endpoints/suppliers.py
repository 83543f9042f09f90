from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.app.api.deps import get_db, require_permission
from stockledger.app.core.errors import Conflict
from stockledger.app.db.models.models_v1 import Supplier, User
from stockledger.app.db.session import atomic

router = APIRouter(prefix="/suppliers")


class SupplierCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    contact: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=255)


@router.get("")
def list_suppliers(
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("proveedores:read")),
):
    rows = db.execute(select(Supplier).where(Supplier.active.is_(True)).order_by(Supplier.name)).scalars().all()
    return [
        {
            "id": s.id,
            "code": s.code,
            "name": s.name,
            "contact": s.contact,
            "phone": s.phone,
            "email": s.email,
        }
        for s in rows
    ]


@router.post("", status_code=201)
def create_supplier(
    payload: SupplierCreate,
    db: Session = Depends(get_db),
    _user: User = Depends(require_permission("proveedores:create")),
):
    with atomic(db):
        exists = db.execute(select(Supplier.id).where(Supplier.code == payload.code)).scalar_one_or_none()
        if exists:
            raise Conflict("El código del proveedor ya existe", codigo=payload.code)

        s = Supplier(
            code=payload.code,
            name=payload.name,
            contact=payload.contact,
            phone=payload.phone,
            email=payload.email,
        )
        db.add(s)
        db.flush()

    return {"id": s.id, "code": s.code, "name": s.name}
